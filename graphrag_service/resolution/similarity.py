"""
String and vector similarity metrics used by entity resolution.
"""

from typing import Optional, Sequence

import numpy as np

PREFIX_SCALE = 0.1
MAX_PREFIX_LENGTH = 4


def jaro_winkler(s1: str, s2: str) -> float:
    """
    Jaro-Winkler similarity of two strings, in [0, 1].

    Either string empty gives 0. The match window is
    floor(max(len1, len2) / 2) - 1, clamped at zero, and the prefix bonus
    covers at most four leading characters.
    """
    len1, len2 = len(s1), len(s2)
    if len1 == 0 or len2 == 0:
        return 0.0

    match_distance = max(0, max(len1, len2) // 2 - 1)
    s1_matches = [False] * len1
    s2_matches = [False] * len2

    matches = 0
    for i in range(len1):
        low = max(0, i - match_distance)
        high = min(i + match_distance, len2 - 1)
        for j in range(low, high + 1):
            if not s2_matches[j] and s1[i] == s2[j]:
                s1_matches[i] = True
                s2_matches[j] = True
                matches += 1
                break

    if matches == 0:
        return 0.0

    transpositions = 0
    k = 0
    for i in range(len1):
        if s1_matches[i]:
            while not s2_matches[k]:
                k += 1
            if s1[i] != s2[k]:
                transpositions += 1
            k += 1

    jaro = (matches / len1 + matches / len2 + (matches - transpositions / 2) / matches) / 3

    prefix = 0
    for a, b in zip(s1[:MAX_PREFIX_LENGTH], s2[:MAX_PREFIX_LENGTH]):
        if a != b:
            break
        prefix += 1

    return jaro + prefix * PREFIX_SCALE * (1 - jaro)


def string_similarity(a: str, b: str) -> float:
    """Case-insensitive Jaro-Winkler."""
    return jaro_winkler(a.lower(), b.lower())


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """Cosine of two vectors; 0.0 for empty, zero-length or mismatched vectors."""
    if a is None or b is None or len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)
