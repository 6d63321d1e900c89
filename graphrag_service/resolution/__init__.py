"""
Entity resolution: similarity metrics and canonical clustering.
"""

from .models import EntityRecord
from .similarity import jaro_winkler, string_similarity, cosine_similarity
from .entity_resolver import EntityResolver

__all__ = [
    "EntityRecord",
    "jaro_winkler",
    "string_similarity",
    "cosine_similarity",
    "EntityResolver",
]
