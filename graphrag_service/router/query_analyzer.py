"""
Query Analyzer for classifying intent, complexity and required reasoning.
"""

import asyncio
import logging
import re
import string
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from ..models.llm_manager import LLMManager
from ..models.schemas import AnalysisResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryAnalysis:
    """Immutable analysis record produced once per query."""
    intent: Tuple[str, ...]
    complexity: str
    domain: str
    entities: Tuple[str, ...]
    relationships: Tuple[str, ...]
    required_reasoning: Tuple[str, ...]
    expected_answer_type: str
    ambiguity_level: str
    context_requirements: Tuple[str, ...]
    query_length: int = 0
    word_count: int = 0
    has_question_words: bool = False
    contains_temporal_references: bool = False
    contains_numerical_data: bool = False
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    source: str = "oracle"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, tuple):
                data[key] = list(value)
        return data


class QueryAnalyzer:
    """
    Classifies raw queries with the reasoning oracle.

    Never raises to the caller: oracle or validation failures yield a
    deterministic lexical fallback. Successful analyses are cached per
    normalized query; the cache evicts in insertion order (FIFO), not by
    recency, once it holds more than MAX_CACHE_SIZE entries.
    """

    MAX_CACHE_SIZE = 1000
    CACHE_KEY_LENGTH = 100

    DOMAIN_TERMS = ["transformer", "gpt", "llm", "nlp", "machine learning", "ai"]
    QUESTION_WORDS = ["what", "how", "why", "when", "where", "which", "who"]

    TEMPORAL_PATTERNS = [
        re.compile(r"\d{4}"),
        re.compile(r"(january|february|march|april|may|june|july|august|september|october|november|december)", re.IGNORECASE),
        re.compile(r"(yesterday|today|tomorrow|last week|next month)", re.IGNORECASE),
        re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b"),
    ]

    NUMERICAL_PATTERNS = [
        re.compile(r"\b\d+\b"),
        re.compile(r"\b\d+\.\d+\b"),
        re.compile(r"[$€£]\d+"),
        re.compile(r"\d+%"),
    ]

    def __init__(self, config: Dict[str, Any], llm_manager: LLMManager):
        self.config = config
        self.llm_manager = llm_manager
        self.temperature = config.get("temperature", 0.1)
        self.max_tokens = config.get("max_tokens", 800)

        self._cache: "OrderedDict[str, QueryAnalysis]" = OrderedDict()
        self._cache_lock = asyncio.Lock()
        self._hits = 0
        self._misses = 0

    async def analyze(self, query: str) -> QueryAnalysis:
        """
        Analyze a query.

        Args:
            query: The user's natural language query

        Returns:
            QueryAnalysis from the oracle, or the deterministic fallback
        """
        cache_key = self.generate_cache_key(query)
        async with self._cache_lock:
            cached = self._cache.get(cache_key)
            if cached is not None:
                self._hits += 1
                return cached
            self._misses += 1

        logger.info(f"Analyzing query: {query}")

        try:
            analysis = await self._perform_deep_analysis(query)
        except Exception as e:
            logger.warning(f"Query analysis failed: {e}, using fallback")
            return self.default_analysis(query)

        async with self._cache_lock:
            self._cache[cache_key] = analysis
            if len(self._cache) > self.MAX_CACHE_SIZE:
                self._cache.popitem(last=False)

        return analysis

    async def _perform_deep_analysis(self, query: str) -> QueryAnalysis:
        """Ask the oracle for a structured analysis."""
        prompt = f"""Perform comprehensive analysis of this search query:

Query: "{query}"

Analyze and return JSON with:
- intent: list of search intents (semantic, relational, factual, exploratory)
- complexity: low/medium/high based on reasoning requirements
- domain: inferred domain/topic
- entities: mentioned entities/concepts
- relationships: implied relationships to explore
- requiredReasoning: types needed (direct, multi_hop, comparative, causal, temporal)
- expectedAnswerType: fact, explanation, list, comparison
- ambiguityLevel: low/medium/high
- contextRequirements: what context is needed

Respond ONLY with the JSON object."""

        response = await self.llm_manager.generate_structured(
            prompt,
            AnalysisResponse,
            component="query_analyzer",
            query=query,
            temperature=self.temperature,
            max_tokens=self.max_tokens
        )

        return QueryAnalysis(
            intent=tuple(response.intent),
            complexity=response.complexity,
            domain=response.domain,
            entities=tuple(response.entities),
            relationships=tuple(response.relationships),
            required_reasoning=tuple(response.required_reasoning),
            expected_answer_type=response.expected_answer_type,
            ambiguity_level=response.ambiguity_level,
            context_requirements=tuple(response.context_requirements),
            source="oracle",
            **self._lexical_features(query)
        )

    def default_analysis(self, query: str) -> QueryAnalysis:
        """Deterministic analysis used when the oracle is unavailable."""
        return QueryAnalysis(
            intent=("semantic",),
            complexity="medium",
            domain="general",
            entities=tuple(self.extract_entities_simple(query)),
            relationships=(),
            required_reasoning=("direct",),
            expected_answer_type="explanation",
            ambiguity_level="medium",
            context_requirements=("general_knowledge",),
            source="fallback",
            **self._lexical_features(query)
        )

    def extract_entities_simple(self, query: str) -> list:
        """Capitalized tokens followed by known domain terms, de-duplicated in order."""
        entities = []
        for word in query.split():
            token = word.strip(string.punctuation)
            if len(token) > 2 and token[0] == token[0].upper():
                entities.append(token)

        query_lower = query.lower()
        for term in self.DOMAIN_TERMS:
            if term in query_lower:
                entities.append(term)

        return list(dict.fromkeys(entities))

    def _lexical_features(self, query: str) -> Dict[str, Any]:
        return {
            "query_length": len(query),
            "word_count": len(query.split()),
            "has_question_words": self.has_question_words(query),
            "contains_temporal_references": any(p.search(query) for p in self.TEMPORAL_PATTERNS),
            "contains_numerical_data": any(p.search(query) for p in self.NUMERICAL_PATTERNS),
        }

    def has_question_words(self, query: str) -> bool:
        query_lower = query.lower()
        return any(
            query_lower.startswith(word) or f" {word} " in query_lower
            for word in self.QUESTION_WORDS
        )

    def generate_cache_key(self, query: str) -> str:
        """Lowercase, collapse whitespace runs to '_', truncate."""
        return re.sub(r"\s+", "_", query.lower())[:self.CACHE_KEY_LENGTH]

    async def clear_cache(self):
        async with self._cache_lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache size, hit rate and oldest key."""
        lookups = self._hits + self._misses
        return {
            "size": len(self._cache),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / lookups if lookups else 0.0,
            "oldest_entry": next(iter(self._cache), None),
        }
