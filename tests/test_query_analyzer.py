"""
Tests for query analysis and strategy routing.
"""

import pytest
from unittest.mock import Mock, AsyncMock

from graphrag_service.errors import OracleFailure
from graphrag_service.models.llm_manager import LLMManager
from graphrag_service.models.schemas import AnalysisResponse
from graphrag_service.router.query_analyzer import QueryAnalyzer, QueryAnalysis
from graphrag_service.router.query_router import QueryRouter, RetrievalStrategy


def make_analysis(intent=("semantic",), complexity="medium", required_reasoning=("direct",)):
    return QueryAnalysis(
        intent=tuple(intent),
        complexity=complexity,
        domain="general",
        entities=(),
        relationships=(),
        required_reasoning=tuple(required_reasoning),
        expected_answer_type="explanation",
        ambiguity_level="low",
        context_requirements=(),
    )


class TestQueryAnalyzer:
    """Test Query Analyzer functionality."""

    @pytest.fixture
    def llm_manager(self):
        return Mock(spec=LLMManager)

    @pytest.fixture
    def analyzer(self, llm_manager):
        return QueryAnalyzer({"temperature": 0.1}, llm_manager)

    @pytest.mark.asyncio
    async def test_oracle_analysis(self, analyzer):
        analyzer.llm_manager.generate_structured = AsyncMock(return_value=AnalysisResponse(
            intent=["relational"],
            complexity="low",
            entities=["BERT"],
            requiredReasoning=["direct"],
        ))

        analysis = await analyzer.analyze("How is BERT related to GPT?")

        assert analysis.intent == ("relational",)
        assert analysis.complexity == "low"
        assert analysis.entities == ("BERT",)
        assert analysis.source == "oracle"
        assert analysis.has_question_words is True

    @pytest.mark.asyncio
    async def test_oracle_failure_returns_fallback(self, analyzer):
        analyzer.llm_manager.generate_structured = AsyncMock(
            side_effect=OracleFailure("timeout", component="query_analyzer")
        )

        analysis = await analyzer.analyze("What did OpenAI publish about transformer models?")

        assert analysis.intent == ("semantic",)
        assert analysis.complexity == "medium"
        assert analysis.domain == "general"
        assert analysis.required_reasoning == ("direct",)
        assert analysis.expected_answer_type == "explanation"
        assert analysis.context_requirements == ("general_knowledge",)
        assert analysis.source == "fallback"
        assert analysis.entities == ("What", "OpenAI", "transformer", "ai")

    @pytest.mark.asyncio
    async def test_unexpected_oracle_error_returns_fallback(self, analyzer):
        analyzer.llm_manager.generate_structured = AsyncMock(side_effect=ConnectionError("reset"))

        analysis = await analyzer.analyze("Describe GPT")

        assert analysis.source == "fallback"
        assert analysis.entities == ("Describe", "GPT", "gpt")

    @pytest.mark.asyncio
    async def test_fallback_is_not_cached(self, analyzer):
        analyzer.llm_manager.generate_structured = AsyncMock(side_effect=OracleFailure("down"))

        await analyzer.analyze("first query")
        await analyzer.analyze("first query")

        assert analyzer.llm_manager.generate_structured.await_count == 2
        assert analyzer.get_cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_cache_hit_skips_oracle(self, analyzer):
        analyzer.llm_manager.generate_structured = AsyncMock(
            return_value=AnalysisResponse(intent=["factual"], complexity="low")
        )

        first = await analyzer.analyze("Papers  from 2020")
        second = await analyzer.analyze("papers from\t2020")

        assert first is second
        assert analyzer.llm_manager.generate_structured.await_count == 1
        stats = analyzer.get_cache_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    @pytest.mark.asyncio
    async def test_cache_evicts_oldest_insert(self, analyzer):
        analyzer.MAX_CACHE_SIZE = 2
        analyzer.llm_manager.generate_structured = AsyncMock(
            return_value=AnalysisResponse(intent=["semantic"], complexity="low")
        )

        await analyzer.analyze("query a")
        await analyzer.analyze("query b")
        # A hit does not refresh position
        await analyzer.analyze("query a")
        await analyzer.analyze("query c")

        assert analyzer.get_cache_stats()["size"] == 2
        assert analyzer.get_cache_stats()["oldest_entry"] == "query_b"

    @pytest.mark.asyncio
    async def test_clear_cache(self, analyzer):
        analyzer.llm_manager.generate_structured = AsyncMock(
            return_value=AnalysisResponse(intent=["semantic"], complexity="low")
        )
        await analyzer.analyze("query a")

        await analyzer.clear_cache()

        assert analyzer.get_cache_stats() == {
            "size": 0, "hits": 0, "misses": 0, "hit_rate": 0.0, "oldest_entry": None
        }

    def test_cache_key(self, analyzer):
        assert analyzer.generate_cache_key("  What IS  an LLM?") == "_what_is_an_llm?"
        assert len(analyzer.generate_cache_key("x" * 300)) == 100

    def test_lexical_features(self, analyzer):
        analysis = analyzer.default_analysis("Which models were released in March 2023?")

        assert analysis.contains_temporal_references is True
        assert analysis.contains_numerical_data is True
        assert analysis.has_question_words is True
        assert analysis.word_count == 7

    def test_entity_deduplication(self, analyzer):
        entities = analyzer.extract_entities_simple("GPT, GPT and gpt once more")
        assert entities == ["GPT", "gpt"]

    def test_domain_terms_match_substrings(self, analyzer):
        # "again" contains "ai", "transformers" contains "transformer"
        entities = analyzer.extract_entities_simple("try transformers again")
        assert entities == ["transformer", "ai"]


class TestQueryRouter:
    """Test strategy routing rules."""

    @pytest.fixture
    def router(self):
        return QueryRouter()

    def test_high_complexity_overrides_intent(self, router):
        analysis = make_analysis(intent=("semantic",), complexity="high", required_reasoning=("multi_hop",))
        assert router.select_strategy(analysis) == RetrievalStrategy.COMPLEX

    def test_multi_hop_routes_complex(self, router):
        analysis = make_analysis(intent=("factual",), required_reasoning=("multi_hop",))
        decision = router.route(analysis)
        assert decision.strategy == RetrievalStrategy.COMPLEX
        assert decision.rule == 1

    @pytest.mark.parametrize("intent,expected", [
        (("similar",), RetrievalStrategy.SEMANTIC),
        (("connection",), RetrievalStrategy.RELATIONAL),
        (("filter",), RetrievalStrategy.FACTUAL),
        (("semantic", "relational"), RetrievalStrategy.SEMANTIC),
        (("relational", "factual"), RetrievalStrategy.RELATIONAL),
        (("exploratory",), RetrievalStrategy.COMPLEX),
    ])
    def test_intent_priority(self, router, intent, expected):
        assert router.select_strategy(make_analysis(intent=intent)) == expected

    def test_default_rule(self, router):
        decision = router.route(make_analysis(intent=("exploratory",)))
        assert decision.rule == 5

    def test_routing_stats(self, router):
        rules = router.get_routing_stats()["rules"]
        assert [rule["strategy"] for rule in rules] == ["complex", "semantic", "relational", "factual", "complex"]
