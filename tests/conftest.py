"""
Shared fixtures for the test suite.
"""

import asyncio
from datetime import timedelta

import pytest
from unittest.mock import Mock, AsyncMock

from graphrag_service.agents.base import RetrievalAgent
from graphrag_service.agents.models import AgentResult, Document
from graphrag_service.models.llm_manager import LLMManager
from graphrag_service.router.query_analyzer import QueryAnalysis, QueryAnalyzer


def build_analysis(intent=("semantic",), complexity="medium", required_reasoning=("direct",)):
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


class StubAgent(RetrievalAgent):
    """Agent returning canned documents, or raising a canned error."""

    def __init__(self, strategy, documents=None, confidence=0.5, error=None, delay=None):
        self.strategy = strategy
        self.component = f"{strategy}_stub"
        self.documents = documents or []
        self.confidence = confidence
        self.error = error
        self.delay = delay
        self.calls = 0
        self.cancelled = False

    async def retrieve(self, query, analysis, context=None):
        self.calls += 1
        if self.delay is not None:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.error is not None:
            raise self.error
        return AgentResult(
            documents=list(self.documents),
            strategy=self.strategy,
            latency=timedelta(milliseconds=5),
            confidence=self.confidence,
        )


def make_document(doc_id, score, source):
    return Document(id=doc_id, content=f"content of {doc_id}", score=score, source=source)


@pytest.fixture
def llm_manager():
    manager = Mock(spec=LLMManager)
    manager.generate = AsyncMock(return_value="Synthesized answer.")
    return manager


@pytest.fixture
def analyzer():
    analyzer = Mock(spec=QueryAnalyzer)
    analyzer.analyze = AsyncMock(return_value=build_analysis())
    return analyzer


@pytest.fixture
def fusion_agents():
    return {
        "semantic": StubAgent("semantic", [make_document("vec-1", 0.9, "semantic")], confidence=0.85),
        "relational": StubAgent("relational", [make_document("graph_0", 0.95, "relational")], confidence=0.9),
        "factual": StubAgent("factual", [make_document("doc-1", 0.88, "factual")], confidence=0.8),
    }
