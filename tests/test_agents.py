"""
Tests for the vector, graph and filter retrieval agents.
"""

import pytest
from unittest.mock import Mock, AsyncMock

from graphrag_service.agents.filter_agent import LogicalFilteringAgent
from graphrag_service.agents.graph_agent import GraphTraversalAgent
from graphrag_service.agents.vector_agent import VectorRetrievalAgent
from graphrag_service.backends.document_store import DocumentStore
from graphrag_service.backends.graph_store import Neo4jGraphStore
from graphrag_service.backends.models import BackendRecord, GraphRecord, NodeResult, RelationshipResult
from graphrag_service.backends.vector_store import PineconeVectorStore
from graphrag_service.errors import BackendFailure, OracleFailure, ValidationFailure
from graphrag_service.models.embeddings import Embedder
from graphrag_service.models.llm_manager import LLMManager
from graphrag_service.models.schemas import ConstraintResponse
from graphrag_service.router.query_analyzer import QueryAnalysis


@pytest.fixture
def analysis():
    return QueryAnalysis(
        intent=("relational",),
        complexity="medium",
        domain="ml",
        entities=("BERT",),
        relationships=("derived_from",),
        required_reasoning=("direct",),
        expected_answer_type="explanation",
        ambiguity_level="low",
        context_requirements=(),
    )


def node(element_id, name, label="Entity"):
    return NodeResult(element_id=element_id, labels=[label], properties={"name": name})


def rel(element_id, rel_type, start, end):
    return RelationshipResult(element_id=element_id, type=rel_type, start_id=start, end_id=end, properties={})


class TestVectorRetrievalAgent:
    """Test semantic retrieval."""

    @pytest.fixture
    def vector_store(self):
        return Mock(spec=PineconeVectorStore)

    @pytest.fixture
    def embedder(self):
        embedder = Mock(spec=Embedder)
        embedder.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
        return embedder

    @pytest.fixture
    def agent(self, vector_store, embedder):
        return VectorRetrievalAgent({"top_k": 5}, vector_store, embedder)

    @pytest.mark.asyncio
    async def test_retrieve(self, agent, analysis):
        agent.vector_store.query = AsyncMock(return_value=[
            BackendRecord(id="doc-1", content="BERT is an encoder", score=0.9, metadata={"domain": "ml"}),
            BackendRecord(id="doc-2", content="GPT is a decoder", score=0.7),
        ])

        result = await agent.retrieve("What is BERT?", analysis, {"domain": "ml"})

        assert result.strategy == "semantic"
        assert [d.id for d in result.documents] == ["doc-1", "doc-2"]
        assert all(d.source == "semantic" for d in result.documents)
        assert result.documents[0].metadata["retrieval_method"] == "vector_similarity"
        assert result.confidence == pytest.approx(0.8)
        vector_query = agent.vector_store.query.call_args[0][0]
        assert vector_query.top_k == 5
        assert vector_query.filter == {"domain": "ml"}

    @pytest.mark.asyncio
    async def test_empty_result_confidence(self, agent, analysis):
        agent.vector_store.query = AsyncMock(return_value=[])

        result = await agent.retrieve("What is BERT?", analysis)

        assert result.documents == []
        assert result.confidence == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, agent, analysis):
        agent.vector_store.query = AsyncMock(
            side_effect=BackendFailure("index unavailable", component="vector_store")
        )

        with pytest.raises(BackendFailure) as exc_info:
            await agent.retrieve("What is BERT?", analysis)

        assert exc_info.value.component == "vector_agent"
        assert exc_info.value.query == "What is BERT?"

    @pytest.mark.asyncio
    async def test_embedding_failure_is_backend_failure(self, agent, analysis):
        agent.embedder.embed = AsyncMock(side_effect=RuntimeError("quota exceeded"))

        with pytest.raises(BackendFailure, match="quota exceeded"):
            await agent.retrieve("What is BERT?", analysis)


class TestGraphTraversalAgent:
    """Test relational retrieval."""

    @pytest.fixture
    def llm_manager(self):
        return Mock(spec=LLMManager)

    @pytest.fixture
    def graph_store(self):
        return Mock(spec=Neo4jGraphStore)

    @pytest.fixture
    def agent(self, llm_manager, graph_store):
        return GraphTraversalAgent({"result_limit": 20}, llm_manager, graph_store)

    @pytest.mark.asyncio
    async def test_retrieve(self, agent, analysis):
        agent.llm_manager.generate = AsyncMock(
            return_value="```cypher\nMATCH (a:Entity)-[r]->(b:Entity) RETURN a, r, b LIMIT 5;\n```"
        )
        agent.graph_store.run_read = AsyncMock(return_value=[
            GraphRecord(values={
                "a": node("n1", "BERT"),
                "r": rel("r1", "DERIVED_FROM", "n1", "n2"),
                "b": node("n2", "Transformer"),
            }),
            GraphRecord(values={"a": node("n3", "GPT")}),
        ])

        result = await agent.retrieve("How is BERT related to transformers?", analysis)

        cypher = agent.graph_store.run_read.call_args[0][0]
        assert cypher == "MATCH (a:Entity)-[r]->(b:Entity) RETURN a, r, b LIMIT 5"
        assert "at most 20 rows" in agent.llm_manager.generate.call_args[0][0]
        assert [d.id for d in result.documents] == ["graph_0", "graph_1"]
        assert result.documents[0].content == (
            "Entity: BERT (Entity) | Entity: Transformer (Entity) | Relationship: DERIVED_FROM"
        )
        assert result.documents[0].score == pytest.approx(0.6)
        assert result.documents[1].score == pytest.approx(0.5)
        assert result.confidence == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_destructive_cypher_rejected(self, agent, analysis):
        agent.llm_manager.generate = AsyncMock(return_value="MATCH (n) DETACH DELETE n")
        agent.graph_store.run_read = AsyncMock()

        with pytest.raises(ValidationFailure) as exc_info:
            await agent.retrieve("Remove everything", analysis)

        assert exc_info.value.pattern == "DELETE"
        assert exc_info.value.component == "graph_agent"
        agent.graph_store.run_read.assert_not_awaited()

    @pytest.mark.parametrize("statement", [
        "DROP INDEX entity_name",
        "create constraint foo for (n:Entity) require n.id is unique",
        "CREATE   INDEX idx FOR (n:Entity) ON (n.name)",
    ])
    @pytest.mark.asyncio
    async def test_deny_list(self, agent, analysis, statement):
        agent.llm_manager.generate = AsyncMock(return_value=statement)
        agent.graph_store.run_read = AsyncMock()

        with pytest.raises(ValidationFailure):
            await agent.retrieve("anything", analysis)

    @pytest.mark.asyncio
    async def test_property_names_are_not_rejected(self, agent, analysis):
        agent.llm_manager.generate = AsyncMock(return_value="MATCH (n:Entity) RETURN n.deleted_at LIMIT 1")
        agent.graph_store.run_read = AsyncMock(return_value=[])

        result = await agent.retrieve("anything", analysis)

        assert result.documents == []
        assert result.confidence == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_cypher_generation_failure_propagates(self, agent, analysis):
        agent.llm_manager.generate = AsyncMock(side_effect=RuntimeError("timeout"))
        agent.graph_store.run_read = AsyncMock(return_value=[])

        with pytest.raises(OracleFailure) as exc_info:
            await agent.retrieve("How is BERT related?", analysis)

        assert exc_info.value.component == "graph_agent"
        assert exc_info.value.query == "How is BERT related?"
        agent.graph_store.run_read.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_cypher_completion(self, agent, analysis):
        agent.llm_manager.generate = AsyncMock(return_value="```cypher\n```")
        agent.graph_store.run_read = AsyncMock(return_value=[])

        with pytest.raises(OracleFailure, match="Empty Cypher completion"):
            await agent.retrieve("How is BERT related?", analysis)

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, agent, analysis):
        agent.llm_manager.generate = AsyncMock(return_value="MATCH (n) RETURN n LIMIT 1")
        agent.graph_store.run_read = AsyncMock(side_effect=BackendFailure("connection refused", component="graph_store"))

        with pytest.raises(BackendFailure) as exc_info:
            await agent.retrieve("anything", analysis)

        assert exc_info.value.component == "graph_agent"

    def test_scalar_rows(self):
        record = GraphRecord(values={"name": "BERT", "year": 2018})
        assert GraphTraversalAgent.format_graph_result(record) == "name: BERT | year: 2018"

    def test_relevance_cap(self):
        record = GraphRecord(values={f"r{i}": rel(f"r{i}", "LINKS", "a", "b") for i in range(5)})
        assert GraphTraversalAgent.calculate_graph_relevance(record) == pytest.approx(0.8)

    def test_confidence_cap(self):
        records = [GraphRecord(values={"r": rel("r", "LINKS", "a", "b")}) for _ in range(20)]
        assert GraphTraversalAgent.calculate_confidence(records) == pytest.approx(0.95)


class TestLogicalFilteringAgent:
    """Test factual retrieval."""

    @pytest.fixture
    def llm_manager(self):
        return Mock(spec=LLMManager)

    @pytest.fixture
    def document_store(self):
        return Mock(spec=DocumentStore)

    @pytest.fixture
    def agent(self, llm_manager, document_store):
        return LogicalFilteringAgent({}, llm_manager, document_store)

    @pytest.mark.asyncio
    async def test_retrieve(self, agent, analysis):
        agent.llm_manager.generate_structured = AsyncMock(return_value=ConstraintResponse.model_validate({
            "attributes": {"type": "research"},
            "temporalConstraints": {"startDate": "2020-01-01", "endDate": "2020-12-31"},
            "categoricalFilters": ["nlp"],
            "numericalRanges": {"citations": {"min": 100}},
            "requiredFields": ["author"],
        }))
        agent.document_store.query = AsyncMock(return_value=[
            BackendRecord(id="paper-1", content="Attention paper", score=0.9),
            BackendRecord(id="paper-2", content="BERT paper", score=0.6),
        ])

        result = await agent.retrieve("Research papers on NLP from 2020", analysis, {"domain": "ml"})

        filter_query = agent.document_store.query.call_args[0][0]
        assert filter_query.selector == {
            "type": "research",
            "timestamp": {"$gte": "2020-01-01", "$lte": "2020-12-31"},
            "citations": {"$gte": 100},
            "domain": "ml",
        }
        assert filter_query.fields == ["author"]
        assert filter_query.categories == ["nlp"]
        assert filter_query.limit == 10

        assert result.strategy == "factual"
        assert result.documents[0].metadata["filtering_method"] == "logical_attributes"
        assert result.documents[0].metadata["constraint_match"]["matched_constraints"] == [
            "attributes", "temporal", "categorical"
        ]
        # 0.6 base + three constraints + at least two results
        assert result.confidence == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_regex_fallback(self, agent, analysis):
        agent.llm_manager.generate_structured = AsyncMock(side_effect=OracleFailure("bad json"))
        agent.document_store.query = AsyncMock(return_value=[
            BackendRecord(id="paper-1", content="Release notes", score=0.9),
        ])

        result = await agent.retrieve("Releases after 2023-05-01 with 7 authors", analysis)

        constraints = result.metadata["constraints"]
        assert constraints["temporalConstraints"]["dates"] == ["2023-05-01"]
        assert 7.0 in constraints["numericalRanges"]["values"]
        assert result.confidence == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_empty_result_confidence(self, agent, analysis):
        agent.llm_manager.generate_structured = AsyncMock(return_value=ConstraintResponse())
        agent.document_store.query = AsyncMock(return_value=[])

        result = await agent.retrieve("anything", analysis)

        assert result.confidence == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, agent, analysis):
        agent.llm_manager.generate_structured = AsyncMock(return_value=ConstraintResponse())
        agent.document_store.query = AsyncMock(side_effect=BackendFailure("disk error", component="document_store"))

        with pytest.raises(BackendFailure) as exc_info:
            await agent.retrieve("anything", analysis)

        assert exc_info.value.component == "filter_agent"
