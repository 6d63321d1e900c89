"""
Tests for the service boundary and CLI document loading.
"""

import json

import pytest
from unittest.mock import Mock, AsyncMock

from graphrag_service.backends.document_store import DocumentStore
from graphrag_service.backends.graph_store import Neo4jGraphStore
from graphrag_service.backends.models import BackendRecord
from graphrag_service.backends.vector_store import PineconeVectorStore
from graphrag_service.errors import BackendFailure, OracleFailure
from graphrag_service.models.embeddings import Embedder
from graphrag_service.service import GraphRAGService
from graphrag_service.streaming.stream_manager import ResponseStream
from main import load_documents


class TestGraphRAGService:
    """Test the query and ingestion envelopes."""

    @pytest.fixture
    def llm_manager(self, llm_manager):
        # Analysis falls back to the lexical heuristics, which route to semantic
        llm_manager.generate_structured = AsyncMock(side_effect=OracleFailure("unavailable"))
        return llm_manager

    @pytest.fixture
    def vector_store(self):
        store = Mock(spec=PineconeVectorStore)
        store.query = AsyncMock(return_value=[
            BackendRecord(id="doc-1-chunk-0", content="Transformers use attention.", score=0.92),
        ])
        return store

    @pytest.fixture
    def embedder(self):
        embedder = Mock(spec=Embedder)
        embedder.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
        return embedder

    @pytest.fixture
    def service(self, llm_manager, embedder, vector_store, tmp_path):
        return GraphRAGService(
            {"debug": {"enabled": False}},
            llm_manager=llm_manager,
            embedder=embedder,
            vector_store=vector_store,
            graph_store=Mock(spec=Neo4jGraphStore),
            document_store=DocumentStore(tmp_path)
        )

    @pytest.mark.asyncio
    async def test_query_success(self, service):
        response = await service.query("What is attention?")

        assert response["success"] is True
        data = response["data"]
        assert data["query"] == "What is attention?"
        assert data["strategy"] == "semantic"
        assert data["query_analysis"]["source"] == "fallback"
        assert data["results"]["answer"] == "Synthesized answer."
        assert data["results"]["supporting_documents"][0]["id"] == "doc-1-chunk-0"
        assert "timestamp" in response

    @pytest.mark.asyncio
    async def test_query_domain_context(self, service, vector_store):
        await service.query("What is attention?", {"domain": "ml"})

        assert vector_store.query.call_args[0][0].filter == {"domain": "ml"}

    @pytest.mark.asyncio
    async def test_query_error_envelope(self, service, vector_store):
        vector_store.query = AsyncMock(side_effect=BackendFailure("index down", component="vector_store"))

        response = await service.query("What is attention?")

        assert response["success"] is False
        assert response["error"]["kind"] == "backend_failure"
        assert response["error"]["component"] == "vector_agent"
        assert response["error"]["query"] == "What is attention?"

    @pytest.mark.asyncio
    async def test_blank_query_rejected(self, service):
        response = await service.query("   ")

        assert response["success"] is False
        assert response["error"]["kind"] == "invalid_request"

    @pytest.mark.asyncio
    async def test_streaming_query(self, service):
        stream = await service.query("What is attention?", stream=True)

        assert isinstance(stream, ResponseStream)
        events = await stream.collect()
        assert events[-1].type == "result"
        assert service.get_stats()["active_streams"] == []

    @pytest.mark.parametrize("documents,message", [
        ([], "non-empty list"),
        ("text", "non-empty list"),
        ([{"content": ""}], "non-empty string content"),
        ([{"content": "ok", "metadata": "bad"}], "metadata must be an object"),
    ])
    @pytest.mark.asyncio
    async def test_ingest_validation(self, service, documents, message):
        response = await service.ingest(documents, "ml")

        assert response["success"] is False
        assert message in response["error"]["message"]

    @pytest.mark.asyncio
    async def test_ingest_oracle_failure_envelope(self, service):
        response = await service.ingest([{"content": "BERT was developed by Google."}], "ml")

        assert response["success"] is False
        assert response["error"]["kind"] == "oracle_failure"
        assert response["error"]["component"] == "ontology_manager"

    def test_requires_embedder(self, llm_manager, vector_store, tmp_path):
        with pytest.raises(ValueError):
            GraphRAGService(
                {"embeddings": {"provider": "none"}},
                llm_manager=llm_manager,
                vector_store=vector_store,
                graph_store=Mock(spec=Neo4jGraphStore),
                document_store=DocumentStore(tmp_path)
            )

    def test_close(self, service):
        service.close()
        service.graph_store.close.assert_called_once()


class TestLoadDocuments:

    def test_directory(self, tmp_path):
        (tmp_path / "a.txt").write_text("Plain text document")
        (tmp_path / "b.md").write_text("# Markdown")
        (tmp_path / "c.json").write_text(json.dumps([
            {"content": "From JSON", "metadata": {"id": "json-1"}}
        ]))
        (tmp_path / "ignored.csv").write_text("x,y")

        documents = load_documents(str(tmp_path))

        assert [d["content"] for d in documents] == ["Plain text document", "# Markdown", "From JSON"]
        assert documents[0]["metadata"]["id"] == "a"

    def test_single_json_object(self, tmp_path):
        path = tmp_path / "doc.json"
        path.write_text(json.dumps({"content": "Only one"}))

        assert load_documents(str(path)) == [{"content": "Only one"}]
