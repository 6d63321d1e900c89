"""
Graph RAG service: wires the retrieval core from configuration and exposes
the query and ingestion boundaries.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .agents.filter_agent import LogicalFilteringAgent
from .agents.graph_agent import GraphTraversalAgent
from .agents.vector_agent import VectorRetrievalAgent
from .backends.document_store import DocumentStore
from .backends.graph_store import Neo4jGraphStore
from .backends.vector_store import PineconeVectorStore
from .errors import RetrievalError
from .ingestion.knowledge_graph_builder import KnowledgeGraphBuilder
from .ingestion.ontology_manager import OntologyManager
from .models.embeddings import Embedder, create_embedder
from .models.llm_manager import LLMManager
from .orchestration.metrics import MetricsCollector
from .orchestration.retrieval_orchestrator import RetrievalOrchestrator
from .resolution.entity_resolver import EntityResolver
from .router.query_analyzer import QueryAnalyzer
from .router.query_router import QueryRouter
from .streaming.stream_manager import ResponseStream, StreamingResponseManager

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_envelope(error: Dict[str, Any]) -> Dict[str, Any]:
    return {"success": False, "error": error, "timestamp": _timestamp()}


class GraphRAGService:
    """Main Graph RAG service class."""

    def __init__(
        self,
        config: Dict[str, Any],
        llm_manager: Optional[LLMManager] = None,
        embedder: Optional[Embedder] = None,
        vector_store: Optional[PineconeVectorStore] = None,
        graph_store: Optional[Neo4jGraphStore] = None,
        document_store: Optional[DocumentStore] = None
    ):
        self.config = config
        self.debug_mode = config.get("debug", {}).get("enabled", False)

        self.llm_manager = llm_manager or LLMManager(config)
        self.embedder = embedder if embedder is not None else create_embedder(config, self.llm_manager)
        self.vector_store = vector_store or PineconeVectorStore(config.get("pinecone", {}))
        self.graph_store = graph_store or Neo4jGraphStore(config.get("neo4j", {}))
        self.document_store = document_store or DocumentStore(
            Path(config.get("document_store", {}).get("storage_path", "data/documents"))
        )

        if self.embedder is None:
            raise ValueError("Semantic retrieval requires an embedding provider; set embeddings.provider")

        agent_config = config.get("agents", {})
        agents = {
            "semantic": VectorRetrievalAgent(agent_config.get("semantic", {}), self.vector_store, self.embedder),
            "relational": GraphTraversalAgent(agent_config.get("relational", {}), self.llm_manager, self.graph_store),
            "factual": LogicalFilteringAgent(agent_config.get("factual", {}), self.llm_manager, self.document_store),
        }

        self.analyzer = QueryAnalyzer(config.get("analyzer", {}), self.llm_manager)
        self.router = QueryRouter()
        self.metrics = MetricsCollector()
        self.orchestrator = RetrievalOrchestrator(
            config.get("orchestrator", {}),
            self.llm_manager,
            self.analyzer,
            agents,
            router=self.router,
            metrics=self.metrics
        )
        self.streaming = StreamingResponseManager(self.orchestrator)

        self.resolver = EntityResolver(self.llm_manager, self.embedder)
        self.ontology_manager = OntologyManager(self.llm_manager)
        pinecone_config = config.get("pinecone", {})
        self.graph_builder = KnowledgeGraphBuilder(
            self.llm_manager,
            self.graph_store,
            self.resolver,
            ontology_manager=self.ontology_manager,
            embedder=self.embedder,
            vector_store=self.vector_store,
            document_store=self.document_store,
            chunk_size=pinecone_config.get("chunk_size", 500),
            chunk_overlap=pinecone_config.get("chunk_overlap", 50)
        )

        logger.info("Graph RAG service initialized")

    async def query(
        self,
        query: str,
        context: Optional[Dict[str, Any]] = None,
        stream: bool = False
    ) -> Union[Dict[str, Any], ResponseStream]:
        """
        Answer a query.

        Args:
            query: The user's natural language query
            context: Optional request context (e.g. ``domain``)
            stream: Return an event stream instead of a single envelope

        Returns:
            Response envelope dict, or a ResponseStream when ``stream`` is set
        """
        if not isinstance(query, str) or not query.strip():
            return _error_envelope({
                "kind": "invalid_request",
                "message": "Query must be a non-empty string",
                "component": "service",
                "query": query if isinstance(query, str) else None,
            })

        if stream:
            return self.streaming.create_stream(query, context)

        try:
            response = await self.orchestrator.process_query(query, context)
        except RetrievalError as e:
            if e.query is None:
                e.query = query
            logger.error(f"Query failed: {e}")
            return _error_envelope(e.to_dict())

        return {"success": True, "data": response.to_dict(), "timestamp": _timestamp()}

    async def ingest(self, documents: List[Dict[str, Any]], domain: str = "general") -> Dict[str, Any]:
        """
        Build the knowledge graph from documents.

        Args:
            documents: Dicts with ``content`` and optional ``metadata``
            domain: Domain hint for ontology generation

        Returns:
            Envelope whose data holds nodes_created, relationships_created and ontology
        """
        problem = self._validate_documents(documents)
        if problem:
            return _error_envelope({
                "kind": "invalid_request",
                "message": problem,
                "component": "service",
                "query": None,
            })

        try:
            result = await self.graph_builder.build_graph_from_documents(documents, domain)
        except RetrievalError as e:
            logger.error(f"Ingestion failed: {e}")
            return _error_envelope(e.to_dict())

        return {"success": True, "data": result.to_dict(), "timestamp": _timestamp()}

    @staticmethod
    def _validate_documents(documents: Any) -> Optional[str]:
        if not isinstance(documents, list) or not documents:
            return "Documents must be a non-empty list"
        for i, document in enumerate(documents):
            if not isinstance(document, dict):
                return f"Document {i} must be an object"
            if not isinstance(document.get("content"), str) or not document["content"].strip():
                return f"Document {i} must have non-empty string content"
            if document.get("metadata") is not None and not isinstance(document["metadata"], dict):
                return f"Document {i} metadata must be an object"
        return None

    def get_stats(self) -> Dict[str, Any]:
        """Get service statistics."""
        return {
            "performance": self.metrics.get_performance_report(),
            "analyzer_cache": self.analyzer.get_cache_stats(),
            "routing": self.router.get_routing_stats(),
            "entity_resolution": self.resolver.get_stats(),
            "graph": self.graph_store.get_stats(),
            "vector": self.vector_store.get_stats(),
            "documents": self.document_store.get_stats(),
            "active_streams": self.streaming.get_active_streams(),
        }

    def close(self):
        self.graph_store.close()
