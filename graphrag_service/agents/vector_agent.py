"""
Vector retrieval agent: embedding similarity search.
"""

import logging
import time
from datetime import timedelta
from typing import Any, Dict, Optional

from ..backends.models import VectorQuery
from ..backends.vector_store import PineconeVectorStore
from ..errors import BackendFailure, RetrievalError
from ..models.embeddings import Embedder
from ..router.query_analyzer import QueryAnalysis
from .base import RetrievalAgent
from .models import AgentResult, Document

logger = logging.getLogger(__name__)


class VectorRetrievalAgent(RetrievalAgent):
    """Semantic retrieval over the vector store."""

    strategy = "semantic"
    component = "vector_agent"

    def __init__(self, config: Dict[str, Any], vector_store: PineconeVectorStore, embedder: Embedder):
        self.config = config
        self.vector_store = vector_store
        self.embedder = embedder
        self.top_k = config.get("top_k", 10)
        self.use_domain_filter = config.get("use_domain_filter", True)

    async def retrieve(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[Dict[str, Any]] = None
    ) -> AgentResult:
        """
        Embed the query and run a similarity search.

        Args:
            query: The user's query
            analysis: Analysis of the query
            context: Optional request context; ``domain`` narrows the search

        Returns:
            AgentResult with documents ordered by similarity
        """
        context = context or {}
        start_time = time.perf_counter()
        logger.info("Executing vector similarity retrieval")

        try:
            vector = await self.embedder.embed(query)
        except Exception as e:
            logger.error(f"Query embedding failed: {e}")
            raise BackendFailure(f"Query embedding failed: {e}", component=self.component, query=query) from e

        search_filter = None
        if self.use_domain_filter and context.get("domain"):
            search_filter = {"domain": context["domain"]}

        try:
            records = await self.vector_store.query(
                VectorQuery(vector=vector, top_k=self.top_k, filter=search_filter)
            )
        except RetrievalError as e:
            raise BackendFailure(e.message, component=self.component, query=query) from e

        documents = [
            Document(
                id=record.id,
                content=record.content,
                score=max(0.0, min(1.0, record.score)),
                metadata={**record.metadata, "retrieval_method": "vector_similarity"},
                source=self.strategy
            )
            for record in records
        ]

        return AgentResult(
            documents=documents,
            strategy=self.strategy,
            latency=timedelta(seconds=time.perf_counter() - start_time),
            confidence=self.calculate_confidence(documents),
            metadata={"top_k": self.top_k, "filter": search_filter, "result_count": len(documents)}
        )

    @staticmethod
    def calculate_confidence(documents) -> float:
        """Mean similarity of the returned documents."""
        if not documents:
            return 0.1
        return max(0.0, min(1.0, sum(d.score for d in documents) / len(documents)))
