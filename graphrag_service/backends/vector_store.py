"""
Pinecone-backed vector store for similarity retrieval.
"""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

from pinecone import Pinecone, ServerlessSpec

from ..errors import BackendFailure
from ..models.llm_manager import resolve_env_vars
from .models import BackendRecord, VectorQuery

logger = logging.getLogger(__name__)


class PineconeVectorStore:
    """Vector store over a Pinecone serverless index."""

    UPSERT_BATCH_SIZE = 100

    def __init__(self, config: Dict[str, Any], index: Optional[Any] = None):
        self.config = config
        self.index_name = config.get("index_name", "graphrag-docs")
        self.dimension = config.get("dimension", 1536)

        if index is not None:
            self.index = index
            return

        api_key = resolve_env_vars(config.get("api_key")) or os.getenv("PINECONE_API_KEY")
        if not api_key or api_key.startswith("${"):
            raise ValueError("Pinecone API key must be provided")

        self.pc = Pinecone(api_key=api_key)
        self._setup_index()

    def _setup_index(self):
        """Get or create the Pinecone index."""
        try:
            if self.index_name not in self.pc.list_indexes().names():
                self.pc.create_index(
                    name=self.index_name,
                    dimension=self.dimension,
                    metric=self.config.get("metric", "cosine"),
                    spec=ServerlessSpec(
                        cloud=self.config.get("cloud", "aws"),
                        region=self.config.get("region", "us-east-1")
                    )
                )
                logger.info(f"Created Pinecone index: {self.index_name}")
            else:
                logger.info(f"Using existing Pinecone index: {self.index_name}")

            self.index = self.pc.Index(self.index_name)

        except Exception as e:
            logger.error(f"Failed to setup Pinecone index: {e}")
            raise

    async def query(self, request: VectorQuery) -> List[BackendRecord]:
        """
        Run a similarity query.

        Args:
            request: Query vector, top_k and optional metadata filter

        Returns:
            Records ordered by descending similarity score

        Raises:
            BackendFailure: if the Pinecone call fails
        """
        kwargs = {
            "vector": request.vector,
            "top_k": request.top_k,
            "include_metadata": True,
        }
        if request.filter:
            kwargs["filter"] = request.filter

        try:
            response = await asyncio.to_thread(self.index.query, **kwargs)
        except Exception as e:
            logger.error(f"Pinecone query failed: {e}")
            raise BackendFailure(f"Vector store query failed: {e}", component="vector_store") from e

        records = []
        for match in response.matches:
            metadata = dict(match.metadata or {})
            records.append(BackendRecord(
                id=match.id,
                content=metadata.pop("text", ""),
                score=float(match.score or 0.0),
                metadata=metadata
            ))
        return records

    async def upsert_chunks(
        self,
        doc_id: str,
        chunks: List[str],
        vectors: List[List[float]],
        metadata: Optional[Dict[str, Any]] = None
    ) -> int:
        """Upsert document chunks in batches; returns the number of vectors written."""
        pinecone_vectors = [
            {
                "id": f"{doc_id}-chunk-{i}",
                "values": vector,
                "metadata": {
                    **(metadata or {}),
                    "text": chunks[i],
                    "source": doc_id,
                    "chunk_index": i
                }
            }
            for i, vector in enumerate(vectors)
        ]

        try:
            for i in range(0, len(pinecone_vectors), self.UPSERT_BATCH_SIZE):
                batch = pinecone_vectors[i:i + self.UPSERT_BATCH_SIZE]
                await asyncio.to_thread(self.index.upsert, vectors=batch)
        except Exception as e:
            logger.error(f"Failed to upsert to Pinecone: {e}")
            raise BackendFailure(f"Vector store upsert failed: {e}", component="vector_store") from e

        logger.info(f"Upserted {len(pinecone_vectors)} vectors to Pinecone for {doc_id}")
        return len(pinecone_vectors)

    def get_stats(self) -> Dict[str, Any]:
        """Get Pinecone index statistics."""
        try:
            index_stats = self.index.describe_index_stats()
            return {
                "index_name": self.index_name,
                "total_vector_count": index_stats.total_vector_count,
                "dimension": index_stats.dimension,
            }
        except Exception as e:
            logger.error(f"Failed to get Pinecone stats: {e}")
            return {"index_name": self.index_name, "error": str(e)}
