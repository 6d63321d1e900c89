"""
Embedding providers shared by semantic retrieval, entity resolution and ingestion.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from sentence_transformers import SentenceTransformer

from .llm_manager import LLMManager

logger = logging.getLogger(__name__)


class Embedder(ABC):
    """Abstract base class for embedding providers."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Turn text into a vector of floats."""


class LLMEmbedder(Embedder):
    """Embeddings from the configured LLM provider's embeddings endpoint."""

    def __init__(self, llm_manager: LLMManager, provider: Optional[str] = None):
        self.llm_manager = llm_manager
        self.provider = provider

    async def embed(self, text: str) -> List[float]:
        return await self.llm_manager.embed(text, provider=self.provider)


class SentenceTransformerEmbedder(Embedder):
    """Local sentence-transformers model, run off the event loop."""

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self.model = SentenceTransformer(model_name)
        logger.info(f"Loaded sentence-transformers model {model_name}")

    async def embed(self, text: str) -> List[float]:
        vector = await asyncio.to_thread(self.model.encode, text)
        return vector.tolist()


def create_embedder(config: Dict[str, Any], llm_manager: Optional[LLMManager] = None) -> Optional[Embedder]:
    """
    Build the embedder named in the ``embeddings`` config section.

    Returns None when embeddings are disabled, which degrades entity
    resolution to string similarity only.
    """
    embedding_config = config.get("embeddings", {})
    provider = embedding_config.get("provider", "openai")

    if provider == "none":
        logger.info("Embeddings disabled")
        return None
    if provider == "local":
        return SentenceTransformerEmbedder(embedding_config.get("local_model", "all-MiniLM-L6-v2"))
    if llm_manager is None:
        raise ValueError(f"Embedding provider '{provider}' requires an LLM manager")
    return LLMEmbedder(llm_manager, provider=provider)
