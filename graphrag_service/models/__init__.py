"""
Reasoning oracle client, response schemas and embedding providers.
"""

from .llm_manager import LLMManager, LLMConfig, resolve_env_vars
from .embeddings import Embedder, LLMEmbedder, SentenceTransformerEmbedder, create_embedder

__all__ = [
    "LLMManager",
    "LLMConfig",
    "resolve_env_vars",
    "Embedder",
    "LLMEmbedder",
    "SentenceTransformerEmbedder",
    "create_embedder",
]
