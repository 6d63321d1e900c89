"""
Tests for embedding provider selection.
"""

import numpy as np
import pytest
from unittest.mock import Mock, AsyncMock, patch

from graphrag_service.models.embeddings import (
    Embedder, LLMEmbedder, SentenceTransformerEmbedder, create_embedder
)
from graphrag_service.models.llm_manager import LLMManager


class TestCreateEmbedder:

    def test_embedder_is_abstract(self):
        with pytest.raises(TypeError):
            Embedder()

    def test_disabled(self):
        assert create_embedder({"embeddings": {"provider": "none"}}) is None

    def test_provider_requires_llm_manager(self):
        with pytest.raises(ValueError):
            create_embedder({"embeddings": {"provider": "openai"}})

    @pytest.mark.asyncio
    async def test_llm_embedder_delegates(self):
        llm_manager = Mock(spec=LLMManager)
        llm_manager.embed = AsyncMock(return_value=[0.1, 0.2])

        embedder = create_embedder({}, llm_manager)

        assert isinstance(embedder, LLMEmbedder)
        assert await embedder.embed("attention") == [0.1, 0.2]
        llm_manager.embed.assert_awaited_once_with("attention", provider="openai")

    @pytest.mark.asyncio
    async def test_local_model(self):
        with patch("graphrag_service.models.embeddings.SentenceTransformer") as model_cls:
            model_cls.return_value.encode.return_value = np.array([0.5, 0.25])

            embedder = create_embedder({"embeddings": {"provider": "local", "local_model": "mini"}})

            assert isinstance(embedder, SentenceTransformerEmbedder)
            model_cls.assert_called_once_with("mini")
            assert await embedder.embed("graph") == [0.5, 0.25]
