"""
Tests for the LLM manager and structured oracle output.
"""

import pytest
from unittest.mock import Mock, patch, AsyncMock

from graphrag_service.errors import OracleFailure
from graphrag_service.models.llm_manager import LLMManager, LLMConfig, extract_json
from graphrag_service.models.schemas import AnalysisResponse, ExtractedEntityList


def _completion(text):
    response = Mock()
    response.choices = [Mock()]
    response.choices[0].message.content = text
    return response


class TestLLMManager:
    """Test LLM Manager functionality."""

    @pytest.fixture
    def config(self):
        return {
            "default_provider": "openai",
            "llm": {
                "openai": {
                    "api_key": "test_key",
                    "model": "gpt-4o",
                    "temperature": 0.1,
                    "max_tokens": 2000
                }
            }
        }

    @pytest.fixture
    def llm_manager(self, config):
        with patch('graphrag_service.models.llm_manager.AsyncOpenAI') as mock_openai:
            mock_openai.return_value = Mock()
            return LLMManager(config)

    def test_initialization(self, llm_manager):
        assert "openai" in llm_manager.providers
        assert llm_manager.get_available_providers() == ["openai"]

    def test_no_providers_raises(self):
        with pytest.raises(ValueError):
            LLMManager({"llm": {}})

    def test_unresolved_env_placeholder_becomes_none(self, monkeypatch):
        monkeypatch.delenv("GRAPHRAG_TEST_MISSING_KEY", raising=False)
        config = LLMConfig(provider="openai", model="gpt-4o", api_key="${GRAPHRAG_TEST_MISSING_KEY}")
        assert config.api_key is None

    def test_env_placeholder_resolved(self, monkeypatch):
        monkeypatch.setenv("GRAPHRAG_TEST_KEY", "sk-123")
        config = LLMConfig(provider="openai", model="gpt-4o", api_key="${GRAPHRAG_TEST_KEY}")
        assert config.api_key == "sk-123"

    @pytest.mark.asyncio
    async def test_generate(self, llm_manager):
        llm_manager.providers["openai"].client.chat.completions.create = AsyncMock(
            return_value=_completion("Test response")
        )

        result = await llm_manager.generate("Test prompt")
        assert result == "Test response"

    @pytest.mark.asyncio
    async def test_generate_structured_validates(self, llm_manager):
        payload = '```json\n{"intent": ["Factual"], "complexity": "LOW", "requiredReasoning": "filter"}\n```'
        llm_manager.providers["openai"].client.chat.completions.create = AsyncMock(
            return_value=_completion(payload)
        )

        analysis = await llm_manager.generate_structured("prompt", AnalysisResponse)

        assert analysis.intent == ["factual"]
        assert analysis.complexity == "low"
        assert analysis.required_reasoning == ["filter"]

    @pytest.mark.asyncio
    async def test_generate_structured_accepts_bare_list(self, llm_manager):
        payload = '[{"type": "Person", "name": "Ada Lovelace"}]'
        llm_manager.providers["openai"].client.chat.completions.create = AsyncMock(
            return_value=_completion(payload)
        )

        result = await llm_manager.generate_structured("prompt", ExtractedEntityList)
        assert result.entities[0].name == "Ada Lovelace"

    @pytest.mark.asyncio
    async def test_generate_structured_rejects_invalid_shape(self, llm_manager):
        llm_manager.providers["openai"].client.chat.completions.create = AsyncMock(
            return_value=_completion('{"complexity": "extreme"}')
        )

        with pytest.raises(OracleFailure) as exc_info:
            await llm_manager.generate_structured("prompt", AnalysisResponse, component="query_analyzer", query="q")

        assert exc_info.value.component == "query_analyzer"
        assert exc_info.value.query == "q"

    @pytest.mark.asyncio
    async def test_generate_structured_wraps_provider_error(self, llm_manager):
        llm_manager.providers["openai"].client.chat.completions.create = AsyncMock(
            side_effect=RuntimeError("rate limited")
        )

        with pytest.raises(OracleFailure, match="rate limited"):
            await llm_manager.generate_structured("prompt", AnalysisResponse)


class TestExtractJson:

    def test_plain_json(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_json_embedded_in_prose(self):
        assert extract_json('Here you go: {"a": [1, 2]} hope that helps') == {"a": [1, 2]}

    def test_no_json(self):
        with pytest.raises(ValueError):
            extract_json("no structured content here")
