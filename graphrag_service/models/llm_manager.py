"""
LLM Manager for the reasoning oracle used by analysis, retrieval and synthesis.
"""

import json
import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, TypeVar

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from ..errors import OracleFailure

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def resolve_env_vars(value: Any) -> Any:
    """Resolve environment variables in string values like ${VAR_NAME}."""
    if isinstance(value, str) and "${" in value:
        def replace_env_var(match):
            return os.getenv(match.group(1), match.group(0))

        return re.sub(r'\$\{([^}]+)\}', replace_env_var, value)
    return value


def extract_json(text: str) -> Any:
    """Decode the first JSON object or array embedded in a completion."""
    if text is None:
        raise ValueError("empty completion")
    cleaned = re.sub(r"```(?:json)?", "", text).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    json_match = re.search(r'(\{.*\}|\[.*\])', cleaned, re.DOTALL)
    if not json_match:
        raise ValueError("no JSON content in completion")
    return json.loads(json_match.group(1))


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""
    provider: str
    model: str
    temperature: float = 0.1
    max_tokens: int = 2000
    api_key: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"

    def __post_init__(self):
        """Resolve environment variables after initialization."""
        if self.api_key:
            self.api_key = resolve_env_vars(self.api_key)
            # Unresolved placeholder means the variable is not set
            if self.api_key.startswith("${"):
                self.api_key = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate text using the LLM."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Generate embeddings using the LLM."""


class OpenAIProvider(LLMProvider):
    """OpenAI provider implementation."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self.api_key = config.api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError("OpenAI API key not found")
        self.client = AsyncOpenAI(api_key=self.api_key)

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate text using OpenAI."""
        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=kwargs.get("max_tokens", self.config.max_tokens),
                temperature=kwargs.get("temperature", self.config.temperature)
            )
            return response.choices[0].message.content
        except Exception as e:
            logger.error(f"OpenAI generation error: {e}")
            raise

    async def embed(self, text: str) -> List[float]:
        """Generate embeddings using OpenAI."""
        try:
            response = await self.client.embeddings.create(
                model=self.config.embedding_model,
                input=text
            )
            return response.data[0].embedding
        except Exception as e:
            logger.error(f"OpenAI embedding error: {e}")
            raise


class AnthropicProvider(LLMProvider):
    """Anthropic provider implementation."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self.api_key = config.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError("Anthropic API key not found")
        self.client = AsyncAnthropic(api_key=self.api_key)

    async def generate(self, prompt: str, **kwargs) -> str:
        """Generate text using Anthropic."""
        try:
            response = await self.client.messages.create(
                model=self.config.model,
                max_tokens=kwargs.get("max_tokens", self.config.max_tokens),
                temperature=kwargs.get("temperature", self.config.temperature),
                messages=[{"role": "user", "content": prompt}]
            )
            return response.content[0].text
        except Exception as e:
            logger.error(f"Anthropic generation error: {e}")
            raise

    async def embed(self, text: str) -> List[float]:
        raise NotImplementedError("Anthropic does not provide an embeddings endpoint")


class LLMManager:
    """Manager for handling different LLM providers."""

    PROVIDER_CLASSES = {
        "openai": (OpenAIProvider, "gpt-4o"),
        "anthropic": (AnthropicProvider, "claude-3-5-sonnet-20241022"),
    }

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.providers: Dict[str, LLMProvider] = {}
        self._initialize_providers()

    def _initialize_providers(self):
        """Initialize every configured LLM provider."""
        llm_config = self.config.get("llm", {})

        for name, (provider_class, default_model) in self.PROVIDER_CLASSES.items():
            if name not in llm_config:
                continue
            section = llm_config[name] or {}
            provider_config = LLMConfig(
                provider=name,
                model=section.get("model", default_model),
                temperature=section.get("temperature", 0.1),
                max_tokens=section.get("max_tokens", 2000),
                api_key=section.get("api_key"),
                embedding_model=section.get("embedding_model", "text-embedding-3-small")
            )
            try:
                self.providers[name] = provider_class(provider_config)
                logger.info(f"{name} provider initialized")
            except Exception as e:
                logger.warning(f"Failed to initialize {name} provider: {e}")

        if not self.providers:
            raise ValueError("No LLM providers could be initialized")

    def _resolve_provider(self, provider: Optional[str]) -> LLMProvider:
        provider_name = provider or self.config.get("default_provider") or next(iter(self.providers))
        if provider_name not in self.providers:
            # Configured default failed to initialize; use whatever is available
            if provider is None:
                provider_name = next(iter(self.providers))
            else:
                raise ValueError(f"Provider {provider_name} not available")
        return self.providers[provider_name]

    async def generate(self, prompt: str, provider: Optional[str] = None, **kwargs) -> str:
        """Generate text using specified or default provider."""
        return await self._resolve_provider(provider).generate(prompt, **kwargs)

    async def generate_structured(
        self,
        prompt: str,
        schema: Type[SchemaT],
        component: str = "llm_manager",
        query: Optional[str] = None,
        provider: Optional[str] = None,
        **kwargs
    ) -> SchemaT:
        """
        Generate a completion and decode it into a validated schema instance.

        Args:
            prompt: Prompt requesting JSON output
            schema: Pydantic model the JSON must satisfy
            component: Name of the calling component, carried by failures
            query: Original user query, carried by failures

        Returns:
            Validated schema instance

        Raises:
            OracleFailure: on provider errors, missing JSON or schema mismatch
        """
        try:
            response = await self.generate(prompt, provider=provider, **kwargs)
        except Exception as e:
            raise OracleFailure(f"Oracle call failed: {e}", component=component, query=query) from e

        try:
            payload = extract_json(response)
            if isinstance(payload, list) and len(schema.model_fields) == 1:
                # Bare arrays are accepted for single-field list wrappers
                payload = {next(iter(schema.model_fields)): payload}
            return schema.model_validate(payload)
        except (ValueError, ValidationError) as e:
            logger.warning(f"Oracle response failed {schema.__name__} validation: {e}")
            raise OracleFailure(
                f"Oracle response failed {schema.__name__} validation: {e}",
                component=component,
                query=query
            ) from e

    async def embed(self, text: str, provider: Optional[str] = None) -> List[float]:
        """Generate embeddings using specified or default provider."""
        return await self._resolve_provider(provider).embed(text)

    def get_available_providers(self) -> List[str]:
        """Get list of available providers."""
        return list(self.providers.keys())
