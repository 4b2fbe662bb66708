"""Provider selection: one factory resolving a ProviderConfig into capabilities."""
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Dict, List, Optional, Protocol, Sequence

import httpx

from models.conversation import ChatMessage
from models.settings import PluginConfig, ProviderConfig, ProviderKind
from services.embedding_model import GoogleEmbeddings, MockEmbeddings, OpenAIEmbeddings, PineconeEmbeddings
from services.errors import ConfigurationError
from services.llm_client import (
    AnthropicCompletion,
    GoogleCompletion,
    GroqCompletion,
    MockCompletion,
    OpenAICompatibleCompletion,
)

logger = logging.getLogger(__name__)

XAI_BASE_URL = "https://api.x.ai/v1"


class EmbeddingProvider(Protocol):
    async def generate_embeddings(self, texts: Sequence[str]) -> List[List[float]]:
        ...

    async def generate_query_embeddings(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class CompletionProvider(Protocol):
    def generate_chat_completion(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        ...


@dataclass(frozen=True)
class AIService:
    """Uniform embedding + completion capability handed to the pipeline."""
    embeddings: EmbeddingProvider
    completions: CompletionProvider

    async def generate_embeddings(self, texts: Sequence[str]) -> List[List[float]]:
        return await self.embeddings.generate_embeddings(texts)

    async def generate_query_embeddings(self, texts: Sequence[str]) -> List[List[float]]:
        return await self.embeddings.generate_query_embeddings(texts)

    def generate_chat_completion(self, messages: Sequence[ChatMessage]) -> AsyncIterator[str]:
        return self.completions.generate_chat_completion(messages)


def _openai_embeddings(config: ProviderConfig, transport) -> EmbeddingProvider:
    return OpenAIEmbeddings(config.api_key, config.model, transport=transport, **config.options)


def _google_embeddings(config: ProviderConfig, transport) -> EmbeddingProvider:
    return GoogleEmbeddings(config.api_key, config.model, transport=transport, **config.options)


def _pinecone_embeddings(config: ProviderConfig, transport) -> EmbeddingProvider:
    return PineconeEmbeddings(config.api_key, config.model, transport=transport, **config.options)


def _mock_embeddings(config: ProviderConfig, transport) -> EmbeddingProvider:
    return MockEmbeddings(**config.options)


def _openai_completion(config: ProviderConfig, transport) -> CompletionProvider:
    return OpenAICompatibleCompletion(config.api_key, config.model, transport=transport, **config.options)


def _xai_completion(config: ProviderConfig, transport) -> CompletionProvider:
    options = {"base_url": XAI_BASE_URL, **config.options}
    return OpenAICompatibleCompletion(
        config.api_key, config.model, provider="xai", transport=transport, **options
    )


def _anthropic_completion(config: ProviderConfig, transport) -> CompletionProvider:
    return AnthropicCompletion(config.api_key, config.model, transport=transport, **config.options)


def _google_completion(config: ProviderConfig, transport) -> CompletionProvider:
    return GoogleCompletion(config.api_key, config.model, transport=transport, **config.options)


def _groq_completion(config: ProviderConfig, transport) -> CompletionProvider:
    return GroqCompletion(config.api_key, config.model, **config.options)


def _mock_completion(config: ProviderConfig, transport) -> CompletionProvider:
    return MockCompletion(**config.options)


EMBEDDING_FACTORIES: Dict[ProviderKind, Callable[..., EmbeddingProvider]] = {
    ProviderKind.OPENAI: _openai_embeddings,
    ProviderKind.GOOGLE_GENAI: _google_embeddings,
    ProviderKind.PINECONE: _pinecone_embeddings,
    ProviderKind.MOCK: _mock_embeddings,
}

COMPLETION_FACTORIES: Dict[ProviderKind, Callable[..., CompletionProvider]] = {
    ProviderKind.OPENAI: _openai_completion,
    ProviderKind.XAI: _xai_completion,
    ProviderKind.ANTHROPIC: _anthropic_completion,
    ProviderKind.GOOGLE_GENAI: _google_completion,
    ProviderKind.GROQ: _groq_completion,
    ProviderKind.MOCK: _mock_completion,
}


def _require_api_key(config: ProviderConfig, setting: str) -> None:
    if config.kind != ProviderKind.MOCK and not config.api_key:
        raise ConfigurationError(
            f"{setting}.apiKey is required for the '{config.kind.value}' provider. "
            "Set it in the plugin configuration or enable mock mode.",
            details={"setting": f"{setting}.apiKey", "provider": config.kind.value},
        )


def _build(factory, config: ProviderConfig, transport, setting: str):
    try:
        return factory(config, transport)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid {setting} option for '{config.kind.value}': {e}",
            details={"setting": setting, "options": sorted(config.options)},
        ) from e


def create_embedding_provider(
    config: ProviderConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> EmbeddingProvider:
    """
    Build the embedding provider for `config.kind`.

    Raises:
        ConfigurationError: If the kind has no embedding support or the API key is missing
    """
    factory = EMBEDDING_FACTORIES.get(config.kind)
    if factory is None:
        raise ConfigurationError(
            f"'{config.kind.value}' does not provide embeddings",
            details={"setting": "embeddingProvider.kind", "provider": config.kind.value},
        )
    _require_api_key(config, "embeddingProvider")
    return _build(factory, config, transport, "embeddingProvider")


def create_completion_provider(
    config: ProviderConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> CompletionProvider:
    """
    Build the chat-completion provider for `config.kind`.

    Raises:
        ConfigurationError: If the kind has no completion support or the API key is missing
    """
    factory = COMPLETION_FACTORIES.get(config.kind)
    if factory is None:
        raise ConfigurationError(
            f"'{config.kind.value}' does not provide chat completions",
            details={"setting": "llmProvider.kind", "provider": config.kind.value},
        )
    _require_api_key(config, "llmProvider")
    return _build(factory, config, transport, "llmProvider")


def create_ai_service(
    config: PluginConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> AIService:
    """
    Resolve the configured providers into one AIService.

    Mock mode ignores the configured kinds and returns the deterministic
    mock pair. Credentials are validated here, before any I/O happens.
    """
    if config.mock_mode:
        logger.info("Mock mode enabled: using deterministic mock providers")
        mock = ProviderConfig(kind=ProviderKind.MOCK)
        return AIService(
            embeddings=create_embedding_provider(mock),
            completions=create_completion_provider(mock),
        )

    service = AIService(
        embeddings=create_embedding_provider(config.embedding_provider, transport),
        completions=create_completion_provider(config.llm_provider, transport),
    )
    logger.info(
        f"Using {config.embedding_provider.kind.value} embeddings and "
        f"{config.llm_provider.kind.value} completions"
    )
    return service
