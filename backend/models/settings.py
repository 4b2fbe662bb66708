"""Typed plugin configuration.

The configuration surface is a camelCase mapping (as written in a site
config file) or the module-level constants in `config`:

    {
        "llmProvider": {"kind": "openai", "apiKey": "...", "model": "gpt-4o-mini"},
        "embeddingProvider": {"kind": "openai", "apiKey": "..."},
        "chunking": {"maxChunkSize": 1000, "overlap": 0},
        "retrieval": {"topK": 3, "similarityThreshold": 0.0},
        "mockMode": False,
    }
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import config


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE_GENAI = "google-genai"
    XAI = "xai"
    GROQ = "groq"
    PINECONE = "pinecone"
    MOCK = "mock"


def provider_kind(value: Optional[str], setting: str) -> ProviderKind:
    """
    Resolve a provider kind name.

    Raises:
        ConfigurationError: If the value is missing or not a known kind
    """
    # services imports models.settings, so the error type is resolved at call time
    from services.errors import ConfigurationError

    known = [kind.value for kind in ProviderKind]
    if not value:
        raise ConfigurationError(
            f"{setting} is required (one of: {', '.join(known)})",
            details={"setting": setting},
        )
    try:
        return ProviderKind(value)
    except ValueError:
        raise ConfigurationError(
            f"{setting} '{value}' is not a supported provider (one of: {', '.join(known)})",
            details={"setting": setting, "value": value},
        ) from None


@dataclass(frozen=True)
class ProviderConfig:
    """Provider kind plus its credentials and provider-specific options."""
    kind: ProviderKind
    api_key: Optional[str] = None
    model: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], setting: str = "provider") -> "ProviderConfig":
        """
        Build from a camelCase provider section.

        Raises:
            ConfigurationError: If `kind` is missing or unknown
        """
        data = dict(data)
        kind = data.pop("kind", None) or data.pop("type", None)
        api_key = data.pop("apiKey", None) or data.pop("api_key", None)
        model = data.pop("model", None)
        return cls(kind=provider_kind(kind, f"{setting}.kind"), api_key=api_key, model=model, options=data)


@dataclass(frozen=True)
class ChunkingConfig:
    max_chunk_size: int = 1000
    overlap: int = 0


@dataclass(frozen=True)
class RetrievalConfig:
    top_k: int = config.DEFAULT_TOP_K
    similarity_threshold: float = config.DEFAULT_SIMILARITY_THRESHOLD


@dataclass(frozen=True)
class PluginConfig:
    """Everything the content pipeline and chat need, fixed for a load."""
    llm_provider: ProviderConfig
    embedding_provider: ProviderConfig
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    mock_mode: bool = False
    content_dirs: Tuple[str, ...] = ("docs", "src/pages")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PluginConfig":
        chunking = data.get("chunking", {})
        retrieval = data.get("retrieval", {})
        mock_mode = bool(data.get("mockMode", False))
        default_provider = {"kind": ProviderKind.MOCK.value} if mock_mode else {}
        return cls(
            llm_provider=ProviderConfig.from_dict(data.get("llmProvider", default_provider), "llmProvider"),
            embedding_provider=ProviderConfig.from_dict(
                data.get("embeddingProvider", default_provider), "embeddingProvider"
            ),
            chunking=ChunkingConfig(
                max_chunk_size=int(chunking.get("maxChunkSize", 1000)),
                overlap=int(chunking.get("overlap", 0)),
            ),
            retrieval=RetrievalConfig(
                top_k=int(retrieval.get("topK", config.DEFAULT_TOP_K)),
                similarity_threshold=float(
                    retrieval.get("similarityThreshold", config.DEFAULT_SIMILARITY_THRESHOLD)
                ),
            ),
            mock_mode=mock_mode,
            content_dirs=tuple(data.get("contentDirs", ("docs", "src/pages"))),
        )

    @classmethod
    def from_env(cls) -> "PluginConfig":
        """
        Build from the environment-backed constants in `config`.

        Raises:
            ConfigurationError: If LLM_PROVIDER or EMBEDDING_PROVIDER is not a known kind
        """
        return cls(
            llm_provider=ProviderConfig(
                kind=provider_kind(config.LLM_PROVIDER, "LLM_PROVIDER"),
                api_key=config.LLM_API_KEY,
                model=config.LLM_MODEL,
            ),
            embedding_provider=ProviderConfig(
                kind=provider_kind(config.EMBEDDING_PROVIDER, "EMBEDDING_PROVIDER"),
                api_key=config.EMBEDDING_API_KEY,
                model=config.EMBEDDING_MODEL,
            ),
            chunking=ChunkingConfig(max_chunk_size=config.CHUNK_SIZE, overlap=config.CHUNK_OVERLAP),
            retrieval=RetrievalConfig(
                top_k=config.TOP_K,
                similarity_threshold=config.SIMILARITY_THRESHOLD,
            ),
            mock_mode=config.MOCK_MODE,
            content_dirs=tuple(config.CONTENT_DIRS),
        )
