"""Build-time hooks: load content once, then persist and publish it."""
import json
import logging
from pathlib import Path
from typing import Optional

import httpx

from config import ENVIRONMENT
from models.chunk import ChatContent
from models.document import AuditContent
from models.settings import PluginConfig
from services.ai_service import AIService, create_ai_service
from services.chunking_engine import ChunkingEngine
from services.content_audit import load_audit
from services.content_events import ContentEventEmitter
from services.content_loader import ContentLoader
from services.vector_store import ARTIFACT_NAME, save_artifact

logger = logging.getLogger(__name__)

AUDIT_ARTIFACT_NAME = "content-audit.json"


class ChatPlugin:
    """
    Chat content pipeline as a pair of host hooks.

    `load_content()` produces the embedded corpus; `content_loaded()`
    writes it as `embeddings.json` and notifies reload subscribers.
    """

    name = "docs-chat"

    def __init__(
        self,
        config: PluginConfig,
        site_dir: str,
        events: Optional[ContentEventEmitter] = None,
        ai_service: Optional[AIService] = None,
        environment: str = ENVIRONMENT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the plugin and resolve its providers.

        Args:
            config: Plugin configuration
            site_dir: Site root containing the content directories
            events: Reload emitter owned by the host (a private one if None)
            ai_service: Pre-built providers (resolved from config if None)
            environment: Deployment environment name
            transport: Optional httpx transport for the providers

        Raises:
            ConfigurationError: If a provider credential is missing and mock mode is off
        """
        self.config = config
        self.site_dir = site_dir
        self.events = events or ContentEventEmitter()
        self.ai_service = ai_service or create_ai_service(config, transport)

        if config.mock_mode and environment == "production":
            logger.warning(
                "WARNING: Building for production with mock mode enabled! "
                "This should only be used for development."
            )

    async def load_content(self) -> ChatContent:
        loader = ContentLoader(
            self.ai_service,
            chunking_engine=ChunkingEngine(
                max_chunk_size=self.config.chunking.max_chunk_size,
                chunk_overlap=self.config.chunking.overlap,
            ),
            content_dirs=self.config.content_dirs,
        )
        logger.info(f"Loading chat content from {self.site_dir}")
        return await loader.load(self.site_dir)

    async def content_loaded(self, content: ChatContent, output_dir: str) -> Path:
        """Write the corpus artifact and emit the reload event.

        Returns:
            Path of the written `embeddings.json`
        """
        path = save_artifact(content, output_dir, ARTIFACT_NAME)
        await self.events.emit(content)
        return path

    async def reload(self, output_dir: str) -> ChatContent:
        """Run both hooks again, as the host does when sources change."""
        content = await self.load_content()
        await self.content_loaded(content, output_dir)
        return content


class AuditPlugin:
    """Content-audit pipeline as a pair of host hooks."""

    name = "docs-content-audit"

    def __init__(self, site_dir: str, ai_service: Optional[AIService] = None, ai_review: bool = False):
        """
        Initialize the audit plugin.

        Args:
            site_dir: Site root containing `docs/` and `src/pages/`
            ai_service: Providers used for the AI review
            ai_review: Whether to run the AI review (requires ai_service)
        """
        if ai_review and ai_service is None:
            raise ValueError("AI review requires an AI service")
        self.site_dir = site_dir
        self.ai_service = ai_service
        self.ai_review = ai_review

    async def load_content(self) -> AuditContent:
        completions = self.ai_service.completions if self.ai_review else None
        return await load_audit(self.site_dir, completions)

    async def content_loaded(self, content: AuditContent, output_dir: str) -> Path:
        path = Path(output_dir) / AUDIT_ARTIFACT_NAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(content.to_dict(), indent=2), encoding="utf-8")
        logger.info(f"Wrote content audit to {path}")
        return path
