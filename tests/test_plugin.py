"""Unit tests for the chat and audit plugins."""
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

import json
import logging

import pytest

from models.settings import ChunkingConfig, PluginConfig, ProviderConfig, ProviderKind
from services.ai_service import AIService
from services.content_events import ContentEventEmitter
from services.embedding_model import MockEmbeddings
from services.errors import ConfigurationError
from services.llm_client import MockCompletion
from services.plugin import AuditPlugin, ChatPlugin
from services.vector_store import load_artifact


def mock_config(**overrides):
    mock = ProviderConfig(kind=ProviderKind.MOCK)
    return PluginConfig(llm_provider=mock, embedding_provider=mock, mock_mode=True, **overrides)


@pytest.fixture
def site(tmp_path):
    docs = tmp_path / "site" / "docs"
    docs.mkdir(parents=True)
    (docs / "intro.md").write_text("---\ntitle: Intro\n---\nWelcome to the docs.", encoding="utf-8")
    (docs / "guide.md").write_text("See [intro](./intro.md) and [faq](./faq.md).", encoding="utf-8")
    return tmp_path / "site"


class TestChatPlugin:
    """Test suite for ChatPlugin."""

    def test_missing_key_fails_at_construction(self, site):
        config = PluginConfig(
            llm_provider=ProviderConfig(kind=ProviderKind.OPENAI),
            embedding_provider=ProviderConfig(kind=ProviderKind.OPENAI),
        )

        with pytest.raises(ConfigurationError):
            ChatPlugin(config, str(site))

    def test_mock_mode_in_production_warns(self, site, caplog):
        with caplog.at_level(logging.WARNING):
            ChatPlugin(mock_config(), str(site), environment="production")

        assert "mock mode enabled" in caplog.text

    @pytest.mark.asyncio
    async def test_load_and_publish(self, site, tmp_path):
        events = ContentEventEmitter()
        received = []
        events.subscribe(received.append)
        plugin = ChatPlugin(mock_config(), str(site), events)

        content = await plugin.load_content()
        path = await plugin.content_loaded(content, str(tmp_path / "out"))

        assert content.total_chunks == 2
        assert received == [content]
        assert path.name == "embeddings.json"
        assert load_artifact(str(path)).total_chunks == 2

    @pytest.mark.asyncio
    async def test_chunking_settings_applied(self, tmp_path):
        docs = tmp_path / "docs"
        docs.mkdir()
        (docs / "long.md").write_text(
            "\n\n".join(f"Sentence block {i} with filler words." for i in range(8)), encoding="utf-8"
        )
        plugin = ChatPlugin(mock_config(chunking=ChunkingConfig(max_chunk_size=60)), str(tmp_path))

        content = await plugin.load_content()

        assert content.total_chunks > 1
        assert all(len(chunk.text) <= 60 for chunk in content.chunks)

    @pytest.mark.asyncio
    async def test_reload_emits_again(self, site, tmp_path):
        events = ContentEventEmitter()
        received = []
        events.subscribe(received.append)
        plugin = ChatPlugin(mock_config(), str(site), events)

        await plugin.reload(str(tmp_path))
        await plugin.reload(str(tmp_path))

        assert len(received) == 2
        assert events.last_content is received[-1]


class TestAuditPlugin:
    """Test suite for AuditPlugin."""

    def test_ai_review_requires_service(self, site):
        with pytest.raises(ValueError):
            AuditPlugin(str(site), ai_review=True)

    @pytest.mark.asyncio
    async def test_writes_audit_artifact(self, site, tmp_path):
        plugin = AuditPlugin(str(site))

        audit = await plugin.load_content()
        path = await plugin.content_loaded(audit, str(tmp_path / "out"))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert path.name == "content-audit.json"
        assert data["summary"]["totalFiles"] == 2
        assert data["summary"]["issuesByType"]["broken-link"] == 1
        assert data["tree"]["pages"] == []

    @pytest.mark.asyncio
    async def test_mock_ai_review_runs(self, site):
        service = AIService(embeddings=MockEmbeddings(dimension=4), completions=MockCompletion(delay=0))
        plugin = AuditPlugin(str(site), service, ai_review=True)

        audit = await plugin.load_content()

        # The mock reply is not JSON, so the review adds nothing
        assert audit.summary.issues_by_type.get("ai-suggestion") is None
