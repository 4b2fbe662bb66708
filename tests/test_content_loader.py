"""Unit tests for the content loading pipeline."""
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

import asyncio
import json

import httpx
import pytest

from services.chunking_engine import ChunkingEngine
from services.content_loader import ContentLoader, load_file_tree
from services.embedding_model import MockEmbeddings, OpenAIEmbeddings
from services.errors import TransportError


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.fixture
def site(tmp_path):
    write(tmp_path / "docs" / "intro.md", "---\ntitle: Intro\n---\n# Welcome\n\nHello world.")
    write(tmp_path / "src" / "pages" / "about.mdx", "About **us**.")
    return tmp_path


class FailingEmbeddings(MockEmbeddings):
    """Mock embeddings that fail any batch containing `marker`."""

    def __init__(self, marker):
        super().__init__(dimension=8)
        self.marker = marker

    async def generate_embeddings(self, texts):
        if any(self.marker in text for text in texts):
            raise TransportError("openai: network error", code="NETWORK_ERROR")
        return await super().generate_embeddings(texts)


class TestLoadFileTree:
    """Test suite for load_file_tree."""

    @pytest.mark.asyncio
    async def test_reads_content_and_frontmatter(self, site):
        tree = await load_file_tree(str(site / "docs"))

        assert len(tree) == 1
        node = tree[0]
        assert node.name == "intro"
        assert node.path == "intro.md"
        assert node.content.metadata == {"title": "Intro"}
        assert node.content.raw_text.startswith("# Welcome")

    @pytest.mark.asyncio
    async def test_undecodable_file_left_without_content(self, tmp_path):
        (tmp_path / "bad.md").write_bytes(b"\xff\xfe\xfa broken")
        write(tmp_path / "good.md", "fine")

        tree = await load_file_tree(str(tmp_path))

        by_name = {node.name: node for node in tree}
        assert by_name["bad"].content is None
        assert by_name["good"].content.raw_text == "fine"

    @pytest.mark.asyncio
    async def test_missing_root(self, tmp_path):
        assert await load_file_tree(str(tmp_path / "nope")) == []


class TestContentLoader:
    """Test suite for ContentLoader."""

    @pytest.mark.asyncio
    async def test_two_files_end_to_end(self, site):
        loader = ContentLoader(MockEmbeddings())

        content = await loader.load(str(site))

        assert content.total_chunks == 2
        assert content.last_updated is not None
        paths = [chunk.file_path for chunk in content.chunks]
        assert paths == ["docs/intro.md", "src/pages/about.mdx"]
        assert all(len(chunk.embedding) == 1536 for chunk in content.chunks)

    @pytest.mark.asyncio
    async def test_chunks_are_normalized_and_tagged(self, site):
        content = await ContentLoader(MockEmbeddings(dimension=4)).load(str(site))

        intro = content.chunks[0]
        assert intro.text == "Welcome\n\nHello world."
        assert intro.metadata == {"title": "Intro", "filePath": "docs/intro.md", "position": 0}
        assert content.chunks[1].text == "About us."

    @pytest.mark.asyncio
    async def test_same_text_same_embedding(self, site):
        first = await ContentLoader(MockEmbeddings()).load(str(site))
        second = await ContentLoader(MockEmbeddings()).load(str(site))

        assert [c.embedding for c in first.chunks] == [c.embedding for c in second.chunks]

    @pytest.mark.asyncio
    async def test_multiple_chunks_keep_position_order(self, tmp_path):
        paragraphs = "\n\n".join(f"Paragraph number {i} has some words." for i in range(10))
        write(tmp_path / "docs" / "long.md", paragraphs)
        loader = ContentLoader(MockEmbeddings(dimension=4), ChunkingEngine(max_chunk_size=80), batch_size=3)

        content = await loader.load(str(tmp_path))

        assert content.total_chunks > 3
        assert [c.position for c in content.chunks] == list(range(content.total_chunks))

    @pytest.mark.asyncio
    async def test_failed_batch_drops_file(self, site):
        loader = ContentLoader(FailingEmbeddings("About"), batch_size=1)

        content = await loader.load(str(site))

        assert [chunk.file_path for chunk in content.chunks] == ["docs/intro.md"]

    @pytest.mark.asyncio
    async def test_missing_directory_skipped(self, tmp_path):
        write(tmp_path / "docs" / "only.md", "Only docs here.")

        content = await ContentLoader(MockEmbeddings(dimension=4)).load(str(tmp_path))

        assert content.total_chunks == 1

    @pytest.mark.asyncio
    async def test_empty_site(self, tmp_path):
        content = await ContentLoader(MockEmbeddings(dimension=4)).load(str(tmp_path))

        assert content.chunks == []


    @pytest.mark.asyncio
    async def test_embedding_requests_are_bounded(self, tmp_path):
        for i in range(200):
            write(tmp_path / "docs" / f"page{i:03d}.md", f"Page number {i}.")
        in_flight = 0
        peak = 0

        async def handler(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            texts = json.loads(request.content)["input"]
            return httpx.Response(200, json={
                "data": [{"index": i, "embedding": [1.0, 0.0]} for i in range(len(texts))]
            })

        embeddings = OpenAIEmbeddings("sk", transport=httpx.MockTransport(handler))
        loader = ContentLoader(embeddings, batch_size=20, max_concurrency=4)

        content = await loader.load(str(tmp_path))

        assert content.total_chunks == 200
        assert 1 < peak <= 4
