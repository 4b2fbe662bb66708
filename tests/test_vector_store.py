"""Unit tests for VectorStore and cosine similarity."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import json

import pytest

from models.chunk import ChatContent, DocumentChunkWithEmbedding
from services.errors import ConfigurationError
from services.vector_store import VectorStore, cosine_similarity, load_artifact, save_artifact


def make_chunk(embedding, path="docs/a.md", position=0, text=None):
    return DocumentChunkWithEmbedding(
        text=text or f"{path}#{position}",
        metadata={"filePath": path, "position": position},
        embedding=list(embedding),
    )


class TestCosineSimilarity:
    """Test suite for cosine_similarity."""

    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_opposite_and_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_symmetric(self):
        a, b = [0.3, -1.2, 4.0], [2.0, 0.5, -0.7]

        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_scale_invariant(self):
        assert cosine_similarity([1.0, 2.0], [10.0, 20.0]) == pytest.approx(1.0)

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0

    def test_length_mismatch(self):
        with pytest.raises(ConfigurationError) as exc_info:
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])

        assert exc_info.value.error.code == "DIMENSION_MISMATCH"


class TestVectorStore:
    """Test suite for VectorStore."""

    def five_chunks(self):
        return [
            make_chunk([1.0 if i == j else 0.0 for j in range(5)], position=i)
            for i in range(5)
        ]

    def test_empty_store(self):
        store = VectorStore()

        assert store.count() == 0
        assert store.dimension is None
        assert store.search([1.0, 0.0]) == []

    def test_finds_matching_chunk(self):
        store = VectorStore(self.five_chunks())

        results = store.search([0.0, 0.0, 0.0, 1.0, 0.0], top_k=3)

        assert len(results) == 3
        assert results[0].chunk.position == 3
        assert results[0].relevance_score == pytest.approx(1.0)
        assert results[1].relevance_score == pytest.approx(0.0)

    def test_results_sorted_descending(self):
        chunks = [
            make_chunk([0.1, 1.0], position=0),
            make_chunk([1.0, 0.0], position=1),
            make_chunk([1.0, 0.5], position=2),
        ]
        store = VectorStore(chunks)

        results = store.search([1.0, 0.0], top_k=3)

        assert [r.chunk.position for r in results] == [1, 2, 0]
        scores = [r.relevance_score for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_ties_keep_corpus_order(self):
        chunks = [make_chunk([1.0, 1.0], position=i) for i in range(4)]
        store = VectorStore(chunks)

        results = store.search([2.0, 2.0], top_k=4)

        assert [r.chunk.position for r in results] == [0, 1, 2, 3]

    def test_top_k_larger_than_corpus(self):
        store = VectorStore(self.five_chunks())

        assert len(store.search([1.0, 0.0, 0.0, 0.0, 0.0], top_k=50)) == 5

    def test_threshold_filters(self):
        store = VectorStore(self.five_chunks())

        results = store.search([1.0, 0.0, 0.0, 0.0, 0.0], top_k=5, similarity_threshold=0.5)

        assert len(results) == 1
        assert results[0].chunk.position == 0

    def test_zero_vector_chunk_scores_zero(self):
        store = VectorStore([make_chunk([0.0, 0.0], position=0), make_chunk([1.0, 0.0], position=1)])

        results = store.search([1.0, 0.0], top_k=2)

        assert results[0].chunk.position == 1
        assert results[1].relevance_score == 0.0

    def test_invalid_arguments(self):
        store = VectorStore(self.five_chunks())

        with pytest.raises(ValueError, match="cannot be empty"):
            store.search([])

        with pytest.raises(ValueError, match="top_k"):
            store.search([1.0, 0.0, 0.0, 0.0, 0.0], top_k=0)

    def test_query_dimension_mismatch(self):
        store = VectorStore(self.five_chunks())

        with pytest.raises(ConfigurationError) as exc_info:
            store.search([1.0, 0.0])

        assert exc_info.value.error.details == {"query": 2, "corpus": 5}

    def test_mixed_corpus_dimensions_rejected(self):
        with pytest.raises(ConfigurationError, match="mixes embedding dimensions"):
            VectorStore([make_chunk([1.0, 0.0]), make_chunk([1.0, 0.0, 0.0])])

    def test_from_content(self):
        content = ChatContent(chunks=self.five_chunks())

        store = VectorStore.from_content(content)

        assert store.count() == 5
        assert store.dimension == 5


class TestArtifact:
    """Test suite for embeddings.json persistence."""

    def test_save_writes_metadata(self, tmp_path):
        content = ChatContent(
            chunks=[make_chunk([0.5, 0.25], path="docs/intro.md")],
            last_updated="2024-01-01T00:00:00+00:00",
        )

        path = save_artifact(content, str(tmp_path / "out"))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert path.name == "embeddings.json"
        assert data["metadata"] == {"totalChunks": 1, "lastUpdated": "2024-01-01T00:00:00+00:00"}
        assert data["chunks"][0] == {
            "text": "docs/intro.md#0",
            "metadata": {"filePath": "docs/intro.md", "position": 0},
            "embedding": [0.5, 0.25],
        }

    def test_load_restores_content(self, tmp_path):
        content = ChatContent(chunks=[make_chunk([0.5, 0.25]), make_chunk([1.0, 0.0], position=1)])
        path = save_artifact(content, str(tmp_path))

        loaded = load_artifact(str(path))

        assert loaded.total_chunks == 2
        assert loaded.last_updated == content.last_updated
        assert loaded.chunks[1].position == 1
        assert loaded.chunks[1].embedding == [1.0, 0.0]
