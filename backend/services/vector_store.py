"""In-memory vector store over the persisted embedding corpus."""
import json
import logging
import math
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np

from models.chunk import ChatContent, DocumentChunkWithEmbedding, ScoredChunk
from services.errors import ConfigurationError

logger = logging.getLogger(__name__)

ARTIFACT_NAME = "embeddings.json"


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity `dot(a, b) / (|a| * |b|)`.

    A zero-magnitude vector has no direction; its similarity is reported as
    0.0 instead of NaN.

    Raises:
        ConfigurationError: If the vectors have different lengths
    """
    if len(a) != len(b):
        raise ConfigurationError(
            f"Vectors must have the same length ({len(a)} != {len(b)})",
            code="DIMENSION_MISMATCH",
            details={"left": len(a), "right": len(b)},
        )

    left = np.asarray(a, dtype=float)
    right = np.asarray(b, dtype=float)
    denominator = np.linalg.norm(left) * np.linalg.norm(right)
    if denominator == 0:
        return 0.0

    similarity = float(np.dot(left, right) / denominator)
    return 0.0 if math.isnan(similarity) else similarity


class VectorStore:
    """Read-only corpus of embedded chunks supporting cosine-similarity search."""

    def __init__(self, chunks: Sequence[DocumentChunkWithEmbedding] = ()):
        """
        Build the store and its embedding matrix.

        Args:
            chunks: Embedded chunks in corpus order

        Raises:
            ConfigurationError: If the chunks do not share one dimensionality
        """
        self._chunks = tuple(chunks)
        dimensions = {len(chunk.embedding) for chunk in self._chunks}
        if len(dimensions) > 1:
            raise ConfigurationError(
                f"Corpus mixes embedding dimensions: {sorted(dimensions)}",
                code="DIMENSION_MISMATCH",
                details={"dimensions": sorted(dimensions)},
            )

        self.dimension: Optional[int] = dimensions.pop() if dimensions else None
        if self._chunks:
            self._matrix = np.array([chunk.embedding for chunk in self._chunks], dtype=float)
            self._norms = np.linalg.norm(self._matrix, axis=1)
        else:
            self._matrix = np.empty((0, 0))
            self._norms = np.empty(0)

        logger.info(f"Initialized VectorStore with {len(self._chunks)} chunks")

    @classmethod
    def from_content(cls, content: ChatContent) -> "VectorStore":
        return cls(content.chunks)

    @property
    def chunks(self) -> List[DocumentChunkWithEmbedding]:
        return list(self._chunks)

    def count(self) -> int:
        return len(self._chunks)

    def search(
        self,
        query_embedding: Sequence[float],
        top_k: int = 3,
        similarity_threshold: Optional[float] = None
    ) -> List[ScoredChunk]:
        """
        Rank every chunk against the query by cosine similarity.

        Ties keep corpus order. Chunks with a zero vector score 0.0.

        Args:
            query_embedding: Embedding vector for the query
            top_k: Number of chunks to return
            similarity_threshold: Drop chunks scoring below this, if given

        Returns:
            Up to `top_k` ScoredChunk objects, best first

        Raises:
            ValueError: If query_embedding is empty or top_k is invalid
            ConfigurationError: If the query and corpus dimensions differ
        """
        if query_embedding is None or len(query_embedding) == 0:
            raise ValueError("Query embedding cannot be empty")

        if top_k <= 0:
            raise ValueError("top_k must be positive")

        if not self._chunks:
            return []

        if len(query_embedding) != self.dimension:
            raise ConfigurationError(
                f"Query embedding has {len(query_embedding)} dimensions but the corpus has "
                f"{self.dimension}; the embedding provider or model does not match the one "
                "used to build the corpus",
                code="DIMENSION_MISMATCH",
                details={"query": len(query_embedding), "corpus": self.dimension},
            )

        query = np.asarray(query_embedding, dtype=float)
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = (self._matrix @ query) / (self._norms * np.linalg.norm(query))
        scores = np.nan_to_num(scores, nan=0.0, posinf=0.0, neginf=0.0)

        order = np.argsort(-scores, kind="stable")
        results = []
        for index in order:
            score = float(scores[index])
            if similarity_threshold is not None and score < similarity_threshold:
                continue
            results.append(ScoredChunk(chunk=self._chunks[index], relevance_score=score))
            if len(results) == top_k:
                break

        logger.debug(f"Found {len(results)} chunks for query")
        return results


def save_artifact(content: ChatContent, output_dir: str, name: str = ARTIFACT_NAME) -> Path:
    """Write the corpus as `{chunks, metadata: {totalChunks, lastUpdated}}` JSON."""
    path = Path(output_dir) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(content.to_dict()), encoding="utf-8")
    logger.info(f"Wrote {content.total_chunks} chunks to {path}")
    return path


def load_artifact(path: str) -> ChatContent:
    with open(path, encoding="utf-8") as f:
        return ChatContent.from_dict(json.load(f))
