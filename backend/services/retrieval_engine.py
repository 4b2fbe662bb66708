"""Retrieval engine for orchestrating query embedding and chunk retrieval."""
import logging
from typing import List, Optional

from config import DEFAULT_SIMILARITY_THRESHOLD, DEFAULT_TOP_K
from models.chunk import ScoredChunk
from services.ai_service import EmbeddingProvider
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Embed a query and rank the stored corpus against it."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedding_model: EmbeddingProvider,
        top_k: int = DEFAULT_TOP_K,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD
    ):
        """
        Initialize the retrieval engine.

        Args:
            vector_store: Corpus to search
            embedding_model: Provider used to embed queries (must match the corpus)
            top_k: Default number of chunks to return
            similarity_threshold: Minimum similarity; 0.0 or less disables the filter
        """
        self.vector_store = vector_store
        self.embedding_model = embedding_model
        self.top_k = top_k
        self.similarity_threshold = similarity_threshold
        logger.info("Initialized RetrievalEngine")

    async def retrieve(self, query: str, top_k: Optional[int] = None) -> List[ScoredChunk]:
        """
        Retrieve the chunks most similar to `query`.

        Args:
            query: User question
            top_k: Maximum number of chunks (defaults to the engine's top_k)

        Returns:
            Scored chunks sorted by similarity, ties in corpus order; empty
            for a blank query or empty corpus

        Raises:
            TransportError: If the query cannot be embedded
            ConfigurationError: If query and corpus dimensions differ
        """
        if not query or not query.strip():
            logger.warning("Empty query string provided, returning empty results")
            return []

        if self.vector_store.count() == 0:
            logger.info("Corpus is empty, nothing to retrieve")
            return []

        logger.debug(f"Embedding query: {query[:100]}...")
        query_embedding = (await self.embedding_model.generate_query_embeddings([query]))[0]

        threshold = self.similarity_threshold if self.similarity_threshold > 0 else None
        scored_chunks = self.vector_store.search(
            query_embedding,
            top_k=top_k or self.top_k,
            similarity_threshold=threshold,
        )

        if scored_chunks:
            logger.info(
                f"Retrieved {len(scored_chunks)} chunks "
                f"(top score: {scored_chunks[0].relevance_score:.3f})"
            )
        else:
            logger.info(f"No chunks above similarity threshold {threshold}")
        return scored_chunks
