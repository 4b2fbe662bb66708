"""Chunking engine with paragraph and sentence boundary splitting."""
import logging
import re
from typing import Any, Dict, List, Optional

from models.chunk import DocumentChunk
from config import CHUNK_SIZE, CHUNK_OVERLAP

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
# A run of text ending in terminal punctuation, or a trailing run without it
SENTENCE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")

PARAGRAPH_SEPARATOR = "\n\n"
SENTENCE_SEPARATOR = " "


class ChunkingEngine:
    """Segments normalized text into bounded-size chunks."""

    def __init__(self, max_chunk_size: int = CHUNK_SIZE, chunk_overlap: int = CHUNK_OVERLAP):
        """
        Initialize ChunkingEngine.

        Args:
            max_chunk_size: Maximum chunk length in characters
            chunk_overlap: Characters of trailing context carried into the
                next chunk (0 disables overlap)
        """
        if max_chunk_size <= 0:
            raise ValueError("max_chunk_size must be positive")
        if chunk_overlap < 0 or chunk_overlap >= max_chunk_size:
            raise ValueError("chunk_overlap must be between 0 and max_chunk_size")

        self.max_chunk_size = max_chunk_size
        self.chunk_overlap = chunk_overlap

    def chunk_document(
        self,
        text: str,
        file_path: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> List[DocumentChunk]:
        """
        Chunk one file's normalized text and tag each piece with its origin.

        Args:
            text: Normalized document text
            file_path: Path identifying the source file
            metadata: Frontmatter fields passed through to every chunk

        Returns:
            Chunks ordered by position
        """
        chunks = []
        for position, piece in enumerate(self.chunk_text(text)):
            chunk_metadata = dict(metadata or {})
            chunk_metadata["filePath"] = file_path
            chunk_metadata["position"] = position
            chunks.append(DocumentChunk(text=piece, metadata=chunk_metadata))

        logger.debug(f"Chunked {file_path} into {len(chunks)} chunks")
        return chunks

    def chunk_text(self, text: str) -> List[str]:
        """
        Split text on paragraph boundaries, falling back to sentences.

        Paragraphs are accumulated until adding the next one would exceed
        `max_chunk_size`. A paragraph that is too large on its own is split
        into sentences which are accumulated the same way; a single sentence
        longer than the limit becomes its own chunk.

        Args:
            text: Text to chunk

        Returns:
            Ordered list of trimmed, non-empty chunks
        """
        if not text or not text.strip():
            return []

        chunks: List[str] = []
        current = ""

        for paragraph in PARAGRAPH_BREAK.split(text):
            paragraph = paragraph.strip()
            if not paragraph:
                continue

            if len(paragraph) <= self.max_chunk_size:
                current = self._append(chunks, current, paragraph, PARAGRAPH_SEPARATOR)
                continue

            # Oversized paragraph: flush and accumulate its sentences instead
            current = self._flush(chunks, current)
            for sentence in self._split_sentences(paragraph):
                current = self._append(chunks, current, sentence, SENTENCE_SEPARATOR)

        self._flush(chunks, current)
        return chunks

    def _append(self, chunks: List[str], current: str, part: str, separator: str) -> str:
        """Add `part` to the running chunk, flushing first if it would not fit."""
        if not current:
            return part
        if len(current) + len(separator) + len(part) <= self.max_chunk_size:
            return current + separator + part

        self._flush(chunks, current)
        seed = self._overlap_seed(current, len(part) + len(separator))
        return seed + separator + part if seed else part

    def _flush(self, chunks: List[str], current: str) -> str:
        current = current.strip()
        if current:
            chunks.append(current)
        return ""

    def _overlap_seed(self, previous: str, reserved: int) -> str:
        """Trailing whole words of `previous` that still leave room for `reserved` characters."""
        budget = min(self.chunk_overlap, self.max_chunk_size - reserved)
        if budget <= 0:
            return ""

        tail = previous[-budget:]
        if len(previous) > budget and not previous[-budget - 1].isspace():
            # Drop the partial leading word
            _, _, tail = tail.partition(" ")
        return tail.strip()

    @staticmethod
    def _split_sentences(paragraph: str) -> List[str]:
        return [s.strip() for s in SENTENCE.findall(paragraph) if s.strip()]
