"""Chunk data models."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class DocumentChunk:
    """A bounded slice of one document's normalized text."""
    text: str
    metadata: Dict[str, Any]  # filePath, position, plus frontmatter fields

    @property
    def file_path(self) -> str:
        return self.metadata["filePath"]

    @property
    def position(self) -> int:
        return self.metadata["position"]


@dataclass(frozen=True)
class DocumentChunkWithEmbedding(DocumentChunk):
    """Chunk plus its embedding vector; the unit stored in the corpus."""
    embedding: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "metadata": self.metadata, "embedding": self.embedding}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentChunkWithEmbedding":
        return cls(
            text=data["text"],
            metadata=dict(data.get("metadata", {})),
            embedding=[float(value) for value in data["embedding"]],
        )


@dataclass
class ScoredChunk:
    """Chunk with relevance score from retrieval."""
    chunk: DocumentChunkWithEmbedding
    relevance_score: float  # cosine similarity, -1.0 to 1.0


@dataclass
class ChatContent:
    """Queryable corpus produced by one content load."""
    chunks: List[DocumentChunkWithEmbedding]
    last_updated: Optional[str] = None  # ISO-8601

    def __post_init__(self):
        if self.last_updated is None:
            self.last_updated = datetime.now(timezone.utc).isoformat()

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chunks": [chunk.to_dict() for chunk in self.chunks],
            "metadata": {
                "totalChunks": self.total_chunks,
                "lastUpdated": self.last_updated,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatContent":
        metadata = data.get("metadata", {})
        return cls(
            chunks=[DocumentChunkWithEmbedding.from_dict(item) for item in data.get("chunks", [])],
            last_updated=metadata.get("lastUpdated"),
        )
