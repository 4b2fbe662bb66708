"""Content loading: document tree -> normalized chunks -> embedded corpus."""
import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from config import CONTENT_EXTENSIONS, EMBEDDING_BATCH_SIZE, EMBEDDING_MAX_CONCURRENCY
from models.chunk import ChatContent, DocumentChunk, DocumentChunkWithEmbedding
from models.document import FileContent, FileNode
from services.ai_service import EmbeddingProvider
from services.chunking_engine import ChunkingEngine
from services.errors import ParseError, TransportError
from services.frontmatter import parse_frontmatter
from services.markdown_normalizer import normalize_markdown
from services.tree_builder import collect_files, iter_files, paths_to_tree

logger = logging.getLogger(__name__)


async def load_file_tree(root_dir: str, extensions: Sequence[str] = CONTENT_EXTENSIONS) -> List[FileNode]:
    """
    Build the tree for `root_dir` and read every file into its node.

    Files are read concurrently on worker threads. A file that cannot be
    read or decoded is logged and left without content; it never fails the
    whole tree.

    Args:
        root_dir: Directory to walk
        extensions: File suffixes to include

    Returns:
        Root-level nodes with file contents attached
    """
    tree = paths_to_tree(collect_files(root_dir, extensions), root_dir)

    async def read_node(node: FileNode) -> None:
        file_path = Path(root_dir) / node.path
        try:
            text = await asyncio.to_thread(file_path.read_text, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading {file_path}: {e}", extra={"file_path": str(file_path)})
            return
        metadata, body = parse_frontmatter(text)
        node.set_content(FileContent(metadata=metadata, raw_text=body))

    await asyncio.gather(*(read_node(node) for node in iter_files(tree)))
    return tree


class ContentLoader:
    """Turns one or more documentation roots into an embedded chunk corpus."""

    def __init__(
        self,
        embedding_model: EmbeddingProvider,
        chunking_engine: Optional[ChunkingEngine] = None,
        content_dirs: Sequence[str] = ("docs", "src/pages"),
        extensions: Sequence[str] = CONTENT_EXTENSIONS,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        max_concurrency: int = EMBEDDING_MAX_CONCURRENCY
    ):
        """
        Initialize ContentLoader.

        Args:
            embedding_model: Provider used to embed chunks
            chunking_engine: Chunker (defaults to a 1000-character ChunkingEngine)
            content_dirs: Roots relative to the site directory; missing ones are skipped
            extensions: File suffixes to include
            batch_size: Chunks per embedding request
            max_concurrency: Embedding batches in flight at once
        """
        self.embedding_model = embedding_model
        self.chunking_engine = chunking_engine or ChunkingEngine()
        self.content_dirs = tuple(content_dirs)
        self.extensions = tuple(extensions)
        self.batch_size = batch_size
        self.max_concurrency = max_concurrency

    async def load(self, site_dir: str) -> ChatContent:
        """
        Load, chunk and embed every document under the configured roots.

        Chunks keep per-file `position` order and files keep tree order.
        An embedding batch that fails with a transport or parse error is
        logged and the files it touched are left out of the corpus.

        Args:
            site_dir: Site root containing the content directories

        Returns:
            ChatContent with embedded chunks and load metadata

        Raises:
            ConfigurationError: If the provider rejects its configuration
        """
        roots = [d for d in self.content_dirs if (Path(site_dir) / d).is_dir()]
        for missing in sorted(set(self.content_dirs) - set(roots)):
            logger.warning(f"Content directory not found, skipping: {Path(site_dir) / missing}")

        trees = await asyncio.gather(
            *(load_file_tree(str(Path(site_dir) / root), self.extensions) for root in roots)
        )

        chunks: List[DocumentChunk] = []
        file_count = 0
        for root, tree in zip(roots, trees):
            for node in iter_files(tree):
                file_count += 1
                chunks.extend(self._chunk_node(root, node))

        logger.info(f"Created {len(chunks)} chunks from {file_count} documents")

        embedded = await self._embed_chunks(chunks)
        content = ChatContent(chunks=embedded)
        logger.info(f"Loaded corpus with {content.total_chunks} embedded chunks")
        return content

    def _chunk_node(self, root: str, node: FileNode) -> List[DocumentChunk]:
        if node.content is None:
            return []
        file_path = f"{Path(root).as_posix()}/{node.path}"
        text = normalize_markdown(node.content.raw_text)
        return self.chunking_engine.chunk_document(text, file_path, node.content.metadata)

    async def _embed_chunks(self, chunks: List[DocumentChunk]) -> List[DocumentChunkWithEmbedding]:
        batches = [chunks[i:i + self.batch_size] for i in range(0, len(chunks), self.batch_size)]
        semaphore = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(*(self._embed_batch(batch, semaphore) for batch in batches))

        failed_files = set()
        embedded: List[Tuple[DocumentChunk, List[float]]] = []
        for batch, vectors in zip(batches, results):
            if vectors is None:
                failed_files.update(chunk.file_path for chunk in batch)
                continue
            embedded.extend(zip(batch, vectors))

        if failed_files:
            logger.error(f"Skipping {len(failed_files)} files after embedding failures: {sorted(failed_files)}")

        return [
            DocumentChunkWithEmbedding(text=chunk.text, metadata=chunk.metadata, embedding=list(vector))
            for chunk, vector in embedded
            if chunk.file_path not in failed_files
        ]

    async def _embed_batch(
        self,
        batch: List[DocumentChunk],
        semaphore: asyncio.Semaphore
    ) -> Optional[List[List[float]]]:
        try:
            async with semaphore:
                vectors = await self.embedding_model.generate_embeddings([chunk.text for chunk in batch])
        except (TransportError, ParseError) as e:
            files = sorted({chunk.file_path for chunk in batch})
            logger.error(
                f"Embedding batch failed for {files}: {e.error.message}",
                extra={"error_code": e.error.code, "error_details": e.error.details},
            )
            return None
        if len(vectors) != len(batch):
            logger.error(f"Expected {len(batch)} embeddings, got {len(vectors)}")
            return None
        return vectors
