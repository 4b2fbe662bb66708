"""Build a hierarchical file tree from a flat listing of document paths."""
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, Iterator, List, Sequence

from models.document import FileNode
from config import CONTENT_EXTENSIONS

logger = logging.getLogger(__name__)

EXCLUDED_DIRECTORIES = {"node_modules"}


def collect_files(root: str, extensions: Sequence[str] = CONTENT_EXTENSIONS) -> List[str]:
    """
    List documents under `root` as relative POSIX paths.

    Dependency directories and hidden directories/files are skipped.

    Args:
        root: Directory to walk
        extensions: File suffixes to include

    Returns:
        Sorted relative paths
    """
    root_path = Path(root)
    if not root_path.is_dir():
        logger.warning(f"Content directory not found: {root}")
        return []

    files = []
    for dirpath, dirnames, filenames in os.walk(root_path):
        dirnames[:] = [
            d for d in dirnames
            if d not in EXCLUDED_DIRECTORIES and not d.startswith(".")
        ]
        for filename in filenames:
            if filename.startswith(".") or not filename.endswith(tuple(extensions)):
                continue
            relative = Path(dirpath, filename).relative_to(root_path)
            files.append(relative.as_posix())

    logger.info(f"Found {len(files)} documents in {root}")
    return sorted(files)


def paths_to_tree(paths: Iterable[str], base_dir: str = "") -> List[FileNode]:
    """
    Convert relative file paths into a forest of FileNodes.

    Every path component except the last becomes a directory node,
    deduplicated by its joined path; the last becomes a file node named
    without its extension whose `path` is the original relative path.
    Paths are sorted first so parents always exist before their children.

    Args:
        paths: Relative file paths (either separator style)
        base_dir: Directory the paths are relative to, used for logging

    Returns:
        Root-level nodes in sorted order
    """
    roots: List[FileNode] = []
    nodes: Dict[str, FileNode] = {}

    normalized = sorted(p.replace(os.sep, "/") for p in paths)
    for file_path in normalized:
        parts = [part for part in file_path.split("/") if part]
        if not parts:
            continue

        parent = None
        current_path = ""
        for index, part in enumerate(parts):
            is_file = index == len(parts) - 1
            full_path = f"{current_path}/{part}" if current_path else part

            node = nodes.get(full_path)
            if node is None:
                if is_file:
                    node = FileNode.file(name=PurePosixPath(part).stem, path=file_path)
                else:
                    node = FileNode.directory(name=part, path=full_path)
                nodes[full_path] = node
                if parent is None:
                    roots.append(node)
                else:
                    parent.add_child(node)
            elif node.is_file != is_file:
                logger.warning(f"Skipping {file_path} in {base_dir or '.'}: conflicts with {node.path}")
                break

            parent = node
            current_path = full_path

    return roots


def iter_files(nodes: Iterable[FileNode]) -> Iterator[FileNode]:
    """Yield file nodes depth-first in tree order."""
    for node in nodes:
        if node.is_file:
            yield node
        else:
            yield from iter_files(node.children)
