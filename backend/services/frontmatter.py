"""Frontmatter extraction for markdown documents."""
import re
from typing import Any, Dict, Tuple

# Opening delimiter on the first line, block, closing delimiter on its own line
FRONTMATTER_PATTERN = re.compile(r"\A---\r?\n(.*?)\r?\n---(?:\r?\n|\Z)(.*)\Z", re.DOTALL)


def parse_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    """
    Split a document into its frontmatter metadata and body.

    Each `key: value` line of the block becomes one entry; the value is
    everything after the first colon, trimmed. Lines without a colon are
    ignored. A document without a well-formed block is returned unchanged
    with empty metadata.

    Args:
        text: Raw file contents

    Returns:
        Tuple of (metadata, body) where body is the exact text after the
        closing delimiter line
    """
    match = FRONTMATTER_PATTERN.match(text)
    if not match:
        return {}, text

    metadata: Dict[str, Any] = {}
    for line in match.group(1).splitlines():
        key, separator, value = line.partition(":")
        key = key.strip()
        if not separator or not key:
            continue
        metadata[key] = value.strip()

    return metadata, match.group(2)
