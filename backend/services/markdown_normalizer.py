"""Markdown to plain-text normalization for embedding."""
import re

FENCE_LINE = re.compile(r"^\s*(```|~~~).*$")
ADMONITION_LINE = re.compile(r"^\s*:::.*$")
MDX_STATEMENT = re.compile(r"^\s*(import|export)\s.*$")
LINK_DEFINITION = re.compile(r"^\s*\[[^\]]+\]:\s+\S+.*$")
HORIZONTAL_RULE = re.compile(r"^\s*([-*_])(\s*\1){2,}\s*$")
TABLE_DIVIDER = re.compile(r"^\s*\|?\s*:?-+:?\s*(\|\s*:?-+:?\s*)*\|?\s*$")

HTML_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
HTML_TAG = re.compile(r"</?[A-Za-z][^>]*>")
IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]*\)")
INLINE_LINK = re.compile(r"\[([^\]]+)\]\([^)]*\)")
REFERENCE_LINK = re.compile(r"\[([^\]]+)\]\[[^\]]*\]")
AUTOLINK = re.compile(r"<(https?://[^>]+)>")
INLINE_CODE = re.compile(r"`+([^`]*)`+")
BOLD = re.compile(r"(\*\*|__)(.+?)\1")
ITALIC_STAR = re.compile(r"(?<![\w*])\*(?!\s)(.+?)(?<!\s)\*(?![\w*])")
ITALIC_UNDERSCORE = re.compile(r"(?<![\w_])_(?!\s)(.+?)(?<!\s)_(?![\w_])")
STRIKETHROUGH = re.compile(r"~~(.+?)~~")

HEADING_PREFIX = re.compile(r"^\s{0,3}#{1,6}\s+")
HEADING_SUFFIX = re.compile(r"\s+#+\s*$")
BLOCKQUOTE_PREFIX = re.compile(r"^\s*(>\s?)+")
LIST_PREFIX = re.compile(r"^\s*([-*+]|\d+[.)])\s+(\[[ xX]\]\s+)?")
INLINE_WHITESPACE = re.compile(r"\s+")


def normalize_markdown(body: str) -> str:
    """
    Convert a markdown (or MDX) body into plain text for embedding.

    Markup is removed while readable text is kept: link and image text stay,
    code blocks keep their contents but lose the fences. Headings become
    their own paragraph. Paragraphs are separated by exactly one blank line;
    inside a paragraph every whitespace run collapses to a single space.

    Args:
        body: Markdown text without frontmatter

    Returns:
        Normalized plain text
    """
    if not body:
        return ""

    text = HTML_COMMENT.sub("", body.replace("\r\n", "\n"))

    lines = []
    in_fence = False
    for line in text.split("\n"):
        if FENCE_LINE.match(line):
            in_fence = not in_fence
            lines.append("")
            continue
        if in_fence:
            lines.append(line)
            continue
        if _is_structural(line):
            lines.append("")
            continue
        if HEADING_PREFIX.match(BLOCKQUOTE_PREFIX.sub("", line)):
            lines.extend(["", _strip_inline(_strip_block_prefix(line)), ""])
            continue
        lines.append(_strip_inline(_strip_block_prefix(line)))

    paragraphs = []
    current = []
    for line in lines:
        line = INLINE_WHITESPACE.sub(" ", line).strip()
        if line:
            current.append(line)
        elif current:
            paragraphs.append(" ".join(current))
            current = []
    if current:
        paragraphs.append(" ".join(current))

    return "\n\n".join(paragraphs)


def _is_structural(line: str) -> bool:
    """Lines that carry no prose: directives, imports, rules, table dividers."""
    return bool(
        ADMONITION_LINE.match(line)
        or MDX_STATEMENT.match(line)
        or LINK_DEFINITION.match(line)
        or HORIZONTAL_RULE.match(line)
        or (TABLE_DIVIDER.match(line) and "-" in line)
    )


def _strip_block_prefix(line: str) -> str:
    line = BLOCKQUOTE_PREFIX.sub("", line)
    if HEADING_PREFIX.match(line):
        line = HEADING_SUFFIX.sub("", HEADING_PREFIX.sub("", line))
    line = LIST_PREFIX.sub("", line)
    if line.strip().startswith("|"):
        line = " ".join(cell.strip() for cell in line.strip().strip("|").split("|"))
    return line


def _strip_inline(line: str) -> str:
    line = IMAGE.sub(r"\1", line)
    line = INLINE_LINK.sub(r"\1", line)
    line = REFERENCE_LINK.sub(r"\1", line)
    line = AUTOLINK.sub(r"\1", line)
    line = INLINE_CODE.sub(r"\1", line)
    line = HTML_TAG.sub("", line)
    line = BOLD.sub(r"\2", line)
    line = ITALIC_STAR.sub(r"\1", line)
    line = ITALIC_UNDERSCORE.sub(r"\1", line)
    return STRIKETHROUGH.sub(r"\1", line)
