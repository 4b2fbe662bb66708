"""Content audit: rule checks and optional AI review over the documentation tree."""
import asyncio
import json
import logging
import posixpath
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from config import CONTENT_EXTENSIONS
from models.conversation import ChatMessage, Role
from models.document import AuditContent, AuditSummary, ContentIssue, FileNode
from services.ai_service import CompletionProvider
from services.content_loader import load_file_tree
from services.errors import AssistantError
from services.tree_builder import iter_files

logger = logging.getLogger(__name__)

DOCS_DIR = "docs"
PAGES_DIR = "src/pages"


class ContentAuditor:
    """Attaches ContentIssue findings to every file node of a tree."""

    LINK_PATTERN = re.compile(r"(?<!!)\[[^\]]*\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")
    HEADING_PATTERN = re.compile(r"^\s{0,3}(#{1,6})\s+\S")
    FENCE_PATTERN = re.compile(r"^\s*(```|~~~)")
    EXTERNAL_PREFIXES = ("http://", "https://", "mailto:", "tel:", "//", "/", "#")

    REVIEW_PROMPT = (
        "You are a technical documentation expert. Analyze the provided documentation "
        "content and provide actionable feedback on:\n"
        "1. Clarity and readability\n"
        "2. Technical accuracy\n"
        "3. Audience appropriateness\n"
        "4. Suggested improvements\n"
        "5. Key concepts and terminology\n\n"
        "Format your response as JSON with the following structure:\n"
        "{\n"
        '  "clarity": "brief assessment of clarity with specific suggestions",\n'
        '  "technicalAccuracy": "assessment of technical accuracy with areas to verify",\n'
        '  "audienceMatch": "assessment of audience appropriateness",\n'
        '  "improvements": ["list", "of", "specific", "actionable", "improvements"],\n'
        '  "keywords": ["key", "technical", "terms", "identified"]\n'
        "}\n\n"
        "Be concise but specific. Respond with the JSON object only."
    )

    def __init__(self, completions: Optional[CompletionProvider] = None):
        """
        Initialize the auditor.

        Args:
            completions: Provider for the AI review; rule checks only when None
        """
        self.completions = completions

    async def audit_tree(self, nodes: Sequence[FileNode]) -> None:
        """Replace the issues of every file node that has content."""
        files = [node for node in iter_files(nodes) if node.content is not None]
        known_paths = {node.path for node in iter_files(nodes)}
        await asyncio.gather(*(self._audit_node(node, known_paths) for node in files))

    async def _audit_node(self, node: FileNode, known_paths: set) -> None:
        issues = self.check_file(node, known_paths)
        if self.completions is not None:
            issues.extend(await self.review_with_ai(node))
        node.content.issues = issues

    def check_file(self, node: FileNode, known_paths: set) -> List[ContentIssue]:
        """
        Run the rule checks on one file.

        Line numbers are 1-based and relative to the document body (after
        frontmatter).

        Args:
            node: File node with content
            known_paths: Paths of every file in the same tree

        Returns:
            List of issues (empty if the file is clean)
        """
        issues = self._check_metadata(node.content.metadata)
        issues.extend(self._check_body(node.path, node.content.raw_text, known_paths))
        return issues

    def _check_metadata(self, metadata: Dict[str, Any]) -> List[ContentIssue]:
        issues = []
        if not metadata.get("title"):
            issues.append(ContentIssue(
                type="missing-metadata",
                message="Missing title in frontmatter",
                severity="warning",
                details={"field": "title"},
            ))
        if not metadata.get("description"):
            issues.append(ContentIssue(
                type="missing-metadata",
                message="Missing description in frontmatter",
                severity="info",
                details={"field": "description"},
            ))
        return issues

    def _check_body(self, file_path: str, text: str, known_paths: set) -> List[ContentIssue]:
        issues = []
        in_fence = False
        previous_level = 0
        h1_count = 0

        for line_number, line in enumerate(text.splitlines(), start=1):
            if self.FENCE_PATTERN.match(line):
                in_fence = not in_fence
                continue
            if in_fence:
                continue

            heading = self.HEADING_PATTERN.match(line)
            if heading:
                level = len(heading.group(1))
                if level == 1:
                    h1_count += 1
                    if h1_count > 1:
                        issues.append(ContentIssue(
                            type="formatting",
                            message="Multiple top-level headings",
                            severity="warning",
                            line=line_number,
                            column=heading.start(1) + 1,
                        ))
                if previous_level and level > previous_level + 1:
                    issues.append(ContentIssue(
                        type="formatting",
                        message=f"Heading level jumps from H{previous_level} to H{level}",
                        severity="warning",
                        line=line_number,
                        column=heading.start(1) + 1,
                    ))
                previous_level = level

            for match in self.LINK_PATTERN.finditer(line):
                target = match.group(1)
                resolved = self._resolve_link(file_path, target)
                if resolved is not None and resolved not in known_paths:
                    issues.append(ContentIssue(
                        type="broken-link",
                        message=f"Broken link: {target}",
                        severity="error",
                        line=line_number,
                        column=match.start() + 1,
                        details={"target": target, "resolved": resolved},
                    ))

        return issues

    def _resolve_link(self, file_path: str, target: str) -> Optional[str]:
        """Tree path a relative document link points at, or None for other links."""
        if target.startswith(self.EXTERNAL_PREFIXES):
            return None
        target = target.split("#", 1)[0].split("?", 1)[0]
        if not target.endswith(CONTENT_EXTENSIONS):
            return None
        return posixpath.normpath(posixpath.join(posixpath.dirname(file_path), target))

    async def review_with_ai(self, node: FileNode) -> List[ContentIssue]:
        """
        Ask the completion provider for a JSON review and map it to issues.

        Any provider or decoding failure is logged and yields no issues.
        """
        metadata = node.content.metadata
        messages = [
            ChatMessage(role=Role.SYSTEM, content=self.REVIEW_PROMPT),
            ChatMessage(
                role=Role.USER,
                content=(
                    "Analyze this documentation content:\n"
                    f"Title: {metadata.get('title') or 'Untitled'}\n"
                    f"Content:\n{node.content.raw_text}"
                ),
            ),
        ]

        try:
            fragments = [fragment async for fragment in self.completions.generate_chat_completion(messages)]
            analysis = self._parse_review("".join(fragments))
        except AssistantError as e:
            logger.warning(
                f"AI review failed for {node.path}: {e.error.message}",
                extra={"error_code": e.error.code, "file_path": node.path},
            )
            return []
        except ValueError as e:
            logger.warning(f"AI review for {node.path} was not valid JSON: {e}", extra={"file_path": node.path})
            return []

        return self.review_issues(analysis)

    @staticmethod
    def _parse_review(text: str) -> Dict[str, Any]:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise ValueError("no JSON object in review response")
        analysis = json.loads(text[start:end + 1])
        if not isinstance(analysis, dict):
            raise ValueError("review response is not a JSON object")
        return analysis

    @staticmethod
    def review_issues(analysis: Dict[str, Any]) -> List[ContentIssue]:
        """Map a review `{clarity, technicalAccuracy, audienceMatch, improvements, keywords}` to issues."""
        issues = []
        improvements = [str(item) for item in analysis.get("improvements") or []]

        def related(*words: str) -> List[str]:
            return [item for item in improvements if any(word in item.lower() for word in words)]

        clarity = str(analysis.get("clarity") or "")
        if clarity and "clear" not in clarity.lower():
            issues.append(ContentIssue(
                type="ai-suggestion",
                message="Content clarity could be improved",
                severity="warning",
                details={"aiSuggestions": {"clarity": clarity, "improvements": improvements}},
            ))

        accuracy = str(analysis.get("technicalAccuracy") or "")
        if accuracy and "accurate" not in accuracy.lower():
            issues.append(ContentIssue(
                type="ai-suggestion",
                message="Technical accuracy concerns",
                severity="error",
                details={"aiSuggestions": {
                    "technicalAccuracy": accuracy,
                    "improvements": related("technical", "accuracy"),
                }},
            ))

        audience = str(analysis.get("audienceMatch") or "")
        if audience and "appropriate" not in audience.lower():
            issues.append(ContentIssue(
                type="ai-suggestion",
                message="Content may not match target audience",
                severity="warning",
                details={"aiSuggestions": {
                    "audienceMatch": audience,
                    "improvements": related("audience", "user"),
                }},
            ))

        keywords = analysis.get("keywords") or []
        if keywords:
            issues.append(ContentIssue(
                type="ai-suggestion",
                message="Key technical terms identified",
                severity="info",
                details={"aiSuggestions": {"keywords": list(keywords)}},
            ))

        return issues


def summarize_tree(nodes: Sequence[FileNode]) -> AuditSummary:
    """Count files with content and their issues by type."""
    summary = AuditSummary()
    for node in iter_files(nodes):
        if node.content is None:
            continue
        summary.total_files += 1
        summary.total_issues += len(node.content.issues)
        for issue in node.content.issues:
            summary.issues_by_type[issue.type] = summary.issues_by_type.get(issue.type, 0) + 1
    return summary


async def load_audit(
    site_dir: str,
    completions: Optional[CompletionProvider] = None,
    extensions: Sequence[str] = CONTENT_EXTENSIONS
) -> AuditContent:
    """
    Build the docs and pages trees under `site_dir` and audit both.

    Args:
        site_dir: Site root containing `docs/` and `src/pages/`
        completions: Provider for the AI review, or None for rule checks only
        extensions: File suffixes to include

    Returns:
        AuditContent with both trees and the combined summary
    """
    auditor = ContentAuditor(completions)
    docs, pages = await asyncio.gather(
        load_file_tree(str(Path(site_dir) / DOCS_DIR), extensions),
        load_file_tree(str(Path(site_dir) / PAGES_DIR), extensions),
    )
    await asyncio.gather(auditor.audit_tree(docs), auditor.audit_tree(pages))

    summary = summarize_tree(docs).merge(summarize_tree(pages))
    logger.info(
        f"Audited {summary.total_files} files: {summary.total_issues} issues {summary.issues_by_type}"
    )
    return AuditContent(docs=docs, pages=pages, summary=summary)
