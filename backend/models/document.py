"""Document tree data models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class NodeType(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass
class ContentIssue:
    """A single audit finding attached to a file."""
    type: str  # broken-link | missing-metadata | formatting | ai-suggestion
    message: str
    severity: str  # error | warning | info
    line: Optional[int] = None
    column: Optional[int] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "message": self.message,
            "severity": self.severity,
        }
        if self.line is not None:
            data["location"] = {"line": self.line, "column": self.column or 1}
        if self.details:
            data["details"] = self.details
        return data


@dataclass
class FileContent:
    """Parsed content of a single document."""
    metadata: Dict[str, Any]
    raw_text: str
    issues: List[ContentIssue] = field(default_factory=list)


@dataclass
class FileNode:
    """A file or directory in a documentation tree.

    Directories carry `children`, files carry `content` once read; a node
    never has both.
    """
    type: NodeType
    name: str
    path: str  # relative, unique within the tree
    children: Optional[List["FileNode"]] = None
    content: Optional[FileContent] = None

    @classmethod
    def directory(cls, name: str, path: str) -> "FileNode":
        return cls(type=NodeType.DIRECTORY, name=name, path=path, children=[])

    @classmethod
    def file(cls, name: str, path: str) -> "FileNode":
        return cls(type=NodeType.FILE, name=name, path=path)

    @property
    def is_file(self) -> bool:
        return self.type == NodeType.FILE

    def add_child(self, node: "FileNode") -> None:
        if self.is_file:
            raise ValueError(f"Cannot add children to file node: {self.path}")
        self.children.append(node)

    def set_content(self, content: FileContent) -> None:
        if not self.is_file:
            raise ValueError(f"Cannot attach content to directory node: {self.path}")
        self.content = content

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value, "name": self.name, "path": self.path}
        if self.children is not None:
            data["children"] = [child.to_dict() for child in self.children]
        if self.content is not None:
            data["content"] = {
                "metadata": self.content.metadata,
                "rawText": self.content.raw_text,
                "issues": [issue.to_dict() for issue in self.content.issues],
            }
        return data


@dataclass
class AuditSummary:
    total_files: int = 0
    total_issues: int = 0
    issues_by_type: Dict[str, int] = field(default_factory=dict)

    def merge(self, other: "AuditSummary") -> "AuditSummary":
        by_type = dict(self.issues_by_type)
        for issue_type, count in other.issues_by_type.items():
            by_type[issue_type] = by_type.get(issue_type, 0) + count
        return AuditSummary(
            total_files=self.total_files + other.total_files,
            total_issues=self.total_issues + other.total_issues,
            issues_by_type=by_type,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalFiles": self.total_files,
            "totalIssues": self.total_issues,
            "issuesByType": dict(self.issues_by_type),
        }


@dataclass
class AuditContent:
    """The content-audit artifact: docs and pages trees plus their issue summary."""
    docs: List[FileNode]
    pages: List[FileNode]
    summary: AuditSummary

    def to_dict(self) -> Dict[str, Any]:
        summary = self.summary.to_dict()
        return {
            "tree": {
                "docs": [node.to_dict() for node in self.docs],
                "pages": [node.to_dict() for node in self.pages],
                "summary": summary,
            },
            "summary": summary,
        }
