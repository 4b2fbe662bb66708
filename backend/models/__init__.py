"""Data models for the documentation chat assistant."""
from .document import AuditContent, AuditSummary, ContentIssue, FileContent, FileNode, NodeType
from .chunk import ChatContent, DocumentChunk, DocumentChunkWithEmbedding, ScoredChunk
from .conversation import ChatInstance, ChatMessage, ChatState, ChatStatus, Role, SessionMessage
from .settings import ChunkingConfig, PluginConfig, ProviderConfig, ProviderKind, RetrievalConfig

__all__ = [
    "AuditContent",
    "AuditSummary",
    "ContentIssue",
    "FileContent",
    "FileNode",
    "NodeType",
    "ChatContent",
    "DocumentChunk",
    "DocumentChunkWithEmbedding",
    "ScoredChunk",
    "ChatInstance",
    "ChatMessage",
    "ChatState",
    "ChatStatus",
    "Role",
    "SessionMessage",
    "ChunkingConfig",
    "PluginConfig",
    "ProviderConfig",
    "ProviderKind",
    "RetrievalConfig",
]
