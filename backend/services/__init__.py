"""Services for the documentation chat assistant."""
from .errors import AssistantError, ConfigurationError, ErrorInfo, ParseError, StreamError, TransportError
from .frontmatter import parse_frontmatter
from .markdown_normalizer import normalize_markdown
from .chunking_engine import ChunkingEngine
from .tree_builder import collect_files, paths_to_tree
from .embedding_model import MockEmbeddings, OpenAIEmbeddings
from .llm_client import MockCompletion, OpenAICompatibleCompletion
from .ai_service import AIService, create_ai_service
from .vector_store import VectorStore, cosine_similarity
from .retrieval_engine import RetrievalEngine
from .content_loader import ContentLoader, load_file_tree
from .content_audit import ContentAuditor, load_audit
from .content_events import ContentEventEmitter
from .chat_session import ChatSessionManager, deserialize_state, serialize_state
from .state_store import InMemoryStateStore, JSONFileStateStore, SupabaseStateStore, create_state_store
from .chat_orchestrator import ChatOrchestrator
from .plugin import AuditPlugin, ChatPlugin

__all__ = [
    'AssistantError', 'ConfigurationError', 'ErrorInfo', 'ParseError', 'StreamError', 'TransportError',
    'parse_frontmatter', 'normalize_markdown', 'ChunkingEngine', 'collect_files', 'paths_to_tree',
    'MockEmbeddings', 'OpenAIEmbeddings', 'MockCompletion', 'OpenAICompatibleCompletion',
    'AIService', 'create_ai_service', 'VectorStore', 'cosine_similarity', 'RetrievalEngine',
    'ContentLoader', 'load_file_tree', 'ContentAuditor', 'load_audit', 'ContentEventEmitter',
    'ChatSessionManager', 'deserialize_state', 'serialize_state', 'InMemoryStateStore',
    'JSONFileStateStore', 'SupabaseStateStore', 'create_state_store', 'ChatOrchestrator',
    'AuditPlugin', 'ChatPlugin',
]
