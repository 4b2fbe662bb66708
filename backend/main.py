"""Main entry point for the documentation chat assistant API."""
import json
import logging
from contextlib import aclosing
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from config import (
    AUDIT_AI_REVIEW,
    AUDIT_ENABLED,
    CORS_ORIGINS,
    LOG_FORMAT,
    LOG_LEVEL,
    MAX_CONTEXT_WINDOW,
    OUTPUT_DIR,
    PORT,
    SITE_DIR,
    STATE_DIR,
    STATE_STORE,
    SUPABASE_KEY,
    SUPABASE_URL,
)
from logger import setup_logging
from models.api import ChatListResponse, ChatRequest, ChatView, ContentMetadata, CreateChatRequest
from models.chunk import ChatContent
from models.document import AuditContent
from models.settings import PluginConfig
from services.chat_orchestrator import ChatOrchestrator
from services.chat_session import DEFAULT_TITLE, ChatSessionManager
from services.content_events import ContentEventEmitter
from services.errors import AssistantError, ConfigurationError
from services.plugin import AuditPlugin, ChatPlugin
from services.retrieval_engine import RetrievalEngine
from services.state_store import create_state_store
from services.vector_store import ARTIFACT_NAME, VectorStore, load_artifact

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Docs Chat Assistant",
    description="Chat with your documentation: retrieval-grounded streaming answers",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
events: ContentEventEmitter = None
chat_plugin: ChatPlugin = None
audit_plugin: Optional[AuditPlugin] = None
audit_content: Optional[AuditContent] = None
session_manager: ChatSessionManager = None
retrieval_engine: RetrievalEngine = None
orchestrator: ChatOrchestrator = None


def on_content_reloaded(content: ChatContent) -> None:
    """Swap in a fresh vector store built from the reloaded corpus."""
    retrieval_engine.vector_store = VectorStore.from_content(content)
    logger.info(f"Retrieval corpus replaced ({content.total_chunks} chunks)")


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global events, chat_plugin, audit_plugin, audit_content
    global session_manager, retrieval_engine, orchestrator

    if LOG_FORMAT == "json":
        setup_logging(LOG_LEVEL)

    logger.info("Initializing docs chat services...")

    try:
        plugin_config = PluginConfig.from_env()

        events = ContentEventEmitter()
        chat_plugin = ChatPlugin(plugin_config, SITE_DIR, events)
        ai_service = chat_plugin.ai_service

        store = create_state_store(STATE_STORE, STATE_DIR, SUPABASE_URL, SUPABASE_KEY)
        session_manager = ChatSessionManager(store)

        retrieval_engine = RetrievalEngine(
            VectorStore(),
            ai_service,
            top_k=plugin_config.retrieval.top_k,
            similarity_threshold=plugin_config.retrieval.similarity_threshold,
        )
        max_context_tokens = None
        if not plugin_config.mock_mode:
            max_context_tokens = MAX_CONTEXT_WINDOW.get(plugin_config.llm_provider.kind.value)
        orchestrator = ChatOrchestrator(
            session_manager,
            retrieval_engine,
            ai_service,
            top_k=plugin_config.retrieval.top_k,
            max_context_tokens=max_context_tokens,
        )
        events.subscribe(on_content_reloaded)

        artifact_path = Path(OUTPUT_DIR) / ARTIFACT_NAME
        if artifact_path.exists():
            logger.info(f"Loading existing corpus from {artifact_path}")
            await events.emit(load_artifact(str(artifact_path)))
        else:
            await chat_plugin.reload(OUTPUT_DIR)

        if AUDIT_ENABLED:
            audit_plugin = AuditPlugin(SITE_DIR, ai_service, ai_review=AUDIT_AI_REVIEW)
            audit_content = await audit_plugin.load_content()
            await audit_plugin.content_loaded(audit_content, OUTPUT_DIR)

        logger.info("All services initialized successfully")
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.error.message}", extra={"error_details": e.error.details})
        raise
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


def _error_body(error: AssistantError) -> Dict[str, Any]:
    return {"error": error.error.to_dict()}


def _status_for(error: AssistantError) -> int:
    return 500 if isinstance(error, ConfigurationError) else 503


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Docs Chat Assistant API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "docs-chat-assistant",
        "version": "1.0.0",
        "chunks": retrieval_engine.vector_store.count() if retrieval_engine else 0,
    }


@app.get("/content/metadata", response_model=ContentMetadata)
async def content_metadata() -> ContentMetadata:
    content = events.last_content if events else None
    if content is None:
        return ContentMetadata(total_chunks=0)
    return ContentMetadata(total_chunks=content.total_chunks, last_updated=content.last_updated)


@app.post("/content/reload", response_model=ContentMetadata)
async def reload_content() -> ContentMetadata:
    """
    Rebuild the corpus from the site sources and swap it in.

    Raises:
        HTTPException: 500 for configuration errors, 503 for provider failures
    """
    try:
        content = await chat_plugin.reload(OUTPUT_DIR)
    except AssistantError as e:
        logger.error(f"Content reload failed: {e.error.message}")
        raise HTTPException(status_code=_status_for(e), detail=_error_body(e))
    return ContentMetadata(total_chunks=content.total_chunks, last_updated=content.last_updated)


def _chat_list() -> ChatListResponse:
    return ChatListResponse(
        chats=[ChatView.from_instance(chat) for chat in session_manager.chats],
        active_chat_id=session_manager.state.active_chat_id,
    )


@app.get("/chats", response_model=ChatListResponse)
async def list_chats() -> ChatListResponse:
    return _chat_list()


@app.post("/chats", response_model=ChatView)
async def create_chat(request: CreateChatRequest) -> ChatView:
    chat = session_manager.create_chat(request.title or DEFAULT_TITLE)
    return ChatView.from_instance(chat)


@app.post("/chats/{chat_id}/activate", response_model=ChatView)
async def activate_chat(chat_id: str) -> ChatView:
    try:
        chat = session_manager.switch_chat(chat_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Chat not found: {chat_id}")
    return ChatView.from_instance(chat)


@app.delete("/chats/{chat_id}", response_model=ChatListResponse)
async def delete_chat(chat_id: str) -> ChatListResponse:
    """Delete a chat; deleting the last one leaves a fresh empty chat active."""
    try:
        session_manager.delete_chat(chat_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Chat not found: {chat_id}")
    return _chat_list()


def _sse(data: Dict[str, Any]) -> bytes:
    return f"data: {json.dumps(data)}\n\n".encode("utf-8")


@app.post("/chat/stream")
async def chat_stream_endpoint(request: ChatRequest):
    """
    Streaming chat endpoint.

    Streams the answer as Server-Sent Events:
    - data: {type: "token", content: "..."} for each fragment
    - data: {type: "done", chat: {...}} once the reply is complete
    - data: {type: "error", error: {code, message, details}} if it fails

    Raises:
        HTTPException: 400 for an empty message, 404 for an unknown chat
    """
    if not request.message or not request.message.strip():
        raise HTTPException(status_code=400, detail="Message field is required and cannot be empty")

    if request.chat_id and session_manager.get_chat_or_none(request.chat_id) is None:
        raise HTTPException(status_code=404, detail=f"Chat not found: {request.chat_id}")

    chat_id = request.chat_id or session_manager.active_chat.id

    async def generate_stream():
        """Generator function for streaming response."""
        try:
            async with aclosing(orchestrator.send_message(request.message, chat_id)) as stream:
                async for fragment in stream:
                    yield _sse({"type": "token", "content": fragment})

            chat = session_manager.get_chat(chat_id)
            yield _sse({"type": "done", "chat": ChatView.from_instance(chat).model_dump()})

        except AssistantError as e:
            logger.error(f"Chat error during streaming: {e.error.message}")
            yield _sse({"type": "error", **_error_body(e)})
        except Exception as e:
            logger.error(f"Unexpected error during streaming: {e}", exc_info=True)
            yield _sse({
                "type": "error",
                "error": {
                    "code": "UNKNOWN_ERROR",
                    "message": f"Internal server error: {str(e)}",
                    "details": {},
                },
            })

    return StreamingResponse(
        generate_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"  # Disable buffering in nginx
        }
    )


@app.get("/audit")
async def get_audit():
    if audit_content is None:
        raise HTTPException(status_code=404, detail="Content audit is not enabled")
    return audit_content.to_dict()


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting Docs Chat Assistant API on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)
