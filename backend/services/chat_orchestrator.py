"""Chat orchestration: retrieval-grounded prompts streamed into a chat session."""
import logging
from contextlib import aclosing
from typing import AsyncIterator, Callable, List, Optional, Sequence

import tiktoken

from config import DEFAULT_TOP_K
from models.chunk import ScoredChunk
from models.conversation import ChatMessage, Role
from services.ai_service import AIService
from services.chat_session import ChatSessionManager
from services.errors import AssistantError
from services.retrieval_engine import RetrievalEngine

logger = logging.getLogger(__name__)

TokenCounter = Callable[[str], int]

SCOPE_PREAMBLE = """You are a helpful documentation assistant. Answer questions using ONLY the documentation context provided below.

Instructions:
- Answer based on the provided context
- If the context doesn't contain relevant information, say so clearly and do not guess
- Do not answer questions unrelated to this documentation
- Be concise and helpful
- Mention the source file when you rely on a specific passage"""


def tiktoken_counter(encoding_name: str = "o200k_base") -> TokenCounter:
    """Token counter backed by a tiktoken encoding, loaded on first use."""
    encoder = None

    def count(text: str) -> int:
        nonlocal encoder
        if encoder is None:
            encoder = tiktoken.get_encoding(encoding_name)
            logger.info(f"Initialized tiktoken encoder ({encoding_name})")
        return len(encoder.encode(text))

    return count


class ChatOrchestrator:
    """Runs one user turn: retrieve, prompt, stream, and record in the session."""

    def __init__(
        self,
        sessions: ChatSessionManager,
        retrieval_engine: RetrievalEngine,
        ai_service: AIService,
        top_k: int = DEFAULT_TOP_K,
        max_context_tokens: Optional[int] = None,
        token_counter: Optional[TokenCounter] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            sessions: Session state to read history from and write results to
            retrieval_engine: Corpus search for grounding context
            ai_service: Completion provider
            top_k: Number of chunks placed in the system prompt
            max_context_tokens: Prompt budget; oldest turns are dropped to fit.
                None disables trimming.
            token_counter: Counts tokens in a string (defaults to tiktoken o200k_base)
        """
        self.sessions = sessions
        self.retrieval_engine = retrieval_engine
        self.ai_service = ai_service
        self.top_k = top_k
        self.max_context_tokens = max_context_tokens
        self.token_counter = token_counter or tiktoken_counter()

    @staticmethod
    def build_system_prompt(scored_chunks: Sequence[ScoredChunk]) -> str:
        """
        Build the system message: scope preamble plus each chunk tagged with its source file.

        Args:
            scored_chunks: Retrieved chunks, best first

        Returns:
            System prompt text
        """
        if not scored_chunks:
            return f"{SCOPE_PREAMBLE}\n\nContext from documentation:\n(no relevant documentation found)"

        context = "\n\n".join(
            f"[Source: {scored.chunk.file_path}]\n{scored.chunk.text}"
            for scored in scored_chunks
        )
        return f"{SCOPE_PREAMBLE}\n\nContext from documentation:\n{context}"

    async def send_message(self, text: str, chat_id: Optional[str] = None) -> AsyncIterator[str]:
        """
        Send a user message and stream the assistant's reply.

        The session moves Idle -> Sending -> Streaming -> Idle. The reply is
        a single assistant message whose content grows in place as fragments
        arrive. On failure the session is marked with the error and not
        loading; earlier messages and any partial reply are kept, and the
        error is re-raised to the consumer. If the consumer stops iterating,
        the provider stream is closed and the session returns to idle.

        Args:
            text: User input, passed unchanged to retrieval
            chat_id: Target session (defaults to the active one)

        Yields:
            Completion fragments in arrival order

        Raises:
            KeyError: If chat_id does not exist
            ValueError: If text is blank
            AssistantError: Provider, retrieval or stream failures
        """
        if not text or not text.strip():
            raise ValueError("Message cannot be empty")

        chat = self.sessions.get_chat(chat_id) if chat_id else self.sessions.active_chat
        history = [
            ChatMessage(role=message.role, content=message.content)
            for message in chat.messages
            if message.role in (Role.USER, Role.ASSISTANT) and message.content
        ]

        self.sessions.append_message(chat.id, Role.USER, text)
        self.sessions.mark_sending(chat.id)
        logger.info(f"Processing message for chat {chat.id}: {text[:100]}...")

        settled = False
        reply_id = None
        reply = ""
        try:
            scored_chunks = await self.retrieval_engine.retrieve(text, top_k=self.top_k)
            logger.info(f"Retrieved {len(scored_chunks)} chunks")

            messages = [
                ChatMessage(role=Role.SYSTEM, content=self.build_system_prompt(scored_chunks)),
                *history,
                ChatMessage(role=Role.USER, content=text),
            ]
            messages = self.fit_to_context(messages)

            self.sessions.mark_streaming(chat.id)
            async with aclosing(self.ai_service.generate_chat_completion(messages)) as stream:
                async for fragment in stream:
                    reply += fragment
                    if reply_id is None:
                        reply_id = self.sessions.append_message(chat.id, Role.ASSISTANT, reply).id
                    else:
                        self.sessions.update_message(chat.id, reply_id, reply)
                    yield fragment

            self.sessions.mark_idle(chat.id)
            settled = True
            logger.info(f"Chat {chat.id} reply complete ({len(reply)} characters)")

        except Exception as e:
            message = e.error.message if isinstance(e, AssistantError) else str(e)
            logger.error(
                f"Chat {chat.id} failed: {message}",
                extra={"chat_id": chat.id, "error_code": getattr(getattr(e, "error", None), "code", None)},
            )
            if self.sessions.get_chat_or_none(chat.id) is not None:
                try:
                    self.sessions.mark_error(chat.id, message)
                except Exception as save_error:
                    logger.error(f"Could not record error state for chat {chat.id}: {save_error}", exc_info=True)
            settled = True
            raise

        finally:
            if not settled and self.sessions.get_chat_or_none(chat.id) is not None:
                logger.info(f"Chat {chat.id} stream abandoned by consumer")
                self.sessions.mark_idle(chat.id)

    def fit_to_context(self, messages: List[ChatMessage]) -> List[ChatMessage]:
        """
        Drop the oldest conversation turns until the prompt fits the token budget.

        The system message and the newest user message are always kept.
        """
        if self.max_context_tokens is None:
            return messages

        counts = [self.token_counter(message.content) for message in messages]
        total = sum(counts)
        dropped = 0
        while total > self.max_context_tokens and len(messages) > 2:
            total -= counts.pop(1)
            messages = [messages[0], *messages[2:]]
            dropped += 1

        if dropped:
            logger.info(f"Dropped {dropped} oldest messages to fit {self.max_context_tokens} tokens")
        if total > self.max_context_tokens:
            logger.warning(f"Prompt still exceeds the context window ({total} > {self.max_context_tokens} tokens)")
        return messages
