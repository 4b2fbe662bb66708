"""Multi-session chat state and its JSON (de)serialization."""
import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from models.conversation import ChatInstance, ChatState, ChatStatus, Role, SessionMessage

if TYPE_CHECKING:
    from services.state_store import StateStore

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Chat"
TITLE_LENGTH = 50


def serialize_state(state: ChatState) -> Dict[str, Any]:
    """
    Convert chat state to a JSON-ready dict with ISO-8601 date strings.

    This and `deserialize_state` are the only places dates are converted.
    """
    return {
        "chats": [
            {
                "id": chat.id,
                "title": chat.title,
                "messages": [
                    {
                        "id": message.id,
                        "role": message.role.value,
                        "content": message.content,
                        "timestamp": message.timestamp.isoformat(),
                    }
                    for message in chat.messages
                ],
                "isLoading": chat.is_loading,
                "error": chat.error,
                "status": chat.status.value,
                "createdAt": chat.created_at.isoformat(),
                "updatedAt": chat.updated_at.isoformat(),
            }
            for chat in state.chats
        ],
        "activeChatId": state.active_chat_id,
    }


def deserialize_state(data: Dict[str, Any]) -> ChatState:
    """
    Rebuild chat state from `serialize_state` output.

    A session persisted mid-request cannot still be waiting on its stream,
    so loading flags are cleared and in-flight statuses return to idle.
    Error messages are kept.

    Raises:
        KeyError: If a required field is missing
        ValueError: If a date or enum value is invalid
    """
    chats = []
    for raw in data.get("chats", []):
        status = ChatStatus(raw.get("status", ChatStatus.IDLE.value))
        if status in (ChatStatus.SENDING, ChatStatus.STREAMING):
            status = ChatStatus.IDLE
        chats.append(ChatInstance(
            id=raw["id"],
            title=raw.get("title") or DEFAULT_TITLE,
            created_at=parse_timestamp(raw["createdAt"]),
            updated_at=parse_timestamp(raw["updatedAt"]),
            messages=[
                SessionMessage(
                    id=m["id"],
                    role=Role(m["role"]),
                    content=m["content"],
                    timestamp=parse_timestamp(m["timestamp"]),
                )
                for m in raw.get("messages", [])
            ],
            is_loading=False,
            error=raw.get("error"),
            status=status,
        ))
    return ChatState(chats=chats, active_chat_id=data.get("activeChatId"))


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an ISO-8601 timestamp, accepting a trailing 'Z' and fractional
    seconds of any precision.
    """
    timestamp_str = timestamp_str.replace("Z", "+00:00")

    # Normalize fractional seconds to 6 digits
    if "." in timestamp_str:
        head, fraction = timestamp_str.split(".", 1)
        digits = len(fraction) - len(fraction.lstrip("0123456789"))
        microseconds, tz = fraction[:digits], fraction[digits:]
        timestamp_str = f"{head}.{microseconds[:6].ljust(6, '0')}{tz}"

    parsed = datetime.fromisoformat(timestamp_str)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChatSessionManager:
    """
    Owns every chat session and which one is active.

    At least one session always exists. State is written to the store on
    every structural change and when a request settles; per-fragment
    updates stay in memory.
    """

    def __init__(
        self,
        store: Optional["StateStore"] = None,
        now: Callable[[], datetime] = _utc_now
    ):
        """
        Initialize the manager, restoring persisted state when available.

        Args:
            store: Persistence backend, or None to keep state in memory only
            now: Clock used for timestamps
        """
        self.store = store
        self._now = now

        state = store.load() if store is not None else None
        self.state = state if state is not None else ChatState(chats=[])

        if not self.state.chats:
            self.create_chat()
        elif self.get_chat_or_none(self.state.active_chat_id) is None:
            self.state.active_chat_id = self.state.chats[0].id

        logger.info(f"ChatSessionManager initialized with {len(self.state.chats)} chats")

    @property
    def chats(self) -> List[ChatInstance]:
        return list(self.state.chats)

    @property
    def active_chat(self) -> ChatInstance:
        return self.get_chat(self.state.active_chat_id)

    def get_chat_or_none(self, chat_id: Optional[str]) -> Optional[ChatInstance]:
        return next((chat for chat in self.state.chats if chat.id == chat_id), None)

    def get_chat(self, chat_id: str) -> ChatInstance:
        """
        Look up a session by id.

        Raises:
            KeyError: If no session has this id
        """
        chat = self.get_chat_or_none(chat_id)
        if chat is None:
            raise KeyError(f"Chat not found: {chat_id}")
        return chat

    def create_chat(self, title: str = DEFAULT_TITLE) -> ChatInstance:
        """Create an empty session and make it active."""
        now = self._now()
        chat = ChatInstance(
            id=self._generate_id("chat"),
            title=title,
            created_at=now,
            updated_at=now,
        )
        self.state.chats.append(chat)
        self.state.active_chat_id = chat.id
        logger.info(f"Created chat {chat.id}")
        self.save()
        return chat

    def switch_chat(self, chat_id: str) -> ChatInstance:
        chat = self.get_chat(chat_id)
        self.state.active_chat_id = chat.id
        self.save()
        return chat

    def delete_chat(self, chat_id: str) -> ChatInstance:
        """
        Delete a session and return the one that is active afterwards.

        Deleting the last session creates a fresh empty one. Deleting the
        active session activates the most recently created remaining one.

        Raises:
            KeyError: If no session has this id
        """
        chat = self.get_chat(chat_id)
        self.state.chats.remove(chat)
        logger.info(f"Deleted chat {chat_id}")

        if not self.state.chats:
            return self.create_chat()

        if self.state.active_chat_id == chat_id:
            self.state.active_chat_id = self.state.chats[-1].id
        self.save()
        return self.active_chat

    def append_message(self, chat_id: str, role: Role, content: str) -> SessionMessage:
        """Append a message; the first user message also titles an untitled session."""
        chat = self.get_chat(chat_id)
        now = self._now()
        message = SessionMessage(id=self._generate_id("msg"), role=role, content=content, timestamp=now)
        chat.messages.append(message)
        chat.updated_at = now

        if role == Role.USER and chat.title == DEFAULT_TITLE and content.strip():
            chat.title = self._make_title(content)
        return message

    def update_message(self, chat_id: str, message_id: str, content: str) -> SessionMessage:
        """
        Replace a message's content in place.

        Raises:
            KeyError: If the session or message does not exist
        """
        chat = self.get_chat(chat_id)
        message = next((m for m in chat.messages if m.id == message_id), None)
        if message is None:
            raise KeyError(f"Message not found: {message_id}")
        message.content = content
        chat.updated_at = self._now()
        return message

    def mark_sending(self, chat_id: str) -> None:
        self._set_status(chat_id, ChatStatus.SENDING, is_loading=True)

    def mark_streaming(self, chat_id: str) -> None:
        self._set_status(chat_id, ChatStatus.STREAMING, is_loading=True)

    def mark_idle(self, chat_id: str) -> None:
        self._set_status(chat_id, ChatStatus.IDLE, is_loading=False)
        self.save()

    def mark_error(self, chat_id: str, message: str) -> None:
        self._set_status(chat_id, ChatStatus.ERROR, is_loading=False, error=message)
        self.save()

    def _set_status(self, chat_id: str, status: ChatStatus, is_loading: bool, error: Optional[str] = None) -> None:
        chat = self.get_chat(chat_id)
        chat.status = status
        chat.is_loading = is_loading
        chat.error = error
        chat.updated_at = self._now()

    def save(self) -> None:
        if self.store is not None:
            self.store.save(self.state)

    @staticmethod
    def _make_title(content: str) -> str:
        title = " ".join(content.split())
        if len(title) > TITLE_LENGTH:
            title = title[:TITLE_LENGTH].rstrip() + "..."
        return title

    @staticmethod
    def _generate_id(prefix: str) -> str:
        return f"{prefix}_{uuid.uuid4().hex[:12]}"
