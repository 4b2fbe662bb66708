"""Conversation data models."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatStatus(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    ERROR = "error"


@dataclass(frozen=True)
class ChatMessage:
    """A provider-facing message; system messages are synthesized per turn."""
    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass
class SessionMessage:
    """A message as shown in a chat session."""
    id: str
    role: Role
    content: str
    timestamp: datetime


@dataclass
class ChatInstance:
    """One chat session."""
    id: str
    title: str
    created_at: datetime
    updated_at: datetime
    messages: List[SessionMessage] = field(default_factory=list)
    is_loading: bool = False
    error: Optional[str] = None
    status: ChatStatus = ChatStatus.IDLE


@dataclass
class ChatState:
    """All sessions plus the active one."""
    chats: List[ChatInstance]
    active_chat_id: Optional[str] = None
