"""Request and response models for the HTTP host."""
from typing import List, Optional
from pydantic import BaseModel, Field

from models.conversation import ChatInstance


class ChatRequest(BaseModel):
    message: str = Field(..., description="User question")
    chat_id: Optional[str] = Field(None, description="Target session; defaults to the active one")


class CreateChatRequest(BaseModel):
    title: Optional[str] = None


class MessageView(BaseModel):
    id: str
    role: str
    content: str
    timestamp: str


class ChatView(BaseModel):
    id: str
    title: str
    messages: List[MessageView]
    is_loading: bool
    status: str
    error: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_instance(cls, chat: ChatInstance) -> "ChatView":
        return cls(
            id=chat.id,
            title=chat.title,
            messages=[
                MessageView(
                    id=message.id,
                    role=message.role.value,
                    content=message.content,
                    timestamp=message.timestamp.isoformat(),
                )
                for message in chat.messages
            ],
            is_loading=chat.is_loading,
            status=chat.status.value,
            error=chat.error,
            created_at=chat.created_at.isoformat(),
            updated_at=chat.updated_at.isoformat(),
        )


class ChatListResponse(BaseModel):
    chats: List[ChatView]
    active_chat_id: Optional[str] = None


class ContentMetadata(BaseModel):
    total_chunks: int
    last_updated: Optional[str] = None
