# models/Chat_schema.py
"""Wire-level request/response shapes for the chat API (camelCase JSON)."""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import List, Optional

from .Conversation_schema import Conversation
from .Message_schema import Message


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(_CamelModel):
    # Presence is checked by the orchestrator so a missing field maps to a 400
    message: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class ChatResponse(_CamelModel):
    response: str
    conversation_id: str
    timestamp: datetime


class ConversationSummary(_CamelModel):
    id: Optional[str] = None
    session_id: str
    title: Optional[str] = None
    messages: List[Message] = []
    updated_at: datetime
    created_at: datetime

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationSummary":
        return cls(
            id=conversation.id,
            session_id=conversation.session_id,
            title=conversation.title,
            messages=conversation.messages,
            updated_at=conversation.updated_at,
            created_at=conversation.created_at,
        )


class ConversationDetail(ConversationSummary):
    user_id: str

    @classmethod
    def from_conversation(cls, conversation: Conversation) -> "ConversationDetail":
        return cls(
            id=conversation.id,
            user_id=conversation.user_id,
            session_id=conversation.session_id,
            title=conversation.title,
            messages=conversation.messages,
            updated_at=conversation.updated_at,
            created_at=conversation.created_at,
        )
