# models/Conversation_schema.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional

from .Message_schema import Message, utcnow


class Conversation(BaseModel):
    id: Optional[str] = None
    user_id: str
    session_id: str
    title: Optional[str] = None
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    # 0 means the aggregate has never been saved
    version: int = 0

    @property
    def key(self) -> tuple:
        return (self.user_id, self.session_id)
