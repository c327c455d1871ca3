# models/Message_schema.py
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone
from typing import Literal


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)

    def to_prompt(self) -> dict:
        """Reduce to the {role, content} shape sent to the completion service."""
        return {"role": self.role, "content": self.content}
