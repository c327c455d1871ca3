from .Message_schema import Message, utcnow
from .Conversation_schema import Conversation
from .FAQ_schema import FAQEntry
from .Chat_schema import (
    ChatRequest,
    ChatResponse,
    ConversationSummary,
    ConversationDetail,
)

__all__ = [
    "Message",
    "utcnow",
    "Conversation",
    "FAQEntry",
    "ChatRequest",
    "ChatResponse",
    "ConversationSummary",
    "ConversationDetail",
]
