# services/chat_service.py
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Optional

from models import Conversation, Message, utcnow
from services.context_builder import SYSTEM_PROMPT, build_context
from services.conversation_service import ConversationStore, get_conversation_service
from services.errors import PersistenceError, UpstreamError, ValidationError
from services.faq_service import FAQMatcher, get_faq_matcher
from services.llm_service import get_llm_service
from services.turn_lock import KeyedLock

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50


@dataclass
class TurnResult:
    reply: str
    conversation_id: str
    timestamp: datetime


def derive_title(message: str) -> str:
    if len(message) > TITLE_MAX_LENGTH:
        return message[:TITLE_MAX_LENGTH] + "..."
    return message


class ChatService:
    """
    Runs one chat turn end to end.

    Steps: buffer the user message, look up an FAQ entry, build the context
    window, call the completion service, buffer the reply, derive the title
    on the first turn, then save the conversation once.

    Nothing is saved unless the completion succeeds, so a failed turn leaves
    the stored conversation untouched. Turns for the same (user_id,
    session_id) run one at a time.
    """

    def __init__(
        self,
        store: ConversationStore,
        faq_matcher: FAQMatcher,
        llm_service,
        system_prompt: str = SYSTEM_PROMPT,
        turn_lock: Optional[KeyedLock] = None,
    ):
        self.store = store
        self.faq_matcher = faq_matcher
        self.llm_service = llm_service
        self.system_prompt = system_prompt
        self.turn_lock = turn_lock if turn_lock is not None else KeyedLock()

    @staticmethod
    def validate(message, user_id, session_id) -> None:
        fields = (("message", message), ("userId", user_id), ("sessionId", session_id))
        missing = [name for name, value in fields if not value or not str(value).strip()]
        if missing:
            raise ValidationError(
                "Message, userId, and sessionId are required",
                details=f"missing: {', '.join(missing)}",
                missing=missing,
            )

    async def handle_turn(self, message: str, user_id: str, session_id: str) -> TurnResult:
        self.validate(message, user_id, session_id)

        start = time.perf_counter()
        async with self.turn_lock.hold((user_id, session_id)):
            conversation = await self.store.find_or_create(user_id, session_id)
            self.store.append_message(conversation, Message(role="user", content=message))
            logger.debug(f"[Chat] User message buffered ({len(conversation.messages)} in conversation)")

            faq_match = await self.faq_matcher.match(message)
            context = build_context(self.system_prompt, faq_match, conversation.messages)
            logger.debug(f"[Chat] Context built: {len(context)} messages, faq={'yes' if faq_match else 'no'}")

            try:
                reply = await self.llm_service.generate(context)
            except UpstreamError:
                logger.warning(
                    f"[Chat] Completion failed for session {session_id}; turn discarded, conversation unchanged"
                )
                raise

            self.store.append_message(conversation, Message(role="assistant", content=reply))
            self._maybe_set_title(conversation, message)

            try:
                await self.store.save(conversation)
            except PersistenceError as e:
                logger.error(f"[Chat] Failed to persist turn for session {session_id}: {e}")
                raise

        logger.info(
            f"[Chat] Turn completed for session {session_id} in {(time.perf_counter() - start) * 1000:.2f}ms"
        )
        return TurnResult(reply=reply, conversation_id=conversation.id, timestamp=utcnow())

    @staticmethod
    def _maybe_set_title(conversation: Conversation, message: str) -> None:
        if len(conversation.messages) == 2 and conversation.title is None:
            conversation.title = derive_title(message)


@lru_cache(maxsize=1)
def get_chat_service() -> ChatService:
    """
    FastAPI dependency factory that returns a singleton ChatService.
    """
    return ChatService(
        store=get_conversation_service(),
        faq_matcher=get_faq_matcher(),
        llm_service=get_llm_service(),
    )
