# client/conversation_client.py
import enum
import logging
import secrets
import string
import time
from typing import List, Optional

import httpx
import pydantic

from models import ChatResponse, ConversationDetail, ConversationSummary, Message

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "I apologize, but I encountered an error processing your message. Please try again."
)
DEFAULT_SEND_ERROR = "Failed to send message"

_SESSION_ALPHABET = string.ascii_lowercase + string.digits


def new_session_id() -> str:
    suffix = "".join(secrets.choice(_SESSION_ALPHABET) for _ in range(9))
    return f"session-{int(time.time() * 1000)}-{suffix}"


class ClientState(str, enum.Enum):
    IDLE = "idle"
    SENDING = "sending"


class ConversationClient:
    """
    Client-side conversation state for one user.

    Holds the visible transcript, the current session id and the send
    state. Only one message can be in flight at a time: `send_message`
    while SENDING is rejected without issuing a request. A failed send
    always ends with an apology message in the transcript and a
    human-readable `error` that stays until `clear_error` or a new send.
    A reply that arrives after the session was switched is dropped, so the
    new transcript never shows another session's turn.

    The HTTP client is injected, so several independent instances can
    coexist (one per user, or one per test).
    """

    def __init__(self, http_client: httpx.AsyncClient, api_url: str = ""):
        self.http_client = http_client
        self.api_url = api_url.rstrip("/")
        self.messages: List[Message] = []
        self.conversations: List[ConversationSummary] = []
        self.current_session_id: str = new_session_id()
        self.state = ClientState.IDLE
        self.error: Optional[str] = None

    @property
    def is_loading(self) -> bool:
        return self.state is ClientState.SENDING

    @property
    def is_typing(self) -> bool:
        return self.state is ClientState.SENDING

    async def send_message(self, content: str, user_id: str) -> bool:
        """
        Send one user message. Returns False when the send was rejected
        (blank content or a send already in flight), True otherwise.
        """
        content = content.strip()
        if not content or self.state is not ClientState.IDLE:
            return False

        self.messages.append(Message(role="user", content=content))
        self.state = ClientState.SENDING
        self.error = None
        session_id = self.current_session_id

        try:
            response = await self.http_client.post(
                f"{self.api_url}/chat",
                json={"message": content, "userId": user_id, "sessionId": session_id},
            )
            response.raise_for_status()
            reply = ChatResponse.model_validate(response.json())
            if self._is_current(session_id):
                self.messages.append(
                    Message(role="assistant", content=reply.response, timestamp=reply.timestamp)
                )
        except (httpx.HTTPError, ValueError) as e:
            # pydantic.ValidationError and JSON decode errors are ValueErrors
            logger.error(f"[Client] Error sending message: {e}")
            if self._is_current(session_id):
                self.error = self._error_text(e)
                self.messages.append(Message(role="assistant", content=APOLOGY_MESSAGE))
        finally:
            self.state = ClientState.IDLE
        return True

    def _is_current(self, session_id: str) -> bool:
        # the user may have switched conversations while the request was in flight
        if self.current_session_id != session_id:
            logger.info(f"[Client] Dropping reply for {session_id}; session changed to {self.current_session_id}")
            return False
        return True

    @staticmethod
    def _error_text(exc: Exception) -> str:
        if isinstance(exc, httpx.HTTPStatusError):
            try:
                body = exc.response.json()
            except ValueError:
                return DEFAULT_SEND_ERROR
            if isinstance(body, dict) and isinstance(body.get("error"), str):
                return body["error"]
        return DEFAULT_SEND_ERROR

    async def load_chat_history(self, user_id: str, limit: int = 50, page: int = 1) -> None:
        """
        Load conversation summaries, then open the most recent conversation,
        or start a fresh one when the user has none.
        """
        try:
            response = await self.http_client.get(
                f"{self.api_url}/chat/history/{user_id}",
                params={"limit": limit, "page": page},
            )
            response.raise_for_status()
            history = pydantic.TypeAdapter(List[ConversationSummary]).validate_python(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[Client] Error loading chat history: {e}")
            self.error = "Failed to load chat history"
            return

        self.conversations = history
        if history:
            await self.load_conversation(history[0].session_id, user_id)
        else:
            self.start_new_conversation()

    async def load_conversation(self, session_id: str, user_id: str) -> None:
        try:
            response = await self.http_client.get(
                f"{self.api_url}/chat/conversation/{session_id}",
                params={"userId": user_id},
            )
            response.raise_for_status()
            conversation = ConversationDetail.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[Client] Error loading conversation {session_id}: {e}")
            self.error = "Failed to load conversation"
            return

        self.messages = list(conversation.messages)
        self.current_session_id = session_id

    def start_new_conversation(self) -> None:
        """Reset the transcript and rotate the session id. No server call."""
        self.messages = []
        self.current_session_id = new_session_id()
        self.error = None

    def clear_error(self) -> None:
        self.error = None
