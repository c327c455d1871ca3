# services/errors.py
"""
Exception hierarchy for the chat backend.

Every error carries:
- message: human-readable text safe to show to the client
- details: optional diagnostic text (only exposed in development mode)
- status_code: HTTP status the API layer maps it to
"""
from typing import Optional


class ChatError(Exception):
    """Base exception for all chat backend errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self, include_details: bool = False) -> dict:
        payload = {"error": self.message}
        if include_details and self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ChatError):
    """Required input missing or malformed."""

    status_code = 400

    def __init__(self, message: str, details: Optional[str] = None, missing: Optional[list] = None):
        super().__init__(message, details)
        self.missing = missing or []


class NotFoundError(ChatError):
    """Requested conversation does not exist."""

    status_code = 404


class UpstreamError(ChatError):
    """Completion service failed: network, timeout, rate limit, bad response."""

    status_code = 500

    def __init__(self, details: Optional[str] = None, message: str = "Failed to process message"):
        super().__init__(message, details)


class PersistenceError(ChatError):
    """Conversation store read or write failed."""

    status_code = 500


class ConflictError(PersistenceError):
    """Conversation was modified concurrently; the save was rejected."""

    status_code = 409


class RateLimitError(ChatError):
    """Caller exceeded the per-user request budget."""

    status_code = 429
