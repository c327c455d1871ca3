"""
Shared fixtures for the chat backend tests.

Infrastructure is replaced with in-process doubles:
    - InMemoryConversationStore / InMemoryFAQRepository for MongoDB
    - FakeLLM for the completion service
    - FakeRedis for the rate limiter
"""

import asyncio

import pytest

from models import FAQEntry
from services.chat_service import ChatService
from services.conversation_service import InMemoryConversationStore
from services.errors import UpstreamError
from services.faq_service import FAQMatcher, InMemoryFAQRepository


class FakeLLM:
    """Records every context it receives and answers with a canned reply."""

    def __init__(self, reply: str = "Happy to help!", error: Exception = None, delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls = []

    async def generate(self, messages):
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class CountingStore(InMemoryConversationStore):
    """In-memory store that counts save() calls."""

    def __init__(self):
        super().__init__()
        self.save_calls = 0

    async def save(self, conversation):
        self.save_calls += 1
        return await super().save(conversation)


class FakeRedis:
    def __init__(self, allow: bool = True):
        self.allow = allow
        self.checked = []

    async def check_rate_limit(self, user_id, limit=None, window=None):
        self.checked.append(user_id)
        return self.allow

    async def check_connection(self):
        return True


class FailingFAQRepository:
    async def get_active_entries(self, limit=10):
        raise ConnectionError("faq store unavailable")


def faq(question, answer="An answer.", keywords=(), priority=0, is_active=True, category="general"):
    return FAQEntry(
        question=question,
        answer=answer,
        keywords=list(keywords),
        priority=priority,
        is_active=is_active,
        category=category,
    )


@pytest.fixture
def password_faq():
    return faq(
        "How to reset password",
        answer="Use the 'Forgot password' link on the sign-in page.",
        keywords=["reset", "password"],
        priority=5,
    )


@pytest.fixture
def store():
    return CountingStore()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def faq_repository():
    return InMemoryFAQRepository()


@pytest.fixture
def chat_service(store, llm, faq_repository):
    return ChatService(store=store, faq_matcher=FAQMatcher(faq_repository), llm_service=llm)


@pytest.fixture
def upstream_error():
    return UpstreamError("connection reset")
