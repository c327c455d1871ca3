"""
HTTP-level tests for the chat API (api/chat/chat.py, api/main.py).

Strategy:
    - Use the real FastAPI app with dependencies overridden
    - In-memory store, fake completion service, fake Redis
    - TestClient without a context manager so the lifespan (indexes,
      logging setup) does not run
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.main import app
from services.chat_service import ChatService, get_chat_service
from services.conversation_service import get_conversation_service
from services.errors import UpstreamError
from services.faq_service import FAQMatcher, InMemoryFAQRepository
from tests.conftest import CountingStore, FakeLLM, FakeRedis
from utils.redis_conn import get_redis_connection


@pytest.fixture
def api_store():
    return CountingStore()


@pytest.fixture
def api_llm():
    return FakeLLM(reply="Sure, here is how.")


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def client(api_store, api_llm, fake_redis):
    service = ChatService(
        store=api_store,
        faq_matcher=FAQMatcher(InMemoryFAQRepository()),
        llm_service=api_llm,
    )
    app.dependency_overrides[get_chat_service] = lambda: service
    app.dependency_overrides[get_conversation_service] = lambda: api_store
    app.dependency_overrides[get_redis_connection] = lambda: fake_redis
    yield TestClient(app)
    app.dependency_overrides.clear()


def body(message="Where is my order?", user_id="user-1", session_id="session-1"):
    payload = {"message": message, "userId": user_id, "sessionId": session_id}
    return {k: v for k, v in payload.items() if v is not None}


class TestPostChat:

    def test_success_shape(self, client, api_store):
        response = client.post("/chat", json=body())
        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "Sure, here is how."
        assert data["conversationId"]
        assert datetime.fromisoformat(data["timestamp"].replace("Z", "+00:00"))
        assert len(api_store) == 1

    @pytest.mark.parametrize("missing", ["message", "userId", "sessionId"])
    def test_missing_field_is_400_without_side_effects(self, client, api_store, api_llm, fake_redis, missing):
        payload = body()
        del payload[missing]
        response = client.post("/chat", json=payload)
        assert response.status_code == 400
        assert "error" in response.json()
        assert len(api_store) == 0
        assert api_llm.calls == []
        assert fake_redis.checked == []

    def test_non_json_body_is_400(self, client):
        response = client.post("/chat", content=b"not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    def test_upstream_failure_is_generic_500(self, client, api_store, api_llm, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        api_llm.error = UpstreamError("Completion failed: APIConnectionError")
        response = client.post("/chat", json=body())
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to process message"}
        assert len(api_store) == 0

    def test_details_exposed_in_development(self, client, api_llm, monkeypatch):
        monkeypatch.setenv("APP_ENV", "development")
        api_llm.error = UpstreamError("Completion failed: APIConnectionError")
        response = client.post("/chat", json=body())
        assert response.status_code == 500
        assert response.json()["details"] == "Completion failed: APIConnectionError"

    def test_rate_limited(self, client, fake_redis, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "true")
        fake_redis.allow = False
        response = client.post("/chat", json=body())
        assert response.status_code == 429

    def test_rate_limit_can_be_disabled(self, client, fake_redis, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
        fake_redis.allow = False
        response = client.post("/chat", json=body())
        assert response.status_code == 200


class TestHistory:

    def _seed(self, client, api_store, sessions):
        for session_id in sessions:
            assert client.post("/chat", json=body(session_id=session_id)).status_code == 200
        base = datetime(2024, 5, 1, tzinfo=timezone.utc)
        for i, session_id in enumerate(sessions):
            api_store._conversations[("user-1", session_id)].updated_at = base + timedelta(hours=i)

    def test_sorted_by_updated_desc(self, client, api_store):
        self._seed(client, api_store, ["a", "b", "c"])
        response = client.get("/chat/history/user-1")
        assert response.status_code == 200
        data = response.json()
        assert [c["sessionId"] for c in data] == ["c", "b", "a"]
        assert set(data[0]) >= {"sessionId", "title", "messages", "updatedAt", "createdAt"}
        assert data[0]["title"] == "Where is my order?"

    def test_paginated(self, client, api_store):
        self._seed(client, api_store, ["a", "b", "c"])
        response = client.get("/chat/history/user-1", params={"limit": 2, "page": 2})
        assert [c["sessionId"] for c in response.json()] == ["a"]

    def test_unknown_user_is_empty(self, client):
        response = client.get("/chat/history/nobody")
        assert response.status_code == 200
        assert response.json() == []

    def test_invalid_page_is_400(self, client):
        assert client.get("/chat/history/user-1", params={"page": 0}).status_code == 400

    @pytest.mark.parametrize("params", [{"limit": 101}, {"page": 10_001}, {"page": 2**62}])
    def test_out_of_range_paging_is_400(self, client, params):
        response = client.get("/chat/history/user-1", params=params)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"

    def test_largest_allowed_page_is_empty(self, client, api_store):
        self._seed(client, api_store, ["a"])
        response = client.get("/chat/history/user-1", params={"limit": 100, "page": 10_000})
        assert response.status_code == 200
        assert response.json() == []


class TestConversation:

    def test_found(self, client):
        client.post("/chat", json=body(message="Hi"))
        response = client.get("/chat/conversation/session-1", params={"userId": "user-1"})
        assert response.status_code == 200
        data = response.json()
        assert data["sessionId"] == "session-1"
        assert data["userId"] == "user-1"
        assert [m["role"] for m in data["messages"]] == ["user", "assistant"]

    def test_wrong_user_is_404(self, client):
        client.post("/chat", json=body())
        response = client.get("/chat/conversation/session-1", params={"userId": "user-2"})
        assert response.status_code == 404
        assert response.json() == {"error": "Conversation not found"}

    def test_missing_user_is_400(self, client):
        assert client.get("/chat/conversation/session-1").status_code == 400


class TestUnhandledErrors:

    def test_unexpected_exception_is_generic_500(self, client, api_store, api_llm, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        api_llm.error = RuntimeError("boom")
        response = TestClient(app, raise_server_exceptions=False).post("/chat", json=body())
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert len(api_store) == 0

    def test_unexpected_exception_details_in_development(self, client, api_llm, monkeypatch):
        monkeypatch.setenv("APP_ENV", "development")
        api_llm.error = RuntimeError("boom")
        response = TestClient(app, raise_server_exceptions=False).post("/chat", json=body())
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "details": "boom"}


class FakeMongoConnection:
    def __init__(self, reachable):
        self.reachable = reachable

    async def check_connection(self):
        return self.reachable


class TestHealth:

    def test_ok_with_memory_store(self, client, monkeypatch):
        monkeypatch.setenv("CONVERSATION_STORE", "memory")
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "message": "Support chat backend is running"}

    def test_reports_mongo_failure(self, client, monkeypatch):
        monkeypatch.setenv("CONVERSATION_STORE", "mongo")
        monkeypatch.setattr("api.main.get_mongodb_connection", lambda: FakeMongoConnection(False))
        response = client.get("/health")
        assert response.json() == {"status": "error", "message": "MongoDB connection failed"}

    def test_reports_redis_failure(self, client, fake_redis, monkeypatch):
        monkeypatch.setenv("CONVERSATION_STORE", "mongo")
        monkeypatch.setattr("api.main.get_mongodb_connection", lambda: FakeMongoConnection(True))

        async def unreachable():
            return False

        fake_redis.check_connection = unreachable
        response = client.get("/health")
        assert response.json() == {"status": "error", "message": "Redis connection failed"}
