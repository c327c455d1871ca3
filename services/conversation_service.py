# services/conversation_service.py
import logging
import os
import uuid
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Dict, List, Optional, Tuple

import pydantic
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from models import Conversation, Message, utcnow
from services.errors import ConflictError, PersistenceError
from utils.mongodb_conn import get_mongodb_connection

logger = logging.getLogger(__name__)


class ConversationStore(ABC):
    """
    Find-or-create / append / save contract for the (user_id, session_id)
    conversation aggregate.

    Aggregates handed out are detached copies: mutating one has no effect
    on storage until `save` succeeds. `save` is a whole-aggregate write
    guarded by the aggregate's version, so a save based on stale state
    raises ConflictError instead of overwriting newer messages.
    """

    @abstractmethod
    async def find(self, user_id: str, session_id: str) -> Optional[Conversation]:
        ...

    @abstractmethod
    async def save(self, conversation: Conversation) -> Conversation:
        ...

    @abstractmethod
    async def list_for_user(self, user_id: str, limit: int = 50, page: int = 1) -> List[Conversation]:
        ...

    async def find_or_create(self, user_id: str, session_id: str) -> Conversation:
        conversation = await self.find(user_id, session_id)
        if conversation is None:
            conversation = Conversation(user_id=user_id, session_id=session_id)
        return conversation

    def append_message(self, conversation: Conversation, message: Message) -> None:
        conversation.messages.append(message)

    async def ensure_indexes(self) -> None:
        return None


class MongoConversationStore(ConversationStore):
    def __init__(self, db=None):
        if db is None:
            self.mongodb_connection = get_mongodb_connection()
            db = self.mongodb_connection.get_database(os.getenv("MONGODB_DATABASE", "support_chat"))
        self.db = db
        self.collection = db.conversations

    async def ensure_indexes(self) -> None:
        try:
            await self.collection.create_index(
                [("user_id", ASCENDING), ("session_id", ASCENDING)], unique=True
            )
            await self.collection.create_index([("user_id", ASCENDING), ("updated_at", DESCENDING)])
        except PyMongoError as e:
            raise PersistenceError("Failed to prepare conversation storage", details=str(e))

    @staticmethod
    def _to_conversation(doc: dict) -> Conversation:
        doc = dict(doc)
        if "_id" in doc:
            doc["id"] = str(doc.pop("_id"))
        try:
            return Conversation.model_validate(doc)
        except pydantic.ValidationError as e:
            raise PersistenceError("Stored conversation is malformed", details=str(e))

    async def find(self, user_id: str, session_id: str) -> Optional[Conversation]:
        try:
            doc = await self.collection.find_one({"user_id": user_id, "session_id": session_id})
        except PyMongoError as e:
            raise PersistenceError("Failed to load conversation", details=str(e))
        if doc is None:
            return None
        return self._to_conversation(doc)

    async def save(self, conversation: Conversation) -> Conversation:
        now = utcnow()
        new_version = conversation.version + 1
        messages = [m.model_dump() for m in conversation.messages]
        try:
            if conversation.version == 0:
                doc = conversation.model_dump(exclude={"id"})
                doc.update(messages=messages, updated_at=now, version=new_version)
                result = await self.collection.insert_one(doc)
                conversation.id = str(result.inserted_id)
            else:
                result = await self.collection.update_one(
                    {
                        "user_id": conversation.user_id,
                        "session_id": conversation.session_id,
                        "version": conversation.version,
                    },
                    {
                        "$set": {
                            "title": conversation.title,
                            "messages": messages,
                            "updated_at": now,
                            "version": new_version,
                        }
                    },
                )
                if result.matched_count == 0:
                    raise ConflictError(
                        "Conversation was modified concurrently",
                        details=f"stale version {conversation.version}",
                    )
        except DuplicateKeyError as e:
            raise ConflictError("Conversation was modified concurrently", details=str(e))
        except PyMongoError as e:
            raise PersistenceError("Failed to save conversation", details=str(e))

        conversation.version = new_version
        conversation.updated_at = now
        return conversation

    async def list_for_user(self, user_id: str, limit: int = 50, page: int = 1) -> List[Conversation]:
        try:
            cursor = (
                self.collection.find({"user_id": user_id})
                .sort("updated_at", DESCENDING)
                .skip((page - 1) * limit)
                .limit(limit)
            )
            docs = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise PersistenceError("Failed to fetch chat history", details=str(e))
        return [self._to_conversation(doc) for doc in docs]


class InMemoryConversationStore(ConversationStore):
    """Process-local store with the same version semantics as the Mongo one."""

    def __init__(self):
        self._conversations: Dict[Tuple[str, str], Conversation] = {}

    async def find(self, user_id: str, session_id: str) -> Optional[Conversation]:
        stored = self._conversations.get((user_id, session_id))
        if stored is None:
            return None
        return stored.model_copy(deep=True)

    async def save(self, conversation: Conversation) -> Conversation:
        stored = self._conversations.get(conversation.key)
        stored_version = stored.version if stored is not None else 0
        if stored_version != conversation.version:
            raise ConflictError(
                "Conversation was modified concurrently",
                details=f"stale version {conversation.version}, stored {stored_version}",
            )
        if conversation.id is None:
            conversation.id = uuid.uuid4().hex
        conversation.version += 1
        conversation.updated_at = utcnow()
        self._conversations[conversation.key] = conversation.model_copy(deep=True)
        return conversation

    async def list_for_user(self, user_id: str, limit: int = 50, page: int = 1) -> List[Conversation]:
        owned = [c for (uid, _), c in self._conversations.items() if uid == user_id]
        owned.sort(key=lambda c: c.updated_at, reverse=True)
        start = (page - 1) * limit
        return [c.model_copy(deep=True) for c in owned[start:start + limit]]

    def __len__(self) -> int:
        return len(self._conversations)


@lru_cache(maxsize=1)
def get_conversation_service() -> ConversationStore:
    """
    FastAPI dependency factory that returns a singleton ConversationStore.
    CONVERSATION_STORE=memory selects the process-local store.
    """
    backend = os.getenv("CONVERSATION_STORE", "mongo").lower()
    if backend == "memory":
        logger.info("[ConversationStore] Using in-memory store")
        return InMemoryConversationStore()
    return MongoConversationStore()
