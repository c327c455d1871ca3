# services/faq_service.py
import logging
import os
from functools import lru_cache
from typing import List, Optional

from pymongo import ASCENDING, DESCENDING

from models import FAQEntry
from utils.mongodb_conn import get_mongodb_connection

logger = logging.getLogger(__name__)

# Number of active entries considered per lookup, highest priority first
FAQ_CANDIDATE_LIMIT = 10


class FAQRepository:
    """Read-only view over the `faqs` collection. Entries are managed elsewhere."""

    def __init__(self, db=None):
        if db is None:
            db = get_mongodb_connection().get_database(os.getenv("MONGODB_DATABASE", "support_chat"))
        self.collection = db.faqs

    async def get_active_entries(self, limit: int = FAQ_CANDIDATE_LIMIT) -> List[FAQEntry]:
        # _id ascending keeps equal-priority entries in insertion order
        cursor = (
            self.collection.find({"is_active": True})
            .sort([("priority", DESCENDING), ("_id", ASCENDING)])
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        entries = []
        for doc in docs:
            doc = dict(doc)
            doc["id"] = str(doc.pop("_id"))
            entries.append(FAQEntry.model_validate(doc))
        return entries


class InMemoryFAQRepository:
    def __init__(self, entries: Optional[List[FAQEntry]] = None):
        self.entries = list(entries or [])

    async def get_active_entries(self, limit: int = FAQ_CANDIDATE_LIMIT) -> List[FAQEntry]:
        active = [e for e in self.entries if e.is_active]
        # sorted() is stable, so ties keep list order
        return sorted(active, key=lambda e: e.priority, reverse=True)[:limit]


class FAQMatcher:
    """
    Cheap lexical FAQ lookup used to ground replies.

    An entry matches when any of its keywords occurs in the message, or
    when the message and the question contain one another (case-insensitive).
    The first match in priority order wins. Lookup failures are logged and
    treated as "no match" so grounding never blocks a chat turn.
    """

    def __init__(self, repository=None):
        if repository is None:
            repository = FAQRepository()
        self.repository = repository

    @staticmethod
    def matches(entry: FAQEntry, message: str) -> bool:
        message_lower = message.lower()
        question_lower = entry.question.lower()
        keywords = [k.lower() for k in entry.keywords if k]
        return (
            any(keyword in message_lower for keyword in keywords)
            or question_lower in message_lower
            or message_lower in question_lower
        )

    async def match(self, message: str) -> Optional[FAQEntry]:
        try:
            candidates = await self.repository.get_active_entries(FAQ_CANDIDATE_LIMIT)
        except Exception as e:
            logger.warning(f"[FAQ] Lookup failed, continuing without grounding: {e}")
            return None

        for entry in candidates:
            if self.matches(entry, message):
                logger.debug(f"[FAQ] Matched entry: {entry.question!r}")
                return entry
        return None


@lru_cache(maxsize=1)
def get_faq_matcher() -> FAQMatcher:
    """
    FastAPI dependency factory that returns a singleton FAQMatcher.
    CONVERSATION_STORE=memory pairs it with an empty in-memory FAQ set.
    """
    if os.getenv("CONVERSATION_STORE", "mongo").lower() == "memory":
        return FAQMatcher(InMemoryFAQRepository())
    return FAQMatcher()
