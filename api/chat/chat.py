# api/chat/chat.py
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from models import ChatRequest, ChatResponse, ConversationDetail, ConversationSummary
from services.chat_service import ChatService, get_chat_service
from services.conversation_service import ConversationStore, get_conversation_service
from services.errors import NotFoundError, RateLimitError, ValidationError
from utils.redis_conn import RedisConnection, get_redis_connection

router = APIRouter(prefix="/chat", tags=["chat"])

HISTORY_MAX_LIMIT = 100
HISTORY_MAX_PAGE = 10_000


def _rate_limit_enabled() -> bool:
    return os.getenv("RATE_LIMIT_ENABLED", "true").lower() in ("1", "true", "yes")


@router.post("", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    chat_service: ChatService = Depends(get_chat_service),
    redis_connection: RedisConnection = Depends(get_redis_connection),
):
    """Send a user message and get the assistant reply"""
    ChatService.validate(payload.message, payload.user_id, payload.session_id)

    if _rate_limit_enabled() and not await redis_connection.check_rate_limit(payload.user_id):
        raise RateLimitError("Rate limit exceeded")

    result = await chat_service.handle_turn(
        message=payload.message,
        user_id=payload.user_id,
        session_id=payload.session_id,
    )
    return ChatResponse(
        response=result.reply,
        conversation_id=result.conversation_id,
        timestamp=result.timestamp,
    )


@router.get("/history/{user_id}", response_model=List[ConversationSummary])
async def get_history(
    user_id: str,
    limit: int = Query(50, ge=1, le=HISTORY_MAX_LIMIT),
    page: int = Query(1, ge=1, le=HISTORY_MAX_PAGE),
    store: ConversationStore = Depends(get_conversation_service),
):
    """Conversations of a user, most recently updated first"""
    conversations = await store.list_for_user(user_id, limit=limit, page=page)
    return [ConversationSummary.from_conversation(c) for c in conversations]


@router.get("/conversation/{session_id}", response_model=ConversationDetail)
async def get_conversation(
    session_id: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    store: ConversationStore = Depends(get_conversation_service),
):
    """One full conversation for a (session, user) pair"""
    if not user_id:
        raise ValidationError("userId is required")
    conversation = await store.find(user_id, session_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return ConversationDetail.from_conversation(conversation)
