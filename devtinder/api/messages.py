"""
DevTinder — Messages API

REST surface of the conversation service.  The WebSocket adapter in
``devtinder.api.socket`` drives the same service methods.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from devtinder.api.deps import (
    get_conversation_service,
    get_current_user_id,
    get_rate_limiter,
)
from devtinder.database import get_db
from devtinder.errors import RateLimitError
from devtinder.schemas.message import (
    ConversationResponse,
    DeleteMessageResponse,
    MessageCreate,
    MessagePage,
    MessageResponse,
    Pagination,
    ReadReceiptResponse,
)
from devtinder.services.conversation_service import ConversationService
from devtinder.services.rate_limit import MessageRateLimiter

logger = structlog.get_logger("devtinder.api.messages")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# GET /conversations — Conversations of the caller
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/conversations",
    response_model=list[ConversationResponse],
    summary="List the caller's conversations",
)
async def list_conversations(
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_conversation_service),
) -> list[ConversationResponse]:
    return await service.list_conversations(db, current_user_id)


# ──────────────────────────────────────────────────────────────────────────────
# GET /conversation/{user_id} — Open (or create) the thread with a match
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/conversation/{user_id}",
    response_model=ConversationResponse,
    summary="Get or create the conversation with a matched user",
)
async def get_or_create_conversation(
    user_id: str,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    conversation = await service.get_or_create_conversation(
        db, current_user_id, user_id
    )
    return (await service.describe(db, [conversation], current_user_id))[0]


# ──────────────────────────────────────────────────────────────────────────────
# GET /{conversation_id} — Message history, newest first
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{conversation_id}",
    response_model=MessagePage,
    summary="List messages of a conversation",
)
async def list_messages(
    conversation_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1, le=200),
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_conversation_service),
) -> MessagePage:
    result = await service.list_messages(
        db, current_user_id, conversation_id, page=page, limit=limit
    )
    return MessagePage(
        messages=[MessageResponse.model_validate(m) for m in result["messages"]],
        pagination=Pagination(**result["pagination"]),
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST /{conversation_id} — Send a message
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{conversation_id}",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    conversation_id: uuid.UUID,
    payload: MessageCreate,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_conversation_service),
    limiter: MessageRateLimiter = Depends(get_rate_limiter),
) -> MessageResponse:
    """Persist a message, update unread counters and notify the receiver."""
    if not await limiter.hit(current_user_id):
        raise RateLimitError()

    message = await service.send_message(
        db,
        current_user_id,
        conversation_id,
        payload.text,
        [a.model_dump(exclude_none=True) for a in payload.attachments],
    )
    return MessageResponse.model_validate(message)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{conversation_id}/read — Mark everything addressed to the caller read
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{conversation_id}/read",
    response_model=ReadReceiptResponse,
    summary="Mark a conversation as read",
)
async def mark_as_read(
    conversation_id: uuid.UUID,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_conversation_service),
) -> ReadReceiptResponse:
    updated = await service.mark_as_read(db, current_user_id, conversation_id)
    return ReadReceiptResponse(message="Messages marked as read", updated=updated)


# ──────────────────────────────────────────────────────────────────────────────
# DELETE /{message_id} — Sender-only hard delete
# ──────────────────────────────────────────────────────────────────────────────

@router.delete(
    "/{message_id}",
    response_model=DeleteMessageResponse,
    summary="Delete one of the caller's messages",
)
async def delete_message(
    message_id: int,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: ConversationService = Depends(get_conversation_service),
) -> DeleteMessageResponse:
    await service.delete_message(db, current_user_id, message_id)
    return DeleteMessageResponse(message="Message deleted", message_id=message_id)
