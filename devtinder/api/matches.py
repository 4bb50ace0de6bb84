"""
DevTinder — Matches API

Like / dislike interactions, the caller's matches and discovery feed, and
the participant actions on a match (bookmark, archive, block).
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from devtinder.api.deps import get_current_user_id, get_match_service
from devtinder.database import get_db
from devtinder.schemas.match import (
    BookmarkResponse,
    InteractionResponse,
    MatchResponse,
    MatchStatusUpdate,
)
from devtinder.schemas.user import UserSummary
from devtinder.services.match_service import InteractionOutcome, MatchService

logger = structlog.get_logger("devtinder.api.matches")

router = APIRouter()


async def _interaction_response(
    db: AsyncSession,
    service: MatchService,
    actor_id: uuid.UUID,
    outcome: InteractionOutcome,
) -> InteractionResponse:
    match = None
    if outcome.match is not None:
        match = (await service.describe(db, [outcome.match], actor_id))[0]
    return InteractionResponse(
        message=outcome.message, is_match=outcome.is_match, match=match
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST /like/{user_id} — Like a user
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/like/{user_id}",
    response_model=InteractionResponse,
    summary="Like a user",
)
async def like_user(
    user_id: str,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: MatchService = Depends(get_match_service),
) -> InteractionResponse:
    """Like ``user_id``.  Answers ``isMatch: true`` when the like was mutual."""
    outcome = await service.like(db, current_user_id, user_id)
    return await _interaction_response(db, service, current_user_id, outcome)


# ──────────────────────────────────────────────────────────────────────────────
# POST /dislike/{user_id} — Dislike a user
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/dislike/{user_id}",
    response_model=InteractionResponse,
    summary="Dislike a user",
)
async def dislike_user(
    user_id: str,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: MatchService = Depends(get_match_service),
) -> InteractionResponse:
    outcome = await service.dislike(db, current_user_id, user_id)
    return await _interaction_response(db, service, current_user_id, outcome)


# ──────────────────────────────────────────────────────────────────────────────
# GET /my-matches — Matched pairs of the caller
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/my-matches",
    response_model=list[MatchResponse],
    summary="List the caller's matches",
)
async def my_matches(
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: MatchService = Depends(get_match_service),
) -> list[MatchResponse]:
    matches = await service.list_matches(db, current_user_id)
    logger.info("list_matches", user_id=str(current_user_id), count=len(matches))
    return matches


# ──────────────────────────────────────────────────────────────────────────────
# GET /potential — Discovery feed
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/potential",
    response_model=list[UserSummary],
    summary="Users the caller has not acted on yet",
)
async def potential_matches(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: MatchService = Depends(get_match_service),
) -> list[UserSummary]:
    users = await service.potential_matches(db, current_user_id, limit, offset)
    return [UserSummary.model_validate(u) for u in users]


# ──────────────────────────────────────────────────────────────────────────────
# GET /{match_id} — One match of the caller
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{match_id}",
    response_model=MatchResponse,
    summary="Get a match",
)
async def get_match(
    match_id: uuid.UUID,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: MatchService = Depends(get_match_service),
) -> MatchResponse:
    return await service.get_match(db, current_user_id, match_id)


# ──────────────────────────────────────────────────────────────────────────────
# PUT /{match_id}/bookmark — Toggle the caller's bookmark
# ──────────────────────────────────────────────────────────────────────────────

@router.put(
    "/{match_id}/bookmark",
    response_model=BookmarkResponse,
    summary="Toggle bookmark on a match",
)
async def toggle_bookmark(
    match_id: uuid.UUID,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: MatchService = Depends(get_match_service),
) -> BookmarkResponse:
    bookmarked = await service.toggle_bookmark(db, current_user_id, match_id)
    return BookmarkResponse(match_id=match_id, bookmarked=bookmarked)


# ──────────────────────────────────────────────────────────────────────────────
# PUT /{match_id}/status — Archive or block
# ──────────────────────────────────────────────────────────────────────────────

@router.put(
    "/{match_id}/status",
    response_model=MatchResponse,
    summary="Archive or block a match",
)
async def update_match_status(
    match_id: uuid.UUID,
    payload: MatchStatusUpdate,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    service: MatchService = Depends(get_match_service),
) -> MatchResponse:
    """Move a matched pair to ``archived`` or ``blocked``.

    Either participant may do this; afterwards neither can send messages
    in the pair's conversation.
    """
    record = await service.update_match_status(
        db, current_user_id, match_id, payload.status
    )
    return (await service.describe(db, [record], current_user_id))[0]
