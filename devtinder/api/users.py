"""
DevTinder — Users API

Minimal account surface: registration (which hands back a bearer token),
the caller's own profile and public profiles.  Richer profile management
belongs to the profile service.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from devtinder.api.deps import get_current_user_id
from devtinder.database import get_db
from devtinder.errors import ConflictError, NotFoundError
from devtinder.models.user import User
from devtinder.schemas.user import (
    UserCreate,
    UserCreatedResponse,
    UserResponse,
    UserSummary,
)
from devtinder.utils.tokens import issue_access_token

logger = structlog.get_logger("devtinder.api.users")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# POST "" — Create a new user
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=UserCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new user",
)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserCreatedResponse:
    """Register a new user account and return it with an access token."""
    log = logger.bind(email=payload.email)
    log.info("create_user_start")

    stmt = select(User).where(User.email == payload.email)
    result = await db.execute(stmt)
    if result.scalar_one_or_none() is not None:
        log.warning("create_user_duplicate_email")
        raise ConflictError("A user with this email already exists")

    new_user = User(
        email=payload.email,
        name=payload.name,
        bio=payload.bio,
        avatar=payload.avatar,
        skills=list(payload.skills),
    )
    db.add(new_user)
    await db.commit()
    await db.refresh(new_user)

    log.info("create_user_complete", user_id=str(new_user.id))
    return UserCreatedResponse(
        **UserResponse.model_validate(new_user).model_dump(),
        access_token=issue_access_token(new_user.id),
    )


# ──────────────────────────────────────────────────────────────────────────────
# GET /me — The caller's own account
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get the authenticated user",
)
async def get_me(
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await db.get(User, current_user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id} — Public profile
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}",
    response_model=UserSummary,
    summary="Get user by ID",
)
async def get_user(
    user_id: uuid.UUID,
    current_user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Retrieve a single active user by their UUID."""
    log = logger.bind(user_id=str(user_id))
    log.info("get_user")

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        log.warning("get_user_not_found")
        raise NotFoundError("User not found")
    return user
