"""
DevTinder — Pair store primitives shared by the services.

The unique constraint on the canonical ``(user_a_id, user_b_id)`` columns
is the only serialisation point per pair.  ``insert_unique`` turns a lost
insert race into ``ConcurrencyError`` inside a SAVEPOINT, so the outer
transaction stays usable, and ``pair_race_retrying`` re-runs the caller's
read-decide-write block until it either wins or observes the winner's row.
"""

from __future__ import annotations

import uuid
from typing import Iterable, TypeVar

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from devtinder.config import get_settings
from devtinder.database import Base
from devtinder.errors import ConcurrencyError
from devtinder.models.conversation import Conversation
from devtinder.models.match import Match
from devtinder.models.message import Message
from devtinder.models.user import User

logger = structlog.get_logger("devtinder.store")

RowT = TypeVar("RowT", bound=Base)


def pair_race_retrying() -> AsyncRetrying:
    """Retry policy for blocks that may lose a pair race."""
    return AsyncRetrying(
        retry=retry_if_exception_type(ConcurrencyError),
        stop=stop_after_attempt(get_settings().PAIR_RACE_RETRIES),
        reraise=True,
    )


async def insert_unique(db: AsyncSession, row: RowT) -> RowT:
    """Insert ``row`` inside a SAVEPOINT.

    Raises
    ------
    ConcurrencyError
        If a concurrent transaction already inserted the same pair.
    """
    try:
        async with db.begin_nested():
            db.add(row)
    except IntegrityError as exc:
        logger.info("pair_insert_race_lost", table=row.__tablename__)
        raise ConcurrencyError() from exc
    return row


async def find_match(
    db: AsyncSession, user_a_id: uuid.UUID, user_b_id: uuid.UUID
) -> Match | None:
    """Look up the match record of a canonical pair, bypassing stale copies."""
    stmt = (
        select(Match)
        .where(Match.user_a_id == user_a_id, Match.user_b_id == user_b_id)
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def find_conversation(
    db: AsyncSession, user_a_id: uuid.UUID, user_b_id: uuid.UUID
) -> Conversation | None:
    stmt = (
        select(Conversation)
        .where(
            Conversation.user_a_id == user_a_id,
            Conversation.user_b_id == user_b_id,
        )
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def users_by_id(
    db: AsyncSession, ids: Iterable[uuid.UUID]
) -> dict[uuid.UUID, User]:
    wanted = set(ids)
    if not wanted:
        return {}
    result = await db.execute(select(User).where(User.id.in_(wanted)))
    return {user.id: user for user in result.scalars()}


async def messages_by_id(
    db: AsyncSession, ids: Iterable[int | None]
) -> dict[int, Message]:
    wanted = {i for i in ids if i is not None}
    if not wanted:
        return {}
    result = await db.execute(select(Message).where(Message.id.in_(wanted)))
    return {message.id: message for message in result.scalars()}


async def conversations_by_pair(
    db: AsyncSession, pairs: Iterable[tuple[uuid.UUID, uuid.UUID]]
) -> dict[tuple[uuid.UUID, uuid.UUID], Conversation]:
    wanted = set(pairs)
    if not wanted:
        return {}
    members = {user_id for pair in wanted for user_id in pair}
    result = await db.execute(
        select(Conversation).where(
            Conversation.user_a_id.in_(members),
            Conversation.user_b_id.in_(members),
        )
    )
    found = {}
    for conversation in result.scalars():
        key = (conversation.user_a_id, conversation.user_b_id)
        if key in wanted:
            found[key] = conversation
    return found
