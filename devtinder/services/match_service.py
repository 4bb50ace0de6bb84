"""
DevTinder — Like / Dislike State Machine & Match Queries

One match record per unordered pair, created by whoever acts first::

    (none) ──like──►    pending  (initiator = actor)
    (none) ──dislike──► rejected (initiator = actor)
    pending ──like by the non-initiator──►    matched  (+ conversation)
    pending ──dislike by the non-initiator──► rejected
    matched ──participant──► archived | blocked

A repeated like by the initiator is acknowledged without side effects;
every other re-interaction is a conflict.  Insert races on the unique pair
constraint and lost conditional status updates both surface as
``ConcurrencyError`` and re-run the read-decide-write block via tenacity.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import case, not_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from devtinder.errors import (
    ConcurrencyError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from devtinder.models.conversation import Conversation
from devtinder.models.match import Match, MatchStatus
from devtinder.models.user import User
from devtinder.schemas.match import MatchResponse
from devtinder.schemas.message import MessageResponse
from devtinder.schemas.user import UserSummary
from devtinder.services import store
from devtinder.services.conversation_service import ConversationService
from devtinder.services.pairing import UserRef, canonical_pair, parse_user_id
from devtinder.services.realtime import ConnectionHub

logger = structlog.get_logger("devtinder.match_service")

# ──────────────────────────────────────────────────────────────────────────────
# Constants
# ──────────────────────────────────────────────────────────────────────────────

MATCH_MESSAGE = "It's a match!"

# Statuses a participant may move a matched pair to
_PARTICIPANT_TRANSITIONS: frozenset[MatchStatus] = frozenset(
    {MatchStatus.ARCHIVED, MatchStatus.BLOCKED}
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class InteractionOutcome:
    """Result of a like or dislike."""

    message: str
    is_match: bool
    match: Match | None = None
    conversation: Conversation | None = None


class MatchService:
    """Interaction state machine plus the matched-pair queries.

    Dependencies are injected at construction so that tests can run the
    service with or without a realtime hub.
    """

    def __init__(
        self,
        hub: ConnectionHub | None = None,
        conversations: ConversationService | None = None,
    ) -> None:
        self.hub = hub
        self.conversations = conversations or ConversationService(hub)

    # ══════════════════════════════════════════════════════════════════════
    # Interactions
    # ══════════════════════════════════════════════════════════════════════

    async def like(
        self, db: AsyncSession, actor_id: UserRef, target_id: UserRef
    ) -> InteractionOutcome:
        """Record a like from ``actor_id`` towards ``target_id``.

        A like answering the target's pending like turns the pair into a
        match, creates their conversation and pushes ``matchCreated`` to
        both users once committed.
        """
        return await self._interact(db, actor_id, target_id, liked=True)

    async def dislike(
        self, db: AsyncSession, actor_id: UserRef, target_id: UserRef
    ) -> InteractionOutcome:
        """Record a dislike.  Never creates a conversation."""
        return await self._interact(db, actor_id, target_id, liked=False)

    async def _interact(
        self,
        db: AsyncSession,
        actor_id: UserRef,
        target_id: UserRef,
        liked: bool,
    ) -> InteractionOutcome:
        actor_id = parse_user_id(actor_id)
        target_id = parse_user_id(target_id)
        verb = "like" if liked else "dislike"
        if actor_id == target_id:
            raise ValidationError(f"Cannot {verb} yourself")

        log = logger.bind(
            actor_id=str(actor_id), target_id=str(target_id), action=verb
        )
        log.info("interaction_start")

        actor = await db.get(User, actor_id)
        target = await db.get(User, target_id)
        if actor is None or not actor.is_active:
            raise NotFoundError("User not found")
        if target is None or not target.is_active:
            raise NotFoundError("User not found")

        pair = canonical_pair(actor_id, target_id)
        async for attempt in store.pair_race_retrying():
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    log.info(
                        "interaction_retry",
                        attempt=attempt.retry_state.attempt_number,
                    )
                outcome = await self._decide(db, actor, target, pair, liked)

        await db.commit()
        log.info(
            "interaction_complete",
            result=outcome.message,
            is_match=outcome.is_match,
            match_id=str(outcome.match.id) if outcome.match else None,
        )

        if outcome.is_match:
            await self._announce_match(outcome, actor, target)
        return outcome

    async def _decide(
        self,
        db: AsyncSession,
        actor: User,
        target: User,
        pair: tuple[uuid.UUID, uuid.UUID],
        liked: bool,
    ) -> InteractionOutcome:
        """Read the pair's record and apply one step of the state machine."""
        user_a_id, user_b_id = pair
        record = await store.find_match(db, user_a_id, user_b_id)

        if record is None:
            record = await store.insert_unique(
                db,
                Match(
                    user_a_id=user_a_id,
                    user_b_id=user_b_id,
                    initiator_id=actor.id,
                    status=MatchStatus.PENDING if liked else MatchStatus.REJECTED,
                    unread_count_a=0,
                    unread_count_b=0,
                    bookmarked_by_a=False,
                    bookmarked_by_b=False,
                    matched_at=None,
                    last_message_id=None,
                ),
            )
            if liked:
                actor.remember("liked_user_ids", target.id)
                return InteractionOutcome("Like sent!", False, record)
            actor.remember("disliked_user_ids", target.id)
            return InteractionOutcome("User disliked", False, record)

        if record.status is MatchStatus.PENDING and record.initiator_id == target.id:
            if not liked:
                await self._transition(db, record, MatchStatus.PENDING, MatchStatus.REJECTED)
                actor.remember("disliked_user_ids", target.id)
                return InteractionOutcome("User disliked", False, record)

            await self._transition(
                db,
                record,
                MatchStatus.PENDING,
                MatchStatus.MATCHED,
                matched_at=_utcnow(),
            )
            conversation = await self.conversations.ensure_for_pair(
                db, user_a_id, user_b_id
            )
            actor.remember("liked_user_ids", target.id)
            actor.remember("matched_user_ids", target.id)
            target.remember("matched_user_ids", actor.id)
            return InteractionOutcome(MATCH_MESSAGE, True, record, conversation)

        if record.status is MatchStatus.PENDING and liked:
            return InteractionOutcome("Like already sent", False, record)

        raise ConflictError()

    @staticmethod
    async def _transition(
        db: AsyncSession,
        record: Match,
        expected: MatchStatus,
        new: MatchStatus,
        **values: Any,
    ) -> None:
        """Move ``record`` from ``expected`` to ``new`` or lose the race.

        Raises
        ------
        ConcurrencyError
            Another transaction changed the status first.
        """
        result = await db.execute(
            update(Match)
            .where(Match.id == record.id, Match.status == expected)
            .values(status=new, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "match_transition_race_lost",
                match_id=str(record.id),
                expected=expected.value,
                new=new.value,
            )
            raise ConcurrencyError()
        await db.refresh(record)

    async def _announce_match(
        self, outcome: InteractionOutcome, actor: User, target: User
    ) -> None:
        if self.hub is None or outcome.match is None:
            return
        conversation_id = (
            str(outcome.conversation.id) if outcome.conversation else None
        )
        for recipient, other in ((actor, target), (target, actor)):
            await self.hub.emit_to_user(
                recipient.id,
                "matchCreated",
                {
                    "matchId": str(outcome.match.id),
                    "user": UserSummary.model_validate(other).to_payload(),
                    "message": MATCH_MESSAGE,
                    "conversationId": conversation_id,
                },
            )

    # ══════════════════════════════════════════════════════════════════════
    # Queries
    # ══════════════════════════════════════════════════════════════════════

    async def list_matches(
        self, db: AsyncSession, user_id: UserRef
    ) -> list[MatchResponse]:
        """Matched pairs of ``user_id``, most recent activity first."""
        user_id = parse_user_id(user_id)
        stmt = (
            select(Match)
            .where(
                or_(Match.user_a_id == user_id, Match.user_b_id == user_id),
                Match.status == MatchStatus.MATCHED,
            )
            .order_by(Match.updated_at.desc(), Match.matched_at.desc())
        )
        records = list((await db.execute(stmt)).scalars())
        return await self.describe(db, records, user_id)

    async def get_match(
        self, db: AsyncSession, user_id: UserRef, match_id: uuid.UUID
    ) -> MatchResponse:
        user_id = parse_user_id(user_id)
        record = await self._get_for_member(db, user_id, match_id)
        return (await self.describe(db, [record], user_id))[0]

    async def _get_for_member(
        self, db: AsyncSession, user_id: uuid.UUID, match_id: uuid.UUID
    ) -> Match:
        record = await db.get(Match, match_id, populate_existing=True)
        if record is None or not record.is_member(user_id):
            raise NotFoundError("Match not found")
        return record

    async def describe(
        self,
        db: AsyncSession,
        records: list[Match],
        viewer_id: uuid.UUID,
    ) -> list[MatchResponse]:
        """Shape match records as seen by ``viewer_id``."""
        others = await store.users_by_id(
            db, (r.other_user_id(viewer_id) for r in records)
        )
        last_messages = await store.messages_by_id(
            db, (r.last_message_id for r in records)
        )
        conversations = await store.conversations_by_pair(
            db, ((r.user_a_id, r.user_b_id) for r in records)
        )

        items: list[MatchResponse] = []
        for record in records:
            other = others.get(record.other_user_id(viewer_id))
            last = last_messages.get(record.last_message_id)
            conversation = conversations.get((record.user_a_id, record.user_b_id))
            items.append(
                MatchResponse(
                    match_id=record.id,
                    other_user=UserSummary.model_validate(other) if other else None,
                    status=record.status,
                    unread_count=record.unread_for(viewer_id),
                    last_message=MessageResponse.model_validate(last) if last else None,
                    matched_at=record.matched_at,
                    bookmarked=record.is_bookmarked_by(viewer_id),
                    conversation_id=conversation.id if conversation else None,
                )
            )
        return items

    async def potential_matches(
        self,
        db: AsyncSession,
        user_id: UserRef,
        limit: int = 20,
        offset: int = 0,
    ) -> list[User]:
        """Active users ``user_id`` has not acted on yet.

        Users whose like towards ``user_id`` is still pending stay visible
        so the like can be answered.
        """
        user_id = parse_user_id(user_id)
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")

        other_side = case(
            (Match.user_a_id == user_id, Match.user_b_id),
            else_=Match.user_a_id,
        )
        acted_on = select(other_side).where(
            or_(Match.user_a_id == user_id, Match.user_b_id == user_id),
            or_(Match.initiator_id == user_id, Match.status != MatchStatus.PENDING),
        )
        stmt = (
            select(User)
            .where(
                User.is_active.is_(True),
                User.id != user_id,
                User.id.not_in(acted_on),
            )
            .order_by(User.created_at.desc(), User.id)
            .offset(offset)
            .limit(limit)
        )
        return list((await db.execute(stmt)).scalars())

    # ══════════════════════════════════════════════════════════════════════
    # Participant actions
    # ══════════════════════════════════════════════════════════════════════

    async def toggle_bookmark(
        self, db: AsyncSession, user_id: UserRef, match_id: uuid.UUID
    ) -> bool:
        """Flip the caller's bookmark flag and return its new value."""
        user_id = parse_user_id(user_id)
        record = await self._get_for_member(db, user_id, match_id)
        column = getattr(Match, f"bookmarked_by_{record.side_of(user_id)}")

        await db.execute(
            update(Match)
            .where(Match.id == record.id)
            .values({column.key: not_(column)})
            .execution_options(synchronize_session=False)
        )
        await db.refresh(record)
        await db.commit()

        bookmarked = record.is_bookmarked_by(user_id)
        logger.info(
            "match_bookmark_toggled",
            match_id=str(record.id),
            user_id=str(user_id),
            bookmarked=bookmarked,
        )
        return bookmarked

    async def update_match_status(
        self,
        db: AsyncSession,
        user_id: UserRef,
        match_id: uuid.UUID,
        status: MatchStatus | str,
    ) -> Match:
        """Archive or block a matched pair.

        Raises
        ------
        ValidationError
            ``status`` is not ``archived`` or ``blocked``.
        ConflictError
            The pair is not currently ``matched``.
        """
        user_id = parse_user_id(user_id)
        try:
            status = MatchStatus(status)
        except ValueError as exc:
            raise ValidationError(f"Unknown match status: {status!r}") from exc
        if status not in _PARTICIPANT_TRANSITIONS:
            raise ValidationError("Matches can only be archived or blocked")

        record = await self._get_for_member(db, user_id, match_id)
        if record.status is not MatchStatus.MATCHED:
            raise ConflictError(
                f"Cannot change a {record.status.value} match to {status.value}"
            )

        try:
            await self._transition(db, record, MatchStatus.MATCHED, status)
        except ConcurrencyError as exc:
            raise ConflictError("The match was changed by the other user") from exc
        await db.commit()

        logger.info(
            "match_status_updated",
            match_id=str(record.id),
            user_id=str(user_id),
            status=status.value,
        )
        return record
