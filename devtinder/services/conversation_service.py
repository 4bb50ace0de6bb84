"""
DevTinder — Conversation & Message Orchestration

Owns the message thread of every matched pair:

* lazy, race-safe creation of the single conversation per pair;
* sending, with one atomic UPDATE per parent row that moves the
  ``last_message_id`` pointer forward and increments the receiver's unread
  counter (``unread_count_x = unread_count_x + 1``, never read-then-write);
* bulk read / delivery transitions (``sent → delivered → read``);
* sender-only deletion with pointer and counter repair.

Every mutating method commits the session it is given and only then pushes
realtime events through the hub.  A failed push never undoes the write.
"""

from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import case, func, null, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from devtinder.config import get_settings
from devtinder.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from devtinder.models.conversation import Conversation
from devtinder.models.match import Match, MatchStatus
from devtinder.models.message import Message, MessageStatus
from devtinder.models.pair import PairMixin
from devtinder.models.user import User
from devtinder.schemas.message import ConversationResponse, MessageResponse
from devtinder.schemas.user import UserSummary
from devtinder.services import store
from devtinder.services.pairing import UserRef, canonical_pair, parse_user_id
from devtinder.services.realtime import ConnectionHub, conversation_room

logger = structlog.get_logger("devtinder.conversation_service")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationService:
    """Conversation lookup/creation and message lifecycle.

    The hub is optional so that scripts can reuse the service without a
    realtime layer; without it no events are pushed.
    """

    def __init__(self, hub: ConnectionHub | None = None) -> None:
        self.hub = hub
        settings = get_settings()
        self.max_message_length: int = settings.MAX_MESSAGE_LENGTH
        self.page_size: int = settings.MESSAGE_PAGE_SIZE

    # ══════════════════════════════════════════════════════════════════════
    # Lookup / creation
    # ══════════════════════════════════════════════════════════════════════

    async def ensure_for_pair(
        self,
        db: AsyncSession,
        user_a_id: uuid.UUID,
        user_b_id: uuid.UUID,
    ) -> Conversation:
        """Return the pair's conversation, creating it if needed.

        Expects a canonical pair and does not check the match status; the
        caller has already established it.  Does not commit.
        """
        async for attempt in store.pair_race_retrying():
            with attempt:
                conversation = await store.find_conversation(db, user_a_id, user_b_id)
                if conversation is None:
                    conversation = await store.insert_unique(
                        db,
                        Conversation(
                            user_a_id=user_a_id,
                            user_b_id=user_b_id,
                            unread_count_a=0,
                            unread_count_b=0,
                            last_message_id=None,
                            last_updated=_utcnow(),
                        ),
                    )
                    logger.info(
                        "conversation_created",
                        conversation_id=str(conversation.id),
                    )
        return conversation

    async def get_or_create_conversation(
        self,
        db: AsyncSession,
        user_id: UserRef,
        other_user_id: UserRef,
    ) -> Conversation:
        """Open the conversation with a matched user.

        Raises
        ------
        ValidationError
            Malformed ids or ``user_id == other_user_id``.
        AuthorizationError
            The pair is not ``matched`` or the other user is inactive.
        """
        user_a_id, user_b_id = canonical_pair(user_id, other_user_id)
        other_id = parse_user_id(other_user_id)
        log = logger.bind(user_id=str(user_id), other_user_id=str(other_id))

        match = await store.find_match(db, user_a_id, user_b_id)
        if match is None or match.status is not MatchStatus.MATCHED:
            log.info("conversation_refused_not_matched")
            raise AuthorizationError("You can only message matched users")

        other = await db.get(User, other_id)
        if other is None or not other.is_active:
            raise AuthorizationError("This user is no longer active")

        conversation = await self.ensure_for_pair(db, user_a_id, user_b_id)
        await db.commit()
        return conversation

    async def get_for_member(
        self,
        db: AsyncSession,
        user_id: UserRef,
        conversation_id: uuid.UUID,
        lock: bool = False,
    ) -> Conversation:
        """Load a conversation the user belongs to.

        With ``lock`` the row is held ``FOR UPDATE`` until commit, which
        serializes counter writers on the same conversation.
        """
        conversation = await db.get(
            Conversation,
            conversation_id,
            populate_existing=True,
            with_for_update=lock,
        )
        if conversation is None:
            raise NotFoundError("Conversation not found")
        if not conversation.is_member(parse_user_id(user_id)):
            raise AuthorizationError(
                "You are not authorized to access this conversation"
            )
        return conversation

    async def _require_matched(
        self, db: AsyncSession, conversation: Conversation
    ) -> Match:
        match = await store.find_match(db, conversation.user_a_id, conversation.user_b_id)
        if match is None or match.status is not MatchStatus.MATCHED:
            logger.warning(
                "conversation_without_active_match",
                conversation_id=str(conversation.id),
                status=match.status.value if match else None,
            )
            raise AuthorizationError("You can only message matched users")
        return match

    # ══════════════════════════════════════════════════════════════════════
    # Listing
    # ══════════════════════════════════════════════════════════════════════

    async def list_conversations(
        self, db: AsyncSession, user_id: UserRef
    ) -> list[ConversationResponse]:
        """Every conversation of ``user_id``, most recently active first."""
        user_id = parse_user_id(user_id)
        stmt = (
            select(Conversation)
            .where(or_(Conversation.user_a_id == user_id, Conversation.user_b_id == user_id))
            .order_by(Conversation.last_updated.desc(), Conversation.created_at.desc())
        )
        conversations = list((await db.execute(stmt)).scalars())
        return await self.describe(db, conversations, user_id)

    async def describe(
        self,
        db: AsyncSession,
        conversations: list[Conversation],
        viewer_id: uuid.UUID,
    ) -> list[ConversationResponse]:
        """Shape conversations as seen by ``viewer_id``."""
        others = await store.users_by_id(
            db, (c.other_user_id(viewer_id) for c in conversations)
        )
        last_messages = await store.messages_by_id(
            db, (c.last_message_id for c in conversations)
        )

        items: list[ConversationResponse] = []
        for conversation in conversations:
            other = others.get(conversation.other_user_id(viewer_id))
            last = last_messages.get(conversation.last_message_id)
            items.append(
                ConversationResponse(
                    id=conversation.id,
                    members=[conversation.user_a_id, conversation.user_b_id],
                    other_user=UserSummary.model_validate(other) if other else None,
                    unread_count=conversation.unread_for(viewer_id),
                    last_message=MessageResponse.model_validate(last) if last else None,
                    last_updated=conversation.last_updated,
                )
            )
        return items

    async def list_messages(
        self,
        db: AsyncSession,
        user_id: UserRef,
        conversation_id: uuid.UUID,
        page: int = 1,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """Return one page of messages, newest first.

        Returns
        -------
        dict
            ``{"messages": [Message, ...], "pagination": {page, limit,
            total, pages}}``.
        """
        conversation = await self.get_for_member(db, user_id, conversation_id)
        limit = limit or self.page_size
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        total = (
            await db.execute(
                select(func.count())
                .select_from(Message)
                .where(Message.conversation_id == conversation.id)
            )
        ).scalar_one()

        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation.id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        messages = list((await db.execute(stmt)).scalars())

        return {
            "messages": messages,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit),
            },
        }

    # ══════════════════════════════════════════════════════════════════════
    # Sending
    # ══════════════════════════════════════════════════════════════════════

    async def send_message(
        self,
        db: AsyncSession,
        sender_id: UserRef,
        conversation_id: uuid.UUID,
        text: str,
        attachments: list[dict] | None = None,
    ) -> Message:
        """Persist a message and update both parent rows atomically.

        Steps:
          1. Sender must be a member (AuthorizationError); the
             conversation row stays locked until commit.
          2. The pair's match record must still be ``matched``.
          3. Insert the message as ``sent``.
          4. Conversation: pointer, ``last_updated``, receiver unread + 1.
          5. Match record: pointer, receiver unread + 1.
          6. Commit, then push ``receiveMessage`` to the conversation room
             and ``newMessage`` to the receiver's personal room.
        """
        sender_id = parse_user_id(sender_id)
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message content is required")
        if len(text) > self.max_message_length:
            raise ValidationError(
                f"Message exceeds {self.max_message_length} characters"
            )

        conversation = await self.get_for_member(db, sender_id, conversation_id, lock=True)
        match = await self._require_matched(db, conversation)
        receiver_id = conversation.other_user_id(sender_id)
        log = logger.bind(
            conversation_id=str(conversation.id),
            sender_id=str(sender_id),
            receiver_id=str(receiver_id),
        )

        message = Message(
            conversation_id=conversation.id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            text=text,
            attachments=list(attachments or []),
            status=MessageStatus.SENT,
            read_at=None,
        )
        db.add(message)
        await db.flush()

        side = conversation.side_of(receiver_id)
        await self._advance(db, Conversation, conversation.id, message.id, side, last_updated=_utcnow())
        await self._advance(db, Match, match.id, message.id, side)
        await db.refresh(conversation)
        await db.refresh(match)
        await db.commit()

        log.info("message_sent", message_id=message.id)

        if self.hub is not None:
            payload = MessageResponse.model_validate(message).to_payload()
            await self.hub.emit(conversation_room(conversation.id), "receiveMessage", payload)
            await self.hub.emit_to_user(
                receiver_id,
                "newMessage",
                {"message": payload, "conversationId": str(conversation.id)},
            )
        return message

    @staticmethod
    async def _advance(
        db: AsyncSession,
        model: type[PairMixin],
        row_id: uuid.UUID,
        message_id: int,
        side: str,
        **extra: Any,
    ) -> None:
        """Point ``model`` at ``message_id`` and bump one unread counter.

        The pointer only moves to a newer id, so two concurrent sends
        committing out of order still leave it on the latest message.
        """
        unread = getattr(model, f"unread_count_{side}")
        pointer = model.last_message_id
        stmt = (
            update(model)
            .where(model.id == row_id)
            .values(
                {
                    f"unread_count_{side}": unread + 1,
                    "last_message_id": case(
                        (or_(pointer.is_(None), pointer < message_id), message_id),
                        else_=pointer,
                    ),
                    **extra,
                }
            )
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)

    # ══════════════════════════════════════════════════════════════════════
    # Read / delivery state
    # ══════════════════════════════════════════════════════════════════════

    async def mark_as_read(
        self,
        db: AsyncSession,
        user_id: UserRef,
        conversation_id: uuid.UUID,
    ) -> int:
        """Mark every unread message addressed to ``user_id`` as read.

        Zeroes the user's counter on the conversation and the match record.
        The conversation row is locked first so a send cannot slip in between
        the message update and the counter reset.
        Idempotent: a second call updates nothing and emits nothing.

        Returns
        -------
        int
            Number of messages that transitioned to ``read``.
        """
        user_id = parse_user_id(user_id)
        conversation = await self.get_for_member(db, user_id, conversation_id, lock=True)
        side = conversation.side_of(user_id)

        result = await db.execute(
            update(Message)
            .where(
                Message.conversation_id == conversation.id,
                Message.receiver_id == user_id,
                Message.status != MessageStatus.READ,
            )
            .values(status=MessageStatus.READ, read_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        updated = result.rowcount or 0

        match = await store.find_match(db, conversation.user_a_id, conversation.user_b_id)
        await self._reset_unread(db, Conversation, conversation.id, side)
        if match is not None:
            await self._reset_unread(db, Match, match.id, side)
        await db.refresh(conversation)
        await db.commit()

        logger.info(
            "messages_marked_read",
            conversation_id=str(conversation.id),
            user_id=str(user_id),
            updated=updated,
        )

        if updated and self.hub is not None:
            await self.hub.emit_to_user(
                conversation.other_user_id(user_id),
                "messages_read",
                {"conversationId": str(conversation.id), "by": str(user_id)},
            )
        return updated

    @staticmethod
    async def _reset_unread(
        db: AsyncSession, model: type[PairMixin], row_id: uuid.UUID, side: str
    ) -> None:
        unread = getattr(model, f"unread_count_{side}")
        await db.execute(
            update(model)
            .where(model.id == row_id, unread != 0)
            .values({f"unread_count_{side}": 0})
            .execution_options(synchronize_session=False)
        )

    async def mark_delivered(
        self,
        db: AsyncSession,
        user_id: UserRef,
        conversation_id: uuid.UUID,
    ) -> list[int]:
        """Move ``sent`` messages addressed to ``user_id`` to ``delivered``.

        Messages already ``read`` are left alone.  The other participant is
        told which of their messages were delivered.
        """
        user_id = parse_user_id(user_id)
        conversation = await self.get_for_member(db, user_id, conversation_id)

        pending = select(Message.id).where(
            Message.conversation_id == conversation.id,
            Message.receiver_id == user_id,
            Message.status == MessageStatus.SENT,
        )
        ids = list((await db.execute(pending)).scalars())
        if not ids:
            return []

        await db.execute(
            update(Message)
            .where(Message.id.in_(ids), Message.status == MessageStatus.SENT)
            .values(status=MessageStatus.DELIVERED)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        if self.hub is not None:
            await self.hub.emit_to_user(
                conversation.other_user_id(user_id),
                "message_status",
                {
                    "conversationId": str(conversation.id),
                    "status": MessageStatus.DELIVERED.value,
                    "messageIds": ids,
                },
            )
        return ids

    # ══════════════════════════════════════════════════════════════════════
    # Deletion
    # ══════════════════════════════════════════════════════════════════════

    async def delete_message(
        self,
        db: AsyncSession,
        user_id: UserRef,
        message_id: int,
    ) -> None:
        """Hard-delete a message; only its sender may do so.

        If the message was unread, the receiver's counters drop by one
        (floored at zero).  Any ``last_message_id`` pointing at it moves to
        the newest remaining message, or ``NULL`` when none remain.
        """
        user_id = parse_user_id(user_id)
        message = await db.get(Message, message_id, populate_existing=True)
        if message is None:
            raise NotFoundError("Message not found")
        if message.sender_id != user_id:
            raise AuthorizationError("Only the sender can delete a message")

        conversation = await db.get(
            Conversation,
            message.conversation_id,
            populate_existing=True,
            with_for_update=True,
        )
        if conversation is None:
            raise ConflictError("Message belongs to no conversation")
        # Status as committed once the conversation lock is held.
        message = await db.get(Message, message_id, populate_existing=True)
        if message is None:
            raise NotFoundError("Message not found")
        match = await store.find_match(db, conversation.user_a_id, conversation.user_b_id)

        was_unread = message.status is not MessageStatus.READ
        side = conversation.side_of(message.receiver_id)

        await db.delete(message)
        await db.flush()

        replacement = (
            await db.execute(
                select(Message.id)
                .where(Message.conversation_id == conversation.id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(1)
            )
        ).scalar_one_or_none()

        await self._repair(db, Conversation, conversation.id, message_id, replacement, side, was_unread)
        if match is not None:
            await self._repair(db, Match, match.id, message_id, replacement, side, was_unread)
        await db.refresh(conversation)
        await db.commit()

        logger.info(
            "message_deleted",
            message_id=message_id,
            conversation_id=str(conversation.id),
            replacement_id=replacement,
        )

        if self.hub is not None:
            await self.hub.emit(
                conversation_room(conversation.id),
                "messageDeleted",
                {"messageId": message_id, "conversationId": str(conversation.id)},
            )

    @staticmethod
    async def _repair(
        db: AsyncSession,
        model: type[PairMixin],
        row_id: uuid.UUID,
        deleted_id: int,
        replacement_id: int | None,
        side: str,
        was_unread: bool,
    ) -> None:
        pointer = model.last_message_id
        values: dict[str, Any] = {
            "last_message_id": case(
                (pointer == deleted_id, replacement_id if replacement_id is not None else null()),
                else_=pointer,
            ),
        }
        if was_unread:
            unread = getattr(model, f"unread_count_{side}")
            values[f"unread_count_{side}"] = case((unread > 0, unread - 1), else_=0)

        await db.execute(
            update(model)
            .where(model.id == row_id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
