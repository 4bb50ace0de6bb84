"""
DevTinder — Columns and helpers shared by pair-keyed tables.

Both ``matches`` and ``conversations`` store their two users in canonical
order (``user_a_id < user_b_id``) and keep one unread counter per side.
"""

import uuid

from sqlalchemy import BigInteger, ForeignKey, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

MessageId = BigInteger().with_variant(Integer, "sqlite")


class PairMixin:
    user_a_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    user_b_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    unread_count_a: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    unread_count_b: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    last_message_id: Mapped[int | None] = mapped_column(
        MessageId, nullable=True
    )

    def is_member(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.user_a_id, self.user_b_id)

    def side_of(self, user_id: uuid.UUID) -> str:
        """Return ``"a"`` or ``"b"`` for a member of the pair."""
        if user_id == self.user_a_id:
            return "a"
        if user_id == self.user_b_id:
            return "b"
        raise ValueError(f"{user_id} is not part of this pair")

    def other_user_id(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user_b_id if self.side_of(user_id) == "a" else self.user_a_id

    def unread_for(self, user_id: uuid.UUID) -> int:
        return getattr(self, f"unread_count_{self.side_of(user_id)}")

    @property
    def unread_count(self) -> dict[str, int]:
        return {
            str(self.user_a_id): self.unread_count_a,
            str(self.user_b_id): self.unread_count_b,
        }
