"""
DevTinder — Match record model.

One row per unordered user pair, stored in canonical order.  ``status``
only moves forward::

    pending ──► matched ──► archived | blocked
        └─────► rejected

``initiator_id`` records whose action created the row; it is never derived
from the canonical column order.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from devtinder.database import Base
from devtinder.models.pair import PairMixin


class MatchStatus(str, enum.Enum):
    PENDING = "pending"
    MATCHED = "matched"
    REJECTED = "rejected"
    ARCHIVED = "archived"
    BLOCKED = "blocked"


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Match(PairMixin, Base):
    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("user_a_id", "user_b_id", name="uq_match_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    initiator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[MatchStatus] = mapped_column(
        Enum(
            MatchStatus,
            name="match_status",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        default=MatchStatus.PENDING,
        nullable=False,
        index=True,
    )
    matched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    bookmarked_by_a: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    bookmarked_by_b: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def is_bookmarked_by(self, user_id: uuid.UUID) -> bool:
        return getattr(self, f"bookmarked_by_{self.side_of(user_id)}")

    def __repr__(self) -> str:
        return (
            f"<Match {self.user_a_id} <-> {self.user_b_id} "
            f"status={self.status.value!r}>"
        )
