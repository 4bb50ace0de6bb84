"""
DevTinder — Conversation model.

Exactly one conversation per matched pair, created lazily when the pair
becomes ``matched`` (or on the first attempt to open it).  The services
never delete it.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from devtinder.database import Base
from devtinder.models.pair import PairMixin


class Conversation(PairMixin, Base):
    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("user_a_id", "user_b_id", name="uq_conversation_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Conversation {self.user_a_id} <-> {self.user_b_id}>"
