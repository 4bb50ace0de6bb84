"""
DevTinder — User model.

Profiles are owned by the user/profile collaborator; this table carries
what the matching core reads (existence, ``is_active``) and the
denormalized like/dislike/match caches it appends to.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, String, Text, Uuid, func, true
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from devtinder.database import Base

JSONList = JSON().with_variant(JSONB(), "postgresql")


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(
        String, unique=True, index=True, nullable=False
    )
    name: Mapped[str] = mapped_column(String, nullable=False)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="Opaque URL from file storage"
    )
    skills: Mapped[list] = mapped_column(JSONList, default=list, nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )

    # ── Denormalized caches (not the source of truth for match state) ──
    liked_user_ids: Mapped[list] = mapped_column(
        JSONList, default=list, nullable=False
    )
    disliked_user_ids: Mapped[list] = mapped_column(
        JSONList, default=list, nullable=False
    )
    matched_user_ids: Mapped[list] = mapped_column(
        JSONList, default=list, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )

    def remember(self, cache: str, other_id: uuid.UUID) -> None:
        """Append ``other_id`` to one of the id caches if it is not there.

        The list is reassigned rather than mutated so the ORM sees the
        change on a plain JSON column.
        """
        current: list = list(getattr(self, cache) or [])
        if str(other_id) not in current:
            current.append(str(other_id))
            setattr(self, cache, current)

    def __repr__(self) -> str:
        return f"<User {self.email!r} id={self.id}>"
