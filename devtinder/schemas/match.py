from datetime import datetime
from typing import Optional
from uuid import UUID

from devtinder.models.match import MatchStatus
from devtinder.schemas.base import CamelModel
from devtinder.schemas.message import MessageResponse
from devtinder.schemas.user import UserSummary


class MatchResponse(CamelModel):
    match_id: UUID
    other_user: Optional[UserSummary] = None
    status: MatchStatus
    unread_count: int
    last_message: Optional[MessageResponse] = None
    matched_at: Optional[datetime] = None
    bookmarked: bool = False
    conversation_id: Optional[UUID] = None


class InteractionResponse(CamelModel):
    message: str
    is_match: bool
    match: Optional[MatchResponse] = None


class BookmarkResponse(CamelModel):
    match_id: UUID
    bookmarked: bool


class MatchStatusUpdate(CamelModel):
    status: MatchStatus
