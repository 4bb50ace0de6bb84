from datetime import datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import Field

from devtinder.models.message import MessageStatus
from devtinder.schemas.base import CamelModel
from devtinder.schemas.user import UserSummary


class Attachment(CamelModel):
    type: Literal["image", "link", "code"]
    url: str = Field(min_length=1)
    preview: Optional[str] = None
    language: Optional[str] = None  # code snippets only


class MessageCreate(CamelModel):
    text: str = Field(min_length=1)
    attachments: list[Attachment] = []


class MessageResponse(CamelModel):
    id: int
    conversation_id: UUID
    sender_id: UUID
    receiver_id: UUID
    text: str
    attachments: list[Attachment] = []
    status: MessageStatus
    read_at: Optional[datetime] = None
    created_at: datetime


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int


class MessagePage(CamelModel):
    messages: list[MessageResponse]
    pagination: Pagination


class ConversationResponse(CamelModel):
    id: UUID
    members: list[UUID]
    other_user: Optional[UserSummary] = None
    unread_count: int
    last_message: Optional[MessageResponse] = None
    last_updated: datetime


class ReadReceiptResponse(CamelModel):
    message: str
    updated: int


class DeleteMessageResponse(CamelModel):
    message: str
    message_id: int
