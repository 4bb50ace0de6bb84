from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field

from devtinder.schemas.base import CamelModel


class UserCreate(CamelModel):
    email: str = Field(min_length=3, max_length=320)
    name: str = Field(min_length=1, max_length=100)
    bio: Optional[str] = Field(None, max_length=1000)
    avatar: Optional[str] = None
    skills: list[str] = []


class UserSummary(CamelModel):
    id: UUID
    name: str
    avatar: Optional[str] = None
    bio: Optional[str] = None
    skills: list[str] = []


class UserResponse(UserSummary):
    email: str
    is_active: bool
    created_at: datetime


class UserCreatedResponse(UserResponse):
    access_token: str
