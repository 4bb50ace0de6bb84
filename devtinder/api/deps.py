"""
DevTinder — Shared API dependencies.

Authentication plus accessors for the process-scoped objects created in
the application lifespan (realtime hub, rate limiter, services).
"""

from __future__ import annotations

import uuid

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from devtinder.errors import AuthenticationError
from devtinder.services.conversation_service import ConversationService
from devtinder.services.match_service import MatchService
from devtinder.services.rate_limit import MessageRateLimiter
from devtinder.utils.tokens import verify_access_token

_bearer = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> uuid.UUID:
    if credentials is None:
        raise AuthenticationError()
    return verify_access_token(credentials.credentials)


def get_rate_limiter(request: Request) -> MessageRateLimiter:
    return request.app.state.rate_limiter


def get_match_service(request: Request) -> MatchService:
    return request.app.state.match_service


def get_conversation_service(request: Request) -> ConversationService:
    return request.app.state.conversation_service
