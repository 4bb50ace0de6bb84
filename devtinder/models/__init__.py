"""
DevTinder — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from devtinder.models.user import User
from devtinder.models.match import Match, MatchStatus
from devtinder.models.conversation import Conversation
from devtinder.models.message import Message, MessageStatus

__all__ = [
    "User",
    "Match",
    "MatchStatus",
    "Conversation",
    "Message",
    "MessageStatus",
]
