"""Shared pytest fixtures for DevTinder tests.

The application reads its configuration when ``devtinder.database`` is
imported, so the environment is prepared before any project import.
"""
import itertools
import os
import tempfile

from cryptography.fernet import Fernet

_DB_DIR = tempfile.mkdtemp(prefix="devtinder-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["SECRET_KEY"] = Fernet.generate_key().decode()
os.environ["REDIS_URL"] = ""
os.environ["ENVIRONMENT"] = "test"

import asyncio  # noqa: E402

import pytest  # noqa: E402

from devtinder.database import Base, async_session_factory, engine  # noqa: E402
from devtinder.models import User  # noqa: E402
from devtinder.services.conversation_service import ConversationService  # noqa: E402
from devtinder.services.match_service import MatchService  # noqa: E402
from devtinder.services.realtime import ConnectionHub  # noqa: E402


async def reset_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    # Pooled aiosqlite connections must not outlive the loop that made them.
    await engine.dispose()


class FakeSocket:
    """Records every frame sent to it."""

    def __init__(self):
        self.sent = []

    async def send_json(self, data):
        self.sent.append(data)

    def events(self, name):
        return [frame["data"] for frame in self.sent if frame["event"] == name]


class BrokenSocket:
    async def send_json(self, data):
        raise RuntimeError("connection reset")


@pytest.fixture
async def db_engine():
    await reset_schema()
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    async with async_session_factory() as session:
        yield session


@pytest.fixture
def make_user(db_session):
    """Factory persisting an active user with a unique email."""
    counter = itertools.count(1)

    async def _make(name=None, is_active=True, skills=None):
        n = next(counter)
        user = User(
            email=f"dev{n}@test.dev",
            name=name or f"Dev {n}",
            bio=f"Developer number {n}",
            skills=skills if skills is not None else ["python"],
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def hub():
    return ConnectionHub()


@pytest.fixture
def conversation_service(hub):
    return ConversationService(hub)


@pytest.fixture
def match_service(hub, conversation_service):
    return MatchService(hub, conversation_service)


@pytest.fixture
def fake_socket():
    return FakeSocket()


@pytest.fixture
def fresh_schema():
    """Reset the database for tests driving the app through TestClient."""
    asyncio.run(reset_schema())
    yield


@pytest.fixture
async def matched_pair(db_session, make_user, match_service):
    """Alice and Bob, matched, with their conversation."""
    alice = await make_user("Alice")
    bob = await make_user("Bob")
    await match_service.like(db_session, alice.id, bob.id)
    outcome = await match_service.like(db_session, bob.id, alice.id)
    return alice, bob, outcome.conversation


@pytest.fixture
def make_socket():
    return FakeSocket


@pytest.fixture
def broken_socket():
    return BrokenSocket()
