"""
DevTinder — Realtime hub.

Process-scoped registry of connected sockets grouped into rooms:

* one *personal room* per user (``user:<id>``), joined on connect;
* one room per conversation (``conversation:<id>``), joined explicitly by
  the client after it fetched or created the conversation.

Delivery is best-effort.  A socket that fails to receive is dropped and the
failure is logged; ``emit`` never raises into the service that called it,
so a push can never roll back the data write it describes.

The registry lives in this process only.  Several API instances behind a
load balancer would need a shared fan-out bus in front of it.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from typing import Any, Protocol

import structlog

logger = structlog.get_logger("devtinder.realtime")


class SocketLike(Protocol):
    async def send_json(self, data: Any) -> None: ...


class Connection:
    """One authenticated socket and the user behind it.

    Starlette's ``WebSocket`` is a mapping and therefore unhashable, so the
    hub keys its rooms on these wrappers instead.
    """

    def __init__(self, socket: SocketLike, user_id: uuid.UUID) -> None:
        self.socket = socket
        self.user_id = user_id

    async def send_json(self, data: Any) -> None:
        await self.socket.send_json(data)

    def __repr__(self) -> str:
        return f"<Connection user={self.user_id}>"


def personal_room(user_id: uuid.UUID | str) -> str:
    return f"user:{user_id}"


def conversation_room(conversation_id: uuid.UUID | str) -> str:
    return f"conversation:{conversation_id}"


class ConnectionHub:
    """Rooms of connections plus a best-effort JSON fan-out."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[Connection]] = defaultdict(set)
        self._memberships: dict[Connection, set[str]] = defaultdict(set)
        self._lock = asyncio.Lock()

    # ── Membership ────────────────────────────────────────────────────────

    async def connect(self, connection: Connection) -> None:
        await self.join(connection, personal_room(connection.user_id))
        logger.info("socket_connected", user_id=str(connection.user_id))

    async def disconnect(self, connection: Connection) -> None:
        async with self._lock:
            for room in self._memberships.pop(connection, set()):
                members = self._rooms.get(room)
                if members is None:
                    continue
                members.discard(connection)
                if not members:
                    del self._rooms[room]
        logger.info("socket_disconnected", user_id=str(connection.user_id))

    async def join(self, connection: Connection, room: str) -> None:
        async with self._lock:
            self._rooms[room].add(connection)
            self._memberships[connection].add(room)

    async def leave(self, connection: Connection, room: str) -> None:
        async with self._lock:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(connection)
                if not members:
                    del self._rooms[room]
            rooms = self._memberships.get(connection)
            if rooms is not None:
                rooms.discard(room)

    def in_room(self, connection: Connection, room: str) -> bool:
        rooms = self._memberships.get(connection)
        return rooms is not None and room in rooms

    def is_online(self, user_id: uuid.UUID | str) -> bool:
        return bool(self._rooms.get(personal_room(user_id)))

    def room_size(self, room: str) -> int:
        members = self._rooms.get(room)
        return len(members) if members else 0

    # ── Fan-out ───────────────────────────────────────────────────────────

    async def emit(
        self,
        room: str,
        event: str,
        data: dict[str, Any],
        skip: Connection | None = None,
    ) -> int:
        """Send ``{"event", "data"}`` to every connection in ``room``.

        Returns the number of connections that accepted the frame.
        """
        async with self._lock:
            members = self._rooms.get(room)
            targets = [c for c in members if c is not skip] if members else []

        delivered = 0
        dead: list[Connection] = []
        for connection in targets:
            try:
                await connection.send_json({"event": event, "data": data})
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "realtime_emit_failed",
                    room=room,
                    realtime_event=event,
                    user_id=str(connection.user_id),
                    error=str(exc),
                )
                dead.append(connection)

        for connection in dead:
            await self.disconnect(connection)

        return delivered

    async def emit_to_user(
        self, user_id: uuid.UUID | str, event: str, data: dict[str, Any]
    ) -> int:
        return await self.emit(personal_room(user_id), event, data)
