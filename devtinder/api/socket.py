"""
DevTinder — Realtime WebSocket adapter

``/ws?token=<bearer>`` carries JSON frames ``{"event": str, "data": {...}}``
in both directions.  The handshake is rejected with close code 1008 unless
the token verifies.  Once accepted, the socket joins the user's personal
room and receives a ``connected`` frame.

Client events map onto the same service calls as the REST routes; each
event runs in its own database session.  Domain errors come back as a
``message_error`` frame and never close the socket.
"""

from __future__ import annotations

import uuid
from typing import Any, Awaitable, Callable

import pydantic
import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from devtinder.database import async_session_factory
from devtinder.errors import DevTinderError, RateLimitError, ValidationError
from devtinder.schemas.message import Attachment
from devtinder.services.realtime import Connection, conversation_room
from devtinder.utils.tokens import verify_access_token

logger = structlog.get_logger("devtinder.api.socket")

router = APIRouter()

Handler = Callable[["SocketSession", dict[str, Any]], Awaitable[None]]


def _conversation_id(data: dict[str, Any]) -> uuid.UUID:
    raw = data.get("conversationId")
    try:
        return uuid.UUID(str(raw))
    except (TypeError, ValueError) as exc:
        raise ValidationError("conversationId is required") from exc


class SocketSession:
    """Per-connection state plus the event handlers."""

    def __init__(self, websocket: WebSocket, connection: Connection) -> None:
        self.websocket = websocket
        self.connection = connection
        state = websocket.app.state
        self.hub = state.hub
        self.limiter = state.rate_limiter
        self.conversations = state.conversation_service

    @property
    def user_id(self) -> uuid.UUID:
        return self.connection.user_id

    async def send(self, event: str, data: dict[str, Any]) -> None:
        await self.connection.send_json({"event": event, "data": data})

    # ── Handlers ──────────────────────────────────────────────────────────

    async def join_conversation(self, data: dict[str, Any]) -> None:
        conversation_id = _conversation_id(data)
        async with async_session_factory() as db:
            await self.conversations.get_for_member(db, self.user_id, conversation_id)
            room = conversation_room(conversation_id)
            await self.hub.join(self.connection, room)
            delivered = await self.conversations.mark_delivered(
                db, self.user_id, conversation_id
            )
        logger.debug(
            "socket_joined",
            user_id=str(self.user_id),
            room=room,
            room_size=self.hub.room_size(room),
        )
        await self.send(
            "joined_conversation",
            {"conversationId": str(conversation_id), "delivered": len(delivered)},
        )

    async def leave_conversation(self, data: dict[str, Any]) -> None:
        conversation_id = _conversation_id(data)
        await self.hub.leave(self.connection, conversation_room(conversation_id))

    async def send_message(self, data: dict[str, Any]) -> None:
        conversation_id = _conversation_id(data)
        try:
            attachments = [
                Attachment.model_validate(a).model_dump(exclude_none=True)
                for a in data.get("attachments") or []
            ]
        except pydantic.ValidationError as exc:
            raise ValidationError("Invalid attachment") from exc

        if not await self.limiter.hit(self.user_id):
            raise RateLimitError()

        async with async_session_factory() as db:
            message = await self.conversations.send_message(
                db,
                self.user_id,
                conversation_id,
                str(data.get("text") or ""),
                attachments,
            )
        logger.debug("socket_message_sent", message_id=message.id)

    async def typing_start(self, data: dict[str, Any]) -> None:
        await self._typing(data, "user_typing")

    async def typing_stop(self, data: dict[str, Any]) -> None:
        await self._typing(data, "user_stop_typing")

    async def _typing(self, data: dict[str, Any], event: str) -> None:
        conversation_id = _conversation_id(data)
        room = conversation_room(conversation_id)
        if not self.hub.in_room(self.connection, room):
            return
        await self.hub.emit(
            room,
            event,
            {"conversationId": str(conversation_id), "userId": str(self.user_id)},
            skip=self.connection,
        )

    async def mark_messages_read(self, data: dict[str, Any]) -> None:
        conversation_id = _conversation_id(data)
        async with async_session_factory() as db:
            await self.conversations.mark_as_read(db, self.user_id, conversation_id)

    # ── Dispatch ──────────────────────────────────────────────────────────

    async def dispatch(self, frame: Any) -> None:
        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            await self.send("message_error", {"error": "Malformed frame"})
            return

        event = frame["event"]
        data = frame.get("data") or {}
        handler = _HANDLERS.get(event)
        if handler is None or not isinstance(data, dict):
            await self.send(
                "message_error", {"event": event, "error": f"Unsupported event: {event}"}
            )
            return

        try:
            await handler(self, data)
        except DevTinderError as exc:
            logger.info(
                "socket_event_rejected",
                user_id=str(self.user_id),
                socket_event=event,
                error=exc.message,
            )
            await self.send("message_error", {"event": event, "error": exc.message})


_HANDLERS: dict[str, Handler] = {
    "join_conversation": SocketSession.join_conversation,
    "leave_conversation": SocketSession.leave_conversation,
    "send_message": SocketSession.send_message,
    "typing_start": SocketSession.typing_start,
    "typing_stop": SocketSession.typing_stop,
    "mark_messages_read": SocketSession.mark_messages_read,
}

# ──────────────────────────────────────────────────────────────────────────────
# WS /ws — Realtime channel
# ──────────────────────────────────────────────────────────────────────────────

@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str = Query("")) -> None:
    try:
        user_id = verify_access_token(token)
    except DevTinderError:
        logger.info("socket_auth_rejected")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    hub = websocket.app.state.hub
    connection = Connection(websocket, user_id)
    await hub.connect(connection)
    session = SocketSession(websocket, connection)
    await session.send("connected", {"userId": str(user_id)})

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                await session.send("message_error", {"error": "Malformed frame"})
                continue
            await session.dispatch(frame)
    except WebSocketDisconnect as exc:
        logger.info("socket_closed", user_id=str(user_id), code=exc.code)
    finally:
        await hub.disconnect(connection)
