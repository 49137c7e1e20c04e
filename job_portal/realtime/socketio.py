"""Socket.IO transport for the conversation hub.

The frontend uses `socket.io-client` with:
- server URL: ws://<host>:8000
- `path`: settings.REALTIME_SOCKETIO_PATH (default /ws/chat/)
- `query.token` or `auth.token`: JWT access token

Events:
- client -> server: `join-conversation`, `leave-conversation` (payload: id),
  `send-message` (payload: {conversationId, message: {id}} of a stored message)
- server -> client: `new-message` ({conversationId, message})

Room state lives in ``RealtimeHub``; this module only translates socket
events into hub calls and pumps each session's mailbox onto its socket.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import parse_qs

import socketio
from channels.db import database_sync_to_async
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import TokenError

from job_portal.realtime.hub import RealtimeHub
from job_portal.realtime.hub import room_for_conversation
from job_portal.realtime.protocol import JOIN_EVENT
from job_portal.realtime.protocol import LEAVE_EVENT
from job_portal.realtime.protocol import NEW_MESSAGE_EVENT
from job_portal.realtime.protocol import SEND_EVENT

logger = logging.getLogger(__name__)

@database_sync_to_async
def _get_user_id_from_access_token(token: str) -> int:
    jwt_auth = JWTAuthentication()
    validated = jwt_auth.get_validated_token(token)
    user = jwt_auth.get_user(validated)
    return int(user.id)


@database_sync_to_async
def _user_is_participant(user_id: int | None, conversation_id: str) -> bool:
    from django.contrib.auth import get_user_model  # noqa: PLC0415

    from job_portal.conversations.exceptions import ConversationNotFound  # noqa: PLC0415
    from job_portal.conversations.services import get_conversation  # noqa: PLC0415
    from job_portal.conversations.services import is_participant  # noqa: PLC0415

    if user_id is None:
        return False
    user = get_user_model().objects.filter(pk=user_id, is_active=True).first()
    if user is None:
        return False
    try:
        conversation = get_conversation(conversation_id)
    except ConversationNotFound:
        return False
    return is_participant(user, conversation)


def _as_pk(value: Any) -> int | None:
    """Primary key from a client-supplied id; ``None`` when not a plain integer."""

    if isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text.isdecimal():
        return None
    return int(text)


@database_sync_to_async
def _load_message_payload(conversation_id: str, message_id: Any) -> dict | None:
    from job_portal.conversations.models import Message  # noqa: PLC0415
    from job_portal.realtime.events.conversations import (  # noqa: PLC0415
        build_message_payload,
    )

    conversation_pk = _as_pk(conversation_id)
    message_pk = _as_pk(message_id)
    if conversation_pk is None or message_pk is None:
        return None
    message = (
        Message.objects.select_related("sender")
        .filter(pk=message_pk, conversation_id=conversation_pk)
        .first()
    )
    if message is None:
        return None
    return build_message_payload(message)


def _extract_token(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Extract JWT token from Socket.IO environ/auth.

    Handles python-socketio environ shapes across ASGI/WSGI servers.
    """

    scope: Any = environ
    if isinstance(environ, dict) and "asgi.scope" in environ:
        inner = environ.get("asgi.scope")
        if isinstance(inner, dict):
            scope = inner

    query_string: str | bytes = ""
    if isinstance(scope, dict) and "query_string" in scope:
        query_string = scope.get("query_string", b"")
    elif isinstance(scope, dict) and "QUERY_STRING" in scope:
        query_string = scope.get("QUERY_STRING", "")

    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    token = parse_qs(str(query_string)).get("token", [None])[0]
    if isinstance(token, str) and token:
        return token

    # Allow `auth: { token }` as fallback.
    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token

    return None


def _conversation_from_payload(data: Any) -> str | None:
    """Accept a bare id or ``{"conversationId": id}``."""

    if isinstance(data, dict):
        data = data.get("conversationId")
    if isinstance(data, bool) or not isinstance(data, (str, int)):
        return None
    room = room_for_conversation(data)
    return room or None


def _message_id_from_payload(data: dict[str, Any]) -> Any:
    message = data.get("message")
    if isinstance(message, dict) and message.get("id") is not None:
        return message["id"]
    return data.get("messageId")


class ChatSocketServer:
    """Binds a ``RealtimeHub`` to a ``socketio.AsyncServer``."""

    def __init__(
        self,
        hub: RealtimeHub,
        *,
        sio: socketio.AsyncServer | None = None,
        require_participant: bool = True,
        cors_allowed_origins: str | list[str] = "*",
    ):
        self.hub = hub
        self.require_participant = require_participant
        self.sio = sio or socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=cors_allowed_origins,
            logger=False,
            engineio_logger=False,
        )
        self._pumps: dict[str, asyncio.Future] = {}

        self.sio.on("connect", self.connect)
        self.sio.on("disconnect", self.disconnect)
        self.sio.on(JOIN_EVENT, self.join_conversation)
        self.sio.on(LEAVE_EVENT, self.leave_conversation)
        self.sio.on(SEND_EVENT, self.send_message)

    async def connect(self, sid: str, environ: dict[str, Any], auth: Any | None = None):
        token = _extract_token(environ, auth)
        if not token:
            msg = "unauthorized"
            raise ConnectionRefusedError(msg)

        try:
            user_id = await _get_user_id_from_access_token(token)
        except TokenError as exc:
            message = str(exc)
            # Frontend expects this exact string to trigger refresh.
            if "expired" in message.lower():
                msg = "jwt_expired"
                raise ConnectionRefusedError(msg) from exc
            msg = "unauthorized"
            raise ConnectionRefusedError(msg) from exc
        except AuthenticationFailed as exc:  # user not found / inactive, etc.
            msg = "unauthorized"
            raise ConnectionRefusedError(msg) from exc
        except Exception as exc:
            logger.exception("Socket.IO connect error")
            msg = "server_error"
            raise ConnectionRefusedError(msg) from exc

        await self.sio.save_session(sid, {"user_id": user_id})
        session = self.hub.connect(sid, user_id=user_id)
        self._pumps[sid] = self.sio.start_background_task(self._pump, session)

    async def disconnect(self, sid: str, reason: Any = None):
        # Explicit cleanup: the hub owns room membership, not the transport.
        left = self.hub.disconnect(sid)
        self._pumps.pop(sid, None)
        logger.debug("Socket %s disconnected (%s); left %s", sid, reason, left)

    async def join_conversation(self, sid: str, data: Any):
        room = _conversation_from_payload(data)
        if room is None:
            logger.debug("Ignoring malformed %s from %s: %r", JOIN_EVENT, sid, data)
            return
        session = self.hub.session(sid)
        if session is None:
            return
        if self.require_participant and not await _user_is_participant(
            session.user_id, room
        ):
            logger.info("User %s may not join conversation %s", session.user_id, room)
            return
        self.hub.join(sid, room)

    async def leave_conversation(self, sid: str, data: Any):
        room = _conversation_from_payload(data)
        if room is not None:
            self.hub.leave(sid, room)

    async def send_message(self, sid: str, data: Any):
        """Re-announce a message that is already stored.

        The payload is only a reference; the broadcast content is reloaded
        from the database so nothing unpersisted is ever relayed.
        """

        if not isinstance(data, dict):
            return
        room = _conversation_from_payload(data)
        message_id = _message_id_from_payload(data)
        session = self.hub.session(sid)
        if room is None or message_id is None or session is None:
            logger.debug("Ignoring malformed %s from %s: %r", SEND_EVENT, sid, data)
            return
        if self.require_participant and not await _user_is_participant(
            session.user_id, room
        ):
            return
        payload = await _load_message_payload(room, message_id)
        if payload is None:
            logger.info("Message %s not found in conversation %s", message_id, room)
            return
        self.hub.publish(room, payload)

    async def _pump(self, session):
        while True:
            event = await session.next_event()
            if event is None:
                return
            try:
                await self.sio.emit(NEW_MESSAGE_EVENT, event, to=session.sid)
            except Exception:
                logger.exception("Failed to emit to %s", session.sid)


def create_socketio_app(
    hub: RealtimeHub,
    other_asgi_app=None,
    *,
    socketio_path: str = "ws/chat",
    require_participant: bool = True,
    cors_allowed_origins: str | list[str] = "*",
) -> socketio.ASGIApp:
    """ASGI app serving Socket.IO at ``socketio_path`` and Django elsewhere."""

    if isinstance(cors_allowed_origins, (list, tuple)) and "*" in cors_allowed_origins:
        cors_allowed_origins = "*"
    server = ChatSocketServer(
        hub,
        require_participant=require_participant,
        cors_allowed_origins=cors_allowed_origins,
    )
    return socketio.ASGIApp(
        server.sio,
        other_asgi_app=other_asgi_app,
        socketio_path=socketio_path.strip("/"),
        on_shutdown=hub.shutdown,
    )
