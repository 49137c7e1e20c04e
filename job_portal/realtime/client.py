"""Client side of the conversation hub.

``ConversationSocketClient`` keeps one Socket.IO connection per browser tab
(or bot, or test harness) and exposes:

- ``is_connected``: updated as the transport connects, drops or errors
- ``join_conversation`` / ``leave_conversation`` / ``send_message``:
  fire-and-forget; dropped while disconnected
- ``events()``: every inbound ``new-message`` broadcast, unfiltered

When the hub is unreachable the client gives up after a bounded number of
attempts and stays disconnected. Sending still works through the REST API;
new messages then show up on the next history fetch.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from typing import Any

import socketio
from socketio.exceptions import BadNamespaceError
from socketio.exceptions import ConnectionError as SocketConnectionError

from job_portal.realtime.protocol import JOIN_EVENT
from job_portal.realtime.protocol import LEAVE_EVENT
from job_portal.realtime.protocol import NEW_MESSAGE_EVENT
from job_portal.realtime.protocol import SEND_EVENT

if TYPE_CHECKING:  # import for type checking only
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

DEFAULT_SOCKETIO_PATH = "ws/chat"
CONNECT_TIMEOUT = 5
MAX_RETRIES = 3
RETRY_DELAY = 2.0


@dataclass(frozen=True)
class MessageEvent:
    conversation_id: str
    message: dict[str, Any]


def parse_message_event(data: Any) -> MessageEvent | None:
    """Validate a ``new-message`` payload; ``None`` when malformed."""

    if not isinstance(data, dict):
        return None
    conversation_id = data.get("conversationId")
    if isinstance(conversation_id, bool) or not isinstance(conversation_id, (str, int)):
        return None
    conversation_id = str(conversation_id).strip()
    if not conversation_id:
        return None
    message = data.get("message")
    if not isinstance(message, dict) or message.get("id") in (None, ""):
        return None
    return MessageEvent(conversation_id=conversation_id, message=message)


class ConversationSocketClient:
    def __init__(  # noqa: PLR0913
        self,
        url: str,
        *,
        token: str | None = None,
        socketio_path: str = DEFAULT_SOCKETIO_PATH,
        transports: tuple[str, ...] = ("websocket", "polling"),
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        connect_timeout: float = CONNECT_TIMEOUT,
        sio: socketio.AsyncClient | None = None,
    ):
        self.url = url
        self.token = token
        self.socketio_path = socketio_path
        self.transports = list(transports)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.connect_timeout = connect_timeout
        self.sio = sio or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=max_retries,
            reconnection_delay=retry_delay,
            reconnection_delay_max=retry_delay,
            randomization_factor=0,
            request_timeout=connect_timeout,
            logger=False,
            engineio_logger=False,
        )
        self._connected = False
        self._rooms: set[str] = set()
        self._events: asyncio.Queue[MessageEvent] = asyncio.Queue()

        self.sio.on("connect", self._on_connect)
        self.sio.on("disconnect", self._on_disconnect)
        self.sio.on("connect_error", self._on_connect_error)
        self.sio.on(NEW_MESSAGE_EVENT, self._on_new_message)

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def rooms(self) -> frozenset[str]:
        """Conversations this client wants to be joined to."""
        return frozenset(self._rooms)

    # Connection ------------------------------------------------------------
    async def connect(self) -> bool:
        """Connect with bounded retries.

        Returns False (and stays in API-only mode) once the initial attempt
        and ``max_retries`` retries have all failed.
        """

        if self.sio.connected:
            self._connected = True
            return True

        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                await self.sio.connect(
                    self.url,
                    auth={"token": self.token} if self.token else None,
                    transports=self.transports,
                    socketio_path=self.socketio_path,
                    wait_timeout=self.connect_timeout,
                )
            except SocketConnectionError as exc:
                # Lost a race with a concurrent connect; the transport is up.
                if self.sio.connected:
                    self._connected = True
                    return True
                self._connected = False
                if attempt >= attempts:
                    logger.warning(
                        "Realtime hub unreachable after %s attempts (%s); "
                        "continuing without live updates",
                        attempts,
                        exc,
                    )
                    return False
                logger.info(
                    "Retrying realtime connection (%s/%s)...",
                    attempt,
                    self.max_retries,
                )
                await asyncio.sleep(self.retry_delay)
            else:
                self._connected = True
                return True
        return False

    async def disconnect(self) -> None:
        self._connected = False
        await self.sio.disconnect()

    # Rooms -----------------------------------------------------------------
    async def join_conversation(self, conversation_id: Any) -> bool:
        room = str(conversation_id)
        # Remembered so the room is re-joined after a reconnect.
        self._rooms.add(room)
        return await self._emit(JOIN_EVENT, room)

    async def leave_conversation(self, conversation_id: Any) -> bool:
        room = str(conversation_id)
        self._rooms.discard(room)
        return await self._emit(LEAVE_EVENT, room)

    async def send_message(self, data: dict[str, Any]) -> bool:
        """Ask the hub to re-announce a message already saved via the API."""

        sent = await self._emit(SEND_EVENT, data)
        if not sent:
            logger.debug("Realtime not connected, message will be sent via API only")
        return sent

    async def _emit(self, event: str, data: Any) -> bool:
        if not self._connected:
            return False
        try:
            await self.sio.emit(event, data)
        except BadNamespaceError:
            self._connected = False
            return False
        return True

    # Inbound ---------------------------------------------------------------
    async def next_event(self, timeout: float | None = None) -> MessageEvent:
        if timeout is None:
            return await self._events.get()
        return await asyncio.wait_for(self._events.get(), timeout)

    async def events(self) -> AsyncIterator[MessageEvent]:
        while True:
            yield await self._events.get()

    def pending_events(self) -> list[MessageEvent]:
        drained: list[MessageEvent] = []
        while not self._events.empty():
            drained.append(self._events.get_nowait())
        return drained

    # Transport callbacks ---------------------------------------------------
    async def _on_connect(self):
        self._connected = True
        logger.info("Connected to realtime hub %s", self.url)
        for room in sorted(self._rooms):
            await self.sio.emit(JOIN_EVENT, room)

    async def _on_disconnect(self, reason: Any = None):
        self._connected = False
        logger.info("Disconnected from realtime hub (%s)", reason)

    async def _on_connect_error(self, data: Any = None):
        self._connected = False
        logger.warning("Realtime connection error: %s", data)

    async def _on_new_message(self, data: Any):
        event = parse_message_event(data)
        if event is None:
            logger.debug("Dropping malformed %s payload: %r", NEW_MESSAGE_EVENT, data)
            return
        self._events.put_nowait(event)
