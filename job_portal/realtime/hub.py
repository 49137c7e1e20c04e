"""In-process publish/subscribe broker keyed by conversation.

The hub knows nothing about Socket.IO or the database. It keeps two tables:

- ``sid -> HubSession`` (each session records the rooms it joined)
- ``room -> set of sids``

and delivers broadcasts by putting events in each member's mailbox. A
transport (see ``job_portal.realtime.socketio``) drains the mailboxes and
writes to the wire. Every operation returns immediately; nothing here waits
for a client.

All methods must be called from the event loop thread that drains the
mailboxes. Sync Django code hops onto that loop with ``async_to_sync``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from dataclasses import field
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAILBOX_SIZE = 256


def room_for_conversation(conversation_id: Any) -> str:
    return str(conversation_id).strip()


def build_event(room: str, message: dict[str, Any]) -> dict[str, Any]:
    """Wire shape of a broadcast: ``{conversationId, message}``."""
    return {"conversationId": room, "message": message}


@dataclass(eq=False)
class HubSession:
    """One live connection and the rooms it belongs to."""

    sid: str
    user_id: int | None = None
    mailbox_size: int = DEFAULT_MAILBOX_SIZE
    rooms: set[str] = field(default_factory=set)
    closed: bool = False
    mailbox: asyncio.Queue = field(init=False, repr=False)

    def __post_init__(self):
        self.mailbox = asyncio.Queue(maxsize=self.mailbox_size)

    def deliver(self, event: dict[str, Any]) -> bool:
        if self.closed:
            return False
        try:
            self.mailbox.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Mailbox full for session %s; dropping event for room %s",
                self.sid,
                event.get("conversationId"),
            )
            return False
        return True

    def drain(self) -> list[dict[str, Any]]:
        """Pop every queued event without waiting."""
        events: list[dict[str, Any]] = []
        while True:
            try:
                event = self.mailbox.get_nowait()
            except asyncio.QueueEmpty:
                return events
            if event is not None:
                events.append(event)

    async def next_event(self) -> dict[str, Any] | None:
        """Wait for the next event; ``None`` once the session is closed."""
        if self.closed and self.mailbox.empty():
            return None
        return await self.mailbox.get()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Pending events are discarded; the sentinel wakes a waiting reader.
        self.drain()
        self.mailbox.put_nowait(None)


class RealtimeHub:
    """Room table plus fan-out.

    Usage::

        hub = RealtimeHub()
        session = hub.connect("sid-1", user_id=7)
        hub.join("sid-1", 42)
        hub.publish(42, {"id": 1, "content": "Hello"})
        session.drain()  # [{"conversationId": "42", "message": {...}}]
    """

    def __init__(self, *, mailbox_size: int = DEFAULT_MAILBOX_SIZE):
        self.mailbox_size = mailbox_size
        self._sessions: dict[str, HubSession] = {}
        self._rooms: dict[str, set[str]] = {}

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return (
            f"<RealtimeHub sessions={len(self._sessions)} rooms={len(self._rooms)}>"
        )

    # Connections -----------------------------------------------------------
    def connect(self, sid: str, user_id: int | None = None) -> HubSession:
        session = self._sessions.get(sid)
        if session is not None and not session.closed:
            return session
        session = HubSession(sid=sid, user_id=user_id, mailbox_size=self.mailbox_size)
        self._sessions[sid] = session
        logger.debug("Session %s connected (user=%s)", sid, user_id)
        return session

    def disconnect(self, sid: str) -> set[str]:
        """Forget a session and remove it from every room it joined.

        Returns the rooms it was removed from. Unknown sids are ignored.
        """

        session = self._sessions.pop(sid, None)
        if session is None:
            return set()
        left = set(session.rooms)
        for room in left:
            self._discard_member(room, sid)
        session.rooms.clear()
        session.close()
        logger.debug("Session %s disconnected; left rooms %s", sid, sorted(left))
        return left

    def session(self, sid: str) -> HubSession | None:
        return self._sessions.get(sid)

    # Rooms -----------------------------------------------------------------
    def join(self, sid: str, conversation_id: Any) -> bool:
        session = self._sessions.get(sid)
        if session is None:
            return False
        room = room_for_conversation(conversation_id)
        if not room:
            return False
        self._rooms.setdefault(room, set()).add(sid)
        session.rooms.add(room)
        return True

    def leave(self, sid: str, conversation_id: Any) -> bool:
        """Remove ``sid`` from a room; a no-op when it was not a member."""

        room = room_for_conversation(conversation_id)
        session = self._sessions.get(sid)
        if session is None or room not in session.rooms:
            return False
        session.rooms.discard(room)
        self._discard_member(room, sid)
        return True

    def _discard_member(self, room: str, sid: str) -> None:
        members = self._rooms.get(room)
        if members is None:
            return
        members.discard(sid)
        if not members:
            del self._rooms[room]

    def publish(self, conversation_id: Any, message: dict[str, Any]) -> int:
        """Queue ``message`` for every session in the room.

        Returns how many sessions it was queued for. Sessions that are not
        connected get nothing and catch up from the store.
        """

        room = room_for_conversation(conversation_id)
        delivered = 0
        for sid in tuple(self._rooms.get(room, ())):
            session = self._sessions.get(sid)
            if session is None:
                continue
            if session.deliver(build_event(room, dict(message))):
                delivered += 1
        logger.debug("Published to room %s: %s session(s)", room, delivered)
        return delivered

    # Inspection ------------------------------------------------------------
    def members(self, conversation_id: Any) -> frozenset[str]:
        return frozenset(self._rooms.get(room_for_conversation(conversation_id), ()))

    def rooms_for(self, sid: str) -> frozenset[str]:
        session = self._sessions.get(sid)
        return frozenset(session.rooms) if session else frozenset()

    def stats(self) -> dict[str, int]:
        return {"sessions": len(self._sessions), "rooms": len(self._rooms)}

    def shutdown(self) -> None:
        """Disconnect every session (process stop)."""

        for sid in list(self._sessions):
            self.disconnect(sid)
        logger.info("Realtime hub shut down")
