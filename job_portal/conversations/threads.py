"""Merge-by-id view of one conversation's messages.

History fetches and live broadcasts can both deliver the same message. A
renderer that feeds every source through ``ConversationThread.merge`` shows
each message exactly once, in store order, regardless of arrival order.
"""

from __future__ import annotations

from datetime import datetime
from datetime import timezone
from typing import TYPE_CHECKING
from typing import Any

from django.utils.dateparse import parse_datetime

if TYPE_CHECKING:  # import for type checking only
    from collections.abc import Iterable
    from collections.abc import Mapping

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _id_key(value: Any) -> tuple[int, int | str]:
    text = str(value)
    if text.isdecimal():
        return (0, int(text))
    return (1, text)


def _created_key(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = parse_datetime(value)
    else:
        parsed = None
    if parsed is None:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ConversationThread:
    def __init__(
        self,
        conversation_id: Any,
        messages: Iterable[Mapping[str, Any]] = (),
    ):
        self.conversation_id = str(conversation_id)
        self._by_id: dict[str, dict[str, Any]] = {}
        self.merge(messages)

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, message_id: object) -> bool:
        return str(message_id) in self._by_id

    def accepts(self, event) -> bool:
        """Whether a broadcast event belongs to this conversation."""
        return str(getattr(event, "conversation_id", "")) == self.conversation_id

    def merge(self, messages: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
        """Add unseen messages; return the ones that were new."""

        added: list[dict[str, Any]] = []
        for message in messages:
            message_id = message.get("id")
            if message_id is None:
                continue
            key = str(message_id)
            if key in self._by_id:
                continue
            record = dict(message)
            self._by_id[key] = record
            added.append(record)
        return added

    @property
    def messages(self) -> list[dict[str, Any]]:
        return sorted(
            self._by_id.values(),
            key=lambda m: (_created_key(m.get("created_at")), _id_key(m["id"])),
        )
