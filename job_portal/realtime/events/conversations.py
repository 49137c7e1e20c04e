from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from asgiref.sync import async_to_sync
from django.db.transaction import on_commit

from job_portal.realtime import get_hub

if TYPE_CHECKING:  # import for type checking only
    from job_portal.conversations.models import Message
    from job_portal.realtime.hub import RealtimeHub

logger = logging.getLogger(__name__)


def build_message_payload(message: Message) -> dict[str, Any]:
    """Same record shape the REST API returns for a message."""

    from job_portal.conversations.api.serializers import (  # noqa: PLC0415
        MessageSerializer,
    )

    return dict(MessageSerializer(message).data)


async def _publish(hub: RealtimeHub, room: str, payload: dict[str, Any]) -> int:
    return hub.publish(room, payload)


def publish_message_created(
    message: Message,
    *,
    hub: RealtimeHub | None = None,
) -> int:
    """Broadcast a persisted message to its conversation room.

    Safe to call from sync Django code. A failing hub is logged and reported
    as zero deliveries; the message is already durable and peers will see it
    on their next history fetch.
    """

    room = str(message.conversation_id)
    try:
        target = hub if hub is not None else get_hub()
        payload = build_message_payload(message)
        return async_to_sync(_publish)(target, room, payload)
    except Exception:
        logger.exception("Realtime publish failed for conversation %s", room)
        return 0


def publish_message_on_commit(
    message: Message,
    *,
    hub: RealtimeHub | None = None,
) -> None:
    """Broadcast only after the message row is committed."""

    on_commit(lambda: publish_message_created(message, hub=hub))
