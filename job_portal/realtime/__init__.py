"""Realtime infrastructure (Socket.IO, in-process hub).

The hub is owned by the ``realtime`` app config and created when Django
starts. Request handling code asks for it through ``get_hub()`` or receives
it as an argument; nothing imports a module-level broker.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # import for type checking only
    from .hub import RealtimeHub


def get_hub() -> RealtimeHub:
    from django.apps import apps  # noqa: PLC0415

    return apps.get_app_config("realtime").hub
