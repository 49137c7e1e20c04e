"""
ASGI config for job_portal project.

It exposes the ASGI callable as a module-level variable named ``application``.

For more information on this file, see
https://docs.djangoproject.com/en/dev/howto/deployment/asgi/

"""

import os
import sys
from pathlib import Path

from django.core.asgi import get_asgi_application

# This allows easy placement of apps within the interior
# job_portal directory.
BASE_DIR = Path(__file__).resolve(strict=True).parent.parent
sys.path.append(str(BASE_DIR / "job_portal"))

# If DJANGO_SETTINGS_MODULE is unset, select a sensible default based on BUILD_ENV
# Default to local settings for the local dev image, production otherwise.
if "DJANGO_SETTINGS_MODULE" not in os.environ:
    build_env = os.environ.get("BUILD_ENV", "production").lower()
    default_settings = (
        "config.settings.local"
        if build_env == "local"
        else "config.settings.production"
    )
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", default_settings)

django_application = get_asgi_application()

from django.conf import settings  # noqa: E402

from job_portal.realtime import get_hub  # noqa: E402
from job_portal.realtime.socketio import create_socketio_app  # noqa: E402

# Socket.IO sits in front of Django because it uses BOTH:
# - HTTP long-polling (Engine.IO)
# - WebSocket upgrades
# Mounted at REALTIME_SOCKETIO_PATH to match the frontend `path`.
application = create_socketio_app(
    get_hub(),
    django_application,
    socketio_path=settings.REALTIME_SOCKETIO_PATH,
    require_participant=settings.REALTIME_REQUIRE_PARTICIPANT,
    cors_allowed_origins=settings.REALTIME_CORS_ALLOWED_ORIGINS,
)
