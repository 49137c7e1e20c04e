from django.apps import AppConfig
from django.conf import settings
from django.utils.translation import gettext_lazy as _


class RealtimeConfig(AppConfig):
    name = "job_portal.realtime"
    verbose_name = _("Realtime")

    def ready(self):
        from job_portal.realtime.hub import RealtimeHub  # noqa: PLC0415

        self.hub = RealtimeHub(
            mailbox_size=getattr(settings, "REALTIME_MAILBOX_SIZE", 256),
        )
