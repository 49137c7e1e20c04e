from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from .exceptions import MessageImmutableError


class Conversation(models.Model):
    """Messaging channel between one seeker and one company.

    At most one row exists per (seeker, company) pair; the unique constraint
    is what makes ``find_or_create_conversation`` safe under concurrent calls.
    """

    seeker = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="seeker_conversations",
    )
    company = models.ForeignKey(
        "companies.Company",
        on_delete=models.CASCADE,
        related_name="conversations",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["seeker", "company"],
                name="unique_conversation_per_seeker_company",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Conversation({self.seeker_id} <-> {self.company_id})"

    @property
    def room(self) -> str:
        """Realtime room key for this conversation."""
        return str(self.pk)


class Message(models.Model):
    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="sent_messages",
    )
    content = models.TextField(help_text=_("Non-empty message text"))
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Message({self.pk}) in {self.conversation_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise MessageImmutableError
        super().save(*args, **kwargs)
