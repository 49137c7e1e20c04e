"""Durable conversation/message operations.

These functions are the store of record for chat. Callers that create a
message are responsible for publishing it to the realtime hub afterwards
(see ``job_portal.realtime.events.conversations``).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db.models import F
from django.db.models import Max
from django.db.models.functions import Coalesce

from .exceptions import ConversationNotFound
from .exceptions import EmptyMessageError
from .exceptions import SenderNotParticipant
from .models import Conversation
from .models import Message

if TYPE_CHECKING:  # import for type checking only
    from django.db.models import QuerySet

    from job_portal.companies.models import Company
    from job_portal.users.models import User

logger = logging.getLogger(__name__)


def find_or_create_conversation(
    seeker: User,
    company: Company,
) -> tuple[Conversation, bool]:
    """Return the conversation for (seeker, company), creating it if missing.

    ``get_or_create`` retries the lookup when a concurrent insert wins the
    unique constraint, so both callers end up with the same row.
    """

    conversation, created = Conversation.objects.get_or_create(
        seeker=seeker,
        company=company,
    )
    if created:
        logger.info(
            "Conversation %s started between seeker=%s company=%s",
            conversation.pk,
            seeker.pk,
            company.pk,
        )
    return conversation, created


def list_conversations(
    *,
    seeker: User | int | None = None,
    company: Company | int | None = None,
) -> QuerySet[Conversation]:
    """Conversations of one party, most recent activity first.

    Activity is the newest message time, or the creation time for
    conversations without messages.
    """

    if (seeker is None) == (company is None):
        msg = "Filter by exactly one of seeker or company."
        raise ValueError(msg)

    qs = Conversation.objects.select_related("seeker", "company")
    qs = qs.filter(seeker=seeker) if seeker is not None else qs.filter(company=company)
    return qs.annotate(
        last_activity=Coalesce(Max("messages__created_at"), F("created_at")),
    ).order_by("-last_activity", "-id")


def list_messages(conversation: Conversation | int) -> QuerySet[Message]:
    """Messages of a conversation in creation order."""

    return (
        Message.objects.filter(conversation=conversation)
        .select_related("sender")
        .order_by("created_at", "id")
    )


def is_participant(user, conversation: Conversation) -> bool:
    """The seeker of the conversation or an operator of its company."""

    if user is None or not getattr(user, "is_authenticated", False):
        return False
    if user.pk == conversation.seeker_id:
        return True
    is_member_of = getattr(user, "is_member_of", None)
    return bool(callable(is_member_of) and is_member_of(conversation.company_id))


def can_view(user, conversation: Conversation) -> bool:
    return bool(getattr(user, "is_staff", False)) or is_participant(user, conversation)


def get_conversation(conversation_id: Conversation | int | str) -> Conversation:
    if isinstance(conversation_id, Conversation):
        return conversation_id
    try:
        pk = int(conversation_id)
    except (TypeError, ValueError) as exc:
        raise ConversationNotFound from exc
    conversation = Conversation.objects.filter(pk=pk).first()
    if conversation is None:
        raise ConversationNotFound
    return conversation


def create_message(
    conversation_id: Conversation | int | str,
    sender: User,
    content: str,
) -> Message:
    """Persist a message sent by ``sender``.

    Raises:
        EmptyMessageError: content is empty once stripped.
        ConversationNotFound: the conversation does not exist.
        SenderNotParticipant: sender is neither the seeker nor a company member.
    """

    text = (content or "").strip()
    if not text:
        raise EmptyMessageError

    conversation = get_conversation(conversation_id)
    if not is_participant(sender, conversation):
        raise SenderNotParticipant

    return Message.objects.create(
        conversation=conversation,
        sender=sender,
        content=text,
    )
