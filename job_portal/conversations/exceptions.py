"""Errors raised by the conversation store.

API views translate these into HTTP responses; the realtime layer logs and
ignores them.
"""


class MessagingError(Exception):
    """Base class for conversation store failures."""

    default_detail = "Messaging error."

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ConversationNotFound(MessagingError):
    default_detail = "Conversation not found."


class EmptyMessageError(MessagingError):
    default_detail = "Message content may not be empty."


class SenderNotParticipant(MessagingError):
    default_detail = "Sender is not a participant of this conversation."


class MessageImmutableError(MessagingError):
    default_detail = "Messages cannot be modified once created."
