from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework import serializers

from job_portal.companies.models import Company
from job_portal.conversations.models import Conversation
from job_portal.conversations.models import Message

User = get_user_model()


class MessageSerializer(serializers.ModelSerializer):
    """Read serializer; also the ``message`` record of realtime broadcasts."""

    sender_name = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = (
            "id",
            "conversation",
            "sender",
            "sender_name",
            "content",
            "created_at",
        )
        read_only_fields = fields

    def get_sender_name(self, obj: Message) -> str:
        sender = obj.sender
        return (getattr(sender, "name", "") or "").strip() or sender.get_username()


class MessageCreateSerializer(serializers.Serializer):
    """Payload for ``POST messages/``.

    ``conversation`` (or ``conversationId``) is optional when the conversation
    comes from the URL.
    """

    conversation = serializers.IntegerField(required=False, min_value=1)
    # Alias sent by older frontend code.
    conversationId = serializers.IntegerField(  # noqa: N815
        required=False,
        min_value=1,
        source="conversation_alias",
    )
    content = serializers.CharField(max_length=10000)


class ConversationSerializer(serializers.ModelSerializer):
    seeker_name = serializers.CharField(source="seeker.name", read_only=True)
    company_name = serializers.CharField(source="company.name", read_only=True)
    last_activity = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = (
            "id",
            "seeker",
            "seeker_name",
            "company",
            "company_name",
            "created_at",
            "last_activity",
        )
        read_only_fields = fields

    def get_last_activity(self, obj: Conversation):
        value = getattr(obj, "last_activity", None) or obj.created_at
        return serializers.DateTimeField().to_representation(value)


class ConversationCreateSerializer(serializers.Serializer):
    seeker = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(role=User.Role.SEEKER),
    )
    company = serializers.PrimaryKeyRelatedField(queryset=Company.objects.all())
