from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiParameter
from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import extend_schema_view
from rest_framework import mixins
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from job_portal.conversations import services
from job_portal.conversations.exceptions import ConversationNotFound
from job_portal.conversations.exceptions import EmptyMessageError
from job_portal.conversations.exceptions import MessagingError
from job_portal.conversations.exceptions import SenderNotParticipant
from job_portal.conversations.models import Conversation
from job_portal.realtime.events.conversations import publish_message_on_commit

from .serializers import ConversationCreateSerializer
from .serializers import ConversationSerializer
from .serializers import MessageCreateSerializer
from .serializers import MessageSerializer

logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    EmptyMessageError: status.HTTP_400_BAD_REQUEST,
    ConversationNotFound: status.HTTP_404_NOT_FOUND,
    SenderNotParticipant: status.HTTP_403_FORBIDDEN,
}


def _error_response(exc: MessagingError) -> Response:
    code = _ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return Response({"detail": exc.detail}, status=code)


def _parse_id(raw: str | None) -> int | None:
    if raw is None:
        return None
    raw = raw.strip()
    if not raw:
        return None
    if not raw.isdecimal():
        msg = "Must be an integer."
        raise ValueError(msg)
    return int(raw)


def _send_message(request, conversation_id, content: str) -> Response:
    """Persist first, then broadcast once the transaction commits."""

    try:
        message = services.create_message(conversation_id, request.user, content)
    except MessagingError as exc:
        return _error_response(exc)

    publish_message_on_commit(message)
    out = MessageSerializer(message, context={"request": request}).data
    return Response(out, status=status.HTTP_201_CREATED)


@extend_schema_view(
    list=extend_schema(
        parameters=[
            OpenApiParameter("seeker", int, description="Seeker user id"),
            OpenApiParameter("company", int, description="Company id"),
        ],
    ),
)
class ConversationViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    GenericViewSet,
):
    """Conversations between seekers and companies.

    - list: conversations of one party, most recent activity first
    - create: find-or-create the conversation of a (seeker, company) pair
    - retrieve: one conversation (participants and staff only)
    - messages: GET history / POST a new message
    """

    permission_classes = [IsAuthenticated]
    serializer_class = ConversationSerializer
    pagination_class = None

    def get_queryset(self):
        user = self.request.user
        qs = Conversation.objects.select_related("seeker", "company")
        if getattr(user, "is_staff", False):
            return qs
        if user.is_seeker:
            return qs.filter(seeker=user)
        if user.company_id is not None:
            return qs.filter(company_id=user.company_id)
        return qs.none()

    def list(self, request, *args, **kwargs):
        user = request.user
        try:
            seeker_id = _parse_id(request.query_params.get("seeker"))
            company_id = _parse_id(request.query_params.get("company"))
        except ValueError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        if seeker_id is not None and company_id is not None:
            return Response(
                {"detail": "Provide at most one of seeker, company."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        if seeker_id is None and company_id is None:
            if user.is_seeker:
                seeker_id = user.pk
            elif user.company_id is not None:
                company_id = user.company_id
            else:
                return Response([])

        is_staff = getattr(user, "is_staff", False)
        if seeker_id is not None and not (is_staff or seeker_id == user.pk):
            return Response(
                {"detail": "You can only list your own conversations."},
                status=status.HTTP_403_FORBIDDEN,
            )
        if company_id is not None and not (is_staff or user.is_member_of(company_id)):
            return Response(
                {"detail": "You can only list your company's conversations."},
                status=status.HTTP_403_FORBIDDEN,
            )

        qs = services.list_conversations(seeker=seeker_id, company=company_id)
        data = ConversationSerializer(qs, many=True, context={"request": request}).data
        return Response(data)

    @extend_schema(
        request=ConversationCreateSerializer,
        responses={200: ConversationSerializer, 201: ConversationSerializer},
    )
    def create(self, request, *args, **kwargs):
        serializer = ConversationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        seeker = serializer.validated_data["seeker"]
        company = serializer.validated_data["company"]

        user = request.user
        allowed = (
            getattr(user, "is_staff", False)
            or user.pk == seeker.pk
            or user.is_member_of(company.pk)
        )
        if not allowed:
            return Response(
                {"detail": "Only the seeker or the company can start this conversation."},
                status=status.HTTP_403_FORBIDDEN,
            )

        conversation, created = services.find_or_create_conversation(seeker, company)
        out = ConversationSerializer(conversation, context={"request": request}).data
        code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        return Response(out, status=code)

    @extend_schema(
        methods=["GET"],
        responses=MessageSerializer(many=True),
    )
    @extend_schema(
        methods=["POST"],
        request=MessageCreateSerializer,
        responses={201: MessageSerializer},
    )
    @action(detail=True, methods=["get", "post"])
    def messages(self, request, pk=None):
        conversation = self.get_object()
        if request.method == "GET":
            qs = services.list_messages(conversation)
            data = MessageSerializer(qs, many=True, context={"request": request}).data
            return Response(data)

        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return _send_message(
            request,
            conversation,
            serializer.validated_data["content"],
        )


@extend_schema_view(
    list=extend_schema(
        parameters=[
            OpenApiParameter("conversation", int, description="Conversation id"),
            OpenApiParameter(
                "conversationId",
                int,
                description="Alias of conversation",
            ),
        ],
        responses=MessageSerializer(many=True),
    ),
    create=extend_schema(
        request=MessageCreateSerializer,
        responses={201: MessageSerializer},
    ),
)
class MessageViewSet(GenericViewSet):
    """Flat message endpoint: ``?conversation=<id>`` history and sending."""

    permission_classes = [IsAuthenticated]
    serializer_class = MessageSerializer
    pagination_class = None

    def _visible_conversation(self, conversation_id) -> Conversation:
        conversation = services.get_conversation(conversation_id)
        if not services.can_view(self.request.user, conversation):
            # Do not reveal conversations the caller is not part of.
            raise ConversationNotFound
        return conversation

    def list(self, request, *args, **kwargs):
        try:
            conversation_id = _parse_id(
                request.query_params.get("conversation")
                or request.query_params.get("conversationId"),
            )
        except ValueError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        if conversation_id is None:
            return Response(
                {"detail": "The conversation query parameter is required."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            conversation = self._visible_conversation(conversation_id)
        except MessagingError as exc:
            return _error_response(exc)

        qs = services.list_messages(conversation)
        data = MessageSerializer(qs, many=True, context={"request": request}).data
        return Response(data)

    def create(self, request, *args, **kwargs):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        conversation_id = serializer.validated_data.get(
            "conversation",
        ) or serializer.validated_data.get("conversation_alias")
        if conversation_id is None:
            return Response(
                {"conversation": ["This field is required."]},
                status=status.HTTP_400_BAD_REQUEST,
            )
        try:
            conversation = self._visible_conversation(conversation_id)
        except MessagingError as exc:
            return _error_response(exc)
        return _send_message(
            request,
            conversation,
            serializer.validated_data["content"],
        )
