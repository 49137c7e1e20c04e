import pytest

from job_portal.conversations import services
from job_portal.realtime.events.conversations import build_message_payload
from job_portal.realtime.events.conversations import publish_message_created
from job_portal.realtime.events.conversations import publish_message_on_commit
from job_portal.realtime.hub import RealtimeHub

pytestmark = pytest.mark.django_db


@pytest.fixture
def message(seeker, company):
    conversation, _ = services.find_or_create_conversation(seeker, company)
    return services.create_message(conversation.pk, seeker, "Hello")


def test_payload_matches_api_record(message):
    payload = build_message_payload(message)
    assert payload["id"] == message.pk
    assert payload["conversation"] == message.conversation_id
    assert payload["sender"] == message.sender_id
    assert payload["content"] == "Hello"
    assert "created_at" in payload


def test_publish_delivers_to_room_members(message):
    hub = RealtimeHub()
    session = hub.connect("tab", user_id=1)
    hub.join("tab", message.conversation_id)

    assert publish_message_created(message, hub=hub) == 1
    [event] = session.drain()
    assert event["conversationId"] == str(message.conversation_id)
    assert event["message"]["id"] == message.pk


def test_publish_failure_is_swallowed_and_logged(message, monkeypatch):
    hub = RealtimeHub()

    def explode(*args, **kwargs):
        msg = "boom"
        raise RuntimeError(msg)

    monkeypatch.setattr(hub, "publish", explode)
    assert publish_message_created(message, hub=hub) == 0


def test_publish_waits_for_commit(message, django_capture_on_commit_callbacks):
    hub = RealtimeHub()
    session = hub.connect("tab")
    hub.join("tab", message.conversation_id)

    with django_capture_on_commit_callbacks() as callbacks:
        publish_message_on_commit(message, hub=hub)
    assert session.drain() == []

    for callback in callbacks:
        callback()
    assert len(session.drain()) == 1
