from unittest.mock import AsyncMock
from unittest.mock import MagicMock

import pytest
from channels.db import database_sync_to_async
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

from job_portal.conversations import services
from job_portal.realtime import socketio as chat_socketio
from job_portal.realtime.hub import RealtimeHub
from job_portal.realtime.socketio import ChatSocketServer
from job_portal.realtime.socketio import _as_pk
from job_portal.realtime.socketio import _extract_token
from job_portal.realtime.socketio import create_socketio_app


def make_server(**kwargs):
    sio = MagicMock()
    sio.emit = AsyncMock()
    sio.save_session = AsyncMock()
    hub = RealtimeHub(mailbox_size=8)
    return ChatSocketServer(hub, sio=sio, **kwargs), hub, sio


@pytest.fixture
def participant(monkeypatch):
    check = AsyncMock(return_value=True)
    monkeypatch.setattr(chat_socketio, "_user_is_participant", check)
    return check


def test_extract_token_from_query_and_auth():
    environ = {"asgi.scope": {"query_string": b"EIO=4&token=abc"}}
    assert _extract_token(environ, None) == "abc"
    assert _extract_token({"QUERY_STRING": "token=wsgi"}, None) == "wsgi"
    assert _extract_token({}, {"token": "from-auth"}) == "from-auth"
    assert _extract_token({}, {"token": ""}) is None
    assert _extract_token({}, None) is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (42, 42),
        (" 42 ", 42),
        ("²", None),
        ("4²", None),
        ("-1", None),
        (True, None),
        (None, None),
    ],
)
def test_as_pk_only_accepts_plain_integers(value, expected):
    assert _as_pk(value) == expected


@pytest.mark.asyncio
async def test_connect_without_token_is_refused():
    server, hub, _ = make_server()
    with pytest.raises(ConnectionRefusedError, match="unauthorized"):
        await server.connect("sid-1", {}, None)
    assert hub.stats()["sessions"] == 0


@pytest.mark.asyncio
async def test_connect_with_expired_token(monkeypatch):
    monkeypatch.setattr(
        chat_socketio,
        "_get_user_id_from_access_token",
        AsyncMock(side_effect=TokenError("Token is expired")),
    )
    server, _, _ = make_server()
    with pytest.raises(ConnectionRefusedError, match="jwt_expired"):
        await server.connect("sid-1", {}, {"token": "old"})


@pytest.mark.asyncio
async def test_connect_registers_session_and_pump(monkeypatch):
    monkeypatch.setattr(
        chat_socketio,
        "_get_user_id_from_access_token",
        AsyncMock(return_value=7),
    )
    server, hub, sio = make_server()

    await server.connect("sid-1", {}, {"token": "good"})

    session = hub.session("sid-1")
    assert session is not None
    assert session.user_id == 7
    sio.save_session.assert_awaited_once_with("sid-1", {"user_id": 7})
    sio.start_background_task.assert_called_once_with(server._pump, session)


@pytest.mark.asyncio
async def test_join_checks_participation(participant):
    server, hub, _ = make_server()
    hub.connect("sid-1", user_id=7)

    await server.join_conversation("sid-1", 42)
    assert hub.members(42) == frozenset({"sid-1"})
    participant.assert_awaited_once_with(7, "42")

    participant.return_value = False
    await server.join_conversation("sid-1", {"conversationId": 43})
    assert hub.members(43) == frozenset()


@pytest.mark.asyncio
async def test_join_without_participant_check():
    server, hub, _ = make_server(require_participant=False)
    hub.connect("sid-1")
    await server.join_conversation("sid-1", "42")
    assert hub.members("42") == frozenset({"sid-1"})


@pytest.mark.asyncio
async def test_malformed_join_is_ignored(participant):
    server, hub, _ = make_server()
    hub.connect("sid-1", user_id=7)
    for payload in (None, True, ["42"], {"room": 42}, "  "):
        await server.join_conversation("sid-1", payload)
    assert hub.stats()["rooms"] == 0
    participant.assert_not_awaited()


@pytest.mark.asyncio
async def test_leave_and_disconnect_clean_up(participant):
    server, hub, _ = make_server()
    hub.connect("sid-1", user_id=7)
    await server.join_conversation("sid-1", 1)
    await server.join_conversation("sid-1", 2)

    await server.leave_conversation("sid-1", 1)
    await server.leave_conversation("sid-1", 1)
    assert hub.rooms_for("sid-1") == frozenset({"2"})

    await server.disconnect("sid-1", "client disconnect")
    assert hub.session("sid-1") is None
    assert hub.members(2) == frozenset()


@pytest.mark.asyncio
async def test_send_message_reloads_from_store(participant, monkeypatch):
    stored = {"id": 5, "content": "from the database"}
    loader = AsyncMock(return_value=stored)
    monkeypatch.setattr(chat_socketio, "_load_message_payload", loader)
    server, hub, _ = make_server()
    sender = hub.connect("sender", user_id=7)
    peer = hub.connect("peer", user_id=8)
    await server.join_conversation("sender", 42)
    await server.join_conversation("peer", 42)

    await server.send_message(
        "sender",
        {"conversationId": "42", "message": {"id": 5, "content": "forged"}},
    )

    loader.assert_awaited_once_with("42", 5)
    expected = [{"conversationId": "42", "message": stored}]
    assert peer.drain() == expected
    assert sender.drain() == expected


@pytest.mark.asyncio
async def test_send_message_unknown_message_is_not_relayed(participant, monkeypatch):
    monkeypatch.setattr(
        chat_socketio,
        "_load_message_payload",
        AsyncMock(return_value=None),
    )
    server, hub, _ = make_server()
    peer = hub.connect("peer", user_id=8)
    hub.connect("sender", user_id=7)
    await server.join_conversation("peer", 42)

    await server.send_message("sender", {"conversationId": "42", "messageId": 404})
    await server.send_message("sender", {"conversationId": "42"})
    await server.send_message("sender", "not a dict")

    assert peer.drain() == []


@pytest.mark.asyncio
async def test_pump_emits_mailbox_to_its_socket():
    server, hub, sio = make_server()
    session = hub.connect("sid-1")
    hub.join("sid-1", 3)
    hub.publish(3, {"id": 1})
    # Sentinel ends the pump once the queued event has been emitted.
    session.mailbox.put_nowait(None)

    await server._pump(session)

    sio.emit.assert_awaited_once_with(
        "new-message",
        {"conversationId": "3", "message": {"id": 1}},
        to="sid-1",
    )


def test_create_socketio_app_mounts_path():
    hub = RealtimeHub()
    app = create_socketio_app(
        hub,
        socketio_path="/ws/chat/",
        cors_allowed_origins=["*"],
    )
    assert app.engineio_path == "/ws/chat/"


@pytest.mark.django_db(transaction=True)
@pytest.mark.asyncio
async def test_real_token_and_participation(seeker, other_seeker, company):
    conversation, _ = await database_sync_to_async(
        services.find_or_create_conversation,
    )(seeker, company)
    server, hub, _ = make_server()

    await server.connect("mine", {}, {"token": str(AccessToken.for_user(seeker))})
    await server.connect(
        "theirs",
        {},
        {"token": str(AccessToken.for_user(other_seeker))},
    )
    await server.join_conversation("mine", conversation.pk)
    await server.join_conversation("theirs", conversation.pk)

    assert hub.members(conversation.pk) == frozenset({"mine"})
