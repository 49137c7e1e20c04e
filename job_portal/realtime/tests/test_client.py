import importlib.util
from unittest.mock import AsyncMock
from unittest.mock import MagicMock

import pytest
from socketio.exceptions import BadNamespaceError
from socketio.exceptions import ConnectionError as SocketConnectionError

from job_portal.realtime.client import ConversationSocketClient
from job_portal.realtime.client import MessageEvent
from job_portal.realtime.client import parse_message_event


def test_async_client_transport_is_installed():
    # socketio.AsyncClient cannot open HTTP or WebSocket transports without it.
    assert importlib.util.find_spec("aiohttp") is not None
    client = ConversationSocketClient("http://testserver")
    assert client.sio.reconnection_attempts == 3


def make_sio():
    sio = MagicMock()
    sio.connected = False
    sio.connect = AsyncMock()
    sio.disconnect = AsyncMock()
    sio.emit = AsyncMock()
    return sio


def handler(sio, event):
    for call in sio.on.call_args_list:
        if call.args[0] == event:
            return call.args[1]
    raise KeyError(event)


def make_client(sio, **kwargs):
    kwargs.setdefault("retry_delay", 0)
    return ConversationSocketClient("http://testserver", token="t0k", sio=sio, **kwargs)


@pytest.mark.asyncio
async def test_connect_success():
    sio = make_sio()
    client = make_client(sio)

    assert await client.connect() is True
    assert client.is_connected
    sio.connect.assert_awaited_once()
    assert sio.connect.await_args.kwargs["auth"] == {"token": "t0k"}
    assert sio.connect.await_args.kwargs["socketio_path"] == "ws/chat"
    assert sio.connect.await_args.kwargs["wait_timeout"] == 5


@pytest.mark.asyncio
async def test_connect_gives_up_after_retries():
    sio = make_sio()
    sio.connect.side_effect = SocketConnectionError("refused")
    client = make_client(sio)

    assert await client.connect() is False
    assert not client.is_connected
    # Initial attempt plus three retries.
    assert sio.connect.await_count == 4


@pytest.mark.asyncio
async def test_connect_recovers_on_a_retry():
    sio = make_sio()
    sio.connect.side_effect = [SocketConnectionError("refused"), None]
    client = make_client(sio)

    assert await client.connect() is True
    assert sio.connect.await_count == 2


@pytest.mark.asyncio
async def test_connect_twice_keeps_the_live_transport():
    sio = make_sio()

    async def connect(*args, **kwargs):
        if sio.connected:
            msg = "Already connected"
            raise SocketConnectionError(msg)
        sio.connected = True

    sio.connect.side_effect = connect
    client = make_client(sio)

    assert await client.connect() is True
    assert await client.connect() is True
    assert client.is_connected
    sio.connect.assert_awaited_once()
    assert await client.join_conversation(42) is True
    sio.emit.assert_awaited_once_with("join-conversation", "42")


@pytest.mark.asyncio
async def test_already_connected_error_is_not_a_failed_attempt():
    sio = make_sio()

    async def connect(*args, **kwargs):
        # Another task finished connecting first.
        sio.connected = True
        msg = "Already connected"
        raise SocketConnectionError(msg)

    sio.connect.side_effect = connect
    client = make_client(sio)

    assert await client.connect() is True
    assert client.is_connected
    assert sio.connect.await_count == 1


@pytest.mark.asyncio
async def test_emits_are_dropped_while_disconnected():
    sio = make_sio()
    client = make_client(sio)

    assert await client.join_conversation(42) is False
    assert await client.send_message({"conversationId": "42", "message": {"id": 1}}) is False
    sio.emit.assert_not_awaited()
    # The room is still remembered for the next connect.
    assert client.rooms == frozenset({"42"})


@pytest.mark.asyncio
async def test_join_and_leave_emit_when_connected():
    sio = make_sio()
    client = make_client(sio)
    await client.connect()

    assert await client.join_conversation(42) is True
    assert await client.leave_conversation(42) is True
    assert [c.args for c in sio.emit.await_args_list] == [
        ("join-conversation", "42"),
        ("leave-conversation", "42"),
    ]
    assert client.rooms == frozenset()


@pytest.mark.asyncio
async def test_emit_on_stale_namespace_marks_disconnected():
    sio = make_sio()
    sio.emit.side_effect = BadNamespaceError("/ is not a connected namespace.")
    client = make_client(sio)
    await client.connect()

    assert await client.send_message({"conversationId": "1"}) is False
    assert not client.is_connected


@pytest.mark.asyncio
async def test_rejoins_rooms_on_reconnect():
    sio = make_sio()
    client = make_client(sio)
    await client.join_conversation(7)
    await client.join_conversation(3)

    await handler(sio, "disconnect")("transport close")
    assert not client.is_connected
    await handler(sio, "connect")()

    assert client.is_connected
    assert [c.args for c in sio.emit.await_args_list] == [
        ("join-conversation", "3"),
        ("join-conversation", "7"),
    ]


@pytest.mark.asyncio
async def test_connect_error_clears_flag():
    sio = make_sio()
    client = make_client(sio)
    await client.connect()
    await handler(sio, "connect_error")({"message": "unauthorized"})
    assert not client.is_connected


@pytest.mark.asyncio
async def test_inbound_events_are_queued_and_malformed_ones_dropped():
    sio = make_sio()
    client = make_client(sio)
    on_new_message = handler(sio, "new-message")

    await on_new_message("garbage")
    await on_new_message({"conversationId": "42"})
    await on_new_message({"conversationId": "42", "message": {"content": "no id"}})
    await on_new_message({"conversationId": 42, "message": {"id": 1, "content": "Hi"}})
    await on_new_message({"conversationId": "9", "message": {"id": 2}})

    event = await client.next_event(timeout=1)
    assert event == MessageEvent(conversation_id="42", message={"id": 1, "content": "Hi"})
    # No filtering by conversation: the caller decides.
    assert client.pending_events() == [
        MessageEvent(conversation_id="9", message={"id": 2}),
    ]


@pytest.mark.asyncio
async def test_events_iterator_yields_in_arrival_order():
    sio = make_sio()
    client = make_client(sio)
    on_new_message = handler(sio, "new-message")
    for pk in (1, 2):
        await on_new_message({"conversationId": "5", "message": {"id": pk}})

    received = []
    async for event in client.events():
        received.append(event.message["id"])
        if len(received) == 2:
            break
    assert received == [1, 2]


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {"conversationId": True, "message": {"id": 1}},
        {"conversationId": "  ", "message": {"id": 1}},
        {"conversationId": "1", "message": "text"},
        {"conversationId": "1", "message": {"id": ""}},
    ],
)
def test_parse_message_event_rejects(payload):
    assert parse_message_event(payload) is None
