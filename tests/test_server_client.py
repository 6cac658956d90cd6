import asyncio
import json

import pytest

from builder_client.config import ServerSettings
from builder_client.server_client import ConnectionState, ServerClient
from builder_client.session import EditorSession
from builder_client.stomp import decode_frame

CONNECTED = "CONNECTED\nversion:1.2\n\n\x00"
MESSAGE = "MESSAGE\ndestination:/topic/world-updates\nsubscription:{sub}\n\n{body}\x00"


class FakeSocket:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self, handshake, stream=()):
        self._handshake = list(handshake)
        self._stream = list(stream)
        self.sent = []
        self.closed = False

    async def recv(self):
        return self._handshake.pop(0)

    async def send(self, data):
        self.sent.append(decode_frame(data))

    async def close(self):
        self.closed = True

    async def _iterate(self):
        for message in self._stream:
            if isinstance(message, Exception):
                raise message
            yield message
            for _ in range(5):
                await asyncio.sleep(0)

    def __aiter__(self):
        return self._iterate()


def settings(**overrides):
    values = dict(url="ws://example.test:8080/3d-ws/websocket", reconnect_delay=0, max_reconnect_attempts=0)
    values.update(overrides)
    return ServerSettings(**values)


def connector_for(*sockets):
    pending = list(sockets)
    calls = []

    async def connect(url, **kwargs):
        calls.append((url, kwargs))
        if not pending:
            raise OSError("connection refused")
        return pending.pop(0)

    connect.calls = calls
    return connect


def message_for(client, body):
    return MESSAGE.format(sub=client._subscription_id, body=body)


@pytest.mark.asyncio
async def test_connect_performs_stomp_handshake():
    sock = FakeSocket(["\n", CONNECTED])
    connector = connector_for(sock)
    client = ServerClient(settings(), connector=connector)

    assert await client.connect() is True
    assert client.state == ConnectionState.CONNECTED

    connect_frame, subscribe = sock.sent
    assert connect_frame.command == "CONNECT"
    assert connect_frame.header("host") == "example.test"
    assert subscribe.command == "SUBSCRIBE"
    assert subscribe.header("destination") == "/topic/world-updates"
    assert connector.calls[0][1]["subprotocols"] == ["v12.stomp"]


@pytest.mark.asyncio
async def test_connect_error_frame_fails_cleanly():
    sock = FakeSocket(["ERROR\nmessage:bad login\n\n\x00"])
    client = ServerClient(settings(), connector=connector_for(sock))

    assert await client.connect() is False
    assert client.state == ConnectionState.DISCONNECTED
    assert sock.closed


def test_publish_while_disconnected_is_dropped():
    client = ServerClient(settings(), connector=connector_for())
    assert client.publish("Play") is False


@pytest.mark.asyncio
async def test_run_delivers_snapshots_and_sends_commands():
    received = []
    sock = FakeSocket([CONNECTED])
    client = ServerClient(settings(), connector=connector_for(sock))
    sock._stream = [message_for(client, '{"currentTime": 3}'), "\n"]

    def on_snapshot(body):
        received.append(body)
        client.publish("Pause")

    client.on_snapshot = on_snapshot

    await client.run()

    assert received == ['{"currentTime": 3}']
    sends = [f for f in sock.sent if f.command == "SEND"]
    assert [(f.header("destination"), f.body) for f in sends] == [("/app/send-command", "Pause")]
    # second connection attempt is refused and retries are exhausted
    assert client.state != ConnectionState.CONNECTED


@pytest.mark.asyncio
async def test_failing_snapshot_handler_does_not_stop_the_stream():
    received = []
    sock = FakeSocket([CONNECTED])
    client = ServerClient(settings(), connector=connector_for(sock))
    sock._stream = [message_for(client, "boom"), message_for(client, '{"currentTime": 7}')]

    def on_snapshot(body):
        if body == "boom":
            raise RuntimeError("handler failed")
        received.append(body)

    client.on_snapshot = on_snapshot

    await client.run()

    assert received == ['{"currentTime": 7}']


@pytest.mark.asyncio
async def test_undecodable_snapshot_is_dropped_and_next_one_applied():
    sock = FakeSocket([CONNECTED])
    client = ServerClient(settings(), connector=connector_for(sock))
    session = EditorSession(client.publish)
    client.on_snapshot = session.handle_snapshot
    huge = json.dumps({"currentTime": 1}).replace("1", "9" * 5000)
    sock._stream = [
        message_for(client, huge),
        message_for(client, "[" * 100000),
        message_for(client, '{"currentTime": 7}'),
    ]

    await client.run()

    assert session.world.current_time == 7.0
    assert session.synchronizer.dropped == 2


@pytest.mark.asyncio
async def test_message_loop_error_closes_socket():
    sock = FakeSocket([CONNECTED], [RuntimeError("stream broke")])
    client = ServerClient(settings(), connector=connector_for(sock))

    await client.run()

    assert sock.closed
    assert client.state != ConnectionState.CONNECTED


@pytest.mark.asyncio
async def test_messages_for_other_subscriptions_are_ignored():
    received = []
    client = ServerClient(settings(), on_snapshot=received.append, connector=connector_for())

    await client._handle_message("MESSAGE\nsubscription:other\n\n{}\x00")
    await client._handle_message("garbage")

    assert received == []


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["ERROR\nmessage:boom\n\n\x00", "RECEIPT\nreceipt-id:1\n\n\x00", "\n"])
async def test_non_message_frames_do_not_reach_callback(raw):
    received = []
    client = ServerClient(settings(), on_snapshot=received.append, connector=connector_for())
    await client._handle_message(raw)
    assert received == []
