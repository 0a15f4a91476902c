import asyncio
import socket

import pytest

from canopus.errors import SerializationError, ServerError
from canopus.server import (
    VERSION,
    Daemon,
    DaemonConfig,
    Message,
    MessageKind,
    Response,
    ResponseKind,
)


def make_daemon():
    return Daemon(DaemonConfig(host="127.0.0.1", port=0))


def test_status_before_start():
    resp = make_daemon().process_message(Message(MessageKind.STATUS))
    assert resp.kind is ResponseKind.STATUS
    assert resp.running is False
    assert resp.uptime_seconds == 0
    assert resp.version == "0.1.0"


def test_start_then_already_running():
    daemon = make_daemon()
    first = daemon.process_message(Message(MessageKind.START))
    assert first == Response.ok("Daemon started")
    assert daemon.running is True
    second = daemon.process_message(Message(MessageKind.START))
    assert second.kind is ResponseKind.ERROR
    assert second.message == "Daemon is already running"
    assert second.code == "DAEMON_ALREADY_RUNNING"


def test_stop_restart_custom():
    daemon = make_daemon()
    daemon.process_message(Message(MessageKind.START))
    assert daemon.process_message(Message(MessageKind.STOP)).message == "Daemon stopping"
    assert daemon.running is False
    assert daemon.process_message(Message(MessageKind.RESTART)).message == "Restart acknowledged"
    assert daemon.process_message(Message.custom("reload")).message == "Processed: reload"


@pytest.mark.parametrize(
    "message",
    [
        Message(MessageKind.STATUS),
        Message(MessageKind.STOP),
        Message.custom("ping"),
    ],
)
def test_message_round_trip(message):
    assert Message.from_json(message.to_json()) == message


@pytest.mark.parametrize(
    "response",
    [
        Response.ok("fine"),
        Response.error("bad", "CODE"),
        Response.status(True, 7, VERSION),
    ],
)
def test_response_round_trip(response):
    assert Response.from_json(response.to_json()) == response


def test_message_wire_form():
    assert Message.from_json(b'{"type": "custom", "cmd": "x"}') == Message.custom("x")
    assert Message(MessageKind.RESTART).to_dict() == {"type": "restart"}


@pytest.mark.parametrize(
    "payload",
    [b"{invalid}", b'{"type": "unknown"}', b'{"type": "custom"}', b"[1, 2]"],
)
def test_bad_messages_raise(payload):
    with pytest.raises(SerializationError) as info:
        Message.from_json(payload)
    assert "Serialization error" in str(info.value)


@pytest.mark.asyncio
async def test_serves_status_and_stop_over_tcp():
    daemon = make_daemon()
    task = asyncio.create_task(daemon.start())
    await asyncio.wait_for(daemon.listening.wait(), 2)

    reader, writer = await asyncio.open_connection("127.0.0.1", daemon.port)
    writer.write(Message(MessageKind.STATUS).to_json())
    await writer.drain()
    status = Response.from_json(await reader.read(1024))
    assert status.running is True
    assert status.version == VERSION

    writer.write(Message(MessageKind.STOP).to_json())
    await writer.drain()
    stopped = Response.from_json(await reader.read(1024))
    assert stopped.message == "Daemon stopping"
    writer.close()

    await asyncio.wait_for(task, 2)
    assert daemon.running is False


@pytest.mark.asyncio
async def test_bind_failure_raises_server_error():
    with socket.create_server(("127.0.0.1", 0)) as busy:
        port = busy.getsockname()[1]
        daemon = Daemon(DaemonConfig(host="127.0.0.1", port=port))
        with pytest.raises(ServerError) as info:
            await daemon.start()
    assert "Failed to bind to" in str(info.value)
    assert daemon.running is False