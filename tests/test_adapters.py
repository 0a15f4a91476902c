import asyncio

import pytest

from canopus.adapters import (
    EventBus,
    LogEntry,
    LogRing,
    ManagedProcess,
    NoopProxyAdapter,
    ProcessAdapter,
    ProxyAdapter,
)
from canopus.model import LogStream, ServiceExit, ServiceWarning, current_timestamp


def warning(message):
    return ServiceWarning(service_id="svc", message=message, timestamp=current_timestamp())


def entry(content, stream=LogStream.STDOUT):
    return LogEntry(seq=0, stream=stream, content=content, timestamp=current_timestamp())


class _FinishedProcess(ManagedProcess):
    def __init__(self, pid, stdout=None, stderr=None):
        super().__init__(pid, stdout, stderr)
        self.terminated = False

    async def wait(self):
        return ServiceExit(pid=self.pid, exit_code=0)

    async def terminate(self):
        self.terminated = True

    async def kill(self):
        self.terminated = True


def test_abstract_interfaces_cannot_be_instantiated():
    with pytest.raises(TypeError):
        ManagedProcess(1)
    with pytest.raises(TypeError):
        ProcessAdapter()
    with pytest.raises(TypeError):
        ProxyAdapter()


def test_take_streams_only_once():
    out, err = object(), object()
    proc = _FinishedProcess(42, stdout=out, stderr=err)
    assert ManagedProcess.take_stdout(proc) is out
    assert ManagedProcess.take_stdout(proc) is None
    assert ManagedProcess.take_stderr(proc) is err
    assert ManagedProcess.take_stderr(proc) is None
    assert proc.pid == 42


@pytest.mark.asyncio
async def test_noop_proxy_tracks_routes():
    proxy = NoopProxyAdapter()
    await proxy.attach("/api", 8081)
    await proxy.attach("svc.local", 9000)
    assert proxy.routes == {"/api": 8081, "svc.local": 9000}
    await proxy.detach("/api")
    assert proxy.routes == {"svc.local": 9000}


@pytest.mark.asyncio
async def test_noop_proxy_detach_is_idempotent():
    proxy = NoopProxyAdapter()
    await proxy.detach("missing")
    await proxy.attach("/api", 8081)
    await proxy.detach("/api")
    await proxy.detach("/api")
    assert proxy.routes == {}


def test_log_ring_assigns_increasing_sequence_numbers():
    ring = LogRing(8)
    stored = [ring.push(entry(f"line {i}")) for i in range(5)]
    seqs = [e.seq for e in stored]
    assert seqs == sorted(seqs)
    assert len(set(seqs)) == len(seqs)
    assert [e.content for e in ring.entries()] == [f"line {i}" for i in range(5)]
    assert ring.entries() == stored


def test_log_ring_keeps_only_the_newest_entries():
    ring = LogRing(3)
    for i in range(7):
        ring.push(entry(f"line {i}", LogStream.STDERR))
    assert len(ring) == 3
    assert ring.capacity == 3
    assert [e.content for e in ring.entries()] == ["line 4", "line 5", "line 6"]
    assert all(e.stream is LogStream.STDERR for e in ring.entries())


def test_log_ring_rejects_zero_capacity():
    with pytest.raises(ValueError):
        LogRing(0)


def test_event_bus_without_subscribers_reaches_nobody():
    bus = EventBus()
    assert bus.send(warning("nobody")) == 0
    assert bus.receiver_count == 0


@pytest.mark.asyncio
async def test_event_bus_fans_out_to_every_subscriber():
    bus = EventBus()
    first = bus.subscribe()
    second = bus.subscribe()
    event = warning("hello")
    assert bus.send(event) == 2
    assert await asyncio.wait_for(first.recv(), 1) == event
    assert await asyncio.wait_for(second.recv(), 1) == event


@pytest.mark.asyncio
async def test_subscriber_sees_only_later_events():
    bus = EventBus()
    bus.send(warning("before"))
    sub = bus.subscribe()
    bus.send(warning("after"))
    received = await asyncio.wait_for(sub.recv(), 1)
    assert received.message == "after"
    assert sub.recv_nowait() is None


def test_closed_subscription_stops_receiving():
    bus = EventBus()
    with bus.subscribe() as sub:
        bus.send(warning("kept"))
    assert bus.send(warning("missed")) == 0
    assert sub.recv_nowait().message == "kept"
    assert sub.recv_nowait() is None


def test_lagging_subscriber_drops_oldest_events():
    bus = EventBus(capacity=2)
    sub = bus.subscribe()
    for i in range(5):
        bus.send(warning(f"event {i}"))
    assert sub.lagged == 3
    assert sub.recv_nowait().message == "event 3"
    assert sub.recv_nowait().message == "event 4"


@pytest.mark.asyncio
async def test_subscription_async_iteration_preserves_order():
    bus = EventBus()
    sub = bus.subscribe()
    messages = ["a", "b", "c"]
    for message in messages:
        bus.send(warning(message))
    received = []
    async for event in sub:
        received.append(event.message)
        if len(received) == len(messages):
            break
    assert received == messages


def test_event_bus_rejects_zero_capacity():
    with pytest.raises(ValueError):
        EventBus(0)