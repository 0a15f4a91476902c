"""Interfaces to processes and proxies, the log ring and the event bus."""

from __future__ import annotations

import abc
import asyncio
import logging
import weakref
from collections import deque
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Optional

from .model import LogStream, ServiceExit, ServiceSpec

__all__ = [
    "ManagedProcess",
    "ProcessAdapter",
    "ProxyAdapter",
    "NoopProxyAdapter",
    "LogEntry",
    "LogRing",
    "EventBus",
    "Subscription",
]

log = logging.getLogger(__name__)

DEFAULT_LOG_CAPACITY = 1024
DEFAULT_EVENT_CAPACITY = 1024


class ManagedProcess(abc.ABC):
    """A running service process that a supervisor can wait on and stop."""

    def __init__(self, pid: int, stdout: Any = None, stderr: Any = None) -> None:
        self.pid = pid
        self._stdout = stdout
        self._stderr = stderr

    def take_stdout(self) -> Any:
        """Hand over the stdout reader once; later calls return ``None``."""
        reader, self._stdout = self._stdout, None
        return reader

    def take_stderr(self) -> Any:
        """Hand over the stderr reader once; later calls return ``None``."""
        reader, self._stderr = self._stderr, None
        return reader

    @abc.abstractmethod
    async def wait(self) -> ServiceExit:
        """Wait for the process to exit and describe how it ended."""

    @abc.abstractmethod
    async def terminate(self) -> None:
        """Ask the process to exit gracefully."""

    @abc.abstractmethod
    async def kill(self) -> None:
        """Force the process to exit."""


class ProcessAdapter(abc.ABC):
    """Starts processes for service specifications."""

    @abc.abstractmethod
    async def spawn(self, spec: ServiceSpec) -> ManagedProcess:
        """Start a process for ``spec``."""


class ProxyAdapter(abc.ABC):
    """Exposes ready services through a reverse proxy."""

    @abc.abstractmethod
    async def attach(self, route: str, port: int) -> None:
        """Route ``route`` to the local backend on ``port``."""

    @abc.abstractmethod
    async def detach(self, route: str) -> None:
        """Stop routing ``route``."""


class NoopProxyAdapter(ProxyAdapter):
    """Proxy adapter that contacts no proxy and only remembers the routes."""

    def __init__(self) -> None:
        self.routes: dict[str, int] = {}

    async def attach(self, route: str, port: int) -> None:
        log.debug("Noop proxy: attach %s -> port %s", route, port)
        self.routes[route] = port

    async def detach(self, route: str) -> None:
        log.debug("Noop proxy: detach %s", route)
        self.routes.pop(route, None)


@dataclass(frozen=True)
class LogEntry:
    """One line of service output."""

    seq: int
    stream: LogStream
    content: str
    timestamp: str


class LogRing:
    """Bounded buffer of the most recent log entries, numbered in order."""

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("log ring capacity must be at least 1")
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._next_seq = 1

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def push(self, entry: LogEntry) -> LogEntry:
        """Store ``entry`` under the next sequence number, dropping the oldest if full."""
        stored = replace(entry, seq=self._next_seq)
        self._next_seq += 1
        self._entries.append(stored)
        return stored

    def entries(self) -> list[LogEntry]:
        """The retained entries, oldest first."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class Subscription:
    """A receiver of every event sent on an :class:`EventBus` after it subscribed."""

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=bus.capacity)
        self.lagged = 0

    def _deliver(self, event: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.lagged += 1
        self._queue.put_nowait(event)

    async def recv(self) -> Any:
        """Wait for the next event."""
        return await self._queue.get()

    def recv_nowait(self) -> Optional[Any]:
        """The next pending event, or ``None`` when there is none."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close(self) -> None:
        """Stop receiving new events; pending ones can still be read."""
        self._bus._unsubscribe(self)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __aiter__(self) -> AsyncIterator[Any]:
        return self

    async def __anext__(self) -> Any:
        return await self.recv()


class EventBus:
    """Broadcasts events to every live subscription.

    A subscription that falls ``capacity`` events behind loses the oldest ones
    and counts them in its ``lagged`` attribute.
    """

    def __init__(self, capacity: int = DEFAULT_EVENT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("event bus capacity must be at least 1")
        self.capacity = capacity
        self._subscribers: weakref.WeakSet[Subscription] = weakref.WeakSet()

    @property
    def receiver_count(self) -> int:
        return len(self._subscribers)

    def send(self, event: Any) -> int:
        """Deliver ``event`` to every subscriber; return how many received it."""
        receivers = list(self._subscribers)
        for subscription in receivers:
            subscription._deliver(event)
        return len(receivers)

    def subscribe(self) -> Subscription:
        """Create a subscription that sees every event sent from now on."""
        subscription = Subscription(self)
        self._subscribers.add(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)