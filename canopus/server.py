"""TCP control server that answers JSON status and control messages."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Union

from .errors import DaemonIOError, SerializationError, ServerError

__all__ = [
    "VERSION",
    "DaemonConfig",
    "MessageKind",
    "Message",
    "ResponseKind",
    "Response",
    "Daemon",
]

log = logging.getLogger(__name__)

#: Version reported in status responses.
VERSION = "0.1.0"

#: Largest chunk read from a client for one message.
READ_CHUNK = 1024

#: How often the accept loop checks whether the daemon was stopped.
_POLL_SECS = 0.05


@dataclass(frozen=True)
class DaemonConfig:
    """Address the daemon listens on."""

    host: str = "127.0.0.1"
    port: int = 8080


class MessageKind(enum.Enum):
    """Requests a client can send."""

    STATUS = "status"
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    CUSTOM = "custom"


def _load_json(data: Union[bytes, str]) -> Any:
    try:
        return json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SerializationError(exc) from exc


@dataclass(frozen=True)
class Message:
    """A request; ``cmd`` is set only for custom commands.

    On the wire a message is a JSON object such as ``{"type": "status"}`` or
    ``{"type": "custom", "cmd": "..."}``.
    """

    kind: MessageKind
    cmd: Optional[str] = None

    @classmethod
    def custom(cls, cmd: str) -> Message:
        return cls(MessageKind.CUSTOM, cmd)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.kind.value}
        if self.kind is MessageKind.CUSTOM:
            data["cmd"] = self.cmd
        return data

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_dict(cls, data: Any) -> Message:
        """Build a message from decoded JSON; raise ``ValueError`` if malformed."""
        if not isinstance(data, dict):
            raise ValueError("message must be a JSON object")
        try:
            kind = MessageKind(data.get("type"))
        except ValueError:
            raise ValueError(f"unknown message type: {data.get('type')!r}") from None
        if kind is MessageKind.CUSTOM:
            cmd = data.get("cmd")
            if not isinstance(cmd, str):
                raise ValueError("custom message requires a string 'cmd'")
            return cls(kind, cmd)
        return cls(kind)

    @classmethod
    def from_json(cls, data: Union[bytes, str]) -> Message:
        """Decode a message; raise :class:`SerializationError` if it is invalid."""
        decoded = _load_json(data)
        try:
            return cls.from_dict(decoded)
        except ValueError as exc:
            raise SerializationError(exc) from exc


class ResponseKind(enum.Enum):
    """Kinds of replies the daemon sends."""

    OK = "ok"
    ERROR = "error"
    STATUS = "status"


@dataclass(frozen=True)
class Response:
    """A reply to a :class:`Message`."""

    kind: ResponseKind
    message: Optional[str] = None
    code: Optional[str] = None
    running: Optional[bool] = None
    uptime_seconds: Optional[int] = None
    version: Optional[str] = None

    @classmethod
    def ok(cls, message: str) -> Response:
        return cls(ResponseKind.OK, message=message)

    @classmethod
    def error(cls, message: str, code: Optional[str] = None) -> Response:
        return cls(ResponseKind.ERROR, message=message, code=code)

    @classmethod
    def status(cls, running: bool, uptime_seconds: int, version: Optional[str] = None) -> Response:
        return cls(
            ResponseKind.STATUS,
            running=running,
            uptime_seconds=uptime_seconds,
            version=version,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.kind.value}
        if self.kind is ResponseKind.STATUS:
            data.update(
                running=self.running,
                uptime_seconds=self.uptime_seconds,
                version=self.version,
            )
        else:
            data["message"] = self.message
            if self.kind is ResponseKind.ERROR:
                data["code"] = self.code
        return data

    def to_json(self) -> bytes:
        return json.dumps(self.to_dict()).encode("utf-8")

    @classmethod
    def from_dict(cls, data: Any) -> Response:
        """Build a response from decoded JSON; raise ``ValueError`` if malformed."""
        if not isinstance(data, dict):
            raise ValueError("response must be a JSON object")
        try:
            kind = ResponseKind(data.get("type"))
        except ValueError:
            raise ValueError(f"unknown response type: {data.get('type')!r}") from None
        if kind is ResponseKind.STATUS:
            return cls.status(
                bool(data.get("running")),
                int(data.get("uptime_seconds") or 0),
                data.get("version"),
            )
        if kind is ResponseKind.ERROR:
            return cls.error(str(data.get("message", "")), data.get("code"))
        return cls.ok(str(data.get("message", "")))

    @classmethod
    def from_json(cls, data: Union[bytes, str]) -> Response:
        """Decode a response; raise :class:`SerializationError` if it is invalid."""
        decoded = _load_json(data)
        try:
            return cls.from_dict(decoded)
        except ValueError as exc:
            raise SerializationError(exc) from exc


class Daemon:
    """TCP server answering one JSON message per read with one JSON response."""

    def __init__(self, config: DaemonConfig) -> None:
        self.config = config
        self._start_time = time.monotonic()
        self._running = False
        self._clients: set[asyncio.StreamWriter] = set()
        self.listening = asyncio.Event()
        self.port: Optional[int] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def uptime_seconds(self) -> int:
        return int(time.monotonic() - self._start_time)

    async def start(self) -> None:
        """Bind the listener and serve clients until :meth:`stop` is called."""
        host, port = self.config.host, self.config.port
        address = f"{host}:{port}"
        try:
            server = await asyncio.start_server(self._on_client, host, port)
        except OSError as exc:
            raise ServerError(f"Failed to bind to {address}: {exc}") from exc

        self._running = True
        sockets = server.sockets or ()
        self.port = sockets[0].getsockname()[1] if sockets else port
        self.listening.set()
        log.info("Daemon started on %s:%s", host, self.port)
        try:
            while self._running:
                await asyncio.sleep(_POLL_SECS)
        finally:
            self.listening.clear()
            server.close()
            for writer in list(self._clients):
                writer.close()
            await server.wait_closed()

    def stop(self) -> None:
        """Ask the accept loop to end."""
        self._running = False

    async def _on_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        log.info("New connection from %s", peer)
        self._clients.add(writer)
        try:
            await self.handle_connection(reader, writer)
        except Exception as exc:
            log.error("Error handling connection: %s", exc)
        finally:
            self._clients.discard(writer)
            writer.close()

    async def handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        """Answer messages from one client until it closes the connection."""
        while True:
            try:
                chunk = await reader.read(READ_CHUNK)
            except OSError as exc:
                raise DaemonIOError(exc) from exc
            if not chunk:
                break
            response = self.process_message(Message.from_json(chunk))
            try:
                writer.write(response.to_json())
                await writer.drain()
            except OSError as exc:
                raise DaemonIOError(exc) from exc

    def process_message(self, message: Message) -> Response:
        """Apply ``message`` to the daemon and return the reply."""
        kind = message.kind
        if kind is MessageKind.STATUS:
            return Response.status(self._running, self.uptime_seconds, VERSION)
        if kind is MessageKind.START:
            if self._running:
                return Response.error("Daemon is already running", "DAEMON_ALREADY_RUNNING")
            self._running = True
            return Response.ok("Daemon started")
        if kind is MessageKind.STOP:
            self._running = False
            return Response.ok("Daemon stopping")
        if kind is MessageKind.RESTART:
            log.warning("Restart requested - this is a simplified implementation")
            return Response.ok("Restart acknowledged")
        log.info("Custom command received: %s", message.cmd)
        return Response.ok(f"Processed: {message.cmd}")