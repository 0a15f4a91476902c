"""Exception hierarchy for the daemon and the supervisor core."""

from __future__ import annotations

__all__ = [
    "DaemonError",
    "ServerError",
    "DaemonConnectionError",
    "DaemonIOError",
    "SerializationError",
    "CoreError",
    "ValidationError",
    "ServiceError",
]


class DaemonError(Exception):
    """Base class of every error raised by the daemon server."""

    prefix = "Daemon error"

    def __init__(self, detail: object) -> None:
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.prefix}: {self.detail}"


class ServerError(DaemonError):
    """The server failed to start or to keep running."""

    prefix = "Server error"

    @property
    def message(self) -> str:
        return str(self.detail)


class DaemonConnectionError(DaemonError):
    """A client connection could not be handled."""

    prefix = "Connection error"

    @property
    def message(self) -> str:
        return str(self.detail)


class DaemonIOError(DaemonError):
    """An I/O operation failed; wraps the underlying ``OSError``."""

    prefix = "I/O error"

    def __init__(self, error: OSError) -> None:
        super().__init__(error)
        self.error = error


class SerializationError(DaemonError):
    """JSON encoding or decoding failed; wraps the underlying error."""

    prefix = "Serialization error"

    def __init__(self, error: Exception) -> None:
        super().__init__(error)
        self.error = error


class CoreError(Exception):
    """Base class of errors raised by the supervisor core."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(CoreError):
    """Configuration or input data failed validation."""


class ServiceError(CoreError):
    """A supervised service could not perform the requested operation."""