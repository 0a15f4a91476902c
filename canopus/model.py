"""Service specifications, states, exits and the events a supervisor emits."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

__all__ = [
    "RestartPolicy",
    "BackoffConfig",
    "ServiceExit",
    "TcpCheck",
    "HealthCheck",
    "ReadinessCheck",
    "ServiceSpec",
    "ServiceState",
    "LogStream",
    "StateChanged",
    "ProcessStarted",
    "ProcessExited",
    "LogOutput",
    "ServiceWarning",
    "ConfigurationUpdated",
    "ReadinessCheckResult",
    "HealthCheckResult",
    "StartupTimeout",
    "ServiceUnhealthy",
    "RouteAttached",
    "RouteDetached",
    "ServiceEvent",
    "current_timestamp",
]


def current_timestamp() -> str:
    """Return the current UTC time as an RFC 3339 string ending in ``Z``."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RestartPolicy(enum.Enum):
    """When a service is restarted after its process exits."""

    NEVER = "never"
    ON_FAILURE = "on-failure"
    ALWAYS = "always"


@dataclass(frozen=True)
class BackoffConfig:
    """Exponential backoff settings for restarts. Durations are in seconds."""

    base_delay_secs: int = 1
    multiplier: float = 2.0
    max_delay_secs: int = 60
    jitter: float = 0.1
    failure_window_secs: int = 300

    def base_delay(self) -> float:
        return float(self.base_delay_secs)

    def max_delay(self) -> float:
        return float(self.max_delay_secs)

    def failure_window(self) -> float:
        return float(self.failure_window_secs)


@dataclass(frozen=True)
class ServiceExit:
    """How a service process ended."""

    pid: int
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    timestamp: str = field(default_factory=current_timestamp)

    def is_failure(self) -> bool:
        """A process failed unless it exited with code 0 and no signal."""
        return self.signal is not None or self.exit_code != 0


@dataclass(frozen=True)
class TcpCheck:
    """Probe that succeeds when a TCP connection to the port can be made."""

    port: int


@dataclass(frozen=True)
class HealthCheck:
    """Periodic liveness check of a ready service."""

    check_type: TcpCheck
    interval_secs: int = 30
    timeout_secs: int = 5
    failure_threshold: int = 3
    success_threshold: int = 1

    def interval(self) -> float:
        return float(self.interval_secs)


@dataclass(frozen=True)
class ReadinessCheck:
    """Check that gates a starting service becoming ready."""

    check_type: TcpCheck
    initial_delay_secs: int = 0
    interval_secs: int = 5
    timeout_secs: int = 5
    success_threshold: int = 1

    def interval(self) -> float:
        return float(self.interval_secs)

    def initial_delay(self) -> float:
        return float(self.initial_delay_secs)


@dataclass(frozen=True)
class ServiceSpec:
    """Everything needed to run and supervise one service."""

    id: str
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    environment: dict[str, str] = field(default_factory=dict)
    working_directory: Optional[str] = None
    route: Optional[str] = None
    restart_policy: RestartPolicy = RestartPolicy.NEVER
    backoff_config: BackoffConfig = field(default_factory=BackoffConfig)
    health_check: Optional[HealthCheck] = None
    readiness_check: Optional[ReadinessCheck] = None
    graceful_timeout_secs: int = 5
    startup_timeout_secs: int = 30


class ServiceState(enum.Enum):
    """Externally visible lifecycle state of a service."""

    IDLE = "idle"
    SPAWNING = "spawning"
    STARTING = "starting"
    READY = "ready"
    STOPPING = "stopping"


class LogStream(enum.Enum):
    """Output stream a log line came from."""

    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class StateChanged:
    service_id: str
    from_state: ServiceState
    to_state: ServiceState
    timestamp: str
    reason: Optional[str] = None


@dataclass(frozen=True)
class ProcessStarted:
    service_id: str
    pid: int
    timestamp: str
    command: str
    args: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProcessExited:
    service_id: str
    exit_info: ServiceExit


@dataclass(frozen=True)
class LogOutput:
    service_id: str
    stream: LogStream
    content: str
    timestamp: str


@dataclass(frozen=True)
class ServiceWarning:
    service_id: str
    message: str
    timestamp: str
    code: Optional[str] = None


@dataclass(frozen=True)
class ConfigurationUpdated:
    service_id: str
    timestamp: str
    changed_fields: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ReadinessCheckResult:
    service_id: str
    success: bool
    timestamp: str
    error: Optional[str]
    duration_ms: int


@dataclass(frozen=True)
class HealthCheckResult:
    service_id: str
    success: bool
    timestamp: str
    error: Optional[str]
    duration_ms: int


@dataclass(frozen=True)
class StartupTimeout:
    service_id: str
    timestamp: str
    timeout_secs: int


@dataclass(frozen=True)
class ServiceUnhealthy:
    service_id: str
    timestamp: str
    reason: str
    consecutive_failures: int


@dataclass(frozen=True)
class RouteAttached:
    service_id: str
    route: str
    route_host: Optional[str]
    route_path: Optional[str]
    backend_address: str
    timestamp: str


@dataclass(frozen=True)
class RouteDetached:
    service_id: str
    route: str
    route_host: Optional[str]
    route_path: Optional[str]
    timestamp: str


ServiceEvent = Union[
    StateChanged,
    ProcessStarted,
    ProcessExited,
    LogOutput,
    ServiceWarning,
    ConfigurationUpdated,
    ReadinessCheckResult,
    HealthCheckResult,
    StartupTimeout,
    ServiceUnhealthy,
    RouteAttached,
    RouteDetached,
]