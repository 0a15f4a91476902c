"""Health and readiness probes and the status records kept about them."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Union

from .errors import ServiceError
from .model import HealthCheck, ReadinessCheck, ServiceState, TcpCheck

__all__ = [
    "PROBE_HOST",
    "HealthCheckStatus",
    "ReadinessCheckStatus",
    "HealthStatus",
    "run_probe",
]

log = logging.getLogger(__name__)

#: Address probes connect to; supervised services run on this host.
PROBE_HOST = "127.0.0.1"


@dataclass(frozen=True)
class HealthCheckStatus:
    """Outcome of the most recent health check.

    ``timestamp`` is in epoch seconds and ``duration`` in seconds.
    """

    success: bool
    timestamp: float
    duration: float
    error: Optional[str] = None


@dataclass(frozen=True)
class ReadinessCheckStatus:
    """Outcome of the most recent readiness check.

    ``timestamp`` is in epoch seconds and ``duration`` in seconds.
    """

    success: bool
    timestamp: float
    duration: float
    error: Optional[str] = None


@dataclass(frozen=True)
class HealthStatus:
    """Snapshot of a supervised service's check state.

    The ``*_in`` fields give the seconds until the timer fires, never negative.
    """

    state: ServiceState
    health_check_enabled: bool = False
    readiness_check_enabled: bool = False
    consecutive_health_failures: int = 0
    consecutive_readiness_successes: int = 0
    next_readiness_check_in: Optional[float] = None
    next_health_check_in: Optional[float] = None
    startup_timeout_in: Optional[float] = None
    last_health_check: Optional[HealthCheckStatus] = None
    last_readiness_check: Optional[ReadinessCheckStatus] = None


async def run_probe(check: Union[HealthCheck, ReadinessCheck]) -> None:
    """Run the probe described by ``check``; raise :class:`ServiceError` if it fails."""
    probe = check.check_type
    if not isinstance(probe, TcpCheck):
        raise ServiceError(f"Unsupported check type: {type(probe).__name__}")

    address = f"{PROBE_HOST}:{probe.port}"
    try:
        _reader, writer = await asyncio.wait_for(
            asyncio.open_connection(PROBE_HOST, probe.port),
            timeout=check.timeout_secs,
        )
    except asyncio.TimeoutError as exc:
        raise ServiceError(
            f"TCP connection to {address} timed out after {check.timeout_secs}s"
        ) from exc
    except OSError as exc:
        raise ServiceError(f"TCP connection to {address} failed: {exc}") from exc

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    log.debug("TCP probe to %s succeeded", address)