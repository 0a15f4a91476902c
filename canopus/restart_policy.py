"""Restart decisions and exponential backoff for supervised services."""

from __future__ import annotations

import logging
import math
import random
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .model import BackoffConfig, RestartPolicy, ServiceExit

__all__ = [
    "MIN_RESTART_DELAY_MS",
    "RestartAction",
    "FailureTracker",
    "RestartPolicyEngine",
]

log = logging.getLogger(__name__)

#: Delay used when a restart is due and no failures are recorded.
MIN_RESTART_DELAY_MS = 100


def _whole_seconds(timestamp: float) -> int:
    """Whole seconds since the epoch; times before the epoch count as zero."""
    return max(0, int(timestamp))


@dataclass(frozen=True)
class RestartAction:
    """What to do after a service exits: stop, or restart after ``delay_ms``."""

    delay_ms: Optional[int] = None

    @classmethod
    def stop(cls) -> RestartAction:
        return cls()

    @classmethod
    def restart_after(cls, delay_ms: int) -> RestartAction:
        return cls(delay_ms)

    @property
    def should_restart(self) -> bool:
        return self.delay_ms is not None

    @property
    def delay(self) -> Optional[float]:
        """The restart delay in seconds, or ``None`` when not restarting."""
        return None if self.delay_ms is None else self.delay_ms / 1000


class FailureTracker:
    """Failure timestamps (whole epoch seconds) kept within a sliding window."""

    def __init__(self, window_secs: float) -> None:
        self.window_secs = window_secs
        self._failures: list[int] = []

    def record_failure(self, timestamp: float) -> None:
        """Record a failure at ``timestamp`` (epoch seconds)."""
        self._failures.append(_whole_seconds(timestamp))
        self._failures = self._in_window(timestamp)
        log.debug(
            "Recorded failure at %s, failures in window: %d",
            _whole_seconds(timestamp),
            len(self._failures),
        )

    def reset(self) -> None:
        """Forget every recorded failure."""
        log.debug("Resetting failure tracker, had %d failures", len(self._failures))
        self._failures.clear()

    def failure_count(self, current_time: float) -> int:
        """Number of failures inside the window ending at ``current_time``."""
        return len(self._in_window(current_time))

    def _in_window(self, current_time: float) -> list[int]:
        start = max(0, _whole_seconds(current_time) - int(self.window_secs))
        return [failure for failure in self._failures if failure >= start]


class RestartPolicyEngine:
    """Decides whether an exited service restarts, and after how long."""

    def __init__(
        self,
        policy: RestartPolicy,
        backoff_config: BackoffConfig,
        *,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.policy = policy
        self.backoff_config = backoff_config
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock
        self._tracker = FailureTracker(backoff_config.failure_window())

    def should_restart(self, exit_info: ServiceExit) -> RestartAction:
        """Apply the policy to an exit and return the action to take."""
        now = self._clock()
        log.debug(
            "Evaluating restart policy %s for exit: pid=%s, exit_code=%s, signal=%s",
            self.policy,
            exit_info.pid,
            exit_info.exit_code,
            exit_info.signal,
        )
        if self.policy is RestartPolicy.NEVER:
            return RestartAction.stop()

        failed = exit_info.is_failure()
        if self.policy is RestartPolicy.ON_FAILURE:
            if failed:
                self._tracker.record_failure(now)
                return RestartAction.restart_after(self._backoff_delay_ms(now))
            self._tracker.reset()
            return RestartAction.stop()

        if failed:
            self._tracker.record_failure(now)
        else:
            self._tracker.reset()
        return RestartAction.restart_after(self._backoff_delay_ms(now))

    def reset_failures(self) -> None:
        """Forget the failure history, e.g. after a long healthy run."""
        self._tracker.reset()

    def current_failure_count(self) -> int:
        """Failures recorded within the window ending now."""
        return self._tracker.failure_count(self._clock())

    def _backoff_delay_ms(self, now: float) -> int:
        count = self._tracker.failure_count(now)
        if count == 0:
            return MIN_RESTART_DELAY_MS

        cfg = self.backoff_config
        base_ms = int(cfg.base_delay() * 1000)
        max_ms = float(int(cfg.max_delay() * 1000))
        try:
            growth = cfg.multiplier ** (count - 1)
        except OverflowError:
            growth = math.inf
        calculated = base_ms * growth
        capped = calculated if calculated <= max_ms else max_ms

        jitter_factor = 1.0 + cfg.jitter * (2.0 * self._rng.random() - 1.0)
        final = max(0.0, capped * jitter_factor)
        log.debug(
            "Backoff: %d failures -> %.1fms (base=%dms, multiplier=%s, max=%.0fms, jitter=%s)",
            count,
            final,
            base_ms,
            cfg.multiplier,
            max_ms,
            cfg.jitter,
        )
        return int(final)