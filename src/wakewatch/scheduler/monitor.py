"""APScheduler-based retrying reachability monitor for woken hosts."""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger

from wakewatch.core.events import DeviceAvailabilityChanged, EventBus
from wakewatch.core.probe import BACKGROUND_TIMEOUT_MS, ProbeResult, Prober, probe

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_SECONDS = 10.0


class MonitorState(Enum):
    SCHEDULED = "scheduled"
    PROBING = "probing"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (MonitorState.SUCCEEDED, MonitorState.FAILED)


@dataclass(frozen=True)
class WakeAttempt:
    """One wake-and-wait cycle for a target host."""

    target_host: str
    mac_address: str
    generation: int
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    attempts_made: int = 0
    backoff_interval_seconds: float = DEFAULT_BACKOFF_SECONDS
    probe_timeout_ms: int = BACKGROUND_TIMEOUT_MS
    state: MonitorState = MonitorState.SCHEDULED


def job_id(host: str) -> str:
    return f"wake-monitor:{host}"


class WakeMonitor:
    """
    Polls a freshly woken host until it answers or the attempts run out.

    There is at most one monitor per host. Starting a new one bumps the
    host's generation and replaces the scheduled APScheduler job; firings
    and results that belong to an older generation are discarded.

    Usage::

        monitor = WakeMonitor(scheduler, on_terminal=handle)
        monitor.start("192.168.2.150", "00:11:32:C2:2F:ED")
    """

    def __init__(
        self,
        scheduler: BaseScheduler,
        prober: Prober = probe,
        on_terminal: Optional[Callable[[WakeAttempt, bool], None]] = None,
        is_foreground: Callable[[], bool] = lambda: False,
        events: Optional[EventBus] = None,
    ) -> None:
        """
        Args:
            scheduler: APScheduler instance that runs the probe jobs
            prober: ``(host, timeout_ms) -> ProbeResult``
            on_terminal: Called once per monitor with ``(attempt, succeeded)``
            is_foreground: While this returns True no availability event is emitted
            events: Bus receiving DeviceAvailabilityChanged events
        """
        self._scheduler = scheduler
        self._prober = prober
        self._on_terminal = on_terminal
        self._is_foreground = is_foreground
        self._events = events
        self._lock = threading.RLock()
        self._generations: dict[str, int] = {}
        self._attempts: dict[str, WakeAttempt] = {}

    def start(
        self,
        host: str,
        mac_address: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        probe_timeout_ms: int = BACKGROUND_TIMEOUT_MS,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        initial_delay: float = 0.0,
    ) -> WakeAttempt:
        """
        Begin monitoring ``host``, superseding any monitor already running for it.

        Args:
            host: Address to probe
            mac_address: MAC address that was woken (kept for context)
            max_attempts: Probes before giving up (minimum 1)
            probe_timeout_ms: Timeout of each probe
            backoff_seconds: Base interval; the delay after attempt n is n * base
            initial_delay: Seconds to wait before the first probe

        Returns:
            The new WakeAttempt
        """
        with self._lock:
            generation = self._generations.get(host, 0) + 1
            self._generations[host] = generation
            previous = self._attempts.get(host)
            attempt = WakeAttempt(
                target_host=host,
                mac_address=mac_address,
                generation=generation,
                max_attempts=max(1, max_attempts),
                backoff_interval_seconds=max(0.0, backoff_seconds),
                probe_timeout_ms=probe_timeout_ms,
            )
            self._attempts[host] = attempt
            self._schedule(host, generation, initial_delay)

        if previous is not None and not previous.state.is_terminal:
            logger.info("Superseding wake monitor for %s (generation %d)", host, previous.generation)
        logger.info(
            "Monitoring %s: up to %d attempt(s), backoff %.0fs, first probe in %.0fs",
            host,
            attempt.max_attempts,
            attempt.backoff_interval_seconds,
            initial_delay,
        )
        return attempt

    def cancel(self, host: str) -> bool:
        """
        Stop monitoring ``host``. No result is reported for the cancelled monitor.

        Returns:
            True if a monitor was outstanding
        """
        with self._lock:
            attempt = self._attempts.get(host)
            if attempt is None or attempt.state.is_terminal:
                return False
            self._generations[host] = self._generations.get(host, 0) + 1
            del self._attempts[host]
            try:
                self._scheduler.remove_job(job_id(host))
            except JobLookupError:
                pass
        logger.info("Cancelled wake monitor for %s", host)
        return True

    def attempt(self, host: str) -> Optional[WakeAttempt]:
        return self._attempts.get(host)

    def state(self, host: str) -> Optional[MonitorState]:
        attempt = self._attempts.get(host)
        return attempt.state if attempt else None

    def outstanding(self, host: str) -> bool:
        attempt = self._attempts.get(host)
        return attempt is not None and not attempt.state.is_terminal

    # ── Job body ──────────────────────────────────────────────────────────────

    def fire(self, host: str, generation: int) -> None:
        """Run one probe for ``host`` and decide what happens next."""
        with self._lock:
            if not self._is_current(host, generation):
                logger.debug("Discarding stale firing for %s (generation %d)", host, generation)
                return
            attempt = replace(
                self._attempts[host],
                attempts_made=self._attempts[host].attempts_made + 1,
                state=MonitorState.PROBING,
            )
            self._attempts[host] = attempt

        logger.debug(
            "Probing %s, attempt %d/%d", host, attempt.attempts_made, attempt.max_attempts
        )
        result = self._prober(host, attempt.probe_timeout_ms)
        if result == ProbeResult.ERROR:
            logger.warning("Probe of %s failed on attempt %d", host, attempt.attempts_made)

        with self._lock:
            if not self._is_current(host, generation):
                logger.debug("Discarding stale result for %s (generation %d)", host, generation)
                return
            if result == ProbeResult.REACHABLE:
                attempt = replace(attempt, state=MonitorState.SUCCEEDED)
            elif attempt.attempts_made < attempt.max_attempts:
                attempt = replace(attempt, state=MonitorState.RETRYING)
                delay = attempt.attempts_made * attempt.backoff_interval_seconds
                self._schedule(host, generation, delay)
                logger.info(
                    "%s not reachable yet (attempt %d/%d), retrying in %.0fs",
                    host,
                    attempt.attempts_made,
                    attempt.max_attempts,
                    delay,
                )
            else:
                attempt = replace(attempt, state=MonitorState.FAILED)
            self._attempts[host] = attempt
            if attempt.state.is_terminal:
                # Under the lock so a start() for this host cannot land in between.
                self._finish(attempt)

        if attempt.state.is_terminal:
            self._announce(attempt)

    def _is_current(self, host: str, generation: int) -> bool:
        return self._generations.get(host) == generation and host in self._attempts

    def _schedule(self, host: str, generation: int, delay: float) -> None:
        run_date = datetime.now(timezone.utc) + timedelta(seconds=max(0.0, delay))
        self._scheduler.add_job(
            func=self.fire,
            trigger=DateTrigger(run_date=run_date, timezone="UTC"),
            args=[host, generation],
            id=job_id(host),
            name=job_id(host),
            replace_existing=True,
            misfire_grace_time=300,
            max_instances=4,
        )

    def _finish(self, attempt: WakeAttempt) -> None:
        succeeded = attempt.state == MonitorState.SUCCEEDED
        if succeeded:
            logger.info(
                "%s is reachable after %d attempt(s)", attempt.target_host, attempt.attempts_made
            )
        else:
            logger.warning(
                "%s still unreachable after %d attempt(s), giving up",
                attempt.target_host,
                attempt.attempts_made,
            )

        if self._on_terminal:
            try:
                self._on_terminal(attempt, succeeded)
            except Exception as exc:
                logger.error("on_terminal callback raised: %s", exc)

    def _announce(self, attempt: WakeAttempt) -> None:
        with self._lock:
            if not self._is_current(attempt.target_host, attempt.generation):
                logger.debug("Not announcing superseded monitor for %s", attempt.target_host)
                return
        if self._events is not None and not self._is_foreground():
            self._events.emit(
                DeviceAvailabilityChanged(
                    is_available=attempt.state == MonitorState.SUCCEEDED,
                    host=attempt.target_host,
                    attempts=attempt.attempts_made,
                )
            )
