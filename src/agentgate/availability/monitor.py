"""
Availability monitoring for a dependent backend service.

Polls a health endpoint in the background and widens the polling
interval while the service keeps failing.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx

from agentgate.backoff import next_interval, with_jitter

logger = logging.getLogger(__name__)


class ProbeError(Exception):
    """Raised by a probe when the service answered but is not healthy."""

    pass


class MonitorStatus(str, Enum):
    """Probe lifecycle state."""

    UNCHECKED = "unchecked"
    CHECKING = "checking"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class AvailabilityState:
    """Snapshot of a monitored service's health."""

    status: MonitorStatus
    is_available: bool
    last_checked_at: datetime | None
    last_error: str | None
    consecutive_failures: int
    current_poll_interval: float
    """Seconds until the next scheduled probe."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "is_available": self.is_available,
            "last_checked_at": (
                self.last_checked_at.isoformat() if self.last_checked_at else None
            ),
            "last_error": self.last_error,
            "consecutive_failures": self.consecutive_failures,
            "current_poll_interval": self.current_poll_interval,
        }


class AvailabilityMonitor:
    """
    Tracks whether a dependent service is reachable.

    Starts pessimistic (unavailable) and probes immediately on start.
    After every probe the next one is scheduled ``current_poll_interval``
    seconds later: the base interval after a success, an exponentially
    growing interval (capped) after consecutive failures.

    Only one probe runs at a time. ``check_now()`` while a probe is in
    flight waits for that probe instead of starting another.

    Usage:
        monitor = AvailabilityMonitor("http://backend/api/v1/health")
        await monitor.start()
        if monitor.state.is_available:
            ...
        await monitor.stop()
    """

    def __init__(
        self,
        url: str,
        base_interval: float = 30.0,
        max_interval: float = 300.0,
        probe_timeout: float = 3.0,
        probe: Callable[[], Awaitable[None]] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        jitter_ratio: float = 0.0,
    ) -> None:
        """
        Initialize the monitor.

        Args:
            url: Health endpoint (GET, 2xx = healthy)
            base_interval: Seconds between probes while healthy
            max_interval: Ceiling for the backed-off interval
            probe_timeout: Seconds before a probe counts as failed
            probe: Optional coroutine replacing the HTTP probe; it
                should raise on an unhealthy result
            transport: Optional httpx transport for the HTTP probe
            jitter_ratio: Random spread applied to scheduled sleeps
        """
        if base_interval <= 0:
            raise ValueError("base_interval must be positive")
        if max_interval < base_interval:
            raise ValueError("max_interval must be >= base_interval")

        self._url = url
        self._base_interval = base_interval
        self._max_interval = max_interval
        self._probe_timeout = probe_timeout
        self._probe = probe or self._http_probe
        self._transport = transport
        self._jitter_ratio = jitter_ratio
        self._client: httpx.AsyncClient | None = None

        self._status = MonitorStatus.UNCHECKED
        self._is_available = False
        self._last_checked_at: datetime | None = None
        self._last_error: str | None = None
        self._consecutive_failures = 0
        self._poll_interval = base_interval

        self._in_flight: asyncio.Task | None = None
        self._task: asyncio.Task | None = None
        self._rescheduled = asyncio.Event()

    @property
    def url(self) -> str:
        return self._url

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def state(self) -> AvailabilityState:
        """Current availability snapshot."""
        return AvailabilityState(
            status=self._status,
            is_available=self._is_available,
            last_checked_at=self._last_checked_at,
            last_error=self._last_error,
            consecutive_failures=self._consecutive_failures,
            current_poll_interval=self._poll_interval,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._probe_timeout,
                transport=self._transport,
            )
        return self._client

    async def _http_probe(self) -> None:
        response = await self._get_client().get(self._url)
        if not response.is_success:
            raise ProbeError(f"Health check returned status {response.status_code}")

    def _record_success(self) -> None:
        if not self._is_available:
            logger.info(f"Service at {self._url} is available")
        self._status = MonitorStatus.AVAILABLE
        self._is_available = True
        self._consecutive_failures = 0
        self._poll_interval = self._base_interval
        self._last_checked_at = datetime.now(timezone.utc)
        self._last_error = None

    def _record_failure(self, error: str) -> None:
        self._status = MonitorStatus.UNAVAILABLE
        self._is_available = False
        self._consecutive_failures += 1
        self._poll_interval = next_interval(
            self._consecutive_failures,
            self._base_interval,
            self._max_interval,
        )
        self._last_checked_at = datetime.now(timezone.utc)
        self._last_error = error
        logger.warning(
            f"Service at {self._url} unavailable ({error}); "
            f"failure {self._consecutive_failures}, "
            f"next check in {self._poll_interval:.0f}s"
        )

    async def _probe_once(self) -> None:
        self._status = MonitorStatus.CHECKING
        try:
            await asyncio.wait_for(self._probe(), timeout=self._probe_timeout)
        except asyncio.TimeoutError:
            self._record_failure(f"Health check timed out after {self._probe_timeout}s")
        except Exception as e:
            self._record_failure(str(e) or type(e).__name__)
        else:
            self._record_success()
        finally:
            self._rescheduled.set()

    async def check_now(self) -> AvailabilityState:
        """
        Probe immediately, or join the probe already in flight.

        Returns:
            State after the probe completed
        """
        if self._in_flight is None or self._in_flight.done():
            self._in_flight = asyncio.create_task(self._probe_once())
        await asyncio.shield(self._in_flight)
        return self.state

    async def _run(self) -> None:
        probe_due = True
        while True:
            if probe_due:
                await self.check_now()
            self._rescheduled.clear()
            delay = with_jitter(self._poll_interval, self._jitter_ratio)
            try:
                await asyncio.wait_for(self._rescheduled.wait(), timeout=delay)
                # A manual check finished; restart the wait from its result
                probe_due = False
            except asyncio.TimeoutError:
                probe_due = True

    async def start(self) -> None:
        """Start the background polling loop (first probe runs immediately)."""
        if self.is_running:
            logger.warning("Availability monitor is already running")
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Availability monitor started for {self._url}")

    async def stop(self) -> None:
        """Stop polling and release the HTTP client."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        # Probes are bounded by their timeout; let the last one settle
        if self._in_flight is not None and not self._in_flight.done():
            await asyncio.wait([self._in_flight])

        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
        logger.info(f"Availability monitor stopped for {self._url}")
