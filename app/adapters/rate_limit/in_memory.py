"""In-memory two-tier (minute/hour) rate limiter store with temporary blocks.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock guards the table, so each admission check is a single
  read-modify-write critical section. The periodic sweep takes the same lock.
- Bounded: the table never holds more than ``max_store_size`` clients.
"""

from __future__ import annotations

import heapq
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from app.adapters.rate_limit.base import (
    AbstractRateLimiterStore,
    AdmissionResult,
    RateLimitConfig,
    RejectionReason,
    SweepReport,
)
from app.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)

MINUTE_WINDOW_SECONDS = 60
HOUR_WINDOW_SECONDS = 60 * 60

DEFAULT_MAX_ENTRY_AGE_SECONDS = 60 * 60
DEFAULT_MAX_STORE_SIZE = 500_000
DEFAULT_EVICTION_MARGIN = 1_000
DEFAULT_BYPASS_CLIENTS = frozenset({"127.0.0.1", "::1", "localhost"})


@dataclass(slots=True)
class ClientCounterEntry:
    request_count: int
    window_start: float
    last_reset: float
    last_access: float
    blocked_until: float | None = None


class InMemoryRateLimiterStore(AbstractRateLimiterStore):
    """Per-client sliding minute/hour counters kept in a dict.

    Windows start at the first request after the previous window expired
    (not at wall-clock boundaries). Exceeding the per-minute limit blocks the
    client for ``block_duration_minutes``; while blocked every request is
    rejected before counters are consulted.

    Important:
        The per-minute check runs before the per-hour check and counters reset
        every minute, so the hour limit only trips when it is configured at or
        below the minute limit.
    """

    def __init__(
        self,
        *,
        max_entry_age_seconds: float = DEFAULT_MAX_ENTRY_AGE_SECONDS,
        max_store_size: int = DEFAULT_MAX_STORE_SIZE,
        eviction_margin: int = DEFAULT_EVICTION_MARGIN,
        bypass_clients: Iterable[str] = DEFAULT_BYPASS_CLIENTS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            max_entry_age_seconds: Idle time after which the sweep drops an entry.
            max_store_size: Hard ceiling on tracked clients.
            eviction_margin: Extra entries freed when the ceiling is exceeded.
            bypass_clients: Client ids that are never limited (loopback).
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If a size/age argument is invalid.
        """
        if max_entry_age_seconds <= 0:
            raise ValueError("max_entry_age_seconds must be > 0")
        if max_store_size < 1:
            raise ValueError("max_store_size must be >= 1")
        if not 0 <= eviction_margin < max_store_size:
            raise ValueError("eviction_margin must be >= 0 and < max_store_size")

        self._max_entry_age = max_entry_age_seconds
        self._max_store_size = max_store_size
        self._eviction_margin = eviction_margin
        self._bypass_clients = frozenset(bypass_clients)
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, ClientCounterEntry] = {}
        self._evictions = 0
        self._last_sweep_at: float | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_entry(self, client_id: str) -> ClientCounterEntry | None:
        """Return a copy of a client's counters (for inspection/tests)."""

        with self._lock:
            entry = self._entries.get(client_id)
            if entry is None:
                return None
            return ClientCounterEntry(
                request_count=entry.request_count,
                window_start=entry.window_start,
                last_reset=entry.last_reset,
                last_access=entry.last_access,
                blocked_until=entry.blocked_until,
            )

    def is_exempt(self, client_id: str) -> bool:
        return client_id in self._bypass_clients

    def check_admission(self, client_id: str, config: RateLimitConfig) -> AdmissionResult:
        """Check and consume one request for ``client_id``.

        Args:
            client_id: Client identity, typically the remote address.
            config: Active rate limit configuration.

        Returns:
            AdmissionResult with the decision and quota metadata.

        Raises:
            ConfigurationAppError: If a limit is missing while enabled.
        """
        if not config.enabled or self.is_exempt(client_id):
            return AdmissionResult.bypass()

        per_minute = config.max_requests_per_minute
        per_hour = config.max_requests_per_hour
        if per_minute is None or per_hour is None:
            missing = tuple(
                name
                for name, value in (
                    ("rate.limiting.max.requests.per.minute", per_minute),
                    ("rate.limiting.max.requests.per.hour", per_hour),
                )
                if value is None
            )
            raise ConfigurationAppError(
                message="Rate limiting configuration incomplete",
                details=f"missing {', '.join(missing)}",
                missing_settings=missing,
            )

        now = self._clock()

        with self._lock:
            entry = self._get_or_create_locked(client_id, now)
            entry.last_access = now

            if entry.blocked_until is not None and now < entry.blocked_until:
                return AdmissionResult(
                    allowed=False,
                    reason=RejectionReason.TEMPORARILY_BLOCKED,
                    retry_after=math.ceil(entry.blocked_until - now),
                    remaining_requests=0,
                    reset_time=math.ceil(entry.blocked_until),
                    limit=per_minute,
                )

            if now - entry.window_start >= MINUTE_WINDOW_SECONDS:
                entry.request_count = 0
                entry.window_start = now
            if now - entry.last_reset >= HOUR_WINDOW_SECONDS:
                entry.request_count = 0
                entry.last_reset = now
                entry.window_start = now

            if entry.request_count >= per_minute:
                if config.block_duration_minutes:
                    entry.blocked_until = now + config.block_duration_minutes * 60
                return AdmissionResult(
                    allowed=False,
                    reason=RejectionReason.MINUTE_LIMIT_EXCEEDED,
                    retry_after=MINUTE_WINDOW_SECONDS,
                    remaining_requests=0,
                    reset_time=math.floor(entry.window_start + MINUTE_WINDOW_SECONDS),
                    limit=per_minute,
                )

            if entry.request_count >= per_hour:
                return AdmissionResult(
                    allowed=False,
                    reason=RejectionReason.HOUR_LIMIT_EXCEEDED,
                    retry_after=HOUR_WINDOW_SECONDS,
                    remaining_requests=0,
                    reset_time=math.floor(entry.last_reset + HOUR_WINDOW_SECONDS),
                    limit=per_minute,
                )

            entry.request_count += 1
            return AdmissionResult(
                allowed=True,
                remaining_requests=min(per_minute - entry.request_count, per_hour - entry.request_count),
                reset_time=math.floor(entry.window_start + MINUTE_WINDOW_SECONDS),
                limit=per_minute,
            )

    def sweep_expired_entries(self) -> SweepReport:
        """Drop idle entries, then trim the table below the ceiling if needed."""

        now = self._clock()
        with self._lock:
            stale = [
                client_id
                for client_id, entry in self._entries.items()
                if now - entry.last_access > self._max_entry_age
            ]
            for client_id in stale:
                del self._entries[client_id]

            overflow = self._evict_over_ceiling_locked()
            self._last_sweep_at = now
            remaining = len(self._entries)

        return SweepReport(
            expired_removed=len(stale),
            overflow_removed=overflow,
            remaining=remaining,
        )

    def reset(self, client_id: str | None = None) -> None:
        """Forget one client's counters, or every client's when None."""

        with self._lock:
            if client_id is None:
                self._entries.clear()
            else:
                self._entries.pop(client_id, None)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        with self._lock:
            blocked = sum(
                1
                for entry in self._entries.values()
                if entry.blocked_until is not None and now < entry.blocked_until
            )
            return {
                "entries": len(self._entries),
                "blocked_entries": blocked,
                "max_store_size": self._max_store_size,
                "evictions": self._evictions,
                "last_sweep_at": self._last_sweep_at,
            }

    def _get_or_create_locked(self, client_id: str, now: float) -> ClientCounterEntry:
        entry = self._entries.get(client_id)
        if entry is not None:
            return entry

        entry = ClientCounterEntry(request_count=0, window_start=now, last_reset=now, last_access=now)
        self._entries[client_id] = entry
        if len(self._entries) > self._max_store_size:
            self._evict_over_ceiling_locked(keep=client_id)
        return entry

    def _evict_over_ceiling_locked(self, keep: str | None = None) -> int:
        """Evict least recently accessed entries down to ceiling minus margin."""

        if len(self._entries) <= self._max_store_size:
            return 0

        target = self._max_store_size - self._eviction_margin
        excess = len(self._entries) - target
        candidates = (item for item in self._entries.items() if item[0] != keep)
        # nsmallest is stable, so ties on last_access evict the oldest insertions first
        oldest = heapq.nsmallest(excess, candidates, key=lambda item: item[1].last_access)
        for client_id, _ in oldest:
            del self._entries[client_id]

        self._evictions += len(oldest)
        logger.warning(
            "rate_limit.ceiling_eviction",
            extra={
                "evicted": len(oldest),
                "entries": len(self._entries),
                "max_store_size": self._max_store_size,
            },
        )
        return len(oldest)
