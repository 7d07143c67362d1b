"""Rate limiter store interfaces.

The admission layer depends on this abstraction (not the concrete
implementation) so the per-process table can later be replaced by a shared
store (e.g. Redis) with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any


class RejectionReason(str, Enum):
    TEMPORARILY_BLOCKED = "temporarily_blocked"
    MINUTE_LIMIT_EXCEEDED = "minute_limit_exceeded"
    HOUR_LIMIT_EXCEEDED = "hour_limit_exceeded"


@dataclass(frozen=True)
class RateLimitConfig:
    """Active rate limiting policy.

    Attributes:
        enabled: When False every request is admitted.
        max_requests_per_minute: Requests allowed per one-minute window.
        max_requests_per_hour: Requests allowed per one-hour window.
        block_duration_minutes: Cooldown applied when the minute limit trips;
            None or 0 disables blocking.
    """

    enabled: bool
    max_requests_per_minute: int | None
    max_requests_per_hour: int | None
    block_duration_minutes: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "maxRequestsPerMinute": self.max_requests_per_minute,
            "maxRequestsPerHour": self.max_requests_per_hour,
            "blockDurationMinutes": self.block_duration_minutes,
        }


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of an admission check.

    Attributes:
        allowed: Whether the request may proceed.
        reason: Why it was rejected (None when allowed).
        retry_after: Seconds the client should wait before retrying.
        remaining_requests: Quota left after this request (admitted only).
        reset_time: UNIX epoch seconds when the relevant window/block ends.
        limit: Per-minute limit reported to clients.
    """

    allowed: bool
    reason: RejectionReason | None = None
    retry_after: int | None = None
    remaining_requests: int | None = None
    reset_time: int | None = None
    limit: int | None = None

    @classmethod
    def bypass(cls) -> "AdmissionResult":
        """Admitted without touching any counters (disabled or exempt client)."""
        return cls(allowed=True)


@dataclass(frozen=True)
class SweepReport:
    expired_removed: int
    overflow_removed: int
    remaining: int

    @property
    def removed(self) -> int:
        return self.expired_removed + self.overflow_removed


class AbstractRateLimiterStore(ABC):
    """Interface for per-client admission stores."""

    @abstractmethod
    def check_admission(self, client_id: str, config: RateLimitConfig) -> AdmissionResult:
        """Decide whether ``client_id`` may make a request under ``config``.

        Admitted requests consume one unit of the client's quota.

        Raises:
            ConfigurationAppError: If the per-minute or per-hour limit is absent
                while rate limiting is enabled.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep_expired_entries(self) -> SweepReport:
        """Remove stale entries and enforce the size ceiling."""
        raise NotImplementedError

    @abstractmethod
    def stats(self) -> dict[str, Any]:
        """Return store metrics without exposing client identifiers."""
        raise NotImplementedError
