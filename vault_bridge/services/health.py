"""
HealthAggregator - Composes a readiness verdict from live component state.

Decision order for the deep check:
1. session ready and circuit not open          → ok
2. session not ready, cache holds entries      → degraded
3. circuit open, cache holds entries           → degraded
4. anything else                               → unavailable

Only ``unavailable`` maps to a failing HTTP status; ``degraded`` still serves
(from cache).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from vault_bridge.services.cache import TTLCache
from vault_bridge.services.circuit_breaker import CircuitBreaker, CircuitState

BREAKER_DISABLED = "disabled"


class HealthStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"

    @property
    def http_status(self) -> int:
        return 503 if self is HealthStatus.UNAVAILABLE else 200


@dataclass(frozen=True)
class DependencyHealth:
    session_active: bool
    cache_enabled: bool
    cache_size: int
    breaker_state: str
    last_upstream_success: datetime | None
    reauth_in_progress: bool = False
    consecutive_failures: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_active": self.session_active,
            "cache_enabled": self.cache_enabled,
            "cache_size": self.cache_size,
            "breaker_state": self.breaker_state,
            "last_upstream_success": (
                self.last_upstream_success.isoformat()
                if self.last_upstream_success
                else None
            ),
            "reauth_in_progress": self.reauth_in_progress,
            "consecutive_failures": self.consecutive_failures,
        }


@dataclass(frozen=True)
class HealthSnapshot:
    status: HealthStatus
    dependencies: DependencyHealth | None = None

    @property
    def http_status(self) -> int:
        return self.status.http_status

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": self.status.value}
        if self.dependencies is not None:
            body["dependencies"] = self.dependencies.to_dict()
        return body


class HealthAggregator:
    """
    Usage:
        health = HealthAggregator(session.is_ready, cache, breaker)
        retriever = SecretRetriever(..., on_upstream_success=health.record_upstream_success)

        snapshot = health.snapshot()        # deep
        snapshot = health.shallow()         # liveness only
    """

    def __init__(
        self,
        session_ready: Callable[[], bool],
        cache: TTLCache | None = None,
        breaker: CircuitBreaker | None = None,
        reauth_in_progress: Callable[[], bool] | None = None,
    ):
        self._session_ready = session_ready
        self._cache = cache
        self._breaker = breaker
        self._reauth_in_progress = reauth_in_progress
        self._last_upstream_success: datetime | None = None

    @property
    def last_upstream_success(self) -> datetime | None:
        return self._last_upstream_success

    def record_upstream_success(self, at: datetime | None = None) -> None:
        self._last_upstream_success = at or datetime.now(timezone.utc)

    def shallow(self) -> HealthSnapshot:
        status = HealthStatus.OK if self._session_ready() else HealthStatus.UNAVAILABLE
        return HealthSnapshot(status=status)

    def snapshot(self) -> HealthSnapshot:
        session_active = self._session_ready()
        cache_size = self._cache.size() if self._cache is not None else 0
        breaker_state = (
            self._breaker.state.value if self._breaker is not None else BREAKER_DISABLED
        )

        dependencies = DependencyHealth(
            session_active=session_active,
            cache_enabled=self._cache is not None,
            cache_size=cache_size,
            breaker_state=breaker_state,
            last_upstream_success=self._last_upstream_success,
            reauth_in_progress=(
                self._reauth_in_progress() if self._reauth_in_progress else False
            ),
            consecutive_failures=(
                self._breaker.consecutive_failures if self._breaker is not None else 0
            ),
        )
        return HealthSnapshot(
            status=self.evaluate(session_active, breaker_state, cache_size),
            dependencies=dependencies,
        )

    @staticmethod
    def evaluate(session_active: bool, breaker_state: str, cache_size: int) -> HealthStatus:
        breaker_open = breaker_state == CircuitState.OPEN.value
        if session_active and not breaker_open:
            return HealthStatus.OK
        if not session_active and cache_size >= 1:
            return HealthStatus.DEGRADED
        if breaker_open and cache_size >= 1:
            return HealthStatus.DEGRADED
        return HealthStatus.UNAVAILABLE
