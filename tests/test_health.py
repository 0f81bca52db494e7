from datetime import datetime, timezone

import pytest

from vault_bridge.services.health import HealthAggregator, HealthStatus


def trip(breaker) -> None:
    for _ in range(breaker.config.failure_threshold):
        breaker.record_failure()


@pytest.mark.parametrize(
    "session_active, breaker_state, cache_size, expected",
    [
        (True, "closed", 0, HealthStatus.OK),
        (True, "half-open", 0, HealthStatus.OK),
        (True, "disabled", 0, HealthStatus.OK),
        (False, "closed", 1, HealthStatus.DEGRADED),
        (True, "open", 3, HealthStatus.DEGRADED),
        (False, "open", 2, HealthStatus.DEGRADED),
        (False, "closed", 0, HealthStatus.UNAVAILABLE),
        (True, "open", 0, HealthStatus.UNAVAILABLE),
    ],
)
def test_decision_table(session_active, breaker_state, cache_size, expected):
    assert HealthAggregator.evaluate(session_active, breaker_state, cache_size) == expected


def test_only_unavailable_fails():
    assert HealthStatus.OK.http_status == 200
    assert HealthStatus.DEGRADED.http_status == 200
    assert HealthStatus.UNAVAILABLE.http_status == 503


class TestSnapshot:
    def test_ok_with_live_components(self, health):
        snapshot = health.snapshot()

        assert snapshot.status == HealthStatus.OK
        assert snapshot.to_dict()["dependencies"] == {
            "session_active": True,
            "cache_enabled": True,
            "cache_size": 0,
            "breaker_state": "closed",
            "last_upstream_success": None,
            "reauth_in_progress": False,
            "consecutive_failures": 0,
        }

    @pytest.mark.session_not_ready
    def test_session_down_with_warm_cache_is_degraded(self, session, cache, breaker):
        cache.set("k", "v")
        health = HealthAggregator(session.is_ready, cache=cache, breaker=breaker)

        snapshot = health.snapshot()

        assert snapshot.status == HealthStatus.DEGRADED
        assert snapshot.http_status == 200

    @pytest.mark.session_not_ready
    def test_session_down_with_empty_cache_is_unavailable(self, session, cache):
        health = HealthAggregator(session.is_ready, cache=cache)

        snapshot = health.snapshot()

        assert snapshot.status == HealthStatus.UNAVAILABLE
        assert snapshot.http_status == 503
        assert snapshot.dependencies.breaker_state == "disabled"

    def test_open_breaker_with_warm_cache_is_degraded(self, health, cache, breaker):
        cache.set("k", "v")
        trip(breaker)

        snapshot = health.snapshot()

        assert snapshot.status == HealthStatus.DEGRADED
        assert snapshot.dependencies.breaker_state == "open"
        assert snapshot.dependencies.consecutive_failures == 3

    def test_without_cache(self, session):
        health = HealthAggregator(session.is_ready)
        deps = health.snapshot().dependencies
        assert deps.cache_enabled is False
        assert deps.cache_size == 0

    def test_last_upstream_success_is_reported(self, health):
        at = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        health.record_upstream_success(at)

        deps = health.snapshot().to_dict()["dependencies"]

        assert deps["last_upstream_success"] == "2026-01-02T03:04:05+00:00"


class TestShallow:
    def test_ready(self, health):
        assert health.shallow().to_dict() == {"status": "ok"}

    @pytest.mark.session_not_ready
    def test_not_ready_ignores_cache(self, session, cache):
        cache.set("k", "v")
        snapshot = HealthAggregator(session.is_ready, cache=cache).shallow()

        assert snapshot.to_dict() == {"status": "unavailable"}
        assert snapshot.http_status == 503
