import asyncio

import pytest

from tests.conftest import VALID_UUID_1, VALID_UUID_2, VALID_UUID_3, settle_reauth
from vault_bridge.services.circuit_breaker import CircuitState
from vault_bridge.services.errors import (
    CircuitOpenError,
    ClassifiedUpstreamError,
    SecretValidationError,
    SessionNotReadyError,
    UnclassifiedUpstreamError,
    UpstreamRequestError,
)


def trip(breaker) -> None:
    for _ in range(breaker.config.failure_threshold):
        breaker.record_failure()


class TestSingle:
    async def test_fetches_from_upstream_and_caches(self, retriever, vault, cache):
        result = await retriever.retrieve(VALID_UUID_1)

        assert result.record == vault.records[VALID_UUID_1]
        assert result.source == "upstream"
        assert cache.has(VALID_UUID_1)

    async def test_cache_hit_skips_breaker_and_upstream(self, retriever, vault, breaker):
        await retriever.retrieve(VALID_UUID_1)
        trip(breaker)

        result = await retriever.retrieve(VALID_UUID_1)

        assert result.source == "cache"
        assert vault.get_secret.await_count == 1

    @pytest.mark.session_not_ready
    async def test_not_ready_fails_fast(self, retriever, session, vault):
        with pytest.raises(SessionNotReadyError) as exc_info:
            await retriever.retrieve(VALID_UUID_1)

        assert exc_info.value.status_code == 503
        vault.get_secret.assert_not_awaited()

    async def test_malformed_id_never_reaches_upstream(self, retriever, vault, cache):
        with pytest.raises(SecretValidationError) as exc_info:
            await retriever.retrieve("1 OR 1=1")

        assert exc_info.value.status_code == 400
        vault.get_secret.assert_not_awaited()
        assert cache.stats().misses == 0

    async def test_success_records_upstream_success(self, retriever, health, breaker):
        breaker.record_failure()
        await retriever.retrieve(VALID_UUID_1)

        assert breaker.consecutive_failures == 0
        assert health.last_upstream_success is not None

    async def test_not_found_is_classified(self, retriever, vault, breaker):
        vault.records.pop(VALID_UUID_1)
        with pytest.raises(ClassifiedUpstreamError) as exc_info:
            await retriever.retrieve(VALID_UUID_1)

        assert exc_info.value.status_code == 404
        assert breaker.consecutive_failures == 1

    async def test_unknown_failure_is_unclassified(self, retriever, vault):
        vault.errors[VALID_UUID_1] = RuntimeError("segfault in native binding")
        with pytest.raises(UnclassifiedUpstreamError) as exc_info:
            await retriever.retrieve(VALID_UUID_1)

        assert exc_info.value.status_code == 500
        assert "segfault" not in exc_info.value.message

    async def test_failures_trip_breaker_then_fail_fast(self, retriever, vault, breaker):
        vault.errors[VALID_UUID_1] = UpstreamRequestError("Connection refused")
        for _ in range(3):
            with pytest.raises(ClassifiedUpstreamError):
                await retriever.retrieve(VALID_UUID_1)
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitOpenError) as exc_info:
            await retriever.retrieve(VALID_UUID_2)

        assert exc_info.value.status_code == 503
        assert vault.get_secret.await_count == 3


class TestStaleServe:
    async def test_serves_expired_copy_when_breaker_open(
        self, retriever, vault, breaker, clock
    ):
        await retriever.retrieve(VALID_UUID_1)
        clock.advance(61)
        trip(breaker)

        result = await retriever.retrieve(VALID_UUID_1)

        assert result.degraded is True
        assert result.record == vault.records[VALID_UUID_1]
        assert vault.get_secret.await_count == 1

    async def test_expired_copy_not_served_when_breaker_closed(
        self, retriever, vault, clock
    ):
        await retriever.retrieve(VALID_UUID_1)
        clock.advance(61)

        result = await retriever.retrieve(VALID_UUID_1)

        assert result.source == "upstream"
        assert vault.get_secret.await_count == 2

    async def test_fails_without_stale_copy(self, retriever, breaker):
        trip(breaker)
        with pytest.raises(CircuitOpenError):
            await retriever.retrieve(VALID_UUID_1)


class TestReauth:
    async def test_auth_error_triggers_single_background_reauth(
        self, retriever, vault, session, authenticate
    ):
        gate = asyncio.Event()

        async def slow_login():
            await gate.wait()
            return True

        authenticate.side_effect = slow_login
        vault.errors[VALID_UUID_1] = UpstreamRequestError("HTTP 401 Unauthorized: ")
        vault.errors[VALID_UUID_2] = UpstreamRequestError("token expired")

        with pytest.raises(ClassifiedUpstreamError) as exc_info:
            await retriever.retrieve(VALID_UUID_1)
        assert exc_info.value.status_code == 502
        assert exc_info.value.is_auth_error is True
        assert session.reauth_in_progress is True

        with pytest.raises(ClassifiedUpstreamError):
            await retriever.retrieve(VALID_UUID_2)

        gate.set()
        await settle_reauth(session)
        assert session.is_ready() is True
        assert authenticate.await_count == 1

    async def test_non_auth_error_does_not_reauth(self, retriever, vault, session, authenticate):
        vault.errors[VALID_UUID_1] = UpstreamRequestError("Connection reset")
        with pytest.raises(ClassifiedUpstreamError):
            await retriever.retrieve(VALID_UUID_1)

        assert session.reauth_in_progress is False
        authenticate.assert_not_awaited()


class TestBulk:
    async def test_all_succeed(self, retriever):
        result = await retriever.retrieve_bulk([VALID_UUID_1, VALID_UUID_2])
        assert [r.id for r in result.succeeded] == [VALID_UUID_1, VALID_UUID_2]
        assert result.failed == []

    @pytest.mark.parametrize("failing", [VALID_UUID_1, VALID_UUID_2, VALID_UUID_3])
    async def test_partial_success_regardless_of_position(self, retriever, vault, failing):
        vault.errors[failing] = UpstreamRequestError("Secret not found")

        result = await retriever.retrieve_bulk([VALID_UUID_1, VALID_UUID_2, VALID_UUID_3])

        assert len(result.succeeded) == 2
        assert len(result.failed) == 1
        assert result.failed[0].id == failing
        assert result.failed[0].status_code == 404

    async def test_breaker_trip_mid_batch_only_affects_later_items(
        self, retriever, vault, breaker
    ):
        breaker.record_failure()
        breaker.record_failure()
        vault.errors[VALID_UUID_1] = UpstreamRequestError("Connection refused")

        result = await retriever.retrieve_bulk([VALID_UUID_1, VALID_UUID_2, VALID_UUID_3])

        assert result.succeeded == []
        assert [f.status_code for f in result.failed] == [502, 503, 503]
        assert vault.get_secret.await_count == 1

    async def test_cached_items_skip_upstream(self, retriever, vault, cache):
        cache.set(VALID_UUID_1, vault.records[VALID_UUID_1])

        result = await retriever.retrieve_bulk([VALID_UUID_1])

        assert len(result.succeeded) == 1
        vault.get_secret.assert_not_awaited()

    async def test_stale_items_mark_result_degraded(self, retriever, vault, cache, breaker, clock):
        cache.set(VALID_UUID_1, vault.records[VALID_UUID_1])
        clock.advance(61)
        trip(breaker)

        result = await retriever.retrieve_bulk([VALID_UUID_1, VALID_UUID_2])

        assert result.degraded is True
        assert [r.id for r in result.succeeded] == [VALID_UUID_1]
        assert result.failed[0].id == VALID_UUID_2

    @pytest.mark.parametrize("ids", [[], None, "not-a-list", {"a": 1}])
    async def test_rejects_missing_or_empty(self, retriever, ids):
        with pytest.raises(SecretValidationError):
            await retriever.retrieve_bulk(ids)

    async def test_rejects_oversized(self, retriever, vault):
        with pytest.raises(SecretValidationError) as exc_info:
            await retriever.retrieve_bulk([VALID_UUID_1] * 6)
        assert "Maximum 5" in exc_info.value.message
        vault.get_secret.assert_not_awaited()

    async def test_reports_all_malformed_ids(self, retriever, vault):
        with pytest.raises(SecretValidationError) as exc_info:
            await retriever.retrieve_bulk([VALID_UUID_1, "bad-1", 42, "bad-2"])

        assert exc_info.value.invalid_ids == ["bad-1", 42, "bad-2"]
        vault.get_secret.assert_not_awaited()

    @pytest.mark.session_not_ready
    async def test_not_ready(self, retriever, session):
        with pytest.raises(SessionNotReadyError):
            await retriever.retrieve_bulk([VALID_UUID_1])
