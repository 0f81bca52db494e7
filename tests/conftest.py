"""Shared fixtures: fake upstream, controllable clock, wired components."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from vault_bridge.api.middleware import GatewayAuth
from vault_bridge.api.server import create_app
from vault_bridge.metrics import BridgeMetrics
from vault_bridge.services.cache import TTLCache
from vault_bridge.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from vault_bridge.services.errors import UpstreamRequestError
from vault_bridge.services.health import HealthAggregator
from vault_bridge.services.retrieval import SecretRetriever
from vault_bridge.services.session import VaultSession
from vault_bridge.services.upstream import SecretRecord

VALID_UUID_1 = "550e8400-e29b-41d4-a716-446655440000"
VALID_UUID_2 = "660e8400-e29b-41d4-a716-446655440001"
VALID_UUID_3 = "770e8400-e29b-41d4-b716-446655440002"


async def settle_reauth(session: VaultSession) -> None:
    """Let an in-flight background re-authentication run to completion."""
    while session.reauth_in_progress:
        await asyncio.sleep(0)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeVault:
    """In-memory upstream; ids in ``errors`` raise, unknown ids raise not-found."""

    def __init__(self):
        self.records: dict[str, SecretRecord] = {}
        self.errors: dict[str, Exception] = {}
        self.get_secret = AsyncMock(side_effect=self._get_secret)

    def add(self, secret_id: str) -> SecretRecord:
        record = SecretRecord(
            id=secret_id, key=f"key-{secret_id[:8]}", value=f"value-{secret_id[:8]}"
        )
        self.records[secret_id] = record
        return record

    async def _get_secret(self, secret_id: str) -> SecretRecord:
        if secret_id in self.errors:
            raise self.errors[secret_id]
        if secret_id in self.records:
            return self.records[secret_id]
        raise UpstreamRequestError("HTTP 404 Not Found: secret does not exist")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def vault():
    vault = FakeVault()
    vault.add(VALID_UUID_1)
    vault.add(VALID_UUID_2)
    vault.add(VALID_UUID_3)
    return vault


@pytest.fixture
def authenticate():
    return AsyncMock(return_value=True)


@pytest.fixture
def session(request, authenticate):
    ready = request.node.get_closest_marker("session_not_ready") is None
    return VaultSession(authenticate, ready=ready)


@pytest.fixture
def cache(clock):
    return TTLCache(
        default_ttl=timedelta(seconds=60),
        stale_ttl=timedelta(seconds=300),
        clock=clock,
    )


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(
        "vault",
        CircuitBreakerConfig(failure_threshold=3, reset_timeout=timedelta(seconds=30)),
        clock=clock,
    )


@pytest.fixture
def health(session, cache, breaker):
    return HealthAggregator(
        session.is_ready,
        cache=cache,
        breaker=breaker,
        reauth_in_progress=lambda: session.reauth_in_progress,
    )


@pytest.fixture
def metrics():
    return BridgeMetrics()


@pytest.fixture
def retriever(vault, session, cache, breaker, health, metrics):
    return SecretRetriever(
        provider=vault,
        session=session,
        cache=cache,
        breaker=breaker,
        on_upstream_success=health.record_upstream_success,
        metrics=metrics,
        max_bulk_ids=5,
    )


@pytest.fixture
def make_client(retriever, health, metrics):
    def _make(gateway_auth: GatewayAuth | None = None) -> TestClient:
        app = create_app(retriever, health, metrics=metrics, gateway_auth=gateway_auth)
        return TestClient(app)

    return _make


@pytest.fixture
def client(make_client):
    with make_client() as client:
        yield client
