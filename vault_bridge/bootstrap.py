"""
Composition root.

Builds one instance of every component from Settings and wires them
together. Nothing here is global; tests build their own.
"""

from dataclasses import dataclass
from datetime import timedelta

from fastapi import FastAPI
from loguru import logger

from vault_bridge.api.middleware import GatewayAuth
from vault_bridge.api.server import create_app
from vault_bridge.metrics import BridgeMetrics
from vault_bridge.services.cache import TTLCache
from vault_bridge.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from vault_bridge.services.health import HealthAggregator
from vault_bridge.services.retrieval import SecretRetriever
from vault_bridge.services.session import VaultSession
from vault_bridge.services.sweeper import CacheSweeper
from vault_bridge.services.upstream import HttpSecretClient
from vault_bridge.settings import Settings


@dataclass
class BridgeComponents:
    client: HttpSecretClient
    session: VaultSession
    cache: TTLCache
    breaker: CircuitBreaker
    health: HealthAggregator
    retriever: SecretRetriever
    metrics: BridgeMetrics
    sweeper: CacheSweeper | None
    app: FastAPI

    async def start(self) -> bool:
        """Log in upstream and start background work. Returns login success."""
        ready = await self.session.start()
        if ready:
            logger.info("Upstream session established")
        else:
            logger.error("Initial upstream login failed; serving as not ready")
        if self.sweeper is not None:
            self.sweeper.start()
        return ready

    async def shutdown(self) -> None:
        """Stop background work and drop cached secrets. The breaker is left as is."""
        if self.sweeper is not None:
            self.sweeper.stop()
        await self.session.close()
        self.cache.clear()
        logger.info("Cache cleared")
        await self.client.close()


def build_components(
    settings: Settings,
    client: HttpSecretClient | None = None,
) -> BridgeComponents:
    client = client or HttpSecretClient(
        access_token=settings.access_token,
        api_url=settings.api_url,
        identity_url=settings.identity_url,
        timeout=settings.upstream_timeout,
    )
    metrics = BridgeMetrics()
    session = VaultSession(client.authenticate, on_reauth_result=metrics.record_reauth)

    cache = TTLCache(
        default_ttl=settings.cache_ttl_delta,
        stale_ttl=timedelta(seconds=settings.cache_stale_ttl),
        max_entries=settings.cache_max_entries,
    )
    breaker = CircuitBreaker(
        client.service_id,
        CircuitBreakerConfig(
            failure_threshold=settings.circuit_breaker_threshold,
            reset_timeout=settings.circuit_breaker_cooldown_delta,
        ),
    )
    metrics.track_breaker(breaker)

    health = HealthAggregator(
        session_ready=session.is_ready,
        cache=cache,
        breaker=breaker,
        reauth_in_progress=lambda: session.reauth_in_progress,
    )
    retriever = SecretRetriever(
        provider=client,
        session=session,
        cache=cache,
        breaker=breaker,
        on_upstream_success=health.record_upstream_success,
        metrics=metrics,
        max_bulk_ids=settings.bulk_max_ids,
    )
    sweeper = (
        CacheSweeper(cache, settings.cache_sweep_interval)
        if settings.cache_sweep_interval > 0
        else None
    )
    app = create_app(
        retriever,
        health,
        metrics=metrics,
        gateway_auth=GatewayAuth(
            settings.gateway_auth_enabled, settings.gateway_auth_secret
        ),
    )

    return BridgeComponents(
        client=client,
        session=session,
        cache=cache,
        breaker=breaker,
        health=health,
        retriever=retriever,
        metrics=metrics,
        sweeper=sweeper,
        app=app,
    )
