"""FastAPI server exposing secret retrieval, health and metrics."""

import json
import math

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from loguru import logger

from vault_bridge.api.middleware import GatewayAuth, RequestContextMiddleware
from vault_bridge.exceptions import ApiError, ValidationError
from vault_bridge.metrics import BridgeMetrics
from vault_bridge.services.errors import CircuitOpenError, RetrievalError
from vault_bridge.services.health import HealthAggregator
from vault_bridge.services.retrieval import SecretRetriever

DEGRADED_HEADER = "X-Degraded-Mode"
RETRY_AFTER_HEADER = "Retry-After"
BULK_BODY_MESSAGE = 'Request body must contain a non-empty "ids" array.'


class BridgeServer:
    """HTTP surface over a ``SecretRetriever`` and ``HealthAggregator``."""

    def __init__(
        self,
        retriever: SecretRetriever,
        health: HealthAggregator,
        metrics: BridgeMetrics | None = None,
        gateway_auth: GatewayAuth | None = None,
    ):
        self.retriever = retriever
        self.health = health
        self.metrics = metrics
        self.gateway_auth = gateway_auth or GatewayAuth(enabled=False)
        self.app = FastAPI(title="Vault Bridge", docs_url=None, redoc_url=None)

        self.app.middleware("http")(RequestContextMiddleware(metrics))
        self.app.exception_handler(ApiError)(self.render_api_error)
        self.app.exception_handler(RetrievalError)(self.render_retrieval_error)

        # Register routes
        vault_auth = [Depends(self.gateway_auth)]
        self.app.get("/vault/secret/{secret_id}", dependencies=vault_auth)(
            self.get_secret
        )
        self.app.post("/vault/secrets", dependencies=vault_auth)(self.get_secrets)
        self.app.get("/health")(self.health_check)
        if metrics is not None:
            self.app.get("/metrics")(self.metrics_endpoint)

    async def get_secret(self, secret_id: str) -> JSONResponse:
        """Retrieve a single secret by id."""
        result = await self.retriever.retrieve(secret_id)
        headers = {DEGRADED_HEADER: "true"} if result.degraded else None
        return JSONResponse(result.record.model_dump(), headers=headers)

    async def get_secrets(self, request: Request) -> JSONResponse:
        """Retrieve a batch of secrets; per-item failures are reported in the body."""
        # Readiness is reported before any body problems
        self.retriever.ensure_ready()

        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ValidationError(BULK_BODY_MESSAGE) from None

        ids = body.get("ids") if isinstance(body, dict) else None
        result = await self.retriever.retrieve_bulk(ids)
        headers = {DEGRADED_HEADER: "true"} if result.degraded else None
        return JSONResponse(result.to_dict(), headers=headers)

    async def health_check(self, deep: bool = False) -> JSONResponse:
        """Liveness by default; the full dependency snapshot with ``?deep=true``."""
        snapshot = self.health.snapshot() if deep else self.health.shallow()
        return JSONResponse(snapshot.to_dict(), status_code=snapshot.http_status)

    async def metrics_endpoint(self) -> Response:
        payload, content_type = self.metrics.render()
        return Response(content=payload, media_type=content_type)

    async def render_api_error(self, request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=exc.headers)

    async def render_retrieval_error(
        self, request: Request, exc: RetrievalError
    ) -> JSONResponse:
        body = {"error": exc.message}
        invalid_ids = getattr(exc, "invalid_ids", None)
        if invalid_ids:
            body["invalid_ids"] = invalid_ids
        headers = None
        if isinstance(exc, CircuitOpenError):
            headers = {RETRY_AFTER_HEADER: str(max(1, math.ceil(exc.reset_after_seconds)))}
        if exc.status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} failed: {exc.status_code}")
        return JSONResponse(body, status_code=exc.status_code, headers=headers)


def create_app(
    retriever: SecretRetriever,
    health: HealthAggregator,
    metrics: BridgeMetrics | None = None,
    gateway_auth: GatewayAuth | None = None,
) -> FastAPI:
    """Create the FastAPI app.

    Args:
        retriever: Secret retrieval orchestrator
        health: Health aggregator over the same cache and breaker
        metrics: Prometheus instruments; ``/metrics`` is only served when given
        gateway_auth: Guard for the ``/vault`` routes

    Returns:
        FastAPI app
    """
    server = BridgeServer(retriever, health, metrics, gateway_auth)
    return server.app
