"""Request-scoped plumbing: request ids, access logging, gateway auth."""

import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from loguru import logger

from vault_bridge.exceptions import ForbiddenError
from vault_bridge.metrics import BridgeMetrics

REQUEST_ID_HEADER = "X-Request-ID"


def _route_label(request: Request) -> str:
    """Route template for metric labels, so ids do not explode cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestContextMiddleware:
    """
    Assigns every request an id (taken from ``X-Request-ID`` when present),
    binds it into the log context, echoes it on the response and writes one
    access log line plus request metrics.
    """

    def __init__(self, metrics: BridgeMetrics | None = None):
        self.metrics = metrics

    async def __call__(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()

        with logger.contextualize(request_id=request_id):
            response = await call_next(request)
            duration = time.perf_counter() - started

            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"({duration * 1000:.1f}ms)"
            )
            if self.metrics is not None:
                self.metrics.observe_request(
                    request.method,
                    _route_label(request),
                    response.status_code,
                    duration,
                )
        return response


class GatewayAuth:
    """
    Dependency guarding the vault routes.

    - enabled: require an ``Authorization: Bearer ...`` header (the gateway
      in front of the service has already verified it)
    - disabled with a shared secret: require exactly ``Bearer <secret>``
    - disabled without a secret: allow everything
    """

    def __init__(self, enabled: bool, shared_secret: str = ""):
        self.enabled = enabled
        self.shared_secret = shared_secret

    async def __call__(self, request: Request) -> None:
        header = request.headers.get("Authorization")

        if not self.enabled:
            if self.shared_secret and header != f"Bearer {self.shared_secret}":
                logger.warning(f"Gateway auth: invalid shared secret for {request.url.path}")
                raise ForbiddenError()
            return

        if not header:
            logger.warning(f"Gateway auth: missing Authorization header for {request.url.path}")
            raise ForbiddenError()

        if not header.startswith("Bearer "):
            logger.warning(f"Gateway auth: invalid Authorization format for {request.url.path}")
            raise ForbiddenError()
