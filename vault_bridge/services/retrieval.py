"""
SecretRetriever - Drives secret lookups through cache, circuit breaker and
the upstream vault.

Per-item pipeline (shared by single and bulk retrieval):
1. Fresh cache hit → return, no breaker or upstream interaction
2. Breaker denies → serve a stale cache copy (degraded) or fail fast
3. Upstream call succeeds → populate cache, record breaker success
4. Upstream call fails → classify, record breaker failure, and kick off a
   background re-authentication when the failure looks like an auth problem

Bulk retrieval runs the pipeline item by item. One item's failure is
recorded and the batch moves on; every item re-checks the breaker, so a trip
in the middle of a batch only affects the items after it.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Literal

from loguru import logger

from vault_bridge.services.cache import TTLCache
from vault_bridge.services.circuit_breaker import CircuitBreaker
from vault_bridge.services.classifier import classify_error
from vault_bridge.services.errors import (
    CircuitOpenError,
    RetrievalError,
    SecretValidationError,
    SessionNotReadyError,
    from_classification,
)
from vault_bridge.services.session import VaultSession
from vault_bridge.services.upstream import SecretProvider, SecretRecord
from vault_bridge.validation import find_invalid_secret_ids, is_valid_secret_id

if TYPE_CHECKING:
    from vault_bridge.metrics import BridgeMetrics

DEFAULT_MAX_BULK_IDS = 50

Source = Literal["upstream", "cache", "stale"]


@dataclass
class RetrievalResult:
    """Result of a single lookup."""

    record: SecretRecord
    source: Source = "upstream"

    @property
    def degraded(self) -> bool:
        return self.source == "stale"


@dataclass
class FailedItem:
    id: str
    status_code: int
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "status": self.status_code, "error": self.message}


@dataclass
class BulkResult:
    """Outcome of a bulk lookup, in input order."""

    succeeded: list[SecretRecord] = field(default_factory=list)
    failed: list[FailedItem] = field(default_factory=list)
    degraded: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "secrets": [record.model_dump() for record in self.succeeded],
            "errors": [item.to_dict() for item in self.failed],
        }


class SecretRetriever:
    """
    Usage:
        retriever = SecretRetriever(
            provider=client,
            session=session,
            cache=TTLCache(default_ttl=timedelta(seconds=60)),
            breaker=CircuitBreaker("vault"),
        )

        result = await retriever.retrieve(secret_id)
        bulk = await retriever.retrieve_bulk([id_a, id_b])
    """

    def __init__(
        self,
        provider: SecretProvider,
        session: VaultSession,
        cache: TTLCache | None = None,
        breaker: CircuitBreaker | None = None,
        on_upstream_success: Callable[[], None] | None = None,
        metrics: "BridgeMetrics | None" = None,
        max_bulk_ids: int = DEFAULT_MAX_BULK_IDS,
    ):
        self.provider = provider
        self.session = session
        self.cache = cache
        self.breaker = breaker
        self.max_bulk_ids = max_bulk_ids
        self._on_upstream_success = on_upstream_success
        self._metrics = metrics

    async def retrieve(self, secret_id: str) -> RetrievalResult:
        """
        Look up a single secret.

        Raises:
            SecretValidationError: If ``secret_id`` is not a UUID v4
            SessionNotReadyError: If the upstream session is not authenticated
            CircuitOpenError: If the breaker is open and no stale copy exists
            ClassifiedUpstreamError: If the upstream call failed
        """
        if not is_valid_secret_id(secret_id):
            raise SecretValidationError()
        self.ensure_ready()
        return await self._retrieve_one(secret_id)

    async def retrieve_bulk(self, secret_ids: Any) -> BulkResult:
        """
        Look up many secrets, collecting per-item failures instead of raising.

        Raises:
            SessionNotReadyError: If the upstream session is not authenticated
            SecretValidationError: If the list is empty, too long, or holds
                malformed ids (all of them are reported)
        """
        self.ensure_ready()
        self.validate_bulk_ids(secret_ids)

        result = BulkResult()
        for secret_id in secret_ids:
            try:
                item = await self._retrieve_one(secret_id)
            except RetrievalError as e:
                result.failed.append(FailedItem(secret_id, e.status_code, e.message))
                continue

            result.succeeded.append(item.record)
            result.degraded = result.degraded or item.degraded

        logger.info(
            f"Bulk retrieval finished: {len(result.succeeded)} succeeded, "
            f"{len(result.failed)} failed"
        )
        return result

    def validate_bulk_ids(self, secret_ids: Any) -> None:
        if not isinstance(secret_ids, list) or not secret_ids:
            raise SecretValidationError(
                'Request body must contain a non-empty "ids" array.'
            )
        if len(secret_ids) > self.max_bulk_ids:
            raise SecretValidationError(
                f"Maximum {self.max_bulk_ids} IDs per request."
            )

        invalid_ids = find_invalid_secret_ids(secret_ids)
        if invalid_ids:
            raise SecretValidationError(invalid_ids=invalid_ids)

    def ensure_ready(self) -> None:
        if not self.session.is_ready():
            raise SessionNotReadyError()

    async def _retrieve_one(self, secret_id: str) -> RetrievalResult:
        log = logger.bind(secret_id=secret_id)

        if self.cache is not None:
            cached = self.cache.get(secret_id)
            if cached is not None:
                log.debug("Serving secret from cache")
                self._count("cache", cache_hit=True)
                return RetrievalResult(record=cached, source="cache")
            self._count(None, cache_hit=False)

        if self.breaker is not None and not self.breaker.allow_request():
            log.warning("Circuit breaker is open, checking stale cache")
            stale = self.cache.get_stale(secret_id) if self.cache is not None else None
            if stale is not None:
                self._count("stale")
                return RetrievalResult(record=stale, source="stale")

            self._count("error")
            raise CircuitOpenError(
                self.breaker.service_id, self.breaker.get_time_until_reset() or 0
            )

        try:
            record = await self.provider.get_secret(secret_id)
        except Exception as e:
            classification = classify_error(e)
            log.error(
                f"Error retrieving secret ({type(e).__name__}: {e}), "
                f"classified as {classification.status_code}"
            )
            if self.breaker is not None:
                self.breaker.record_failure()
            if classification.is_auth_error:
                self.session.trigger_reauth()
            self._count("error")
            raise from_classification(classification) from e

        if self.cache is not None:
            self.cache.set(secret_id, record)
        if self.breaker is not None:
            self.breaker.record_success()
        if self._on_upstream_success is not None:
            self._on_upstream_success()
        self._count("fresh")
        return RetrievalResult(record=record, source="upstream")

    def _count(self, outcome: str | None, cache_hit: bool | None = None) -> None:
        if self._metrics is None:
            return
        if cache_hit is True:
            self._metrics.cache_hits_total.inc()
        elif cache_hit is False:
            self._metrics.cache_misses_total.inc()
        if outcome is not None:
            self._metrics.secret_retrievals_total.labels(outcome).inc()
