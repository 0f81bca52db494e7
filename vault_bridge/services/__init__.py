"""
Service layer - resilience patterns around the upstream vault.

Provides:
- TTLCache: Per-entry TTL cache with a stale shadow for degraded serving
- CircuitBreaker: Stops calling a failing upstream
- classify_error: Maps upstream failures to caller-safe outcomes
- VaultSession: Session readiness and single-flight re-authentication
- SecretRetriever: Single and bulk lookups through all of the above
- HealthAggregator: Readiness verdict built from live component state
"""

from vault_bridge.services.errors import (
    ServiceError,
    UpstreamRequestError,
    RequestTimeoutError,
    RetrievalError,
    SecretValidationError,
    SessionNotReadyError,
    CircuitOpenError,
    ClassifiedUpstreamError,
    UnclassifiedUpstreamError,
)
from vault_bridge.services.cache import TTLCache, CacheEntry, CacheStats
from vault_bridge.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from vault_bridge.services.classifier import ErrorClassification, classify_error
from vault_bridge.services.session import VaultSession
from vault_bridge.services.upstream import HttpSecretClient, SecretProvider, SecretRecord
from vault_bridge.services.retrieval import BulkResult, RetrievalResult, SecretRetriever
from vault_bridge.services.health import HealthAggregator, HealthSnapshot, HealthStatus
from vault_bridge.services.sweeper import CacheSweeper

__all__ = [
    # Errors
    "ServiceError",
    "UpstreamRequestError",
    "RequestTimeoutError",
    "RetrievalError",
    "SecretValidationError",
    "SessionNotReadyError",
    "CircuitOpenError",
    "ClassifiedUpstreamError",
    "UnclassifiedUpstreamError",
    # Cache
    "TTLCache",
    "CacheEntry",
    "CacheStats",
    "CacheSweeper",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    # Classifier
    "ErrorClassification",
    "classify_error",
    # Upstream
    "HttpSecretClient",
    "SecretProvider",
    "SecretRecord",
    "VaultSession",
    # Orchestration
    "SecretRetriever",
    "RetrievalResult",
    "BulkResult",
    "HealthAggregator",
    "HealthSnapshot",
    "HealthStatus",
]
