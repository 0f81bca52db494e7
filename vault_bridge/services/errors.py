"""
Service layer exceptions.

Every error that can reach a caller is a ``RetrievalError`` with a fixed,
caller-safe ``message``. Upstream failure detail stays on ``__cause__`` for
logging and never becomes part of the message.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vault_bridge.services.classifier import ErrorClassification

SERVICE_UNAVAILABLE_MESSAGE = "Upstream service temporarily unavailable."
NOT_READY_MESSAGE = "Vault client not ready."
INVALID_ID_MESSAGE = "Invalid secret ID format. Expected UUID v4."


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class UpstreamRequestError(ServiceError):
    """The upstream vault rejected or failed a request."""


class RequestTimeoutError(UpstreamRequestError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class RetrievalError(ServiceError):
    """A secret lookup ended in a caller-visible failure."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        if status_code is not None:
            self.status_code = status_code
        self.message = message
        super().__init__(message)


class SecretValidationError(RetrievalError):
    """Malformed or missing input; resolved locally, never sent upstream."""

    status_code = 400

    def __init__(
        self,
        message: str = INVALID_ID_MESSAGE,
        invalid_ids: list[str] | None = None,
    ):
        self.invalid_ids = invalid_ids
        super().__init__(message)


class SessionNotReadyError(RetrievalError):
    """The upstream session is not authenticated."""

    status_code = 503

    def __init__(self):
        super().__init__(NOT_READY_MESSAGE)


class CircuitOpenError(RetrievalError):
    """Circuit breaker denied the request and no stale data was available."""

    status_code = 503

    def __init__(self, service_id: str, reset_after_seconds: float):
        super().__init__(SERVICE_UNAVAILABLE_MESSAGE)
        self.service_id = service_id
        self.reset_after_seconds = reset_after_seconds


class ClassifiedUpstreamError(RetrievalError):
    """An upstream failure matched one of the classification rules."""

    def __init__(self, classification: "ErrorClassification"):
        self.classification = classification
        self.is_auth_error = classification.is_auth_error
        super().__init__(classification.message, status_code=classification.status_code)


class UnclassifiedUpstreamError(ClassifiedUpstreamError):
    """An upstream failure no rule recognised."""


def from_classification(
    classification: "ErrorClassification",
) -> ClassifiedUpstreamError:
    """Wrap a classification in the matching caller-visible error."""
    if classification.matched:
        return ClassifiedUpstreamError(classification)
    return UnclassifiedUpstreamError(classification)
