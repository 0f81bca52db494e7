"""
Upstream error classification.

Maps an upstream failure to a fixed status code and caller-safe message by
matching its text against ordered patterns (first match wins). Matching on
text rather than exception types keeps the rules stable when the upstream
client library changes its error classes.
"""

import re
from dataclasses import dataclass

UPSTREAM_UNAVAILABLE = "Upstream vault service unavailable."


@dataclass(frozen=True)
class ErrorClassification:
    """Outcome for a single upstream failure."""

    status_code: int
    message: str
    is_auth_error: bool
    matched: bool = True


@dataclass(frozen=True)
class ErrorRule:
    name: str
    pattern: re.Pattern[str]
    classification: ErrorClassification


ERROR_RULES: tuple[ErrorRule, ...] = (
    ErrorRule(
        name="not_found",
        pattern=re.compile(r"not\s*found|no\s*(such|secret)|does\s*not\s*exist", re.I),
        classification=ErrorClassification(404, "Secret not found.", False),
    ),
    ErrorRule(
        name="auth",
        pattern=re.compile(
            r"unauthori[sz]ed|token\s*expired|expired\s*token|invalid\s*token"
            r"|access\s*denied|authentication",
            re.I,
        ),
        classification=ErrorClassification(502, UPSTREAM_UNAVAILABLE, True),
    ),
    ErrorRule(
        name="timeout",
        pattern=re.compile(r"timeout|timed?\s*out|ETIMEDOUT|ECONNABORTED", re.I),
        classification=ErrorClassification(502, UPSTREAM_UNAVAILABLE, False),
    ),
    ErrorRule(
        name="connection",
        pattern=re.compile(
            r"ECONNREFUSED|ECONNRESET|EPIPE|refused|reset|broken\s*pipe"
            r"|network|socket|connect",
            re.I,
        ),
        classification=ErrorClassification(502, UPSTREAM_UNAVAILABLE, False),
    ),
    ErrorRule(
        name="rate_limit",
        pattern=re.compile(r"rate\s*limit|too\s*many\s*requests|\b429\b", re.I),
        classification=ErrorClassification(502, UPSTREAM_UNAVAILABLE, False),
    ),
)

DEFAULT_CLASSIFICATION = ErrorClassification(
    500, "Failed to retrieve secret from vault.", False, matched=False
)


def error_text(error: BaseException) -> str:
    """Text the rules are matched against: the message plus any error code."""
    code = getattr(error, "code", None)
    if code is None:
        code = getattr(error, "errno", None)
    return f"{error} {code if code is not None else ''}".strip()


def classify_error(error: BaseException | str) -> ErrorClassification:
    """
    Classify an upstream failure.

    The returned message is always one of the fixed messages above; nothing
    from the failure itself is carried over.
    """
    text = error if isinstance(error, str) else error_text(error)
    for rule in ERROR_RULES:
        if rule.pattern.search(text):
            return rule.classification
    return DEFAULT_CLASSIFICATION
