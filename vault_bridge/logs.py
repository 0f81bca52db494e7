"""
Logging setup.

All modules log through loguru's shared ``logger``. This module installs the
process sink and a patcher that masks sensitive values bound into a record's
``extra`` (including nested mappings) before any sink sees them.
"""

import sys
from typing import Any

from loguru import logger

REDACTED = "[REDACTED]"
REDACT_KEYS = frozenset(
    {
        "key",
        "value",
        "token",
        "access_token",
        "accesstoken",
        "authorization",
        "bws_access_token",
    }
)

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level> | {extra}"
)


def redact(data: Any) -> Any:
    """Return a copy of ``data`` with sensitive keys masked."""
    if isinstance(data, dict):
        return {
            k: REDACTED if str(k).lower() in REDACT_KEYS else redact(v)
            for k, v in data.items()
        }
    if isinstance(data, (list, tuple)):
        return type(data)(redact(item) for item in data)
    return data


def _redact_record(record: dict[str, Any]) -> None:
    record["extra"] = redact(record["extra"])


def configure_logging(level: str = "info", json: bool = True) -> None:
    """Replace loguru's default sink with the service sink."""
    logger.remove()
    logger.configure(patcher=_redact_record)
    if json:
        logger.add(sys.stderr, level=level.upper(), serialize=True)
    else:
        logger.add(sys.stderr, level=level.upper(), format=TEXT_FORMAT)
