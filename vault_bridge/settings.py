"""
Process configuration.

Values come from environment variables (optionally a local .env file) and are
validated in one pass, so a misconfigured deployment reports every problem at
once instead of failing on the first.
"""

import os
from collections.abc import Mapping
from datetime import timedelta

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

LOG_LEVELS = ("trace", "debug", "info", "warning", "error", "critical")
LOG_LEVEL_ALIASES = {"warn": "warning", "fatal": "critical"}


class ConfigurationError(Exception):
    """Raised when the environment does not describe a runnable service."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {problem}" for problem in problems)
        )


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    # Upstream vault
    access_token: str = Field(alias="BWS_ACCESS_TOKEN", min_length=1, repr=False)
    api_url: str = Field(default="https://api.bitwarden.com", alias="VAULT_API_URL")
    identity_url: str = Field(
        default="https://identity.bitwarden.com", alias="VAULT_IDENTITY_URL"
    )
    upstream_timeout: float = Field(default=10.0, gt=0, alias="UPSTREAM_TIMEOUT")

    # HTTP server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, ge=1, le=65535, alias="PORT")

    # Cache
    cache_ttl: float = Field(default=60.0, ge=0, alias="CACHE_TTL")
    cache_stale_ttl: float = Field(default=300.0, ge=0, alias="CACHE_STALE_TTL")
    cache_max_entries: int = Field(default=0, ge=0, alias="CACHE_MAX_ENTRIES")
    cache_sweep_interval: float = Field(default=0.0, ge=0, alias="CACHE_SWEEP_INTERVAL")

    # Circuit breaker
    circuit_breaker_threshold: int = Field(
        default=5, ge=1, alias="CIRCUIT_BREAKER_THRESHOLD"
    )
    circuit_breaker_cooldown: float = Field(
        default=30.0, ge=0, alias="CIRCUIT_BREAKER_COOLDOWN"
    )

    # Bulk retrieval
    bulk_max_ids: int = Field(default=50, ge=1, alias="BULK_MAX_IDS")

    # Logging
    log_level: str = Field(default="info", alias="LOG_LEVEL")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Gateway auth
    gateway_auth_enabled: bool = Field(default=False, alias="GATEWAY_AUTH_ENABLED")
    gateway_auth_secret: str = Field(
        default="", alias="GATEWAY_AUTH_SECRET", repr=False
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> str:
        level = str(value).strip().lower()
        level = LOG_LEVEL_ALIASES.get(level, level)
        if level not in LOG_LEVELS:
            raise ValueError(f"must be one of [{', '.join(LOG_LEVELS)}]")
        return level

    @property
    def cache_ttl_delta(self) -> timedelta:
        return timedelta(seconds=self.cache_ttl)

    @property
    def circuit_breaker_cooldown_delta(self) -> timedelta:
        return timedelta(seconds=self.circuit_breaker_cooldown)


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """
    Build Settings from an environment mapping.

    Args:
        env: Variables to read. Defaults to the process environment after
            loading a .env file, if present.

    Raises:
        ConfigurationError: With every invalid or missing variable listed.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    # Empty strings mean "unset" so defaults still apply
    values = {key: value for key, value in env.items() if value != ""}

    try:
        return Settings.model_validate(values)
    except ValidationError as e:
        problems = []
        for error in e.errors():
            name = ".".join(str(part) for part in error["loc"]) or "settings"
            problems.append(f"{name}: {error['msg']}")
        raise ConfigurationError(problems) from None
