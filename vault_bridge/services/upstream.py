"""
Upstream vault client.

The retrieval layer only needs one capability from the upstream: fetch a
secret by id. ``SecretProvider`` describes it; ``HttpSecretClient`` is the
httpx-based implementation used in production. Failures are raised as
``UpstreamRequestError`` with the HTTP status and reason phrase in the text,
which is all the classifier looks at.
"""

import time
from typing import Callable, Protocol, runtime_checkable

import httpx
from loguru import logger
from pydantic import BaseModel

from vault_bridge.services.errors import RequestTimeoutError, UpstreamRequestError


class SecretRecord(BaseModel):
    """A secret as returned to callers."""

    id: str
    key: str
    value: str


@runtime_checkable
class SecretProvider(Protocol):
    async def get_secret(self, secret_id: str) -> SecretRecord: ...


class HttpSecretClient:
    """
    Secrets API client authenticated with a machine-account access token.

    Usage:
        client = HttpSecretClient(access_token, api_url, identity_url)
        await client.login()
        record = await client.get_secret(secret_id)
        await client.close()
    """

    service_id = "vault"

    def __init__(
        self,
        access_token: str,
        api_url: str,
        identity_url: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._access_token = access_token
        self._api_url = api_url.rstrip("/")
        self._identity_url = identity_url.rstrip("/")
        self._timeout = timeout
        self._http_client = http_client
        self._clock = clock

        self._bearer: str | None = None
        self._bearer_expires_at: float | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._http_client

    @property
    def is_authenticated(self) -> bool:
        if self._bearer is None:
            return False
        if self._bearer_expires_at is None:
            return True
        return self._clock() < self._bearer_expires_at

    async def login(self) -> None:
        """Exchange the access token for a bearer token."""
        client_id, _, client_secret = self._access_token.partition(":")
        payload = await self._execute_request(
            "POST",
            f"{self._identity_url}/connect/token",
            data={
                "grant_type": "client_credentials",
                "scope": "api.secrets",
                "client_id": client_id,
                "client_secret": client_secret,
            },
        )

        token = payload.get("access_token")
        if not token:
            raise UpstreamRequestError(
                "Authentication failed: no access token in response",
                service_id=self.service_id,
            )

        self._bearer = token
        expires_in = payload.get("expires_in")
        self._bearer_expires_at = (
            self._clock() + float(expires_in) if expires_in else None
        )
        logger.info("Vault machine account authenticated")

    async def authenticate(self) -> bool:
        """Log in, reporting the outcome instead of raising."""
        try:
            await self.login()
        except UpstreamRequestError as e:
            self._bearer = None
            logger.warning(f"Vault authentication failed: {e}")
            return False
        return True

    async def get_secret(self, secret_id: str) -> SecretRecord:
        if not self.is_authenticated:
            raise UpstreamRequestError(
                "Unauthorized: bearer token missing or expired",
                service_id=self.service_id,
            )

        payload = await self._execute_request(
            "GET",
            f"{self._api_url}/secrets/{secret_id}",
            headers={"Authorization": f"Bearer {self._bearer}"},
        )
        return SecretRecord(
            id=payload["id"],
            key=payload["key"],
            value=payload["value"],
        )

    async def _execute_request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
    ) -> dict:
        """Execute the actual HTTP request."""
        client = await self._get_http_client()

        try:
            response = await client.request(
                method=method,
                url=url,
                headers=headers,
                data=data,
                timeout=self._timeout,
            )
            response.raise_for_status()
            return response.json()

        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self.service_id, self._timeout) from e

        except httpx.HTTPStatusError as e:
            raise UpstreamRequestError(
                f"HTTP {e.response.status_code} {e.response.reason_phrase}: "
                f"{e.response.text[:200]}",
                service_id=self.service_id,
            ) from e

        except httpx.RequestError as e:
            raise UpstreamRequestError(
                f"{type(e).__name__}: {e}", service_id=self.service_id
            ) from e

        except ValueError as e:
            raise UpstreamRequestError(
                f"Malformed response from upstream: {e}", service_id=self.service_id
            ) from e

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("HttpSecretClient closed")
