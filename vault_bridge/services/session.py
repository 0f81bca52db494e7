"""
VaultSession - Tracks whether the upstream session is authenticated and
coordinates re-authentication.

At most one re-authentication runs at a time. Triggers that arrive while one
is in flight are no-ops; the running attempt's outcome decides readiness for
everyone. Callers never await the attempt they trigger.
"""

import asyncio
from typing import Awaitable, Callable

from loguru import logger


class VaultSession:
    """
    Usage:
        session = VaultSession(client.authenticate)
        await session.start()

        if not session.is_ready():
            ...
        session.trigger_reauth()  # fire-and-forget
    """

    def __init__(
        self,
        authenticate: Callable[[], Awaitable[bool]],
        ready: bool = False,
        on_reauth_result: Callable[[bool], None] | None = None,
    ):
        self._authenticate = authenticate
        self._ready = ready
        self._on_reauth_result = on_reauth_result
        self._reauth_task: asyncio.Task[bool] | None = None

    def is_ready(self) -> bool:
        return self._ready

    @property
    def reauth_in_progress(self) -> bool:
        return self._reauth_task is not None and not self._reauth_task.done()

    async def start(self) -> bool:
        """Perform the initial login and return whether it succeeded."""
        self._ready = await self._run_authenticate()
        return self._ready

    def trigger_reauth(self) -> bool:
        """
        Start a re-authentication in the background.

        Returns:
            True if a new attempt was started, False if one was already running.
        """
        if self.reauth_in_progress:
            logger.debug("Re-authentication already in progress, skipping trigger")
            return False

        logger.info("Starting upstream re-authentication")
        self._reauth_task = asyncio.create_task(self._reauth())
        return True

    async def close(self) -> None:
        """Cancel an in-flight re-authentication."""
        task = self._reauth_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._reauth_task = None

    async def _reauth(self) -> bool:
        succeeded = await self._run_authenticate()
        self._ready = succeeded
        if succeeded:
            logger.info("Upstream re-authentication succeeded")
        else:
            logger.warning("Upstream re-authentication failed, session not ready")
        if self._on_reauth_result is not None:
            self._on_reauth_result(succeeded)
        return succeeded

    async def _run_authenticate(self) -> bool:
        try:
            return bool(await self._authenticate())
        except Exception:
            logger.exception("Upstream authentication raised unexpectedly")
            return False
