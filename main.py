"""
Vault Bridge entry point.
Loads configuration, logs in to the upstream vault and serves the HTTP API.
"""

import asyncio
import sys

import uvicorn
from loguru import logger

from vault_bridge.bootstrap import build_components
from vault_bridge.logs import configure_logging
from vault_bridge.settings import ConfigurationError, load_settings


async def main() -> int:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        logger.critical(str(e))
        return 1

    configure_logging(settings.log_level, json=settings.log_json)
    logger.info("Starting Vault Bridge...")

    components = build_components(settings)
    server = uvicorn.Server(
        uvicorn.Config(
            components.app,
            host=settings.host,
            port=settings.port,
            log_config=None,
            access_log=False,
        )
    )

    try:
        await components.start()
        logger.info(
            f"Vault Bridge listening on {settings.host}:{settings.port} "
            f"(cache_ttl={settings.cache_ttl}s, "
            f"breaker_threshold={settings.circuit_breaker_threshold}, "
            f"breaker_cooldown={settings.circuit_breaker_cooldown}s, "
            f"gateway_auth={settings.gateway_auth_enabled})"
        )
        # uvicorn handles SIGINT/SIGTERM and returns once connections drain
        await server.serve()
    finally:
        logger.info("Shutting down...")
        await components.shutdown()
        logger.info("Vault Bridge stopped")

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
