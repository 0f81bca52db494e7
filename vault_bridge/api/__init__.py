"""HTTP API for the vault bridge."""

from vault_bridge.api.server import BridgeServer, create_app

__all__ = ["BridgeServer", "create_app"]
