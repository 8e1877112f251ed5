"""HTTP API for agentgate."""

from agentgate.api.app import create_app

__all__ = ["create_app"]
