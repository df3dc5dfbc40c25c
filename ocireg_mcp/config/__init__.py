"""Configuration subpackage - settings resolved from env vars and CLI flags."""

from ocireg_mcp.config.settings import ServerSettings, get_env_port, resolve_port, validate_port

__all__ = [
    "ServerSettings",
    "get_env_port",
    "resolve_port",
    "validate_port",
]
