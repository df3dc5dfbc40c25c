"""Server settings resolved from the environment and the command line.

Invalid values never stop the server: they are logged and replaced with
the defaults.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field

from ocireg_mcp.constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    MAX_PORT,
    MIN_PORT,
    PORT_ENV_VAR,
    SHUTDOWN_GRACE_PERIOD,
)

logger = logging.getLogger(__name__)


class ServerSettings(BaseModel):
    """Listen address and lifecycle settings for the SSE server."""

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=MIN_PORT, le=MAX_PORT)
    log_level: str = "info"
    log_dir: Optional[str] = None
    shutdown_grace_period: int = Field(default=SHUTDOWN_GRACE_PERIOD, ge=0)


def validate_port(port: int) -> bool:
    """Return ``True`` if *port* is between 0 and 65535."""
    return MIN_PORT <= port <= MAX_PORT


def get_env_port(environ: Optional[Mapping[str, str]] = None) -> int:
    """Return the listen port from ``MCP_PORT``.

    Falls back to the default port when the variable is unset, empty, not
    a number, or out of range.
    """
    env = os.environ if environ is None else environ
    env_port = env.get(PORT_ENV_VAR, "")
    if env_port == "":
        return DEFAULT_PORT

    try:
        port = int(env_port)
    except ValueError:
        logger.warning(
            "Invalid %s value: %s (must be a valid number), using default port %d",
            PORT_ENV_VAR,
            env_port,
            DEFAULT_PORT,
        )
        return DEFAULT_PORT

    if not validate_port(port):
        logger.warning(
            "Invalid %s value: %s (must be between %d and %d), using default port %d",
            PORT_ENV_VAR,
            env_port,
            MIN_PORT,
            MAX_PORT,
            DEFAULT_PORT,
        )
        return DEFAULT_PORT

    return port


def resolve_port(cli_port: Optional[int], environ: Optional[Mapping[str, str]] = None) -> int:
    """Combine the ``--port`` flag with ``MCP_PORT``.

    The flag wins when it is given and in range; an out-of-range flag is
    logged and replaced with the default port (not the environment value).
    """
    if cli_port is None:
        return get_env_port(environ)
    if not validate_port(cli_port):
        logger.warning(
            "Invalid port number: %d (must be between %d and %d), using default port %d",
            cli_port,
            MIN_PORT,
            MAX_PORT,
            DEFAULT_PORT,
        )
        return DEFAULT_PORT
    return cli_port
