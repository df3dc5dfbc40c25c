"""Application lifespan management - startup and shutdown logging."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from starlette.applications import Starlette

from ocireg_mcp.constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    POST_MESSAGES_PATH,
    SERVER_NAME,
    SERVER_VERSION,
    SSE_PATH,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: Starlette) -> AsyncIterator[None]:
    """Application lifespan management: startup and shutdown."""
    from ocireg_mcp.server.app import tool_provider

    app_s = app.state
    host = getattr(app_s, "host", DEFAULT_HOST)
    port = getattr(app_s, "port", DEFAULT_PORT)

    logger.info("'%s' v%s startup sequence started...", SERVER_NAME, SERVER_VERSION)
    logger.info("Tools available: %s", ", ".join(tool_provider.tool_names))
    logger.info(
        "SSE endpoint: http://%s:%s%s (messages on %s)", host, port, SSE_PATH, POST_MESSAGES_PATH
    )
    log_fpath = getattr(app_s, "actual_log_file", None)
    if log_fpath:
        logger.info("Actual log file: %s", log_fpath)
    try:
        yield
    finally:
        logger.info("'%s' shutdown sequence completed.", SERVER_NAME)
