"""Starlette ASGI application factory and MCP server instance."""

import logging

from mcp.server import Server as McpServer
from starlette.applications import Starlette
from starlette.routing import Mount, Route

from ocireg_mcp.constants import POST_MESSAGES_PATH, SERVER_NAME, SERVER_VERSION, SSE_PATH
from ocireg_mcp.server.credentials import client_from_headers
from ocireg_mcp.server.handlers import register_handlers
from ocireg_mcp.server.lifespan import app_lifespan
from ocireg_mcp.server.transport import handle_sse, sse_transport
from ocireg_mcp.tools.provider import ToolProvider

logger = logging.getLogger(__name__)

# Module-level MCP server instance
mcp_server = McpServer(SERVER_NAME, version=SERVER_VERSION)
logger.debug("Underlying MCP server instance '%s' created.", mcp_server.name)

# Registry clients are built per request from the inbound headers
tool_provider = ToolProvider(client_factory=client_from_headers)

# Register all MCP handlers
register_handlers(mcp_server, tool_provider)


def create_app() -> Starlette:
    """Create and return the Starlette ASGI application."""
    application = Starlette(
        lifespan=app_lifespan,
        routes=[
            Route(SSE_PATH, endpoint=handle_sse),
            Mount(POST_MESSAGES_PATH, app=sse_transport.handle_post_message),
        ],
    )
    logger.info(
        "Starlette ASGI app '%s' created. SSE GET on %s, POST on %s",
        SERVER_NAME,
        SSE_PATH,
        POST_MESSAGES_PATH,
    )
    return application


# Default app instance for uvicorn import
app = create_app()
