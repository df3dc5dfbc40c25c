"""SSE transport handling for MCP connections."""

import logging

from mcp.server.sse import SseServerTransport
from starlette.requests import Request
from starlette.responses import Response

from ocireg_mcp.constants import POST_MESSAGES_PATH

logger = logging.getLogger(__name__)

# Module-level SSE transport instance
sse_transport = SseServerTransport(POST_MESSAGES_PATH)


async def handle_sse(request: Request) -> Response:
    """Handle incoming SSE connection requests."""
    from ocireg_mcp.server.app import mcp_server

    logger.debug("Received new SSE connection request (GET): %s", request.url)

    async with sse_transport.connect_sse(
        request.scope,
        request.receive,
        request._send,
    ) as (read_stream, write_stream):
        init_opts = mcp_server.create_initialization_options()
        logger.debug(
            "Running mcp_server.run (MCP main loop) for SSE connection with options: %s",
            init_opts,
        )
        await mcp_server.run(read_stream, write_stream, init_opts)
    logger.debug("SSE connection closed: %s", request.url)
    return Response()
