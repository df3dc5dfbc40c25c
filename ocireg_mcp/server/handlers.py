"""MCP handler functions - registered on the MCP server instance."""

import logging
from typing import Any, Dict, List, Mapping, Optional

from mcp import types as mcp_types
from mcp.server import Server as McpServer

from ocireg_mcp.tools.provider import ToolInvocation, ToolProvider

logger = logging.getLogger(__name__)


def _request_headers(mcp_server: McpServer) -> Mapping[str, str]:
    """Headers of the HTTP request that carried the current MCP message.

    Empty when called outside a request or over a transport without HTTP.
    """
    try:
        ctx = mcp_server.request_context
    except LookupError:
        return {}
    request = getattr(ctx, "request", None)
    headers = getattr(request, "headers", None)
    return headers if headers is not None else {}


def register_handlers(mcp_server: McpServer, provider: ToolProvider) -> None:
    """Register all MCP protocol handlers on the server instance."""

    @mcp_server.list_tools()
    async def handle_list_tools() -> List[mcp_types.Tool]:
        logger.debug("Handling listTools request...")
        tools = provider.get_tools()
        logger.info("Returning %s tools", len(tools))
        return tools

    # Argument checks live in the tool handlers so that a missing argument
    # reads "<arg> is required" rather than a JSON-schema message.
    @mcp_server.call_tool(validate_input=False)
    async def handle_call_tool(
        name: str, arguments: Optional[Dict[str, Any]]
    ) -> mcp_types.CallToolResult:
        logger.debug("Handling callTool: name='%s'", name)
        invocation = ToolInvocation(
            name=name,
            arguments=dict(arguments or {}),
            headers=_request_headers(mcp_server),
        )
        return await provider.dispatch(invocation)
