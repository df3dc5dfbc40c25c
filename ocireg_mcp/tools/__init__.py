"""Tools subpackage - MCP tool definitions and handlers."""

from ocireg_mcp.tools.provider import (
    GET_IMAGE_CONFIG_TOOL_NAME,
    GET_IMAGE_INFO_TOOL_NAME,
    GET_IMAGE_MANIFEST_TOOL_NAME,
    LIST_TAGS_TOOL_NAME,
    ClientFactory,
    ToolInvocation,
    ToolProvider,
)

__all__ = [
    "ClientFactory",
    "GET_IMAGE_CONFIG_TOOL_NAME",
    "GET_IMAGE_INFO_TOOL_NAME",
    "GET_IMAGE_MANIFEST_TOOL_NAME",
    "LIST_TAGS_TOOL_NAME",
    "ToolInvocation",
    "ToolProvider",
]
