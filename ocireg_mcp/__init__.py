"""
ocireg-mcp - An MCP server for browsing OCI container registries.

ocireg-mcp exposes a handful of read-only tools (image info, tag listing,
manifests, configs) over an SSE endpoint so that MCP clients can inspect
images stored in any OCI/Docker v2 registry.
"""

from ocireg_mcp.constants import SERVER_NAME, SERVER_VERSION

__version__ = SERVER_VERSION
__app_name__ = SERVER_NAME

__all__ = [
    "SERVER_NAME",
    "SERVER_VERSION",
    "__version__",
    "__app_name__",
]
