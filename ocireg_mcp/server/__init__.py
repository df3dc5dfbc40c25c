"""Server subpackage - Starlette ASGI app, lifespan, handlers, transport."""

from ocireg_mcp.server.app import create_app

__all__ = [
    "create_app",
]
