"""MCP tools for OCI registry operations.

Each tool handler validates its arguments, builds a registry client for the
request, calls the registry and renders the result as a text block. Every
failure is reported as an error *result*; handlers never raise, so the MCP
transport always returns a well-formed response.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, cast

from mcp import types as mcp_types

from ocireg_mcp.constants import REGISTRY_TIMEOUT
from ocireg_mcp.errors import ToolArgumentError
from ocireg_mcp.oci.client import RegistryClient
from ocireg_mcp.oci.models import format_rfc3339

logger = logging.getLogger(__name__)

GET_IMAGE_INFO_TOOL_NAME = "get_image_info"
LIST_TAGS_TOOL_NAME = "list_tags"
GET_IMAGE_MANIFEST_TOOL_NAME = "get_image_manifest"
GET_IMAGE_CONFIG_TOOL_NAME = "get_image_config"

IMAGE_REF_ARG = "image_ref"
REPOSITORY_ARG = "repository"

# Builds a registry client from the inbound request headers
ClientFactory = Callable[[Mapping[str, str]], RegistryClient]


@dataclass(frozen=True)
class ToolInvocation:
    """One tool call: its name, its arguments and the inbound HTTP headers."""

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)

    def require_string(self, arg_name: str) -> str:
        """Return a non-empty string argument or raise :class:`ToolArgumentError`."""
        value = self.arguments.get(arg_name)
        if not isinstance(value, str) or not value:
            raise ToolArgumentError(arg_name)
        return value


def text_result(text: str) -> mcp_types.CallToolResult:
    return mcp_types.CallToolResult(
        content=[mcp_types.TextContent(type="text", text=text)],
        isError=False,
    )


def error_result(message: str, exc: Optional[BaseException] = None) -> mcp_types.CallToolResult:
    text = message
    if exc is not None:
        text = f"{message}: {str(exc) or type(exc).__name__}"
    return mcp_types.CallToolResult(
        content=[mcp_types.TextContent(type="text", text=text)],
        isError=True,
    )


def json_block(kind: str, subject: str, payload: Any) -> mcp_types.CallToolResult:
    try:
        rendered = json.dumps(payload, indent=2)
    except (TypeError, ValueError) as exc:
        return error_result("failed to marshal result", exc)
    return text_result(f"{kind} for {subject}:\n\n```json\n{rendered}\n```")


def _image_ref_schema() -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            IMAGE_REF_ARG: {
                "type": "string",
                "description": "The image reference (e.g., docker.io/library/alpine:latest)",
            },
        },
        "required": [IMAGE_REF_ARG],
    }


class ToolProvider:
    """Provides the MCP tools for OCI registry operations.

    Parameters
    ----------
    client:
        A shared registry client, used when no *client_factory* is given.
    client_factory:
        Builds a client per request from the inbound HTTP headers.
    timeout:
        Bound, in seconds, on each tool's registry work.
    """

    def __init__(
        self,
        client: Optional[RegistryClient] = None,
        client_factory: Optional[ClientFactory] = None,
        *,
        timeout: float = REGISTRY_TIMEOUT,
    ) -> None:
        if client is None and client_factory is None:
            raise ValueError("ToolProvider needs either a client or a client_factory")
        self._client = client
        self._client_factory = client_factory
        self._timeout = timeout
        self._handlers: Dict[str, Callable[[ToolInvocation], Awaitable[mcp_types.CallToolResult]]] = {
            GET_IMAGE_INFO_TOOL_NAME: self.get_image_info,
            LIST_TAGS_TOOL_NAME: self.list_tags,
            GET_IMAGE_MANIFEST_TOOL_NAME: self.get_image_manifest,
            GET_IMAGE_CONFIG_TOOL_NAME: self.get_image_config,
        }

    def get_client(self, invocation: ToolInvocation) -> RegistryClient:
        """Return the registry client for this invocation."""
        if self._client_factory is not None:
            return self._client_factory(invocation.headers)
        return cast(RegistryClient, self._client)

    def _failure(self, message: str, exc: BaseException) -> mcp_types.CallToolResult:
        if isinstance(exc, asyncio.TimeoutError):
            return error_result(f"{message}: timed out after {self._timeout:g}s")
        return error_result(message, exc)

    @property
    def tool_names(self) -> List[str]:
        return list(self._handlers)

    @staticmethod
    def get_tools() -> List[mcp_types.Tool]:
        """Return the tool definitions advertised to MCP clients."""
        return [
            mcp_types.Tool(
                name=GET_IMAGE_INFO_TOOL_NAME,
                description="Get information about an OCI image",
                inputSchema=_image_ref_schema(),
            ),
            mcp_types.Tool(
                name=LIST_TAGS_TOOL_NAME,
                description="List tags for a repository",
                inputSchema={
                    "type": "object",
                    "properties": {
                        REPOSITORY_ARG: {
                            "type": "string",
                            "description": "The repository name (e.g., docker.io/library/alpine)",
                        },
                    },
                    "required": [REPOSITORY_ARG],
                },
            ),
            mcp_types.Tool(
                name=GET_IMAGE_MANIFEST_TOOL_NAME,
                description="Get the manifest for an OCI image",
                inputSchema=_image_ref_schema(),
            ),
            mcp_types.Tool(
                name=GET_IMAGE_CONFIG_TOOL_NAME,
                description="Get the config for an OCI image",
                inputSchema=_image_ref_schema(),
            ),
        ]

    async def dispatch(self, invocation: ToolInvocation) -> mcp_types.CallToolResult:
        """Route *invocation* to its handler by tool name."""
        handler = self._handlers.get(invocation.name)
        if handler is None:
            logger.warning("Unknown tool requested: '%s'", invocation.name)
            return error_result(f"unknown tool: {invocation.name}")
        logger.debug("Dispatching tool '%s'", invocation.name)
        return await handler(invocation)

    # ── tool handlers ───────────────────────────────────────────────

    async def get_image_info(self, invocation: ToolInvocation) -> mcp_types.CallToolResult:
        """Handle the get_image_info tool."""
        try:
            image_ref = invocation.require_string(IMAGE_REF_ARG)
        except ToolArgumentError as exc:
            return error_result(str(exc))

        client = self.get_client(invocation)

        try:
            img = await asyncio.wait_for(client.get_image(image_ref), timeout=self._timeout)
        except Exception as exc:
            logger.info("get_image_info(%s) failed: %s", image_ref, exc)
            return self._failure("failed to get image", exc)

        try:
            manifest = img.manifest()
        except Exception as exc:
            logger.info("get_image_info(%s): undecodable manifest: %s", image_ref, exc)
            return error_result("failed to get manifest", exc)

        try:
            config = await asyncio.wait_for(img.config_file(), timeout=self._timeout)
        except Exception as exc:
            logger.info("get_image_info(%s): config unavailable: %s", image_ref, exc)
            return self._failure("failed to get config", exc)

        result = {
            "digest": manifest.config.digest,
            "size": manifest.config.size,
            "architecture": config.architecture,
            "os": config.os,
            "created": format_rfc3339(config.created),
            "layers": len(manifest.layers),
        }
        return json_block("Image information", image_ref, result)

    async def list_tags(self, invocation: ToolInvocation) -> mcp_types.CallToolResult:
        """Handle the list_tags tool."""
        try:
            repository = invocation.require_string(REPOSITORY_ARG)
        except ToolArgumentError as exc:
            return error_result(str(exc))

        client = self.get_client(invocation)

        try:
            tags = await asyncio.wait_for(client.list_tags(repository), timeout=self._timeout)
        except Exception as exc:
            logger.info("list_tags(%s) failed: %s", repository, exc)
            return self._failure("failed to list tags", exc)

        if not tags:
            return text_result(f"No tags found for repository {repository}")

        return json_block("Tags", repository, tags)

    async def get_image_manifest(self, invocation: ToolInvocation) -> mcp_types.CallToolResult:
        """Handle the get_image_manifest tool."""
        try:
            image_ref = invocation.require_string(IMAGE_REF_ARG)
        except ToolArgumentError as exc:
            return error_result(str(exc))

        client = self.get_client(invocation)

        try:
            manifest = await asyncio.wait_for(
                client.get_image_manifest(image_ref), timeout=self._timeout
            )
        except Exception as exc:
            logger.info("get_image_manifest(%s) failed: %s", image_ref, exc)
            return self._failure("failed to get manifest", exc)

        return json_block("Manifest", image_ref, manifest.to_dict())

    async def get_image_config(self, invocation: ToolInvocation) -> mcp_types.CallToolResult:
        """Handle the get_image_config tool."""
        try:
            image_ref = invocation.require_string(IMAGE_REF_ARG)
        except ToolArgumentError as exc:
            return error_result(str(exc))

        client = self.get_client(invocation)

        try:
            config = await asyncio.wait_for(
                client.get_image_config(image_ref), timeout=self._timeout
            )
        except Exception as exc:
            logger.info("get_image_config(%s) failed: %s", image_ref, exc)
            return self._failure("failed to get config", exc)

        return json_block("Config", image_ref, config.to_dict())
