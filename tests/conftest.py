"""Shared fixtures: isolated environment and an in-memory fake registry."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from ocireg_mcp.oci.models import OCI_INDEX, OCI_MANIFEST

AUTH_HOST = "auth.example.com"
ISSUED_TOKEN = "issued-registry-token"

_MANIFEST_PATH = re.compile(r"^/v2/(?P<repo>.+)/manifests/(?P<ref>[^/]+)$")
_BLOB_PATH = re.compile(r"^/v2/(?P<repo>.+)/blobs/(?P<digest>[^/]+)$")
_TAGS_PATH = re.compile(r"^/v2/(?P<repo>.+)/tags/list$")


class FakeRegistry:
    """A tiny Docker v2 registry served through :class:`httpx.MockTransport`.

    Set :attr:`challenge` to make the registry demand credentials; requests
    other than the ping and the token endpoint must then carry
    :attr:`expected_authorization`.
    """

    def __init__(self) -> None:
        self.manifests: Dict[Tuple[str, str], Tuple[bytes, str]] = {}
        self.blobs: Dict[str, bytes] = {}
        self.tag_pages: Dict[str, List[Optional[List[str]]]] = {}
        self.requests: List[httpx.Request] = []
        self.challenge: Optional[str] = None
        self.expected_authorization: Optional[str] = None

    # ── content ─────────────────────────────────────────────────────

    def add_image(
        self,
        repo: str,
        tag: str,
        *,
        architecture: str = "amd64",
        os_name: str = "linux",
        created: Optional[str] = "2024-01-02T03:04:05.123456789Z",
        layers: int = 3,
    ) -> Dict[str, Any]:
        config = {
            "architecture": architecture,
            "os": os_name,
            "created": created,
            "config": {"Env": ["PATH=/usr/local/bin:/usr/bin"], "Cmd": ["/bin/sh"]},
            "rootfs": {"type": "layers", "diff_ids": [f"sha256:{i:064x}" for i in range(layers)]},
        }
        if created is None:
            del config["created"]
        config_bytes = json.dumps(config).encode()
        config_digest = sha256_digest(config_bytes)
        self.blobs[config_digest] = config_bytes
        manifest = {
            "schemaVersion": 2,
            "mediaType": OCI_MANIFEST,
            "config": {
                "mediaType": "application/vnd.oci.image.config.v1+json",
                "digest": config_digest,
                "size": len(config_bytes),
            },
            "layers": [
                {
                    "mediaType": "application/vnd.oci.image.layer.v1.tar+gzip",
                    "digest": f"sha256:{i + 100:064x}",
                    "size": 1000 + i,
                }
                for i in range(layers)
            ],
            "annotations": {"org.opencontainers.image.source": "https://example.com/src"},
        }
        self.put_manifest(repo, tag, json.dumps(manifest).encode(), OCI_MANIFEST)
        return {"manifest": manifest, "config": config}

    def add_index(self, repo: str, tag: str, children: List[Tuple[Dict[str, str], str]]) -> None:
        """Add an index whose children are ``(platform, child_tag)`` pairs."""
        entries = []
        for platform, child_tag in children:
            raw, media_type = self.manifests[(repo, child_tag)]
            entries.append(
                {
                    "mediaType": media_type,
                    "digest": sha256_digest(raw),
                    "size": len(raw),
                    "platform": platform,
                }
            )
        index = {"schemaVersion": 2, "mediaType": OCI_INDEX, "manifests": entries}
        self.put_manifest(repo, tag, json.dumps(index).encode(), OCI_INDEX)

    def put_manifest(self, repo: str, tag: str, raw: bytes, media_type: str) -> None:
        self.manifests[(repo, tag)] = (raw, media_type)
        self.manifests[(repo, sha256_digest(raw))] = (raw, media_type)

    # ── transport ───────────────────────────────────────────────────

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == AUTH_HOST and path == "/token":
            return httpx.Response(200, json={"token": ISSUED_TOKEN})

        if path == "/v2/":
            if self.challenge:
                return httpx.Response(401, headers={"WWW-Authenticate": self.challenge})
            return httpx.Response(200, json={})

        if self.expected_authorization is not None:
            if request.headers.get("Authorization") != self.expected_authorization:
                return _registry_error(401, "UNAUTHORIZED", "authentication required")

        match = _MANIFEST_PATH.match(path)
        if match:
            found = self.manifests.get((match["repo"], match["ref"]))
            if found is None:
                return _registry_error(404, "MANIFEST_UNKNOWN", "manifest unknown")
            raw, media_type = found
            return httpx.Response(
                200,
                content=raw,
                headers={"Content-Type": media_type, "Docker-Content-Digest": sha256_digest(raw)},
            )

        match = _BLOB_PATH.match(path)
        if match:
            blob = self.blobs.get(match["digest"])
            if blob is None:
                return _registry_error(404, "BLOB_UNKNOWN", "blob unknown to registry")
            return httpx.Response(200, content=blob)

        match = _TAGS_PATH.match(path)
        if match:
            repo = match["repo"]
            pages = self.tag_pages.get(repo)
            if pages is None:
                return _registry_error(404, "NAME_UNKNOWN", "repository name not known to registry")
            page = int(request.url.params.get("page", "0"))
            headers = {}
            if page + 1 < len(pages):
                headers["Link"] = f'</v2/{repo}/tags/list?page={page + 1}>; rel="next"'
            return httpx.Response(200, json={"name": repo, "tags": pages[page]}, headers=headers)

        return httpx.Response(404)

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]

    def digest_of(self, repo: str, tag: str) -> str:
        raw, _ = self.manifests[(repo, tag)]
        return sha256_digest(raw)


def sha256_digest(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


def _registry_error(status: int, code: str, message: str) -> httpx.Response:
    return httpx.Response(status, json={"errors": [{"code": code, "message": message}]})


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep real credentials and credential stores out of the tests."""
    for var in (
        "OCI_TOKEN",
        "OCI_USERNAME",
        "OCI_PASSWORD",
        "MCP_PORT",
        "REGISTRY_AUTH_FILE",
        "XDG_RUNTIME_DIR",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DOCKER_CONFIG", str(tmp_path / "docker"))


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def restore_logging():
    """Undo the global changes made by ``setup_logging``."""
    from ocireg_mcp.display.logging_config import BASE_LOG_CFG

    root = logging.getLogger()
    root_handlers = list(root.handlers)
    root_level = root.level
    saved = {}
    for name in BASE_LOG_CFG["loggers"]:
        lg = logging.getLogger(name)
        saved[name] = (list(lg.handlers), lg.level, lg.propagate)
    yield
    for handler in list(root.handlers):
        if handler not in root_handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(root_level)
    for name, (handlers, level, propagate) in saved.items():
        lg = logging.getLogger(name)
        for handler in list(lg.handlers):
            if handler not in handlers:
                handler.close()
        lg.handlers[:] = handlers
        lg.setLevel(level)
        lg.propagate = propagate
