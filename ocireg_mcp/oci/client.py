"""Read-only async client for OCI / Docker v2 registries.

A :class:`RegistryClient` is cheap and stateless: it only remembers the
authentication strategy, the per-call timeout and the platform to pick
out of multi-arch indexes. Build a fresh one per inbound request.

Every operation opens its own HTTP session and is bounded by the
client's timeout; nothing is retried.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Set
from urllib.parse import urljoin

import httpx

from ocireg_mcp.constants import DEFAULT_PLATFORM, REGISTRY_TIMEOUT, SERVER_NAME, SERVER_VERSION
from ocireg_mcp.errors import (
    ConfigError,
    ImageFetchError,
    ManifestError,
    RegistryRequestError,
    TagListError,
)
from ocireg_mcp.oci.auth import AuthStrategy, DefaultKeychainAuth
from ocireg_mcp.oci.models import (
    INDEX_TYPES,
    MANIFEST_ACCEPT,
    SCHEMA1_TYPES,
    ConfigFile,
    IndexManifest,
    Manifest,
    Platform,
    media_type_of,
)
from ocireg_mcp.oci.reference import ImageReference, Repository, parse_reference, parse_repository
from ocireg_mcp.oci.transport import RegistrySession

logger = logging.getLogger(__name__)

TAG_PAGE_SIZE = 1000


def compute_digest(data: bytes, algorithm: str = "sha256") -> str:
    return f"{algorithm}:{hashlib.new(algorithm, data).hexdigest()}"


class Image:
    """A remote image whose manifest has already been fetched.

    The config blob is only downloaded when :meth:`config_file` is awaited.
    """

    def __init__(
        self,
        client: RegistryClient,
        ref: ImageReference,
        raw_manifest: bytes,
        media_type: str,
        digest: str,
        authorization: Optional[str],
    ) -> None:
        self._client = client
        self._ref = ref
        self._raw_manifest = raw_manifest
        self._media_type = media_type
        self._digest = digest
        self._authorization = authorization

    @property
    def ref(self) -> ImageReference:
        return self._ref

    @property
    def digest(self) -> str:
        """Digest of the (platform-resolved) image manifest."""
        return self._digest

    @property
    def media_type(self) -> str:
        return self._media_type

    def raw_manifest(self) -> bytes:
        return self._raw_manifest

    def manifest(self) -> Manifest:
        """Decode the image manifest; raises :class:`ValueError` when undecodable."""
        return Manifest.from_bytes(self._raw_manifest)

    async def config_file(self, timeout: Optional[float] = None) -> ConfigFile:
        """Download, verify and decode the config blob.

        *timeout* defaults to the client's timeout.
        """
        manifest = self.manifest()
        raw = await asyncio.wait_for(
            self._fetch_blob(manifest.config.digest),
            timeout=self._client.timeout if timeout is None else timeout,
        )
        return ConfigFile.from_bytes(raw)

    async def _fetch_blob(self, digest: str) -> bytes:
        async with self._client.http_client() as http:
            session = RegistrySession(
                http,
                self._ref.repo,
                authorization=self._authorization,
                negotiated=True,
            )
            resp = await session.get(session.url(f"blobs/{digest}"))
        data = resp.content
        algorithm = digest.split(":", 1)[0]
        if algorithm in ("sha256", "sha512"):
            actual = compute_digest(data, algorithm)
            if actual != digest:
                raise ValueError(f"blob digest mismatch: expected {digest}, got {actual}")
        return data


class RegistryClient:
    """Async client for the read-only registry operations this server needs.

    Parameters
    ----------
    auth:
        Authentication strategy for every request made by this client.
        Defaults to the local credential store.
    timeout:
        Upper bound, in seconds, for each operation.
    platform:
        ``os/arch[/variant]`` to resolve multi-arch image indexes to.
    transport:
        Optional :mod:`httpx` transport (tests inject ``httpx.MockTransport``).
    """

    def __init__(
        self,
        auth: Optional[AuthStrategy] = None,
        *,
        timeout: float = REGISTRY_TIMEOUT,
        platform: str = DEFAULT_PLATFORM,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._auth = auth if auth is not None else DefaultKeychainAuth()
        self._timeout = timeout
        self._platform = Platform.parse(platform)
        self._transport = transport

    @property
    def auth(self) -> AuthStrategy:
        return self._auth

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def platform(self) -> Platform:
        return self._platform

    @asynccontextmanager
    async def http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
            headers={"User-Agent": f"{SERVER_NAME}/{SERVER_VERSION}"},
        ) as http:
            yield http

    # ── public API ──────────────────────────────────────────────────

    async def get_image(self, image_ref: str) -> Image:
        """Fetch the manifest of *image_ref*, resolving indexes to our platform."""
        return await self._get_image(parse_reference(image_ref))

    async def _get_image(self, ref: ImageReference) -> Image:
        try:
            return await asyncio.wait_for(self._fetch_image(ref), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise ImageFetchError(
                f"fetching image: timed out after {self._timeout:g}s"
            ) from exc
        except (RegistryRequestError, ValueError) as exc:
            raise ImageFetchError(f"fetching image: {exc}") from exc

    async def get_image_manifest(self, image_ref: str) -> Manifest:
        img = await self.get_image(image_ref)
        try:
            return img.manifest()
        except ValueError as exc:
            raise ManifestError(f"getting manifest: {exc}") from exc

    async def get_image_config(self, image_ref: str) -> ConfigFile:
        """Fetch the image and its config blob within a single timeout."""
        ref = parse_reference(image_ref)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        img = await self._get_image(ref)
        try:
            return await img.config_file(timeout=max(deadline - loop.time(), 0.0))
        except asyncio.TimeoutError as exc:
            raise ConfigError(f"getting config: timed out after {self._timeout:g}s") from exc
        except (RegistryRequestError, ValueError) as exc:
            raise ConfigError(f"getting config: {exc}") from exc

    async def list_tags(self, repository: str) -> List[str]:
        """List every tag of *repository* in the order the registry returns them."""
        repo = parse_repository(repository)
        try:
            return await asyncio.wait_for(self._list_tags(repo), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise TagListError(f"listing tags: timed out after {self._timeout:g}s") from exc
        except (RegistryRequestError, ValueError) as exc:
            raise TagListError(f"listing tags: {exc}") from exc

    # ── internals ───────────────────────────────────────────────────

    async def _open_session(self, http: httpx.AsyncClient, repo: Repository) -> RegistrySession:
        auth_cfg = await self._auth.resolve(repo.registry)
        session = RegistrySession(http, repo, auth_cfg)
        await session.authorize()
        return session

    async def _fetch_image(self, ref: ImageReference) -> Image:
        async with self.http_client() as http:
            session = await self._open_session(http, ref.repo)
            raw, media_type, digest = await self._fetch_manifest(session, ref.identifier)

            if media_type in INDEX_TYPES:
                index = IndexManifest.from_bytes(raw)
                child = index.find(self._platform)
                if child is None:
                    raise ValueError(f"no child with platform {self._platform} in index {ref}")
                logger.debug("Resolved index %s to %s manifest %s.", ref, self._platform, child.digest)
                raw, media_type, digest = await self._fetch_manifest(session, child.digest)
                if media_type in INDEX_TYPES:
                    raise ValueError(f"nested image index {child.digest} is not supported")

            if media_type in SCHEMA1_TYPES:
                raise ValueError(f"unsupported manifest media type {media_type} for {ref}")

            logger.debug("Fetched manifest %s for %s (%s).", digest, ref, media_type)
            return Image(
                self,
                ref,
                raw,
                media_type,
                digest,
                authorization=session.authorization,
            )

    async def _fetch_manifest(self, session: RegistrySession, identifier: str) -> tuple[bytes, str, str]:
        resp = await session.get(
            session.url(f"manifests/{identifier}"),
            headers={"Accept": MANIFEST_ACCEPT},
        )
        raw = resp.content
        try:
            doc = resp.json()
        except ValueError as exc:
            raise ValueError(f"manifest for {identifier} is not valid JSON: {exc}") from exc
        if not isinstance(doc, dict):
            raise ValueError(f"manifest for {identifier} is not a JSON object")
        media_type = media_type_of(resp.headers.get("Content-Type"), doc)
        digest = resp.headers.get("Docker-Content-Digest") or compute_digest(raw)
        return raw, media_type, digest

    async def _list_tags(self, repo: Repository) -> List[str]:
        tags: List[str] = []
        async with self.http_client() as http:
            session = await self._open_session(http, repo)
            url: Optional[str] = session.url("tags/list")
            params: Optional[dict] = {"n": TAG_PAGE_SIZE}
            seen: Set[str] = set()
            while url is not None and url not in seen:
                seen.add(url)
                resp = await session.get(url, params=params)
                try:
                    body = resp.json()
                except ValueError as exc:
                    raise ValueError(f"tag list for {repo} is not valid JSON: {exc}") from exc
                page = body.get("tags") if isinstance(body, dict) else None
                tags.extend(tag for tag in (page or []) if isinstance(tag, str))

                next_link = resp.links.get("next", {}).get("url")
                url = urljoin(str(resp.url), next_link) if next_link else None
                # The next link already carries the pagination query.
                params = None
        logger.debug("Listed %d tags for %s.", len(tags), repo)
        return tags
