"""Image reference and repository name parsing.

Follows the conventions shared by Docker and OCI tooling:

* the registry is the first path component only when it looks like a host
  (contains ``.`` or ``:``, or is ``localhost``); otherwise Docker Hub
  (``index.docker.io``) is assumed,
* single-component Docker Hub repositories live under ``library/``,
* a reference without tag or digest points at the ``latest`` tag,
* ``name:tag@digest`` is accepted and resolved by digest.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from ocireg_mcp.errors import ReferenceParseError

DEFAULT_REGISTRY = "index.docker.io"
DEFAULT_TAG = "latest"

_DOCKER_HUB_ALIAS = "docker.io"
_REPOSITORY_CHARS = frozenset("abcdefghijklmnopqrstuvwxyz0123456789_-./")
_MAX_REPOSITORY_LENGTH = 255

_TAG_RE = re.compile(r"[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}")
_DIGEST_RE = re.compile(r"(?P<algorithm>[a-z0-9]+(?:[.+_-][a-z0-9]+)*):(?P<hex>[a-zA-Z0-9=_-]+)")
_DIGEST_HEX_LENGTHS = {"sha256": 64, "sha512": 128}
_HOST_RE = re.compile(
    r"(?:"
    r"(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)(?:\.(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?))*"
    r"|\[[0-9a-fA-F:.]+\]"
    r")(?::[0-9]+)?"
)
_LOOPBACK_RE = re.compile(r"(?:127\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}|\[::1\])(?::[0-9]+)?")


@dataclass(frozen=True)
class Repository:
    """A repository within a registry, e.g. ``index.docker.io/library/alpine``."""

    registry: str
    repository: str

    @property
    def scheme(self) -> str:
        """URL scheme used to talk to the registry.

        Plain HTTP is only used for ``localhost`` and loopback addresses.
        """
        if self.registry == "localhost" or self.registry.startswith("localhost:"):
            return "http"
        if _LOOPBACK_RE.fullmatch(self.registry):
            return "http"
        return "https"

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.registry}"

    @property
    def scope(self) -> str:
        """Token scope granting pull access to this repository."""
        return f"repository:{self.repository}:pull"

    def __str__(self) -> str:
        return f"{self.registry}/{self.repository}"


@dataclass(frozen=True)
class ImageReference:
    """A tag or digest reference to an image."""

    repo: Repository
    tag: Optional[str] = None
    digest: Optional[str] = None

    @property
    def identifier(self) -> str:
        """The manifest identifier to request: the digest when known, else the tag."""
        if self.digest:
            return self.digest
        return self.tag or DEFAULT_TAG

    def __str__(self) -> str:
        if self.digest:
            return f"{self.repo}@{self.digest}"
        return f"{self.repo}:{self.tag or DEFAULT_TAG}"


def parse_reference(image_ref: str) -> ImageReference:
    """Parse *image_ref* into an :class:`ImageReference`.

    Raises :class:`ReferenceParseError` when the string is not a valid
    tag or digest reference.
    """
    try:
        return _parse_reference(image_ref)
    except ValueError as exc:
        raise ReferenceParseError(f"parsing image reference: {exc}") from exc


def parse_repository(name: str) -> Repository:
    """Parse a bare repository name (no tag or digest suffix).

    Raises :class:`ReferenceParseError` on invalid syntax.
    """
    try:
        return _parse_repository(name)
    except ValueError as exc:
        raise ReferenceParseError(f"parsing repository name: {exc}") from exc


def _parse_reference(image_ref: str) -> ImageReference:
    if not image_ref:
        raise ValueError("empty image reference")

    digest: Optional[str] = None
    base = image_ref
    if "@" in image_ref:
        parts = image_ref.split("@")
        if len(parts) != 2:
            raise ValueError(f"a digest must contain exactly one '@' separator: {image_ref}")
        base, digest = parts
        _check_digest(digest)

    base, tag = _split_tag(base)
    if tag is not None:
        _check_tag(tag)

    repo = _parse_repository(base)
    if digest is None and tag is None:
        tag = DEFAULT_TAG
    return ImageReference(repo=repo, tag=tag, digest=digest)


def _parse_repository(name: str) -> Repository:
    registry, repository = _split_registry(name)
    _check_registry(registry)
    _check_repository(repository)
    if registry == DEFAULT_REGISTRY and "/" not in repository:
        repository = f"library/{repository}"
    return Repository(registry=registry, repository=repository)


def _split_tag(name: str) -> Tuple[str, Optional[str]]:
    """Split ``name:tag``; a colon followed by a slash belongs to a registry port."""
    parts = name.split(":")
    if len(parts) > 1 and "/" not in parts[-1]:
        return ":".join(parts[:-1]), parts[-1]
    return name, None


def _split_registry(name: str) -> Tuple[str, str]:
    parts = name.split("/", 1)
    if len(parts) == 2 and ("." in parts[0] or ":" in parts[0] or parts[0] == "localhost"):
        registry, repository = parts
    else:
        registry, repository = DEFAULT_REGISTRY, name
    if registry == _DOCKER_HUB_ALIAS:
        registry = DEFAULT_REGISTRY
    return registry, repository


def _check_registry(registry: str) -> None:
    if not _HOST_RE.fullmatch(registry):
        raise ValueError(f"registries must be valid RFC 3986 URI authorities: {registry}")


def _check_repository(repository: str) -> None:
    if not repository or len(repository) > _MAX_REPOSITORY_LENGTH:
        raise ValueError(
            f"repository must be between 1 and {_MAX_REPOSITORY_LENGTH} characters in length: "
            f"{repository}"
        )
    if any(ch not in _REPOSITORY_CHARS for ch in repository):
        raise ValueError(
            "repository can only contain the characters "
            f"`abcdefghijklmnopqrstuvwxyz0123456789_-./`: {repository}"
        )
    if any(component == "" for component in repository.split("/")):
        raise ValueError(f"repository path components must not be empty: {repository}")


def _check_tag(tag: str) -> None:
    if not _TAG_RE.fullmatch(tag):
        raise ValueError(
            "tag can only contain the characters "
            f"`abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_-.`: {tag}"
        )


def _check_digest(digest: str) -> None:
    match = _DIGEST_RE.fullmatch(digest)
    if not match:
        raise ValueError(f"invalid digest format: {digest}")
    expected = _DIGEST_HEX_LENGTHS.get(match.group("algorithm"))
    if expected is None:
        raise ValueError(f"unsupported digest algorithm: {digest}")
    hex_part = match.group("hex")
    if len(hex_part) != expected or any(ch not in "0123456789abcdef" for ch in hex_part):
        raise ValueError(f"invalid {match.group('algorithm')} digest: {digest}")
