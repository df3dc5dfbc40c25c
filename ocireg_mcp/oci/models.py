"""Typed views over OCI manifest, index and config documents.

The registry documents are kept verbatim in ``raw`` so that serialising
them back to JSON never drops a field; the typed attributes only expose
what this server needs to read.
"""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

# Media types
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
DOCKER_MANIFEST_V1 = "application/vnd.docker.distribution.manifest.v1+json"
DOCKER_MANIFEST_V1_SIGNED = "application/vnd.docker.distribution.manifest.v1+prettyjws"

IMAGE_MANIFEST_TYPES = frozenset({OCI_MANIFEST, DOCKER_MANIFEST_V2})
INDEX_TYPES = frozenset({OCI_INDEX, DOCKER_MANIFEST_LIST})
SCHEMA1_TYPES = frozenset({DOCKER_MANIFEST_V1, DOCKER_MANIFEST_V1_SIGNED})

# Accept header sent with manifest requests, most specific first
MANIFEST_ACCEPT = ", ".join(
    [OCI_MANIFEST, DOCKER_MANIFEST_V2, OCI_INDEX, DOCKER_MANIFEST_LIST]
)

_ZERO_TIME = "0001-01-01T00:00:00Z"
_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d+))?"
    r"(?P<tz>Z|z|[+-]\d{2}:\d{2})?$"
)


def _load_object(data: bytes, what: str) -> Dict[str, Any]:
    try:
        doc = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"decoding {what}: {exc}") from exc
    if not isinstance(doc, dict):
        raise ValueError(f"decoding {what}: expected a JSON object, got {type(doc).__name__}")
    return doc


@dataclass(frozen=True)
class Platform:
    """Target platform of an image, e.g. ``linux/arm64/v8``."""

    os: str
    architecture: str
    variant: str = ""

    @classmethod
    def parse(cls, value: str) -> Platform:
        parts = value.split("/")
        if len(parts) < 2 or len(parts) > 3 or not all(parts):
            raise ValueError(f"invalid platform: {value!r} (expected os/arch[/variant])")
        return cls(os=parts[0], architecture=parts[1], variant=parts[2] if len(parts) == 3 else "")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Platform:
        return cls(
            os=data.get("os", ""),
            architecture=data.get("architecture", ""),
            variant=data.get("variant", ""),
        )

    def satisfies(self, wanted: Platform) -> bool:
        """Return ``True`` if this platform fulfils *wanted*.

        An empty variant in *wanted* matches any variant.
        """
        if self.os != wanted.os or self.architecture != wanted.architecture:
            return False
        return not wanted.variant or self.variant == wanted.variant

    def __str__(self) -> str:
        if self.variant:
            return f"{self.os}/{self.architecture}/{self.variant}"
        return f"{self.os}/{self.architecture}"


@dataclass(frozen=True)
class Descriptor:
    """Content descriptor pointing at a blob or manifest."""

    media_type: str
    digest: str
    size: int
    platform: Optional[Platform] = None

    @classmethod
    def from_dict(cls, data: Any) -> Descriptor:
        if not isinstance(data, dict):
            raise ValueError("descriptor must be a JSON object")
        digest = data.get("digest")
        if not isinstance(digest, str) or not digest:
            raise ValueError("descriptor is missing a digest")
        size = data.get("size", 0)
        if not isinstance(size, int) or isinstance(size, bool):
            raise ValueError(f"descriptor {digest} has a non-integer size")
        platform_raw = data.get("platform")
        return cls(
            media_type=data.get("mediaType", ""),
            digest=digest,
            size=size,
            platform=Platform.from_dict(platform_raw) if isinstance(platform_raw, dict) else None,
        )


@dataclass(frozen=True)
class Manifest:
    """An image manifest (OCI or Docker schema 2)."""

    schema_version: int
    media_type: str
    config: Descriptor
    layers: List[Descriptor]
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> Manifest:
        doc = _load_object(data, "manifest")
        schema_version = doc.get("schemaVersion")
        if schema_version != 2:
            raise ValueError(f"unsupported manifest schema version: {schema_version!r}")
        if "manifests" in doc and "config" not in doc:
            raise ValueError("document is an image index, not an image manifest")
        layers_raw = doc.get("layers") or []
        if not isinstance(layers_raw, list):
            raise ValueError("manifest layers must be a JSON array")
        return cls(
            schema_version=schema_version,
            media_type=doc.get("mediaType", ""),
            config=Descriptor.from_dict(doc.get("config")),
            layers=[Descriptor.from_dict(layer) for layer in layers_raw],
            raw=doc,
        )

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.raw)


@dataclass(frozen=True)
class IndexManifest:
    """A multi-platform image index (OCI index or Docker manifest list)."""

    media_type: str
    manifests: List[Descriptor]
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> IndexManifest:
        doc = _load_object(data, "image index")
        children = doc.get("manifests")
        if not isinstance(children, list):
            raise ValueError("image index has no manifests array")
        return cls(
            media_type=doc.get("mediaType", ""),
            manifests=[Descriptor.from_dict(child) for child in children],
            raw=doc,
        )

    def find(self, wanted: Platform) -> Optional[Descriptor]:
        """Return the first child manifest built for *wanted*, if any."""
        for child in self.manifests:
            if child.platform is not None and child.platform.satisfies(wanted):
                return child
        return None


@dataclass(frozen=True)
class ConfigFile:
    """An image configuration blob."""

    architecture: str
    os: str
    created: Optional[datetime]
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> ConfigFile:
        doc = _load_object(data, "config file")
        created_raw = doc.get("created")
        if created_raw is not None and not isinstance(created_raw, str):
            raise ValueError("config 'created' must be a timestamp string")
        return cls(
            architecture=doc.get("architecture", "") or "",
            os=doc.get("os", "") or "",
            created=parse_timestamp(created_raw) if created_raw else None,
            raw=doc,
        )

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self.raw)


def media_type_of(content_type: Optional[str], doc: Dict[str, Any]) -> str:
    """Work out a manifest's media type from the response header or the body."""
    if content_type:
        media_type = content_type.split(";", 1)[0].strip()
        if media_type and media_type not in ("application/json", "text/plain"):
            return media_type
    declared = doc.get("mediaType")
    if isinstance(declared, str) and declared:
        return declared
    if "manifests" in doc:
        return OCI_INDEX
    if doc.get("schemaVersion") == 1:
        return DOCKER_MANIFEST_V1
    return OCI_MANIFEST


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp, tolerating nanosecond precision."""
    match = _TIMESTAMP_RE.match(value.strip())
    if not match:
        raise ValueError(f"invalid timestamp: {value!r}")
    text = match.group("base").replace(" ", "T")
    frac = match.group("frac")
    if frac:
        text += "." + frac[:6].ljust(6, "0")
    parsed = datetime.fromisoformat(text)
    tz = match.group("tz")
    if tz is None or tz in ("Z", "z"):
        return parsed.replace(tzinfo=timezone.utc)
    sign = 1 if tz[0] == "+" else -1
    hours, minutes = int(tz[1:3]), int(tz[4:6])
    return parsed.replace(tzinfo=timezone(sign * timedelta(hours=hours, minutes=minutes)))


def format_rfc3339(value: Optional[datetime]) -> str:
    """Format *value* as RFC 3339 with second precision.

    UTC renders as ``Z``, other offsets as ``+hh:mm``. A missing value
    renders as the zero time.
    """
    if value is None:
        return _ZERO_TIME
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    offset = value.utcoffset() or timedelta(0)
    # strftime does not zero-pad years below 1000 on every platform
    base = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if offset == timedelta(0):
        return f"{base}Z"
    total_minutes = int(offset.total_seconds()) // 60
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{base}{sign}{hours:02d}:{minutes:02d}"
