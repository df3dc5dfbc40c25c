"""OCI registry access — references, credentials, and a read-only client.

Provides just enough of the OCI distribution protocol to fetch manifests,
configs and tag lists from Docker Hub, GHCR, Quay and any other v2
registry.
"""

from ocireg_mcp.oci.auth import AuthConfig, AuthStrategy, BasicAuth, BearerAuth, DefaultKeychainAuth
from ocireg_mcp.oci.client import Image, RegistryClient
from ocireg_mcp.oci.models import ConfigFile, Manifest
from ocireg_mcp.oci.reference import ImageReference, Repository, parse_reference, parse_repository

__all__ = [
    "AuthConfig",
    "AuthStrategy",
    "BasicAuth",
    "BearerAuth",
    "ConfigFile",
    "DefaultKeychainAuth",
    "Image",
    "ImageReference",
    "Manifest",
    "RegistryClient",
    "Repository",
    "parse_reference",
    "parse_repository",
]
