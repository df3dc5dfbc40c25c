"""Per-request registry credential resolution.

Exactly one strategy is chosen per inbound request, highest priority first:

1. ``Authorization: Bearer <token>`` header on the inbound request
2. ``OCI_TOKEN`` environment variable
3. ``OCI_USERNAME`` + ``OCI_PASSWORD`` environment variables
4. the local credential store (Docker/Podman auth files)

Resolution never fails; missing credentials simply mean the credential
store is consulted, and any authentication error surfaces on the actual
registry call.

Only the process-wide secrets from the environment are registered with the
log redaction filter, once at start-up; header tokens live for one request
and are never logged.
"""

import logging
import os
from typing import Mapping, Optional

from ocireg_mcp.constants import PASSWORD_ENV_VAR, TOKEN_ENV_VAR, USERNAME_ENV_VAR
from ocireg_mcp.display.logging_config import secret_redaction_filter
from ocireg_mcp.oci.auth import AuthStrategy, BasicAuth, BearerAuth, DefaultKeychainAuth
from ocireg_mcp.oci.client import RegistryClient

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def _header(headers: Optional[Mapping[str, str]], name: str) -> str:
    """Case-insensitive header lookup over any mapping."""
    if not headers:
        return ""
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, val in headers.items():
            if key.lower() == lowered:
                value = val
                break
    return value or ""


def register_environment_secrets(environ: Optional[Mapping[str, str]] = None) -> None:
    """Register the credential environment variables with the log redaction filter."""
    env = os.environ if environ is None else environ
    for name in (TOKEN_ENV_VAR, PASSWORD_ENV_VAR):
        secret_redaction_filter.register(env.get(name, ""))


def resolve_auth_strategy(
    headers: Optional[Mapping[str, str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> AuthStrategy:
    """Pick the authentication strategy for one inbound request."""
    env = os.environ if environ is None else environ

    auth_header = _header(headers, "Authorization")
    if auth_header.startswith(BEARER_PREFIX):
        token = auth_header[len(BEARER_PREFIX):]
        logger.info("Using bearer token from Authorization header for OCI registry")
        return BearerAuth(token)

    token = env.get(TOKEN_ENV_VAR, "")
    if token:
        logger.info("Using bearer token from %s environment variable for OCI registry", TOKEN_ENV_VAR)
        return BearerAuth(token)

    username = env.get(USERNAME_ENV_VAR, "")
    password = env.get(PASSWORD_ENV_VAR, "")
    if username and password:
        logger.info("Using username/password authentication for OCI registry")
        return BasicAuth(username, password)

    logger.info("Using default keychain for OCI registry authentication")
    return DefaultKeychainAuth()


def client_from_headers(headers: Optional[Mapping[str, str]] = None) -> RegistryClient:
    """Client factory: a fresh :class:`RegistryClient` for one inbound request."""
    return RegistryClient(resolve_auth_strategy(headers))
