"""Default credential store lookup (Docker / Podman auth files).

Credentials are looked up, first match wins, in:

1. ``$DOCKER_CONFIG/config.json`` (or ``~/.docker/config.json``),
2. ``$REGISTRY_AUTH_FILE`` (or ``$XDG_RUNTIME_DIR/containers/auth.json``).

Within a file ``credHelpers`` wins over ``auths``, and ``credsStore`` is
consulted last. Helpers are the ``docker-credential-<name>`` binaries
speaking the Docker credential helper protocol.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import subprocess
from typing import Any, Dict, List, Mapping, Optional

from ocireg_mcp.oci.auth import AuthConfig
from ocireg_mcp.oci.reference import DEFAULT_REGISTRY

logger = logging.getLogger(__name__)

# Docker Hub credentials are stored under the legacy v1 index URL
_DOCKER_HUB_KEYS = (
    "https://index.docker.io/v1/",
    "https://index.docker.io/v1",
    "index.docker.io",
    "docker.io",
    "https://index.docker.io",
    "registry-1.docker.io",
)

# Username returned by credential helpers for identity (refresh) tokens
_IDENTITY_TOKEN_USER = "<token>"

HELPER_TIMEOUT = 10.0  # seconds


class DockerKeychain:
    """Resolve registry credentials from the local credential store.

    Parameters
    ----------
    config_paths:
        Explicit list of auth files to consult. Defaults to the standard
        Docker and Podman locations derived from *environ*.
    environ:
        Environment used to locate the files (defaults to ``os.environ``).
    """

    def __init__(
        self,
        config_paths: Optional[List[str]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._environ = os.environ if environ is None else environ
        self._config_paths = config_paths if config_paths is not None else self._default_paths()

    def _default_paths(self) -> List[str]:
        env = self._environ
        docker_dir = env.get("DOCKER_CONFIG") or os.path.join(os.path.expanduser("~"), ".docker")
        paths = [os.path.join(docker_dir, "config.json")]

        auth_file = env.get("REGISTRY_AUTH_FILE")
        if auth_file:
            paths.append(auth_file)
        elif env.get("XDG_RUNTIME_DIR"):
            paths.append(os.path.join(env["XDG_RUNTIME_DIR"], "containers", "auth.json"))
        return paths

    @property
    def config_paths(self) -> List[str]:
        return list(self._config_paths)

    def resolve(self, registry: str) -> Optional[AuthConfig]:
        """Return credentials for *registry*, or ``None`` for anonymous access."""
        for path in self._config_paths:
            cfg = _load_config(path)
            if cfg is None:
                continue
            auth = self._resolve_from(cfg, registry, path)
            if auth is not None:
                return auth
        logger.debug("No stored credentials for %s; using anonymous access.", registry)
        return None

    def _resolve_from(
        self, cfg: Dict[str, Any], registry: str, path: str
    ) -> Optional[AuthConfig]:
        keys = _candidate_keys(registry)

        helpers = cfg.get("credHelpers") or {}
        if isinstance(helpers, dict):
            for key in keys:
                helper = helpers.get(key)
                if helper:
                    logger.debug("Using credential helper '%s' for %s (%s).", helper, registry, path)
                    return _run_helper(helper, key)

        auths = cfg.get("auths") or {}
        if isinstance(auths, dict):
            entry = _find_auth_entry(auths, keys, registry)
            if entry is not None:
                auth = _decode_entry(entry, registry)
                if auth is not None:
                    logger.debug("Using stored credentials for %s from %s.", registry, path)
                    return auth

        store = cfg.get("credsStore")
        if store:
            logger.debug("Using credential store '%s' for %s (%s).", store, registry, path)
            return _run_helper(store, keys[0])
        return None


def _load_config(path: str) -> Optional[Dict[str, Any]]:
    if not os.path.isfile(path):
        return None
    try:
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        # ValueError covers both JSON and UTF-8 decode failures
        logger.warning("Ignoring unreadable credential file %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring credential file %s: top level is not a JSON object.", path)
        return None
    return data


def _candidate_keys(registry: str) -> List[str]:
    if registry == DEFAULT_REGISTRY:
        return list(_DOCKER_HUB_KEYS)
    return [registry, f"https://{registry}", f"http://{registry}"]


def _normalise_key(key: str) -> str:
    """Strip scheme and path: ``https://host:5000/v1/`` becomes ``host:5000``."""
    if "://" in key:
        key = key.split("://", 1)[1]
    return key.split("/", 1)[0]


def _find_auth_entry(
    auths: Dict[str, Any], keys: List[str], registry: str
) -> Optional[Dict[str, Any]]:
    for key in keys:
        entry = auths.get(key)
        if isinstance(entry, dict):
            return entry
    wanted = {_normalise_key(k) for k in keys} | {registry}
    for key, entry in auths.items():
        if isinstance(entry, dict) and _normalise_key(key) in wanted:
            return entry
    return None


def _decode_entry(entry: Dict[str, Any], registry: str) -> Optional[AuthConfig]:
    username = entry.get("username") or ""
    password = entry.get("password") or ""
    encoded = entry.get("auth") or ""
    if encoded:
        try:
            decoded = base64.b64decode(encoded).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            logger.warning("Ignoring malformed stored credentials for %s: %s", registry, exc)
            return None
        if ":" not in decoded:
            logger.warning("Ignoring malformed stored credentials for %s: missing ':'.", registry)
            return None
        username, password = decoded.split(":", 1)

    identity_token = entry.get("identitytoken") or ""
    registry_token = entry.get("registrytoken") or ""
    if not (username or password or identity_token or registry_token):
        return None
    return AuthConfig(
        username=username or None,
        password=password or None,
        identity_token=identity_token or None,
        registry_token=registry_token or None,
    )


def _run_helper(helper: str, server_url: str) -> Optional[AuthConfig]:
    program = f"docker-credential-{helper}"
    try:
        proc = subprocess.run(
            [program, "get"],
            input=server_url,
            capture_output=True,
            text=True,
            timeout=HELPER_TIMEOUT,
            check=False,
        )
    except FileNotFoundError:
        logger.warning("Credential helper %s not found on PATH.", program)
        return None
    except subprocess.TimeoutExpired:
        logger.warning("Credential helper %s timed out after %.0fs.", program, HELPER_TIMEOUT)
        return None

    if proc.returncode != 0:
        output = (proc.stdout or proc.stderr or "").strip()
        if "credentials not found" in output.lower():
            logger.debug("Credential helper %s has no entry for %s.", program, server_url)
        else:
            logger.warning("Credential helper %s failed: %s", program, output)
        return None

    try:
        payload = json.loads(proc.stdout)
    except json.JSONDecodeError as exc:
        logger.warning("Credential helper %s returned invalid JSON: %s", program, exc)
        return None
    if not isinstance(payload, dict):
        logger.warning("Credential helper %s returned a non-object JSON payload.", program)
        return None

    username = payload.get("Username") or ""
    secret = payload.get("Secret") or ""
    if username == _IDENTITY_TOKEN_USER:
        return AuthConfig(identity_token=secret or None)
    if not (username or secret):
        return None
    return AuthConfig(username=username or None, password=secret or None)
