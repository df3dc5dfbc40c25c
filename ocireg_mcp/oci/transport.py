"""Authenticated HTTP access to a single registry repository.

Follows the Docker Registry v2 / OCI distribution handshake:

1. ``GET /v2/`` to discover whether the registry wants credentials,
2. on ``401`` parse ``WWW-Authenticate``:

   * ``Bearer realm=…,service=…`` → fetch a token scoped to
     ``repository:<name>:pull`` from the realm (or use a pre-issued
     registry token directly),
   * ``Basic`` → send the username/password on every request,

3. issue the actual requests with the resulting ``Authorization`` header.
"""

from __future__ import annotations

import base64
import logging
import re
from typing import Any, Dict, Optional

import httpx

from ocireg_mcp.constants import SERVER_NAME
from ocireg_mcp.errors import RegistryRequestError
from ocireg_mcp.oci.auth import AuthConfig
from ocireg_mcp.oci.reference import Repository

logger = logging.getLogger(__name__)

_CHALLENGE_PARAM_RE = re.compile(r'(\w+)=(?:"([^"]*)"|([^\s,]+))')


def parse_challenge(header: str) -> Optional[Dict[str, str]]:
    """Parse a ``WWW-Authenticate`` header into its scheme and parameters.

    Example::

        parse_challenge('Bearer realm="https://auth.docker.io/token",service="registry.docker.io"')
        → {"scheme": "bearer", "realm": "https://auth.docker.io/token",
           "service": "registry.docker.io"}
    """
    if not header:
        return None
    scheme, _, params_str = header.strip().partition(" ")
    challenge: Dict[str, str] = {"scheme": scheme.lower()}
    for key, quoted, bare in _CHALLENGE_PARAM_RE.findall(params_str):
        challenge[key.lower()] = quoted if quoted else bare
    return challenge


def describe_error(response: httpx.Response) -> str:
    """Render a failed registry response, including structured registry errors."""
    request = response.request
    prefix = f"{request.method} {request.url}"
    try:
        body: Any = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("errors"), list) and body["errors"]:
        details = []
        for err in body["errors"]:
            if isinstance(err, dict):
                details.append(f"{err.get('code', 'UNKNOWN')}: {err.get('message', '')}".rstrip(": "))
        if details:
            return f"{prefix}: {'; '.join(details)}"
    text = response.text.strip()
    status = f"unexpected status code {response.status_code} {response.reason_phrase}".rstrip()
    if text:
        return f"{prefix}: {status}: {text[:200]}"
    return f"{prefix}: {status}"


class RegistrySession:
    """HTTP session bound to one repository and one set of credentials.

    Parameters
    ----------
    http:
        An open :class:`httpx.AsyncClient` owned by the caller.
    repo:
        The repository every request is scoped to.
    auth:
        Credentials to present, or ``None`` for anonymous access.
    authorization:
        A previously negotiated ``Authorization`` header value. When set the
        handshake is skipped.
    negotiated:
        Skip the handshake even without an ``Authorization`` value (the
        registry was already found to allow anonymous access).
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        repo: Repository,
        auth: Optional[AuthConfig] = None,
        *,
        authorization: Optional[str] = None,
        negotiated: bool = False,
    ) -> None:
        self._http = http
        self._repo = repo
        self._auth = auth
        self._authorization = authorization
        self._handshake_done = negotiated or authorization is not None

    @property
    def repo(self) -> Repository:
        return self._repo

    @property
    def authorization(self) -> Optional[str]:
        """The negotiated ``Authorization`` header value (``None`` if anonymous)."""
        return self._authorization

    def url(self, path: str) -> str:
        return f"{self._repo.base_url}/v2/{self._repo.repository}/{path.lstrip('/')}"

    # ── handshake ───────────────────────────────────────────────────

    async def authorize(self) -> None:
        """Ping the registry and negotiate credentials if it asks for them."""
        if self._handshake_done:
            return
        ping_url = f"{self._repo.base_url}/v2/"
        resp = await self._send("GET", ping_url)
        if resp.status_code == 200:
            logger.debug("Registry %s allows anonymous access.", self._repo.registry)
        elif resp.status_code == 401:
            challenge = parse_challenge(resp.headers.get("WWW-Authenticate", ""))
            if challenge is None:
                raise RegistryRequestError(
                    f"GET {ping_url}: registry returned 401 without a WWW-Authenticate challenge",
                    status_code=401,
                )
            self._authorization = await self._answer_challenge(challenge)
        else:
            raise RegistryRequestError(describe_error(resp), status_code=resp.status_code)
        self._handshake_done = True

    async def _answer_challenge(self, challenge: Dict[str, str]) -> Optional[str]:
        scheme = challenge["scheme"]
        auth = self._auth
        if scheme == "basic":
            if auth is not None and auth.registry_token:
                return f"Bearer {auth.registry_token}"
            if auth is not None and auth.has_basic:
                return _basic_header(auth.username or "", auth.password or "")
            raise RegistryRequestError(
                f"registry {self._repo.registry} requires basic authentication "
                "but no credentials are available",
                status_code=401,
            )
        if scheme == "bearer":
            if auth is not None and auth.registry_token:
                return f"Bearer {auth.registry_token}"
            token = await self._fetch_token(challenge)
            return f"Bearer {token}"
        raise RegistryRequestError(
            f"registry {self._repo.registry} uses unsupported auth scheme '{scheme}'",
            status_code=401,
        )

    async def _fetch_token(self, challenge: Dict[str, str]) -> str:
        realm = challenge.get("realm")
        if not realm:
            raise RegistryRequestError(
                f"bearer challenge from {self._repo.registry} is missing a realm",
                status_code=401,
            )
        service = challenge.get("service", "")
        scope = self._repo.scope
        auth = self._auth

        if auth is not None and auth.identity_token:
            logger.debug("Exchanging refresh token at %s (scope=%s).", realm, scope)
            form = {
                "grant_type": "refresh_token",
                "refresh_token": auth.identity_token,
                "service": service,
                "scope": scope,
                "client_id": SERVER_NAME,
            }
            resp = await self._send("POST", realm, data=form)
        else:
            logger.debug("Requesting token from %s (scope=%s).", realm, scope)
            headers = {}
            if auth is not None and auth.has_basic:
                headers["Authorization"] = _basic_header(auth.username or "", auth.password or "")
            params = {"scope": scope}
            if service:
                params["service"] = service
            resp = await self._send("GET", realm, params=params, headers=headers)

        if resp.status_code != 200:
            raise RegistryRequestError(describe_error(resp), status_code=resp.status_code)
        try:
            payload = resp.json()
        except ValueError as exc:
            raise RegistryRequestError(f"token response from {realm} is not JSON: {exc}") from exc
        token = None
        if isinstance(payload, dict):
            token = payload.get("token") or payload.get("access_token")
        if not token:
            raise RegistryRequestError(f"token response from {realm} carries no token")
        return token

    # ── requests ────────────────────────────────────────────────────

    async def get(
        self,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Authenticated GET; raises :class:`RegistryRequestError` unless the status is 200."""
        await self.authorize()
        req_headers = dict(headers or {})
        if self._authorization:
            req_headers["Authorization"] = self._authorization
        resp = await self._send("GET", url, headers=req_headers, params=params)
        if resp.status_code != 200:
            raise RegistryRequestError(describe_error(resp), status_code=resp.status_code)
        return resp

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            detail = str(exc) or type(exc).__name__
            raise RegistryRequestError(f"{method} {url}: {detail}", orig_exc=exc) from exc


def _basic_header(username: str, password: str) -> str:
    encoded = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {encoded}"
