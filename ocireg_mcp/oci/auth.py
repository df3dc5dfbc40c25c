"""Authentication strategies for outgoing registry requests.

Implements three strategies:

* **BearerAuth** – a pre-issued registry token, sent as-is.
* **BasicAuth** – username/password, exchanged for a token when the
  registry asks for one.
* **DefaultKeychainAuth** – whatever the local credential store holds for
  the registry (anonymous when nothing is stored).

Each strategy resolves to an :class:`AuthConfig` for a given registry host;
the registry transport decides how to present it based on the challenge
the registry sends back.
"""

from __future__ import annotations

import abc
import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ocireg_mcp.oci.keychain import DockerKeychain


@dataclass(frozen=True)
class AuthConfig:
    """Credentials for one registry. Secret fields never show up in ``repr``."""

    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    registry_token: Optional[str] = field(default=None, repr=False)
    identity_token: Optional[str] = field(default=None, repr=False)

    @property
    def has_basic(self) -> bool:
        return bool(self.username and self.password)


class AuthStrategy(abc.ABC):
    """Base class for outgoing-authentication strategies."""

    kind: str = ""

    @abc.abstractmethod
    async def resolve(self, registry: str) -> Optional[AuthConfig]:
        """Return credentials for *registry*, or ``None`` for anonymous."""


@dataclass(frozen=True)
class BearerAuth(AuthStrategy):
    """Send a registry bearer token directly, skipping the token exchange."""

    token: str = field(repr=False)
    kind: str = field(default="bearer", init=False)

    async def resolve(self, registry: str) -> Optional[AuthConfig]:
        return AuthConfig(registry_token=self.token)


@dataclass(frozen=True)
class BasicAuth(AuthStrategy):
    """Authenticate with a username and password."""

    username: str
    password: str = field(repr=False)
    kind: str = field(default="basic", init=False)

    async def resolve(self, registry: str) -> Optional[AuthConfig]:
        return AuthConfig(username=self.username, password=self.password)


@dataclass(frozen=True)
class DefaultKeychainAuth(AuthStrategy):
    """Look credentials up in the local Docker/Podman credential store."""

    keychain: Optional["DockerKeychain"] = field(default=None, compare=False)
    kind: str = field(default="default-keychain", init=False)

    async def resolve(self, registry: str) -> Optional[AuthConfig]:
        keychain = self.keychain
        if keychain is None:
            from ocireg_mcp.oci.keychain import DockerKeychain

            keychain = DockerKeychain()
        # File reads and credential helpers block; keep them off the event loop.
        return await asyncio.to_thread(keychain.resolve, registry)
