"""Custom exception classes for ocireg-mcp."""

from typing import Optional


class OciRegistryError(Exception):
    """Base class for all custom exceptions in ocireg-mcp."""

    pass


class ReferenceParseError(OciRegistryError):
    """Raised when an image reference or repository name is malformed."""

    pass


class RegistryRequestError(OciRegistryError):
    """
    Raised when a request against the registry fails: a network error,
    an unexpected HTTP status or a response that breaks the protocol.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        orig_exc: Optional[Exception] = None,
    ):
        self.status_code = status_code
        self.orig_exc = orig_exc
        super().__init__(message)


class ImageFetchError(OciRegistryError):
    """Raised when an image cannot be fetched from the registry."""

    pass


class TagListError(OciRegistryError):
    """Raised when the tags of a repository cannot be listed."""

    pass


class ManifestError(OciRegistryError):
    """Raised when a fetched manifest cannot be decoded."""

    pass


class ConfigError(OciRegistryError):
    """Raised when an image config blob cannot be fetched or decoded."""

    pass


class ToolArgumentError(OciRegistryError):
    """Raised when a required tool argument is missing or empty."""

    def __init__(self, arg_name: str):
        self.arg_name = arg_name
        super().__init__(f"{arg_name} is required")
