"""
OCI registry error classes.

Provides a clear taxonomy of errors that can occur during registry
operations. RegistryHTTP maps HTTP status codes and httpx exceptions onto
these classes so callers see a consistent error interface.
"""
from __future__ import annotations

from ..errors import RemoteAccessError


class OciError(RemoteAccessError):
    """
    Base class for all OCI registry errors.

    Raised directly for network failures and unexpected status codes.
    """
    pass


class OciAuthError(OciError):
    """
    Authentication or authorization error.

    Raised when:
    - HTTP 401 Unauthorized (missing or invalid credentials)
    - HTTP 403 Forbidden (insufficient permissions, e.g. push denied)
    - Bearer token exchange fails
    """
    pass


class OciNotFound(OciError):
    """
    Resource not found in registry.

    Raised when:
    - HTTP 404 Not Found (manifest, blob, or repository doesn't exist)
    - No manifest in an index matches the requested platform
    """
    pass


class OciDigestMismatch(OciError):
    """
    Content digest validation failed.

    Raised when:
    - a downloaded blob does not hash to the digest it was fetched by
    - the registry returns a manifest digest different from the local one
    """

    def __init__(self, message: str, expected: str | None = None, actual: str | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class OciUnsupportedMediaType(OciError):
    """
    Media type not supported by the client.

    Raised when the registry returns a manifest schema we cannot handle
    (e.g. Docker schema 1).
    """
    pass


__all__ = [
    "OciError",
    "OciAuthError",
    "OciNotFound",
    "OciDigestMismatch",
    "OciUnsupportedMediaType",
]
