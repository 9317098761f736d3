"""
Error taxonomy for cnb-sbom.

Every failure surfaced by the attach and retrieve flows derives from
SbomError so the CLI can report it as a single diagnostic line. Registry
transport errors live in storage.oci_errors and derive from
RemoteAccessError.
"""
from __future__ import annotations


class SbomError(Exception):
    """Base class for all cnb-sbom errors."""
    pass


class ReferenceParseError(SbomError, ValueError):
    """Raised when an image reference string cannot be parsed."""
    pass


class RemoteAccessError(SbomError):
    """
    Raised when pulling from or pushing to a registry fails.

    Covers network errors, authentication failures and unexpected
    registry responses. See storage.oci_errors for the concrete subclasses.
    """
    pass


class LabelParseError(SbomError):
    """
    Raised when the app SBOM label cannot be resolved.

    The dedicated app label was empty and the legacy lifecycle metadata
    label is absent, empty, not JSON, or does not have the expected shape.
    A parse failure is never treated as "no SBOM".
    """
    pass


class DigestParseError(SbomError, ValueError):
    """Raised when a string is not a valid sha256 content digest."""
    pass


class LayerLookupError(SbomError):
    """Raised when a digest does not name a layer present in the image."""
    pass


class DecompressionError(SbomError):
    """Raised when a layer blob cannot be decompressed or read as a tar archive."""
    pass


class LocalIOError(SbomError):
    """Raised when opening, creating or writing a local file fails."""
    pass


class SizeMismatchError(SbomError):
    """
    Raised when a tar entry's copied byte count differs from its declared size.

    This is treated as archive corruption and aborts extraction immediately.
    """

    def __init__(self, message: str, path: str, expected: int, actual: int):
        super().__init__(message)
        self.path = path
        self.expected = expected
        self.actual = actual


class UnsafeEntryPath(SbomError, ValueError):
    """Raised when a tar entry flattens to an unusable output file name."""
    pass


class FlattenCollisionError(SbomError):
    """Raised when two tar entries of one extraction flatten to the same output name."""

    def __init__(self, message: str, output_name: str, first: str, second: str):
        super().__init__(message)
        self.output_name = output_name
        self.first = first
        self.second = second


class SbomRetrievalError(SbomError):
    """
    Wraps a failure while retrieving one SBOM role.

    The message carries the role context, e.g.
    "could not retrieve base SBOM: <cause>".
    """

    def __init__(self, role: str, cause: BaseException):
        super().__init__(f"could not retrieve {role} SBOM: {cause}")
        self.role = role
        self.cause = cause


__all__ = [
    "SbomError",
    "ReferenceParseError",
    "RemoteAccessError",
    "LabelParseError",
    "DigestParseError",
    "LayerLookupError",
    "DecompressionError",
    "LocalIOError",
    "SizeMismatchError",
    "UnsafeEntryPath",
    "FlattenCollisionError",
    "SbomRetrievalError",
]
