"""
OCI Registry protocol definition.

Defines the repo-aware interface for the registry operations cnb-sbom
needs: pull a manifest, stream blobs in both directions, and push a
manifest. All operations are scoped to a repository, which reflects how
the OCI Distribution API actually works.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, ContextManager, Iterable, Protocol, Sequence, runtime_checkable

from .oci_media_types import ACCEPTED_MANIFEST_TYPES


@dataclass(frozen=True)
class FetchedManifest:
    """
    A manifest as returned by the registry.

    Attributes:
        payload: Raw manifest bytes (digests are computed over these exactly)
        media_type: Content-Type reported by the registry
        digest: sha256 of payload
    """
    payload: bytes
    media_type: str
    digest: str


@runtime_checkable
class OciRegistry(Protocol):
    """Repo-aware OCI registry operations."""

    def get_manifest(self, repo: str, ref: str,
                     accept: Sequence[str] = ACCEPTED_MANIFEST_TYPES) -> FetchedManifest:
        """
        GET manifest content.

        Args:
            repo: Repository path (e.g., "library/alpine")
            ref: Tag or digest reference (e.g., "3.19", "sha256:abc...")
            accept: Media types to advertise in the Accept header

        Returns:
            FetchedManifest with raw bytes, media type and digest

        Raises:
            OciNotFound: If manifest doesn't exist
            OciAuthError: If authentication fails
            OciDigestMismatch: If ref is a digest and the payload hashes differently
            OciError: For other registry errors
        """
        ...

    def get_blob(self, repo: str, digest: str) -> bytes:
        """
        GET small blob content (image configs) by digest.

        Raises:
            OciNotFound: If blob doesn't exist
            OciDigestMismatch: If content doesn't hash to digest
            OciError: For other registry errors
        """
        ...

    def open_blob(self, repo: str, digest: str) -> ContextManager[BinaryIO]:
        """
        Open a blob for streaming reads.

        The returned context manager yields a readable file object and
        releases the underlying connection on exit. Content is not
        verified; callers hash what they read.

        Raises:
            OciNotFound: If blob doesn't exist
            OciAuthError: If authentication fails
            OciError: For other registry errors
        """
        ...

    def blob_exists(self, repo: str, digest: str) -> bool:
        """
        Check if blob exists in repository.

        Raises:
            OciAuthError: If authentication fails
            OciError: For network errors and unexpected status codes
        """
        ...

    def put_blob(self, repo: str, digest: str, chunks: Iterable[bytes]) -> None:
        """
        Upload a blob from an iterable of chunks without buffering it.

        Args:
            repo: Repository path
            digest: Expected content digest, sent to the registry on commit
            chunks: Blob content

        Raises:
            OciDigestMismatch: If the registry rejects the digest
            OciAuthError: If authentication fails
            OciError: For other registry errors
        """
        ...

    def put_manifest(self, repo: str, ref: str, media_type: str, payload: bytes) -> str:
        """
        PUT manifest with explicit media type.

        Args:
            repo: Repository path
            ref: Tag or digest to push to
            media_type: Manifest media type
            payload: Manifest bytes

        Returns:
            Digest of the pushed manifest

        Raises:
            OciDigestMismatch: If the registry reports a different digest
            OciAuthError: If authentication fails
            OciError: For other registry errors
        """
        ...


__all__ = ["OciRegistry", "FetchedManifest"]
