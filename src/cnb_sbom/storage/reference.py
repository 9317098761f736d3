"""
Image reference parsing.

Parses "[registry/]repository[:tag][@digest]" strings with Docker Hub
defaults, the same weak validation `docker pull` applies.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from ..digest import Digest
from ..errors import DigestParseError, ReferenceParseError

__all__ = ["ImageReference", "parse_reference", "DEFAULT_REGISTRY", "DEFAULT_TAG"]

DEFAULT_REGISTRY = "docker.io"
DEFAULT_TAG = "latest"
DOCKER_HUB_API_HOST = "registry-1.docker.io"

_REPO_COMPONENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")


@dataclass(frozen=True)
class ImageReference:
    """
    Parsed image reference.

    Attributes:
        registry: Registry host as written by the user ("docker.io" by default)
        repository: Repository path ("library/alpine", "myorg/app")
        tag: Tag, or None when only a digest was given
        digest: Manifest digest ("sha256:..."), or None
        original: Original reference string for error messages
    """
    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None
    original: str = ""

    @property
    def ref(self) -> str:
        """Manifest reference to request: the digest if pinned, else the tag."""
        return self.digest or self.tag or DEFAULT_TAG

    @property
    def api_host(self) -> str:
        """Host serving the Registry v2 API."""
        if self.registry == DEFAULT_REGISTRY:
            return DOCKER_HUB_API_HOST
        return self.registry

    def is_local(self) -> bool:
        """Registries that default to plain HTTP."""
        host = self.registry.split(":", 1)[0]
        return host in ("localhost", "127.0.0.1") or host.endswith(".local")

    def __str__(self) -> str:
        name = f"{self.registry}/{self.repository}"
        if self.tag:
            name = f"{name}:{self.tag}"
        if self.digest:
            name = f"{name}@{self.digest}"
        return name


def parse_reference(value: str) -> ImageReference:
    """
    Parse an image reference string.

    Args:
        value: Reference such as "alpine", "ghcr.io/org/app:v1",
            "localhost:5000/app@sha256:..."

    Returns:
        ImageReference with defaults applied

    Raises:
        ReferenceParseError: If the reference is empty or malformed

    Examples:
        >>> parse_reference("alpine")
        ImageReference(registry='docker.io', repository='library/alpine', tag='latest', ...)

        >>> parse_reference("localhost:5000/app:v1").api_host
        'localhost:5000'
    """
    original = value
    value = value.strip()
    if not value:
        raise ReferenceParseError("could not parse reference: empty string")

    digest = None
    if "@" in value:
        value, digest = value.split("@", 1)
        try:
            Digest.parse(digest)
        except DigestParseError as e:
            raise ReferenceParseError(f"could not parse reference: {original}: {e}") from e

    registry = DEFAULT_REGISTRY
    remainder = value
    first, sep, rest = value.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        registry = first
        remainder = rest
    if registry == "index.docker.io":
        registry = DEFAULT_REGISTRY

    tag = None
    last_slash = remainder.rfind("/")
    last_colon = remainder.rfind(":")
    if last_colon > last_slash:
        remainder, tag = remainder[:last_colon], remainder[last_colon + 1:]
        if not _TAG_RE.match(tag):
            raise ReferenceParseError(f"could not parse reference: {original}: invalid tag {tag!r}")

    if not remainder:
        raise ReferenceParseError(f"could not parse reference: {original}: missing repository")
    for component in remainder.split("/"):
        if not _REPO_COMPONENT_RE.match(component):
            raise ReferenceParseError(
                f"could not parse reference: {original}: invalid repository component {component!r}"
            )

    if registry == DEFAULT_REGISTRY and "/" not in remainder:
        remainder = f"library/{remainder}"

    if tag is None and digest is None:
        tag = DEFAULT_TAG

    return ImageReference(
        registry=registry,
        repository=remainder,
        tag=tag,
        digest=digest,
        original=original,
    )
