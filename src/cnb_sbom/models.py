"""
Data models for OCI / Docker image manifests and config files.

These Pydantic models give typed, validated read access to what the
registry returns. Mutation (appending a layer, setting a label) is done on
the raw JSON so that fields these models do not know about survive the
round trip unchanged.
"""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Platform(BaseModel):
    """Platform of one manifest inside an image index."""
    model_config = ConfigDict(extra="allow")

    architecture: str = Field(..., description="CPU architecture (amd64, arm64, ...)")
    os: str = Field(..., description="Operating system (linux, windows, ...)")
    variant: Optional[str] = Field(default=None, description="CPU variant (v7, v8, ...)")

    def matches(self, wanted: str) -> bool:
        """Check against an "os/arch[/variant]" string."""
        parts = wanted.split("/")
        if len(parts) < 2:
            return False
        if parts[0] != self.os or parts[1] != self.architecture:
            return False
        return len(parts) < 3 or parts[2] == (self.variant or "")


class Descriptor(BaseModel):
    """Content descriptor: media type, size and digest of a blob or manifest."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    media_type: str = Field(..., alias="mediaType")
    size: int = Field(..., ge=0)
    digest: str
    platform: Optional[Platform] = None
    annotations: Optional[Dict[str, str]] = None


class ImageManifest(BaseModel):
    """Single-platform image manifest (OCI image manifest or Docker schema 2)."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    schema_version: int = Field(..., alias="schemaVersion")
    media_type: Optional[str] = Field(default=None, alias="mediaType")
    config: Descriptor
    layers: List[Descriptor] = Field(default_factory=list)


class ImageIndex(BaseModel):
    """Multi-platform image index (OCI index or Docker manifest list)."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    schema_version: int = Field(..., alias="schemaVersion")
    media_type: Optional[str] = Field(default=None, alias="mediaType")
    manifests: List[Descriptor] = Field(default_factory=list)

    def find(self, platform: str) -> Optional[Descriptor]:
        """Return the first manifest descriptor whose platform matches."""
        for descriptor in self.manifests:
            if descriptor.platform is not None and descriptor.platform.matches(platform):
                return descriptor
        return None


class RootFS(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "layers"
    diff_ids: List[str] = Field(default_factory=list)


class ContainerConfig(BaseModel):
    """The "config" section of an image config file; only labels matter here."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    labels: Optional[Dict[str, str]] = Field(default=None, alias="Labels")


class ConfigFile(BaseModel):
    """
    Image config file (application/vnd.oci.image.config.v1+json).

    Layer i of the manifest corresponds to rootfs.diff_ids[i]; the diffID is
    the sha256 of the layer's uncompressed tar stream.
    """
    model_config = ConfigDict(extra="allow")

    architecture: Optional[str] = None
    os: Optional[str] = None
    config: Optional[ContainerConfig] = None
    rootfs: RootFS = Field(default_factory=RootFS)

    @property
    def labels(self) -> Dict[str, str]:
        if self.config is None:
            return {}
        return dict(self.config.labels or {})


__all__ = [
    "Platform",
    "Descriptor",
    "ImageManifest",
    "ImageIndex",
    "RootFS",
    "ContainerConfig",
    "ConfigFile",
]
