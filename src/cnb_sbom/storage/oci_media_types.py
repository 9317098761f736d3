"""
OCI and Docker media types.

Single source of truth for manifest, config and layer media types, and for
mapping a layer media type to its compression.
"""
from __future__ import annotations

# Manifest types
OCI_IMAGE_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_IMAGE_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"

# Config types
OCI_IMAGE_CONFIG = "application/vnd.oci.image.config.v1+json"
DOCKER_IMAGE_CONFIG = "application/vnd.docker.container.image.v1+json"

# Layer types
OCI_LAYER_TAR = "application/vnd.oci.image.layer.v1.tar"
OCI_LAYER_GZIP = "application/vnd.oci.image.layer.v1.tar+gzip"
OCI_LAYER_ZSTD = "application/vnd.oci.image.layer.v1.tar+zstd"
DOCKER_LAYER_GZIP = "application/vnd.docker.image.rootfs.diff.tar.gzip"
DOCKER_LAYER_TAR = "application/vnd.docker.image.rootfs.diff.tar"

IMAGE_MANIFEST_TYPES = (OCI_IMAGE_MANIFEST, DOCKER_MANIFEST_V2)
INDEX_TYPES = (OCI_IMAGE_INDEX, DOCKER_MANIFEST_LIST)

# Accept header for manifest GETs, in order of preference
ACCEPTED_MANIFEST_TYPES = [
    OCI_IMAGE_MANIFEST,
    DOCKER_MANIFEST_V2,
    OCI_IMAGE_INDEX,
    DOCKER_MANIFEST_LIST,
]

# Layer media type -> compression ("gzip", "zstd" or "none")
LAYER_COMPRESSION = {
    OCI_LAYER_TAR: "none",
    OCI_LAYER_GZIP: "gzip",
    OCI_LAYER_ZSTD: "zstd",
    DOCKER_LAYER_GZIP: "gzip",
    DOCKER_LAYER_TAR: "none",
}

COMPRESSIONS = ("gzip", "zstd", "none")


def layer_media_type(manifest_media_type: str | None, compression: str) -> str:
    """
    Pick the layer media type matching the manifest schema of an image.

    Args:
        manifest_media_type: Media type of the image manifest being extended
        compression: "gzip", "zstd" or "none"

    Returns:
        Layer media type string

    Raises:
        ValueError: If compression is unknown, or zstd is requested for a
            Docker schema 2 image (the Docker schema has no zstd layer type)
    """
    if compression not in COMPRESSIONS:
        raise ValueError(f"Unknown compression '{compression}'. Use one of: {', '.join(COMPRESSIONS)}")
    if manifest_media_type == DOCKER_MANIFEST_V2:
        if compression == "zstd":
            raise ValueError("zstd layers are not supported by Docker schema 2 images")
        return DOCKER_LAYER_GZIP if compression == "gzip" else DOCKER_LAYER_TAR
    return {"gzip": OCI_LAYER_GZIP, "zstd": OCI_LAYER_ZSTD, "none": OCI_LAYER_TAR}[compression]


__all__ = [
    "OCI_IMAGE_MANIFEST",
    "OCI_IMAGE_INDEX",
    "DOCKER_MANIFEST_V2",
    "DOCKER_MANIFEST_LIST",
    "OCI_IMAGE_CONFIG",
    "DOCKER_IMAGE_CONFIG",
    "OCI_LAYER_TAR",
    "OCI_LAYER_GZIP",
    "OCI_LAYER_ZSTD",
    "DOCKER_LAYER_GZIP",
    "DOCKER_LAYER_TAR",
    "IMAGE_MANIFEST_TYPES",
    "INDEX_TYPES",
    "ACCEPTED_MANIFEST_TYPES",
    "LAYER_COMPRESSION",
    "COMPRESSIONS",
    "layer_media_type",
]
