"""
Image helpers for tests.

Builds layer tarballs and seeds complete single-platform images (and
multi-platform indexes) into a FakeOciRegistry.
"""
from __future__ import annotations

import gzip
import hashlib
import io
import json
import tarfile
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import zstandard as zstd

from cnb_sbom.storage.oci_media_types import (
    DOCKER_IMAGE_CONFIG,
    DOCKER_MANIFEST_V2,
    OCI_IMAGE_CONFIG,
    OCI_IMAGE_INDEX,
    OCI_IMAGE_MANIFEST,
    layer_media_type,
)

TEST_REGISTRY = "registry.test"


def sha256(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def tar_bytes(files: Sequence[Tuple[str, bytes]], *,
              dirs: Sequence[str] = (),
              symlinks: Sequence[Tuple[str, str]] = ()) -> bytes:
    """
    Build an uncompressed tar archive.

    Args:
        files: (member name, content) pairs, written in order
        dirs: Directory members written before the files
        symlinks: (member name, target) pairs written after the files
    """
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=tarfile.USTAR_FORMAT) as tar:
        for name in dirs:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)
        for name, data in files:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
        for name, target in symlinks:
            info = tarfile.TarInfo(name)
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tar.addfile(info)
    return buf.getvalue()


def truncated_tar(name: str, data: bytes, keep: int) -> bytes:
    """A tar whose only entry declares len(data) bytes but holds only `keep` of them."""
    full = tar_bytes([(name, data)])
    # One 512-byte header precedes the data
    return full[:512 + keep]


def compress(data: bytes, compression: str) -> bytes:
    if compression == "gzip":
        return gzip.compress(data, mtime=0)
    if compression == "zstd":
        return zstd.ZstdCompressor().compress(data)
    if compression == "none":
        return data
    raise ValueError(f"unknown compression {compression}")


@dataclass
class SeededImage:
    """What seed_image() stored."""
    reference: str
    repo: str
    tag: str
    manifest_digest: str
    diff_ids: List[str] = field(default_factory=list)
    layer_digests: List[str] = field(default_factory=list)
    config: Dict = field(default_factory=dict)


def seed_image(registry, repo: str = "acme/app", tag: str = "latest", *,
               layers: Sequence[bytes] = (),
               labels: Optional[Dict[str, str]] = None,
               compression: str = "gzip",
               manifest_media_type: str = OCI_IMAGE_MANIFEST,
               history: bool = False) -> SeededImage:
    """
    Seed a single-platform image into registry.

    Args:
        registry: FakeOciRegistry
        repo: Repository path
        tag: Tag to apply ("" leaves the manifest untagged)
        layers: Uncompressed layer tarballs
        labels: Config labels (None omits the Labels field)
        compression: How layer blobs are stored
        manifest_media_type: OCI or Docker schema 2 manifest
        history: Add one history entry per layer
    """
    layer_type = layer_media_type(manifest_media_type, compression)
    descriptors = []
    diff_ids = []
    layer_digests = []
    for tar in layers:
        blob = compress(tar, compression)
        digest = registry.add_blob(repo, blob)
        descriptors.append({"mediaType": layer_type, "size": len(blob), "digest": digest})
        diff_ids.append(sha256(tar))
        layer_digests.append(digest)

    container_config: Dict = {"Env": ["PATH=/usr/bin"]}
    if labels is not None:
        container_config["Labels"] = dict(labels)
    config = {
        "architecture": "amd64",
        "os": "linux",
        "config": container_config,
        "rootfs": {"type": "layers", "diff_ids": diff_ids},
    }
    if history:
        config["history"] = [{"created_by": f"layer {i}"} for i in range(len(layers))]
    config_bytes = json.dumps(config).encode()
    config_digest = registry.add_blob(repo, config_bytes)

    config_type = DOCKER_IMAGE_CONFIG if manifest_media_type == DOCKER_MANIFEST_V2 else OCI_IMAGE_CONFIG
    manifest = {
        "schemaVersion": 2,
        "mediaType": manifest_media_type,
        "config": {"mediaType": config_type, "size": len(config_bytes), "digest": config_digest},
        "layers": descriptors,
    }
    payload = json.dumps(manifest).encode()
    manifest_digest = registry.add_manifest(repo, manifest_media_type, payload, tag or None)

    reference = f"{TEST_REGISTRY}/{repo}:{tag}" if tag else f"{TEST_REGISTRY}/{repo}@{manifest_digest}"
    return SeededImage(
        reference=reference,
        repo=repo,
        tag=tag,
        manifest_digest=manifest_digest,
        diff_ids=diff_ids,
        layer_digests=layer_digests,
        config=config,
    )


def seed_index(registry, repo: str, tag: str, platforms: Dict[str, SeededImage]) -> str:
    """
    Tag an OCI index over already-seeded images.

    Args:
        platforms: "os/arch" -> image seeded untagged in the same repo

    Returns:
        Index digest
    """
    manifests = []
    for platform, image in platforms.items():
        os_name, arch = platform.split("/", 1)
        media_type, payload = registry._manifests[repo][image.manifest_digest]
        manifests.append({
            "mediaType": media_type,
            "size": len(payload),
            "digest": image.manifest_digest,
            "platform": {"os": os_name, "architecture": arch},
        })
    index = {"schemaVersion": 2, "mediaType": OCI_IMAGE_INDEX, "manifests": manifests}
    return registry.add_manifest(repo, OCI_IMAGE_INDEX, json.dumps(index).encode(), tag)
