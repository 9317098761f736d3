"""
Remote image view.

RemoteImage holds one single-platform image as pulled from a registry: the
raw manifest and config bytes, typed views over both, and the manifest
digest. It answers layer lookups by diffID and produces modified copies
with an extra layer and label, which push() writes back (blobs first,
manifest last).
"""
from __future__ import annotations

import copy
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .digest import Digest, sha256_digest
from .errors import LayerLookupError
from .layer_builder import Layer
from .models import ConfigFile, Descriptor, ImageIndex, ImageManifest
from .storage.oci_errors import OciError, OciNotFound, OciUnsupportedMediaType
from .storage.oci_media_types import IMAGE_MANIFEST_TYPES, INDEX_TYPES
from .storage.oci_registry import OciRegistry
from .storage.reference import ImageReference

__all__ = ["RemoteImage"]

logger = logging.getLogger(__name__)

HISTORY_CREATED_BY = "cnb-sbom attach-base"


def _encode(document: Dict[str, Any]) -> bytes:
    return json.dumps(document, separators=(",", ":")).encode("utf-8")


class RemoteImage:
    """
    A single-platform image in a registry.

    Attributes:
        ref: Reference the image was loaded from
        registry: Registry the image lives in
        manifest: Typed manifest view
        config: Typed config file view
        manifest_digest: sha256 of the manifest bytes
        manifest_media_type: Manifest media type (OCI or Docker schema 2)
    """

    def __init__(self, ref: ImageReference, registry: OciRegistry, *,
                 manifest_payload: bytes, manifest_media_type: str,
                 config_payload: bytes, new_layers: Optional[List[Layer]] = None):
        self.ref = ref
        self.registry = registry
        self.manifest_payload = manifest_payload
        self.manifest_media_type = manifest_media_type
        self.config_payload = config_payload
        self.manifest_digest = sha256_digest(manifest_payload)
        self._new_layers: List[Layer] = list(new_layers or [])

        try:
            self.raw_manifest: Dict[str, Any] = json.loads(manifest_payload)
            self.manifest = ImageManifest.model_validate(self.raw_manifest)
        except (ValueError, ValidationError) as e:
            raise OciError(f"Invalid image manifest for {ref}: {e}") from e
        try:
            self.raw_config: Dict[str, Any] = json.loads(config_payload)
            self.config = ConfigFile.model_validate(self.raw_config)
        except (ValueError, ValidationError) as e:
            raise OciError(f"Invalid image config for {ref}: {e}") from e

    @classmethod
    def load(cls, ref: ImageReference, registry: OciRegistry, *,
             platform: str = "linux/amd64") -> RemoteImage:
        """
        Pull manifest and config of ref.

        Multi-platform indexes are resolved to the manifest matching
        platform.

        Raises:
            OciNotFound: If the image, or a manifest for platform, is missing
            OciUnsupportedMediaType: If the manifest schema is not supported
            RemoteAccessError: For any other registry failure
        """
        repo = ref.repository
        fetched = registry.get_manifest(repo, ref.ref)

        if fetched.media_type in INDEX_TYPES:
            try:
                index = ImageIndex.model_validate_json(fetched.payload)
            except ValidationError as e:
                raise OciError(f"Invalid image index for {ref}: {e}") from e
            descriptor = index.find(platform)
            if descriptor is None:
                raise OciNotFound(f"No manifest for platform {platform} in {ref}")
            logger.debug(f"Index {fetched.digest} resolved to {descriptor.digest} for {platform}")
            fetched = registry.get_manifest(repo, descriptor.digest, accept=IMAGE_MANIFEST_TYPES)

        if fetched.media_type not in IMAGE_MANIFEST_TYPES:
            raise OciUnsupportedMediaType(f"Unsupported manifest media type for {ref}: {fetched.media_type}")

        try:
            manifest = ImageManifest.model_validate_json(fetched.payload)
        except ValidationError as e:
            raise OciError(f"Invalid image manifest for {ref}: {e}") from e
        config_payload = registry.get_blob(repo, manifest.config.digest)

        logger.debug(f"Loaded {ref}: {fetched.digest}, {len(manifest.layers)} layers")
        return cls(ref, registry,
                   manifest_payload=fetched.payload,
                   manifest_media_type=fetched.media_type,
                   config_payload=config_payload)

    @property
    def labels(self) -> Dict[str, str]:
        """Config labels; empty when the config has none."""
        return self.config.labels

    def layer_by_diff_id(self, diff_id: Digest) -> Descriptor:
        """
        Find the manifest layer whose uncompressed digest is diff_id.

        Raises:
            LayerLookupError: If no layer has that diffID
        """
        wanted = str(diff_id)
        diff_ids = self.config.rootfs.diff_ids
        if wanted not in diff_ids:
            raise LayerLookupError(f"image {self.ref} has no layer with diffID {wanted}")
        index = diff_ids.index(wanted)
        if index >= len(self.manifest.layers):
            raise LayerLookupError(
                f"image {self.ref} lists diffID {wanted} at position {index} "
                f"but has only {len(self.manifest.layers)} layers"
            )
        return self.manifest.layers[index]

    def append_layer_with_label(self, layer: Layer, label: str, value: str) -> RemoteImage:
        """
        Return a copy of this image with layer appended and label set.

        The layer's digests are computed here, before anything is pushed.
        Config fields the typed models do not know about are preserved.
        """
        digests = layer.compute_digests()

        raw_config = copy.deepcopy(self.raw_config)
        rootfs = raw_config.setdefault("rootfs", {"type": "layers"})
        rootfs.setdefault("diff_ids", []).append(digests.diff_id)
        container_config = raw_config.get("config") or {}
        labels = container_config.get("Labels") or {}
        labels[label] = value
        container_config["Labels"] = labels
        raw_config["config"] = container_config
        # History entries must stay in step with non-empty layers
        if raw_config.get("history"):
            raw_config["history"].append({"created_by": HISTORY_CREATED_BY})
        config_payload = _encode(raw_config)

        raw_manifest = copy.deepcopy(self.raw_manifest)
        raw_manifest["config"]["digest"] = sha256_digest(config_payload)
        raw_manifest["config"]["size"] = len(config_payload)
        raw_manifest.setdefault("layers", []).append({
            "mediaType": layer.media_type,
            "size": digests.size,
            "digest": digests.digest,
        })

        return RemoteImage(
            self.ref, self.registry,
            manifest_payload=_encode(raw_manifest),
            manifest_media_type=self.manifest_media_type,
            config_payload=config_payload,
            new_layers=self._new_layers + [layer],
        )

    def push(self) -> str:
        """
        Write this image to its reference.

        New layer blobs and the config are uploaded before the manifest so a
        failure leaves the reference untouched. Images loaded by digest are
        pushed by their new digest; tagged images move the tag.

        Returns:
            Digest of the pushed manifest
        """
        repo = self.ref.repository
        for layer in self._new_layers:
            if self.registry.blob_exists(repo, layer.digest):
                logger.debug(f"Layer {layer.digest} already in {repo}")
                continue
            self.registry.put_blob(repo, layer.digest, layer.compressed_chunks())

        config_digest = self.manifest.config.digest
        if not self.registry.blob_exists(repo, config_digest):
            self.registry.put_blob(repo, config_digest, [self.config_payload])

        target = self.manifest_digest if self.ref.digest else self.ref.ref
        return self.registry.put_manifest(repo, target, self.manifest_media_type, self.manifest_payload)
