"""
Operations Facade - Application service layer.

Provides a clean interface between the CLI and the core modules
(layer_builder, labels, extract), centralizing command orchestration and
configuration policy while keeping CLI commands thin and testable.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

from ..digest import Digest
from ..errors import LabelParseError, SbomRetrievalError
from ..extract import extract_layer
from ..image import RemoteImage
from ..labels import CNB_LABELS, SbomLabels, resolve
from ..layer_builder import build_layer
from ..settings import Settings
from ..storage.oci_media_types import layer_media_type
from ..storage.oci_registry import OciRegistry
from ..storage.reference import ImageReference, parse_reference
from ..storage.registry_factory import make_registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachResult:
    """Outcome of attach-base."""
    old_digest: str
    new_digest: str
    layer_path: str
    diff_id: str


@dataclass(frozen=True)
class GetResult:
    """Files written by get, per role."""
    base: List[Path] = field(default_factory=list)
    app: List[Path] = field(default_factory=list)

    @property
    def files(self) -> List[Path]:
        return self.base + self.app


def _layer_file_name(image_digest: str, ext: str) -> str:
    """
    Name of the attached SBOM file: "<first 8 hex of image digest>.<ext>".

    One leading dot of ext is dropped, so "json" and ".json" are the same.
    """
    if ext.startswith("."):
        ext = ext[1:]
    if not ext:
        raise ValueError("SBOM file extension must not be empty")
    return f"{Digest.parse(image_digest).short}.{ext}"


class Operations:
    """
    Application service facade for CLI operations.

    Design Notes: Operations Facade

    - One method per CLI verb; each parses the reference, loads the image
      fresh and runs the core modules against it
    - Registry injection: a registry passed in is used for every
      reference (tests pass fakes); otherwise a RegistryHTTP client is
      created per command for the reference's host and closed afterwards
    - Error boundary: exceptions bubble up for central mapping in
      run_and_exit()
    """

    def __init__(self, settings: Optional[Settings] = None,
                 registry: Optional[OciRegistry] = None,
                 labels: SbomLabels = CNB_LABELS):
        """
        Initialize Operations facade.

        Args:
            settings: Optional settings (if None, loaded from environment)
            registry: OCI registry (if None, created per reference)
            labels: Label names and in-image SBOM directories
        """
        if settings is None:
            from ..settings import create_settings_from_env
            settings = create_settings_from_env()
        self.settings = settings
        self.registry = registry
        self.labels = labels

    @contextmanager
    def _registry_for(self, ref: ImageReference) -> Iterator[OciRegistry]:
        if self.registry is not None:
            yield self.registry
            return
        with make_registry(self.settings, ref) as registry:
            yield registry

    def attach_base(self, image: str, source: str | Path, ext: str, *,
                    compression: Optional[str] = None) -> AttachResult:
        """
        Attach a base-image SBOM file as a new layer and push the image.

        The file lands at /cnb/sbom/<first 8 hex of the image digest>.<ext>
        and the base SBOM label is set to the new layer's diffID.

        Args:
            image: Image reference
            source: Local SBOM file
            ext: Extension for the file name inside the image
            compression: Layer compression (defaults to settings)

        Returns:
            AttachResult with the digests before and after

        Raises:
            ValueError: If ext is empty or compression does not fit the image
            LocalIOError: If source cannot be read
            RemoteAccessError: If pulling or pushing fails
        """
        ref = parse_reference(image)
        compression = compression or self.settings.layer_compression

        with self._registry_for(ref) as registry:
            img = RemoteImage.load(ref, registry, platform=self.settings.platform)
            layer_path = f"{self.labels.base_dir}/{_layer_file_name(img.manifest_digest, ext)}"
            media_type = layer_media_type(img.manifest_media_type, compression)

            layer = build_layer(
                source, layer_path,
                compression=compression,
                media_type=media_type,
                pipe_capacity=self.settings.pipe_capacity,
            )
            # Digests are computed here, before anything is pushed
            updated = img.append_layer_with_label(layer, self.labels.base, layer.diff_id)
            new_digest = updated.push()

        logger.info(f"Attached {source} to {ref} as {layer_path} ({layer.diff_id})")
        return AttachResult(
            old_digest=img.manifest_digest,
            new_digest=new_digest,
            layer_path=layer_path,
            diff_id=layer.diff_id,
        )

    def get(self, image: str, dest: str | Path = ".") -> GetResult:
        """
        Extract the base and app SBOM layers of an image into dest.

        Base is extracted first; the first failure aborts the operation and
        is reported with its role.

        Args:
            image: Image reference
            dest: Existing output directory

        Returns:
            GetResult listing the files written per role

        Raises:
            SbomRetrievalError: If either role fails (cause attached)
            ReferenceParseError: If image cannot be parsed
            RemoteAccessError: If the image cannot be loaded
        """
        ref = parse_reference(image)
        with self._registry_for(ref) as registry:
            img = RemoteImage.load(ref, registry, platform=self.settings.platform)
            try:
                resolved = resolve(img.labels, self.labels)
            except LabelParseError as e:
                raise SbomRetrievalError("app", e) from e

            try:
                base = extract_layer(img, resolved.base, dest, self.labels.base_dir, "base")
            except Exception as e:
                raise SbomRetrievalError("base", e) from e
            try:
                app = extract_layer(img, resolved.app_digest, dest, self.labels.app_dir, "app")
            except Exception as e:
                raise SbomRetrievalError("app", e) from e

        return GetResult(base=base, app=app)


__all__ = ["Operations", "AttachResult", "GetResult"]
