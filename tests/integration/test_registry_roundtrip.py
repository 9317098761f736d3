"""
End-to-end attach-base and get against a real registry:2 container.

Requires Docker; skipped when testcontainers or Docker is unavailable.
"""
from __future__ import annotations

import json

import pytest

from cnb_sbom.image import RemoteImage
from cnb_sbom.labels import CNB_LABELS
from cnb_sbom.operations import Operations
from cnb_sbom.settings import Settings
from cnb_sbom.storage.oci_media_types import OCI_IMAGE_CONFIG, OCI_IMAGE_MANIFEST, OCI_LAYER_GZIP
from cnb_sbom.storage.reference import parse_reference
from cnb_sbom.storage.registry_http import RegistryHTTP
from tests.helpers.image_helpers import compress, sha256, tar_bytes

pytestmark = pytest.mark.integration

APP_SBOM = b'{"bomFormat":"CycloneDX","metadata":{"component":{"name":"app"}}}'


def _push_app_image(registry: RegistryHTTP, repo: str, tag: str) -> str:
    """Push a one-layer image whose app SBOM label points at that layer."""
    tar = tar_bytes([("layers/sbom/launch/sbom.cdx.json", APP_SBOM)])
    blob = compress(tar, "gzip")
    registry.put_blob(repo, sha256(blob), [blob])

    config = json.dumps({
        "architecture": "amd64",
        "os": "linux",
        "config": {"Labels": {CNB_LABELS.app: sha256(tar)}},
        "rootfs": {"type": "layers", "diff_ids": [sha256(tar)]},
    }).encode()
    registry.put_blob(repo, sha256(config), [config])

    manifest = json.dumps({
        "schemaVersion": 2,
        "mediaType": OCI_IMAGE_MANIFEST,
        "config": {"mediaType": OCI_IMAGE_CONFIG, "size": len(config), "digest": sha256(config)},
        "layers": [{"mediaType": OCI_LAYER_GZIP, "size": len(blob), "digest": sha256(blob)}],
    }).encode()
    return registry.put_manifest(repo, tag, OCI_IMAGE_MANIFEST, manifest)


class TestRegistryRoundTrip:

    def test_attach_then_get(self, oci_registry, tmp_path):
        settings = Settings(registry_insecure=True)
        reference = f"{oci_registry}/acme/app:v1"
        with RegistryHTTP(oci_registry, insecure=True) as registry:
            original = _push_app_image(registry, "acme/app", "v1")

        sbom = tmp_path / "base.cdx.json"
        sbom.write_bytes(b'{"bomFormat":"CycloneDX","metadata":{"component":{"name":"base"}}}')
        out = tmp_path / "out"
        out.mkdir()

        ops = Operations(settings=settings)
        attached = ops.attach_base(reference, sbom, "cdx.json")
        got = ops.get(reference, out)

        assert attached.old_digest == original
        assert attached.new_digest != original
        base_name = f"base.{original[7:15]}.cdx.json"
        assert [p.name for p in got.base] == [base_name]
        assert (out / base_name).read_bytes() == sbom.read_bytes()
        assert (out / "app.launch.sbom.cdx.json").read_bytes() == APP_SBOM

    def test_pushed_image_is_readable(self, oci_registry, tmp_path):
        with RegistryHTTP(oci_registry, insecure=True) as registry:
            _push_app_image(registry, "acme/readable", "v1")
            sbom = tmp_path / "sbom.json"
            sbom.write_text("{}")

            result = Operations(settings=Settings(registry_insecure=True)).attach_base(
                f"{oci_registry}/acme/readable:v1", sbom, "json", compression="zstd",
            )
            image = RemoteImage.load(parse_reference(f"{oci_registry}/acme/readable:v1"), registry)

        assert image.manifest_digest == result.new_digest
        assert image.labels[CNB_LABELS.base] == result.diff_id
        assert len(image.manifest.layers) == 2
