"""
CLI smoke tests against an in-memory registry.

Tests command wiring and output formats without a real registry:
CLIContext.from_env is patched to hand the commands a FakeOciRegistry.
"""
from __future__ import annotations

import pytest
from typer.testing import CliRunner

from cnb_sbom.cli import app
from cnb_sbom.cli_context import CLIContext
from cnb_sbom.labels import CNB_LABELS
from cnb_sbom.settings import Settings
from tests.helpers.image_helpers import seed_image, sha256, tar_bytes


@pytest.fixture
def cli_registry(monkeypatch, registry):
    """Route every CLI command to the fake registry."""
    monkeypatch.setattr(
        "cnb_sbom.cli.CLIContext.from_env",
        lambda: CLIContext(settings=Settings(), registry=registry),
    )
    return registry


class TestCLISmokeTests:
    """Smoke tests for CLI commands with a fake registry."""

    def setup_method(self):
        """Set up test environment."""
        self.runner = CliRunner()

    def test_help_lists_commands(self):
        result = self.runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        assert "attach-base" in result.output
        assert "get" in result.output

    def test_attach_base_prints_digests(self, cli_registry, tmp_path):
        seeded = seed_image(cli_registry)
        sbom = tmp_path / "sbom.json"
        sbom.write_text('{"bomFormat": "CycloneDX"}')

        result = self.runner.invoke(app, ["attach-base", seeded.reference, str(sbom), "cdx.json"])

        assert result.exit_code == 0, result.output
        new_digest = cli_registry.tag_digest("acme/app", "latest")
        assert f"Old digest: {seeded.manifest_digest}" in result.output
        assert f"New digest: {new_digest}" in result.output

    def test_attach_base_with_compression(self, cli_registry, tmp_path):
        seeded = seed_image(cli_registry)
        sbom = tmp_path / "sbom.json"
        sbom.write_text("{}")

        result = self.runner.invoke(app, [
            "attach-base", seeded.reference, str(sbom), "json", "--compression", "none",
        ])

        assert result.exit_code == 0, result.output

    def test_get_lists_written_files(self, cli_registry, tmp_path):
        base_layer = tar_bytes([("cnb/sbom/aaaa1111.cdx.json", b"base")])
        app_layer = tar_bytes([("layers/sbom/launch/sbom.cdx.json", b"app")])
        seeded = seed_image(cli_registry, layers=[base_layer, app_layer], labels={
            CNB_LABELS.base: sha256(base_layer),
            CNB_LABELS.app: sha256(app_layer),
        })

        result = self.runner.invoke(app, ["get", seeded.reference, "--output-dir", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "base.aaaa1111.cdx.json" in result.output
        assert "app.launch.sbom.cdx.json" in result.output
        assert (tmp_path / "app.launch.sbom.cdx.json").read_bytes() == b"app"

    def test_verbose_flag_accepted(self, cli_registry, tmp_path):
        seeded = seed_image(cli_registry)
        sbom = tmp_path / "sbom.json"
        sbom.write_text("{}")

        result = self.runner.invoke(app, ["--verbose", "attach-base", seeded.reference, str(sbom), "json"])

        assert result.exit_code == 0, result.output


class TestCLIErrors:
    """Failures print one "Error:" line and exit 1."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_invalid_reference(self, cli_registry, tmp_path):
        result = self.runner.invoke(app, ["get", "Not A Reference!", "-o", str(tmp_path)])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_missing_image(self, cli_registry, tmp_path):
        result = self.runner.invoke(app, ["get", "registry.test/acme/none:latest", "-o", str(tmp_path)])

        assert result.exit_code == 1
        assert "Error: Not found" in result.output

    def test_missing_base_label(self, cli_registry, tmp_path):
        seeded = seed_image(cli_registry, labels={CNB_LABELS.app: sha256(b"x")})

        result = self.runner.invoke(app, ["get", seeded.reference, "-o", str(tmp_path)])

        assert result.exit_code == 1
        assert "Error: could not retrieve base SBOM: cannot parse hash" in result.output

    def test_missing_source_file(self, cli_registry, tmp_path):
        seeded = seed_image(cli_registry)

        result = self.runner.invoke(app, ["attach-base", seeded.reference, str(tmp_path / "nope"), "json"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert cli_registry.pushed_manifests == []

    def test_missing_arguments(self):
        result = self.runner.invoke(app, ["attach-base", "registry.test/acme/app:latest"])

        assert result.exit_code == 2
