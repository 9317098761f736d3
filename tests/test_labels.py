"""
Tests for SBOM label resolution.

Covers the dedicated app label, both generations of the legacy lifecycle
metadata blob, and the failure modes that must never look like "no SBOM".
"""
from __future__ import annotations

import dataclasses
import json

import pytest

from cnb_sbom.errors import LabelParseError
from cnb_sbom.labels import (
    CNB_LABELS,
    LabelSource,
    LifecycleMetadata,
    resolve,
    resolve_app,
    resolve_base,
)

APP = "io.buildpacks.app.sbom"
BASE = "io.buildpacks.base.sbom"
METADATA = "io.buildpacks.lifecycle.metadata"


def _metadata(document) -> str:
    return json.dumps(document)


class TestLabelTable:

    def test_names(self):
        assert CNB_LABELS.app == APP
        assert CNB_LABELS.base == BASE
        assert CNB_LABELS.metadata == METADATA
        assert CNB_LABELS.base_dir == "/cnb/sbom"
        assert CNB_LABELS.app_dir == "/layers/sbom"

    def test_table_is_immutable(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            CNB_LABELS.base = "something.else"


class TestResolveApp:

    def test_dedicated_label(self):
        resolution = resolve_app({APP: "sha256:111"})
        assert resolution.source is LabelSource.DIRECT
        assert resolution.digest == "sha256:111"

    def test_dedicated_label_wins_over_legacy(self):
        labels = {
            APP: "sha256:111",
            METADATA: _metadata({"sbom": {"sha": "sha256:222"}}),
        }
        resolution = resolve_app(labels)
        assert resolution.source is LabelSource.DIRECT
        assert resolution.digest == "sha256:111"

    def test_legacy_bom_fallback(self):
        """Empty SBOM.SHA falls through to BOM.SHA."""
        labels = {METADATA: _metadata({"SBOM": {"SHA": ""}, "BOM": {"SHA": "sha256:abc"}})}
        resolution = resolve_app(labels)
        assert resolution.source is LabelSource.LEGACY
        assert resolution.digest == "sha256:abc"

    def test_legacy_sbom_preferred_over_bom(self):
        labels = {METADATA: _metadata({"sbom": {"sha": "sha256:new"}, "bom": {"sha": "sha256:old"}})}
        assert resolve_app(labels).digest == "sha256:new"

    def test_empty_dedicated_label_uses_legacy(self):
        labels = {APP: "", METADATA: _metadata({"bom": {"sha": "sha256:abc"}})}
        assert resolve_app(labels).source is LabelSource.LEGACY

    def test_legacy_ignores_unrelated_fields(self):
        document = {
            "app": [{"sha": "sha256:layer"}],
            "buildpacks": [{"key": "paketo-buildpacks/node-engine", "version": "1.0.0"}],
            "runImage": {"topLayer": "sha256:top", "reference": "index.docker.io/x"},
            "bom": {"sha": "sha256:abc"},
        }
        assert resolve_app({METADATA: _metadata(document)}).digest == "sha256:abc"

    @pytest.mark.parametrize("document", [
        {},
        {"sbom": {"sha": ""}, "bom": {"sha": ""}},
        {"sbom": {}},
        {"sbom": None, "bom": None},
        {"sbom": {"sha": None}, "bom": {"sha": None}},
        None,
    ])
    def test_legacy_without_reference_is_unresolved(self, document):
        resolution = resolve_app({METADATA: _metadata(document)})
        assert resolution.source is LabelSource.UNRESOLVED
        assert resolution.digest == ""

    def test_null_sbom_sha_falls_back_to_bom(self):
        document = {"sbom": {"sha": None}, "bom": {"sha": "sha256:abc"}}
        resolution = resolve_app({METADATA: _metadata(document)})
        assert resolution.source is LabelSource.LEGACY
        assert resolution.digest == "sha256:abc"

    @pytest.mark.parametrize("labels", [None, {}, {APP: ""}, {METADATA: ""}])
    def test_missing_legacy_label_raises(self, labels):
        with pytest.raises(LabelParseError, match="is missing"):
            resolve_app(labels)

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        '{"sbom": "sha256:abc"}',
        '{"sbom": {"sha": 42}}',
    ])
    def test_malformed_legacy_label_raises(self, raw):
        with pytest.raises(LabelParseError, match=f"invalid {METADATA} label"):
            resolve_app({METADATA: raw})


class TestResolveBase:

    def test_present(self):
        assert resolve_base({BASE: "sha256:base"}) == "sha256:base"

    def test_absent_is_empty(self):
        assert resolve_base({}) == ""
        assert resolve_base(None) == ""


class TestResolve:

    def test_both_roles(self):
        resolved = resolve({APP: "sha256:app", BASE: "sha256:base"})
        assert resolved.app_digest == "sha256:app"
        assert resolved.base == "sha256:base"

    def test_base_missing_is_not_an_error_here(self):
        """An empty base label is left for extraction to reject."""
        resolved = resolve({APP: "sha256:app"})
        assert resolved.base == ""


def test_lifecycle_metadata_is_case_insensitive():
    metadata = LifecycleMetadata.model_validate_json('{"Sbom": {"Sha": "sha256:abc"}}')
    assert metadata.app_digest == "sha256:abc"
