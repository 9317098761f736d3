"""
SBOM label resolution.

Images built with Cloud Native Buildpacks reference their SBOM layers from
image config labels. The label schema changed over the lifecycle's history:

- current: the app SBOM diffID sits in its own label, io.buildpacks.app.sbom
- legacy: the diffID is nested in the io.buildpacks.lifecycle.metadata JSON
  blob, under "sbom.sha" (newer lifecycles) or "bom.sha" (older ones)

The base-image SBOM has only ever used the dedicated io.buildpacks.base.sbom
label. resolve() keeps the two app schema generations explicit by returning
a tagged LabelResolution.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from .errors import LabelParseError

__all__ = [
    "SbomLabels",
    "CNB_LABELS",
    "LabelSource",
    "LabelResolution",
    "ResolvedLabels",
    "LifecycleMetadata",
    "resolve",
    "resolve_app",
    "resolve_base",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SbomLabels:
    """Label names and in-image directories of the CNB SBOM convention."""
    base: str = "io.buildpacks.base.sbom"
    app: str = "io.buildpacks.app.sbom"
    metadata: str = "io.buildpacks.lifecycle.metadata"
    base_dir: str = "/cnb/sbom"
    app_dir: str = "/layers/sbom"


CNB_LABELS = SbomLabels()


class LabelSource(str, Enum):
    """Where an app SBOM diffID was found."""
    DIRECT = "direct"
    LEGACY = "legacy"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class LabelResolution:
    """
    Tagged result of app SBOM label resolution.

    digest is "" only for UNRESOLVED; downstream extraction then fails with
    DigestParseError instead of silently skipping.
    """
    source: LabelSource
    digest: str = ""


@dataclass(frozen=True)
class ResolvedLabels:
    app: LabelResolution
    base: str

    @property
    def app_digest(self) -> str:
        return self.app.digest


def _lower_keys(value: Any) -> Any:
    # JSON null decodes as an empty object
    if value is None:
        return {}
    if isinstance(value, dict):
        return {str(k).lower(): v for k, v in value.items()}
    return value


class ShaField(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sha: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _case_insensitive(cls, data: Any) -> Any:
        return _lower_keys(data)


class LifecycleMetadata(BaseModel):
    """
    The parts of io.buildpacks.lifecycle.metadata that locate the app SBOM.

    Keys are matched case-insensitively ("SBOM" and "sbom" are the same
    field); every other field of the blob is ignored.
    """
    model_config = ConfigDict(extra="ignore")

    sbom: Optional[ShaField] = None
    bom: Optional[ShaField] = None

    @model_validator(mode="before")
    @classmethod
    def _case_insensitive(cls, data: Any) -> Any:
        return _lower_keys(data)

    @property
    def app_digest(self) -> str:
        """sbom.sha if non-empty, else bom.sha."""
        if self.sbom is not None and self.sbom.sha:
            return self.sbom.sha
        if self.bom is not None and self.bom.sha:
            return self.bom.sha
        return ""


def resolve_base(labels: Optional[Mapping[str, str]], table: SbomLabels = CNB_LABELS) -> str:
    """Return the base SBOM diffID label value, or "" if absent."""
    return (labels or {}).get(table.base, "")


def resolve_app(labels: Optional[Mapping[str, str]], table: SbomLabels = CNB_LABELS) -> LabelResolution:
    """
    Resolve the app SBOM diffID.

    Args:
        labels: Image config labels (None when the config has no labels)
        table: Label name table

    Returns:
        LabelResolution tagged DIRECT, LEGACY or UNRESOLVED

    Raises:
        LabelParseError: If the dedicated label is empty and the legacy
            metadata label is absent, empty or malformed
    """
    labels = labels or {}
    direct = labels.get(table.app, "")
    if direct:
        return LabelResolution(LabelSource.DIRECT, direct)

    raw = labels.get(table.metadata, "")
    if not raw:
        raise LabelParseError(f"label {table.app} is empty and label {table.metadata} is missing")
    try:
        metadata = LifecycleMetadata.model_validate_json(raw)
    except ValidationError as e:
        raise LabelParseError(f"invalid {table.metadata} label: {e.errors()[0]['msg']}") from e

    digest = metadata.app_digest
    if not digest:
        logger.debug(f"No app SBOM reference in {table.metadata}")
        return LabelResolution(LabelSource.UNRESOLVED)
    return LabelResolution(LabelSource.LEGACY, digest)


def resolve(labels: Optional[Mapping[str, str]], table: SbomLabels = CNB_LABELS) -> ResolvedLabels:
    """
    Resolve both SBOM layer diffIDs from image config labels.

    The dedicated app label wins over the legacy metadata blob.

    Raises:
        LabelParseError: See resolve_app()
    """
    app = resolve_app(labels, table)
    base = resolve_base(labels, table)
    logger.debug(f"Resolved SBOM labels: app={app.digest or '-'} ({app.source.value}), base={base or '-'}")
    return ResolvedLabels(app=app, base=base)
