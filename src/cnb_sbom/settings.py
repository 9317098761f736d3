"""
Settings and configuration for cnb-sbom.

Centralizes configuration values and provides validation with fail-fast
behavior. Loads settings from environment variables at command start.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .storage.oci_media_types import COMPRESSIONS
from .streams import DEFAULT_PIPE_CAPACITY

__all__ = ["Settings", "create_settings_from_env"]

_PLATFORM_RE = re.compile(r"^[a-z0-9]+/[a-z0-9_]+(?:/[a-z0-9]+)?$")


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for cnb-sbom.

    Registry Settings:
        registry_insecure: Use plain HTTP for every registry (localhost and
            *.local registries always use HTTP)
        registry_user: Username for registry authentication
        registry_pass: Password for registry authentication
        docker_config_dir: Directory holding Docker's config.json
        http_timeout_s: HTTP timeout in seconds (None = no timeout)
        platform: Platform picked from multi-platform indexes ("os/arch[/variant]")

    Layer Settings:
        layer_compression: Compression for attached layers (gzip, zstd, none)
        pipe_capacity: Buffer size in bytes between layer producer and consumer
    """
    registry_insecure: bool = False
    registry_user: Optional[str] = None
    registry_pass: Optional[str] = None
    docker_config_dir: Optional[str] = None
    http_timeout_s: Optional[float] = None
    platform: str = "linux/amd64"
    layer_compression: str = "gzip"
    pipe_capacity: int = DEFAULT_PIPE_CAPACITY

    def __post_init__(self):
        """Validate settings on construction."""
        if bool(self.registry_user) != bool(self.registry_pass):
            raise ValueError("registry_user and registry_pass must be set together")

        if self.http_timeout_s is not None and self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if not _PLATFORM_RE.match(self.platform):
            raise ValueError(f"Invalid platform format: {self.platform}. Expected os/arch[/variant]")

        if self.layer_compression not in COMPRESSIONS:
            raise ValueError(
                f"Invalid layer_compression: {self.layer_compression}. "
                f"Use one of: {', '.join(COMPRESSIONS)}"
            )

        if self.pipe_capacity <= 0:
            raise ValueError(f"pipe_capacity must be positive, got {self.pipe_capacity}")

    @property
    def docker_config_path(self) -> Path:
        """Path to Docker's config.json."""
        base = self.docker_config_dir or str(Path.home() / ".docker")
        return Path(base) / "config.json"


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - CNB_SBOM_INSECURE (default: false)
        - CNB_SBOM_USERNAME (optional)
        - CNB_SBOM_PASSWORD (optional)
        - DOCKER_CONFIG (default: ~/.docker)
        - CNB_SBOM_HTTP_TIMEOUT (default: unset, no timeout)
        - CNB_SBOM_PLATFORM (default: linux/amd64)
        - CNB_SBOM_LAYER_COMPRESSION (default: gzip)
        - CNB_SBOM_PIPE_CAPACITY (default: 1048576)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def str_to_bool(value: str) -> bool:
        return value.lower() in ('true', '1', 'yes', 'on')

    def get_float(key: str) -> Optional[float]:
        value = os.getenv(key)
        return float(value) if value else None

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    return Settings(
        registry_insecure=str_to_bool(os.getenv("CNB_SBOM_INSECURE", "false")),
        registry_user=os.getenv("CNB_SBOM_USERNAME") or None,
        registry_pass=os.getenv("CNB_SBOM_PASSWORD") or None,
        docker_config_dir=os.getenv("DOCKER_CONFIG") or None,
        http_timeout_s=get_float("CNB_SBOM_HTTP_TIMEOUT"),
        platform=os.getenv("CNB_SBOM_PLATFORM", "linux/amd64"),
        layer_compression=os.getenv("CNB_SBOM_LAYER_COMPRESSION", "gzip"),
        pipe_capacity=get_int("CNB_SBOM_PIPE_CAPACITY", DEFAULT_PIPE_CAPACITY),
    )
