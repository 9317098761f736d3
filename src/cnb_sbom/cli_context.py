"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings and an
optional registry override, avoiding global state and enabling proper
dependency injection.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .operations import Operations
from .settings import Settings, create_settings_from_env
from .storage.oci_registry import OciRegistry


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Registry clients depend on the host of the image reference, so the
    context holds no client of its own unless one is injected; Operations
    creates one per command otherwise.
    """
    settings: Settings
    registry: Optional[OciRegistry] = None

    @classmethod
    def from_env(cls) -> CLIContext:
        """
        Create CLI context from environment variables.

        Returns:
            CLIContext with settings loaded from environment
        """
        settings = create_settings_from_env()
        return cls(settings=settings)

    def operations(self) -> Operations:
        return Operations(settings=self.settings, registry=self.registry)
