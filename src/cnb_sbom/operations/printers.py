"""
Human-readable output formatting.

Centralizes all CLI output so commands stay thin.
"""
from __future__ import annotations

import typer

from .facade import AttachResult, GetResult


def print_attach_summary(result: AttachResult) -> None:
    """Print old and new image digests after attach-base."""
    typer.echo(f"Old digest: {result.old_digest}")
    typer.echo(f"New digest: {result.new_digest}")


def print_get_summary(result: GetResult) -> None:
    """Print each file written by get, base first."""
    for path in result.files:
        typer.echo(str(path))
