"""
cnb-sbom CLI

Implements 2 CLI verbs with Operations facade integration:
- attach-base: Attach a base-image SBOM file to an image and push it
- get: Extract the base and app SBOMs of an image into a directory
"""
from __future__ import annotations

import logging
from typing import Optional

import typer

from .cli_context import CLIContext
from .operations import run_and_exit
from .operations.printers import print_attach_summary, print_get_summary

app = typer.Typer(name="cnb-sbom", help="Attach and retrieve Cloud Native Buildpacks SBOM layers",
                  no_args_is_help=True)

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


@app.callback()
def _configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
) -> None:
    """Attach and retrieve Cloud Native Buildpacks SBOM layers."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)


@app.command("attach-base")
def attach_base(
    image: str = typer.Argument(..., help="Image reference to modify"),
    source: str = typer.Argument(..., help="Local SBOM file to attach"),
    ext: str = typer.Argument(..., help="File extension inside the image (e.g. cdx.json)"),
    compression: Optional[str] = typer.Option(
        None, "--compression", help="Layer compression: gzip, zstd or none (default from CNB_SBOM_LAYER_COMPRESSION)"
    ),
) -> None:
    """Attach a base-image SBOM as a new layer and push the image."""

    def _attach() -> None:
        context = CLIContext.from_env()
        result = context.operations().attach_base(image, source, ext, compression=compression)
        print_attach_summary(result)

    run_and_exit(_attach)


@app.command()
def get(
    image: str = typer.Argument(..., help="Image reference to read"),
    output_dir: str = typer.Option(".", "--output-dir", "-o", help="Existing directory receiving the SBOM files"),
) -> None:
    """Extract base and app SBOM files from an image."""

    def _get() -> None:
        context = CLIContext.from_env()
        result = context.operations().get(image, output_dir)
        print_get_summary(result)

    run_and_exit(_get)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
