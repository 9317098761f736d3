"""
Error mapping and CLI utilities.

Provides the CLI command wrapper that gives every Typer command the same
failure behavior: one "Error: <message>" line on stderr and exit status 1.
"""
from __future__ import annotations

import logging
from typing import Callable, TypeVar

import typer

T = TypeVar('T')

logger = logging.getLogger(__name__)

# Every failure exits 1; callers cannot tell failure kinds apart by status
EXIT_FAILURE = 1


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function; on any exception prints a single
    diagnostic line to stderr and exits. This centralizes error handling
    so CLI commands don't need individual try/except blocks.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With exit code 1 if function raises exception
    """
    try:
        return func()
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=EXIT_FAILURE) from e
