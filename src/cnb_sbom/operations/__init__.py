"""
Operations package - Application service layer between CLI and core.

This package provides the Operations facade that orchestrates CLI commands,
centralizes error mapping, and handles output formatting while keeping
CLI commands thin and testable.
"""
from .facade import AttachResult, GetResult, Operations
from .mappers import run_and_exit

__all__ = ["AttachResult", "GetResult", "Operations", "run_and_exit"]
