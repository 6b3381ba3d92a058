"""
Runner Module

Dispatch of run and test-run requests to the right execution engine.

This module provides:
- The Runner facade with run, run_tests and stop
- Language runners as a strategy table keyed by file extension
- The in-process JavaScript test harness
- Marker-block extraction and reconciliation of test results
- A Typer command line (polyglot-run)
"""

__version__ = "0.1.0"

from .facade import Runner

__all__ = ["Runner"]
