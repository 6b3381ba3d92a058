"""
Remote Module

Delegation of compiled and native languages to an external execution service.

This module provides:
- A single-round-trip client for the execution service (no retries)
- Pydantic validation of the service response
- Conversion of every transport or protocol failure into an ExecutionResult
"""

__version__ = "0.1.0"

from .client import RemoteDelegate, execute_remote

__all__ = ["RemoteDelegate", "execute_remote"]
