"""
Runner Core Module

Shared data model and configuration for the execution engine.

This module provides:
- Pydantic schemas for test cases, results and run requests
- YAML-backed engine configuration
- The static language table keyed by file extension
- Error taxonomy shared by every component
- Structural comparison of JSON-shaped values
"""

__version__ = "0.1.0"
