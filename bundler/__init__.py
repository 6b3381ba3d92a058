"""
Bundler Module

Turns a multi-file in-memory project into one script for the sandbox.

This module provides:
- Relative import resolution against the virtual file map with extension fallbacks
- ESM to CommonJS rewriting into a function-per-module registry
- Optional esbuild transpiling of TypeScript and JSX sources
- CDN fetching of bare imports, cached for a single bundling pass
"""

__version__ = "0.1.0"

from .bundle import Bundler, bundle
from .fetch import FetchedModule, ModuleFetcher

__all__ = ["Bundler", "FetchedModule", "ModuleFetcher", "bundle"]
