"""
Sandbox Module

Out-of-process execution of user scripts with message-passing isolation.

This module provides:
- Worker sessions with single settlement and hard-kill cancellation
- Wall-clock timeout enforcement
- A newline-delimited JSON protocol shared by the Node and Python workers
- Render-mode detection for DOM-oriented scripts
- Import restrictions and allowlisting for the Python worker

WARNING: This sandbox is NOT cryptographically secure. It provides best-effort
isolation for trusted-ish user code, not a security boundary.
"""

__version__ = "0.1.0"
