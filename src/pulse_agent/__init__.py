"""
pulse-agent — package root.

Purpose
- Turn editor/IDE activity into heartbeats and deliver them to the remote
  ingestion API, falling back to a local offline queue.

Import boundary
- No side effects at import time (no config loading, no logging init).
"""

__version__ = "0.4.0"

__all__ = ["__version__"]
