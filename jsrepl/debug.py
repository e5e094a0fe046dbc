"""
jsrepl.debug - Diagnostic output

Diagnostics go to stderr with a bracketed prefix, and optionally to a log
file. They are off unless enabled explicitly or through JSREPL_DEBUG.
"""

import os
import sys
from typing import Any, Optional

_enabled = bool(os.environ.get("JSREPL_DEBUG"))
_log_file: Any = None


def enable(log_path: Optional[str] = None) -> None:
    """Turn diagnostics on, optionally mirroring them to a file."""
    global _enabled, _log_file
    _enabled = True
    if log_path:
        if _log_file:
            _log_file.close()
        _log_file = open(log_path, "a", encoding="utf-8")


def disable() -> None:
    global _enabled, _log_file
    _enabled = False
    if _log_file:
        _log_file.close()
        _log_file = None


def is_enabled() -> bool:
    return _enabled


def log(message: str, prefix: str = "jsrepl") -> None:
    """Log a message for debugging."""
    if not _enabled:
        return
    if _log_file:
        _log_file.write(f"{message}\n")
        _log_file.flush()
    print(f"[{prefix}] {message}", file=sys.stderr)
    sys.stderr.flush()
