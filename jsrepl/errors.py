"""
jsrepl.errors - Exception types

Only failures the caller can act on are raised. Errors printed by the
JavaScript process itself are never raised; they come back verbatim in
the captured output.
"""

from typing import Optional


class JsReplError(Exception):
    """Base class for jsrepl errors."""


class NoExpressionFound(JsReplError):
    """The boundary scanner ran off the buffer without finding an expression."""

    def __init__(self, text: str, point: int, message: Optional[str] = None):
        super().__init__(message or f"no expression ends at offset {point}")
        self.text = text
        self.point = point


class ExecutableNotFound(JsReplError):
    """The REPL executable could not be resolved at session start."""


class ExchangeInProgress(JsReplError):
    """A second exchange was started while one is open on the same session."""

    def __init__(self, session_name: str):
        super().__init__(f"session {session_name!r} already has an open exchange")
        self.session_name = session_name
