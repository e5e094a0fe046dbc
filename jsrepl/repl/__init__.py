"""
jsrepl.repl - REPL frontends and nREPL Server

This package provides the editor-facing operations on a JavaScript REPL:

Modules:
- completion.py: Completion probes through the REPL's own tab completion
- backend.py: Operation surface (send, complete, interrupt) with terminal frontends
- nrepl.py: Network REPL server for editor integration
"""

from jsrepl.repl.backend import (
    EvalResult,
    NReplProtocol,
    ReplBackend,
    ReplFrontend,
    ResultType,
    SimpleRepl,
    TerminalRepl,
    create_repl,
)
from jsrepl.repl.completion import (
    CompletionContext,
    CompletionEngine,
    completion_token,
    parse_completion_reply,
)
from jsrepl.repl.nrepl import (
    NReplServer,
    SimpleNReplClient,
)

__all__ = [
    # Backend
    "ReplBackend",
    "ReplFrontend",
    "TerminalRepl",
    "SimpleRepl",
    "NReplProtocol",
    "EvalResult",
    "ResultType",
    "create_repl",
    # Completion
    "CompletionEngine",
    "CompletionContext",
    "completion_token",
    "parse_completion_reply",
    # nREPL
    "NReplServer",
    "SimpleNReplClient",
]
