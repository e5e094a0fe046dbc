"""
jsrepl - Drive an interactive JavaScript REPL from editors and scripts

Packages:
- process: The REPL process, sessions and synchronous exchanges
- source: Expression boundaries and import/export rewriting (no process needed)
- repl: Completion, the editor operation surface and the nREPL server
"""

__version__ = "0.1.0"

from jsrepl.config import ReplConfig, load_config
from jsrepl.errors import (
    ExchangeInProgress,
    ExecutableNotFound,
    JsReplError,
    NoExpressionFound,
)

__all__ = [
    "__version__",
    # Config
    "ReplConfig",
    "load_config",
    # Errors
    "JsReplError",
    "NoExpressionFound",
    "ExecutableNotFound",
    "ExchangeInProgress",
]
