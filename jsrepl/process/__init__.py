"""
jsrepl.process - The REPL process and synchronous exchanges with it

Modules:
- channel.py: Pseudo-terminal transport (write characters, read characters)
- cache.py: Per-session completion cache
- sync.py: Send text and block until the reply is complete
- session.py: Sessions, executable resolution and the session registry
"""

from jsrepl.process.cache import CompletionCache
from jsrepl.process.channel import (
    CTRL_A,
    CTRL_C,
    CTRL_D,
    CTRL_K,
    LINE_CLEAR,
    TAB,
    ProcessChannel,
)
from jsrepl.process.session import (
    REGISTRY,
    Executable,
    LiteralExecutable,
    ResolvedExecutable,
    Session,
    SessionRegistry,
    build_startup_script,
    default_repl_mode,
    nvm_resolver,
)
from jsrepl.process.sync import (
    Exchange,
    OutputSynchronizer,
    clean_output,
    frame_submission,
    prompt_pattern,
    strip_ansi,
)

__all__ = [
    # Channel
    "ProcessChannel",
    "CTRL_A",
    "CTRL_C",
    "CTRL_D",
    "CTRL_K",
    "LINE_CLEAR",
    "TAB",
    # Cache
    "CompletionCache",
    # Session
    "Session",
    "SessionRegistry",
    "REGISTRY",
    "Executable",
    "LiteralExecutable",
    "ResolvedExecutable",
    "nvm_resolver",
    "build_startup_script",
    "default_repl_mode",
    # Sync
    "Exchange",
    "OutputSynchronizer",
    "clean_output",
    "frame_submission",
    "prompt_pattern",
    "strip_ansi",
]
