"""
jsrepl.repl.completion - Completions from the REPL's own tab completion

The REPL has no programmatic completion API, only the interactive one a
person uses: type a prefix, press Tab twice. The engine does exactly that
through the synchronizer, scrapes the reply, then erases the probe text
from the REPL's input line.

Completions inside a module path string (``require('fs/p``) reuse the
REPL's module-name completion by probing ``require('`` + the partial path.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from jsrepl.debug import log
from jsrepl.process.channel import LINE_CLEAR, TAB
from jsrepl.process.sync import OutputSynchronizer, strip_ansi

MODULE_PROBE_PREFIX = "require('"

# Token under completion: identifiers and member access chains (Math.ab)
TOKEN_RE = re.compile(r"[A-Za-z0-9_$.]*$")

# A partial module path directly after require(' / import(' / from '
MODULE_PATH_RE = re.compile(
    r"""(?:\brequire\s*\(\s*|\bimport\s*\(\s*|\bfrom\s+|\bimport\s+)['"]([^'"\n]*)$"""
)

# Trailing token-like text of a single-line reply
REPLY_TOKEN_RE = re.compile(r"""[A-Za-z0-9_$.@/'"(\-]+$""")

_BLANK_LINES_RE = re.compile(r"\n\s*\n+")

# Eager-evaluation preview: a dimmed line under the input, then cursor back up
PREVIEW_RE = re.compile(r"\r*\n\x1b\[90m[^\n]*?\x1b\[39m(?:\x1b\[\d+G)?\x1b\[\d*A")


@dataclass
class CompletionContext:
    """The text being completed and where it sits in the buffer."""

    token: str
    start: int
    end: int
    in_module_path: bool = False


def completion_token(text: str, point: int) -> CompletionContext:
    """Find the token that ends at ``point``."""
    before = text[:point]

    match = MODULE_PATH_RE.search(before)
    if match:
        return CompletionContext(match.group(1), match.start(1), point, True)

    match = TOKEN_RE.search(before)
    token = match.group(0) if match else ""
    return CompletionContext(token, point - len(token), point)


def parse_completion_reply(reply: str, token: str) -> list[str]:
    """
    Turn the captured probe output into candidates.

    A reply spanning several lines is a listing: the first line echoes the
    input, the last is the redrawn prompt, everything in between is
    whitespace-separated candidates. A single-line reply is an inline
    completion; its trailing token is the only candidate unless it is
    unchanged from ``token``.
    """
    text = strip_ansi(PREVIEW_RE.sub("", reply))
    text = text.replace("\r\n", "\n").replace("\r", "")

    if "\n" in text.strip():
        text = _BLANK_LINES_RE.sub("\n", text).rstrip()
        lines = text.split("\n")
        return " ".join(lines[1:-1]).split()

    match = REPLY_TOKEN_RE.search(text.rstrip())
    if match is None or match.group(0) == token:
        return []
    return [match.group(0)]


class CompletionEngine:
    """Completion probes layered on the output synchronizer."""

    def __init__(self, synchronizer: Optional[OutputSynchronizer] = None):
        self.synchronizer = synchronizer or OutputSynchronizer()

    def complete(
        self, session: Any, token: str, in_module_path: bool = False
    ) -> list[str]:
        """
        Return the REPL's completion candidates for ``token``.

        Args:
            session: The session to probe.
            token: Text immediately before the cursor.
            in_module_path: The token is a partial module path inside a
                string literal.

        Returns:
            Candidate strings, possibly empty.
        """
        probe = MODULE_PROBE_PREFIX + token if in_module_path else token
        cache = session.completion_cache

        cached = cache.lookup(probe)
        if cached is not None:
            log(f"completion cache hit for {probe!r}")
            return cached

        reply = self.probe(session, probe)
        candidates = parse_completion_reply(reply, probe)
        if in_module_path:
            candidates = [
                c[len(MODULE_PROBE_PREFIX) :] if c.startswith(MODULE_PROBE_PREFIX) else c
                for c in candidates
            ]

        cache.store(probe, candidates)
        return candidates

    def complete_at_point(
        self, session: Any, text: str, point: int
    ) -> tuple[CompletionContext, list[str]]:
        """Complete whatever token ends at ``point`` in ``text``."""
        context = completion_token(text, point)
        return context, self.complete(session, context.token, context.in_module_path)

    def probe(self, session: Any, token: str) -> str:
        """
        Run one completion probe and return the concatenated replies.

        Tab is sent twice: the REPL only lists ambiguous candidates on the
        second press. The echoed probe is then erased from the input line.
        None of this reaches the session transcript.
        """
        sync = self.synchronizer
        reply = sync.probe(session, token + TAB)
        reply += sync.exchange(session, TAB, deliver=False)
        sync.exchange(session, LINE_CLEAR, deliver=False)
        return reply
