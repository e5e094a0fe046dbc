"""
jsrepl.process.cache - Per-session completion cache

Holds the candidates returned for the last completion probe. A cached
entry answers a later request only while the new token extends the cached
one and the added text contains no boundary character; past a boundary
the REPL would complete a different thing ("foo" versus "foo.").

"[" is not a boundary character, so candidates cached for "foo" are
reused for "foo[". That gap is kept as-is.
"""

from typing import Optional

BOUNDARY_CHARS = frozenset(".(/'\"")


def crosses_boundary(cached: str, token: str) -> bool:
    """True if ``token`` adds a boundary character after ``cached``."""
    return any(c in BOUNDARY_CHARS for c in token[len(cached) :])


class CompletionCache:
    """Last (token, candidates) pair for one session."""

    def __init__(self):
        self.token: Optional[str] = None
        self.candidates: list[str] = []

    def __repr__(self):
        return f"CompletionCache({self.token!r}, {len(self.candidates)} candidates)"

    def is_empty(self) -> bool:
        return self.token is None

    def lookup(self, token: str) -> Optional[list[str]]:
        """Cached candidates valid for ``token``, or None on a miss."""
        if self.token is None or not token.startswith(self.token):
            return None
        if crosses_boundary(self.token, token):
            return None
        return list(self.candidates)

    def store(self, token: str, candidates: list[str]) -> None:
        self.token = token
        self.candidates = list(candidates)

    def clear(self) -> None:
        self.token = None
        self.candidates = []
