"""
jsrepl.source.boundary - Find where the expression before the cursor starts

A backward lexical scan over JavaScript-like text; no parser is involved.
The recognised grammar, read right to left from the cursor, is:

    expression := unary* chain
    chain      := unit ( ("." | "?.") unit | group )*      (left to right)
    unit       := group | string | identifier | arrow-function
    group      := "(" ... ")" | "[" ... "]" | "{" ... "}"  (balanced, skipped whole)
    unary      := "!" | "+" | "-" | "void" | "typeof" | "delete"

A group preceded by an operand is a call or index and the chain goes on
through its callee; a group preceded by a statement keyword (``return``,
``if``, ...) or a separator starts the expression. A ``function`` keyword
before the chain is absorbed, and a ``{...}`` block preceded by ``=>``
jumps to the arrow function's parameter list.

Known limitations: template literals containing code, regex literals,
comments containing quotes and non-ASCII identifiers can all produce wrong
boundaries.
"""

from typing import Optional

from jsrepl.errors import NoExpressionFound

OPENERS = {")": "(", "]": "[", "}": "{"}
QUOTES = "'\"`"
SEPARATORS = ";"

# Words that start a statement or an operand; a group after them is not a call
STATEMENT_KEYWORDS = frozenset(
    {
        "await",
        "case",
        "catch",
        "const",
        "default",
        "delete",
        "do",
        "else",
        "export",
        "extends",
        "for",
        "if",
        "in",
        "instanceof",
        "let",
        "new",
        "of",
        "return",
        "switch",
        "throw",
        "typeof",
        "var",
        "void",
        "while",
        "with",
        "yield",
    }
)

UNARY_WORDS = frozenset({"void", "typeof", "delete"})


def is_ident_char(c: str) -> bool:
    return c.isascii() and (c.isalnum() or c in "_$")


def _skip_ws(text: str, end: int) -> int:
    while end > 0 and text[end - 1].isspace():
        end -= 1
    return end


def _is_escaped(text: str, index: int) -> bool:
    backslashes = 0
    i = index - 1
    while i >= 0 and text[i] == "\\":
        backslashes += 1
        i -= 1
    return backslashes % 2 == 1


def _string_start(text: str, close: int) -> Optional[int]:
    """Index of the quote opening the string whose closing quote is at ``close``."""
    quote = text[close]
    i = close - 1
    while i >= 0:
        if text[i] == quote and not _is_escaped(text, i):
            return i
        i -= 1
    return None


def _group_start(text: str, end: int) -> Optional[int]:
    """Index of the bracket opening the balanced group that ends at ``end``."""
    stack = []
    i = end - 1
    while i >= 0:
        c = text[i]
        if c in QUOTES and not _is_escaped(text, i):
            opening = _string_start(text, i)
            if opening is None:
                return None
            i = opening - 1
            continue
        if c in OPENERS:
            stack.append(OPENERS[c])
        elif c in "([{":
            if not stack or stack.pop() != c:
                return None
            if not stack:
                return i
        i -= 1
    return None


def _word_before(text: str, end: int) -> Optional[str]:
    """The identifier that ends exactly at ``end``, if any."""
    start = end
    while start > 0 and is_ident_char(text[start - 1]):
        start -= 1
    return text[start:end] if start < end else None


def _peel(text: str, end: int) -> Optional[int]:
    """Start of the atomic unit ending at ``end``, or None."""
    if end <= 0:
        return None
    c = text[end - 1]
    if c in OPENERS:
        return _group_start(text, end)
    if c in QUOTES:
        return _string_start(text, end - 1)
    if is_ident_char(c):
        word = _word_before(text, end)
        return end - len(word)
    return None


def _absorb_async(text: str, start: int) -> int:
    j = _skip_ws(text, start)
    if _word_before(text, j) == "async":
        return j - len("async")
    return start


def _arrow_function_start(text: str, end: int) -> Optional[int]:
    """Parameter list start for ``params => { ... }`` ending at ``end``."""
    if end <= 0 or text[end - 1] != "}":
        return None
    brace = _group_start(text, end)
    if brace is None:
        return None
    j = _skip_ws(text, brace)
    if j < 2 or text[j - 2 : j] != "=>":
        return None
    params = _peel(text, _skip_ws(text, j - 2))
    if params is None:
        return None
    return _absorb_async(text, params)


def _extend_chain(text: str, start: int) -> int:
    """Walk left over member accesses, calls and indexing."""
    while True:
        j = _skip_ws(text, start)
        if j == 0:
            return start

        word = _word_before(text, j)
        if word == "function":
            return _absorb_async(text, j - len(word))

        prev = text[j - 1]
        if prev == ".":
            k = j - 1
            if k > 0 and text[k - 1] == "?":
                k -= 1
            elif k > 0 and text[k - 1] == ".":
                # spread or rest
                return start
            unit = _peel(text, _skip_ws(text, k))
            if unit is None:
                return start
            start = unit
            continue

        if text[start] not in "([{" or prev in SEPARATORS:
            return start

        if word is not None:
            if word in STATEMENT_KEYWORDS:
                return start
            if text[start] == "{":
                return start
            start = j - len(word)
            continue

        if prev == ")" or (prev in "]" + QUOTES and text[start] != "{"):
            unit = _peel(text, j)
            if unit is None:
                return start
            start = unit
            continue

        return start


def _extend_unary(text: str, start: int) -> int:
    """Include prefix unary operators written before the expression."""
    while True:
        j = _skip_ws(text, start)
        if j == 0:
            return start

        word = _word_before(text, j)
        if word is not None:
            if word in UNARY_WORDS:
                start = j - len(word)
                continue
            return start

        c = text[j - 1]
        if c == "!":
            start = j - 1
            continue
        if c in "+-":
            k = _skip_ws(text, j - 1)
            before_word = _word_before(text, k)
            if before_word is not None and before_word not in STATEMENT_KEYWORDS:
                return start
            if k > 0 and text[k - 1] in ")]}" + QUOTES:
                return start
            start = j - 1
            continue
        return start


def boundary_of(text: str, point: int) -> int:
    """
    Return the offset where the expression ending at ``point`` begins.

    A statement separator directly before the cursor is not part of the
    expression; the expression ends just before it.

    Raises:
        NoExpressionFound: If no identifier, literal or group ends there.
    """
    if point < 0 or point > len(text):
        raise ValueError(f"point {point} is outside the text (length {len(text)})")

    end = _skip_ws(text, point)
    if end > 0 and text[end - 1] in SEPARATORS:
        end = _skip_ws(text, end - 1)

    start = _arrow_function_start(text, end)
    if start is None:
        start = _peel(text, end)
        if start is None:
            raise NoExpressionFound(text, point)

    start = _extend_chain(text, start)
    return _extend_unary(text, start)


def last_expression(text: str, point: int) -> tuple[int, str]:
    """The expression ending at ``point`` as (start offset, source text)."""
    start = boundary_of(text, point)
    return start, text[start:point]
