"""
jsrepl.source.modules - Rewrite static import/export syntax for the REPL

The REPL evaluates code as a script, where static ``import`` and
``export`` are syntax errors. ``transform`` rewrites them, in one pass:

1. ``import <clause> from "<path>";`` becomes
   ``((g, m) => { <assignments> })(globalThis, await import("<path>"));``
   which loads the module with dynamic import and copies each binding onto
   the global object:

       * as X         g.X = m;
       X (default)    g.X = m.default;
       { a, b as c }  g.a = m.a ?? m.default?.a;  g.c = m.b ?? m.default?.b;
       { type T }     (nothing)

   Named bindings fall back to ``m.default`` so CommonJS modules, whose
   exports all sit on the default export, work too. ``import "<path>";``
   produces a wrapper with no assignments; ``import type ...`` is removed.
2. ``export ... from "<path>";`` is removed along with its line break.
3. ``export`` (and ``export default``) before a declaration is dropped, and
   local export lists ``export { a, b };`` are removed.

Anything that does not match these shapes is left untouched. The output
is not meant to be transformed again.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Optional

IDENT = r"[A-Za-z_$][A-Za-z0-9_$]*"

IMPORT_RE = re.compile(
    r"^(?P<indent>[ \t]*)import\b(?!\s*[(.])\s*"
    r"(?:(?P<clause>[^;'\"`]*?)\s*\bfrom\s*)?"
    r"(?P<quote>['\"])(?P<path>[^'\"\n]+)(?P=quote)"
    r"(?P<attrs>\s*(?:with|assert)\s*\{[^}]*\})?"
    r"[ \t]*;?",
    re.MULTILINE,
)

REEXPORT_RE = re.compile(
    r"^[ \t]*export\s+(?:type\s+)?"
    r"(?:\*(?:\s*as\s+" + IDENT + r")?|\{[^}]*\})"
    r"\s*from\s*(['\"])[^'\"\n]+\1"
    r"(?:\s*(?:with|assert)\s*\{[^}]*\})?"
    r"[ \t]*;?[ \t]*(?:\r?\n)?",
    re.MULTILINE,
)

EXPORT_LIST_RE = re.compile(
    r"^[ \t]*export\s+(?:type\s+)?\{[^}]*\}[ \t]*;?[ \t]*(?:\r?\n)?",
    re.MULTILINE,
)

EXPORT_DECL_RE = re.compile(
    r"^(?P<indent>[ \t]*)export\s+(?:default\s+)?(?=[A-Za-z_$(\[{'\"`0-9!-])",
    re.MULTILINE,
)

_NAMESPACE_RE = re.compile(r"^\*\s*as\s+(" + IDENT + r")$")
_NAMED_RE = re.compile(r"^(?:(type)\s+)?(" + IDENT + r")(?:\s+as\s+(" + IDENT + r"))?$")
_DEFAULT_RE = re.compile(r"^" + IDENT + r"$")


@dataclass
class NamedBinding:
    """One entry of ``{ ... }`` in an import clause."""

    name: str
    alias: Optional[str] = None
    type_only: bool = False

    @property
    def local(self) -> str:
        return self.alias or self.name


@dataclass
class ImportSpecifier:
    """The bindings of one import statement."""

    path: str = ""
    namespace: Optional[str] = None
    default: Optional[str] = None
    named: list[NamedBinding] = field(default_factory=list)
    type_only: bool = False

    def assignments(self) -> list[str]:
        """Statements copying each runtime binding onto ``g`` from module ``m``."""
        lines = []
        if self.default:
            lines.append(f"g.{self.default} = m.default;")
        if self.namespace:
            lines.append(f"g.{self.namespace} = m;")
        for binding in self.named:
            if binding.type_only:
                continue
            lines.append(
                f"g.{binding.local} = m.{binding.name} ?? m.default?.{binding.name};"
            )
        return lines


def parse_import_clause(clause: str, path: str = "") -> Optional[ImportSpecifier]:
    """
    Parse the text between ``import`` and ``from``.

    Returns:
        The specifier, or None if the clause has a shape this module does
        not understand (the statement is then left alone).
    """
    specifier = ImportSpecifier(path=path)
    clause = clause.strip()
    if not clause:
        return specifier

    if re.match(r"^type\s+(?!from\b)(?:[{*]|" + IDENT + r")", clause):
        specifier.type_only = True
        return specifier

    named_match = re.search(r"\{([^{}]*)\}", clause)
    if named_match:
        for entry in named_match.group(1).split(","):
            entry = " ".join(entry.split())
            if not entry:
                continue
            m = _NAMED_RE.match(entry)
            if m is None:
                return None
            specifier.named.append(
                NamedBinding(
                    name=m.group(2), alias=m.group(3), type_only=bool(m.group(1))
                )
            )
        clause = clause[: named_match.start()] + clause[named_match.end() :]

    for part in clause.split(","):
        part = " ".join(part.split())
        if not part:
            continue
        m = _NAMESPACE_RE.match(part)
        if m:
            specifier.namespace = m.group(1)
        elif _DEFAULT_RE.match(part):
            specifier.default = part
        else:
            return None
    return specifier


def render_import(specifier: ImportSpecifier, attributes: Optional[str] = None) -> str:
    """The dynamic-import wrapper for one statement."""
    body = " ".join(specifier.assignments())
    body = f" {body} " if body else " "
    source = json.dumps(specifier.path)
    if attributes:
        source += f", {{ with: {attributes} }}"
    return f"((g, m) => {{{body}}})(globalThis, await import({source}));"


def _rewrite_import(match: re.Match) -> str:
    clause = match.group("clause") or ""
    specifier = parse_import_clause(clause, match.group("path"))
    if specifier is None:
        return match.group(0)
    if specifier.type_only:
        return match.group("indent")
    attrs = match.group("attrs")
    attributes = attrs[attrs.index("{") :] if attrs else None
    return match.group("indent") + render_import(specifier, attributes)


def transform(source: str) -> str:
    """Rewrite import/export syntax in ``source`` into REPL-evaluable statements."""
    text = IMPORT_RE.sub(_rewrite_import, source)
    text = REEXPORT_RE.sub("", text)
    text = EXPORT_LIST_RE.sub("", text)
    return EXPORT_DECL_RE.sub(lambda m: m.group("indent"), text)
