"""
jsrepl.source - Text-only helpers that never touch the REPL process

Modules:
- boundary.py: Backward scanner locating the start of the expression at point
- modules.py: Rewrite of static import/export syntax into REPL-evaluable code
"""

from jsrepl.source.boundary import boundary_of, last_expression
from jsrepl.source.modules import (
    ImportSpecifier,
    NamedBinding,
    parse_import_clause,
    render_import,
    transform,
)

__all__ = [
    # Boundary
    "boundary_of",
    "last_expression",
    # Modules
    "transform",
    "parse_import_clause",
    "render_import",
    "ImportSpecifier",
    "NamedBinding",
]
