"""
Symbol Locator - definitions and uses of one name.

Matching is lexical: a declaration or reference matches when its name is
exactly the target string.  Scopes are not resolved, so a local that
shadows a global is reported together with it.
"""

import logging
from typing import Iterator, List

from .ast_model import DeclarationNode, DeclKind
from .report import SymbolReport, SymbolRole
from .walker import walk_recursive

logger = logging.getLogger(__name__)


def find_definitions(root: DeclarationNode, name: str) -> Iterator[SymbolReport]:
    """Variables (globals, locals, parameters, static members) named ``name``."""
    for walked in walk_recursive(root):
        node = walked.node
        if node.kind is DeclKind.VARIABLE and node.name == name:
            yield SymbolReport(SymbolRole.DEFINITION, name, node.location)


def find_uses(root: DeclarationNode, name: str) -> Iterator[SymbolReport]:
    """References to ``name`` in executable code, declaration by declaration."""
    for walked in walk_recursive(root):
        for ref in walked.node.references:
            if ref.name == name:
                yield SymbolReport(SymbolRole.USE, name, ref.location)


def _position(report: SymbolReport):
    # Reports without a location sort first; definitions win ties.
    loc = report.location
    position = (0, 0) if loc is None else (loc.line, loc.column)
    return position, report.role is not SymbolRole.DEFINITION


def locate_symbol(root: DeclarationNode, name: str) -> List[SymbolReport]:
    """Definitions and uses of ``name`` merged into source order."""
    definitions = list(find_definitions(root, name))
    uses = list(find_uses(root, name))
    reports = sorted(definitions + uses, key=_position)
    logger.debug("Symbol %s: %d definition(s), %d use(s)", name, len(definitions), len(uses))
    return reports
