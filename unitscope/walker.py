"""
Declaration Walker - three ways of traversing the declaration tree.

  • walk_top_level     - direct children of the root only.  Functions nested
                         in namespaces, records, templates or linkage
                         specifications are not seen.
  • walk_with_visitor  - depth-first pre-order through a DeclarationVisitor
                         that dispatches on the node kind.
  • walk_recursive     - depth-first pre-order by plain recursion.  This is
                         the traversal every other query is built on.

All three are lazy generators of WalkedDeclaration values and never yield
the root itself.  The visitor and the recursive descent produce the same
sequence in the same order.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List

from .ast_model import DeclarationNode, DeclKind
from .report import FunctionReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalkedDeclaration:
    node: DeclarationNode
    is_function: bool


def _walked(node: DeclarationNode) -> WalkedDeclaration:
    return WalkedDeclaration(node, node.is_function)


# ═══════════════════════════════════════════════════════════════════════
#  Strategies
# ═══════════════════════════════════════════════════════════════════════

def walk_top_level(root: DeclarationNode) -> Iterator[WalkedDeclaration]:
    for child in root.children:
        yield _walked(child)


def walk_recursive(root: DeclarationNode) -> Iterator[WalkedDeclaration]:
    for child in root.children:
        yield from _descend(child)


def _descend(node: DeclarationNode) -> Iterator[WalkedDeclaration]:
    yield _walked(node)
    if node.is_container:
        for child in node.children:
            yield from _descend(child)


class DeclarationVisitor:
    """Pre-order visitor with one ``visit_<kind>`` generator per node kind.

    Subclasses override the ``visit_*`` methods; the defaults yield the node
    and, for containers, continue into the children.
    """

    def __init__(self):
        self._dispatch: Dict[DeclKind, Callable[[DeclarationNode], Iterator[WalkedDeclaration]]] = {
            DeclKind.FUNCTION: self.visit_function,
            DeclKind.VARIABLE: self.visit_variable,
            DeclKind.OTHER_CONTAINER: self.visit_other_container,
            DeclKind.OTHER_LEAF: self.visit_other_leaf,
        }
        missing = set(DeclKind) - set(self._dispatch)
        if missing:
            raise AssertionError(f"no visit method for {sorted(k.name for k in missing)}")

    def visit(self, node: DeclarationNode) -> Iterator[WalkedDeclaration]:
        return self._dispatch[node.kind](node)

    def visit_children(self, node: DeclarationNode) -> Iterator[WalkedDeclaration]:
        for child in node.children:
            yield from self.visit(child)

    def visit_function(self, node):
        yield WalkedDeclaration(node, True)
        yield from self.visit_children(node)

    def visit_variable(self, node):
        yield WalkedDeclaration(node, False)

    def visit_other_container(self, node):
        yield WalkedDeclaration(node, False)
        yield from self.visit_children(node)

    def visit_other_leaf(self, node):
        yield WalkedDeclaration(node, False)


def walk_with_visitor(root: DeclarationNode) -> Iterator[WalkedDeclaration]:
    return DeclarationVisitor().visit_children(root)


STRATEGIES: Dict[str, Callable[[DeclarationNode], Iterator[WalkedDeclaration]]] = {
    "top-level": walk_top_level,
    "visitor": walk_with_visitor,
    "recursive": walk_recursive,
}


# ═══════════════════════════════════════════════════════════════════════
#  Function enumeration
# ═══════════════════════════════════════════════════════════════════════

def iter_functions(root: DeclarationNode, strategy: str = "recursive") -> Iterator[DeclarationNode]:
    try:
        walk = STRATEGIES[strategy]
    except KeyError:
        raise ValueError(f"unknown traversal strategy {strategy!r}; "
                         f"expected one of {', '.join(STRATEGIES)}") from None
    for walked in walk(root):
        if walked.is_function:
            yield walked.node


def find_functions(root: DeclarationNode, strategy: str = "recursive") -> List[DeclarationNode]:
    """Every function declaration the given strategy reaches, in traversal order."""
    functions = list(iter_functions(root, strategy))
    logger.debug("%s traversal found %d function(s)", strategy, len(functions))
    return functions


def function_reports(root: DeclarationNode, strategy: str = "recursive") -> Iterator[FunctionReport]:
    for node in iter_functions(root, strategy):
        yield FunctionReport(node.name, node.location)
