"""
Declaration tree model.

The parsed unit exposes its declarations as a small closed set of node
kinds.  Every node is immutable once the front-end has built it:

  • FUNCTION         - a function declaration or definition (also a
                       container: it owns its parameters and locals)
  • VARIABLE         - globals, locals, parameters, static data members
  • OTHER_CONTAINER  - translation unit, namespaces, records, enums,
                       templates, linkage specifications
  • OTHER_LEAF       - fields, typedefs, enumerators, using-declarations
"""

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass(frozen=True)
class SourceLocation:
    """A position in the translation unit (1-indexed line and column)."""
    file: str
    line: int
    column: int


class DeclKind(enum.Enum):
    FUNCTION = "function"
    VARIABLE = "variable"
    OTHER_CONTAINER = "other_container"
    OTHER_LEAF = "other_leaf"


@dataclass(frozen=True)
class ReferenceNode:
    """A use of a named entity inside executable code."""
    name: str
    location: Optional[SourceLocation]


@dataclass(frozen=True)
class DeclarationNode:
    """A node of the declaration tree.

    ``location`` is ``None`` for declarations the front-end synthesized.
    ``references`` holds the uses found in the node's own executable code
    (a function body, a parameter default, a variable initializer); uses
    inside nested declarations belong to those nodes.
    """
    kind: DeclKind
    name: str = ""
    location: Optional[SourceLocation] = None
    children: Tuple["DeclarationNode", ...] = field(default_factory=tuple)
    references: Tuple[ReferenceNode, ...] = field(default_factory=tuple)

    @property
    def is_function(self) -> bool:
        return self.kind is DeclKind.FUNCTION

    @property
    def is_container(self) -> bool:
        return is_container(self)


def is_container(node: DeclarationNode) -> bool:
    """Whether ``node`` owns child declarations that a traversal descends into."""
    kind = node.kind
    if kind is DeclKind.FUNCTION:
        return True
    if kind is DeclKind.OTHER_CONTAINER:
        return True
    if kind is DeclKind.VARIABLE:
        return False
    if kind is DeclKind.OTHER_LEAF:
        return False
    raise AssertionError(f"unhandled declaration kind: {kind!r}")


def translation_unit(*children: DeclarationNode, name: str = "") -> DeclarationNode:
    """Build a translation-unit root over ``children``."""
    return DeclarationNode(DeclKind.OTHER_CONTAINER, name=name, children=tuple(children))
