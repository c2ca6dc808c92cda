"""
Front-end service - builds a parsed unit from one source file.

Pipeline for ``parse_translation_unit(path, config)``:
  1. pcpp preprocesses the file with the configured include paths and
     definitions (active lines of the main file + preprocessing record).
  2. tree-sitter parses the raw bytes with the C or C++ grammar, so every
     location in the result points at the text the user wrote.
  3. The concrete syntax tree is folded into the declaration tree of
     ``ast_model``: declarations in disabled conditional branches are
     dropped, identifiers naming an active macro are macro expansions
     rather than references.

The parsed unit is read-only once returned.
"""

import os
import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Set, Tuple

import tree_sitter_c as tsc
import tree_sitter_cpp as tscpp
from pydantic import BaseModel
from tree_sitter import Language, Parser, Node

from .ast_model import DeclarationNode, DeclKind, ReferenceNode, SourceLocation
from .errors import FrontendError
from .locations import format_location
from .preprocessor import PreprocessingRecord, PreprocessorEngine

logger = logging.getLogger(__name__)

C_LANGUAGE = Language(tsc.language())
CPP_LANGUAGE = Language(tscpp.language())
_PARSERS = {
    "c": Parser(C_LANGUAGE),
    "c++": Parser(CPP_LANGUAGE),
}

_CPP_EXTENSIONS = {".cc", ".cpp", ".cxx", ".c++", ".hpp", ".hh", ".hxx", ".C"}


# ═══════════════════════════════════════════════════════════════════════
#  Configuration
# ═══════════════════════════════════════════════════════════════════════

class FrontendConfig(BaseModel):
    """Options handed to the front-end at call time.

    ``extra_flags`` takes compiler-style flags: ``-DNAME[=VALUE]``,
    ``-UNAME``, ``-IDIR``, ``-x c|c++`` and ``-std=...``.  Anything else is
    logged and ignored.
    """
    include_paths: List[str] = []
    extra_flags: List[str] = []
    enable_detailed_preprocessing: bool = False

    @classmethod
    def from_args(cls, args: Iterable[str], enable_detailed_preprocessing: bool = False) -> "FrontendConfig":
        """Split a compiler-style argument list into include paths and flags."""
        include_paths: List[str] = []
        extra_flags: List[str] = []
        for option, value in _iter_flags(list(args)):
            if option == "-I":
                include_paths.append(value)
            elif value is None:
                extra_flags.append(option)
            else:
                extra_flags.append(option + value)
        return cls(
            include_paths=include_paths,
            extra_flags=extra_flags,
            enable_detailed_preprocessing=enable_detailed_preprocessing,
        )

    def search_paths(self) -> List[str]:
        paths = list(self.include_paths)
        for option, value in _iter_flags(self.extra_flags):
            if option == "-I":
                paths.append(value)
        return paths

    def macro_definitions(self) -> List[Tuple[str, Optional[str]]]:
        """(name, value) for each -D, (name, None) for each -U, in order."""
        out = []
        for option, value in _iter_flags(self.extra_flags):
            if option == "-D":
                name, _, macro_value = value.partition("=")
                out.append((name, macro_value if macro_value else "1"))
            elif option == "-U":
                out.append((value, None))
        return out

    def language_for(self, path: str) -> str:
        """Pick the grammar: -x wins, then -std=c++*, then the extension."""
        language = None
        for option, value in _iter_flags(self.extra_flags):
            if option == "-x":
                language = "c++" if value in ("c++", "c++-header") else "c"
            elif option == "-std" and language is None and "++" in value:
                language = "c++"
        if language is not None:
            return language
        return "c++" if os.path.splitext(path)[1] in _CPP_EXTENSIONS else "c"


def _iter_flags(flags: List[str]) -> Iterator[Tuple[str, Optional[str]]]:
    """Yield (option, value) pairs; separated and joined forms are both accepted."""
    i = 0
    while i < len(flags):
        flag = flags[i]
        i += 1
        for option in ("-D", "-U", "-I", "-x"):
            if flag.startswith(option):
                value = flag[len(option):]
                if not value and i < len(flags):
                    value = flags[i]
                    i += 1
                yield option, value
                break
        else:
            if flag.startswith("-std="):
                yield "-std", flag[len("-std="):]
            else:
                logger.warning("Ignoring unsupported front-end flag: %s", flag)


# ═══════════════════════════════════════════════════════════════════════
#  Parsed unit
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Diagnostic:
    location: Optional[SourceLocation]
    message: str

    def __str__(self):
        where = format_location(self.location)
        return f"{where}: error: {self.message}" if where else f"error: {self.message}"


class ParsedUnit:
    """Read-only handle on one parsed translation unit."""

    def __init__(self, file_name: str, language: str, root: DeclarationNode,
                 diagnostics: List[Diagnostic], record: PreprocessingRecord,
                 detailed_preprocessing: bool):
        self.file_name = file_name
        self.language = language
        self.root = root
        self.diagnostics = list(diagnostics)
        self._record = record
        self._detailed = detailed_preprocessing

    @property
    def has_errors(self) -> bool:
        return bool(self.diagnostics)

    @property
    def preprocessing_record(self) -> Optional[PreprocessingRecord]:
        """The record, or ``None`` unless detailed preprocessing was requested."""
        return self._record if self._detailed else None

    def resolve_location(self, line: int, column: int) -> SourceLocation:
        return SourceLocation(self.file_name, line, column)


def parse_translation_unit(path: str, config: Optional[FrontendConfig] = None) -> Optional[ParsedUnit]:
    """Parse ``path``; ``None`` when the file cannot be read at all."""
    config = config or FrontendConfig()
    try:
        with open(path, "rb") as f:
            source = f.read()
    except OSError as e:
        logger.error("Cannot read %s: %s", path, e)
        return None
    if b"\x00" in source[:8192]:
        logger.error("Refusing to parse binary file: %s", path)
        return None

    language = config.language_for(path)
    engine = PreprocessorEngine(config.search_paths())
    for name, value in config.macro_definitions():
        if value is None:
            engine.remove_define(name)
        else:
            engine.add_define(name, value)
    pp = engine.preprocess(path, source.decode("utf-8", errors="replace"))

    tree = _PARSERS[language].parse(source)
    builder = _DeclarationBuilder(path, source, pp.active_lines, pp.record)
    diagnostics = builder.diagnostics(tree.root_node)
    if pp.error is not None:
        diagnostics.append(Diagnostic(None, f"preprocessing failed: {pp.error}"))
    root = builder.translation_unit(tree.root_node)
    if config.enable_detailed_preprocessing:
        builder.record_expansions(tree.root_node)

    logger.info("Parsed %s as %s: %d top-level declarations, %d diagnostics",
                path, language, len(root.children), len(diagnostics))
    return ParsedUnit(path, language, root, diagnostics, pp.record,
                      config.enable_detailed_preprocessing)


def load_translation_unit(path: str, config: Optional[FrontendConfig] = None) -> ParsedUnit:
    """Parse ``path`` and fail fast when the unit is unusable."""
    unit = parse_translation_unit(path, config)
    if unit is None:
        raise FrontendError(f"cannot read {path}")
    if unit.has_errors:
        for diagnostic in unit.diagnostics:
            logger.debug("%s", diagnostic)
        raise FrontendError(f"{path} has {len(unit.diagnostics)} error(s)", unit.diagnostics)
    return unit


# ═══════════════════════════════════════════════════════════════════════
#  Syntax tree → declaration tree
# ═══════════════════════════════════════════════════════════════════════

_NAME_TYPES = {
    "identifier", "field_identifier", "type_identifier", "qualified_identifier",
    "destructor_name", "operator_name", "template_function", "template_method",
    "operator_cast",
}
_FIELD_DECLARATORS = {
    "pointer_declarator", "array_declarator", "init_declarator",
    "pointer_type_declarator", "array_type_declarator",
}
_WRAPPER_DECLARATORS = {
    "parenthesized_declarator", "reference_declarator", "attributed_declarator",
    "variadic_declarator", "parenthesized_type_declarator", "attributed_type_declarator",
}
_RECORD_SPECIFIERS = {"struct_specifier", "class_specifier", "union_specifier", "enum_specifier"}
_CONDITIONALS = {"preproc_if", "preproc_ifdef", "preproc_else", "preproc_elif", "preproc_elifdef"}
_LEAF_DECLARATIONS = {
    "alias_declaration", "using_declaration", "namespace_alias_definition",
    "static_assert_declaration",
}
_PARAMETERS = {"parameter_declaration", "optional_parameter_declaration",
               "variadic_parameter_declaration"}
_OPAQUE = {"attribute_specifier", "attribute_declaration", "ms_declspec_modifier",
           "string_literal", "raw_string_literal", "char_literal", "comment"}
_PCPP_BUILTINS = {"__FILE__", "__LINE__", "__DATE__", "__TIME__", "__COUNTER__"}


def _walk_all(node: Node):
    """Yield all descendant nodes."""
    cursor = node.walk()
    visited = False
    while True:
        if not visited:
            yield cursor.node
        if not visited and cursor.goto_first_child():
            visited = False
            continue
        if cursor.goto_next_sibling():
            visited = False
            continue
        if cursor.goto_parent():
            visited = True
            continue
        break


def _same(a: Optional[Node], b: Optional[Node]) -> bool:
    if a is None or b is None:
        return False
    return (a.start_byte, a.end_byte, a.type) == (b.start_byte, b.end_byte, b.type)


def _first_named(node: Node) -> Optional[Node]:
    for child in node.named_children:
        if child.type not in _OPAQUE and child.type != "ms_call_modifier":
            return child
    return None


class _DeclarationBuilder:
    """Folds one tree-sitter tree into DeclarationNode values."""

    def __init__(self, file_name: str, source: bytes,
                 active_lines: Optional[Set[int]], record: PreprocessingRecord):
        self.file_name = file_name
        self._source = source
        self._active_lines = active_lines
        self._record = record

    # ────────────────────────────────────────────────────────────────
    #  Helpers
    # ────────────────────────────────────────────────────────────────

    def _node_text(self, node: Node) -> str:
        return self._source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    def _location(self, node: Node) -> SourceLocation:
        return SourceLocation(self.file_name, node.start_point[0] + 1, node.start_point[1] + 1)

    def _name_text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        if node.type in ("qualified_identifier", "template_function", "template_method"):
            inner = node.child_by_field_name("name")
            if inner is not None:
                return self._name_text(inner)
        return self._node_text(node)

    def _innermost_name(self, node: Node) -> Node:
        while node.type in ("qualified_identifier", "template_function", "template_method"):
            inner = node.child_by_field_name("name")
            if inner is None:
                break
            node = inner
        return node

    def _unwrap(self, declarator: Optional[Node]) -> Tuple[Optional[Node], Optional[Node]]:
        """Return (name node, function declarator) for a declarator chain.

        The function declarator is only reported when it applies directly to
        the declared name: ``int *f(int)`` declares a function while
        ``int (*fp)(int)`` declares a pointer variable.
        """
        function_decl = None
        current = declarator
        while current is not None:
            kind = current.type
            if kind in _NAME_TYPES:
                return current, function_decl
            if kind == "function_declarator":
                inner = current.child_by_field_name("declarator")
                stripped = inner
                while stripped is not None and stripped.type == "parenthesized_declarator":
                    stripped = _first_named(stripped)
                if function_decl is None and stripped is not None and stripped.type in _NAME_TYPES:
                    function_decl = current
                current = inner
            elif kind in _FIELD_DECLARATORS:
                current = current.child_by_field_name("declarator")
            elif kind in _WRAPPER_DECLARATORS:
                current = _first_named(current)
            else:
                return None, function_decl
        return None, function_decl

    def _active_branches(self, node: Node) -> Iterator[List[Node]]:
        """Yield the item lists of the active branches of a conditional chain."""
        while node is not None:
            skip = [node.child_by_field_name(f) for f in ("condition", "name", "alternative")]
            items = [c for c in node.named_children
                     if c.type != "comment" and not any(_same(c, s) for s in skip)]
            if self._branch_active(items):
                yield items
            node = node.child_by_field_name("alternative")

    def _branch_active(self, items: List[Node]) -> bool:
        if self._active_lines is None:
            return True
        for item in items:
            for line in range(item.start_point[0] + 1, item.end_point[0] + 2):
                if line in self._active_lines:
                    return True
        return False

    # ────────────────────────────────────────────────────────────────
    #  Diagnostics and expansions
    # ────────────────────────────────────────────────────────────────

    def diagnostics(self, root: Node) -> List[Diagnostic]:
        if not root.has_error:
            return []
        out = []
        for node in _walk_all(root):
            if node.type == "ERROR" and (node.parent is None or node.parent.type != "ERROR"):
                snippet = self._node_text(node).strip().splitlines()
                near = snippet[0][:40] if snippet else ""
                out.append(Diagnostic(self._location(node), f"syntax error near '{near}'"))
            elif node.is_missing:
                out.append(Diagnostic(self._location(node), f"expected '{node.type}'"))
        return out

    def _in_directive(self, node: Node) -> bool:
        child = node
        parent = node.parent
        while parent is not None:
            if parent.type in _CONDITIONALS:
                guard = parent.child_by_field_name("condition") or parent.child_by_field_name("name")
                if _same(guard, child):
                    return True
            elif parent.type.startswith("preproc_"):
                return True
            child = parent
            parent = parent.parent
        return False

    def _expands_here(self, node: Node, name: str, location: SourceLocation) -> bool:
        info = self._record.macro_definition_at(name, location)
        if info is None:
            return name in _PCPP_BUILTINS
        if not info.is_function_like:
            return True
        parent = node.parent
        return (parent is not None and parent.type == "call_expression"
                and _same(parent.child_by_field_name("function"), node))

    def record_expansions(self, root: Node):
        """Log every macro expansion of the main file into the record."""
        for node in _walk_all(root):
            if node.type not in ("identifier", "type_identifier"):
                continue
            if self._in_directive(node):
                continue
            if self._active_lines is not None and node.start_point[0] + 1 not in self._active_lines:
                continue
            name = self._node_text(node)
            location = self._location(node)
            if self._expands_here(node, name, location):
                self._record.add_expansion(name, location)

    # ────────────────────────────────────────────────────────────────
    #  Containers
    # ────────────────────────────────────────────────────────────────

    def translation_unit(self, root: Node) -> DeclarationNode:
        children = self._convert_items(root.named_children)
        return DeclarationNode(DeclKind.OTHER_CONTAINER, name=self.file_name, children=tuple(children))

    def _convert_items(self, nodes: Iterable[Node]) -> List[DeclarationNode]:
        out = []
        for node in nodes:
            out.extend(self._convert_item(node))
        return out

    def _convert_item(self, node: Node) -> List[DeclarationNode]:
        kind = node.type
        if kind == "function_definition":
            return [self._function_definition(node)]
        if kind in ("declaration", "field_declaration"):
            decls, _ = self._declaration(node, attach_references=True)
            return decls
        if kind == "type_definition":
            return self._type_definition(node)
        if kind in _RECORD_SPECIFIERS:
            return [self._record_specifier(node)]
        if kind == "namespace_definition":
            body = node.child_by_field_name("body")
            children = self._convert_items(body.named_children) if body is not None else []
            return [DeclarationNode(DeclKind.OTHER_CONTAINER,
                                    self._name_text(node.child_by_field_name("name")),
                                    self._location(node), tuple(children))]
        if kind == "linkage_specification":
            body = node.child_by_field_name("body")
            if body is None:
                children = []
            elif body.type == "declaration_list":
                children = self._convert_items(body.named_children)
            else:
                children = self._convert_item(body)
            return [DeclarationNode(DeclKind.OTHER_CONTAINER, "", self._location(node), tuple(children))]
        if kind == "template_declaration":
            parameters = node.child_by_field_name("parameters")
            children = self._convert_items(
                c for c in node.named_children
                if not _same(c, parameters) and c.type != "requires_clause")
            name = children[0].name if children else ""
            return [DeclarationNode(DeclKind.OTHER_CONTAINER, name, self._location(node), tuple(children))]
        if kind == "friend_declaration":
            children = self._convert_items(node.named_children)
            return [DeclarationNode(DeclKind.OTHER_CONTAINER, "", self._location(node), tuple(children))]
        if kind in _LEAF_DECLARATIONS:
            return [DeclarationNode(DeclKind.OTHER_LEAF,
                                    self._name_text(node.child_by_field_name("name")),
                                    self._location(node))]
        if kind in _CONDITIONALS:
            out = []
            for items in self._active_branches(node):
                out.extend(self._convert_items(items))
            return out
        return []

    def _record_specifier(self, node: Node) -> DeclarationNode:
        name = self._name_text(node.child_by_field_name("name"))
        body = node.child_by_field_name("body")
        if body is None:
            return DeclarationNode(DeclKind.OTHER_LEAF, name, self._location(node))
        if node.type == "enum_specifier":
            children = []
            for enumerator in body.named_children:
                if enumerator.type != "enumerator":
                    continue
                value = enumerator.child_by_field_name("value")
                refs = self._references(value) if value is not None else []
                children.append(DeclarationNode(
                    DeclKind.OTHER_LEAF,
                    self._name_text(enumerator.child_by_field_name("name")),
                    self._location(enumerator),
                    references=tuple(refs),
                ))
        else:
            children = self._convert_items(body.named_children)
        return DeclarationNode(DeclKind.OTHER_CONTAINER, name, self._location(node), tuple(children))

    def _type_definition(self, node: Node) -> List[DeclarationNode]:
        out = []
        type_node = node.child_by_field_name("type")
        if (type_node is not None and type_node.type in _RECORD_SPECIFIERS
                and type_node.child_by_field_name("body") is not None):
            out.append(self._record_specifier(type_node))
        for declarator in node.children_by_field_name("declarator"):
            name_node, _ = self._unwrap(declarator)
            out.append(DeclarationNode(DeclKind.OTHER_LEAF, self._name_text(name_node), self._location(node)))
        return out

    # ────────────────────────────────────────────────────────────────
    #  Functions and variables
    # ────────────────────────────────────────────────────────────────

    def _function_definition(self, node: Node) -> DeclarationNode:
        name_node, function_decl = self._unwrap(node.child_by_field_name("declarator"))
        params, refs = self._parameters(function_decl)
        locals_: List[DeclarationNode] = []
        for part in node.named_children:
            if part.type == "field_initializer_list":
                refs.extend(self._references(part, decls=locals_))
        body = node.child_by_field_name("body")
        if body is not None:
            self._scan(body, locals_, refs)
        return DeclarationNode(DeclKind.FUNCTION, self._name_text(name_node), self._location(node),
                               tuple(params + locals_), tuple(refs))

    def _parameters(self, function_decl: Optional[Node]) -> Tuple[List[DeclarationNode], List[ReferenceNode]]:
        params: List[DeclarationNode] = []
        refs: List[ReferenceNode] = []
        plist = function_decl.child_by_field_name("parameters") if function_decl is not None else None
        if plist is None:
            return params, refs
        entries = [p for p in plist.named_children if p.type in _PARAMETERS]
        for param in entries:
            declarator = param.child_by_field_name("declarator")
            if declarator is None and len(entries) == 1 and self._is_void(param):
                continue
            params.append(self._parameter(param))
            default = param.child_by_field_name("default_value")
            if default is not None:
                refs.extend(self._references(default))
        return params, refs

    def _is_void(self, param: Node) -> bool:
        type_node = param.child_by_field_name("type")
        return type_node is not None and self._node_text(type_node) == "void"

    def _parameter(self, param: Node) -> DeclarationNode:
        name_node, _ = self._unwrap(param.child_by_field_name("declarator"))
        return DeclarationNode(DeclKind.VARIABLE, self._name_text(name_node), self._location(param))

    def _declaration(self, node: Node, attach_references: bool) -> Tuple[List[DeclarationNode], List[ReferenceNode]]:
        """Convert a declaration into its declared entities.

        With ``attach_references`` the initializer uses are stored on each
        variable; otherwise they are returned for the enclosing function.
        Declarations nested in initializers (lambda parameters and locals)
        follow the declared entities.
        """
        out: List[DeclarationNode] = []
        all_refs: List[ReferenceNode] = []
        type_node = node.child_by_field_name("type")
        if (type_node is not None and type_node.type in _RECORD_SPECIFIERS
                and type_node.child_by_field_name("body") is not None):
            out.append(self._record_specifier(type_node))

        is_field = node.type == "field_declaration"
        is_static = any(c.type == "storage_class_specifier" and self._node_text(c) == "static"
                        for c in node.children)
        location = self._location(node)
        nested: List[DeclarationNode] = []
        shared_refs: List[ReferenceNode] = []
        for value in node.children_by_field_name("value"):
            shared_refs.extend(self._references(value, decls=nested))

        for declarator in node.children_by_field_name("declarator"):
            name_node, function_decl = self._unwrap(declarator)
            name = self._name_text(name_node)
            if function_decl is not None:
                params, refs = self._parameters(function_decl)
                out.append(DeclarationNode(DeclKind.FUNCTION, name, location, tuple(params), tuple(refs)))
                continue
            if is_field and not is_static:
                out.append(DeclarationNode(DeclKind.OTHER_LEAF, name, location))
                continue
            refs = self._references(declarator, skip=name_node, decls=nested) + shared_refs
            shared_refs = []
            if attach_references:
                out.append(DeclarationNode(DeclKind.VARIABLE, name, location, references=tuple(refs)))
            else:
                out.append(DeclarationNode(DeclKind.VARIABLE, name, location))
                all_refs.extend(refs)
        out.extend(nested)
        return out, all_refs

    # ────────────────────────────────────────────────────────────────
    #  Executable code
    # ────────────────────────────────────────────────────────────────

    def _references(self, node: Node, skip: Optional[Node] = None,
                    decls: Optional[List[DeclarationNode]] = None) -> List[ReferenceNode]:
        """Uses below ``node``; declarations found there go to ``decls`` if given."""
        refs: List[ReferenceNode] = []
        self._scan(node, decls if decls is not None else [], refs, skip)
        return refs

    def _reference(self, node: Node, name_node: Node, refs: List[ReferenceNode]):
        name = self._node_text(name_node)
        location = self._location(node)
        if self._expands_here(node, name, location):
            return
        refs.append(ReferenceNode(name, location))

    def _range_declaration_start(self, node: Node) -> Node:
        """First token of the loop variable's declaration in a range-based for."""
        type_node = node.child_by_field_name("type")
        if type_node is None:
            return node
        for child in node.children:
            if child.start_byte >= type_node.start_byte:
                break
            if child.type in ("type_qualifier", "storage_class_specifier"):
                return child
        return type_node

    def _scan(self, node: Node, decls: List[DeclarationNode], refs: List[ReferenceNode],
              skip: Optional[Node] = None):
        """Collect local declarations and uses below ``node`` in source order."""
        kind = node.type
        if _same(node, skip) or kind in _OPAQUE:
            return
        if kind == "identifier":
            self._reference(node, node, refs)
            return
        if kind in ("qualified_identifier", "template_function"):
            inner = self._innermost_name(node)
            if inner.type == "identifier":
                self._reference(node, inner, refs)
            return
        if kind == "declaration":
            found, found_refs = self._declaration(node, attach_references=False)
            decls.extend(found)
            refs.extend(found_refs)
            return
        if kind in _PARAMETERS:
            decls.append(self._parameter(node))
            default = node.child_by_field_name("default_value")
            if default is not None:
                self._scan(default, decls, refs)
            return
        if kind == "for_range_loop":
            name_node, _ = self._unwrap(node.child_by_field_name("declarator"))
            decls.append(DeclarationNode(DeclKind.VARIABLE, self._name_text(name_node),
                                         self._location(self._range_declaration_start(node))))
            for field_name in ("right", "body"):
                part = node.child_by_field_name(field_name)
                if part is not None:
                    self._scan(part, decls, refs)
            return
        if kind in ("function_definition", "type_definition") or kind in _RECORD_SPECIFIERS:
            decls.extend(self._convert_item(node))
            return
        if kind in _CONDITIONALS:
            for items in self._active_branches(node):
                for item in items:
                    self._scan(item, decls, refs)
            return
        if kind.startswith("preproc_"):
            return
        for child in node.named_children:
            self._scan(child, decls, refs, skip)
