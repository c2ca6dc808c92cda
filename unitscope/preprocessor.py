"""
Preprocessing pass and preprocessing record, built on ``pcpp``.

The pass serves two purposes:

  • Active regions - the ``#line`` directives pcpp emits map every line of
    the expanded output back to the original file, which tells the
    front-end which lines of the main file survived conditional
    compilation.
  • Preprocessing record - every ``#define``, ``#undef`` and ``#include``
    pcpp executes is logged in translation-unit order.  The per-name
    directive history answers "which definition of NAME is active at
    location L", which is what macro reconstruction and macro-expansion
    detection need when a name is defined, undefined and redefined in the
    same file.
"""

import io
import os
import re
import logging
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from pcpp import Preprocessor, OutputDirective, Action

from .ast_model import SourceLocation

logger = logging.getLogger(__name__)

_LINE_DIRECTIVE_RE = re.compile(r'^#line\s+(\d+)\s+"([^"]+)"')
_DIRECTIVE_RE = re.compile(r'^\s*#\s*(define|undef|include)\b\s*')

# Ordering key inside the translation unit: (main-file line, main-file column,
# sequence).  Directives coming from an included file share the position of
# the top-level #include that pulled them in.
_OrderKey = Tuple[int, int, float]
_PREDEFINED_ANCHOR = (0, 0)


# ═══════════════════════════════════════════════════════════════════════
#  Record entries
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MacroInfo:
    """The body of one macro definition."""
    is_function_like: bool
    parameter_names: Tuple[str, ...] = ()
    body_tokens: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MacroDefinitionEntry:
    name: str
    location: Optional[SourceLocation]
    definition_end_location: Optional[SourceLocation]


@dataclass(frozen=True)
class InclusionEntry:
    file_name: str
    included_path: str
    is_system: bool
    location: Optional[SourceLocation]


@dataclass(frozen=True)
class MacroExpansionEntry:
    name: str
    location: Optional[SourceLocation]


MacroRecordEntry = Union[MacroDefinitionEntry, InclusionEntry, MacroExpansionEntry]


@dataclass(frozen=True)
class _MacroDirective:
    key: _OrderKey
    info: Optional[MacroInfo]   # None for #undef


class PreprocessingRecord:
    """Ordered log of preprocessing entities plus the macro directive history."""

    def __init__(self, main_file: str):
        self.main_file = main_file
        self._entries: List[Tuple[_OrderKey, MacroRecordEntry]] = []
        self._history: Dict[str, List[_MacroDirective]] = {}
        self._keys: Dict[SourceLocation, _OrderKey] = {}
        self._sequence = 0

    def __iter__(self) -> Iterator[MacroRecordEntry]:
        for _, entry in sorted(self._entries, key=lambda item: item[0]):
            yield entry

    def __len__(self) -> int:
        return len(self._entries)

    # ────────────────────────────────────────────────────────────────
    #  Recording
    # ────────────────────────────────────────────────────────────────

    def _next_key(self, anchor: Tuple[int, int]) -> _OrderKey:
        self._sequence += 1
        return (anchor[0], anchor[1], self._sequence)

    def add_definition(self, name: str, info: MacroInfo,
                       location: SourceLocation, end_location: SourceLocation,
                       anchor: Tuple[int, int]) -> MacroDefinitionEntry:
        key = self._next_key(anchor)
        self._history.setdefault(name, []).append(_MacroDirective(key, info))
        self._keys[location] = key
        self._keys[end_location] = key
        entry = MacroDefinitionEntry(name, location, end_location)
        self._entries.append((key, entry))
        return entry

    def add_undef(self, name: str, location: SourceLocation, anchor: Tuple[int, int]):
        key = self._next_key(anchor)
        self._history.setdefault(name, []).append(_MacroDirective(key, None))
        self._keys[location] = key

    def add_predefined(self, name: str, info: Optional[MacroInfo]):
        """Command-line definitions: active everywhere, never listed as entries."""
        key = self._next_key(_PREDEFINED_ANCHOR)
        self._history.setdefault(name, []).append(_MacroDirective(key, info))

    def add_inclusion(self, included_path: str, is_system: bool,
                      location: SourceLocation, anchor: Tuple[int, int]):
        key = self._next_key(anchor)
        self._keys[location] = key
        self._entries.append((key, InclusionEntry(location.file, included_path, is_system, location)))

    def add_expansion(self, name: str, location: SourceLocation):
        key = (location.line, location.column, float("inf"))
        self._entries.append((key, MacroExpansionEntry(name, location)))

    # ────────────────────────────────────────────────────────────────
    #  Lookup
    # ────────────────────────────────────────────────────────────────

    def _key_for(self, location: Optional[SourceLocation]) -> Optional[_OrderKey]:
        if location is None:
            return None
        key = self._keys.get(location)
        if key is not None:
            return key
        if location.file == self.main_file:
            return (location.line, location.column, float("inf"))
        # Somewhere inside an included file: the last directive recorded
        # at or before that position in the same file.
        best = None
        for known, known_key in self._keys.items():
            if known.file != location.file:
                continue
            if (known.line, known.column) > (location.line, location.column):
                continue
            if best is None or known_key > best:
                best = known_key
        return best

    def macro_definition_at(self, name: str,
                            location: Optional[SourceLocation]) -> Optional[MacroInfo]:
        """Return the definition of ``name`` active at ``location``.

        Walks the directive history of ``name`` and keeps the last
        ``#define``/``#undef`` ordered at or before ``location``.  Returns
        ``None`` when the name is undefined there or the location is unknown.
        """
        key = self._key_for(location)
        if key is None:
            return None
        active = None
        for directive in self._history.get(name, ()):
            if directive.key > key:
                break
            active = directive.info
        return active


# ═══════════════════════════════════════════════════════════════════════
#  pcpp integration
# ═══════════════════════════════════════════════════════════════════════

def _is_trivia(tok) -> bool:
    return not tok.value.strip() or tok.type.startswith("CPP_COMMENT")


def _macro_info(macro) -> MacroInfo:
    """Convert a pcpp ``Macro`` into a MacroInfo.

    pcpp drops the ``#`` of a stringified parameter while prescanning and
    remembers it in ``str_patch``; it is put back so the body reads as
    written.
    """
    arglist = getattr(macro, "arglist", None)
    stringified = {index for _, index in getattr(macro, "str_patch", None) or ()}
    tokens = []
    for i, tok in enumerate(macro.value):
        if i in stringified:
            tokens.append("#")
        if _is_trivia(tok):
            continue
        tokens.append(tok.value)
    return MacroInfo(
        is_function_like=arglist is not None,
        parameter_names=tuple(arglist or ()),
        body_tokens=tuple(tokens),
    )


def _same_file(a: str, b: str) -> bool:
    return os.path.normcase(os.path.abspath(a)) == os.path.normcase(os.path.abspath(b))


class _RecordingPreprocessor(Preprocessor):
    """A pcpp Preprocessor that logs executed directives into a record.

    Missing includes and pcpp errors are routed to ``logging`` at DEBUG
    level instead of stderr; unfound includes pass through unchanged so
    the rest of the file is still preprocessed.
    """

    def __init__(self, main_file: str, main_text: str, record: PreprocessingRecord):
        # pcpp calls define() from its own constructor, so this state has
        # to exist first.
        self._main_file = main_file
        self._record = record
        self._anchor = _PREDEFINED_ANCHOR
        self._lines: Dict[str, List[str]] = {main_file: main_text.splitlines()}
        super().__init__()

    # ── pcpp hooks ──

    def on_include_not_found(self, is_malformed, is_system_include, curdir, includepath):
        logger.debug("pcpp: include not found: %s (system=%s)", includepath, is_system_include)
        raise OutputDirective(Action.IgnoreAndPassThrough)

    def on_error(self, file, line, msg):
        logger.debug("pcpp: %s:%s: %s", file, line, msg)

    def on_file_open(self, is_system_include, includepath):
        handle = super().on_file_open(is_system_include, includepath)
        text = handle.read()
        handle.close()
        self._lines[includepath] = text.splitlines()

        directive = getattr(self, "lastdirective", None)
        if directive is not None:
            source = self._canonical(getattr(directive, "source", None))
            location = self._directive_location(source, directive.lineno)
            anchor = self._anchor_for(source, location)
            if source == self._main_file:
                self._anchor = anchor
            self._record.add_inclusion(includepath, bool(is_system_include), location, anchor)
        return io.StringIO(text)

    def define(self, tokens):
        super().define(tokens)
        if isinstance(tokens, str):
            return
        name_tok = next((t for t in tokens if not _is_trivia(t)), None)
        if name_tok is None or name_tok.value not in self.macros:
            return
        source = self._canonical(getattr(name_tok, "source", None))
        location, end_location = self._definition_span(source, name_tok.lineno, name_tok.value)
        self._record.add_definition(
            name_tok.value, _macro_info(self.macros[name_tok.value]),
            location, end_location, self._anchor_for(source, location),
        )

    def undef(self, tokens):
        super().undef(tokens)
        if isinstance(tokens, str):
            return
        name_tok = next((t for t in tokens if not _is_trivia(t)), None)
        if name_tok is None:
            return
        source = self._canonical(getattr(name_tok, "source", None))
        location = self._directive_location(source, name_tok.lineno)
        self._record.add_undef(name_tok.value, location, self._anchor_for(source, location))

    # ── locations ──

    def _canonical(self, source: Optional[str]) -> str:
        if not source or _same_file(source, self._main_file):
            return self._main_file
        return source

    def _anchor_for(self, source: str, location: SourceLocation) -> Tuple[int, int]:
        if source == self._main_file:
            return (location.line, location.column)
        return self._anchor

    def _source_lines(self, source: str) -> List[str]:
        if source not in self._lines:
            try:
                with open(source, "r", encoding="utf-8", errors="replace") as f:
                    self._lines[source] = f.read().splitlines()
            except OSError as e:
                logger.debug("Cannot read %s for locations: %s", source, e)
                self._lines[source] = []
        return self._lines[source]

    def _line_text(self, source: str, lineno: int) -> str:
        lines = self._source_lines(source)
        if 1 <= lineno <= len(lines):
            return lines[lineno - 1]
        return ""

    def _directive_location(self, source: str, lineno: int) -> SourceLocation:
        text = self._line_text(source, lineno)
        column = text.find("#") + 1 if "#" in text else 1
        return SourceLocation(source, lineno, column)

    def _definition_span(self, source: str, lineno: int,
                         name: str) -> Tuple[SourceLocation, SourceLocation]:
        """Location of the macro name and of the end of its definition."""
        text = self._line_text(source, lineno)
        m = _DIRECTIVE_RE.match(text)
        if m and text.startswith(name, m.end()):
            column = m.end() + 1
        else:
            column = max(text.find(name), 0) + 1

        lines = self._source_lines(source)
        last = lineno
        while last < len(lines) and lines[last - 1].rstrip().endswith("\\"):
            last += 1
        end_column = max(len(self._line_text(source, last).rstrip()), column + len(name) - 1)
        return (SourceLocation(source, lineno, column),
                SourceLocation(source, last, end_column))


# ═══════════════════════════════════════════════════════════════════════
#  Engine
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class PreprocessResult:
    """Outcome of one preprocessing pass.

    ``active_lines`` is ``None`` when pcpp failed; callers then treat every
    line as active.
    """
    record: PreprocessingRecord
    active_lines: Optional[Set[int]]
    error: Optional[str] = None


class PreprocessorEngine:
    """
    A C preprocessor wrapper using 'pcpp'.

    Runs one file through pcpp with the configured include directories and
    definitions, records the directives it executes, and parses the #line
    directives of the output to find the active lines of the main file.
    """

    def __init__(self, include_dirs: Optional[List[str]] = None):
        self.include_dirs: List[str] = list(include_dirs or [])
        # Pre-defined macros (e.g. from -D flags), in command-line order
        self.defines: Dict[str, str] = {}

    def add_define(self, name: str, value: str = "1"):
        """Add a global macro definition (e.g. -DDEBUG=1)."""
        self.defines[name] = value

    def remove_define(self, name: str):
        """Drop an earlier global definition (e.g. -UDEBUG)."""
        self.defines.pop(name, None)

    def preprocess(self, file_path: str, text: str) -> PreprocessResult:
        """Preprocess ``text`` (the contents of ``file_path``)."""
        record = PreprocessingRecord(file_path)
        pp = _RecordingPreprocessor(file_path, text, record)

        for d in self.include_dirs:
            pp.add_path(d)

        for name, value in self.defines.items():
            pp.define(f"{name} {value}")
            macro_name = re.match(r"[A-Za-z_]\w*", name)
            if macro_name and macro_name.group(0) in pp.macros:
                record.add_predefined(macro_name.group(0), _macro_info(pp.macros[macro_name.group(0)]))

        output_buffer = io.StringIO()
        try:
            pp.parse(text, source=file_path)
            pp.write(output_buffer)
        except Exception as e:
            logger.error("Preprocessing failed for %s: %s", file_path, e)
            return PreprocessResult(record, None, error=str(e))

        expanded_text = output_buffer.getvalue()
        active = _active_lines(expanded_text, file_path)
        logger.debug("Preprocessed %s: %d active lines, %d record entries",
                     file_path, len(active), len(record))
        return PreprocessResult(record, active)


def _active_lines(expanded_text: str, file_path: str) -> Set[int]:
    """Lines of ``file_path`` that appear in the expanded output.

    Format of the markers: #line 123 "filename".  The *next* line of the
    output is line 123 of that file.  pcpp pads short skipped regions with
    blank lines instead of a marker, so only non-blank lines count.
    """
    active: Set[int] = set()
    current_line = 1
    current_file = file_path

    for line in expanded_text.splitlines():
        m = _LINE_DIRECTIVE_RE.match(line)
        if m:
            current_line = int(m.group(1))
            current_file = m.group(2)
            continue
        if line.strip() and (current_file == file_path or _same_file(current_file, file_path)):
            active.add(current_line)
        current_line += 1
    return active
