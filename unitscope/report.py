"""
Report lines and the line-oriented emitter.

One result per line, no header and no trailing summary:

  • functions - ``NAME at FILE:LINE:COL`` (just ``NAME`` without a location)
  • symbols   - ``Def of NAME at LOC`` / ``Use of NAME at LOC``
  • macros    - ``#define NAME[(p1, p2, ...)] BODY``
"""

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, TextIO

from .ast_model import SourceLocation
from .locations import location_suffix

logger = logging.getLogger(__name__)


class SymbolRole(enum.Enum):
    DEFINITION = "Def"
    USE = "Use"


@dataclass(frozen=True)
class FunctionReport:
    name: str
    location: Optional[SourceLocation]

    def render(self) -> str:
        return self.name + location_suffix(self.location)


@dataclass(frozen=True)
class SymbolReport:
    role: SymbolRole
    name: str
    location: Optional[SourceLocation]

    def render(self) -> str:
        return f"{self.role.value} of {self.name}{location_suffix(self.location)}"


@dataclass(frozen=True)
class MacroReport:
    name: str
    text: str

    def render(self) -> str:
        return self.text


def render_lines(reports: Iterable) -> List[str]:
    return [report.render() for report in reports]


class ReportEmitter:
    """Writes report lines to ``stream`` as they arrive."""

    def __init__(self, stream: TextIO):
        self.stream = stream

    def _emit(self, reports: Iterable) -> int:
        count = 0
        for report in reports:
            self.stream.write(report.render() + "\n")
            count += 1
        logger.debug("Emitted %d report line(s)", count)
        return count

    def emit_functions(self, reports: Iterable[FunctionReport]) -> int:
        return self._emit(reports)

    def emit_symbols(self, reports: Iterable[SymbolReport]) -> int:
        return self._emit(reports)

    def emit_macros(self, reports: Iterable[MacroReport]) -> int:
        return self._emit(reports)
