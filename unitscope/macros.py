"""Macro Table Extractor: rebuilds ``#define`` lines from the preprocessing record."""

import logging
from typing import Iterator, Optional

from .errors import PreconditionViolation
from .preprocessor import MacroDefinitionEntry, MacroInfo, PreprocessingRecord
from .report import MacroReport

logger = logging.getLogger(__name__)


def render_macro(name: str, info: MacroInfo) -> str:
    """``#define NAME[(p1, p2)] BODY``.

    The space after the name or parameter list is always written, so a macro
    with an empty body renders as ``#define NAME `` with a trailing space.
    Body tokens are concatenated without separators.
    """
    text = "#define " + name
    if info.is_function_like:
        text += "(" + ", ".join(info.parameter_names) + ")"
    return text + " " + "".join(info.body_tokens)


def extract_macros(record: Optional[PreprocessingRecord]) -> Iterator[MacroReport]:
    """Yield one report per macro definition, in translation-unit order.

    Each definition is resolved through the record's directive history at
    the end of its own definition, so a redefined name reports each body
    where it was written.
    """
    if record is None:
        raise PreconditionViolation(
            "macro extraction needs a preprocessing record; "
            "parse the unit with enable_detailed_preprocessing=True")
    return _extract(record)


def _extract(record: PreprocessingRecord) -> Iterator[MacroReport]:
    for entry in record:
        if not isinstance(entry, MacroDefinitionEntry):
            continue
        info = record.macro_definition_at(entry.name, entry.definition_end_location)
        if info is None:
            logger.debug("No macro info for %s at %s", entry.name, entry.definition_end_location)
            continue
        yield MacroReport(entry.name, render_macro(entry.name, info))
