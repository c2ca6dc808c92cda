"""
Command-line programs.

  unitscope-functions          <file>           recursive-descent enumeration
  unitscope-functions-toplevel <file>           top-level declarations only
  unitscope-functions-visitor  <file>           visitor-based enumeration
  unitscope-symbol             <file> <symbol>  Def of / Use of lines
  unitscope-macros             <file>           reconstructed #define lines

Results go to stdout, usage and errors to stderr.  Exit status is 0 on
success (including empty results) and 1 otherwise.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .errors import FrontendError, PreconditionViolation, UnitscopeError, UsageError
from .frontend import FrontendConfig, load_translation_unit
from .macros import extract_macros
from .report import ReportEmitter
from .symbols import locate_symbol
from .walker import function_reports

logger = logging.getLogger(__name__)


class _ArgumentParser(argparse.ArgumentParser):
    """argparse with usage errors raised instead of exiting with status 2."""

    def error(self, message):
        raise UsageError(message)


def _build_parser(prog: str, description: str, with_symbol: bool = False) -> _ArgumentParser:
    parser = _ArgumentParser(prog=prog, description=description)
    parser.add_argument("file", metavar="file-to-compile", help="C or C++ source file")
    if with_symbol:
        parser.add_argument("symbol", help="exact name to look up")
    parser.add_argument("-I", dest="include_dirs", action="append", default=[],
                        metavar="DIR", help="add an include search directory")
    parser.add_argument("-D", dest="defines", action="append", default=[],
                        metavar="NAME[=VALUE]", help="predefine a macro")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging on stderr")
    return parser


def _setup_logging(verbose: bool):
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _config(args, detailed: bool = False) -> FrontendConfig:
    return FrontendConfig(
        include_paths=list(args.include_dirs),
        extra_flags=["-D" + d for d in args.defines],
        enable_detailed_preprocessing=detailed,
    )


def _run(parser: _ArgumentParser, argv: Optional[List[str]], action) -> int:
    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        parser.print_usage(sys.stderr)
        sys.stderr.write(f"{parser.prog}: error: {e}\n")
        return 1
    _setup_logging(args.verbose)
    try:
        action(args, ReportEmitter(sys.stdout))
    except FrontendError as e:
        sys.stderr.write(f"{parser.prog}: front-end error: {e}\n")
        for diagnostic in e.diagnostics:
            sys.stderr.write(f"{diagnostic}\n")
        return 1
    except PreconditionViolation as e:
        sys.stderr.write(f"{parser.prog}: {e}\n")
        return 1
    except UnitscopeError as e:
        sys.stderr.write(f"{parser.prog}: error: {e}\n")
        return 1
    return 0


# ═══════════════════════════════════════════════════════════════════════
#  Entry points
# ═══════════════════════════════════════════════════════════════════════

def _functions_main(prog: str, strategy: str, description: str, argv) -> int:
    def action(args, emitter):
        unit = load_translation_unit(args.file, _config(args))
        emitter.emit_functions(function_reports(unit.root, strategy))

    return _run(_build_parser(prog, description), argv, action)


def functions_main(argv: Optional[List[str]] = None) -> int:
    return _functions_main("unitscope-functions", "recursive",
                           "List every function declaration, nested ones included.", argv)


def functions_toplevel_main(argv: Optional[List[str]] = None) -> int:
    return _functions_main("unitscope-functions-toplevel", "top-level",
                           "List the functions declared at file scope.", argv)


def functions_visitor_main(argv: Optional[List[str]] = None) -> int:
    return _functions_main("unitscope-functions-visitor", "visitor",
                           "List every function declaration using the visitor traversal.", argv)


def symbol_main(argv: Optional[List[str]] = None) -> int:
    def action(args, emitter):
        unit = load_translation_unit(args.file, _config(args))
        emitter.emit_symbols(locate_symbol(unit.root, args.symbol))

    parser = _build_parser("unitscope-symbol",
                           "List the definitions and uses of a variable name.",
                           with_symbol=True)
    return _run(parser, argv, action)


def macros_main(argv: Optional[List[str]] = None) -> int:
    def action(args, emitter):
        unit = load_translation_unit(args.file, _config(args, detailed=True))
        emitter.emit_macros(extract_macros(unit.preprocessing_record))

    return _run(_build_parser("unitscope-macros", "List the macros defined in a file."),
                argv, action)


if __name__ == "__main__":
    sys.exit(functions_main())
