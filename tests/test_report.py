import io
import os
import sys
import unittest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from unitscope.ast_model import SourceLocation
from unitscope.locations import format_location, location_suffix
from unitscope.report import (
    FunctionReport, MacroReport, ReportEmitter, SymbolReport, SymbolRole, render_lines,
)


class TestLocationFormatter(unittest.TestCase):

    def test_valid_location(self):
        loc = SourceLocation("input.cc", 14, 3)
        self.assertEqual(format_location(loc), "input.cc:14:3")
        self.assertEqual(location_suffix(loc), " at input.cc:14:3")

    def test_missing_location_renders_empty(self):
        self.assertEqual(format_location(None), "")
        self.assertEqual(location_suffix(None), "")


class TestReportLines(unittest.TestCase):

    def test_function_line(self):
        report = FunctionReport("main", SourceLocation("a.c", 13, 1))
        self.assertEqual(report.render(), "main at a.c:13:1")

    def test_function_without_location(self):
        """A synthesized declaration prints its bare name."""
        self.assertEqual(FunctionReport("implicit", None).render(), "implicit")

    def test_symbol_lines(self):
        loc = SourceLocation("a.c", 15, 3)
        self.assertEqual(SymbolReport(SymbolRole.DEFINITION, "x", loc).render(), "Def of x at a.c:15:3")
        self.assertEqual(SymbolReport(SymbolRole.USE, "x", loc).render(), "Use of x at a.c:15:3")

    def test_macro_line_is_verbatim(self):
        self.assertEqual(MacroReport("UNUSED", "#define UNUSED ").render(), "#define UNUSED ")

    def test_reports_are_frozen(self):
        report = FunctionReport("main", None)
        with self.assertRaises(Exception):
            report.name = "other"


class TestReportEmitter(unittest.TestCase):

    def test_one_line_per_result(self):
        out = io.StringIO()
        emitter = ReportEmitter(out)
        count = emitter.emit_functions([
            FunctionReport("f", SourceLocation("a.c", 1, 1)),
            FunctionReport("g", SourceLocation("a.c", 2, 1)),
        ])
        self.assertEqual(count, 2)
        self.assertEqual(out.getvalue(), "f at a.c:1:1\ng at a.c:2:1\n")

    def test_empty_results_write_nothing(self):
        out = io.StringIO()
        ReportEmitter(out).emit_symbols([])
        self.assertEqual(out.getvalue(), "")

    def test_render_lines(self):
        lines = render_lines([MacroReport("ZERO", "#define ZERO 0")])
        self.assertEqual(lines, ["#define ZERO 0"])


if __name__ == "__main__":
    unittest.main()
