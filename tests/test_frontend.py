import os
import sys
import tempfile
import unittest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from unitscope.ast_model import DeclKind
from unitscope.errors import FrontendError
from unitscope.frontend import FrontendConfig, load_translation_unit, parse_translation_unit
from unitscope.preprocessor import InclusionEntry, MacroDefinitionEntry, MacroExpansionEntry, _active_lines
from unitscope.walker import find_functions, walk_recursive

MOCK_PROJECT = os.path.join(PROJECT_ROOT, "tests", "mock_project")


class TestFrontendConfig(unittest.TestCase):

    def test_from_args(self):
        config = FrontendConfig.from_args(["-I", "inc", "-Ilib", "-DFOO=2", "-UBAR", "-x", "c++"])
        self.assertEqual(config.include_paths, ["inc", "lib"])
        self.assertEqual(config.extra_flags, ["-DFOO=2", "-UBAR", "-xc++"])

    def test_macro_definitions(self):
        config = FrontendConfig(extra_flags=["-DFOO=2", "-DDEBUG", "-UDEBUG"])
        self.assertEqual(config.macro_definitions(), [("FOO", "2"), ("DEBUG", "1"), ("DEBUG", None)])

    def test_unknown_flag_is_ignored_with_warning(self):
        config = FrontendConfig(extra_flags=["-Wall", "-DX"])
        with self.assertLogs("unitscope.frontend", level="WARNING") as logs:
            self.assertEqual(config.macro_definitions(), [("X", "1")])
        self.assertTrue(any("-Wall" in line for line in logs.output))

    def test_language_selection(self):
        self.assertEqual(FrontendConfig().language_for("a.c"), "c")
        self.assertEqual(FrontendConfig().language_for("a.cc"), "c++")
        self.assertEqual(FrontendConfig().language_for("a.hpp"), "c++")
        self.assertEqual(FrontendConfig(extra_flags=["-std=c++17"]).language_for("a.h"), "c++")
        self.assertEqual(FrontendConfig(extra_flags=["-x", "c"]).language_for("a.cpp"), "c")

    def test_search_paths_include_flag_dirs(self):
        config = FrontendConfig(include_paths=["a"], extra_flags=["-Ib"])
        self.assertEqual(config.search_paths(), ["a", "b"])


class TestParseTranslationUnit(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.path = os.path.join(MOCK_PROJECT, "input_example.cc")
        cls.unit = parse_translation_unit(cls.path)

    def test_unit_properties(self):
        self.assertEqual(self.unit.file_name, self.path)
        self.assertEqual(self.unit.language, "c++")
        self.assertFalse(self.unit.has_errors)
        self.assertIsNone(self.unit.preprocessing_record)

    def test_root_children(self):
        kinds = [(c.kind, c.name) for c in self.unit.root.children]
        self.assertEqual(kinds, [
            (DeclKind.FUNCTION, "printf"),
            (DeclKind.OTHER_CONTAINER, "AA"),
            (DeclKind.FUNCTION, "main"),
        ])

    def test_void_parameter_list_has_no_parameters(self):
        f = self.unit.root.children[1].children[0]
        self.assertEqual(f.name, "f")
        self.assertEqual(f.children, ())

    def test_locals_belong_to_function(self):
        main = self.unit.root.children[2]
        self.assertEqual([(c.kind, c.name) for c in main.children], [(DeclKind.VARIABLE, "hello")])

    def test_resolve_location(self):
        loc = self.unit.resolve_location(14, 3)
        self.assertEqual((loc.file, loc.line, loc.column), (self.path, 14, 3))


class TestPreprocessing(unittest.TestCase):

    def test_disabled_branches_are_dropped(self):
        unit = load_translation_unit(os.path.join(MOCK_PROJECT, "conditional.c"))
        names = [f.name for f in find_functions(unit.root)]
        self.assertEqual(names, ["enabled", "always", "slow_path"])

    def test_short_skipped_region_is_dropped(self):
        """A disabled #ifdef branch padded with blank lines stays disabled."""
        unit = load_translation_unit(os.path.join(MOCK_PROJECT, "ifdef_short.c"))
        names = [f.name for f in find_functions(unit.root)]
        self.assertEqual(names, ["first", "shown"])

    def test_blank_output_lines_are_not_active(self):
        expanded = '#line 1 "a.c"\nint x;\n\n\nint y;\n#line 9 "a.c"\nint z;\n'
        self.assertEqual(_active_lines(expanded, "a.c"), {1, 4, 9})

    def test_command_line_define(self):
        config = FrontendConfig(extra_flags=["-DUSE_FAST"])
        unit = load_translation_unit(os.path.join(MOCK_PROJECT, "conditional.c"), config)
        names = [f.name for f in find_functions(unit.root)]
        self.assertEqual(names, ["enabled", "always", "fast_path"])

    def test_detailed_record_entries(self):
        path = os.path.join(MOCK_PROJECT, "input_example.cc")
        unit = load_translation_unit(path, FrontendConfig(enable_detailed_preprocessing=True))
        record = unit.preprocessing_record
        self.assertIsNotNone(record)
        definitions = [e.name for e in record if isinstance(e, MacroDefinitionEntry)]
        self.assertEqual(definitions, ["ZERO", "UNUSED"])
        expansions = [e for e in record if isinstance(e, MacroExpansionEntry)]
        self.assertEqual([(e.name, e.location.line, e.location.column) for e in expansions],
                         [("ZERO", 9, 10)])

    def test_definition_locations(self):
        path = os.path.join(MOCK_PROJECT, "input_example.cc")
        unit = load_translation_unit(path, FrontendConfig(enable_detailed_preprocessing=True))
        zero = next(e for e in unit.preprocessing_record if isinstance(e, MacroDefinitionEntry))
        self.assertEqual((zero.location.line, zero.location.column), (4, 9))
        self.assertEqual(zero.definition_end_location.line, 4)

    def test_inclusions_are_recorded(self):
        config = FrontendConfig(
            include_paths=[os.path.join(MOCK_PROJECT, "include")],
            enable_detailed_preprocessing=True,
        )
        unit = load_translation_unit(os.path.join(MOCK_PROJECT, "macros.c"), config)
        inclusions = [e for e in unit.preprocessing_record if isinstance(e, InclusionEntry)]
        self.assertEqual(len(inclusions), 1)
        self.assertTrue(inclusions[0].included_path.endswith("limits_local.h"))

    def test_missing_include_is_not_an_error(self):
        unit = load_translation_unit(os.path.join(MOCK_PROJECT, "macros.c"))
        self.assertFalse(unit.has_errors)


class TestFrontendErrors(unittest.TestCase):

    def test_syntax_errors_are_diagnostics(self):
        unit = parse_translation_unit(os.path.join(MOCK_PROJECT, "broken.c"))
        self.assertIsNotNone(unit)
        self.assertTrue(unit.has_errors)
        self.assertTrue(all("error" in str(d) for d in unit.diagnostics))

    def test_load_refuses_broken_unit(self):
        with self.assertRaises(FrontendError) as ctx:
            load_translation_unit(os.path.join(MOCK_PROJECT, "broken.c"))
        self.assertTrue(ctx.exception.diagnostics)

    def test_missing_file(self):
        missing = os.path.join(MOCK_PROJECT, "does_not_exist.c")
        self.assertIsNone(parse_translation_unit(missing))
        with self.assertRaises(FrontendError):
            load_translation_unit(missing)

    def test_binary_file(self):
        with tempfile.NamedTemporaryFile(suffix=".c", delete=False) as f:
            f.write(b"\x00\x01\x02binary")
            path = f.name
        try:
            self.assertIsNone(parse_translation_unit(path))
        finally:
            os.unlink(path)

    def test_every_declaration_is_visited_once(self):
        unit = load_translation_unit(os.path.join(MOCK_PROJECT, "nested.cpp"))
        nodes = [id(w.node) for w in walk_recursive(unit.root)]
        self.assertEqual(len(nodes), len(set(nodes)))


if __name__ == "__main__":
    unittest.main()
