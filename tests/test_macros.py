import os
import sys
import unittest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from unitscope.ast_model import SourceLocation
from unitscope.errors import PreconditionViolation
from unitscope.frontend import FrontendConfig, load_translation_unit
from unitscope.macros import extract_macros, render_macro
from unitscope.preprocessor import MacroInfo, PreprocessingRecord

MOCK_PROJECT = os.path.join(PROJECT_ROOT, "tests", "mock_project")


def _loc(line, col):
    return SourceLocation("m.c", line, col)


class TestRenderMacro(unittest.TestCase):

    def test_object_like(self):
        self.assertEqual(render_macro("ZERO", MacroInfo(False, (), ("0",))), "#define ZERO 0")

    def test_empty_body_keeps_separator(self):
        self.assertEqual(render_macro("UNUSED", MacroInfo(False)), "#define UNUSED ")

    def test_function_like_parameters(self):
        info = MacroInfo(True, ("a", "b"), ("(", "(", "a", ")", "+", "(", "b", ")", ")"))
        self.assertEqual(render_macro("ADD", info), "#define ADD(a, b) ((a)+(b))")

    def test_function_like_without_parameters(self):
        self.assertEqual(render_macro("NOW", MacroInfo(True, (), ("0",))), "#define NOW() 0")

    def test_tokens_are_concatenated(self):
        info = MacroInfo(False, (), ("unsigned", "long"))
        self.assertEqual(render_macro("UL", info), "#define UL unsignedlong")


class TestExtractFromRecord(unittest.TestCase):

    def _redefined_record(self):
        record = PreprocessingRecord("m.c")
        record.add_definition("M", MacroInfo(False, (), ("1",)), _loc(1, 9), _loc(1, 11), (1, 1))
        record.add_undef("M", _loc(3, 1), (3, 1))
        record.add_definition("M", MacroInfo(False, (), ("2",)), _loc(4, 9), _loc(4, 11), (4, 1))
        return record

    def test_none_record_is_a_precondition_violation(self):
        with self.assertRaises(PreconditionViolation):
            extract_macros(None)

    def test_redefinition_reports_each_body(self):
        lines = [r.render() for r in extract_macros(self._redefined_record())]
        self.assertEqual(lines, ["#define M 1", "#define M 2"])

    def test_history_lookup(self):
        record = self._redefined_record()
        self.assertEqual(record.macro_definition_at("M", _loc(2, 5)).body_tokens, ("1",))
        self.assertIsNone(record.macro_definition_at("M", _loc(3, 10)))
        self.assertEqual(record.macro_definition_at("M", _loc(5, 5)).body_tokens, ("2",))
        self.assertIsNone(record.macro_definition_at("M", None))

    def test_empty_record(self):
        self.assertEqual(list(extract_macros(PreprocessingRecord("m.c"))), [])


class TestExtractFromParsedUnit(unittest.TestCase):

    def test_input_example(self):
        config = FrontendConfig(enable_detailed_preprocessing=True)
        unit = load_translation_unit(os.path.join(MOCK_PROJECT, "input_example.cc"), config)
        lines = [r.render() for r in extract_macros(unit.preprocessing_record)]
        self.assertEqual(lines, ["#define ZERO 0", "#define UNUSED "])

    def test_redefinition_and_function_like(self):
        config = FrontendConfig(
            include_paths=[os.path.join(MOCK_PROJECT, "include")],
            enable_detailed_preprocessing=True,
        )
        unit = load_translation_unit(os.path.join(MOCK_PROJECT, "macros.c"), config)
        lines = [r.render() for r in extract_macros(unit.preprocessing_record)]
        self.assertEqual(lines[:3], ["#define M 1", "#define M 2", "#define ADD(a, b) ((a)+(b))"])
        self.assertIn("#define LIMIT_MAX 100", lines[3:])

    def test_stringify_empty_and_variadic_parameters(self):
        config = FrontendConfig(enable_detailed_preprocessing=True)
        unit = load_translation_unit(os.path.join(MOCK_PROJECT, "macros.c"), config)
        lines = [r.render() for r in extract_macros(unit.preprocessing_record)]
        self.assertEqual(lines[-3:], [
            "#define STR(x) #x",
            "#define EMPTY() 0",
            "#define V(f, __VA_ARGS__) g(f,__VA_ARGS__)",
        ])

    def test_without_detailed_preprocessing(self):
        unit = load_translation_unit(os.path.join(MOCK_PROJECT, "input_example.cc"))
        self.assertIsNone(unit.preprocessing_record)
        with self.assertRaises(PreconditionViolation):
            extract_macros(unit.preprocessing_record)


if __name__ == "__main__":
    unittest.main()
