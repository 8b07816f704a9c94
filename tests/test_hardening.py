"""
Additional hardening tests:
  1. Source reader rejects missing and binary files
  2. Deeply nested trees are refused instead of overflowing the stack
  3. Diagnostic kinds parse leniently and map to categories
  4. Knowledge base covers every diagnostic kind
  5. MCP server module imports successfully and registers all 5 tools
"""
import unittest
import os
import sys
import tempfile

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from safecpp.analyzer import Analyzer, analyze_file, read_source
from safecpp.ast_nodes import (
    Assignment, BinaryOperation, Dereference, ExpressionStmt, Identifier,
    IntegerLiteral, children, iter_expressions,
)
from safecpp.config import AnalyzerConfig
from safecpp.diagnostics import (
    Diagnostic, DiagnosticCategory, DiagnosticKind, FrontendError,
)
from safecpp.knowledge_base import format_explanation, get_all

MOCK_PROJECT = os.path.join(PROJECT_ROOT, "tests", "mock_project")


def nested_dereference(depth):
    expr = Identifier("p")
    for _ in range(depth):
        expr = Dereference(expr)
    return expr


class TestSourceFiles(unittest.TestCase):

    def test_missing_file(self):
        with self.assertRaises(FrontendError):
            read_source(os.path.join(MOCK_PROJECT, "missing.c"))

    def test_binary_file(self):
        with tempfile.NamedTemporaryFile("wb", suffix=".c", delete=False) as f:
            f.write(b"\x7fELF\x00\x00\x01\x02binary")
        try:
            with self.assertRaises(FrontendError):
                read_source(f.name)
            with self.assertRaises(FrontendError):
                analyze_file(f.name)
        finally:
            os.unlink(f.name)

    def test_invalid_utf8_is_replaced(self):
        with tempfile.NamedTemporaryFile("wb", suffix=".c", delete=False) as f:
            f.write(b"int main(void) { return 0; } /* \xff\xfe */\n")
        try:
            self.assertIn("int main", read_source(f.name))
            self.assertTrue(analyze_file(f.name, AnalyzerConfig(preprocess=False)).ok)
        finally:
            os.unlink(f.name)


class TestDepthBounds(unittest.TestCase):

    def test_iter_expressions_bound(self):
        with self.assertRaises(ValueError):
            list(iter_expressions(nested_dereference(30), max_depth=10))
        self.assertEqual(len(list(iter_expressions(nested_dereference(30), max_depth=50))), 31)

    def test_children_rejects_non_expressions(self):
        with self.assertRaises(TypeError):
            children("p")
        with self.assertRaises(TypeError):
            children(ExpressionStmt(Identifier("p")))

    def test_assignment_children_order(self):
        expr = Assignment(Identifier("x"), IntegerLiteral(1))
        self.assertEqual(children(expr), (IntegerLiteral(1), Identifier("x")))

    def test_checkers_refuse_deep_trees(self):
        """Each checker fails its own pass; none raises RecursionError."""
        nodes = [ExpressionStmt(nested_dereference(5000))]
        report = Analyzer(AnalyzerConfig(max_depth=100)).analyze(nodes)
        self.assertEqual(sorted(f.checker for f in report.failures),
                         ["array-bounds", "memory-lifecycle", "pointer-state"])
        self.assertTrue(all("nesting exceeds" in f.message for f in report.failures))

    def test_deep_binary_chain(self):
        expr = IntegerLiteral(0)
        for i in range(300):
            expr = BinaryOperation("+", expr, IntegerLiteral(i))
        report = Analyzer().analyze([ExpressionStmt(expr)])
        self.assertEqual(len(report.failures), 3)


class TestDiagnostics(unittest.TestCase):

    def test_parse_kind(self):
        for text in ("DoubleFree", "doublefree", "DOUBLE_FREE", "double_free", " DoubleFree "):
            with self.subTest(text=text):
                self.assertIs(DiagnosticKind.parse(text), DiagnosticKind.DOUBLE_FREE)
        with self.assertRaises(ValueError):
            DiagnosticKind.parse("UseAfterScope")

    def test_categories(self):
        self.assertIs(DiagnosticKind.OUT_OF_BOUNDS.category, DiagnosticCategory.ARRAY)
        self.assertIs(DiagnosticKind.UNINITIALIZED_ACCESS.category, DiagnosticCategory.MEMORY)
        self.assertIs(DiagnosticKind.NON_POINTER_ARGUMENT.category, DiagnosticCategory.POINTER)
        self.assertEqual(DiagnosticCategory.POINTER.description, "Pointer error")
        for kind in DiagnosticKind:
            self.assertIsInstance(kind.category, DiagnosticCategory)

    def test_kind_values(self):
        self.assertEqual({k.value for k in DiagnosticKind}, {
            "OutOfBounds", "MemoryLeak", "DoubleFree", "InvalidFree",
            "UninitializedAccess", "NullPointerDereference",
            "IncorrectNumberOfArguments", "NonPointerArgumentForPointerParameter",
        })

    def test_diagnostic_str(self):
        diag = Diagnostic(kind=DiagnosticKind.INVALID_FREE, name="p",
                          detail="Invalid free of pointer 'p'")
        self.assertEqual(str(diag), "InvalidFree: Invalid free of pointer 'p'")


class TestKnowledgeBase(unittest.TestCase):

    def test_every_kind_documented(self):
        entries = get_all()
        self.assertEqual(set(entries), set(DiagnosticKind))
        for kind, info in entries.items():
            for field_name in ("title", "rationale", "non_compliant", "compliant", "fix_strategy"):
                self.assertTrue(getattr(info, field_name), f"{kind.value}.{field_name} is empty")
            self.assertTrue(info.reported_by, kind.value)

    def test_format_explanation(self):
        text = format_explanation("NullPointerDereference")
        self.assertIn("**Category**: Pointer", text)
        self.assertIn("```cpp", text)
        self.assertIn("Unknown diagnostic kind", format_explanation("Bogus"))


class TestMcpServer(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        import fastmcp_server
        cls.server = fastmcp_server

    def test_tools_registered(self):
        tools = self.server.mcp._tool_manager._tools
        for name in ("set_include_dirs", "analyze_file", "analyze_snippet",
                     "explain_diagnostic", "list_diagnostic_kinds"):
            self.assertIn(name, tools)

    def test_analyze_snippet_tool(self):
        result = self.server.analyze_snippet("int *x = new int; delete x; delete x;")
        self.assertIn("DoubleFree", result)
        self.assertIn("memory-lifecycle", result)
        self.assertIn("pointer-state", result)

        result = self.server.analyze_snippet("int *x = new int; delete x;")
        self.assertIn("No memory issues detected.", result)

        self.assertTrue(self.server.analyze_snippet("int x;", language="java").startswith("Error"))

    def test_analyze_file_tool(self):
        result = self.server.analyze_file(os.path.join(MOCK_PROJECT, "bounds.cpp"))
        self.assertIn("OutOfBounds", result)
        self.assertTrue(self.server.analyze_file("/no/such/file.c").startswith("Error"))

    def test_set_include_dirs_tool(self):
        try:
            result = self.server.set_include_dirs(os.path.join(MOCK_PROJECT, "include"), "DEBUG_ENABLED")
            self.assertIn("1 configured", result)
            self.assertIn("DEBUG_ENABLED=1", result)
            self.assertIn("DoubleFree",
                          self.server.analyze_file(os.path.join(MOCK_PROJECT, "feature_flags.c")))
        finally:
            self.server.set_include_dirs()

    def test_list_and_explain_tools(self):
        table = self.server.list_diagnostic_kinds()
        for kind in DiagnosticKind:
            self.assertIn(kind.value, table)
        self.assertIn("Memory released twice", self.server.explain_diagnostic("double_free"))


if __name__ == "__main__":
    unittest.main()
