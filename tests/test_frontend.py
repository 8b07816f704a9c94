import unittest
import os
import sys

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from safecpp.ast_nodes import (
    ArrayAccess, ArrayDeclaration, Assignment, BinaryOperation, Call,
    Compound, Conditional, DeclarationStmt, Dereference, ExpressionStmt,
    FunctionDecl, Identifier, IntegerLiteral, Loop, Parameter, Return,
    Variable, VariableDecl,
)
from safecpp.diagnostics import FrontendError, ParseError
from safecpp.frontend import (
    TreeBuilder, language_for_path, parse_int_literal, parse_snippet, parse_source,
)


class TestHelpers(unittest.TestCase):

    def test_language_for_path(self):
        self.assertEqual(language_for_path("src/main.c"), "c")
        self.assertEqual(language_for_path("include/api.H"), "c")
        self.assertEqual(language_for_path("src/main.cpp"), "cpp")
        self.assertEqual(language_for_path("src/main.cc"), "cpp")
        self.assertEqual(language_for_path("include/api.hpp"), "cpp")

    def test_parse_int_literal(self):
        self.assertEqual(parse_int_literal("42"), 42)
        self.assertEqual(parse_int_literal("0"), 0)
        self.assertEqual(parse_int_literal("0x1F"), 31)
        self.assertEqual(parse_int_literal("010"), 8)
        self.assertEqual(parse_int_literal("0b101"), 5)
        self.assertEqual(parse_int_literal("10UL"), 10)
        self.assertEqual(parse_int_literal("1'000"), 1000)
        self.assertIsNone(parse_int_literal("1.5"))
        self.assertIsNone(parse_int_literal("2.0f"))

    def test_unsupported_language(self):
        with self.assertRaises(FrontendError):
            TreeBuilder("rust")


class TestSnippets(unittest.TestCase):

    def test_array_declaration_and_access(self):
        stmts = parse_snippet("int a[3]; a[5];")
        self.assertEqual(stmts, [
            DeclarationStmt("a", ArrayDeclaration("a", IntegerLiteral(3))),
            ExpressionStmt(ArrayAccess("a", IntegerLiteral(5))),
        ])

    def test_array_size_from_initializer_list(self):
        stmts = parse_snippet("int a[] = {1, 2, 3};")
        self.assertEqual(stmts, [DeclarationStmt("a", ArrayDeclaration("a", IntegerLiteral(3)))])

    def test_multi_dimensional_array_keeps_first_dimension(self):
        stmts = parse_snippet("int m[5][2];")
        self.assertEqual(stmts, [DeclarationStmt("m", ArrayDeclaration("m", IntegerLiteral(5)))])

    def test_new_and_delete(self):
        stmts = parse_snippet("int *x = new int; delete x;")
        self.assertEqual(stmts, [
            DeclarationStmt("x", Call("new"), is_pointer=True),
            ExpressionStmt(Call("delete", (Identifier("x"),))),
        ])

    def test_array_new_and_delete(self):
        stmts = parse_snippet("int *p = new int[8]; delete[] p;")
        self.assertEqual(stmts[0], DeclarationStmt("p", Call("new[]", (IntegerLiteral(8),)), is_pointer=True))
        self.assertEqual(stmts[1], ExpressionStmt(Call("delete[]", (Identifier("p"),))))

    def test_null_constants(self):
        for source in ("int *x = nullptr;", "int *x = NULL;", "int *x = 0;"):
            with self.subTest(source=source):
                self.assertEqual(parse_snippet(source),
                                 [DeclarationStmt("x", IntegerLiteral(0), is_pointer=True)])

    def test_dereference_and_address_of(self):
        stmts = parse_snippet("int n = 1; int *p = &n; *p = 2; int y = *p;")
        self.assertEqual(stmts, [
            DeclarationStmt("n", IntegerLiteral(1)),
            DeclarationStmt("p", Variable("n"), is_pointer=True),
            ExpressionStmt(Assignment(Dereference(Identifier("p")), IntegerLiteral(2))),
            DeclarationStmt("y", Dereference(Identifier("p"))),
        ])

    def test_arrow_is_dereference(self):
        stmts = parse_snippet("p->count = 1;")
        self.assertEqual(stmts, [
            ExpressionStmt(Assignment(Dereference(Identifier("p")), IntegerLiteral(1))),
        ])

    def test_uninitialized_declaration(self):
        self.assertEqual(parse_snippet("int n;"), [DeclarationStmt("n")])

    def test_multiple_declarators(self):
        stmts = parse_snippet("int *a, b = 2;")
        self.assertEqual(stmts, [
            DeclarationStmt("a", is_pointer=True),
            DeclarationStmt("b", IntegerLiteral(2)),
        ])

    def test_compound_assignment_and_increment(self):
        stmts = parse_snippet("x += 2; i++;")
        self.assertEqual(stmts, [
            ExpressionStmt(Assignment(Identifier("x"),
                                      BinaryOperation("+", Identifier("x"), IntegerLiteral(2)))),
            ExpressionStmt(Assignment(Identifier("i"),
                                      BinaryOperation("+", Identifier("i"), IntegerLiteral(1)))),
        ])

    def test_calls_and_casts(self):
        stmts = parse_snippet("int *p = (int *)malloc(sizeof(int)); free(p);", language="c")
        self.assertEqual(stmts, [
            DeclarationStmt("p", Call("malloc", (Call("<sizeof_expression>"),)), is_pointer=True),
            ExpressionStmt(Call("free", (Identifier("p"),))),
        ])

    def test_if_else(self):
        stmts = parse_snippet("if (p) { free(p); } else return;", language="c")
        self.assertEqual(len(stmts), 1)
        cond = stmts[0]
        self.assertIsInstance(cond, Conditional)
        self.assertEqual(cond.condition, Identifier("p"))
        self.assertEqual(cond.then_branch,
                         Compound((ExpressionStmt(Call("free", (Identifier("p"),))),)))
        self.assertEqual(cond.else_branch, Return())

    def test_for_loop(self):
        stmts = parse_snippet("for (int i = 0; i < 3; i++) a[i] = 0;")
        self.assertEqual(stmts[0], DeclarationStmt("i", IntegerLiteral(0)))
        loop = stmts[1]
        self.assertIsInstance(loop, Loop)
        self.assertEqual(loop.condition, BinaryOperation("<", Identifier("i"), IntegerLiteral(3)))
        self.assertIsInstance(loop.body, Compound)
        self.assertEqual(loop.body.statements[0],
                         ExpressionStmt(Assignment(ArrayAccess("a", Identifier("i")), IntegerLiteral(0))))

    def test_while_loop(self):
        stmts = parse_snippet("while (n) { n = n - 1; }")
        self.assertIsInstance(stmts[0], Loop)
        self.assertEqual(stmts[0].condition, Identifier("n"))

    def test_unmodelled_expression_keeps_children(self):
        stmts = parse_snippet("int y = c ? *p : 0;")
        self.assertEqual(len(stmts), 1)
        init = stmts[0].initializer
        self.assertIsInstance(init, Call)
        self.assertTrue(init.name.startswith("<"))
        self.assertIn(Dereference(Identifier("p")), init.args)


class TestTranslationUnits(unittest.TestCase):

    def test_prototype_and_definition(self):
        decls = parse_source("void g(int *p, int n);\nint main(void) { return 0; }\n")
        self.assertEqual(decls, [
            FunctionDecl("g", (Parameter("p", is_pointer=True), Parameter("n"))),
            FunctionDecl("main", (), Compound((Return(IntegerLiteral(0)),))),
        ])

    def test_variadic_prototype(self):
        decls = parse_source("int log_msg(const char *fmt, ...);", language="c")
        self.assertEqual(decls, [
            FunctionDecl("log_msg", (Parameter("fmt", is_pointer=True),), variadic=True),
        ])

    def test_array_parameter_is_pointer(self):
        decls = parse_source("void fill(int buf[], int n) { }", language="c")
        self.assertEqual(decls[0].params, (Parameter("buf", is_pointer=True), Parameter("n")))

    def test_global_variables(self):
        decls = parse_source("int table[4];\nint *cursor = 0;\n", language="c")
        self.assertEqual(decls, [
            VariableDecl("table", ArrayDeclaration("table", IntegerLiteral(4))),
            VariableDecl("cursor", IntegerLiteral(0), is_pointer=True),
        ])

    def test_namespace_and_extern_c(self):
        source = (
            'namespace io { void reset(int *p) { *p = 0; } }\n'
            'extern "C" { int c_api(int n); }\n'
        )
        names = [d.name for d in parse_source(source)]
        self.assertEqual(names, ["reset", "c_api"])

    def test_class_bodies_skipped(self):
        source = "struct S { int v; };\nint main() { return 0; }\n"
        decls = parse_source(source)
        self.assertEqual([d.name for d in decls], ["main"])

    def test_syntax_error_lenient(self):
        decls = parse_source("int main() { int x = ; return 0; }")
        self.assertIsInstance(decls, list)

    def test_syntax_error_strict(self):
        with self.assertRaises(ParseError):
            parse_source("int main() { int x = ; return 0; }", strict=True)

    def test_nesting_bound(self):
        source = "int y = " + "(" * 50 + "1" + ")" * 50 + ";"
        with self.assertRaises(FrontendError):
            parse_snippet(source, max_depth=20)
        self.assertEqual(parse_snippet(source), [DeclarationStmt("y", IntegerLiteral(1))])


if __name__ == "__main__":
    unittest.main()
