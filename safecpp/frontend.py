"""
Front end — lowers C/C++ source into the safecpp AST using tree-sitter.

  • C++ sources use the tree-sitter-cpp grammar, C sources (.c / .h) the
    tree-sitter-c grammar
  • Function definitions and prototypes become FunctionDecl (prototypes
    have no body); file-scope variables become VariableDecl
  • Blocks, declarations, expression statements, return, if/switch and
    all loop forms become statements
  • ``new`` / ``delete`` become calls named ``new``, ``new[]``, ``delete``
    and ``delete[]``; ``nullptr`` and ``NULL`` become the literal 0
  • ``p->f`` becomes a dereference of ``p``; ``&x`` a Variable reference
  • Anything else in expression position becomes an opaque call named
    ``<node-kind>`` over its sub-expressions, so nested dereferences and
    array accesses are still visible to the checkers

Class bodies, templates and other constructs without a counterpart in the
AST are skipped (logged at DEBUG).
"""

import logging
import os
import re
from typing import List, Optional, Tuple, Union

import tree_sitter_c as tsc
import tree_sitter_cpp as tscpp
from tree_sitter import Language, Node, Parser

from .ast_nodes import (
    ArrayAccess, ArrayDeclaration, Assignment, BinaryOperation, Call,
    Compound, Conditional, Declaration, DeclarationStmt, Dereference,
    Expression, ExpressionStmt, FunctionDecl, Identifier, IntegerLiteral,
    Loop, Parameter, Return, Statement, Variable, VariableDecl,
)
from .diagnostics import FrontendError, ParseError

logger = logging.getLogger(__name__)

C_LANGUAGE = Language(tsc.language())
CPP_LANGUAGE = Language(tscpp.language())

_LANGUAGES = {"c": C_LANGUAGE, "cpp": CPP_LANGUAGE}

C_EXTENSIONS = frozenset({".c", ".h"})

DEFAULT_MAX_DEPTH = 200

SNIPPET_FUNCTION = "__safecpp_snippet__"

_NULL_NAMES = frozenset({"NULL", "nullptr"})

# Top-level nodes whose children are themselves top-level items
_TOP_LEVEL_CONTAINERS = frozenset({
    "declaration_list", "preproc_if", "preproc_ifdef", "preproc_else",
    "preproc_elif", "preproc_elifdef",
})

# Named children that are never expressions (skipped inside opaque nodes)
_NON_EXPRESSION_SUFFIXES = (
    "_statement", "_declarator", "_specifier", "_type", "type_identifier",
    "type_descriptor", "comment", "template_argument_list",
    "lambda_capture_specifier", "parameter_list", "escape_sequence",
    "string_content", "raw_string_delimiter", "raw_string_content",
    "field_identifier", "primitive_type", "requires_clause",
)

_INT_SUFFIX = re.compile(r"[uUlLzZ]+$")
_OCTAL = re.compile(r"0[0-7]+")


def language_for_path(path: str) -> str:
    """Pick the grammar from a file extension: 'c' for .c/.h, else 'cpp'."""
    _, ext = os.path.splitext(path)
    return "c" if ext.lower() in C_EXTENSIONS else "cpp"


def parse_int_literal(text: str) -> Optional[int]:
    """Value of a C integer literal, or None for floats and oddities."""
    cleaned = _INT_SUFFIX.sub("", text.replace("'", ""))
    try:
        if _OCTAL.fullmatch(cleaned):
            return int(cleaned, 8)
        return int(cleaned, 0)
    except ValueError:
        return None


class TreeBuilder:
    """Parse source text and lower the tree-sitter tree into AST nodes."""

    def __init__(self, language: str = "cpp", max_depth: int = DEFAULT_MAX_DEPTH,
                 strict: bool = False):
        if language not in _LANGUAGES:
            raise FrontendError(f"Unsupported language: {language!r} (expected 'c' or 'cpp')")
        self.language = language
        self.max_depth = max_depth
        self.strict = strict
        self._parser = Parser(_LANGUAGES[language])
        self._source = b""

    # ────────────────────────────────────────────────────────────────
    #  Public API
    # ────────────────────────────────────────────────────────────────

    def parse(self, source: Union[str, bytes]) -> List[Declaration]:
        """Lower a whole translation unit into top-level declarations."""
        root = self._parse_tree(source)
        declarations: List[Declaration] = []
        self._top_level_items(root, declarations, 0)
        return declarations

    def parse_snippet(self, source: Union[str, bytes]) -> List[Statement]:
        """Lower a sequence of statements (a function body without the function)."""
        if isinstance(source, bytes):
            source = source.decode("utf-8", errors="replace")
        wrapped = f"void {SNIPPET_FUNCTION}(void) {{\n{source}\n}}\n"
        for decl in self.parse(wrapped):
            if isinstance(decl, FunctionDecl) and decl.name == SNIPPET_FUNCTION:
                if isinstance(decl.body, Compound):
                    return list(decl.body.statements)
        raise ParseError("Snippet could not be parsed as a statement sequence")

    # ────────────────────────────────────────────────────────────────
    #  Internal helpers
    # ────────────────────────────────────────────────────────────────

    def _parse_tree(self, source: Union[str, bytes]) -> Node:
        if isinstance(source, str):
            source = source.encode("utf-8")
        self._source = source
        tree = self._parser.parse(source)
        root = tree.root_node
        if root.has_error:
            if self.strict:
                raise ParseError(f"Syntax error near line {self._first_error_line(root)}")
            logger.warning("Source has syntax errors near line %d; analysing recovered tree",
                           self._first_error_line(root))
        return root

    def _first_error_line(self, root: Node) -> int:
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == "ERROR" or node.is_missing:
                return node.start_point[0] + 1
            stack.extend(reversed(node.children))
        return root.start_point[0] + 1

    def _node_text(self, node: Node) -> str:
        return self._source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")

    @staticmethod
    def _named(node: Node) -> List[Node]:
        return [c for c in node.named_children if c.type != "comment"]

    def _guard(self, depth: int, node: Node) -> None:
        if depth > self.max_depth:
            raise FrontendError(
                f"Nesting deeper than {self.max_depth} levels at line {node.start_point[0] + 1}"
            )

    # ────────────────────────────────────────────────────────────────
    #  Top level
    # ────────────────────────────────────────────────────────────────

    def _top_level_items(self, node: Node, out: List[Declaration], depth: int) -> None:
        self._guard(depth, node)
        for child in self._named(node):
            kind = child.type
            if kind == "function_definition":
                fn = self._function_definition(child, depth + 1)
                if fn is not None:
                    out.append(fn)
            elif kind == "declaration":
                out.extend(self._top_level_declaration(child, depth + 1))
            elif kind in ("namespace_definition", "linkage_specification"):
                body = child.child_by_field_name("body")
                if body is not None:
                    if body.type == "declaration_list":
                        self._top_level_items(body, out, depth + 1)
                    else:
                        self._top_level_items(child, out, depth + 1)
            elif kind in _TOP_LEVEL_CONTAINERS:
                self._top_level_items(child, out, depth + 1)
            else:
                logger.debug("Skipping top-level %s at line %d", kind, child.start_point[0] + 1)

    def _function_definition(self, node: Node, depth: int) -> Optional[FunctionDecl]:
        declarator = node.child_by_field_name("declarator")
        fn_decl = self._find_function_declarator(declarator)
        if fn_decl is None:
            return None
        name = self._declarator_name(fn_decl.child_by_field_name("declarator"))
        if name is None:
            return None
        params, variadic = self._parameters(fn_decl.child_by_field_name("parameters"))
        body_node = node.child_by_field_name("body")
        body = None
        if body_node is not None:
            body = self._block(body_node, depth + 1)
        return FunctionDecl(name=name, params=params, body=body, variadic=variadic)

    def _top_level_declaration(self, node: Node, depth: int) -> List[Declaration]:
        out: List[Declaration] = []
        for declarator in node.children_by_field_name("declarator"):
            fn_decl = self._find_function_declarator(declarator)
            if fn_decl is not None:
                name = self._declarator_name(fn_decl.child_by_field_name("declarator"))
                if name is not None:
                    params, variadic = self._parameters(fn_decl.child_by_field_name("parameters"))
                    out.append(FunctionDecl(name=name, params=params, variadic=variadic))
                continue
            lowered = self._variable(declarator, depth)
            if lowered is not None:
                name, initializer, is_pointer = lowered
                out.append(VariableDecl(name=name, initializer=initializer, is_pointer=is_pointer))
        return out

    # ────────────────────────────────────────────────────────────────
    #  Declarators
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def _find_function_declarator(node: Optional[Node]) -> Optional[Node]:
        """Find the function_declarator under pointer/reference wrappers."""
        while node is not None:
            if node.type == "function_declarator":
                return node
            if node.type in ("pointer_declarator", "reference_declarator",
                             "parenthesized_declarator"):
                inner = node.child_by_field_name("declarator")
                if inner is None:
                    named = [c for c in node.named_children if c.type.endswith("declarator")
                             or c.type in ("identifier", "function_declarator")]
                    inner = named[0] if named else None
                node = inner
                continue
            return None
        return None

    def _declarator_name(self, node: Optional[Node]) -> Optional[str]:
        while node is not None:
            if node.type in ("identifier", "field_identifier", "qualified_identifier",
                             "destructor_name", "operator_name", "template_function"):
                return self._node_text(node)
            inner = node.child_by_field_name("declarator")
            if inner is None:
                named = self._named(node)
                inner = named[0] if named else None
            node = inner
        return None

    def _unwrap_declarator(self, node: Node) -> Tuple[Optional[str], bool, bool, Optional[Node]]:
        """Return (name, is_pointer, is_array, size_node) for a declarator."""
        is_pointer = False
        is_array = False
        size = None
        current: Optional[Node] = node
        while current is not None:
            kind = current.type
            if kind in ("identifier", "field_identifier", "qualified_identifier"):
                return self._node_text(current), is_pointer, is_array, size
            if kind in ("pointer_declarator", "abstract_pointer_declarator"):
                is_pointer = True
            elif kind in ("array_declarator", "abstract_array_declarator"):
                # Innermost array declarator holds the first dimension.
                is_array = True
                size = current.child_by_field_name("size")
            elif kind not in ("reference_declarator", "parenthesized_declarator",
                              "abstract_reference_declarator",
                              "abstract_parenthesized_declarator"):
                return None, is_pointer, is_array, size
            inner = current.child_by_field_name("declarator")
            if inner is None:
                named = self._named(current)
                inner = named[0] if named else None
            current = inner
        return None, is_pointer, is_array, size

    def _parameters(self, node: Optional[Node]) -> Tuple[Tuple[Parameter, ...], bool]:
        if node is None:
            return (), False
        params: List[Parameter] = []
        variadic = False
        for child in node.children:
            if child.type in ("variadic_parameter", "...", "variadic_parameter_declaration"):
                variadic = True
                continue
            if child.type not in ("parameter_declaration", "optional_parameter_declaration"):
                continue
            declarator = child.child_by_field_name("declarator")
            if declarator is None:
                type_node = child.child_by_field_name("type")
                if type_node is not None and self._node_text(type_node) == "void":
                    continue
                params.append(Parameter(name=""))
                continue
            name, is_pointer, is_array, _ = self._unwrap_declarator(declarator)
            params.append(Parameter(name=name or "", is_pointer=is_pointer or is_array))
        return tuple(params), variadic

    def _variable(self, declarator: Node,
                  depth: int) -> Optional[Tuple[str, Optional[Expression], bool]]:
        """Lower one declarator of a declaration: (name, initializer, is_pointer)."""
        value_node = None
        target = declarator
        if declarator.type == "init_declarator":
            target = declarator.child_by_field_name("declarator")
            value_node = declarator.child_by_field_name("value")
            if target is None:
                return None
        name, is_pointer, is_array, size_node = self._unwrap_declarator(target)
        if name is None:
            return None
        if is_array:
            return name, ArrayDeclaration(name, self._array_size(size_node, value_node, depth)), is_pointer
        initializer = None
        if value_node is not None:
            initializer = self._initializer(value_node, depth + 1)
        return name, initializer, is_pointer

    def _array_size(self, size_node: Optional[Node], value_node: Optional[Node],
                    depth: int) -> Optional[Expression]:
        if size_node is not None:
            return self._expression(size_node, depth + 1)
        if value_node is not None and value_node.type == "initializer_list":
            # int a[] = {1, 2, 3};
            return IntegerLiteral(len(self._named(value_node)))
        return None

    def _initializer(self, node: Node, depth: int) -> Expression:
        if node.type in ("initializer_list", "argument_list"):
            items = self._named(node)
            if len(items) == 1:
                return self._expression(items[0], depth + 1)
            return Call(f"<{node.type}>", tuple(self._expression(i, depth + 1) for i in items))
        return self._expression(node, depth)

    # ────────────────────────────────────────────────────────────────
    #  Statements
    # ────────────────────────────────────────────────────────────────

    def _block(self, node: Node, depth: int) -> Compound:
        self._guard(depth, node)
        statements: List[Statement] = []
        for child in self._named(node):
            statements.extend(self._statement(child, depth + 1))
        return Compound(tuple(statements))

    def _single(self, node: Optional[Node], depth: int) -> Statement:
        if node is None:
            return Compound()
        lowered = self._statement(node, depth)
        if len(lowered) == 1:
            return lowered[0]
        return Compound(tuple(lowered))

    def _statement(self, node: Node, depth: int) -> List[Statement]:
        self._guard(depth, node)
        kind = node.type
        if kind == "compound_statement":
            return [self._block(node, depth)]
        if kind == "expression_statement":
            named = self._named(node)
            if not named:
                return []
            return [ExpressionStmt(self._expression(named[0], depth + 1))]
        if kind == "declaration":
            return self._local_declaration(node, depth)
        if kind == "return_statement":
            named = self._named(node)
            value = self._expression(named[0], depth + 1) if named else None
            return [Return(value)]
        if kind == "if_statement":
            alternative = node.child_by_field_name("alternative")
            if alternative is not None and alternative.type == "else_clause":
                named = self._named(alternative)
                alternative = named[0] if named else None
            return [Conditional(
                condition=self._condition(node.child_by_field_name("condition"), depth + 1),
                then_branch=self._single(node.child_by_field_name("consequence"), depth + 1),
                else_branch=(self._single(alternative, depth + 1)
                             if alternative is not None else None),
            )]
        if kind == "switch_statement":
            return [Conditional(
                condition=self._condition(node.child_by_field_name("condition"), depth + 1),
                then_branch=self._single(node.child_by_field_name("body"), depth + 1),
            )]
        if kind in ("while_statement", "do_statement"):
            return [Loop(
                condition=self._optional_condition(node.child_by_field_name("condition"), depth + 1),
                body=self._single(node.child_by_field_name("body"), depth + 1),
            )]
        if kind == "for_statement":
            return self._for(node, depth)
        if kind == "for_range_loop":
            right = node.child_by_field_name("right")
            return [Loop(
                condition=self._expression(right, depth + 1) if right is not None else None,
                body=self._single(node.child_by_field_name("body"), depth + 1),
            )]
        if kind in ("case_statement", "labeled_statement"):
            skip = [n for n in (node.child_by_field_name("value"),
                                node.child_by_field_name("label")) if n is not None]
            lowered: List[Statement] = []
            for child in self._named(node):
                if not any(child == s for s in skip):
                    lowered.extend(self._statement(child, depth + 1))
            return lowered
        if kind == "try_statement":
            body = node.child_by_field_name("body")
            return [self._block(body, depth + 1)] if body is not None else []
        if kind == "throw_statement":
            named = self._named(node)
            return [ExpressionStmt(self._expression(named[0], depth + 1))] if named else []
        logger.debug("Skipping %s at line %d", kind, node.start_point[0] + 1)
        return []

    def _local_declaration(self, node: Node, depth: int) -> List[Statement]:
        out: List[Statement] = []
        for declarator in node.children_by_field_name("declarator"):
            if self._find_function_declarator(declarator) is not None:
                continue
            lowered = self._variable(declarator, depth)
            if lowered is not None:
                name, initializer, is_pointer = lowered
                out.append(DeclarationStmt(name=name, initializer=initializer,
                                           is_pointer=is_pointer))
        return out

    def _for(self, node: Node, depth: int) -> List[Statement]:
        lowered: List[Statement] = []
        initializer = node.child_by_field_name("initializer")
        if initializer is not None:
            if initializer.type == "declaration":
                lowered.extend(self._local_declaration(initializer, depth + 1))
            else:
                lowered.append(ExpressionStmt(self._expression(initializer, depth + 1)))
        body = self._single(node.child_by_field_name("body"), depth + 1)
        update = node.child_by_field_name("update")
        if update is not None:
            body = Compound((body, ExpressionStmt(self._expression(update, depth + 1))))
        lowered.append(Loop(
            condition=self._optional_condition(node.child_by_field_name("condition"), depth + 1),
            body=body,
        ))
        return lowered

    def _condition(self, node: Optional[Node], depth: int) -> Expression:
        cond = self._optional_condition(node, depth)
        return cond if cond is not None else IntegerLiteral(1)

    def _optional_condition(self, node: Optional[Node], depth: int) -> Optional[Expression]:
        if node is None:
            return None
        if node.type == "condition_clause":
            value = node.child_by_field_name("value")
            if value is None:
                named = self._named(node)
                value = named[-1] if named else None
            if value is None:
                return None
            if value.type == "declaration":
                # if (int *p = f())
                stmts = self._local_declaration(value, depth + 1)
                if stmts and isinstance(stmts[0], DeclarationStmt) and stmts[0].initializer is not None:
                    return stmts[0].initializer
                return None
            node = value
        return self._expression(node, depth)

    # ────────────────────────────────────────────────────────────────
    #  Expressions
    # ────────────────────────────────────────────────────────────────

    def _expression(self, node: Node, depth: int) -> Expression:
        self._guard(depth, node)
        kind = node.type

        if kind == "identifier":
            text = self._node_text(node)
            if text in _NULL_NAMES:
                return IntegerLiteral(0)
            return Identifier(text)
        if kind in ("null", "nullptr"):
            return IntegerLiteral(0)
        if kind in ("true", "false"):
            return IntegerLiteral(1 if kind == "true" else 0)
        if kind == "number_literal":
            value = parse_int_literal(self._node_text(node))
            if value is not None:
                return IntegerLiteral(value)
            return Call("<number_literal>")
        if kind in ("qualified_identifier", "this"):
            return Identifier(self._node_text(node))
        if kind in ("parenthesized_expression", "condition_clause"):
            named = self._named(node)
            if len(named) == 1:
                return self._expression(named[0], depth + 1)
            return self._opaque(node, depth)

        if kind == "pointer_expression":
            operator = node.child_by_field_name("operator")
            argument = node.child_by_field_name("argument")
            op = self._node_text(operator) if operator is not None else "*"
            if op == "&":
                if argument is not None and argument.type == "identifier":
                    return Variable(self._node_text(argument))
                return self._opaque(node, depth)
            return Dereference(self._expression(argument, depth + 1))
        if kind == "field_expression":
            argument = self._expression(node.child_by_field_name("argument"), depth + 1)
            operator = node.child_by_field_name("operator")
            if operator is not None and self._node_text(operator) == "->":
                return Dereference(argument)
            return argument
        if kind == "unary_expression":
            operator = node.child_by_field_name("operator")
            argument = node.child_by_field_name("argument")
            op = self._node_text(operator) if operator is not None else ""
            operand = self._expression(argument, depth + 1)
            if op == "-" and isinstance(operand, IntegerLiteral):
                return IntegerLiteral(-operand.value)
            if op == "+":
                return operand
            return Call(f"<unary {op}>", (operand,))
        if kind == "binary_expression":
            return BinaryOperation(
                operator=self._node_text(node.child_by_field_name("operator")),
                left=self._expression(node.child_by_field_name("left"), depth + 1),
                right=self._expression(node.child_by_field_name("right"), depth + 1),
            )
        if kind == "assignment_expression":
            target = self._expression(node.child_by_field_name("left"), depth + 1)
            value = self._initializer(node.child_by_field_name("right"), depth + 1)
            op = self._node_text(node.child_by_field_name("operator"))
            if op != "=":
                value = BinaryOperation(op[:-1], target, value)
            return Assignment(target, value)
        if kind == "update_expression":
            target = self._expression(node.child_by_field_name("argument"), depth + 1)
            op = self._node_text(node.child_by_field_name("operator"))
            return Assignment(target, BinaryOperation(op[0], target, IntegerLiteral(1)))
        if kind == "cast_expression":
            return self._expression(node.child_by_field_name("value"), depth + 1)
        if kind == "subscript_expression":
            return self._subscript(node, depth)
        if kind == "call_expression":
            return self._call(node, depth)
        if kind == "new_expression":
            return self._new(node, depth)
        if kind == "delete_expression":
            named = self._named(node)
            name = "delete[]" if any(c.type == "[" for c in node.children) else "delete"
            args = (self._expression(named[-1], depth + 1),) if named else ()
            return Call(name, args)
        if kind in ("sizeof_expression", "alignof_expression", "string_literal",
                    "char_literal", "concatenated_string", "raw_string_literal"):
            # Unevaluated operands / non-integer literals: nothing to walk.
            return Call(f"<{kind}>")
        return self._opaque(node, depth)

    def _subscript(self, node: Node, depth: int) -> Expression:
        argument = node.child_by_field_name("argument")
        index_node = node.child_by_field_name("index")
        if index_node is None:
            indices = node.child_by_field_name("indices")
            if indices is not None:
                named = self._named(indices)
                index_node = named[0] if len(named) == 1 else None
        if argument is not None and argument.type == "identifier" and index_node is not None:
            return ArrayAccess(self._node_text(argument), self._expression(index_node, depth + 1))
        return self._opaque(node, depth)

    def _call(self, node: Node, depth: int) -> Expression:
        function = node.child_by_field_name("function")
        arguments = node.child_by_field_name("arguments")
        args: Tuple[Expression, ...] = ()
        if arguments is not None:
            args = tuple(self._expression(a, depth + 1) for a in self._named(arguments))
        if function is None:
            return Call("<call_expression>", args)
        if function.type in ("identifier", "qualified_identifier", "template_function"):
            return Call(self._node_text(function), args)
        # (*fp)(x), obj.method(x), p->method(x): keep the callee visible
        return Call("<call_expression>", (self._expression(function, depth + 1),) + args)

    def _new(self, node: Node, depth: int) -> Expression:
        declarator = node.child_by_field_name("declarator")
        if declarator is not None:
            length = declarator.child_by_field_name("length")
            if length is None:
                named = self._named(declarator)
                length = named[0] if named else None
            size = (self._expression(length, depth + 1),) if length is not None else ()
            return Call("new[]", size)
        arguments = node.child_by_field_name("arguments")
        args: Tuple[Expression, ...] = ()
        if arguments is not None:
            args = tuple(self._expression(a, depth + 1) for a in self._named(arguments))
        return Call("new", args)

    def _opaque(self, node: Node, depth: int) -> Expression:
        """Keep an unmodelled construct as a call over its sub-expressions."""
        args: List[Expression] = []
        for child in self._named(node):
            if child.type.endswith(_NON_EXPRESSION_SUFFIXES):
                continue
            if child.type in ("argument_list", "initializer_list", "subscript_argument_list"):
                args.extend(self._expression(c, depth + 1) for c in self._named(child))
                continue
            args.append(self._expression(child, depth + 1))
        return Call(f"<{node.type}>", tuple(args))


def parse_source(source: Union[str, bytes], language: str = "cpp",
                 max_depth: int = DEFAULT_MAX_DEPTH, strict: bool = False) -> List[Declaration]:
    """Parse a translation unit into top-level declarations."""
    return TreeBuilder(language, max_depth=max_depth, strict=strict).parse(source)


def parse_snippet(source: Union[str, bytes], language: str = "cpp",
                  max_depth: int = DEFAULT_MAX_DEPTH, strict: bool = False) -> List[Statement]:
    """Parse a bare statement sequence into statements."""
    return TreeBuilder(language, max_depth=max_depth, strict=strict).parse_snippet(source)
