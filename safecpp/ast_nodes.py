"""
AST — the immutable program tree consumed by every checker.

Three closed families of frozen dataclasses:
  • Expressions  (Identifier, IntegerLiteral, Call, Variable, Dereference,
                  BinaryOperation, Assignment, ArrayAccess, ArrayDeclaration)
  • Statements   (ExpressionStmt, DeclarationStmt, Compound, Conditional,
                  Loop, Return)
  • Declarations (FunctionDecl, VariableDecl)

The front end (frontend.py) builds these from tree-sitter parse trees;
tests build them by hand.  Checkers never mutate a node.
"""

from dataclasses import dataclass
from typing import Iterator, Optional, Tuple, Union

# ═══════════════════════════════════════════════════════════════════════
#  Expressions
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Identifier:
    """A plain name read, e.g. ``x`` in ``y = x``."""
    name: str


@dataclass(frozen=True)
class IntegerLiteral:
    """An integer constant.  ``nullptr`` and ``NULL`` lower to ``0``."""
    value: int


@dataclass(frozen=True)
class Call:
    """A call by name.

    Besides ordinary calls this also carries the C++ allocation operators
    (``new``, ``new[]``, ``delete``, ``delete[]``) and opaque constructs the
    front end does not model, named ``<node-kind>`` so they can never clash
    with a real function.
    """
    name: str
    args: Tuple["Expression", ...] = ()


@dataclass(frozen=True)
class Variable:
    """A variable reference: the address of a named variable (``&x``)."""
    name: str


@dataclass(frozen=True)
class Dereference:
    operand: "Expression"


@dataclass(frozen=True)
class BinaryOperation:
    operator: str
    left: "Expression"
    right: "Expression"


@dataclass(frozen=True)
class Assignment:
    target: "Expression"
    value: "Expression"


@dataclass(frozen=True)
class ArrayAccess:
    name: str
    index: "Expression"


@dataclass(frozen=True)
class ArrayDeclaration:
    """``T name[size]``.  ``size`` is None when the extent is not written."""
    name: str
    size: Optional["Expression"] = None


Expression = Union[
    Identifier, IntegerLiteral, Call, Variable, Dereference,
    BinaryOperation, Assignment, ArrayAccess, ArrayDeclaration,
]

EXPRESSION_TYPES = (
    Identifier, IntegerLiteral, Call, Variable, Dereference,
    BinaryOperation, Assignment, ArrayAccess, ArrayDeclaration,
)

# ═══════════════════════════════════════════════════════════════════════
#  Statements
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ExpressionStmt:
    expression: Expression


@dataclass(frozen=True)
class DeclarationStmt:
    """A local declaration.  ``initializer`` is None for ``int x;``."""
    name: str
    initializer: Optional[Expression] = None
    is_pointer: bool = False


@dataclass(frozen=True)
class Compound:
    statements: Tuple["Statement", ...] = ()


@dataclass(frozen=True)
class Conditional:
    condition: Expression
    then_branch: "Statement"
    else_branch: Optional["Statement"] = None


@dataclass(frozen=True)
class Loop:
    condition: Optional[Expression]
    body: "Statement"


@dataclass(frozen=True)
class Return:
    value: Optional[Expression] = None


Statement = Union[ExpressionStmt, DeclarationStmt, Compound, Conditional, Loop, Return]

STATEMENT_TYPES = (ExpressionStmt, DeclarationStmt, Compound, Conditional, Loop, Return)

# ═══════════════════════════════════════════════════════════════════════
#  Declarations
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Parameter:
    name: str
    is_pointer: bool = False


@dataclass(frozen=True)
class FunctionDecl:
    """A function definition, or a prototype when ``body`` is None."""
    name: str
    params: Tuple[Parameter, ...] = ()
    body: Optional[Statement] = None
    variadic: bool = False


@dataclass(frozen=True)
class VariableDecl:
    """A file-scope variable."""
    name: str
    initializer: Optional[Expression] = None
    is_pointer: bool = False


Declaration = Union[FunctionDecl, VariableDecl]

DECLARATION_TYPES = (FunctionDecl, VariableDecl)

Node = Union[Declaration, Statement]

# ═══════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════

def name_of(expr: Optional[Expression]) -> Optional[str]:
    """Return the variable name read by ``expr`` if it is a plain name."""
    if isinstance(expr, Identifier):
        return expr.name
    return None


def is_null_literal(expr: Optional[Expression]) -> bool:
    return isinstance(expr, IntegerLiteral) and expr.value == 0


def children(expr: Expression) -> Tuple[Expression, ...]:
    """Direct sub-expressions of ``expr`` in evaluation order."""
    if not isinstance(expr, EXPRESSION_TYPES):
        raise TypeError(f"not an expression node: {type(expr).__name__}")
    if isinstance(expr, (Identifier, IntegerLiteral, Variable)):
        return ()
    if isinstance(expr, Call):
        return tuple(expr.args)
    if isinstance(expr, Dereference):
        return (expr.operand,)
    if isinstance(expr, BinaryOperation):
        return (expr.left, expr.right)
    if isinstance(expr, Assignment):
        return (expr.value, expr.target)
    if isinstance(expr, ArrayAccess):
        return (expr.index,)
    # ArrayDeclaration
    return (expr.size,) if expr.size is not None else ()


def iter_expressions(expr: Expression, max_depth: int) -> Iterator[Expression]:
    """Pre-order walk over ``expr`` using an explicit work stack.

    Raises ValueError when nesting exceeds ``max_depth`` and TypeError on a
    node that is not an expression.
    """
    stack = [(expr, 0)]
    while stack:
        node, depth = stack.pop()
        if depth > max_depth:
            raise ValueError(f"expression nesting exceeds {max_depth} levels")
        yield node
        for child in reversed(children(node)):
            stack.append((child, depth + 1))
