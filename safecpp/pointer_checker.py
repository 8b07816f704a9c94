"""
Pointer State Machine

Two-state lifecycle per pointer name (absence from the table = unknown):

    unknown ──alloc/assign ptr──▶ Allocated ──free──▶ Deallocated
                                      ▲                    │
                                      └──── assign ptr ────┘

  • dereference of Deallocated or unknown     → NullPointerDereference
  • free of Deallocated                       → DoubleFree
  • free of unknown                           → InvalidFree
  • call with wrong argument count            → IncorrectNumberOfArguments
  • non-pointer argument for pointer param    → NonPointerArgumentForPointerParameter

Pointer arithmetic on a tracked pointer (p++, p += n) keeps its state.
String literals and &expr forms count as pointer-valued arguments.

Function signatures are collected by a pre-pass over every top-level
function declaration, because a call may precede its callee's definition.
Calls to functions with no known signature are not checked.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from .ast_nodes import (
    ArrayAccess, ArrayDeclaration, Assignment, BinaryOperation, Call,
    Dereference, Expression, FunctionDecl, Identifier, IntegerLiteral,
    Node, Variable, name_of,
)
from .checker import BaseChecker, CheckerContext
from .diagnostics import DiagnosticKind

logger = logging.getLogger(__name__)

# Opaque nodes from the front end whose value is an address.
_ADDRESS_VALUED = frozenset({
    "<string_literal>", "<concatenated_string>", "<raw_string_literal>",
    "<pointer_expression>",
})


class PointerState(Enum):
    ALLOCATED = "Allocated"
    DEALLOCATED = "Deallocated"


@dataclass(frozen=True)
class FunctionSignature:
    name: str
    pointer_params: Tuple[bool, ...]
    variadic: bool = False

    def accepts(self, arg_count: int) -> bool:
        if self.variadic:
            return arg_count >= len(self.pointer_params)
        return arg_count == len(self.pointer_params)


@dataclass
class _PointerContext(CheckerContext):
    states: Dict[str, PointerState] = field(default_factory=dict)
    pointer_names: Set[str] = field(default_factory=set)
    signatures: Dict[str, FunctionSignature] = field(default_factory=dict)


class PointerStateMachine(BaseChecker):
    name = "pointer-state"

    def _new_context(self) -> _PointerContext:
        return _PointerContext(checker=self.name)

    def _prepare(self, ctx: _PointerContext, nodes: List[Node]) -> None:
        for node in nodes:
            if isinstance(node, FunctionDecl):
                ctx.signatures[node.name] = FunctionSignature(
                    name=node.name,
                    pointer_params=tuple(p.is_pointer for p in node.params),
                    variadic=node.variadic,
                )
        logger.debug("Collected %d function signature(s)", len(ctx.signatures))

    def _function(self, ctx: _PointerContext, fn: FunctionDecl) -> None:
        for param in fn.params:
            if param.is_pointer:
                ctx.pointer_names.add(param.name)
                ctx.states[param.name] = PointerState.ALLOCATED
            else:
                ctx.pointer_names.discard(param.name)
                ctx.states.pop(param.name, None)
        super()._function(ctx, fn)

    def _declare(self, ctx: _PointerContext, name: str,
                 initializer: Optional[Expression], is_pointer: bool, depth: int) -> None:
        if initializer is not None:
            self._expression(ctx, initializer, depth + 1)
        if is_pointer or isinstance(initializer, ArrayDeclaration):
            ctx.pointer_names.add(name)
        else:
            ctx.pointer_names.discard(name)

        if initializer is None:
            ctx.states.pop(name, None)
            return
        producing = self._is_pointer_expression(ctx, initializer)
        if is_pointer or producing:
            self._set(ctx, name, producing)
        else:
            ctx.states.pop(name, None)

    # ────────────────────────────────────────────────────────────────
    #  Expressions
    # ────────────────────────────────────────────────────────────────

    def _expression(self, ctx: _PointerContext, expr: Expression, depth: int) -> None:
        self._guard(depth)
        if isinstance(expr, (Identifier, IntegerLiteral, Variable)):
            return
        if isinstance(expr, Call):
            self._call(ctx, expr, depth)
        elif isinstance(expr, Dereference):
            target = name_of(expr.operand)
            if target is not None:
                self._dereference(ctx, target)
            else:
                self._expression(ctx, expr.operand, depth + 1)
        elif isinstance(expr, BinaryOperation):
            self._expression(ctx, expr.left, depth + 1)
            self._expression(ctx, expr.right, depth + 1)
        elif isinstance(expr, Assignment):
            self._expression(ctx, expr.value, depth + 1)
            target = name_of(expr.target)
            if target is not None:
                self._assign(ctx, target, expr.value)
            else:
                self._expression(ctx, expr.target, depth + 1)
        elif isinstance(expr, ArrayAccess):
            self._expression(ctx, expr.index, depth + 1)
            if ctx.states.get(expr.name) is PointerState.DEALLOCATED:
                self._dereference(ctx, expr.name)
        elif isinstance(expr, ArrayDeclaration):
            if expr.size is not None:
                self._expression(ctx, expr.size, depth + 1)
            ctx.pointer_names.add(expr.name)
            ctx.states[expr.name] = PointerState.ALLOCATED
        else:
            self._malformed(expr)

    def _call(self, ctx: _PointerContext, call: Call, depth: int) -> None:
        if self.config.is_deallocator(call.name) and call.args:
            target = name_of(call.args[0])
            if target is not None:
                self._deallocate(ctx, target)
                for arg in call.args[1:]:
                    self._expression(ctx, arg, depth + 1)
                return
        for arg in call.args:
            self._expression(ctx, arg, depth + 1)
        self._check_call(ctx, call)

    # ────────────────────────────────────────────────────────────────
    #  Transitions
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def _set(ctx: _PointerContext, name: str, allocated: bool) -> None:
        ctx.states[name] = PointerState.ALLOCATED if allocated else PointerState.DEALLOCATED

    def _assign(self, ctx: _PointerContext, name: str, value: Expression) -> None:
        if self._is_self_offset(name, value) and name in ctx.states:
            return
        producing = self._is_pointer_expression(ctx, value)
        if producing or name in ctx.pointer_names or name in ctx.states:
            self._set(ctx, name, producing)

    @staticmethod
    def _is_self_offset(name: str, value: Expression) -> bool:
        """True for p + n and p - n, as produced by p++ and p += n."""
        return (isinstance(value, BinaryOperation) and value.operator in ("+", "-")
                and name_of(value.left) == name)

    @staticmethod
    def _deallocate(ctx: _PointerContext, name: str) -> None:
        state = ctx.states.get(name)
        if state is PointerState.ALLOCATED:
            ctx.states[name] = PointerState.DEALLOCATED
        elif state is PointerState.DEALLOCATED:
            ctx.report(DiagnosticKind.DOUBLE_FREE, name,
                       f"Double free of pointer '{name}'")
        else:
            ctx.report(DiagnosticKind.INVALID_FREE, name,
                       f"Invalid free of pointer '{name}'")

    @staticmethod
    def _dereference(ctx: _PointerContext, name: str) -> None:
        if ctx.states.get(name) is not PointerState.ALLOCATED:
            ctx.report(DiagnosticKind.NULL_POINTER_DEREFERENCE, name,
                       f"Null dereference of pointer '{name}'")

    def _check_call(self, ctx: _PointerContext, call: Call) -> None:
        signature = ctx.signatures.get(call.name)
        if signature is None:
            return
        if not signature.accepts(len(call.args)):
            ctx.report(
                DiagnosticKind.INCORRECT_NUMBER_OF_ARGUMENTS, call.name,
                f"Function '{call.name}' called with incorrect number of arguments "
                f"(expected {len(signature.pointer_params)}, got {len(call.args)})",
            )
            return
        for position, (arg, wants_pointer) in enumerate(zip(call.args, signature.pointer_params)):
            if wants_pointer and not self._is_pointer_expression(ctx, arg):
                ctx.report(
                    DiagnosticKind.NON_POINTER_ARGUMENT, call.name,
                    f"Function '{call.name}' called with non-pointer argument "
                    f"for a pointer parameter (argument {position + 1})",
                )

    def _is_pointer_expression(self, ctx: _PointerContext, expr: Expression) -> bool:
        if isinstance(expr, (Dereference, Variable, ArrayDeclaration)):
            return True
        if isinstance(expr, Identifier):
            return (expr.name in ctx.pointer_names
                    or ctx.states.get(expr.name) is PointerState.ALLOCATED)
        if isinstance(expr, Call):
            return expr.name in _ADDRESS_VALUED or self.config.is_allocator(expr.name)
        return False
