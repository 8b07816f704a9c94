"""
Array Bounds Checker

Records the declared capacity of every array whose size is an integer
literal and flags literal-index accesses outside ``[0, capacity)``.
Computed indices are never checked.

A redeclaration overwrites the recorded capacity (last write wins).
"""

import logging
from dataclasses import dataclass, field
from typing import Dict

from .ast_nodes import (
    ArrayAccess, ArrayDeclaration, Conditional, Expression, IntegerLiteral,
    Statement, iter_expressions,
)
from .checker import BaseChecker, CheckerContext
from .diagnostics import DiagnosticKind, MalformedTreeError

logger = logging.getLogger(__name__)


@dataclass
class _BoundsContext(CheckerContext):
    capacities: Dict[str, int] = field(default_factory=dict)


class ArrayBoundsChecker(BaseChecker):
    name = "array-bounds"

    def _new_context(self) -> _BoundsContext:
        return _BoundsContext(checker=self.name)

    def _expression(self, ctx: _BoundsContext, expr: Expression, depth: int) -> None:
        self._guard(depth)
        try:
            for node in iter_expressions(expr, self.config.max_depth - depth):
                if isinstance(node, ArrayDeclaration):
                    self._record(ctx, node)
                elif isinstance(node, ArrayAccess):
                    self._check_access(ctx, node)
        except (TypeError, ValueError) as e:
            raise MalformedTreeError(str(e)) from e

    def _control_flow(self, ctx: _BoundsContext, stmt: Statement, depth: int) -> None:
        # A literal index is out of range on every path, so branch and loop
        # bodies are walked too.
        if isinstance(stmt, Conditional):
            self._expression(ctx, stmt.condition, depth + 1)
            self._statement(ctx, stmt.then_branch, depth + 1)
            if stmt.else_branch is not None:
                self._statement(ctx, stmt.else_branch, depth + 1)
        else:
            if stmt.condition is not None:
                self._expression(ctx, stmt.condition, depth + 1)
            self._statement(ctx, stmt.body, depth + 1)

    # ────────────────────────────────────────────────────────────────
    #  Transitions
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def _record(ctx: _BoundsContext, decl: ArrayDeclaration) -> None:
        if isinstance(decl.size, IntegerLiteral) and decl.size.value >= 0:
            ctx.capacities[decl.name] = decl.size.value
        elif ctx.capacities.pop(decl.name, None) is not None:
            logger.debug("Forgetting capacity of '%s' (non-literal redeclaration)", decl.name)

    @staticmethod
    def _check_access(ctx: _BoundsContext, access: ArrayAccess) -> None:
        capacity = ctx.capacities.get(access.name)
        if capacity is None or not isinstance(access.index, IntegerLiteral):
            return
        index = access.index.value
        if index < 0 or index >= capacity:
            ctx.report(
                DiagnosticKind.OUT_OF_BOUNDS, access.name,
                f"Array access out of bounds for '{access.name}' "
                f"(index {index}, capacity {capacity})",
            )
