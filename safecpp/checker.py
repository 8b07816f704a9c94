"""
Traversal skeleton shared by the three checkers.

A checker instance holds only its (read-only) configuration.  All analysis
state lives in a context object created fresh by ``analyze()`` and threaded
explicitly through every visit method, so one checker can serve several
passes, even concurrently, without any state leaking between them.

Subclasses provide ``_new_context()`` and ``_expression()`` and hook
declarations through ``_declare()``; everything else has a default.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .ast_nodes import (
    DECLARATION_TYPES, STATEMENT_TYPES, Compound, Conditional, DeclarationStmt,
    Expression, ExpressionStmt, FunctionDecl, Loop, Node, Return, Statement,
    VariableDecl,
)
from .config import AnalyzerConfig
from .diagnostics import CheckResult, Diagnostic, DiagnosticKind, MalformedTreeError

logger = logging.getLogger(__name__)


@dataclass
class CheckerContext:
    """Per-pass state.  Subclasses add their own tables."""
    checker: str
    diagnostics: List[Diagnostic] = field(default_factory=list)
    notices: List[str] = field(default_factory=list)

    def report(self, kind: DiagnosticKind, name: str, detail: str) -> None:
        logger.debug("%s: %s(%s)", self.checker, kind.value, name)
        self.diagnostics.append(
            Diagnostic(kind=kind, name=name, detail=detail, checker=self.checker)
        )

    def notice(self, message: str) -> None:
        if message not in self.notices:
            self.notices.append(message)


class BaseChecker:
    name = "checker"

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        self.config = config or AnalyzerConfig()

    # ────────────────────────────────────────────────────────────────
    #  Public API
    # ────────────────────────────────────────────────────────────────

    def analyze(self, nodes: Sequence[Node]) -> List[Diagnostic]:
        """Run one complete pass and return every diagnostic found."""
        return self._run(nodes).diagnostics

    def check(self, nodes: Sequence[Node]) -> CheckResult:
        """Like ``analyze`` but also returns notices; ``.ok`` iff no diagnostics."""
        ctx = self._run(nodes)
        return CheckResult(checker=self.name, diagnostics=ctx.diagnostics,
                           notices=ctx.notices)

    def _run(self, nodes: Sequence[Node]) -> CheckerContext:
        ctx = self._new_context()
        nodes = list(nodes)
        self._prepare(ctx, nodes)
        for node in nodes:
            self._node(ctx, node)
        self._finish(ctx)
        return ctx

    # ────────────────────────────────────────────────────────────────
    #  Hooks
    # ────────────────────────────────────────────────────────────────

    def _new_context(self) -> CheckerContext:
        return CheckerContext(checker=self.name)

    def _prepare(self, ctx: CheckerContext, nodes: List[Node]) -> None:
        """Runs before the main pass."""

    def _finish(self, ctx: CheckerContext) -> None:
        """Runs after the main pass."""

    def _declare(self, ctx: CheckerContext, name: str,
                 initializer: Optional[Expression], is_pointer: bool, depth: int) -> None:
        if initializer is not None:
            self._expression(ctx, initializer, depth + 1)

    def _expression(self, ctx: CheckerContext, expr: Expression, depth: int) -> None:
        raise NotImplementedError

    def _function(self, ctx: CheckerContext, fn: FunctionDecl) -> None:
        if fn.body is not None:
            self._statement(ctx, fn.body, 1)

    def _control_flow(self, ctx: CheckerContext, stmt: Statement, depth: int) -> None:
        """Conditionals and loops are accepted structurally.

        The condition is evaluated once in program order; the bodies are
        not analyzed, and a notice records that they were skipped.
        """
        if isinstance(stmt, Conditional):
            self._expression(ctx, stmt.condition, depth + 1)
            ctx.notice("conditional branches not analyzed")
        else:
            if stmt.condition is not None:
                self._expression(ctx, stmt.condition, depth + 1)
            ctx.notice("loop bodies not analyzed")

    # ────────────────────────────────────────────────────────────────
    #  Dispatch
    # ────────────────────────────────────────────────────────────────

    def _node(self, ctx: CheckerContext, node: Node) -> None:
        if not isinstance(node, DECLARATION_TYPES + STATEMENT_TYPES):
            self._malformed(node)
        if isinstance(node, FunctionDecl):
            self._function(ctx, node)
        elif isinstance(node, VariableDecl):
            self._declare(ctx, node.name, node.initializer, node.is_pointer, 0)
        else:
            self._statement(ctx, node, 0)

    def _statement(self, ctx: CheckerContext, stmt: Statement, depth: int) -> None:
        self._guard(depth)
        if isinstance(stmt, ExpressionStmt):
            self._expression(ctx, stmt.expression, depth + 1)
        elif isinstance(stmt, DeclarationStmt):
            self._declare(ctx, stmt.name, stmt.initializer, stmt.is_pointer, depth)
        elif isinstance(stmt, Compound):
            for inner in stmt.statements:
                self._statement(ctx, inner, depth + 1)
        elif isinstance(stmt, Return):
            if stmt.value is not None:
                self._expression(ctx, stmt.value, depth + 1)
        elif isinstance(stmt, (Conditional, Loop)):
            self._control_flow(ctx, stmt, depth)
        else:
            self._malformed(stmt)

    def _guard(self, depth: int) -> None:
        if depth > self.config.max_depth:
            raise MalformedTreeError(
                f"nesting exceeds {self.config.max_depth} levels"
            )

    def _malformed(self, node: object) -> None:
        raise MalformedTreeError(
            f"unsupported node {type(node).__name__}"
        )
