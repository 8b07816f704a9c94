"""
Memory Lifecycle Tracker

Follows each variable through allocation, release and initialization:

  • allocation record   name → allocating expression (malloc/new/...)
  • freed               names released since their last allocation
  • uninitialized       names declared without an initializer, until written
  • null                names currently holding a null pointer constant

Diagnostics: MemoryLeak (allocation overwritten before free, unless the
allocating call takes the old block back as in p = realloc(p, n)), DoubleFree,
UninitializedAccess and NullPointerDereference.

Freeing a name that was never allocated is accepted silently; the
Pointer State Machine reports that case as InvalidFree.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

from .ast_nodes import (
    ArrayAccess, ArrayDeclaration, Assignment, BinaryOperation, Call,
    Dereference, Expression, FunctionDecl, Identifier, IntegerLiteral,
    Variable, is_null_literal, name_of,
)
from .checker import BaseChecker, CheckerContext
from .diagnostics import DiagnosticKind

logger = logging.getLogger(__name__)


@dataclass
class _MemoryContext(CheckerContext):
    allocations: Dict[str, Expression] = field(default_factory=dict)
    freed: Set[str] = field(default_factory=set)
    uninitialized: Set[str] = field(default_factory=set)
    null: Set[str] = field(default_factory=set)

    def forget(self, name: str) -> None:
        self.allocations.pop(name, None)
        self.freed.discard(name)
        self.uninitialized.discard(name)
        self.null.discard(name)


class MemoryLifecycleTracker(BaseChecker):
    name = "memory-lifecycle"

    def _new_context(self) -> _MemoryContext:
        return _MemoryContext(checker=self.name)

    def _finish(self, ctx: _MemoryContext) -> None:
        if not self.config.report_unfreed_at_exit:
            return
        for name in ctx.allocations:
            if name not in ctx.freed:
                ctx.report(DiagnosticKind.MEMORY_LEAK, name,
                           f"Memory leak: '{name}' is never freed")

    def _function(self, ctx: _MemoryContext, fn: FunctionDecl) -> None:
        # Parameters arrive initialized from the caller.
        for param in fn.params:
            ctx.forget(param.name)
        super()._function(ctx, fn)

    def _declare(self, ctx: _MemoryContext, name: str,
                 initializer: Optional[Expression], is_pointer: bool, depth: int) -> None:
        if initializer is None:
            ctx.forget(name)
            ctx.uninitialized.add(name)
            return
        self._expression(ctx, initializer, depth + 1)
        self._bind(ctx, name, initializer)

    # ────────────────────────────────────────────────────────────────
    #  Expressions
    # ────────────────────────────────────────────────────────────────

    def _expression(self, ctx: _MemoryContext, expr: Expression, depth: int) -> None:
        self._guard(depth)
        if isinstance(expr, Identifier):
            self._read(ctx, expr.name)
        elif isinstance(expr, IntegerLiteral):
            pass
        elif isinstance(expr, Variable):
            # &x hands the storage out to be written.
            ctx.uninitialized.discard(expr.name)
        elif isinstance(expr, Call):
            self._call(ctx, expr, depth)
        elif isinstance(expr, Dereference):
            target = name_of(expr.operand)
            if target is not None and target in ctx.null:
                ctx.report(DiagnosticKind.NULL_POINTER_DEREFERENCE, target,
                           f"Null pointer dereference detected for variable: {target}")
            self._expression(ctx, expr.operand, depth + 1)
        elif isinstance(expr, BinaryOperation):
            self._expression(ctx, expr.left, depth + 1)
            self._expression(ctx, expr.right, depth + 1)
        elif isinstance(expr, Assignment):
            self._assign(ctx, expr, depth)
        elif isinstance(expr, ArrayAccess):
            self._expression(ctx, expr.index, depth + 1)
        elif isinstance(expr, ArrayDeclaration):
            if expr.size is not None:
                self._expression(ctx, expr.size, depth + 1)
        else:
            self._malformed(expr)

    def _read(self, ctx: _MemoryContext, name: str) -> None:
        if name in ctx.uninitialized:
            ctx.report(DiagnosticKind.UNINITIALIZED_ACCESS, name,
                       f"Read of uninitialized variable: {name}")

    def _call(self, ctx: _MemoryContext, call: Call, depth: int) -> None:
        if self.config.is_deallocator(call.name) and call.args:
            target = name_of(call.args[0])
            if target is not None:
                self._free(ctx, target)
                rest = call.args[1:]
            else:
                rest = call.args
        else:
            rest = call.args
        for arg in rest:
            self._expression(ctx, arg, depth + 1)

    def _assign(self, ctx: _MemoryContext, expr: Assignment, depth: int) -> None:
        self._expression(ctx, expr.value, depth + 1)
        target = name_of(expr.target)
        if target is not None:
            self._bind(ctx, target, expr.value)
        else:
            # Writing through *p or a[i] reads p / i but initializes nothing
            # this tracker follows by name.
            self._expression(ctx, expr.target, depth + 1)

    # ────────────────────────────────────────────────────────────────
    #  Transitions
    # ────────────────────────────────────────────────────────────────

    def _bind(self, ctx: _MemoryContext, name: str, value: Expression) -> None:
        if isinstance(value, Call) and self.config.is_allocator(value.name):
            self._allocate(ctx, name, value)
        else:
            self._copy_state(ctx, name, value)

    @staticmethod
    def _allocate(ctx: _MemoryContext, name: str, expr: Call) -> None:
        # p = realloc(p, n) hands the old block to the allocator.
        resized = any(name_of(arg) == name for arg in expr.args)
        if name in ctx.allocations and name not in ctx.freed and not resized:
            ctx.report(DiagnosticKind.MEMORY_LEAK, name,
                       f"Memory leak: '{name}' reassigned before being freed")
        ctx.forget(name)
        ctx.allocations[name] = expr

    @staticmethod
    def _free(ctx: _MemoryContext, name: str) -> None:
        if name in ctx.freed:
            ctx.report(DiagnosticKind.DOUBLE_FREE, name,
                       f"Double free attempt on variable: {name}")
        elif name in ctx.allocations:
            ctx.freed.add(name)
        else:
            logger.debug("Free of untracked variable '%s' accepted", name)

    @staticmethod
    def _copy_state(ctx: _MemoryContext, name: str, value: Expression) -> None:
        """Mirror the abstract state of ``value`` onto ``name``."""
        source = name_of(value)
        if source == name:
            return
        record = ctx.allocations.get(source) if source is not None else None
        freed = source in ctx.freed
        uninitialized = source in ctx.uninitialized
        null = source in ctx.null if source is not None else is_null_literal(value)

        ctx.forget(name)
        if record is not None:
            ctx.allocations[name] = record
        if freed:
            ctx.freed.add(name)
        if uninitialized:
            ctx.uninitialized.add(name)
        if null:
            ctx.null.add(name)
