"""
Diagnostics — the shared result channel of every checker.

  • DiagnosticKind   closed set of defect kinds, grouped by category
  • Diagnostic       one suspected defect (kind + offending name + detail)
  • CheckResult      outcome of a single checker pass
  • AnalysisReport   merged outcome of all checkers over one AST
  • SafeCppError     exception hierarchy for conditions that are not
                     ordinary diagnostics (malformed trees, bad input)

The AST carries no source positions, so diagnostics identify the
offending variable or function by name only.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class DiagnosticCategory(str, Enum):
    ARRAY = "Array"
    MEMORY = "Memory"
    POINTER = "Pointer"

    @property
    def description(self) -> str:
        return f"{self.value} error"


class DiagnosticKind(str, Enum):
    OUT_OF_BOUNDS = "OutOfBounds"
    MEMORY_LEAK = "MemoryLeak"
    DOUBLE_FREE = "DoubleFree"
    INVALID_FREE = "InvalidFree"
    UNINITIALIZED_ACCESS = "UninitializedAccess"
    NULL_POINTER_DEREFERENCE = "NullPointerDereference"
    INCORRECT_NUMBER_OF_ARGUMENTS = "IncorrectNumberOfArguments"
    NON_POINTER_ARGUMENT = "NonPointerArgumentForPointerParameter"

    @property
    def category(self) -> DiagnosticCategory:
        return _CATEGORIES[self]

    @classmethod
    def parse(cls, text: str) -> "DiagnosticKind":
        """Look up a kind by value (``DoubleFree``) or member name (``double_free``), ignoring case."""
        key = text.strip()
        for kind in cls:
            if key.upper() == kind.name or key.lower() == kind.value.lower():
                return kind
        raise ValueError(f"Invalid diagnostic kind: {text!r}")


_CATEGORIES = {
    DiagnosticKind.OUT_OF_BOUNDS: DiagnosticCategory.ARRAY,
    DiagnosticKind.MEMORY_LEAK: DiagnosticCategory.MEMORY,
    DiagnosticKind.DOUBLE_FREE: DiagnosticCategory.MEMORY,
    DiagnosticKind.UNINITIALIZED_ACCESS: DiagnosticCategory.MEMORY,
    DiagnosticKind.NULL_POINTER_DEREFERENCE: DiagnosticCategory.POINTER,
    DiagnosticKind.INVALID_FREE: DiagnosticCategory.POINTER,
    DiagnosticKind.INCORRECT_NUMBER_OF_ARGUMENTS: DiagnosticCategory.POINTER,
    DiagnosticKind.NON_POINTER_ARGUMENT: DiagnosticCategory.POINTER,
}


class Diagnostic(BaseModel):
    kind: DiagnosticKind
    name: str                       # offending variable or function
    detail: str
    checker: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.detail}"


class CheckResult(BaseModel):
    checker: str
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    notices: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.diagnostics


class CheckerFailure(BaseModel):
    """A checker pass aborted on a tree it could not trust."""
    checker: str
    message: str

    def __str__(self) -> str:
        return f"{self.checker}: {self.message}"


class AnalysisReport(BaseModel):
    source: Optional[str] = None
    diagnostics: List[Diagnostic] = Field(default_factory=list)
    notices: List[str] = Field(default_factory=list)
    failures: List[CheckerFailure] = Field(default_factory=list)
    checkers: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.diagnostics and not self.failures

    def first_error(self) -> Optional[str]:
        """The message the driver reports when the analysis is not ok."""
        if self.failures:
            return str(self.failures[0])
        if self.diagnostics:
            return str(self.diagnostics[0])
        return None

    def of_kind(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.kind == kind]

    def by_checker(self, checker: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.checker == checker]


# ═══════════════════════════════════════════════════════════════════════
#  Exceptions
# ═══════════════════════════════════════════════════════════════════════

class SafeCppError(Exception):
    """Base class for errors raised by safecpp."""


class MalformedTreeError(SafeCppError):
    """The AST contains a node a checker cannot interpret.

    Fatal for the running pass: the checker stops immediately because it
    can no longer trust its own state.
    """


class FrontendError(SafeCppError):
    """Source input could not be read or lowered into an AST."""


class ParseError(FrontendError):
    """tree-sitter reported syntax errors and strict parsing was requested."""
