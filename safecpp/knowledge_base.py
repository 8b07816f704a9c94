"""
Diagnostic Knowledge Base

Structured explanations for every diagnostic kind: title, category,
rationale, non-compliant / compliant examples, and a human-readable fix
strategy.  Used by the CLI (``--explain``) and the MCP server.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .diagnostics import DiagnosticKind


@dataclass
class DiagnosticInfo:
    kind: DiagnosticKind
    title: str
    rationale: str
    non_compliant: str                     # code example
    compliant: str                         # fixed code example
    fix_strategy: str
    reported_by: List[str] = field(default_factory=list)
    related: List[DiagnosticKind] = field(default_factory=list)

    @property
    def category(self) -> str:
        return self.kind.category.value


# ═══════════════════════════════════════════════════════════════════════
#  Knowledge Base
# ═══════════════════════════════════════════════════════════════════════

_ENTRIES: Dict[DiagnosticKind, DiagnosticInfo] = {}

def _add(info: DiagnosticInfo):
    _ENTRIES[info.kind] = info

# ───────────────────────────────────────────────────────────────────────
#  Array
# ───────────────────────────────────────────────────────────────────────

_add(DiagnosticInfo(
    kind=DiagnosticKind.OUT_OF_BOUNDS,
    title="Array index out of bounds",
    rationale=(
        "Reading or writing past either end of an array is undefined "
        "behaviour.  It corrupts neighbouring objects, leaks data, and is "
        "the classic entry point for stack-smashing exploits.  Only literal "
        "indices are checked; computed indices are not."
    ),
    non_compliant="""\
int a[3];
a[3] = 1;   /* valid indices are 0..2 */""",
    compliant="""\
int a[3];
a[2] = 1;""",
    fix_strategy=(
        "Use an index in [0, N) where N is the declared element count, or "
        "enlarge the array if the extra element is genuinely needed."
    ),
    reported_by=["array-bounds"],
))

# ───────────────────────────────────────────────────────────────────────
#  Memory
# ───────────────────────────────────────────────────────────────────────

_add(DiagnosticInfo(
    kind=DiagnosticKind.MEMORY_LEAK,
    title="Allocation overwritten before it was freed",
    rationale=(
        "Assigning a new allocation to a pointer that still owns the only "
        "reference to an earlier allocation makes that memory unreachable.  "
        "It can never be released."
    ),
    non_compliant="""\
int *p = malloc(sizeof(int));
p = malloc(sizeof(int));    /* first block is lost */""",
    compliant="""\
int *p = malloc(sizeof(int));
free(p);
p = malloc(sizeof(int));""",
    fix_strategy=(
        "Release the old allocation before reusing the pointer, or keep the "
        "old pointer in another variable that is freed later."
    ),
    reported_by=["memory-lifecycle"],
    related=[DiagnosticKind.DOUBLE_FREE],
))

_add(DiagnosticInfo(
    kind=DiagnosticKind.DOUBLE_FREE,
    title="Memory released twice",
    rationale=(
        "Freeing the same block twice corrupts allocator metadata.  "
        "Attackers can turn it into arbitrary writes."
    ),
    non_compliant="""\
int *x = new int;
delete x;
delete x;""",
    compliant="""\
int *x = new int;
delete x;
x = nullptr;""",
    fix_strategy=(
        "Make exactly one owner responsible for the release.  Set the "
        "pointer to null after freeing it, or use a smart pointer."
    ),
    reported_by=["memory-lifecycle", "pointer-state"],
    related=[DiagnosticKind.INVALID_FREE],
))

_add(DiagnosticInfo(
    kind=DiagnosticKind.UNINITIALIZED_ACCESS,
    title="Read of an uninitialized variable",
    rationale=(
        "An automatic variable declared without an initializer holds an "
        "indeterminate value.  Reading it is undefined behaviour and makes "
        "the program's output depend on stack garbage."
    ),
    non_compliant="""\
int n;
int m = n + 1;""",
    compliant="""\
int n = 0;
int m = n + 1;""",
    fix_strategy=(
        "Initialize the variable at its declaration, or assign it on every "
        "path before the first read."
    ),
    reported_by=["memory-lifecycle"],
))

# ───────────────────────────────────────────────────────────────────────
#  Pointer
# ───────────────────────────────────────────────────────────────────────

_add(DiagnosticInfo(
    kind=DiagnosticKind.NULL_POINTER_DEREFERENCE,
    title="Dereference of a null, freed or unallocated pointer",
    rationale=(
        "Dereferencing a null pointer crashes the program; dereferencing a "
        "freed or never-allocated pointer reads or writes memory the "
        "program no longer owns."
    ),
    non_compliant="""\
int *x = nullptr;
int y = *x;""",
    compliant="""\
int *x = new int(0);
int y = *x;
delete x;""",
    fix_strategy=(
        "Allocate or assign a valid object before dereferencing, and do not "
        "use a pointer after it has been freed."
    ),
    reported_by=["memory-lifecycle", "pointer-state"],
))

_add(DiagnosticInfo(
    kind=DiagnosticKind.INVALID_FREE,
    title="Free of a pointer that was never allocated",
    rationale=(
        "Passing a pointer that did not come from the matching allocator to "
        "free()/delete is undefined behaviour.  The memory tracker accepts "
        "such frees silently; only the pointer state machine reports them."
    ),
    non_compliant="""\
int *p;
free(p);""",
    compliant="""\
int *p = malloc(sizeof(int));
free(p);""",
    fix_strategy=(
        "Only release memory obtained from malloc/calloc/realloc or new, "
        "exactly once, with the matching deallocator."
    ),
    reported_by=["pointer-state"],
    related=[DiagnosticKind.DOUBLE_FREE],
))

_add(DiagnosticInfo(
    kind=DiagnosticKind.INCORRECT_NUMBER_OF_ARGUMENTS,
    title="Call with the wrong number of arguments",
    rationale=(
        "A call whose argument count differs from the callee's declared "
        "parameter list reads missing arguments from garbage or ignores "
        "extra ones.  Argument types are not checked for such a call."
    ),
    non_compliant="""\
void fill(int *buf, int n);
fill(buf);""",
    compliant="""\
void fill(int *buf, int n);
fill(buf, 4);""",
    fix_strategy="Pass exactly the parameters the function declares.",
    reported_by=["pointer-state"],
    related=[DiagnosticKind.NON_POINTER_ARGUMENT],
))

_add(DiagnosticInfo(
    kind=DiagnosticKind.NON_POINTER_ARGUMENT,
    title="Non-pointer argument for a pointer parameter",
    rationale=(
        "Passing a plain value where the callee expects a pointer makes the "
        "callee dereference an arbitrary integer."
    ),
    non_compliant="""\
void reset(int *p);
int n = 5;
reset(n);""",
    compliant="""\
void reset(int *p);
int n = 5;
reset(&n);""",
    fix_strategy=(
        "Pass the address of the object (&n) or a pointer variable that "
        "refers to it."
    ),
    reported_by=["pointer-state"],
    related=[DiagnosticKind.INCORRECT_NUMBER_OF_ARGUMENTS],
))


def get_info(kind: DiagnosticKind) -> Optional[DiagnosticInfo]:
    return _ENTRIES.get(kind)


def get_all() -> Dict[DiagnosticKind, DiagnosticInfo]:
    """Return the entire knowledge base dictionary."""
    return dict(_ENTRIES)


def format_explanation(kind_name: str) -> str:
    """Return a rich, human-readable explanation of a diagnostic kind."""
    try:
        kind = DiagnosticKind.parse(kind_name)
    except ValueError:
        return f"Unknown diagnostic kind: {kind_name}"
    info = get_info(kind)
    if info is None:
        return f"Unknown diagnostic kind: {kind_name}"

    explanation = f"""## {kind.value} — {info.title}
**Category**: {info.category}
**Reported by**: {', '.join(info.reported_by)}

### Rationale
{info.rationale}

### Non-Compliant Example
```cpp
{info.non_compliant}
```

### Compliant Example
```cpp
{info.compliant}
```

### How to Fix
{info.fix_strategy}"""

    if info.related:
        explanation += f"\n\n### Related Diagnostics\n{', '.join(k.value for k in info.related)}"

    return explanation
