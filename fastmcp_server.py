"""
safecpp — MCP Server

Exposes the memory and pointer safety checkers via the Model Context
Protocol:

  1. set_include_dirs      — configure include paths, defines and config file
  2. analyze_file          — run all checkers over a C/C++ source file
  3. analyze_snippet       — run all checkers over a bare statement sequence
  4. explain_diagnostic    — full explanation of a diagnostic kind
  5. list_diagnostic_kinds — every diagnostic kind, grouped by category
"""

from mcp.server.fastmcp import FastMCP
import dataclasses
import os
import sys
from pathlib import Path

# Ensure safecpp modules are importable
sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from safecpp.analyzer import analyze_file as _analyze_file, analyze_source
from safecpp.config import AnalyzerConfig, load_config
from safecpp.diagnostics import AnalysisReport, DiagnosticCategory, DiagnosticKind, SafeCppError
from safecpp.knowledge_base import format_explanation, get_info

# ═══════════════════════════════════════════════════════════════════════
#  Server Setup
# ═══════════════════════════════════════════════════════════════════════

mcp = FastMCP("safecpp Memory Safety Analyzer")

config = AnalyzerConfig()


def _format_report(report: AnalysisReport, title: str) -> str:
    """Render an analysis report as markdown."""
    if report.ok:
        result = f"### {title}\n\nNo memory issues detected.\n"
    else:
        result = f"### {title}\n\n"
        result += f"**{len(report.diagnostics)} diagnostic(s)** from {', '.join(report.checkers)}\n\n"
        if report.diagnostics:
            result += "| Checker | Kind | Name | Detail |\n"
            result += "|---------|------|------|--------|\n"
            for d in report.diagnostics:
                result += f"| {d.checker} | {d.kind.value} | `{d.name}` | {d.detail} |\n"
        if report.failures:
            result += "\n**Checker failures:**\n"
            for f in report.failures:
                result += f"- {f}\n"
    if report.notices:
        result += "\n**Notes:**\n"
        for notice in report.notices:
            result += f"- {notice}\n"
    return result


# ═══════════════════════════════════════════════════════════════════════
#  Tool 1 — Set Include Dirs
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def set_include_dirs(include_dirs: str = "", extra_defines: str = "", config_path: str = "") -> str:
    """
    Reconfigures the analyzer: include directories, predefined macros and
    (optionally) a safecpp.toml / pyproject.toml to load settings from.

    Args:
        include_dirs:  Comma-separated include directories.
                       Example: "include,third_party/inc"
        extra_defines: Comma-separated macro definitions.
                       Example: "DEBUG=1,BUF_SIZE=64"
        config_path:   Optional path to a configuration file.
    """
    global config

    try:
        new_config = load_config(Path(config_path)) if config_path.strip() else AnalyzerConfig()
    except SafeCppError as e:
        return f"Error: {e}"

    if include_dirs.strip():
        new_config.include_dirs += [d.strip() for d in include_dirs.split(",") if d.strip()]
    for item in extra_defines.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, value = item.partition("=")
        new_config.defines[name.strip()] = value.strip() if sep else "1"

    config = new_config
    return (
        f"Analyzer reconfigured.\n"
        f"Include directories: {len(config.include_dirs)} configured.\n"
        f"Defines: {', '.join(f'{k}={v}' for k, v in config.defines.items()) or 'none'}\n"
        f"Config file: {config.config_file or 'none'}"
    )


# ═══════════════════════════════════════════════════════════════════════
#  Tool 2 — Analyze File
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def analyze_file(file_path: str, preprocess: bool = True) -> str:
    """
    Runs the array bounds, memory lifecycle and pointer state checkers over
    a C or C++ source file and lists every diagnostic.

    Args:
        file_path:  Path to the .c/.cpp/.h/.hpp file.
        preprocess: Expand macros and includes before parsing.
    """
    if not os.path.exists(file_path):
        return f"Error: File not found at {file_path}"

    run_config = dataclasses.replace(config, preprocess=preprocess)
    try:
        report = _analyze_file(file_path, run_config)
    except SafeCppError as e:
        return f"Error analysing {file_path}: {e}"
    return _format_report(report, f"Analysis of `{file_path}`")


# ═══════════════════════════════════════════════════════════════════════
#  Tool 3 — Analyze Snippet
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def analyze_snippet(code: str, language: str = "cpp") -> str:
    """
    Analyses a bare sequence of C/C++ statements (no enclosing function).

    Args:
        code:     Statements, e.g. "int *x = new int; delete x; delete x;"
        language: 'c' or 'cpp'.
    """
    if language not in ("c", "cpp"):
        return f"Error: Unsupported language '{language}' (expected 'c' or 'cpp')"
    try:
        report = analyze_source(code, language, config, snippet=True, name="<snippet>")
    except SafeCppError as e:
        return f"Error analysing snippet: {e}"
    return _format_report(report, "Snippet analysis")


# ═══════════════════════════════════════════════════════════════════════
#  Tool 4 — Explain Diagnostic
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def explain_diagnostic(kind: str) -> str:
    """
    Returns the full explanation of a diagnostic kind: title, category,
    rationale, compliant/non-compliant examples, and how to fix.

    Args:
        kind: The diagnostic kind (e.g. 'DoubleFree' or 'double_free').
    """
    return format_explanation(kind)


# ═══════════════════════════════════════════════════════════════════════
#  Tool 5 — List Diagnostic Kinds
# ═══════════════════════════════════════════════════════════════════════

@mcp.tool()
def list_diagnostic_kinds() -> str:
    """
    Returns a markdown table of every diagnostic kind, grouped by category,
    with the checkers that report it.
    """
    report = "# Diagnostic Kinds\n\n"
    report += "| Category | Kind | Title | Reported by |\n"
    report += "|----------|------|-------|-------------|\n"
    for category in DiagnosticCategory:
        for kind in DiagnosticKind:
            if kind.category is not category:
                continue
            info = get_info(kind)
            title = info.title if info else ""
            checkers = ", ".join(info.reported_by) if info else ""
            report += f"| {category.value} | {kind.value} | {title} | {checkers} |\n"
    return report


if __name__ == "__main__":
    # Debug: Print loaded tools to stderr (visible in MCP logs)
    if hasattr(mcp, "_tool_manager") and hasattr(mcp._tool_manager, "_tools"):
        tools = mcp._tool_manager._tools.keys()
        print(f"DEBUG: safecpp starting with {len(tools)} tools: {list(tools)}", file=sys.stderr)

    mcp.run()
