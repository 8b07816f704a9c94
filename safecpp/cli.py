"""
safecpp command line.

    safecpp FILE [-I DIR] [-D NAME[=VALUE]] [--no-preprocess] [--strict]
                 [--all] [--json] [--config PATH] [-v]

Exit status is 0 when no checker reported anything ("No memory issues
detected.") and 1 otherwise, including bad usage and unreadable input.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .analyzer import analyze_file
from .config import load_config
from .diagnostics import AnalysisReport, SafeCppError
from .knowledge_base import format_explanation

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ISSUES = 1

OK_MESSAGE = "No memory issues detected."


class _ArgumentParser(argparse.ArgumentParser):
    """argparse exits 2 on usage errors; safecpp has a single failure code."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_ISSUES, f"{self.prog}: error: {message}\n")


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="safecpp",
        description="Flow-sensitive memory and pointer safety checks for C/C++ sources.",
    )
    parser.add_argument("file", nargs="?", help="C or C++ source file to analyse")
    parser.add_argument(
        "-I", dest="include_dirs", action="append", default=[], metavar="DIR",
        help="Add an include search directory (repeatable).",
    )
    parser.add_argument(
        "-D", dest="defines", action="append", default=[], metavar="NAME[=VALUE]",
        help="Predefine a macro (repeatable).",
    )
    parser.add_argument("--no-preprocess", action="store_true",
                        help="Parse the raw source without macro expansion.")
    parser.add_argument("--strict", action="store_true",
                        help="Treat syntax errors in the source as fatal.")
    parser.add_argument("--all", action="store_true",
                        help="Print every diagnostic instead of only the first.")
    parser.add_argument("--json", action="store_true",
                        help="Print the full report as JSON.")
    parser.add_argument("--config", type=Path, metavar="PATH",
                        help="Configuration file (default: search upwards).")
    parser.add_argument("--explain", metavar="KIND",
                        help="Explain a diagnostic kind and exit.")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )
    return parser


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def parse_defines(values: Sequence[str]) -> Dict[str, str]:
    """Turn ``NAME`` / ``NAME=VALUE`` flags into a macro table."""
    defines: Dict[str, str] = {}
    for item in values:
        name, sep, value = item.partition("=")
        if not name:
            raise SafeCppError(f"Invalid macro definition: {item!r}")
        defines[name] = value if sep else "1"
    return defines


def render_report(report: AnalysisReport, show_all: bool = False) -> List[str]:
    if report.ok:
        return [OK_MESSAGE]
    if not show_all:
        return [f"Error: {report.first_error()}"]
    lines = [f"Error: {failure}" for failure in report.failures]
    lines += [f"Error: {diag}" for diag in report.diagnostics]
    lines += [f"Note: {notice}" for notice in report.notices]
    return lines


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if args.explain:
        print(format_explanation(args.explain))
        return EXIT_OK
    if not args.file:
        parser.error("a source file is required")

    try:
        config = load_config(args.config, Path(args.file).resolve().parent)
        if args.no_preprocess:
            config.preprocess = False
        if args.strict:
            config.strict_parse = True
        report = analyze_file(
            args.file, config,
            include_dirs=args.include_dirs,
            defines=parse_defines(args.defines),
        )
    except SafeCppError as e:
        logger.debug("Analysis aborted", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ISSUES

    if args.json:
        print(json.dumps(report.model_dump(mode="json"), indent=2))
    else:
        for line in render_report(report, args.all):
            print(line)
    return EXIT_OK if report.ok else EXIT_ISSUES
