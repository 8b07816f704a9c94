"""
Analyzer — runs every checker over one AST and merges the results.

The three checkers are independent passes over the same read-only tree.
Their diagnostics are concatenated in checker order without
deduplication: the same variable may legitimately be reported by more
than one checker.  A checker that aborts on a malformed tree is recorded
as a failure and does not stop the others.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .array_checker import ArrayBoundsChecker
from .ast_nodes import Node
from .checker import BaseChecker
from .config import AnalyzerConfig
from .diagnostics import AnalysisReport, CheckerFailure, FrontendError, MalformedTreeError
from .frontend import TreeBuilder, language_for_path
from .memory_tracker import MemoryLifecycleTracker
from .pointer_checker import PointerStateMachine
from .preprocessor import PreprocessorEngine

logger = logging.getLogger(__name__)

CHECKER_CLASSES = (ArrayBoundsChecker, MemoryLifecycleTracker, PointerStateMachine)


class Analyzer:
    """Diagnostic aggregator over the array, memory and pointer checkers."""

    def __init__(self, config: Optional[AnalyzerConfig] = None,
                 checkers: Optional[Sequence[BaseChecker]] = None):
        self.config = config or AnalyzerConfig()
        if checkers is None:
            checkers = [cls(self.config) for cls in CHECKER_CLASSES]
        self.checkers: List[BaseChecker] = list(checkers)

    def analyze(self, nodes: Sequence[Node], source: Optional[str] = None) -> AnalysisReport:
        nodes = list(nodes)
        report = AnalysisReport(source=source, checkers=[c.name for c in self.checkers])
        for checker in self.checkers:
            try:
                result = checker.check(nodes)
            except MalformedTreeError as e:
                logger.error("%s aborted: %s", checker.name, e)
                report.failures.append(CheckerFailure(checker=checker.name, message=str(e)))
                continue
            report.diagnostics.extend(result.diagnostics)
            for notice in result.notices:
                if notice not in report.notices:
                    report.notices.append(notice)
            logger.debug("%s: %d diagnostic(s)", checker.name, len(result.diagnostics))
        return report


def analyze_source(source: Union[str, bytes], language: str = "cpp",
                   config: Optional[AnalyzerConfig] = None,
                   snippet: bool = False, name: Optional[str] = None) -> AnalysisReport:
    """Parse and analyse source text.

    Args:
        source:   C/C++ source.
        language: 'c' or 'cpp'.
        config:   Analyzer settings (defaults if omitted).
        snippet:  Treat ``source`` as a bare statement sequence rather than a
                  translation unit.
        name:     Label recorded in the report.
    """
    config = config or AnalyzerConfig()
    builder = TreeBuilder(language, max_depth=config.max_depth, strict=config.strict_parse)
    nodes = builder.parse_snippet(source) if snippet else builder.parse(source)
    return Analyzer(config).analyze(nodes, source=name)


def analyze_file(file_path: str, config: Optional[AnalyzerConfig] = None,
                 include_dirs: Iterable[str] = (),
                 defines: Optional[Dict[str, str]] = None,
                 language: Optional[str] = None) -> AnalysisReport:
    """Read, optionally preprocess, parse and analyse one source file."""
    config = config or AnalyzerConfig()
    text = read_source(file_path)

    if config.preprocess:
        engine = PreprocessorEngine(
            include_dirs=list(config.include_dirs) + list(include_dirs),
            defines={**config.defines, **(defines or {})},
        )
        try:
            text = engine.preprocess(file_path)
        except FrontendError as e:
            logger.warning("Preprocessing failed for %s, using raw source: %s", file_path, e)

    return analyze_source(text, language or language_for_path(file_path), config,
                          name=file_path)


def read_source(file_path: str) -> str:
    """Read a source file, refusing missing and binary files."""
    if not os.path.isfile(file_path):
        raise FrontendError(f"File not found: {file_path}")
    try:
        with open(file_path, "rb") as fb:
            raw = fb.read()
    except OSError as e:
        raise FrontendError(f"Cannot read {file_path}: {e}") from e
    if b"\x00" in raw[:8192]:
        raise FrontendError(f"Refusing binary file: {file_path}")
    return raw.decode("utf-8", errors="replace")
