"""
Preprocessor — macro expansion ahead of parsing, using 'pcpp'.

Expanding macros before tree-sitter sees the source turns
``#define N 3`` / ``int a[N];`` into a literal capacity the Array Bounds
Checker can use, and resolves ``#if``/``#ifdef`` so that only active code
is analysed.  Includes that cannot be found (system headers, usually) are
passed through untouched.
"""

import io
import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

from pcpp import Action, OutputDirective, Preprocessor

from .diagnostics import FrontendError

logger = logging.getLogger(__name__)


class _QuietPreprocessor(Preprocessor):
    """A pcpp Preprocessor that routes diagnostics to logging.

    pcpp prints every missing-include error to stderr via ``on_error()``.
    This subclass logs those at DEBUG and passes unfound includes through
    so preprocessing can continue.
    """

    def on_include_not_found(self, is_malformed, is_system_include, curdir, includepath):
        logger.debug("pcpp: include not found: %s (system=%s)", includepath, is_system_include)
        raise OutputDirective(Action.IgnoreAndPassThrough)

    def on_error(self, file, line, msg):
        logger.debug("pcpp: %s:%s: %s", file, line, msg)


class PreprocessorEngine:
    """Wrap pcpp with include paths, predefined macros and a per-file cache."""

    def __init__(self, include_dirs: Optional[Iterable[str]] = None,
                 defines: Optional[Dict[str, str]] = None):
        self.include_dirs: List[str] = list(include_dirs or [])
        self.defines: Dict[str, str] = dict(defines or {})
        # Cache: absolute path -> (expanded_text, defined_macros)
        self._cache: Dict[str, Tuple[str, Dict[str, str]]] = {}

    def add_define(self, name: str, value: str = "1"):
        """Add a global macro definition (e.g. -DDEBUG=1)."""
        self.defines[name] = value
        self._cache.clear()

    def add_include_dir(self, path: str):
        self.include_dirs.append(path)
        self._cache.clear()

    def preprocess(self, file_path: str) -> str:
        """Preprocess a file and return the expanded source text."""
        full_path = os.path.abspath(file_path)
        if full_path in self._cache:
            return self._cache[full_path][0]
        if not os.path.isfile(full_path):
            raise FrontendError(f"File not found: {file_path}")
        with open(full_path, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()
        extra = [os.path.dirname(full_path)]
        expanded, macros = self._run(text, full_path, extra)
        self._cache[full_path] = (expanded, macros)
        logger.info("Preprocessed %s (%d bytes)", file_path, len(expanded))
        return expanded

    def preprocess_text(self, text: str, source: str = "<input>") -> str:
        """Preprocess source held in memory."""
        expanded, _ = self._run(text, source, [])
        return expanded

    def get_defined_macros(self, file_path: str) -> Dict[str, str]:
        """Macros defined after preprocessing ``file_path`` (empty if not yet run)."""
        cached = self._cache.get(os.path.abspath(file_path))
        return dict(cached[1]) if cached else {}

    # ────────────────────────────────────────────────────────────────
    #  Internal helpers
    # ────────────────────────────────────────────────────────────────

    def _run(self, text: str, source: str,
             extra_dirs: List[str]) -> Tuple[str, Dict[str, str]]:
        pp = _QuietPreprocessor()
        # The AST carries no positions, so #line markers would only be noise
        # for tree-sitter.
        pp.line_directive = None
        for d in extra_dirs + self.include_dirs:
            pp.add_path(d)
        for name, value in self.defines.items():
            pp.define(f"{name} {value}")

        output = io.StringIO()
        try:
            pp.parse(text, source=source)
            pp.write(output)
        except Exception as e:
            raise FrontendError(f"Preprocessing failed for {source}: {e}") from e
        return output.getvalue(), _macro_table(pp)


def _macro_table(pp: Preprocessor) -> Dict[str, str]:
    macros: Dict[str, str] = {}
    for name, macro in pp.macros.items():
        value = getattr(macro, "value", None)
        if isinstance(value, list):
            macros[name] = "".join(tok.value for tok in value)
        elif value is not None:
            macros[name] = str(value)
        else:
            macros[name] = ""
    return macros
