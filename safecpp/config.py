"""
Configuration for safecpp.

Settings live in ``safecpp.toml`` / ``.safecpp.toml`` (either at top level
or under ``[tool.safecpp]``) or in ``pyproject.toml`` under
``[tool.safecpp]``.  The file is found by walking up from a start
directory; explicit arguments (CLI flags) override file values.
"""

import logging
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional

from .diagnostics import SafeCppError

logger = logging.getLogger(__name__)

CONFIG_FILES = [
    "safecpp.toml",
    ".safecpp.toml",
    "pyproject.toml",
]

DEFAULT_ALLOCATORS = frozenset({"malloc", "calloc", "realloc", "new", "new[]"})
DEFAULT_DEALLOCATORS = frozenset({"free", "delete", "delete[]"})


@dataclass
class AnalyzerConfig:
    """Settings shared by the front end, the checkers and the driver."""
    allocators: FrozenSet[str] = DEFAULT_ALLOCATORS
    deallocators: FrozenSet[str] = DEFAULT_DEALLOCATORS
    max_depth: int = 200
    report_unfreed_at_exit: bool = False
    preprocess: bool = True
    strict_parse: bool = False
    include_dirs: List[str] = field(default_factory=list)
    defines: Dict[str, str] = field(default_factory=dict)
    config_file: Optional[Path] = None

    def is_allocator(self, name: str) -> bool:
        return name in self.allocators

    def is_deallocator(self, name: str) -> bool:
        return name in self.deallocators

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allocators": sorted(self.allocators),
            "deallocators": sorted(self.deallocators),
            "max_depth": self.max_depth,
            "report_unfreed_at_exit": self.report_unfreed_at_exit,
            "preprocess": self.preprocess,
            "strict_parse": self.strict_parse,
            "include_dirs": list(self.include_dirs),
            "defines": dict(self.defines),
        }


def find_config_file(start_dir: Optional[Path] = None) -> Optional[Path]:
    """Find the nearest configuration file by walking up from ``start_dir``.

    A ``pyproject.toml`` only counts when it carries a ``[tool.safecpp]``
    table, so an unrelated project file does not stop the search.
    """
    current = (start_dir or Path.cwd()).resolve()
    while True:
        for config_name in CONFIG_FILES:
            config_path = current / config_name
            if not config_path.is_file():
                continue
            if config_name == "pyproject.toml" and not _has_tool_table(config_path):
                continue
            return config_path
        if current == current.parent:
            return None
        current = current.parent


def load_config(config_path: Optional[Path] = None,
                start_dir: Optional[Path] = None) -> AnalyzerConfig:
    """Load configuration from a file, or return the defaults.

    Args:
        config_path: Explicit path to a config file.  A missing explicit
                     file is an error; a missing discovered file is not.
        start_dir:   Directory to start searching from when no explicit
                     path is given.
    """
    config = AnalyzerConfig()
    if config_path is None:
        config_path = find_config_file(start_dir)
        if config_path is None:
            return config
    elif not config_path.is_file():
        raise SafeCppError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise SafeCppError(f"Invalid config file {config_path}: {e}") from e

    if config_path.name == "pyproject.toml":
        settings = data.get("tool", {}).get("safecpp", {})
    else:
        settings = data.get("tool", {}).get("safecpp", data)

    apply_settings(config, settings)
    config.config_file = config_path
    logger.info("Loaded configuration from %s", config_path)
    return config


def apply_settings(config: AnalyzerConfig, data: Dict[str, Any]) -> None:
    """Apply a ``[tool.safecpp]`` style mapping onto ``config``."""
    for key in ("max_depth",):
        if key in data:
            value = data[key]
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                raise SafeCppError(f"{key} must be a positive integer, got {value!r}")
            setattr(config, key, value)
    for key in ("report_unfreed_at_exit", "preprocess", "strict_parse"):
        if key in data:
            setattr(config, key, bool(data[key]))
    if "allocators" in data:
        config.allocators = frozenset(data["allocators"])
    if "extra_allocators" in data:
        config.allocators = config.allocators | frozenset(data["extra_allocators"])
    if "deallocators" in data:
        config.deallocators = frozenset(data["deallocators"])
    if "extra_deallocators" in data:
        config.deallocators = config.deallocators | frozenset(data["extra_deallocators"])
    if "include_dirs" in data:
        config.include_dirs = [str(d) for d in data["include_dirs"]]
    if "defines" in data:
        config.defines = {str(k): str(v) for k, v in dict(data["defines"]).items()}

    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))


_KNOWN_KEYS = {
    "max_depth", "report_unfreed_at_exit", "preprocess", "strict_parse",
    "allocators", "extra_allocators", "deallocators", "extra_deallocators",
    "include_dirs", "defines",
}


def _has_tool_table(pyproject: Path) -> bool:
    try:
        with open(pyproject, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return False
    return "safecpp" in data.get("tool", {})
