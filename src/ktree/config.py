"""KtreeConfig: project-local config for a knowledge tree.

Default layout (all relative to the project root):

    ktree.toml            # project config (git-tracked)
    .ktree/
        entries/          # one JSON document per entry (git-tracked)
            backend/
                redis/
                    connection-pooling.json

ktree.toml example:

    [ktree]
    name = "my-project"
    # entries_dir = ".ktree/entries"   # default

    [traversal]
    default_depth = 1
    max_depth = 5

    [logging]
    level = "WARNING"
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_CONFIG_FILENAME = "ktree.toml"
_DEFAULT_ENTRIES_DIR = ".ktree/entries"
_LOG_LEVEL_ENV = "KTREE_LOG_LEVEL"


@dataclass
class TraversalConfig:
    default_depth: int = 1
    max_depth: int = 5      # read_with_depth clamps requests to this


@dataclass
class LoggingConfig:
    level: str = "WARNING"

    @property
    def level_no(self) -> int:
        value = logging.getLevelName(self.level.upper())
        return value if isinstance(value, int) else logging.WARNING


@dataclass
class KtreeConfig:
    """Resolved configuration for a knowledge tree project."""

    root: Path                      # directory that contains ktree.toml
    name: str = ""
    entries_dir: Path = field(default_factory=Path)
    traversal: TraversalConfig = field(default_factory=TraversalConfig)
    log: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME

    def ensure_dirs(self) -> None:
        self.entries_dir.mkdir(parents=True, exist_ok=True)


def load_config(root: Path | str | None = None) -> KtreeConfig:
    """Load ktree.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    section = raw.get("ktree", {})
    trav_section = raw.get("traversal", {})
    log_section = raw.get("logging", {})

    default_depth = int(trav_section.get("default_depth", 1))
    max_depth = int(trav_section.get("max_depth", 5))
    if default_depth < 1 or max_depth < 1:
        msg = f"{config_path}: traversal depths must be >= 1"
        raise ValueError(msg)

    level = os.environ.get(_LOG_LEVEL_ENV) or str(log_section.get("level", "WARNING"))

    return KtreeConfig(
        root=root_path,
        name=section.get("name", root_path.name),
        entries_dir=root_path / section.get("entries_dir", _DEFAULT_ENTRIES_DIR),
        traversal=TraversalConfig(
            default_depth=default_depth,
            max_depth=max(max_depth, default_depth),
        ),
        log=LoggingConfig(level=level),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for ktree.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, name: str | None = None) -> Path:
    """Write a default ktree.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"ktree.toml already exists at {config_path}"
        raise FileExistsError(msg)

    project_name = name or root.name
    content = f"""\
[ktree]
name = "{project_name}"
# entries_dir = ".ktree/entries"   # default

# [traversal]
# default_depth = 1   # hops embedded by `ktree show` when --depth is not given
# max_depth = 5       # upper bound for any traversal request

# [logging]
# level = "WARNING"   # or set KTREE_LOG_LEVEL
"""
    config_path.write_text(content)
    return config_path
