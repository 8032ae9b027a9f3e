"""Persisted user configuration: columns, sorting, filters and ignored repositories."""

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class Column(str, Enum):
    """Columns of the repositories table, persisted by value."""

    ORIGIN = "origin"
    REPOSITORY = "repository"
    TYPE = "type"
    UPDATED = "updated"
    ARCHIVED = "archived"
    PRIVATE = "private"
    GHQ = "ghq"
    STATUS = "status"
    DIRTY = "dirty"
    PATH = "path"

    @property
    def label(self) -> str:
        return COLUMN_LABELS[self]

    @classmethod
    def default_order(cls) -> List["Column"]:
        return list(cls)


COLUMN_LABELS = {
    Column.ORIGIN: "Origin",
    Column.REPOSITORY: "Repository",
    Column.TYPE: "Type",
    Column.UPDATED: "Updated",
    Column.ARCHIVED: "Arch",
    Column.PRIVATE: "Priv",
    Column.GHQ: "ghq?",
    Column.STATUS: "Status",
    Column.DIRTY: "Dirty",
    Column.PATH: "Path",
}


def config_dir() -> Path:
    base = os.getenv("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "ghall"


def default_config_path() -> Path:
    return config_dir() / "config.json"


def _parse_columns(values: Any) -> List[Column]:
    if not isinstance(values, list):
        return Column.default_order()
    columns = []
    for value in values:
        try:
            column = Column(str(value).lower())
        except ValueError:
            logger.warning(f"Ignoring unknown column {value!r} in config")
            continue
        if column not in columns:
            columns.append(column)
    return columns or Column.default_order()


@dataclass
class Config:
    """User configuration, loaded once at startup and saved after every change."""

    ignored_repos: Set[str] = field(default_factory=set)
    columns: List[Column] = field(default_factory=Column.default_order)
    sort_column: str = "updated"
    sort_ascending: bool = False
    show_archived: bool = True
    show_private: bool = True
    path: Path = field(default_factory=default_config_path, repr=False, compare=False)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """
        Load the configuration, falling back to defaults.

        A legacy ``ignored.txt`` next to the config file is migrated into the
        new format and removed.

        Args:
            path: Config file location. Defaults to ``$XDG_CONFIG_HOME/ghall/config.json``.
        """
        path = Path(path) if path is not None else default_config_path()

        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                return cls.from_dict(data, path)
            except (OSError, ValueError, AttributeError) as e:
                logger.warning(f"Could not read config {path}: {e}. Using defaults.")
                return cls(path=path)

        legacy_path = path.parent / "ignored.txt"
        if legacy_path.exists():
            config = cls(path=path)
            try:
                lines = legacy_path.read_text(encoding="utf-8").splitlines()
                config.ignored_repos = {line.strip() for line in lines if line.strip()}
                config.save()
                legacy_path.unlink()
                logger.info(f"Migrated {len(config.ignored_repos)} ignored repositories from {legacy_path}")
            except OSError as e:
                logger.warning(f"Could not migrate {legacy_path}: {e}")
            return config

        return cls(path=path)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], path: Path) -> "Config":
        return cls(
            ignored_repos=set(data.get("ignored_repos", [])),
            columns=_parse_columns(data.get("columns")),
            sort_column=str(data.get("sort_column", "updated")),
            sort_ascending=bool(data.get("sort_ascending", False)),
            show_archived=bool(data.get("show_archived", True)),
            show_private=bool(data.get("show_private", True)),
            path=path,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ignored_repos": sorted(self.ignored_repos),
            "columns": [c.value for c in self.columns],
            "sort_column": self.sort_column,
            "sort_ascending": self.sort_ascending,
            "show_archived": self.show_archived,
            "show_private": self.show_private,
        }

    def save(self) -> None:
        """Write the configuration synchronously; failures are logged, not raised."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_file = self.path.with_suffix(".tmp")
            tmp_file.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
            tmp_file.replace(self.path)
        except OSError as e:
            logger.error(f"Could not save config {self.path}: {e}")

    def move_column_left(self, column: Column) -> None:
        idx = self.columns.index(column) if column in self.columns else -1
        if idx > 0:
            self.columns[idx - 1], self.columns[idx] = self.columns[idx], self.columns[idx - 1]

    def move_column_right(self, column: Column) -> None:
        idx = self.columns.index(column) if column in self.columns else -1
        if 0 <= idx < len(self.columns) - 1:
            self.columns[idx + 1], self.columns[idx] = self.columns[idx], self.columns[idx + 1]
