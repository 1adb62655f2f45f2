"""Project discovery.

Projects come from ``~/.claude.json`` (every directory Claude Code has been
run in) and, on request, from scanning a few common source directories for
folders that contain a ``.claude/`` directory.

>>> DiscoveredProject(path=Path("/w/app"), exists=True).display_name
'app'
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from claudefig.errors import FigError
from claudefig.mcp import MCP_FILE_NAME
from claudefig.models import LegacyConfig
from claudefig.store import DocumentStore

logger = logging.getLogger(__name__)

SCAN_MAX_DEPTH = 3

DEFAULT_SCAN_DIRECTORIES = (
    "~",
    "~/code",
    "~/Code",
    "~/projects",
    "~/Projects",
    "~/Developer",
    "~/dev",
    "~/src",
    "~/repos",
    "~/github",
    "~/workspace",
)

SKIP_DIRECTORIES = frozenset({
    "node_modules", ".git", ".svn", ".hg", "vendor", "Pods", ".build", "build",
    "dist", "target", "__pycache__", ".venv", "venv", ".cache", "Library",
    "Applications",
})


@dataclass(frozen=True)
class DiscoveredProject:
    path: Path
    exists: bool
    has_settings: bool = False
    has_local_settings: bool = False
    has_mcp_config: bool = False
    last_modified: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.path.name

    @property
    def has_any_config(self) -> bool:
        return self.has_settings or self.has_local_settings or self.has_mcp_config

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "name": self.display_name,
            "exists": self.exists,
            "has_settings": self.has_settings,
            "has_local_settings": self.has_local_settings,
            "has_mcp_config": self.has_mcp_config,
            "has_any_config": self.has_any_config,
            "last_modified": self.last_modified.isoformat() if self.last_modified else None,
        }


def _sort_key(project: DiscoveredProject):
    # Most recently modified first; undated projects last, by name
    if project.last_modified is not None:
        return (0, -project.last_modified.timestamp(), "")
    return (1, 0.0, project.display_name.casefold())


def _mtime(path: Path) -> Optional[float]:
    try:
        return path.stat().st_mtime
    except OSError:
        return None


def load_legacy_config(store: DocumentStore) -> Optional[LegacyConfig]:
    """Parse ``~/.claude.json``; None when it does not exist.

    Raises ``ParseError`` and the store's read errors.
    """
    result = store.read_model(store.config.legacy_config_path, LegacyConfig)
    return result[0] if result is not None else None


class ProjectDiscovery:
    def __init__(self, store: DocumentStore):
        self.store = store
        self.home_dir = store.config.home_dir

    def _expand(self, directory) -> Path:
        text = str(directory)
        if text == "~" or text.startswith("~/"):
            return self.home_dir / text[2:]
        return Path(text)

    def known_projects(self) -> list[Path]:
        """Absolute project paths listed in ``~/.claude.json``.

        An unreadable file is logged and treated as listing nothing, so a
        scan can still find projects.
        """
        try:
            legacy = load_legacy_config(self.store)
        except FigError as e:
            logger.warning("Cannot read %s: %s", self.store.config.legacy_config_path, e.message)
            return []
        if legacy is None:
            return []
        paths = []
        for raw in legacy.project_paths:
            path = Path(raw)
            if path.is_absolute():
                paths.append(Path(os.path.normpath(path)))
            else:
                logger.debug("Skipping relative project path %r", raw)
        return paths

    def _scan(self, directory: Path, depth: int, found: set):
        if depth <= 0:
            return
        if (directory / ".claude").is_dir() and directory != self.home_dir.resolve():
            found.add(directory)
        try:
            entries = list(os.scandir(directory))
        except OSError as e:
            logger.debug("Cannot scan %s: %s", directory, e)
            return
        for entry in entries:
            if entry.name.startswith(".") or entry.name in SKIP_DIRECTORIES:
                continue
            if entry.is_symlink() or not entry.is_dir(follow_symlinks=False):
                continue
            self._scan(Path(entry.path), depth - 1, found)

    def scan(self, directories: Optional[Iterable] = None) -> list[Path]:
        """Folders containing ``.claude/`` up to three levels below each directory.

        ``~`` expands against the configured home directory. The home
        directory itself is never a project: its ``.claude/`` holds the
        global settings.
        """
        found: set[Path] = set()
        for directory in directories or DEFAULT_SCAN_DIRECTORIES:
            path = self._expand(directory)
            if not path.is_dir():
                continue
            self._scan(path.resolve(), SCAN_MAX_DEPTH, found)
        logger.debug("Scan found %d projects", len(found))
        return sorted(found)

    def refresh(self, path) -> DiscoveredProject:
        """Describe one project directory as it is on disk right now."""
        path = self._expand(path)
        claude_dir = path / ".claude"
        config_files = [
            claude_dir / "settings.local.json",
            claude_dir / "settings.json",
            path / MCP_FILE_NAME,
        ]
        stamps = [t for t in (_mtime(p) for p in config_files) if t is not None]
        if not stamps:
            directory_time = _mtime(path)
            stamps = [directory_time] if directory_time is not None else []
        return DiscoveredProject(
            path=path,
            exists=path.is_dir(),
            has_settings=config_files[1].is_file(),
            has_local_settings=config_files[0].is_file(),
            has_mcp_config=config_files[2].is_file(),
            last_modified=datetime.fromtimestamp(max(stamps)) if stamps else None,
        )

    def discover(self, scan: bool = False, directories: Optional[Iterable] = None) -> list[DiscoveredProject]:
        """Known projects, plus scanned ones when ``scan`` is set, newest first."""
        paths = set(self.known_projects())
        if scan:
            paths.update(self.scan(directories))
        projects = [self.refresh(p) for p in paths]
        projects.sort(key=_sort_key)
        logger.info("Discovered %d projects", len(projects))
        return projects
