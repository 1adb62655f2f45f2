"""CLAUDE.md files across the global / project / subdirectory hierarchy.

>>> ClaudeMDFile(id="/p/CLAUDE.md", path=Path("/p/CLAUDE.md"), level=ClaudeMDLevel.PROJECT_ROOT).display_path
'CLAUDE.md'
"""

import logging
import os
import subprocess
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Optional

from claudefig.errors import FileIOError, NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)

FILE_NAME = "CLAUDE.md"
DEFAULT_CONTENT = "# CLAUDE.md\n\n"
MAX_DEPTH = 3
GIT_TIMEOUT = 5  # seconds

# Never scanned for subdirectory CLAUDE.md files
SKIP_DIRECTORIES = frozenset({
    ".git", ".svn", ".hg",
    "node_modules", ".build", "build", "dist", "DerivedData",
    ".venv", "venv", "__pycache__", ".tox",
    "Pods", "Carthage",
    ".next", ".nuxt",
    "vendor", "target",
})


class ClaudeMDLevel(str, Enum):
    GLOBAL = "global"
    PROJECT_ROOT = "project_root"
    SUBDIRECTORY = "subdirectory"

    @property
    def sort_order(self) -> int:
        return list(ClaudeMDLevel).index(self)


@dataclass(frozen=True)
class ClaudeMDFile:
    id: str
    path: Path
    level: ClaudeMDLevel
    relative_path: Optional[str] = None
    content: str = ""
    exists: bool = False
    tracked_by_git: bool = False
    load_error: Optional[str] = None

    @property
    def display_path(self) -> str:
        if self.level is ClaudeMDLevel.GLOBAL:
            return f"~/.claude/{FILE_NAME}"
        if self.level is ClaudeMDLevel.PROJECT_ROOT:
            return FILE_NAME
        return f"{self.relative_path}/{FILE_NAME}"

    @property
    def display_name(self) -> str:
        if self.level is ClaudeMDLevel.GLOBAL:
            return "Global"
        if self.level is ClaudeMDLevel.PROJECT_ROOT:
            return "Project Root"
        return self.relative_path or ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": str(self.path),
            "level": self.level.value,
            "relative_path": self.relative_path,
            "display_path": self.display_path,
            "display_name": self.display_name,
            "content": self.content,
            "exists": self.exists,
            "tracked_by_git": self.tracked_by_git,
            "load_error": self.load_error,
        }


def is_tracked_by_git(path: Path, cwd: Path) -> bool:
    """``git ls-files --error-unmatch``; any failure counts as untracked."""
    try:
        result = subprocess.run(
            ["git", "ls-files", "--error-unmatch", str(path)],
            cwd=str(cwd),
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=GIT_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("git status check failed for %s: %s", path, e)
        return False
    return result.returncode == 0


def _write_text(path: Path, content: str):
    """Write ``content`` atomically (write-to-temp then rename)."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(path)
    except PermissionError:
        raise PermissionDeniedError(path) from None
    except OSError as e:
        raise FileIOError(f"Failed to write {path}: {e.strerror or e}", path) from None


class ClaudeMDHierarchy:
    """Discover, read and write the CLAUDE.md files that apply to a project."""

    def __init__(self, project_path, home_dir=None):
        self.project_path = Path(project_path).expanduser()
        self.home_dir = Path(home_dir) if home_dir is not None else Path.home()
        self.files: list[ClaudeMDFile] = []

    @property
    def global_path(self) -> Path:
        return self.home_dir / ".claude" / FILE_NAME

    def _git_cwd(self, path: Path) -> Path:
        if path == self.global_path:
            return path.parent
        return self.project_path

    def _load_file(
        self, path: Path, level: ClaudeMDLevel, relative_path: Optional[str] = None
    ) -> ClaudeMDFile:
        content = ""
        load_error = None
        exists = path.is_file()
        tracked = False
        if exists:
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Could not read %s: %s", path, e)
                load_error = str(e)
            if self._git_cwd(path).is_dir():
                tracked = is_tracked_by_git(path, self._git_cwd(path))
        return ClaudeMDFile(
            id=str(path),
            path=path,
            level=level,
            relative_path=relative_path,
            content=content,
            exists=exists,
            tracked_by_git=tracked,
            load_error=load_error,
        )

    def _discover_subdirectories(self) -> list[tuple[Path, str]]:
        found = []
        root = self.project_path
        for dirpath, dirnames, _ in os.walk(root):
            current = Path(dirpath)
            depth = 0 if current == root else len(current.relative_to(root).parts)
            dirnames[:] = sorted(
                d for d in dirnames
                if d not in SKIP_DIRECTORIES and not d.startswith(".")
            )
            if depth >= MAX_DEPTH:
                dirnames[:] = []
            if depth == 0:
                continue
            candidate = current / FILE_NAME
            if candidate.is_file():
                found.append((candidate, current.relative_to(root).as_posix()))
        return found

    def load_files(self) -> list[ClaudeMDFile]:
        """Global and project root (always listed), then subdirectory files."""
        files = [
            self._load_file(self.global_path, ClaudeMDLevel.GLOBAL),
            self._load_file(self.project_path / FILE_NAME, ClaudeMDLevel.PROJECT_ROOT),
        ]
        subdirs = [
            self._load_file(path, ClaudeMDLevel.SUBDIRECTORY, relative)
            for path, relative in self._discover_subdirectories()
        ]
        files.extend(sorted(subdirs, key=lambda f: f.display_path))
        self.files = files
        logger.debug("Found %d CLAUDE.md files for %s", len(files), self.project_path)
        return list(files)

    def get(self, file_id: str) -> ClaudeMDFile:
        for f in self.files:
            if f.id == file_id:
                return f
        raise NotFoundError(f"Unknown CLAUDE.md file: {file_id}")

    def _replace(self, updated: ClaudeMDFile):
        self.files = [updated if f.id == updated.id else f for f in self.files]

    def save(self, file_id: str, content: str) -> ClaudeMDFile:
        """Write ``content``; refused for a file whose current content could not be read."""
        current = self.get(file_id)
        if current.load_error is not None:
            raise ValueError(
                f"Cannot save {current.display_path}: it could not be read "
                f"({current.load_error}). Fix it by hand, then reload."
            )
        _write_text(current.path, content)
        updated = replace(
            current,
            content=content,
            exists=True,
            tracked_by_git=is_tracked_by_git(current.path, self._git_cwd(current.path)),
        )
        self._replace(updated)
        logger.info("Saved %s", current.path)
        return updated

    def path_for(self, level: ClaudeMDLevel, relative_path: Optional[str] = None) -> Path:
        """Where a CLAUDE.md for ``level`` lives.

        Subdirectories must be ones discovery would find: inside the project,
        at most ``MAX_DEPTH`` levels deep, and not hidden or skipped.
        """
        level = ClaudeMDLevel(level)
        if level is ClaudeMDLevel.GLOBAL:
            return self.global_path
        if level is ClaudeMDLevel.PROJECT_ROOT:
            return self.project_path / FILE_NAME
        if not relative_path:
            raise ValueError("Subdirectory CLAUDE.md needs a relative path")
        root = self.project_path.resolve()
        directory = (root / relative_path).resolve()
        if root not in directory.parents:
            raise ValueError(f"Path escapes the project: {relative_path}")
        parts = directory.relative_to(root).parts
        if len(parts) > MAX_DEPTH:
            raise ValueError(
                f"{relative_path} is deeper than {MAX_DEPTH} levels below the project"
            )
        for part in parts:
            if part in SKIP_DIRECTORIES or part.startswith("."):
                raise ValueError(f"CLAUDE.md files under {part}/ are not tracked")
        return self.project_path.joinpath(*parts, FILE_NAME)

    def create(self, level: ClaudeMDLevel, relative_path: Optional[str] = None) -> ClaudeMDFile:
        """Create a CLAUDE.md with default content. Existing files are left alone."""
        path = self.path_for(level, relative_path)
        if path.exists():
            raise ValueError(f"{path} already exists")
        _write_text(path, DEFAULT_CONTENT)
        logger.info("Created %s", path)
        self.load_files()
        return self.get(str(path))

    def reload(self, file_id: str) -> ClaudeMDFile:
        current = self.get(file_id)
        updated = self._load_file(current.path, current.level, current.relative_path)
        self._replace(updated)
        return updated
