"""Document store for Claude Code settings files.

Loads a settings file for an editing target, writes it back atomically
(timestamped backup first, then temp file + ``os.replace``), and detects
changes made on disk by anything other than our own save.

>>> sig = FileSignature(modified_at=1.0, size=2, digest="ab")
>>> sig.same_content(FileSignature(modified_at=9.0, size=2, digest="ab"))
True
"""

import errno
import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Optional, TypeVar

from pydantic import ValidationError

from claudefig.config import FigConfig
from claudefig.errors import (
    BackupFailedError,
    CircularSymlinkError,
    FileIOError,
    ParseError,
    PermissionDeniedError,
)
from claudefig.models import ClaudeSettings, EditingTarget, MCPConfig

logger = logging.getLogger(__name__)

MAX_SYMLINK_DEPTH = 10
BACKUP_INFIX = ".backup."
BACKUP_TIME_FORMAT = "%Y-%m-%dT%H-%M-%S"
DEFAULT_CONTENT = {}

M = TypeVar("M")


@dataclass(frozen=True)
class FileSignature:
    """What a file looked like when we last read or wrote it."""

    modified_at: float
    size: int
    digest: str

    def same_content(self, other: Optional["FileSignature"]) -> bool:
        return other is not None and self.digest == other.digest


@dataclass(frozen=True)
class SettingsDocument:
    """A settings file as loaded from disk.

    A missing file is represented by ``exists=False`` with empty settings.
    """

    target: EditingTarget
    path: Path
    settings: ClaudeSettings = field(default_factory=ClaudeSettings.empty)
    exists: bool = False
    raw: Optional[bytes] = None
    signature: Optional[FileSignature] = None

    def with_signature(self, signature: Optional[FileSignature]) -> "SettingsDocument":
        return replace(self, signature=signature)


@dataclass(frozen=True)
class ExternalChangeRecord:
    """An on-disk change to a document we did not make ourselves.

    ``signature`` is None when the file was deleted.
    """

    path: Path
    signature: Optional[FileSignature]
    detected_at: datetime = field(default_factory=datetime.now)

    @property
    def exists(self) -> bool:
        return self.signature is not None


def _signature_for(raw: bytes, stat: os.stat_result) -> FileSignature:
    return FileSignature(
        modified_at=stat.st_mtime,
        size=stat.st_size,
        digest=hashlib.sha256(raw).hexdigest(),
    )


def resolve_symlinks(path: Path) -> Path:
    """Follow a symlink chain to its final target.

    The target need not exist. Raises ``CircularSymlinkError`` for a chain
    deeper than ``MAX_SYMLINK_DEPTH`` or one that revisits a link.
    """
    current = Path(path)
    seen: set[Path] = set()
    for _ in range(MAX_SYMLINK_DEPTH + 1):
        if not current.is_symlink():
            return current
        if current in seen:
            raise CircularSymlinkError(path)
        seen.add(current)
        target = Path(os.readlink(current))
        if not target.is_absolute():
            target = current.parent / target
        current = target
    raise CircularSymlinkError(path)


def _translate_os_error(exc: OSError, path: Path) -> Exception:
    if isinstance(exc, PermissionError) or exc.errno in (errno.EACCES, errno.EPERM):
        return PermissionDeniedError(path)
    if exc.errno == errno.ELOOP:
        return CircularSymlinkError(path)
    return FileIOError(f"Failed to access {path}: {exc.strerror or exc}", path)


def parse_document(raw: bytes, path: Path, model: type[M]) -> M:
    """Parse a JSON object file into ``model``, keeping unknown keys.

    Blank bytes give an empty model.

    >>> parse_document(b'{"mcpServers": {}}', Path(".mcp.json"), MCPConfig).server_names
    []
    """
    if not raw.strip():
        return model()
    try:
        data = json.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ParseError(path, raw=raw, detail=f"not UTF-8 ({e.reason})") from None
    except json.JSONDecodeError as e:
        raise ParseError(path, raw=raw, line=e.lineno, detail=e.msg) from None
    if not isinstance(data, dict):
        raise ParseError(path, raw=raw, detail="root must be an object")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"])
        raise ParseError(path, raw=raw, detail=f"{where}: {first['msg']}") from None


def parse_settings(raw: bytes, path: Path) -> ClaudeSettings:
    """Parse settings.json bytes.

    >>> parse_settings(b'{"env": {"A": "1"}}', Path("s.json")).env
    {'A': '1'}
    >>> parse_settings(b'[]', Path("s.json"))
    Traceback (most recent call last):
    ...
    claudefig.errors.ParseError: Invalid JSON in s.json: root must be an object
    """
    return parse_document(raw, path, ClaudeSettings)


def serialize_settings(model) -> bytes:
    """Pretty JSON with sorted keys and a trailing newline.

    Takes any model with ``to_dict``.

    >>> serialize_settings(ClaudeSettings.empty())
    b'{}\\n'
    """
    return (json.dumps(model.to_dict(), indent=2, sort_keys=True) + "\n").encode(
        "utf-8"
    )


class DocumentStore:
    """Reads and writes settings documents for the configured home directory."""

    def __init__(self, config: Optional[FigConfig] = None):
        self.config = config or FigConfig()

    def path_for(self, target: EditingTarget, project_path=None) -> Path:
        """File path for an editing target.

        >>> store = DocumentStore(FigConfig(home_dir=Path("/home/u")))
        >>> store.path_for(EditingTarget.GLOBAL).as_posix()
        '/home/u/.claude/settings.json'
        >>> store.path_for(EditingTarget.PROJECT_LOCAL, "/w/app").as_posix()
        '/w/app/.claude/settings.local.json'
        """
        if target is EditingTarget.GLOBAL:
            return self.config.global_settings_path
        if project_path is None:
            raise ValueError(f"{target.display_name} settings require a project path")
        claude_dir = Path(project_path).expanduser() / ".claude"
        if target is EditingTarget.PROJECT_SHARED:
            return claude_dir / "settings.json"
        return claude_dir / "settings.local.json"

    # --- Reading ---

    def _read(self, path: Path) -> Optional[tuple[bytes, FileSignature]]:
        """Raw bytes and signature of the resolved file, or None if absent."""
        resolved = resolve_symlinks(path)
        try:
            with open(resolved, "rb") as f:
                raw = f.read()
                stat = os.fstat(f.fileno())
        except FileNotFoundError:
            return None
        except IsADirectoryError:
            raise FileIOError(f"{path} is a directory", path) from None
        except OSError as e:
            raise _translate_os_error(e, path) from None
        return raw, _signature_for(raw, stat)

    def signature(self, path: Path) -> Optional[FileSignature]:
        """Current signature of ``path``, or None if it does not exist."""
        result = self._read(path)
        return result[1] if result is not None else None

    def read_model(
        self, path: Path, model: type[M]
    ) -> Optional[tuple[M, FileSignature]]:
        """Parse any JSON object file into ``model``; None if it does not exist.

        Raises the same errors as ``load``.
        """
        result = self._read(path)
        if result is None:
            return None
        raw, signature = result
        return parse_document(raw, path, model), signature

    def load(self, target: EditingTarget, project_path=None) -> SettingsDocument:
        """Load the settings document for ``target``.

        A missing file returns an empty document with ``exists=False``.

        Raises:
            ParseError: The file is not a JSON object matching the schema.
            PermissionDeniedError: The file cannot be read.
            CircularSymlinkError: The path is a symlink loop.
            FileIOError: Any other read failure.
        """
        path = self.path_for(target, project_path)
        result = self._read(path)
        if result is None:
            logger.debug("No settings file at %s", path)
            return SettingsDocument(target=target, path=path)
        raw, signature = result
        settings = parse_settings(raw, path)
        logger.debug("Loaded %s (%d bytes)", path, signature.size)
        return SettingsDocument(
            target=target,
            path=path,
            settings=settings,
            exists=True,
            raw=raw,
            signature=signature,
        )

    def check_external_change(
        self, document: SettingsDocument
    ) -> Optional[ExternalChangeRecord]:
        """Compare the file on disk with the document's signature.

        Only content counts: a touch that leaves the bytes identical is not
        a change. A file appearing or disappearing is.
        """
        result = self._read(document.path)
        if result is None:
            if document.signature is None:
                return None
            logger.info("%s was deleted externally", document.path)
            return ExternalChangeRecord(path=document.path, signature=None)
        _, signature = result
        if signature.same_content(document.signature):
            return None
        logger.info("%s changed externally", document.path)
        return ExternalChangeRecord(path=document.path, signature=signature)

    # --- Writing ---

    def _backup(self, resolved: Path) -> Optional[Path]:
        if not self.config.backups or self.config.max_backups <= 0:
            return None
        if not resolved.exists():
            return None
        stamp = datetime.now().strftime(BACKUP_TIME_FORMAT)
        backup = resolved.with_name(f"{resolved.name}{BACKUP_INFIX}{stamp}")
        try:
            backup.write_bytes(resolved.read_bytes())
        except OSError as e:
            raise BackupFailedError(resolved, e.strerror or str(e)) from None
        self._prune_backups(resolved)
        logger.debug("Backed up %s to %s", resolved, backup.name)
        return backup

    def _prune_backups(self, resolved: Path):
        backups = sorted(resolved.parent.glob(f"{resolved.name}{BACKUP_INFIX}*"))
        for old in backups[: -self.config.max_backups]:
            try:
                old.unlink()
            except OSError as e:
                logger.warning("Could not prune backup %s: %s", old, e)

    def backups_for(self, document: SettingsDocument) -> list[Path]:
        """Existing backups of a document, oldest first."""
        resolved = resolve_symlinks(document.path)
        return sorted(resolved.parent.glob(f"{resolved.name}{BACKUP_INFIX}*"))

    def _write(self, path: Path, payload: bytes) -> FileSignature:
        """Atomically replace the resolved target of ``path`` with ``payload``."""
        resolved = resolve_symlinks(path)
        try:
            resolved.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise _translate_os_error(e, resolved.parent) from None
        self._backup(resolved)
        tmp: Optional[Path] = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{resolved.name}.", suffix=".tmp", dir=resolved.parent
            )
            tmp = Path(tmp_name)
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, resolved)
        except OSError as e:
            if tmp is not None:
                tmp.unlink(missing_ok=True)
            raise _translate_os_error(e, path) from None
        return _signature_for(payload, resolved.stat())

    def write_model(self, path: Path, model) -> FileSignature:
        """Write a model as pretty JSON with the same backup and atomic replace as ``save``."""
        signature = self._write(path, serialize_settings(model))
        logger.info("Saved %s", path)
        return signature

    def save(
        self, document: SettingsDocument, settings: ClaudeSettings
    ) -> SettingsDocument:
        """Write ``settings`` over ``document``'s file.

        Returns a fresh document whose signature matches the file just
        written, so the next external-change check stays quiet.

        Raises:
            PermissionDeniedError: The directory or file is not writable.
            BackupFailedError: The previous content could not be backed up.
            FileIOError: Any other write failure.
        """
        payload = serialize_settings(settings)
        signature = self._write(document.path, payload)
        logger.info("Saved %s", document.path)
        return SettingsDocument(
            target=document.target,
            path=document.path,
            settings=settings,
            exists=True,
            raw=payload,
            signature=signature,
        )

    def create(self, target: EditingTarget, project_path=None) -> SettingsDocument:
        """Create the file for ``target`` with an empty ``{}`` object."""
        path = self.path_for(target, project_path)
        document = SettingsDocument(target=target, path=path)
        return self.save(document, ClaudeSettings.model_validate(DEFAULT_CONTENT))

    def delete(self, document: SettingsDocument) -> SettingsDocument:
        """Back up then remove the document's file.

        Returns the non-existent sentinel for the same target and path.
        """
        resolved = resolve_symlinks(document.path)
        self._backup(resolved)
        try:
            document.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise _translate_os_error(e, document.path) from None
        logger.info("Deleted %s", document.path)
        return SettingsDocument(target=document.target, path=document.path)
