"""Error taxonomy for settings file operations.

Every error carries a machine-readable ``code`` and the HTTP status the
dashboard API answers with, so route handlers never have to translate.

>>> err = ConflictUnresolvedError("/tmp/settings.json")
>>> err.code, err.status_code
('CONFLICT_UNRESOLVED', 409)
"""

from pathlib import Path
from typing import Optional


class FigError(Exception):
    """Base class for every error surfaced to the user.

    >>> FigError("boom").to_dict()
    {'message': 'boom', 'code': 'FIG_ERROR'}
    """

    code = "FIG_ERROR"
    status_code = 500
    recovery_suggestion: Optional[str] = None

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.message = message
        self.path = Path(path) if path is not None else None

    def to_dict(self) -> dict:
        return {"message": self.message, "code": self.code}


class NotFoundError(FigError):
    code = "NOT_FOUND"
    status_code = 404
    recovery_suggestion = "Check that the path is correct."


class ParseError(FigError):
    """A settings file exists but could not be parsed.

    The original bytes are kept so callers can refuse to overwrite them.

    >>> err = ParseError("/p/settings.json", raw=b"{oops", line=1)
    >>> err.message
    'Invalid JSON at line 1 in settings.json'
    >>> err.raw
    b'{oops'
    """

    code = "INVALID_JSON"
    status_code = 422
    recovery_suggestion = "Fix the file by hand or restore it from a backup."

    def __init__(
        self,
        path,
        raw: bytes = b"",
        line: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        name = Path(path).name
        if line is not None:
            message = f"Invalid JSON at line {line} in {name}"
        else:
            message = f"Invalid JSON in {name}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message, path)
        self.raw = raw
        self.line = line


class PermissionDeniedError(FigError):
    code = "PERMISSION_DENIED"
    status_code = 403
    recovery_suggestion = "Check the file permissions."

    def __init__(self, path):
        super().__init__(f"Permission denied: {path}", path)


class FileIOError(FigError):
    code = "IO_ERROR"
    status_code = 500
    recovery_suggestion = "Check available disk space and try again."


class BackupFailedError(FileIOError):
    code = "BACKUP_FAILED"

    def __init__(self, path, reason: str = ""):
        message = f"Failed to create backup for {Path(path).name}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, path)


class CircularSymlinkError(FigError):
    code = "CIRCULAR_SYMLINK"
    status_code = 422

    def __init__(self, path):
        super().__init__(f"Circular symlink detected at {path}", path)


class ConflictUnresolvedError(FigError):
    """Save attempted while an external change is still pending resolution."""

    code = "CONFLICT_UNRESOLVED"
    status_code = 409
    recovery_suggestion = "Choose whether to keep your edits or use the file on disk."

    def __init__(self, path):
        super().__init__(
            f"{Path(path).name} was modified externally; resolve the conflict before saving",
            path,
        )


class StaleDocumentError(FigError):
    """A read-modify-write edit was based on content that has since changed."""

    code = "STALE_DOCUMENT"
    status_code = 409
    recovery_suggestion = "Reload the file and apply your change again."

    def __init__(self, path):
        super().__init__(f"{Path(path).name} changed since it was loaded", path)


class UnsavedChangesError(FigError):
    code = "UNSAVED_CHANGES"
    status_code = 409
    recovery_suggestion = "Save first, or close again with discard enabled."

    def __init__(self, path):
        super().__init__(f"{Path(path).name} has unsaved changes", path)


class EditorClosedError(FigError):
    code = "EDITOR_CLOSED"
    status_code = 410

    def __init__(self, path):
        super().__init__(f"Editor for {path} is closed", path)
