"""Reconcile external file changes with local edits.

>>> resolver = ConflictResolver(Path("settings.json"))
>>> resolver.state
<ConflictState.CLEAN: 'clean'>
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Optional

from claudefig.errors import ConflictUnresolvedError
from claudefig.models import ClaudeSettings
from claudefig.session import EditSession
from claudefig.store import ExternalChangeRecord

logger = logging.getLogger(__name__)


class ConflictState(str, Enum):
    CLEAN = "clean"
    CONFLICT_PENDING = "conflict_pending"


class ConflictResolution(str, Enum):
    KEEP_LOCAL = "keep_local"
    USE_EXTERNAL = "use_external"


class ConflictResolver:
    """Two-state machine: CLEAN, or CONFLICT_PENDING with one pending record."""

    def __init__(self, path: Path):
        self.path = path
        self.pending: Optional[ExternalChangeRecord] = None

    @property
    def state(self) -> ConflictState:
        if self.pending is None:
            return ConflictState.CLEAN
        return ConflictState.CONFLICT_PENDING

    @property
    def is_pending(self) -> bool:
        return self.pending is not None

    def on_external_change(
        self, record: ExternalChangeRecord, session: EditSession
    ) -> bool:
        """Feed a detected change in.

        Returns True when the session is clean and the caller should adopt
        the external content. Otherwise the record becomes (or replaces) the
        pending conflict and False is returned.
        """
        if not session.is_dirty and self.pending is None:
            return True
        if self.pending is not None:
            logger.debug("Newer external change replaces pending one for %s", self.path)
        else:
            logger.info("Conflict pending for %s", self.path)
        self.pending = record
        return False

    def is_pending_change(self, record: ExternalChangeRecord) -> bool:
        """True when ``record`` shows the same file content as the pending one."""
        if self.pending is None:
            return False
        pending = self.pending.signature
        if pending is None or record.signature is None:
            return pending is None and record.signature is None
        return record.signature.same_content(pending)

    def ensure_resolved(self):
        if self.pending is not None:
            raise ConflictUnresolvedError(self.path)

    def resolve(
        self,
        resolution: ConflictResolution,
        session: EditSession,
        external: Optional[ClaudeSettings] = None,
    ) -> ExternalChangeRecord:
        """Settle the pending conflict and return the record it was about.

        ``USE_EXTERNAL`` needs the external settings and replaces the working
        copy with them. ``KEEP_LOCAL`` leaves the session alone.

        Raises:
            ValueError: Nothing is pending, or external settings are missing.
        """
        if self.pending is None:
            raise ValueError(f"No conflict pending for {self.path}")
        resolution = ConflictResolution(resolution)
        if resolution is ConflictResolution.USE_EXTERNAL:
            if external is None:
                raise ValueError("Resolving with external content requires its settings")
            session.discard_to_external(external)
        record = self.pending
        self.pending = None
        logger.info("Conflict for %s resolved: %s", self.path, resolution.value)
        return record
