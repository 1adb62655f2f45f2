"""Settings editor: one open settings file with its edit session.

Wires the document store, edit session, conflict resolver and notification
center together. Load, save, external-change checks and conflict resolution
run one at a time under the editor's lock; file I/O happens in a worker
thread. Edits are plain method calls on the in-memory session and may land
while a save is writing, in which case the editor stays dirty afterwards.
"""

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional

from claudefig.conflict import ConflictResolution, ConflictResolver
from claudefig.errors import (
    EditorClosedError,
    FigError,
    ParseError,
    UnsavedChangesError,
)
from claudefig.models import EditingTarget, PermissionType
from claudefig.notifications import NotificationCenter
from claudefig.presets import is_rule_duplicate, validate_permission_rule
from claudefig.session import EditSession
from claudefig.store import DocumentStore, ExternalChangeRecord, SettingsDocument

logger = logging.getLogger(__name__)


class SettingsEditor:
    """Editor for a single settings target.

    >>> from claudefig.config import FigConfig
    >>> editor = SettingsEditor(DocumentStore(FigConfig(home_dir=Path("/h"))), EditingTarget.GLOBAL)
    >>> editor.path.as_posix(), editor.is_dirty
    ('/h/.claude/settings.json', False)
    """

    def __init__(
        self,
        store: DocumentStore,
        target: EditingTarget,
        project_path=None,
        notifier: Optional[NotificationCenter] = None,
    ):
        self.id = uuid.uuid4().hex
        self.store = store
        self.target = EditingTarget(target)
        self.project_path = Path(project_path) if project_path is not None else None
        self.path = store.path_for(self.target, self.project_path)
        self.notifier = notifier
        self.document = SettingsDocument(target=self.target, path=self.path)
        self.session = EditSession.from_settings(self.document.settings)
        self.resolver = ConflictResolver(self.path)
        self.load_error: Optional[ParseError] = None
        self.closed = False
        self.owners = 0
        self._lock = asyncio.Lock()

    @property
    def is_dirty(self) -> bool:
        return self.session.is_dirty

    @property
    def label(self) -> str:
        if self.project_path is None:
            return self.target.label
        return f"{self.project_path.name}: {self.target.label}"

    def _ensure_open(self):
        if self.closed:
            raise EditorClosedError(self.path)

    async def _notify(self, kind: str, title: str, message: Optional[str] = None):
        if self.closed or self.notifier is None:
            return
        await getattr(self.notifier, f"show_{kind}")(title, message)

    async def _notify_exception(self, exc: Exception):
        if self.closed or self.notifier is None:
            return
        await self.notifier.show_exception(exc)

    # --- Loading ---

    async def _load_locked(self):
        try:
            document = await asyncio.to_thread(
                self.store.load, self.target, self.project_path
            )
        except ParseError as e:
            await self._enter_load_error(e)
            raise
        self.document = document
        self.session.discard_to_external(document.settings)
        self.resolver.pending = None
        self.load_error = None

    async def _enter_load_error(self, error: ParseError):
        """Keep the unparseable bytes and block saving until the file is fixed."""
        signature = await asyncio.to_thread(self.store.signature, self.path)
        self.document = SettingsDocument(
            target=self.target,
            path=self.path,
            settings=self.document.settings,
            exists=True,
            raw=error.raw,
            signature=signature,
        )
        self.load_error = error
        logger.warning("Cannot parse %s: %s", self.path, error.message)
        await self._notify_exception(error)

    async def load(self):
        """Read the file, replacing any local edits."""
        self._ensure_open()
        async with self._lock:
            await self._load_locked()

    async def reload(self):
        """Discard local edits and re-read the file."""
        await self.load()
        await self._notify("info", "Settings Reloaded")

    async def create_file(self):
        """Create the file with ``{}`` when it does not exist yet."""
        self._ensure_open()
        async with self._lock:
            if self.document.exists:
                raise ValueError(f"{self.path.name} already exists")
            try:
                self.document = await asyncio.to_thread(
                    self.store.create, self.target, self.project_path
                )
            except FigError as e:
                await self._notify_exception(e)
                raise
            self.load_error = None
        await self._notify("success", "File Created", str(self.path))

    # --- External changes ---

    async def _handle_change(self, record: ExternalChangeRecord):
        if self.resolver.on_external_change(record, self.session):
            try:
                document = await asyncio.to_thread(
                    self.store.load, self.target, self.project_path
                )
            except ParseError as e:
                await self._enter_load_error(e)
                return
            self.document = document
            self.session.discard_to_external(document.settings)
            self.load_error = None
            await self._notify(
                "info",
                "Settings Reloaded",
                f"{self.target.display_name} settings were modified externally",
            )
            return
        await self._notify(
            "warning",
            "External Changes Detected",
            f"{self.path.name} changed on disk while you have unsaved edits. "
            "Keep your changes or use the file on disk.",
        )

    async def check_external_change(self) -> Optional[ExternalChangeRecord]:
        """Poll the file once; returns the change record if one was found.

        A change that is already pending as a conflict is not reported again.
        """
        self._ensure_open()
        async with self._lock:
            record = await asyncio.to_thread(
                self.store.check_external_change, self.document
            )
            if record is None or self.resolver.is_pending_change(record):
                return None
            await self._handle_change(record)
            return record

    async def resolve_conflict(self, resolution: ConflictResolution):
        """Settle a pending conflict.

        Raises:
            ValueError: No conflict is pending.
            ParseError: ``USE_EXTERNAL`` and the file on disk is unparseable;
                the conflict stays pending.
        """
        self._ensure_open()
        resolution = ConflictResolution(resolution)
        async with self._lock:
            if not self.resolver.is_pending:
                raise ValueError(f"No conflict pending for {self.path.name}")
            if resolution is ConflictResolution.KEEP_LOCAL:
                record = self.resolver.resolve(resolution, self.session)
                # Next save overwrites what is on disk without re-detecting it
                self.document = self.document.with_signature(record.signature)
                await self._notify("info", "Keeping Local Changes")
                return
            try:
                document = await asyncio.to_thread(
                    self.store.load, self.target, self.project_path
                )
            except ParseError as e:
                await self._notify_exception(e)
                raise
            self.resolver.resolve(resolution, self.session, document.settings)
            self.document = document
            self.load_error = None
            await self._notify("info", "Settings Reloaded")

    # --- Saving ---

    async def save(self) -> bool:
        """Write the working copy. Returns False when there is nothing to save.

        Raises:
            ParseError: The file on disk could not be parsed when loaded.
            ConflictUnresolvedError: An external change is pending, or one
                was found just before writing.
            FileIOError, PermissionDeniedError: The write failed.
        """
        self._ensure_open()
        async with self._lock:
            if self.load_error is not None:
                await self._notify_exception(self.load_error)
                raise self.load_error
            try:
                self.resolver.ensure_resolved()
            except FigError as e:
                await self._notify_exception(e)
                raise
            if not self.session.is_dirty:
                return False

            record = await asyncio.to_thread(
                self.store.check_external_change, self.document
            )
            if record is not None:
                # Session is dirty here, so this always leaves a conflict pending
                await self._handle_change(record)
                self.resolver.ensure_resolved()

            snapshot = self.session.working
            mark = self.session.history_mark
            settings = snapshot.apply_to(self.document.settings)
            try:
                self.document = await asyncio.to_thread(
                    self.store.save, self.document, settings
                )
            except FigError as e:
                await self._notify_exception(e)
                raise
            self.session.mark_saved(snapshot, mark)
        await self._notify("success", "Settings Saved", self.target.label)
        return True

    async def close(self, discard: bool = False):
        """Close the editor. Unsaved edits need ``discard=True``."""
        if self.closed:
            return
        if self.session.is_dirty and not discard:
            raise UnsavedChangesError(self.path)
        self.closed = True
        logger.debug("Closed editor for %s", self.path)

    # --- Edits ---

    def _check_rule(self, rule: str, rule_type: PermissionType, excluding=None):
        ok, error = validate_permission_rule(rule)
        if not ok:
            raise ValueError(error)
        rules = self.session.working.permission_rules
        if is_rule_duplicate(rules, rule, PermissionType(rule_type), excluding):
            raise ValueError(f"Rule already exists: {rule}")

    def add_permission_rule(self, rule: str, rule_type: PermissionType) -> bool:
        self._ensure_open()
        self._check_rule(rule, rule_type)
        return self.session.add_permission_rule(rule, rule_type)

    def remove_permission_rule(self, index: int) -> bool:
        self._ensure_open()
        return self.session.remove_permission_rule(index)

    def update_permission_rule(
        self, index: int, rule: str, rule_type: PermissionType
    ) -> bool:
        self._ensure_open()
        self._check_rule(rule, rule_type, excluding=index)
        return self.session.update_permission_rule(index, rule, rule_type)

    def move_permission_rule(
        self, rule_type: PermissionType, source: int, destination: int
    ) -> bool:
        self._ensure_open()
        return self.session.move_permission_rule(rule_type, source, destination)

    def apply_preset(self, preset_id: str) -> bool:
        self._ensure_open()
        return self.session.apply_preset(preset_id)

    def add_environment_variable(self, key: str, value: str) -> bool:
        self._ensure_open()
        return self.session.add_environment_variable(key.strip(), value)

    def remove_environment_variable(self, key: str) -> bool:
        self._ensure_open()
        return self.session.remove_environment_variable(key)

    def update_environment_variable(self, key: str, new_key: str, new_value: str) -> bool:
        self._ensure_open()
        return self.session.update_environment_variable(key, new_key.strip(), new_value)

    def update_attribution(
        self, commits: Optional[bool], pull_requests: Optional[bool]
    ) -> bool:
        self._ensure_open()
        return self.session.update_attribution(commits, pull_requests)

    def add_disallowed_tool(self, tool: str) -> bool:
        self._ensure_open()
        return self.session.add_disallowed_tool(tool.strip())

    def remove_disallowed_tool(self, tool: str) -> bool:
        self._ensure_open()
        return self.session.remove_disallowed_tool(tool)

    def undo(self) -> bool:
        self._ensure_open()
        return self.session.undo()

    def redo(self) -> bool:
        self._ensure_open()
        return self.session.redo()

    # --- Snapshot ---

    def preview(self) -> dict:
        """The settings.json content a save would write right now."""
        return self.session.working.apply_to(self.document.settings).to_dict()

    def state(self) -> dict:
        """JSON-ready snapshot for clients."""
        pending = self.resolver.pending
        return {
            "id": self.id,
            "target": self.target.value,
            "label": self.label,
            "path": str(self.path),
            "project_path": str(self.project_path) if self.project_path else None,
            "exists": self.document.exists,
            "dirty": self.session.is_dirty,
            "closed": self.closed,
            "load_error": self.load_error.to_dict() if self.load_error else None,
            "conflict": {
                "state": self.resolver.state.value,
                "detected_at": pending.detected_at.isoformat() if pending else None,
                "file_exists": pending.exists if pending else None,
            },
            "undo": {
                "can_undo": self.session.can_undo,
                "can_redo": self.session.can_redo,
                "undo_action": self.session.undo_action_name,
                "redo_action": self.session.redo_action_name,
            },
            "settings": self.session.working.to_dict(),
        }
