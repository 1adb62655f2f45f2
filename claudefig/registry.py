"""Single owner per settings file.

Opening the same target for the same file twice hands back the editor that
is already open and counts the extra owner; the editor is closed once the
last owner releases it.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

from claudefig.editor import SettingsEditor
from claudefig.errors import NotFoundError
from claudefig.models import EditingTarget
from claudefig.notifications import NotificationCenter
from claudefig.store import DocumentStore

logger = logging.getLogger(__name__)


class EditorRegistry:
    def __init__(
        self, store: DocumentStore, notifier: Optional[NotificationCenter] = None
    ):
        self.store = store
        self.notifier = notifier
        self._editors: dict[tuple[EditingTarget, Path], SettingsEditor] = {}
        self._lock = asyncio.Lock()

    def _key(self, target: EditingTarget, project_path=None):
        path = self.store.path_for(target, project_path)
        return (target, Path(os.path.realpath(path)))

    async def open(self, target: EditingTarget, project_path=None) -> SettingsEditor:
        """Return the open editor for this file, loading a new one if needed.

        Raises whatever ``SettingsEditor.load`` raises; a file that cannot be
        loaded is not registered.
        """
        target = EditingTarget(target)
        key = self._key(target, project_path)
        async with self._lock:
            editor = self._editors.get(key)
            if editor is None:
                editor = SettingsEditor(self.store, target, project_path, self.notifier)
                await editor.load()
                self._editors[key] = editor
                logger.debug("Opened editor %s for %s", editor.id, editor.path)
            editor.owners += 1
            return editor

    def get(self, editor_id: str) -> SettingsEditor:
        for editor in self._editors.values():
            if editor.id == editor_id:
                return editor
        raise NotFoundError(f"No open editor with id {editor_id}")

    def editors(self) -> list[SettingsEditor]:
        return list(self._editors.values())

    def _forget(self, editor: SettingsEditor):
        for key, candidate in list(self._editors.items()):
            if candidate is editor:
                del self._editors[key]

    async def release(self, editor: SettingsEditor, discard: bool = False) -> bool:
        """Drop one owner. Returns True when the editor was actually closed.

        Raises:
            UnsavedChangesError: Last owner, unsaved edits, no ``discard``.
        """
        async with self._lock:
            if editor.owners > 1:
                editor.owners -= 1
                return False
            await editor.close(discard=discard)
            editor.owners = 0
            self._forget(editor)
            return True

    async def close_all(self):
        """Close every editor, discarding unsaved edits."""
        async with self._lock:
            for editor in self._editors.values():
                if editor.is_dirty:
                    logger.warning("Discarding unsaved edits in %s", editor.path)
                await editor.close(discard=True)
            self._editors.clear()
