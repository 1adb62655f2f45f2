"""Background watcher loop for open settings editors.

Polls every open editor's file for external modification and broadcasts a
``settings_changed`` event through the WebSocket registry when one is found.
"""

import asyncio
import logging

from claudefig.api.websocket import WebSocketRegistry
from claudefig.errors import FigError

logger = logging.getLogger(__name__)


async def check_open_editors(ctx) -> int:
    """Run one external-change check over every open editor.

    Returns the number of editors whose file changed. Errors for one editor
    are logged and do not stop the others.
    """
    changed = 0
    registry: WebSocketRegistry = ctx.ws_registry
    for editor in ctx.editors.editors():
        if editor.closed:
            continue
        try:
            record = await editor.check_external_change()
        except FigError as e:
            logger.debug("Settings watcher: %s: %s", editor.path, e.message)
            continue
        except Exception as e:
            logger.warning("Settings watcher error for %s: %s", editor.path, e)
            continue
        if record is None:
            continue
        changed += 1
        if registry.client_count > 0:
            await registry.broadcast(
                "settings_changed",
                {
                    "editor_id": editor.id,
                    "path": str(editor.path),
                    "conflict": editor.resolver.state.value,
                },
                source="settings_watcher",
            )
            logger.debug(
                "%s changed, notified %d client(s)", editor.path, registry.client_count
            )
    return changed


async def settings_watch_loop(app, interval: float = 2.0):
    """Poll open editors forever; cancelled on shutdown."""
    while True:
        await asyncio.sleep(interval)
        ctx = getattr(app.state, "ctx", None)
        if ctx is None:
            continue
        try:
            await check_open_editors(ctx)
        except Exception as e:
            logger.warning("Settings watcher error: %s", e)
