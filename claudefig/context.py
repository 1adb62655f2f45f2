"""Application-wide services, created once and passed to whoever needs them."""

from dataclasses import dataclass, field
from typing import Optional

from claudefig.api.websocket import WebSocketRegistry
from claudefig.config import FigConfig
from claudefig.discovery import ProjectDiscovery
from claudefig.notifications import NotificationCenter
from claudefig.registry import EditorRegistry
from claudefig.store import DocumentStore


@dataclass
class AppContext:
    config: FigConfig
    store: DocumentStore
    notifier: NotificationCenter
    editors: EditorRegistry
    ws_registry: WebSocketRegistry
    discovery: ProjectDiscovery
    # CLAUDE.md hierarchies and .mcp.json files, keyed by resolved project path
    claude_md: dict = field(default_factory=dict)
    mcp_files: dict = field(default_factory=dict)

    @classmethod
    def create(cls, config: Optional[FigConfig] = None) -> "AppContext":
        config = config or FigConfig.from_env()
        ws_registry = WebSocketRegistry()
        store = DocumentStore(config)
        notifier = NotificationCenter(ws_registry)
        return cls(
            config=config,
            store=store,
            notifier=notifier,
            editors=EditorRegistry(store, notifier),
            ws_registry=ws_registry,
            discovery=ProjectDiscovery(store),
        )
