"""Project MCP servers: editing ``<project>/.mcp.json``.

Every edit is a read-modify-write of the file under a per-file lock, written
through the document store (backup, temp file, ``os.replace``). Callers that
show the file to a user pass the digest they loaded; an edit against content
that has changed on disk since is refused with ``StaleDocumentError``.
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from claudefig.errors import NotFoundError, StaleDocumentError
from claudefig.models import MCPConfig, MCPServer
from claudefig.store import DocumentStore, FileSignature

logger = logging.getLogger(__name__)

MCP_FILE_NAME = ".mcp.json"
SERVER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_server(name: str, server: MCPServer):
    """Raise ``ValueError`` describing the first problem with a server entry.

    >>> validate_server("github", MCPServer.stdio("npx"))
    >>> validate_server("my server", MCPServer.stdio("npx"))
    Traceback (most recent call last):
    ...
    ValueError: Server name can only contain letters, numbers, hyphens and underscores
    """
    if not name or not name.strip():
        raise ValueError("Server name is required")
    if not SERVER_NAME_PATTERN.match(name):
        raise ValueError(
            "Server name can only contain letters, numbers, hyphens and underscores"
        )
    if server.is_remote:
        url = (server.url or "").strip()
        if not url:
            raise ValueError("URL is required")
        if not url.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
    elif not (server.command or "").strip():
        raise ValueError("Command is required")


@dataclass(frozen=True)
class MCPDocument:
    path: Path
    config: MCPConfig = field(default_factory=MCPConfig)
    exists: bool = False
    signature: Optional[FileSignature] = None

    @property
    def digest(self) -> Optional[str]:
        return self.signature.digest if self.signature else None

    def to_dict(self) -> dict:
        servers = []
        for name in self.config.server_names:
            server = self.config.server(name)
            servers.append(
                {"name": name, "transport": server.transport, "config": server.to_dict()}
            )
        return {
            "path": str(self.path),
            "exists": self.exists,
            "digest": self.digest,
            "servers": servers,
        }


class MCPConfigFile:
    """One project's ``.mcp.json``."""

    def __init__(self, store: DocumentStore, project_path):
        self.store = store
        self.project_path = Path(project_path).expanduser()
        self.path = self.project_path / MCP_FILE_NAME
        self._lock = threading.Lock()

    def load(self) -> MCPDocument:
        """Read the file; a missing file is an empty, non-existent document.

        Raises:
            ParseError: The file is not a valid ``.mcp.json`` object.
        """
        result = self.store.read_model(self.path, MCPConfig)
        if result is None:
            return MCPDocument(path=self.path)
        config, signature = result
        return MCPDocument(path=self.path, config=config, exists=True, signature=signature)

    def _update(
        self,
        change: Callable[[dict], None],
        expected_digest: Optional[str],
    ) -> MCPDocument:
        with self._lock:
            document = self.load()
            if expected_digest is not None and expected_digest != (document.digest or ""):
                raise StaleDocumentError(self.path)
            servers = dict(document.config.mcpServers or {})
            change(servers)
            config = document.config.model_copy(update={"mcpServers": servers})
            signature = self.store.write_model(self.path, config)
            return MCPDocument(path=self.path, config=config, exists=True, signature=signature)

    def create(self) -> MCPDocument:
        """Write an empty ``{"mcpServers": {}}`` file."""
        with self._lock:
            if self.load().exists:
                raise ValueError(f"{self.path} already exists")
            config = MCPConfig(mcpServers={})
            signature = self.store.write_model(self.path, config)
        logger.info("Created %s", self.path)
        return MCPDocument(path=self.path, config=config, exists=True, signature=signature)

    def add_server(
        self, name: str, server: MCPServer, expected_digest: Optional[str] = None
    ) -> MCPDocument:
        """Add a server, creating the file if needed.

        ``expected_digest`` is the digest the caller loaded; pass ``""`` for a
        file that did not exist then.
        """
        validate_server(name, server)

        def _add(servers: dict):
            if name in servers:
                raise ValueError(f"A server named {name!r} already exists")
            servers[name] = server

        document = self._update(_add, expected_digest)
        logger.info("Added MCP server %s to %s", name, self.path)
        return document

    def update_server(
        self,
        name: str,
        server: MCPServer,
        new_name: Optional[str] = None,
        expected_digest: Optional[str] = None,
    ) -> MCPDocument:
        """Replace a server's entry, optionally renaming it."""
        new_name = new_name or name
        validate_server(new_name, server)

        def _replace(servers: dict):
            if name not in servers:
                raise NotFoundError(f"No MCP server named {name!r}", self.path)
            if new_name != name and new_name in servers:
                raise ValueError(f"A server named {new_name!r} already exists")
            del servers[name]
            servers[new_name] = server

        document = self._update(_replace, expected_digest)
        logger.info("Updated MCP server %s in %s", new_name, self.path)
        return document

    def remove_server(self, name: str, expected_digest: Optional[str] = None) -> MCPDocument:
        def _remove(servers: dict):
            if servers.pop(name, None) is None:
                raise NotFoundError(f"No MCP server named {name!r}", self.path)

        document = self._update(_remove, expected_digest)
        logger.info("Removed MCP server %s from %s", name, self.path)
        return document
