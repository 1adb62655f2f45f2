"""Models for Claude Code settings.json, .mcp.json and ~/.claude.json.

Field names mirror the JSON keys exactly (``disallowedTools``,
``pullRequests``, ``mcpServers``) because the file layout is owned by the
Claude Code CLI. Every model keeps keys it does not know about and writes
them back unchanged.

>>> s = ClaudeSettings.model_validate({"env": {"A": "1"}, "model": "opus"})
>>> s.env, s.extra
({'A': '1'}, {'model': 'opus'})
>>> s.to_dict()
{'env': {'A': '1'}, 'model': 'opus'}
"""

import copy
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


def _plain(value: Any) -> Any:
    if isinstance(value, _PreservingModel):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return copy.deepcopy(value)


class _PreservingModel(BaseModel):
    """Base model that round-trips unknown keys and omits unset fields."""

    model_config = ConfigDict(extra="allow")

    @property
    def extra(self) -> dict[str, Any]:
        return dict(self.__pydantic_extra__ or {})

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk JSON shape.

        Known fields that are None are left out entirely; extra keys are
        copied as-is, including ones whose value is null.
        """
        data: dict[str, Any] = {}
        for name in type(self).model_fields:
            value = getattr(self, name)
            if value is None:
                continue
            data[name] = _plain(value)
        for key, value in (self.__pydantic_extra__ or {}).items():
            data[key] = copy.deepcopy(value)
        return data


class Permissions(_PreservingModel):
    """Allow/deny rule lists. Keys like ``ask`` and ``defaultMode`` are kept as extras."""

    allow: Optional[list[str]] = None
    deny: Optional[list[str]] = None


class Attribution(_PreservingModel):
    """Controls whether Claude Code attributes commits and pull requests.

    >>> Attribution(commits=True).to_dict()
    {'commits': True}
    """

    commits: Optional[bool] = None
    pullRequests: Optional[bool] = None


class ClaudeSettings(_PreservingModel):
    """Complete settings.json document (global or project level)."""

    permissions: Optional[Permissions] = None
    env: Optional[dict[str, str]] = None
    hooks: Optional[dict[str, Any]] = None
    disallowedTools: Optional[list[str]] = None
    attribution: Optional[Attribution] = None

    @staticmethod
    def empty() -> "ClaudeSettings":
        """Create an empty settings object.

        >>> ClaudeSettings.empty().to_dict()
        {}
        """
        return ClaudeSettings()

    def is_tool_disallowed(self, tool: str) -> bool:
        return tool in (self.disallowedTools or [])


REMOTE_TRANSPORTS = ("http", "sse")


class MCPServer(_PreservingModel):
    """One MCP server: a local command (stdio) or a remote URL.

    >>> MCPServer.stdio("npx", ["-y", "server"]).to_dict()
    {'command': 'npx', 'args': ['-y', 'server']}
    >>> MCPServer.http("https://mcp.example.com").transport
    'http'
    """

    command: Optional[str] = None
    args: Optional[list[str]] = None
    env: Optional[dict[str, str]] = None
    type: Optional[str] = None
    url: Optional[str] = None
    headers: Optional[dict[str, str]] = None

    @classmethod
    def stdio(cls, command: str, args=None, env=None) -> "MCPServer":
        return cls(
            command=command,
            args=list(args) if args else None,
            env=dict(env) if env else None,
        )

    @classmethod
    def http(cls, url: str, headers=None) -> "MCPServer":
        return cls(type="http", url=url, headers=dict(headers) if headers else None)

    @property
    def is_remote(self) -> bool:
        return self.type in REMOTE_TRANSPORTS

    @property
    def transport(self) -> str:
        return self.type if self.is_remote else "stdio"


class MCPConfig(_PreservingModel):
    """A ``.mcp.json`` document."""

    mcpServers: Optional[dict[str, MCPServer]] = None

    @property
    def server_names(self) -> list[str]:
        return sorted(self.mcpServers or {})

    def server(self, name: str) -> Optional[MCPServer]:
        return (self.mcpServers or {}).get(name)


class ProjectEntry(_PreservingModel):
    """Per-project state Claude Code keeps in ``~/.claude.json``."""

    allowedTools: Optional[list[str]] = None
    hasTrustDialogAccepted: Optional[bool] = None
    history: Optional[list[Any]] = None
    mcpServers: Optional[dict[str, MCPServer]] = None


class LegacyConfig(_PreservingModel):
    """``~/.claude.json``. Owned by Claude Code; we only read it."""

    projects: Optional[dict[str, ProjectEntry]] = None
    mcpServers: Optional[dict[str, MCPServer]] = None

    @property
    def project_paths(self) -> list[str]:
        return sorted(self.projects or {})

    @property
    def global_server_names(self) -> list[str]:
        return sorted(self.mcpServers or {})


class PermissionType(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class EditingTarget(str, Enum):
    """A physical settings file within the configuration hierarchy.

    Declared in merge order: later members take precedence.

    >>> EditingTarget.PROJECT_LOCAL.file_name
    '.claude/settings.local.json'
    >>> EditingTarget.GLOBAL.precedence < EditingTarget.PROJECT_SHARED.precedence
    True
    """

    GLOBAL = "global"
    PROJECT_SHARED = "project_shared"
    PROJECT_LOCAL = "project_local"

    @property
    def display_name(self) -> str:
        return {
            EditingTarget.GLOBAL: "Global",
            EditingTarget.PROJECT_SHARED: "Project",
            EditingTarget.PROJECT_LOCAL: "Local",
        }[self]

    @property
    def label(self) -> str:
        return {
            EditingTarget.GLOBAL: "Global (~/.claude/settings.json)",
            EditingTarget.PROJECT_SHARED: "Shared (settings.json)",
            EditingTarget.PROJECT_LOCAL: "Local (settings.local.json)",
        }[self]

    @property
    def description(self) -> str:
        return {
            EditingTarget.GLOBAL: "Applies to every project",
            EditingTarget.PROJECT_SHARED: "Committed to git, shared with team",
            EditingTarget.PROJECT_LOCAL: "Git-ignored, local overrides",
        }[self]

    @property
    def file_name(self) -> str:
        return {
            EditingTarget.GLOBAL: "~/.claude/settings.json",
            EditingTarget.PROJECT_SHARED: ".claude/settings.json",
            EditingTarget.PROJECT_LOCAL: ".claude/settings.local.json",
        }[self]

    @property
    def precedence(self) -> int:
        return list(EditingTarget).index(self)

    @property
    def requires_project(self) -> bool:
        return self is not EditingTarget.GLOBAL
