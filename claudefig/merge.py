"""Effective settings across global, project shared and project local files.

Precedence, lowest first: global, shared, local.

- ``permissions.allow`` / ``permissions.deny``: de-duplicated union; an entry
  keeps the first (lowest) source it appeared in
- ``env``: higher precedence overrides per key
- ``hooks``: hook groups concatenated per event
- ``disallowedTools``: de-duplicated union
- ``attribution``: highest-precedence source that has one

>>> g = ClaudeSettings.model_validate({"env": {"A": "g"}, "permissions": {"allow": ["Read"]}})
>>> l = ClaudeSettings.model_validate({"env": {"A": "l"}, "permissions": {"allow": ["Read", "Write"]}})
>>> merged = merge_settings(g, None, l)
>>> merged.effective_env, merged.allow_patterns
({'A': 'l'}, ['Read', 'Write'])
>>> merged.env["A"].source
<EditingTarget.PROJECT_LOCAL: 'project_local'>
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from claudefig.models import Attribution, ClaudeSettings, EditingTarget
from claudefig.store import DocumentStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class MergedValue(Generic[T]):
    """A value and the settings file it came from."""

    value: T
    source: EditingTarget

    def to_dict(self) -> dict:
        value = self.value.to_dict() if hasattr(self.value, "to_dict") else self.value
        return {"value": value, "source": self.source.value}


@dataclass
class MergedSettings:
    allow: list[MergedValue[str]] = field(default_factory=list)
    deny: list[MergedValue[str]] = field(default_factory=list)
    env: dict[str, MergedValue[str]] = field(default_factory=dict)
    hooks: dict[str, list[MergedValue[Any]]] = field(default_factory=dict)
    disallowed_tools: list[MergedValue[str]] = field(default_factory=list)
    attribution: Optional[MergedValue[Attribution]] = None

    @property
    def allow_patterns(self) -> list[str]:
        return [v.value for v in self.allow]

    @property
    def deny_patterns(self) -> list[str]:
        return [v.value for v in self.deny]

    @property
    def effective_env(self) -> dict[str, str]:
        return {k: v.value for k, v in self.env.items()}

    @property
    def effective_disallowed_tools(self) -> list[str]:
        return [v.value for v in self.disallowed_tools]

    @property
    def hook_events(self) -> list[str]:
        return sorted(self.hooks)

    def is_tool_disallowed(self, tool: str) -> bool:
        return tool in self.effective_disallowed_tools

    def to_dict(self) -> dict:
        return {
            "permissions": {
                "allow": [v.to_dict() for v in self.allow],
                "deny": [v.to_dict() for v in self.deny],
            },
            "env": {k: v.to_dict() for k, v in sorted(self.env.items())},
            "hooks": {k: [v.to_dict() for v in vs] for k, vs in sorted(self.hooks.items())},
            "disallowed_tools": [v.to_dict() for v in self.disallowed_tools],
            "attribution": self.attribution.to_dict() if self.attribution else None,
        }


def _union(entries: list, seen: set, values, source: EditingTarget):
    for value in values or []:
        if value not in seen:
            seen.add(value)
            entries.append(MergedValue(value, source))


def merge_settings(
    global_: Optional[ClaudeSettings],
    shared: Optional[ClaudeSettings],
    local: Optional[ClaudeSettings],
) -> MergedSettings:
    """Merge the three levels; any of them may be None."""
    merged = MergedSettings()
    seen_allow: set[str] = set()
    seen_deny: set[str] = set()
    seen_tools: set[str] = set()
    sources = (
        (global_, EditingTarget.GLOBAL),
        (shared, EditingTarget.PROJECT_SHARED),
        (local, EditingTarget.PROJECT_LOCAL),
    )
    for settings, source in sources:
        if settings is None:
            continue
        if settings.permissions is not None:
            _union(merged.allow, seen_allow, settings.permissions.allow, source)
            _union(merged.deny, seen_deny, settings.permissions.deny, source)
        for key, value in (settings.env or {}).items():
            merged.env[key] = MergedValue(value, source)
        for event, groups in (settings.hooks or {}).items():
            if not isinstance(groups, list):
                groups = [groups]
            merged.hooks.setdefault(event, []).extend(
                MergedValue(group, source) for group in groups
            )
        _union(merged.disallowed_tools, seen_tools, settings.disallowedTools, source)
        if settings.attribution is not None:
            merged.attribution = MergedValue(settings.attribution, source)
    return merged


def _load_all(store: DocumentStore, project_path) -> MergedSettings:
    documents = [
        store.load(EditingTarget.GLOBAL),
        store.load(EditingTarget.PROJECT_SHARED, project_path),
        store.load(EditingTarget.PROJECT_LOCAL, project_path),
    ]
    settings = [doc.settings if doc.exists else None for doc in documents]
    logger.debug("Merging settings for %s", project_path)
    return merge_settings(*settings)


async def load_merged_settings(store: DocumentStore, project_path) -> MergedSettings:
    """Load all three files for a project and merge them.

    Raises ``ParseError`` etc. from the store if any file is unreadable.
    """
    return await asyncio.to_thread(_load_all, store, project_path)
