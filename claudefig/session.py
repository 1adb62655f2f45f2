"""In-memory edit session for one settings document.

The session holds an immutable working copy of the four editable concerns
(permission rules, environment, attribution, disallowed tools), the baseline
it was loaded or last saved from, and linear undo/redo stacks.

>>> session = EditSession(EditableSettings())
>>> session.add_environment_variable("DEBUG", "1")
True
>>> session.is_dirty, session.undo_action_name
(True, 'Add Variable')
>>> session.undo()
True
>>> session.is_dirty
False
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Optional

from claudefig.models import Attribution, ClaudeSettings, Permissions, PermissionType
from claudefig.presets import PERMISSION_PRESETS, is_rule_duplicate

logger = logging.getLogger(__name__)

Rule = tuple[str, PermissionType]
EnvPair = tuple[str, str]
AttributionValue = Optional[tuple[Optional[bool], Optional[bool]]]

FIELDS = ("permission_rules", "environment", "attribution", "disallowed_tools")


@dataclass(frozen=True)
class EditableSettings:
    """Working-copy value of the editable parts of a settings document.

    ``attribution`` is ``(commits, pull_requests)`` or None when the file has
    no attribution block.
    """

    permission_rules: tuple[Rule, ...] = ()
    environment: tuple[EnvPair, ...] = ()
    attribution: AttributionValue = None
    disallowed_tools: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: ClaudeSettings) -> "EditableSettings":
        """Allow rules first then deny; environment sorted by key.

        >>> s = ClaudeSettings.model_validate(
        ...     {"permissions": {"deny": ["Write"], "allow": ["Read"]}, "env": {"B": "2", "A": "1"}}
        ... )
        >>> e = EditableSettings.from_settings(s)
        >>> [r for r, _ in e.permission_rules], e.environment
        (['Read', 'Write'], (('A', '1'), ('B', '2')))
        """
        rules: list[Rule] = []
        if settings.permissions is not None:
            rules += [(r, PermissionType.ALLOW) for r in settings.permissions.allow or []]
            rules += [(r, PermissionType.DENY) for r in settings.permissions.deny or []]
        attribution = None
        if settings.attribution is not None:
            attribution = (settings.attribution.commits, settings.attribution.pullRequests)
        return cls(
            permission_rules=tuple(rules),
            environment=tuple(sorted((settings.env or {}).items())),
            attribution=attribution,
            disallowed_tools=tuple(settings.disallowedTools or []),
        )

    def effective(self) -> tuple:
        """Comparable form used for dirty checks. Environment order is ignored."""
        return (
            self.permission_rules,
            tuple(sorted(self.environment)),
            self.attribution,
            self.disallowed_tools,
        )

    def rules_of(self, rule_type: PermissionType) -> list[str]:
        return [rule for rule, t in self.permission_rules if t == rule_type]

    def apply_to(self, base: ClaudeSettings) -> ClaudeSettings:
        """Replace the editable concerns of ``base``, keeping everything else.

        Hooks, unknown top-level keys and unknown permission or attribution
        keys come from ``base``. Empty lists and maps are omitted.

        >>> base = ClaudeSettings.model_validate(
        ...     {"hooks": {"Stop": []}, "permissions": {"allow": ["X"], "defaultMode": "plan"}}
        ... )
        >>> EditableSettings().apply_to(base).to_dict()
        {'permissions': {'defaultMode': 'plan'}, 'hooks': {'Stop': []}}
        """
        data = base.to_dict()
        for key in ("permissions", "env", "disallowedTools", "attribution"):
            data.pop(key, None)

        perm_extra = base.permissions.extra if base.permissions is not None else {}
        allow = self.rules_of(PermissionType.ALLOW)
        deny = self.rules_of(PermissionType.DENY)
        permissions = None
        if allow or deny or perm_extra:
            permissions = Permissions(allow=allow or None, deny=deny or None, **perm_extra)

        attribution = None
        if self.attribution is not None:
            attr_extra = base.attribution.extra if base.attribution is not None else {}
            commits, pull_requests = self.attribution
            attribution = Attribution(commits=commits, pullRequests=pull_requests, **attr_extra)

        settings = ClaudeSettings.model_validate(data)
        settings.permissions = permissions
        settings.env = dict(self.environment) or None
        settings.disallowedTools = list(self.disallowed_tools) or None
        settings.attribution = attribution
        return settings

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready view for API clients."""
        attribution = None
        if self.attribution is not None:
            attribution = {"commits": self.attribution[0], "pullRequests": self.attribution[1]}
        return {
            "permission_rules": [
                {"index": i, "rule": rule, "type": t.value}
                for i, (rule, t) in enumerate(self.permission_rules)
            ],
            "environment": [{"key": k, "value": v} for k, v in self.environment],
            "attribution": attribution,
            "disallowed_tools": list(self.disallowed_tools),
        }


@dataclass(frozen=True)
class EditEntry:
    """One undoable field change."""

    field: str
    old: Any
    new: Any
    action_name: Optional[str] = None
    seq: int = 0


class EditSession:
    """Working copy, baseline and undo/redo history for one editor."""

    def __init__(self, baseline: EditableSettings):
        self.baseline = baseline
        self.working = baseline
        self._undo: list[EditEntry] = []
        self._redo: list[EditEntry] = []
        self._seq = 0

    @classmethod
    def from_settings(cls, settings: ClaudeSettings) -> "EditSession":
        return cls(EditableSettings.from_settings(settings))

    # --- Dirty and affordance state ---

    @property
    def is_dirty(self) -> bool:
        return self.working.effective() != self.baseline.effective()

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def undo_action_name(self) -> Optional[str]:
        return self._undo[-1].action_name if self._undo else None

    @property
    def redo_action_name(self) -> Optional[str]:
        return self._redo[-1].action_name if self._redo else None

    # --- Core operations ---

    def mutate(self, field: str, new_value, action_name: Optional[str] = None) -> bool:
        """Set ``field`` on the working copy and record it for undo.

        Returns False, recording nothing, when the value is unchanged.
        """
        if field not in FIELDS:
            raise ValueError(f"Unknown field: {field}")
        old_value = getattr(self.working, field)
        if old_value == new_value:
            return False
        self.working = replace(self.working, **{field: new_value})
        self._seq += 1
        self._undo.append(EditEntry(field, old_value, new_value, action_name, self._seq))
        self._redo.clear()
        logger.debug("Edit %s (%s)", field, action_name or "unnamed")
        return True

    def undo(self) -> bool:
        if not self._undo:
            return False
        entry = self._undo.pop()
        self.working = replace(self.working, **{entry.field: entry.old})
        self._redo.append(entry)
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        entry = self._redo.pop()
        self.working = replace(self.working, **{entry.field: entry.new})
        self._undo.append(entry)
        return True

    @property
    def history_mark(self) -> int:
        """Sequence number of the latest edit; pair it with a save snapshot."""
        return self._seq

    def mark_saved(self, snapshot: EditableSettings, mark: Optional[int] = None):
        """Re-baseline on the snapshot that was written and drop its history.

        Edits made after ``snapshot`` was taken keep the session dirty. With
        ``mark`` (the ``history_mark`` read alongside the snapshot) their
        history entries survive and stay undoable; without it all history
        goes.
        """
        self.baseline = snapshot
        if mark is None:
            self._undo.clear()
            self._redo.clear()
            return
        self._undo = [e for e in self._undo if e.seq > mark]
        self._redo = [e for e in self._redo if e.seq > mark]

    def discard_to_external(self, settings: ClaudeSettings):
        """Throw away local edits in favour of ``settings``."""
        self.baseline = EditableSettings.from_settings(settings)
        self.working = self.baseline
        self._undo.clear()
        self._redo.clear()

    # --- Permission rules ---

    def add_permission_rule(self, rule: str, rule_type: PermissionType) -> bool:
        rules = self.working.permission_rules + ((rule, PermissionType(rule_type)),)
        return self.mutate("permission_rules", rules, "Add Rule")

    def remove_permission_rule(self, index: int) -> bool:
        rules = list(self.working.permission_rules)
        if not 0 <= index < len(rules):
            raise IndexError(f"No permission rule at index {index}")
        del rules[index]
        return self.mutate("permission_rules", tuple(rules), "Remove Rule")

    def update_permission_rule(
        self, index: int, rule: str, rule_type: PermissionType
    ) -> bool:
        rules = list(self.working.permission_rules)
        if not 0 <= index < len(rules):
            raise IndexError(f"No permission rule at index {index}")
        rules[index] = (rule, PermissionType(rule_type))
        return self.mutate("permission_rules", tuple(rules), "Update Rule")

    def move_permission_rule(
        self, rule_type: PermissionType, source: int, destination: int
    ) -> bool:
        """Reorder within one rule type; indices are positions in that type's list.

        The other type's rules end up first, as when the list is rebuilt.
        """
        rule_type = PermissionType(rule_type)
        same = [r for r in self.working.permission_rules if r[1] == rule_type]
        other = [r for r in self.working.permission_rules if r[1] != rule_type]
        if not 0 <= source < len(same):
            raise IndexError(f"No {rule_type.value} rule at index {source}")
        moved = same.pop(source)
        same.insert(max(0, min(destination, len(same))), moved)
        return self.mutate("permission_rules", tuple(other + same), "Reorder Rules")

    def apply_preset(self, preset_id: str) -> bool:
        """Append a preset's rules, skipping ones already present."""
        preset = PERMISSION_PRESETS.get(preset_id)
        if preset is None:
            raise ValueError(f"Unknown preset: {preset_id}")
        rules = list(self.working.permission_rules)
        for rule, rule_type in preset["rules"]:
            if not is_rule_duplicate(rules, rule, rule_type):
                rules.append((rule, rule_type))
        return self.mutate("permission_rules", tuple(rules), "Apply Preset")

    # --- Environment ---

    def _env_index(self, key: str) -> Optional[int]:
        for i, (k, _) in enumerate(self.working.environment):
            if k == key:
                return i
        return None

    def add_environment_variable(self, key: str, value: str) -> bool:
        if not key or self._env_index(key) is not None:
            return False
        env = self.working.environment + ((key, value),)
        return self.mutate("environment", env, "Add Variable")

    def remove_environment_variable(self, key: str) -> bool:
        env = tuple(pair for pair in self.working.environment if pair[0] != key)
        return self.mutate("environment", env, "Remove Variable")

    def update_environment_variable(self, key: str, new_key: str, new_value: str) -> bool:
        """Rename and/or change a variable; renaming onto an existing key is refused."""
        index = self._env_index(key)
        if index is None or not new_key:
            return False
        if new_key != key and self._env_index(new_key) is not None:
            return False
        env = list(self.working.environment)
        env[index] = (new_key, new_value)
        return self.mutate("environment", tuple(env), "Update Variable")

    # --- Attribution and disallowed tools ---

    def update_attribution(
        self, commits: Optional[bool], pull_requests: Optional[bool]
    ) -> bool:
        value = None if commits is None and pull_requests is None else (commits, pull_requests)
        return self.mutate("attribution", value, "Update Attribution")

    def add_disallowed_tool(self, tool: str) -> bool:
        if not tool or tool in self.working.disallowed_tools:
            return False
        tools = self.working.disallowed_tools + (tool,)
        return self.mutate("disallowed_tools", tools, "Add Disallowed Tool")

    def remove_disallowed_tool(self, tool: str) -> bool:
        tools = tuple(t for t in self.working.disallowed_tools if t != tool)
        return self.mutate("disallowed_tools", tools, "Remove Disallowed Tool")
