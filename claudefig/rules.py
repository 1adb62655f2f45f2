"""Copy, move and remove permission rules across settings files.

These write straight through the document store. An editor open on the
destination sees the write as an external change on its next poll.
"""

import logging
from typing import Optional

from claudefig.models import ClaudeSettings, EditingTarget, Permissions, PermissionType
from claudefig.presets import validate_permission_rule
from claudefig.store import DocumentStore

logger = logging.getLogger(__name__)


def _with_rules(
    settings: ClaudeSettings, rule_type: PermissionType, rules: list[str]
) -> ClaudeSettings:
    permissions = settings.permissions or Permissions()
    permissions = permissions.model_copy(update={rule_type.value: rules or None})
    if permissions.to_dict() == {}:
        permissions = None
    return settings.model_copy(update={"permissions": permissions})


def _rules_of(settings: ClaudeSettings, rule_type: PermissionType) -> list[str]:
    if settings.permissions is None:
        return []
    return list(getattr(settings.permissions, rule_type.value) or [])


def has_rule(
    store: DocumentStore,
    rule: str,
    rule_type: PermissionType,
    target: EditingTarget,
    project_path=None,
) -> bool:
    document = store.load(EditingTarget(target), project_path)
    return rule in _rules_of(document.settings, PermissionType(rule_type))


def copy_rule(
    store: DocumentStore,
    rule: str,
    rule_type: PermissionType,
    destination: EditingTarget,
    project_path=None,
) -> bool:
    """Append ``rule`` to the destination file's list.

    Returns False, writing nothing, when the rule is already there.

    Raises:
        ValueError: The rule is malformed.
        ParseError: The destination file cannot be parsed.
    """
    ok, error = validate_permission_rule(rule)
    if not ok:
        raise ValueError(error)
    rule_type = PermissionType(rule_type)
    destination = EditingTarget(destination)
    document = store.load(destination, project_path)
    rules = _rules_of(document.settings, rule_type)
    if rule in rules:
        logger.info("Rule %s already in %s", rule, document.path)
        return False
    store.save(document, _with_rules(document.settings, rule_type, rules + [rule]))
    logger.info("Copied %s rule %s to %s", rule_type.value, rule, destination.display_name)
    return True


def remove_rule(
    store: DocumentStore,
    rule: str,
    rule_type: PermissionType,
    source: EditingTarget,
    project_path=None,
) -> bool:
    """Remove every occurrence of ``rule``; an emptied list is dropped.

    Returns False when the rule was not there.
    """
    rule_type = PermissionType(rule_type)
    document = store.load(EditingTarget(source), project_path)
    rules = _rules_of(document.settings, rule_type)
    if rule not in rules:
        return False
    remaining = [r for r in rules if r != rule]
    store.save(document, _with_rules(document.settings, rule_type, remaining))
    logger.info("Removed %s rule %s from %s", rule_type.value, rule, document.path)
    return True


def move_rule(
    store: DocumentStore,
    rule: str,
    rule_type: PermissionType,
    source: EditingTarget,
    destination: EditingTarget,
    project_path=None,
) -> Optional[bool]:
    """Copy to ``destination`` then remove from ``source``.

    Returns None when ``source`` does not hold the rule; otherwise whether
    the destination gained it.
    """
    if EditingTarget(source) is EditingTarget(destination):
        raise ValueError("Source and destination are the same file")
    if not has_rule(store, rule, rule_type, source, project_path):
        return None
    copied = copy_rule(store, rule, rule_type, destination, project_path)
    remove_rule(store, rule, rule_type, source, project_path)
    return copied
