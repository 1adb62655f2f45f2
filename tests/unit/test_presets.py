"""Tests for permission presets and rule validation."""

import pytest

from claudefig.models import PermissionType
from claudefig.presets import (
    KNOWN_ENV_VARS,
    PERMISSION_PRESETS,
    TOOL_TYPES,
    is_rule_duplicate,
    validate_permission_rule,
)


@pytest.mark.parametrize(
    "rule",
    ["Read", "Bash(npm run *)", "Read(src/**)", "WebFetch(https://x.com/*)", "Edit()"],
)
def test_valid_rules(rule):
    assert validate_permission_rule(rule) == (True, None)


@pytest.mark.parametrize(
    "rule",
    ["Bash(git *", "mcp__server", "Read (x)", "Bash(a)(b)", "123", "Bash(a)b"],
)
def test_invalid_format(rule):
    ok, error = validate_permission_rule(rule)
    assert not ok
    assert "Invalid format" in error


@pytest.mark.parametrize("rule", ["", "   ", "\n"])
def test_empty_rule(rule):
    assert validate_permission_rule(rule) == (False, "Rule cannot be empty")


def test_is_rule_duplicate_checks_type():
    rules = [("Read", PermissionType.ALLOW), ("Write", PermissionType.DENY)]
    assert is_rule_duplicate(rules, "Write", PermissionType.DENY)
    assert not is_rule_duplicate(rules, "Write", PermissionType.ALLOW)
    assert not is_rule_duplicate(rules, "Write", PermissionType.DENY, excluding_index=1)


def test_presets_are_valid_rules():
    expected = {"protect-env", "allow-npm", "allow-git", "read-only", "allow-read-src", "deny-curl"}
    assert set(PERMISSION_PRESETS) == expected
    for preset in PERMISSION_PRESETS.values():
        for rule, rule_type in preset["rules"]:
            assert validate_permission_rule(rule) == (True, None)
            assert isinstance(rule_type, PermissionType)


def test_reference_tables():
    assert "BASH_DEFAULT_TIMEOUT_MS" in KNOWN_ENV_VARS
    assert KNOWN_ENV_VARS["BASH_DEFAULT_TIMEOUT_MS"]["default"] == "120000"
    assert "Bash" in TOOL_TYPES
