"""Tests for configuration health checks and auto-fixes."""

import json

import pytest

from claudefig.health import (
    AutoFix,
    AutoFixKind,
    HealthCheckContext,
    Severity,
    apply_auto_fix,
    build_context,
    run_checks,
)
from claudefig.models import ClaudeSettings, LegacyConfig, MCPConfig


def _settings(data):
    return ClaudeSettings.model_validate(data)


def _titles(findings, severity=None):
    return [f.title for f in findings if severity is None or f.severity is severity]


@pytest.fixture
def context(project_dir):
    return HealthCheckContext(project_path=project_dir)


class TestChecks:
    def test_empty_configuration(self, context):
        findings = run_checks(context)
        assert _titles(findings, Severity.SECURITY) == [
            ".env files not in deny list",
            "secrets/ directory not in deny list",
        ]
        assert "No settings.local.json" in _titles(findings, Severity.SUGGESTION)
        assert _titles(findings, Severity.GOOD) == []
        # Most severe first
        ranks = [f.severity.rank for f in findings]
        assert ranks == sorted(ranks)

    def test_deny_rules_from_any_level_count(self, context):
        context.global_settings = _settings({"permissions": {"deny": ["Read(.env)"]}})
        context.project_local_settings = _settings({"permissions": {"deny": ["Read(secrets/**)"]}})
        findings = run_checks(context)
        assert _titles(findings, Severity.SECURITY) == []
        good = _titles(findings, Severity.GOOD)
        assert "Sensitive files protected" in good
        assert "Local settings configured" in good

    def test_broad_allow_rules(self, context):
        context.project_settings = _settings({"permissions": {"allow": ["Bash(*)", "Read(src/**)"]}})
        findings = run_checks(context)
        assert "Overly broad allow rule: Bash(*)" in _titles(findings, Severity.WARNING)
        assert "Scoped permission rules" in _titles(findings, Severity.GOOD)

    def test_mcp_secrets(self, context):
        context.mcp_config = MCPConfig.model_validate(
            {
                "mcpServers": {
                    "gh": {"command": "x", "env": {"GITHUB_TOKEN": "ghp_1234567890", "DEBUG": "1"}},
                    "api": {"type": "http", "url": "https://a", "headers": {"Authorization": "Bearer abc"}},
                }
            }
        )
        warnings = _titles(run_checks(context), Severity.WARNING)
        assert "Hardcoded secret in MCP server 'gh'" in warnings
        assert "Hardcoded secret in MCP server 'api' headers" in warnings
        assert len([w for w in warnings if "'gh'" in w]) == 1

    def test_global_servers_shadowed_by_project(self, context):
        context.mcp_config = MCPConfig.model_validate({"mcpServers": {"gh": {"command": "x"}}})
        context.legacy_config = LegacyConfig.model_validate(
            {"mcpServers": {"gh": {"command": "x", "env": {"TOKEN": "sk-secret-value"}}}}
        )
        assert [name for name, _ in context.all_mcp_servers] == ["gh"]
        assert not any("Hardcoded" in t for t in _titles(run_checks(context)))

    def test_mcp_scoping(self, context):
        context.legacy_config = LegacyConfig.model_validate({"mcpServers": {"g": {"command": "g"}}})
        assert "Global MCP servers without project scoping" in _titles(run_checks(context))
        context.mcp_config = MCPConfig()
        assert "Global MCP servers without project scoping" not in _titles(run_checks(context))

    def test_large_global_config(self, context):
        context.global_config_size = 6 * 1024 * 1024
        assert "~/.claude.json is large (6.0 MB)" in _titles(run_checks(context))

    def test_hooks(self, context):
        assert "No hooks configured" in _titles(run_checks(context))
        context.project_settings = _settings({"hooks": {"Stop": [{"hooks": []}]}})
        titles = _titles(run_checks(context))
        assert "No hooks configured" not in titles
        assert "Hooks configured" in titles


class TestBuildContext:
    def test_loads_files(self, store, project_dir, global_settings, write_json, fig_config):
        global_settings({"permissions": {"deny": ["Read(.env)"]}})
        write_json(project_dir / ".mcp.json", {"mcpServers": {"a": {"command": "x"}}})
        write_json(fig_config.legacy_config_path, {"projects": {}})

        context = build_context(store, project_dir)
        assert context.all_deny_rules == ["Read(.env)"]
        assert context.mcp_config_exists
        assert not context.local_settings_exists
        assert context.legacy_config is not None
        assert context.global_config_size == fig_config.legacy_config_path.stat().st_size

    def test_unreadable_file_becomes_finding(self, store, project_dir, write_json):
        write_json(project_dir / ".claude" / "settings.local.json", "{broken")
        context = build_context(store, project_dir)
        assert context.project_local_settings is None
        findings = run_checks(context)
        assert "settings.local.json could not be read" in _titles(findings, Severity.WARNING)


class TestAutoFix:
    def test_add_to_deny_list(self, store, project_dir):
        fix = AutoFix(AutoFixKind.ADD_TO_DENY_LIST, "Read(.env)")
        assert apply_auto_fix(store, project_dir, fix)
        shared = json.loads((project_dir / ".claude" / "settings.json").read_text())
        assert shared == {"permissions": {"deny": ["Read(.env)"]}}
        assert apply_auto_fix(store, project_dir, fix) is False

        context = build_context(store, project_dir)
        assert ".env files not in deny list" not in _titles(run_checks(context))

    def test_create_local_settings(self, store, project_dir):
        fix = AutoFix(AutoFixKind.CREATE_LOCAL_SETTINGS)
        assert apply_auto_fix(store, project_dir, fix)
        assert (project_dir / ".claude" / "settings.local.json").read_text() == "{}\n"
        assert apply_auto_fix(store, project_dir, fix) is False

    def test_deny_fix_needs_pattern(self, store, project_dir):
        with pytest.raises(ValueError):
            apply_auto_fix(store, project_dir, AutoFix(AutoFixKind.ADD_TO_DENY_LIST))

    def test_labels(self):
        assert AutoFix(AutoFixKind.ADD_TO_DENY_LIST, "Read(.env)").label == "Add Read(.env) to deny list"
        assert AutoFix(AutoFixKind.CREATE_LOCAL_SETTINGS).to_dict()["kind"] == "create_local_settings"

    def test_no_create_fix_offered_over_unreadable_local_file(self, store, project_dir, write_json):
        write_json(project_dir / ".claude" / "settings.local.json", "{broken")
        findings = run_checks(build_context(store, project_dir))
        assert "No settings.local.json" not in _titles(findings)
