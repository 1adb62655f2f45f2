"""Tests for the claude-fig CLI commands."""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from claudefig.cli import main


@pytest.fixture
def runner(home_dir, monkeypatch):
    monkeypatch.setenv("FIG_HOME", str(home_dir))
    for name in ("FIG_HOST", "FIG_PORT", "FIG_POLL_INTERVAL", "FIG_BACKUPS", "FIG_MAX_BACKUPS"):
        monkeypatch.delenv(name, raising=False)
    return CliRunner()


def _saved(fig_config):
    return json.loads(fig_config.global_settings_path.read_text())


def test_show_missing_file(runner):
    result = runner.invoke(main, ["show"])
    assert result.exit_code == 0
    assert "does not exist" in result.output


def test_show_json(runner, global_settings):
    global_settings({"env": {"A": "1"}, "model": "opus"})
    result = runner.invoke(main, ["show", "--json"])
    assert result.exit_code == 0
    assert json.loads(result.output) == {"env": {"A": "1"}, "model": "opus"}


def test_show_table(runner, global_settings):
    global_settings({"permissions": {"allow": ["Read"], "deny": ["Bash"]}, "env": {"DEBUG": "1"}})
    result = runner.invoke(main, ["show"])
    assert result.exit_code == 0
    assert "Read" in result.output
    assert "DEBUG" in result.output


def test_show_invalid_json(runner, global_settings):
    global_settings("{nope")
    result = runner.invoke(main, ["show"])
    assert result.exit_code == 1
    assert "Error" in result.output


def test_permissions_add_and_remove(runner, fig_config):
    result = runner.invoke(main, ["permissions", "add", "Bash(npm run *)"])
    assert result.exit_code == 0
    assert "Saved" in result.output
    assert _saved(fig_config)["permissions"] == {"allow": ["Bash(npm run *)"]}

    runner.invoke(main, ["permissions", "add", "--deny", "Read(.env)"])
    result = runner.invoke(main, ["permissions", "remove", "Bash(npm run *)"])
    assert result.exit_code == 0
    assert _saved(fig_config)["permissions"] == {"deny": ["Read(.env)"]}


def test_permissions_remove_missing_rule(runner):
    result = runner.invoke(main, ["permissions", "remove", "Read"])
    assert result.exit_code == 0
    assert "No changes" in result.output


def test_permissions_add_invalid(runner, fig_config):
    result = runner.invoke(main, ["permissions", "add", "Bash(x"])
    assert result.exit_code == 1
    assert "Invalid format" in result.output
    assert not fig_config.global_settings_path.exists()


def test_permissions_add_to_project(runner, project_dir):
    result = runner.invoke(
        main, ["permissions", "add", "Read", "-t", "project_local", "-p", str(project_dir)]
    )
    assert result.exit_code == 0
    saved = json.loads((project_dir / ".claude" / "settings.local.json").read_text())
    assert saved == {"permissions": {"allow": ["Read"]}}


def test_presets(runner, fig_config):
    result = runner.invoke(main, ["presets", "list"])
    assert result.exit_code == 0
    assert "protect-env" in result.output

    runner.invoke(main, ["presets", "apply", "protect-env"])
    assert _saved(fig_config)["permissions"]["deny"] == ["Read(.env)", "Read(.env.*)"]
    again = runner.invoke(main, ["presets", "apply", "protect-env"])
    assert "No changes" in again.output


def test_presets_apply_unknown(runner):
    result = runner.invoke(main, ["presets", "apply", "nope"])
    assert result.exit_code == 2


def test_env_set_and_unset(runner, fig_config):
    runner.invoke(main, ["env", "set", "DEBUG", "1"])
    runner.invoke(main, ["env", "set", "DEBUG", "2"])
    assert _saved(fig_config)["env"] == {"DEBUG": "2"}

    result = runner.invoke(main, ["env", "unset", "DEBUG"])
    assert result.exit_code == 0
    assert "env" not in _saved(fig_config)


def test_attribution(runner, fig_config):
    result = runner.invoke(main, ["attribution"])
    assert "Nothing to change" in result.output

    runner.invoke(main, ["attribution", "--no-commits"])
    assert _saved(fig_config)["attribution"] == {"commits": False}
    runner.invoke(main, ["attribution", "--clear"])
    assert "attribution" not in _saved(fig_config)


def test_effective(runner, project_dir, global_settings, write_json):
    global_settings({"env": {"A": "1"}})
    write_json(project_dir / ".claude" / "settings.json", {"permissions": {"allow": ["Read"]}})
    result = runner.invoke(main, ["effective", "-p", str(project_dir)])
    assert result.exit_code == 0
    assert "A=1" in result.output
    assert "Read" in result.output


def test_claude_md_list(runner, project_dir):
    (project_dir / "CLAUDE.md").write_text("# hi\n", encoding="utf-8")
    with patch("claudefig.claude_md.is_tracked_by_git", return_value=True):
        result = runner.invoke(main, ["claude-md", "list", "-p", str(project_dir)])
    assert result.exit_code == 0
    assert "tracked" in result.output


def test_bad_config_exits(runner, monkeypatch):
    monkeypatch.setenv("FIG_PORT", "eighty")
    result = runner.invoke(main, ["show"])
    assert result.exit_code == 1
    assert "Configuration error" in result.output


def test_serve_uses_uvicorn(runner):
    with patch("uvicorn.run") as run:
        result = runner.invoke(main, ["serve", "--port", "9100"])
    assert result.exit_code == 0
    _, kwargs = run.call_args
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 9100


def test_permissions_copy_and_move(runner, fig_config, project_dir):
    result = runner.invoke(main, ["permissions", "copy", "Read", "--to", "global"])
    assert result.exit_code == 0
    assert "Copied" in result.output
    result = runner.invoke(main, ["permissions", "copy", "Read", "--to", "global"])
    assert "already in" in result.output

    result = runner.invoke(
        main,
        ["permissions", "copy", "Read", "--move-from", "global", "--to", "project_local", "-p", str(project_dir)],
    )
    assert result.exit_code == 0
    assert "Moved" in result.output
    assert _saved(fig_config) == {}
    local = json.loads((project_dir / ".claude" / "settings.local.json").read_text())
    assert local == {"permissions": {"allow": ["Read"]}}


def test_permissions_copy_invalid_rule(runner):
    result = runner.invoke(main, ["permissions", "copy", "Bash(oops", "--to", "global"])
    assert result.exit_code == 1
    assert "Error" in result.output


def test_projects_list(runner, fig_config, project_dir, write_json):
    result = runner.invoke(main, ["projects", "list"])
    assert "No projects found" in result.output

    write_json(project_dir / ".mcp.json", {"mcpServers": {}})
    write_json(fig_config.legacy_config_path, {"projects": {str(project_dir): {}}})
    result = runner.invoke(main, ["projects", "list", "--json"])
    assert result.exit_code == 0
    listed = json.loads(result.output)
    assert [p["name"] for p in listed] == ["project"]
    assert listed[0]["has_mcp_config"] is True


def test_projects_list_scan_dir(runner, tmp_path):
    (tmp_path / "code" / "app" / ".claude").mkdir(parents=True)
    result = runner.invoke(main, ["projects", "list", "--dir", str(tmp_path / "code"), "--json"])
    assert [p["name"] for p in json.loads(result.output)] == ["app"]


def test_mcp_add_list_remove(runner, project_dir):
    result = runner.invoke(
        main,
        ["mcp", "add", "-p", str(project_dir), "-e", "DEBUG=1", "github", "--", "npx", "-y", "gh"],
    )
    assert result.exit_code == 0, result.output
    result = runner.invoke(
        main, ["mcp", "add", "-p", str(project_dir), "--http", "-H", "X-Team=a", "remote", "https://mcp.example.com"]
    )
    assert result.exit_code == 0, result.output

    servers = json.loads((project_dir / ".mcp.json").read_text())["mcpServers"]
    assert servers == {
        "github": {"command": "npx", "args": ["-y", "gh"], "env": {"DEBUG": "1"}},
        "remote": {"type": "http", "url": "https://mcp.example.com", "headers": {"X-Team": "a"}},
    }

    result = runner.invoke(main, ["mcp", "list", "-p", str(project_dir)])
    assert "github" in result.output
    assert "http" in result.output

    result = runner.invoke(main, ["mcp", "remove", "-p", str(project_dir), "github"])
    assert result.exit_code == 0
    assert list(json.loads((project_dir / ".mcp.json").read_text())["mcpServers"]) == ["remote"]


def test_mcp_errors(runner, project_dir):
    result = runner.invoke(main, ["mcp", "list", "-p", str(project_dir)])
    assert "does not exist" in result.output

    result = runner.invoke(main, ["mcp", "add", "-p", str(project_dir), "bad name", "npx"])
    assert result.exit_code == 1
    result = runner.invoke(main, ["mcp", "add", "-p", str(project_dir), "-e", "NOEQUALS", "a", "npx"])
    assert result.exit_code == 2
    result = runner.invoke(main, ["mcp", "remove", "-p", str(project_dir), "missing"])
    assert result.exit_code == 1
    assert not (project_dir / ".mcp.json").exists()


def test_health_and_fix(runner, project_dir):
    result = runner.invoke(main, ["health", "-p", str(project_dir), "--json"])
    assert result.exit_code == 0
    titles = [f["title"] for f in json.loads(result.output)]
    assert ".env files not in deny list" in titles

    result = runner.invoke(main, ["health", "-p", str(project_dir), "--fix"])
    assert result.exit_code == 0
    assert "Fixed:" in result.output
    shared = json.loads((project_dir / ".claude" / "settings.json").read_text())
    assert shared["permissions"]["deny"] == ["Read(.env)", "Read(secrets/**)"]
    assert (project_dir / ".claude" / "settings.local.json").exists()

    result = runner.invoke(main, ["health", "-p", str(project_dir), "--json"])
    severities = {f["severity"] for f in json.loads(result.output)}
    assert "security" not in severities
