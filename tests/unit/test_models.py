"""Tests for settings models and editing targets."""

from claudefig.models import (
    Attribution,
    ClaudeSettings,
    EditingTarget,
    LegacyConfig,
    MCPConfig,
    MCPServer,
    Permissions,
)


class TestClaudeSettings:
    def test_unknown_keys_round_trip(self):
        data = {
            "model": "opus",
            "permissions": {"allow": ["Read"], "defaultMode": "plan", "ask": ["Bash"]},
            "attribution": {"commits": True, "footer": "x"},
            "statusLine": {"type": "command", "command": "echo hi"},
            "weird": None,
        }
        settings = ClaudeSettings.model_validate(data)
        assert settings.to_dict() == data

    def test_known_none_fields_are_omitted(self):
        settings = ClaudeSettings(env={"A": "1"})
        assert settings.to_dict() == {"env": {"A": "1"}}

    def test_empty(self):
        assert ClaudeSettings.empty().to_dict() == {}

    def test_nested_extra_exposed(self):
        settings = ClaudeSettings.model_validate(
            {"permissions": {"allow": [], "defaultMode": "plan"}}
        )
        assert settings.permissions.extra == {"defaultMode": "plan"}
        assert settings.permissions.allow == []

    def test_to_dict_is_a_copy(self):
        settings = ClaudeSettings.model_validate({"hooks": {"Stop": [{"hooks": []}]}})
        out = settings.to_dict()
        out["hooks"]["Stop"].append("mutated")
        assert settings.hooks == {"Stop": [{"hooks": []}]}

    def test_is_tool_disallowed(self):
        settings = ClaudeSettings(disallowedTools=["WebFetch"])
        assert settings.is_tool_disallowed("WebFetch")
        assert not settings.is_tool_disallowed("Read")
        assert not ClaudeSettings.empty().is_tool_disallowed("Read")

    def test_nested_models_serialize(self):
        settings = ClaudeSettings(
            permissions=Permissions(deny=["Write"]),
            attribution=Attribution(pullRequests=False),
        )
        assert settings.to_dict() == {
            "permissions": {"deny": ["Write"]},
            "attribution": {"pullRequests": False},
        }


class TestEditingTarget:
    def test_precedence_order(self):
        assert (
            EditingTarget.GLOBAL.precedence
            < EditingTarget.PROJECT_SHARED.precedence
            < EditingTarget.PROJECT_LOCAL.precedence
        )

    def test_requires_project(self):
        assert not EditingTarget.GLOBAL.requires_project
        assert EditingTarget.PROJECT_SHARED.requires_project
        assert EditingTarget.PROJECT_LOCAL.requires_project

    def test_names(self):
        assert EditingTarget.PROJECT_SHARED.display_name == "Project"
        assert EditingTarget("project_local") is EditingTarget.PROJECT_LOCAL
        assert EditingTarget.GLOBAL.file_name == "~/.claude/settings.json"


class TestMCPModels:
    def test_servers_round_trip_with_unknown_keys(self):
        data = {
            "mcpServers": {
                "github": {"command": "npx", "args": ["-y", "gh"], "timeout": 30},
                "remote": {"type": "http", "url": "https://mcp.example.com"},
            },
            "$schema": "x",
        }
        config = MCPConfig.model_validate(data)
        assert config.server_names == ["github", "remote"]
        assert config.server("github").extra == {"timeout": 30}
        assert config.to_dict() == data

    def test_transport(self):
        assert MCPServer.stdio("npx").transport == "stdio"
        assert MCPServer.http("https://a").is_remote
        assert MCPServer(type="sse", url="https://a").transport == "sse"
        # A command with no type is stdio even when a url is present
        assert not MCPServer(command="x", url="https://a").is_remote

    def test_legacy_config(self):
        legacy = LegacyConfig.model_validate(
            {
                "projects": {"/w/b": {"allowedTools": []}, "/w/a": {"history": [{"x": 1}]}},
                "mcpServers": {"g": {"command": "g"}},
                "numStartups": 4,
            }
        )
        assert legacy.project_paths == ["/w/a", "/w/b"]
        assert legacy.global_server_names == ["g"]
        assert legacy.extra == {"numStartups": 4}
