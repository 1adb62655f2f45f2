"""Configuration health checks for a project.

Each check looks at every settings file that applies to the project, the
project's ``.mcp.json`` and ``~/.claude.json``, and returns findings. Some
findings carry an auto-fix the dashboard can apply in one click.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from claudefig.discovery import load_legacy_config
from claudefig.errors import FigError
from claudefig.mcp import MCPConfigFile
from claudefig.models import (
    ClaudeSettings,
    EditingTarget,
    LegacyConfig,
    MCPConfig,
    MCPServer,
    PermissionType,
)
from claudefig.rules import copy_rule
from claudefig.store import DocumentStore

logger = logging.getLogger(__name__)

GLOBAL_CONFIG_SIZE_LIMIT = 5 * 1024 * 1024

BROAD_ALLOW_RULES = {
    "Bash(*)": "Allows any Bash command without restriction",
    "Read(*)": "Allows reading any file without restriction",
    "Write(*)": "Allows writing to any file without restriction",
    "Edit(*)": "Allows editing any file without restriction",
}

SECRET_VALUE_PREFIXES = (
    "sk-", "sk_", "ghp_", "gho_", "ghu_", "ghs_",
    "xoxb-", "xoxp-", "xoxs-",
    "AKIA", "Bearer ", "-----BEGIN",
)
SECRET_KEY_WORDS = (
    "TOKEN", "SECRET", "KEY", "PASSWORD", "CREDENTIAL", "AUTH", "API_KEY",
    "APIKEY", "PRIVATE",
)
MIN_SECRET_LENGTH = 8


class Severity(str, Enum):
    """Finding severity, most urgent first."""

    SECURITY = "security"
    WARNING = "warning"
    SUGGESTION = "suggestion"
    GOOD = "good"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)


class AutoFixKind(str, Enum):
    ADD_TO_DENY_LIST = "add_to_deny_list"
    CREATE_LOCAL_SETTINGS = "create_local_settings"


@dataclass(frozen=True)
class AutoFix:
    kind: AutoFixKind
    pattern: Optional[str] = None

    @property
    def label(self) -> str:
        if self.kind is AutoFixKind.ADD_TO_DENY_LIST:
            return f"Add {self.pattern} to deny list"
        return "Create settings.local.json"

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "pattern": self.pattern, "label": self.label}


@dataclass(frozen=True)
class Finding:
    check: str
    severity: Severity
    title: str
    description: str
    auto_fix: Optional[AutoFix] = None

    def to_dict(self) -> dict:
        return {
            "check": self.check,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "auto_fix": self.auto_fix.to_dict() if self.auto_fix else None,
        }


@dataclass
class HealthCheckContext:
    """Everything the checks look at. Files that do not exist are None."""

    project_path: Path
    global_settings: Optional[ClaudeSettings] = None
    project_settings: Optional[ClaudeSettings] = None
    project_local_settings: Optional[ClaudeSettings] = None
    mcp_config: Optional[MCPConfig] = None
    legacy_config: Optional[LegacyConfig] = None
    global_config_size: Optional[int] = None
    # Files that exist but could not be read, as (path, message)
    unreadable: list = field(default_factory=list)
    # Set for files found on disk even when they could not be parsed
    local_settings_found: bool = False
    mcp_config_found: bool = False

    @property
    def local_settings_exists(self) -> bool:
        return self.local_settings_found or self.project_local_settings is not None

    @property
    def mcp_config_exists(self) -> bool:
        return self.mcp_config_found or self.mcp_config is not None

    def _settings(self) -> list[ClaudeSettings]:
        levels = (self.global_settings, self.project_settings, self.project_local_settings)
        return [s for s in levels if s is not None]

    def _rules(self, rule_type: str) -> list[str]:
        rules: list[str] = []
        for settings in self._settings():
            if settings.permissions is not None:
                rules.extend(getattr(settings.permissions, rule_type) or [])
        return rules

    @property
    def all_allow_rules(self) -> list[str]:
        return self._rules("allow")

    @property
    def all_deny_rules(self) -> list[str]:
        return self._rules("deny")

    @property
    def all_mcp_servers(self) -> list[tuple[str, MCPServer]]:
        """Project servers, then global servers whose names are not taken."""
        servers = list(((self.mcp_config and self.mcp_config.mcpServers) or {}).items())
        names = {name for name, _ in servers}
        if self.legacy_config is not None:
            for name, server in (self.legacy_config.mcpServers or {}).items():
                if name not in names:
                    servers.append((name, server))
        return servers


def _has_hooks(settings: Optional[ClaudeSettings]) -> bool:
    return settings is not None and bool(settings.hooks)


# --- Checks ---

def check_unreadable_files(context: HealthCheckContext) -> list[Finding]:
    return [
        Finding(
            "Unreadable Files",
            Severity.WARNING,
            f"{Path(path).name} could not be read",
            f"{message}. Checks that depend on {path} were skipped.",
        )
        for path, message in context.unreadable
    ]


def check_deny_list_security(context: HealthCheckContext) -> list[Finding]:
    deny = context.all_deny_rules
    findings = []
    if not any(".env" in rule for rule in deny):
        findings.append(Finding(
            "Deny List Security",
            Severity.SECURITY,
            ".env files not in deny list",
            "Environment files often contain secrets like API keys and passwords. "
            "Add a deny rule to prevent Claude from reading them.",
            AutoFix(AutoFixKind.ADD_TO_DENY_LIST, "Read(.env)"),
        ))
    if not any("secrets" in rule for rule in deny):
        findings.append(Finding(
            "Deny List Security",
            Severity.SECURITY,
            "secrets/ directory not in deny list",
            "The secrets/ directory may contain sensitive credentials. "
            "Add a deny rule to prevent Claude from accessing it.",
            AutoFix(AutoFixKind.ADD_TO_DENY_LIST, "Read(secrets/**)"),
        ))
    return findings


def check_broad_allow_rules(context: HealthCheckContext) -> list[Finding]:
    allow = set(context.all_allow_rules)
    return [
        Finding(
            "Broad Allow Rules",
            Severity.WARNING,
            f"Overly broad allow rule: {pattern}",
            f"{description}. Consider using more specific patterns to limit "
            "what Claude can access.",
        )
        for pattern, description in BROAD_ALLOW_RULES.items()
        if pattern in allow
    ]


def check_global_config_size(context: HealthCheckContext) -> list[Finding]:
    size = context.global_config_size
    if size is None or size <= GLOBAL_CONFIG_SIZE_LIMIT:
        return []
    return [Finding(
        "Global Config Size",
        Severity.WARNING,
        f"~/.claude.json is large ({size / (1024 * 1024):.1f} MB)",
        "A large global config file can slow down Claude Code startup. "
        "Consider cleaning up old project entries or conversation history.",
    )]


def looks_like_secret(key: str, value: str) -> bool:
    """Heuristic for a hardcoded credential.

    >>> looks_like_secret("GITHUB_TOKEN", "ghp_abcdefgh")
    True
    >>> looks_like_secret("API_KEY", "abc")
    False
    >>> looks_like_secret("DEBUG", "1")
    False
    """
    upper = key.upper()
    key_is_secret = any(word in upper for word in SECRET_KEY_WORDS)
    value_is_secret = value.startswith(SECRET_VALUE_PREFIXES)
    return (key_is_secret and len(value) >= MIN_SECRET_LENGTH) or value_is_secret


def check_mcp_hardcoded_secrets(context: HealthCheckContext) -> list[Finding]:
    findings = []
    for name, server in context.all_mcp_servers:
        for key, value in (server.env or {}).items():
            if looks_like_secret(key, value):
                findings.append(Finding(
                    "MCP Hardcoded Secrets",
                    Severity.WARNING,
                    f"Hardcoded secret in MCP server '{name}'",
                    f"The environment variable '{key}' appears to contain a hardcoded "
                    "secret. Consider using environment variable references instead.",
                ))
        for key, value in (server.headers or {}).items():
            if looks_like_secret(key, value):
                findings.append(Finding(
                    "MCP Hardcoded Secrets",
                    Severity.WARNING,
                    f"Hardcoded secret in MCP server '{name}' headers",
                    f"The header '{key}' appears to contain a hardcoded secret. "
                    "Consider using environment variable references instead.",
                ))
    return findings


def check_local_settings(context: HealthCheckContext) -> list[Finding]:
    if context.local_settings_exists:
        return []
    return [Finding(
        "Local Settings",
        Severity.SUGGESTION,
        "No settings.local.json",
        "Create a local settings file for personal overrides that won't be "
        "committed to version control.",
        AutoFix(AutoFixKind.CREATE_LOCAL_SETTINGS),
    )]


def check_mcp_scoping(context: HealthCheckContext) -> list[Finding]:
    has_global = bool(context.legacy_config and context.legacy_config.mcpServers)
    if not has_global or context.mcp_config_exists:
        return []
    return [Finding(
        "MCP Scoping",
        Severity.SUGGESTION,
        "Global MCP servers without project scoping",
        "You have global MCP servers configured but no project-level .mcp.json. "
        "Consider creating a project-scoped MCP configuration for better isolation.",
    )]


def check_hook_suggestions(context: HealthCheckContext) -> list[Finding]:
    levels = (context.global_settings, context.project_settings, context.project_local_settings)
    if any(_has_hooks(s) for s in levels):
        return []
    return [Finding(
        "Hook Suggestions",
        Severity.SUGGESTION,
        "No hooks configured",
        "Hooks let you run commands before or after Claude uses tools, such as "
        "running formatters after file edits.",
    )]


def check_good_practices(context: HealthCheckContext) -> list[Finding]:
    deny = context.all_deny_rules
    good = []
    if any(".env" in rule for rule in deny):
        good.append(("Sensitive files protected",
                     "Your deny list includes rules to protect .env files from being read."))
    if any("secrets" in rule for rule in deny):
        good.append(("Secrets directory protected",
                     "Your deny list includes rules to protect the secrets directory."))
    if context.local_settings_exists:
        good.append(("Local settings configured",
                     "You have a settings.local.json for personal overrides."))
    if context.mcp_config_exists:
        good.append(("Project-scoped MCP servers",
                     "MCP servers are configured at the project level."))
    if _has_hooks(context.project_settings) or _has_hooks(context.project_local_settings):
        good.append(("Hooks configured", "Lifecycle hooks are set up for automated workflows."))
    if any("/" in rule or "**" in rule for rule in context.all_allow_rules):
        good.append(("Scoped permission rules",
                     "Permission rules use specific path patterns for fine-grained access control."))
    return [Finding("Good Practices", Severity.GOOD, title, text) for title, text in good]


CHECKS: list[Callable[[HealthCheckContext], list[Finding]]] = [
    check_unreadable_files,
    check_deny_list_security,
    check_broad_allow_rules,
    check_global_config_size,
    check_mcp_hardcoded_secrets,
    check_local_settings,
    check_mcp_scoping,
    check_hook_suggestions,
    check_good_practices,
]


def run_checks(context: HealthCheckContext) -> list[Finding]:
    """Run every check; findings come back most severe first, stable within a severity."""
    findings: list[Finding] = []
    for check in CHECKS:
        findings.extend(check(context))
    findings.sort(key=lambda f: f.severity.rank)
    logger.info("Health check for %s: %d findings", context.project_path, len(findings))
    return findings


def build_context(store: DocumentStore, project_path) -> HealthCheckContext:
    """Load every file the checks need. Unreadable files are noted, not raised."""
    project_path = Path(project_path).expanduser()
    context = HealthCheckContext(project_path=project_path)

    def _attempt(path: Path, load: Callable):
        try:
            return load()
        except FigError as e:
            logger.warning("Health check cannot read %s: %s", path, e.message)
            context.unreadable.append((str(path), e.message))
            return None

    for target, attr in (
        (EditingTarget.GLOBAL, "global_settings"),
        (EditingTarget.PROJECT_SHARED, "project_settings"),
        (EditingTarget.PROJECT_LOCAL, "project_local_settings"),
    ):
        path = store.path_for(target, project_path)
        document = _attempt(path, lambda t=target: store.load(t, project_path))
        if document is not None and document.exists:
            setattr(context, attr, document.settings)
    context.local_settings_found = store.path_for(
        EditingTarget.PROJECT_LOCAL, project_path
    ).exists()

    mcp_file = MCPConfigFile(store, project_path)
    mcp_document = _attempt(mcp_file.path, mcp_file.load)
    if mcp_document is not None and mcp_document.exists:
        context.mcp_config = mcp_document.config
    context.mcp_config_found = mcp_file.path.exists()

    legacy_path = store.config.legacy_config_path
    context.legacy_config = _attempt(legacy_path, lambda: load_legacy_config(store))
    try:
        context.global_config_size = legacy_path.stat().st_size
    except OSError:
        context.global_config_size = None
    return context


def apply_auto_fix(store: DocumentStore, project_path, fix: AutoFix) -> bool:
    """Apply a finding's fix. Returns False when there was nothing to do.

    Deny rules go to the project's shared settings.json.
    """
    if fix.kind is AutoFixKind.ADD_TO_DENY_LIST:
        if not fix.pattern:
            raise ValueError("A deny-list fix needs a pattern")
        return copy_rule(
            store, fix.pattern, PermissionType.DENY, EditingTarget.PROJECT_SHARED, project_path
        )
    document = store.load(EditingTarget.PROJECT_LOCAL, project_path)
    if document.exists:
        return False
    store.create(EditingTarget.PROJECT_LOCAL, project_path)
    logger.info("Created settings.local.json for %s", project_path)
    return True
