"""Permission presets, known environment variables, and rule validation."""

import re
from typing import Optional, Sequence

from claudefig.models import PermissionType

# Valid formats: "ToolName" or "ToolName(pattern)"
_RULE_PATTERN = re.compile(r"^[A-Za-z]+(\([^)]*\))?$")

# Quick-add presets for common permission patterns
PERMISSION_PRESETS = {
    "protect-env": {
        "name": "Protect .env files",
        "description": "Prevent reading environment files",
        "rules": [
            ("Read(.env)", PermissionType.DENY),
            ("Read(.env.*)", PermissionType.DENY),
        ],
    },
    "allow-npm": {
        "name": "Allow npm scripts",
        "description": "Allow running npm scripts",
        "rules": [("Bash(npm run *)", PermissionType.ALLOW)],
    },
    "allow-git": {
        "name": "Allow git operations",
        "description": "Allow running git commands",
        "rules": [("Bash(git *)", PermissionType.ALLOW)],
    },
    "read-only": {
        "name": "Read-only mode",
        "description": "Deny all write and edit operations",
        "rules": [
            ("Write", PermissionType.DENY),
            ("Edit", PermissionType.DENY),
        ],
    },
    "allow-read-src": {
        "name": "Allow reading source",
        "description": "Allow reading all files in src directory",
        "rules": [("Read(src/**)", PermissionType.ALLOW)],
    },
    "deny-curl": {
        "name": "Block curl commands",
        "description": "Prevent curl network requests",
        "rules": [("Bash(curl *)", PermissionType.DENY)],
    },
}

# Claude Code env vars surfaced with descriptions in the editor
KNOWN_ENV_VARS = {
    "CLAUDE_CODE_MAX_OUTPUT_TOKENS": {
        "description": "Maximum tokens in Claude's response",
        "default": None,
    },
    "BASH_DEFAULT_TIMEOUT_MS": {
        "description": "Default timeout for bash commands in milliseconds",
        "default": "120000",
    },
    "CLAUDE_CODE_ENABLE_TELEMETRY": {
        "description": "Enable/disable telemetry (0 or 1)",
        "default": None,
    },
    "OTEL_METRICS_EXPORTER": {
        "description": "OpenTelemetry metrics exporter configuration",
        "default": None,
    },
    "DISABLE_TELEMETRY": {
        "description": "Disable all telemetry (0 or 1)",
        "default": None,
    },
    "CLAUDE_CODE_DISABLE_NONESSENTIAL_TRAFFIC": {
        "description": "Reduce network calls by disabling non-essential traffic",
        "default": None,
    },
    "ANTHROPIC_MODEL": {
        "description": "Override the default model used by Claude Code",
        "default": None,
    },
    "ANTHROPIC_DEFAULT_SONNET_MODEL": {
        "description": "Default Sonnet model to use",
        "default": None,
    },
    "ANTHROPIC_DEFAULT_OPUS_MODEL": {
        "description": "Default Opus model to use",
        "default": None,
    },
    "ANTHROPIC_DEFAULT_HAIKU_MODEL": {
        "description": "Default Haiku model to use",
        "default": None,
    },
}

# Tool name -> example pattern shown as a placeholder
TOOL_TYPES = {
    "Bash": "npm run *, git *, etc.",
    "Read": "src/**, .env, config/*.json",
    "Write": "*.log, temp/*, dist/**",
    "Edit": "src/**/*.ts, package.json",
    "Grep": "*.ts, src/**",
    "Glob": "**/*.test.ts",
    "WebFetch": "https://api.example.com/*",
    "Notebook": "*.ipynb",
}


def env_var_description(key: str) -> Optional[str]:
    """Description for a known env var, or None.

    >>> env_var_description("BASH_DEFAULT_TIMEOUT_MS")
    'Default timeout for bash commands in milliseconds'
    >>> env_var_description("MY_VAR") is None
    True
    """
    meta = KNOWN_ENV_VARS.get(key)
    return meta["description"] if meta else None


def validate_permission_rule(rule: str) -> tuple[bool, Optional[str]]:
    """Check a permission rule pattern.

    >>> validate_permission_rule("Bash(npm run *)")
    (True, None)
    >>> validate_permission_rule("Write")
    (True, None)
    >>> validate_permission_rule("   ")
    (False, 'Rule cannot be empty')
    >>> validate_permission_rule("Bash(git *")
    (False, "Invalid format. Use 'Tool' or 'Tool(pattern)'")
    """
    if not rule or not rule.strip():
        return False, "Rule cannot be empty"
    if not _RULE_PATTERN.match(rule):
        return False, "Invalid format. Use 'Tool' or 'Tool(pattern)'"
    return True, None


def is_rule_duplicate(
    rules: Sequence[tuple[str, PermissionType]],
    rule: str,
    rule_type: PermissionType,
    excluding_index: Optional[int] = None,
) -> bool:
    """True if (rule, type) already appears, ignoring ``excluding_index``.

    >>> rules = [("Read", PermissionType.ALLOW)]
    >>> is_rule_duplicate(rules, "Read", PermissionType.ALLOW)
    True
    >>> is_rule_duplicate(rules, "Read", PermissionType.DENY)
    False
    >>> is_rule_duplicate(rules, "Read", PermissionType.ALLOW, excluding_index=0)
    False
    """
    for index, (existing, existing_type) in enumerate(rules):
        if index == excluding_index:
            continue
        if existing == rule and existing_type == rule_type:
            return True
    return False
