"""
Claude Fig - Editor backend for Claude Code configuration files.

Edits permission rules, environment variables, attribution settings and
CLAUDE.md files at global and per-project scope, with external-change
detection, conflict resolution and undo/redo.
"""

__version__ = "0.3.0"

__all__ = [
    "__version__",
]
