"""Local dashboard API for editing Claude Code settings."""
