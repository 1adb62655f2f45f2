"""Runtime configuration, read from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_MAX_BACKUPS = 5


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def _env_flag(name: str, default: bool) -> bool:
    """Parse a boolean environment flag.

    >>> os.environ["_FIG_TEST_FLAG"] = "0"
    >>> _env_flag("_FIG_TEST_FLAG", True)
    False
    >>> del os.environ["_FIG_TEST_FLAG"]
    >>> _env_flag("_FIG_TEST_FLAG", True)
    True
    """
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


@dataclass
class FigConfig:
    """Application configuration.

    ``home_dir`` is the directory ``~/.claude`` resolves against; tests and
    sandboxed runs point it somewhere else via ``FIG_HOME``.
    """

    home_dir: Path = field(default_factory=Path.home)
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    backups: bool = True
    max_backups: int = DEFAULT_MAX_BACKUPS

    @classmethod
    def from_env(cls) -> "FigConfig":
        """Build configuration from ``FIG_*`` environment variables.

        Raises:
            ValueError: If a numeric variable cannot be parsed.
        """
        home = os.getenv("FIG_HOME")
        max_backups = _env_int("FIG_MAX_BACKUPS", DEFAULT_MAX_BACKUPS)
        if max_backups < 0:
            raise ValueError(f"FIG_MAX_BACKUPS must be >= 0, got {max_backups}")
        return cls(
            home_dir=Path(home).expanduser() if home else Path.home(),
            host=os.getenv("FIG_HOST", DEFAULT_HOST),
            port=_env_int("FIG_PORT", DEFAULT_PORT),
            poll_interval=_env_float("FIG_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            backups=_env_flag("FIG_BACKUPS", True),
            max_backups=max_backups,
        )

    @property
    def claude_dir(self) -> Path:
        return self.home_dir / ".claude"

    @property
    def global_settings_path(self) -> Path:
        return self.claude_dir / "settings.json"

    @property
    def global_claude_md(self) -> Path:
        return self.claude_dir / "CLAUDE.md"

    @property
    def legacy_config_path(self) -> Path:
        """Claude Code's own state file, listing known projects and global MCP servers."""
        return self.home_dir / ".claude.json"
