"""Shared fixtures for claude-fig tests."""

import json

import pytest

from claudefig.config import FigConfig
from claudefig.notifications import NotificationCenter
from claudefig.store import DocumentStore


@pytest.fixture
def home_dir(tmp_path):
    """Isolated home directory standing in for ``~``."""
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def project_dir(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    return project


@pytest.fixture
def fig_config(home_dir):
    return FigConfig(home_dir=home_dir, max_backups=3)


@pytest.fixture
def store(fig_config):
    return DocumentStore(fig_config)


@pytest.fixture
def notifier():
    return NotificationCenter()


@pytest.fixture
def write_json():
    """Write a dict (or raw string) as a JSON file, creating parents."""
    def _write(path, data):
        path.parent.mkdir(parents=True, exist_ok=True)
        text = data if isinstance(data, str) else json.dumps(data, indent=2)
        path.write_text(text, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def global_settings(fig_config, write_json):
    """Factory writing ``<home>/.claude/settings.json``."""
    def _create(data):
        return write_json(fig_config.global_settings_path, data)
    return _create
