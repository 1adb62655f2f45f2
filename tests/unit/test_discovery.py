"""Tests for project discovery from ~/.claude.json and directory scans."""

import os

import pytest

from claudefig.discovery import ProjectDiscovery


@pytest.fixture
def discovery(store):
    return ProjectDiscovery(store)


@pytest.fixture
def legacy(fig_config, write_json):
    """Write ``~/.claude.json`` listing the given project paths."""
    def _write(*paths, **extra):
        data = {"projects": {str(p): {} for p in paths}}
        data.update(extra)
        return write_json(fig_config.legacy_config_path, data)
    return _write


def _project(root, name, *files):
    path = root / name
    (path / ".claude").mkdir(parents=True)
    for f in files:
        target = path / f
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text("{}")
    return path


class TestKnownProjects:
    def test_no_legacy_file(self, discovery):
        assert discovery.discover() == []

    def test_lists_known_projects(self, discovery, legacy, tmp_path):
        app = _project(tmp_path, "app", ".claude/settings.json", ".mcp.json")
        gone = tmp_path / "gone"
        legacy(app, gone, "relative/path")

        projects = {p.display_name: p for p in discovery.discover()}
        assert set(projects) == {"app", "gone"}
        assert projects["app"].has_settings and projects["app"].has_mcp_config
        assert not projects["app"].has_local_settings
        assert projects["gone"].exists is False
        assert projects["gone"].last_modified is None

    def test_unparseable_legacy_file_lists_nothing(self, discovery, fig_config, write_json, caplog):
        write_json(fig_config.legacy_config_path, "{broken")
        assert discovery.known_projects() == []
        assert "Cannot read" in caplog.text


class TestOrdering:
    def test_newest_first_then_undated_by_name(self, discovery, legacy, tmp_path):
        old = _project(tmp_path, "old", ".claude/settings.json")
        new = _project(tmp_path, "new", ".claude/settings.local.json")
        os.utime(old / ".claude" / "settings.json", (1_000_000, 1_000_000))
        os.utime(new / ".claude" / "settings.local.json", (2_000_000, 2_000_000))
        legacy(old, new, tmp_path / "Zed", tmp_path / "alpha")

        names = [p.display_name for p in discovery.discover()]
        assert names == ["new", "old", "alpha", "Zed"]

    def test_config_file_time_wins_over_directory(self, discovery, tmp_path):
        app = _project(tmp_path, "app", ".mcp.json")
        os.utime(app / ".mcp.json", (1_500_000, 1_500_000))
        assert discovery.refresh(app).last_modified.timestamp() == 1_500_000


class TestScan:
    def test_scan_finds_projects_and_skips(self, discovery, tmp_path):
        root = tmp_path / "code"
        _project(root, "one")
        _project(root / "group", "two")
        _project(root / "a" / "b" / "c", "too-deep")
        _project(root / "node_modules", "pkg")
        _project(root / ".hidden", "secret")

        found = discovery.scan([root])
        assert sorted(p.name for p in found) == ["one", "two"]

    def test_scan_ignores_symlinks(self, discovery, tmp_path):
        real = _project(tmp_path / "elsewhere", "real")
        root = tmp_path / "code"
        root.mkdir()
        (root / "link").symlink_to(real)
        assert discovery.scan([root]) == []

    def test_home_is_not_a_project(self, discovery, home_dir):
        (home_dir / ".claude").mkdir()
        _project(home_dir / "code", "app")
        assert [p.name for p in discovery.scan(["~"])] == ["app"]

    def test_discover_unions_scan_and_known(self, discovery, legacy, tmp_path):
        known = _project(tmp_path, "known")
        legacy(known)
        root = tmp_path / "code"
        _project(root, "scanned")

        assert [p.display_name for p in discovery.discover()] == ["known"]
        names = {p.display_name for p in discovery.discover(scan=True, directories=[root])}
        assert names == {"known", "scanned"}

    def test_missing_scan_directory(self, discovery, tmp_path):
        assert discovery.scan([tmp_path / "nope"]) == []
