import pytest

from .cache import CacheManager, needs_sudo
from .conftest import FakeRunner, failed


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/usr/share/applications", True),
        ("/opt", True),
        ("/usrlocal/thing", False),
        ("/home/u/.local/share/applications", False),
        ("/usr/../home/u", False),
    ],
)
def test_needs_sudo(path, expected):
    assert needs_sudo(path) is expected


class TestCacheManager:
    def test_refresh_runs_both_tools(self, tmp_path):
        apps, hicolor = tmp_path / "applications", tmp_path / "hicolor"
        apps.mkdir()
        hicolor.mkdir()
        runner = FakeRunner(available={"update-desktop-database", "gtk-update-icon-cache"})

        CacheManager(runner).refresh(apps, hicolor)

        assert runner.calls == [
            ["update-desktop-database", str(apps)],
            ["gtk-update-icon-cache", "-f", "-t", str(hicolor)],
        ]

    def test_prefers_gtk4(self):
        runner = FakeRunner(available={"gtk4-update-icon-cache", "gtk-update-icon-cache"})
        assert CacheManager(runner).icon_cache_command() == "gtk4-update-icon-cache"

    def test_missing_dirs_and_tools_are_skipped(self, tmp_path):
        runner = FakeRunner(available={"update-desktop-database"})
        manager = CacheManager(runner)

        manager.refresh(tmp_path / "missing", tmp_path / "missing-too")
        assert runner.calls == []
        assert manager.update_icon_cache(tmp_path) is False

    def test_failures_are_not_fatal(self, tmp_path):
        runner = FakeRunner(
            available={"update-desktop-database"},
            handlers={"update-desktop-database": lambda argv, cwd: failed("boom")},
        )
        assert CacheManager(runner).update_desktop_database(tmp_path) is False
