import pytest

from .errors import AlreadyInstalledError
from .locking import install_lock


class TestInstallLock:
    """Tests for the per-name install lock."""

    def test_same_name_is_refused(self, tmp_path):
        with install_lock(tmp_path / "locks", "demo") as lock_path:
            assert lock_path == tmp_path / "locks" / "demo.lock"
            with pytest.raises(AlreadyInstalledError, match="installation in progress"):
                with install_lock(tmp_path / "locks", "demo"):
                    pass

    def test_other_names_and_release(self, tmp_path):
        with install_lock(tmp_path, "demo"):
            with install_lock(tmp_path, "other"):
                pass
        with install_lock(tmp_path, "demo"):
            pass
