from pathlib import Path

import pytest

from ..conftest import FakeRunner, write_elf
from ..core.errors import NoInstallationMethodError
from ..core.models import InstallMethod, InstallOptions, PackageType
from ..core.transaction import TransactionManager
from ..helpers.detection import RPM_MAGIC
from .base import InstallContext
from .rpm import RpmBackend

RPM_NAME = "GitButler_Nightly-0.5.1650-1.x86_64.rpm"


@pytest.fixture
def rpm_file(tmp_path):
    path = tmp_path / RPM_NAME
    path.write_bytes(RPM_MAGIC + b"\x00" * 92)
    return path


def rpmextract(argv, cwd):
    write_elf(cwd / "usr" / "bin" / "gitbutler-tauri")
    apps = cwd / "usr" / "share" / "applications"
    apps.mkdir(parents=True)
    (apps / "gitbutler.desktop").write_text(
        "[Desktop Entry]\nType=Application\nName=GitButler\nExec=gitbutler-tauri\n"
        "Icon=gitbutler\nCategories=Development;\n"
    )
    return ""


def debtap(argv, cwd):
    (cwd / "gitbutler-nightly-0.5.1650-1-x86_64.pkg.tar.zst").write_bytes(b"pkg")
    return ""


def pacman(argv, cwd):
    if "-Qi" in argv:
        return "Name            : gitbutler-nightly\nVersion         : 0.5.1650-1\n"
    if "-Ql" in argv:
        return (
            "gitbutler-nightly /usr/bin/gitbutler-tauri\n"
            "gitbutler-nightly /usr/share/applications/gitbutler.desktop\n"
            "gitbutler-nightly /usr/share/icons/hicolor/128x128/apps/gitbutler.png\n"
        )
    return ""


class TestRpmNaming:
    def test_fallback_name_without_rpm_tool(self, config, paths, tmp_path):
        backend = RpmBackend(config, paths, runner=FakeRunner())
        ctx = InstallContext(
            source=Path(RPM_NAME), opts=InstallOptions(), tx=None, work_dir=tmp_path
        )
        assert backend.resolve_name(ctx) == "GitButler_Nightly"

    def test_name_from_rpm_header(self, config, paths, tmp_path):
        runner = FakeRunner(available={"rpm"}, handlers={"rpm": lambda argv, cwd: "gitbutler\n"})
        backend = RpmBackend(config, paths, runner=runner)
        ctx = InstallContext(
            source=Path(RPM_NAME), opts=InstallOptions(), tx=None, work_dir=tmp_path
        )
        assert backend.resolve_name(ctx) == "gitbutler"


class TestRpmExtract:
    def test_install(self, config, paths, rpm_file):
        runner = FakeRunner(available={"rpmextract.sh"}, handlers={"rpmextract.sh": rpmextract})
        backend = RpmBackend(config, paths, runner=runner)

        with TransactionManager(runner=runner) as tx:
            record = backend.install(rpm_file, InstallOptions(), tx)
            tx.commit()

        install_dir = paths.upkg_apps_dir / "gitbutler-nightly"
        assert record.package_type == PackageType.RPM
        assert record.name == "gitbutler-nightly"
        assert record.install_path == str(install_dir)
        assert record.metadata.install_method == InstallMethod.LOCAL
        assert record.metadata.extracted_meta.categories == ["Development"]
        assert (install_dir / "usr" / "bin" / "gitbutler-tauri").exists()
        assert str(install_dir / "usr" / "bin" / "gitbutler-tauri") in (
            paths.bin_dir / "gitbutler-nightly"
        ).read_text()
        assert (paths.apps_dir / "gitbutler-nightly.desktop").exists()

    def test_no_method(self, config, paths, rpm_file):
        backend = RpmBackend(config, paths, runner=FakeRunner())
        with pytest.raises(NoInstallationMethodError) as exc:
            with TransactionManager() as tx:
                backend.install(rpm_file, InstallOptions(), tx)
        assert exc.value.alternatives == ["rpmextract.sh", "debtap"]


class TestRpmDebtap:
    """Tests for the debtap conversion path."""

    @pytest.fixture
    def runner(self):
        return FakeRunner(
            available={"debtap", "pacman"},
            handlers={"debtap": debtap, "pacman": pacman},
        )

    def test_install_through_pacman(self, config, paths, rpm_file, runner):
        backend = RpmBackend(config, paths, runner=runner)

        with TransactionManager(runner=runner) as tx:
            record = backend.install(rpm_file, InstallOptions(), tx)
            tx.commit()

        assert record.metadata.install_method == InstallMethod.PACMAN
        assert record.install_path == "/usr (managed by pacman: gitbutler-nightly)"
        assert record.version == "0.5.1650-1"
        assert record.desktop_file == "/usr/share/applications/gitbutler.desktop"
        assert record.metadata.icon_files == [
            "/usr/share/icons/hicolor/128x128/apps/gitbutler.png"
        ]
        install = runner.called("pacman")[0]
        assert install[:3] == ["pacman", "-U", "--noconfirm"]
        assert install[-1].endswith(".pkg.tar.zst")

    def test_rollback_removes_pacman_package(self, config, paths, rpm_file, runner):
        backend = RpmBackend(config, paths, runner=runner)

        with pytest.raises(RuntimeError):
            with TransactionManager(runner=runner) as tx:
                backend.install(rpm_file, InstallOptions(), tx)
                raise RuntimeError("database write failed")

        assert runner.calls[-1] == ["pacman", "-R", "--noconfirm", "gitbutler-nightly"]

    def test_uninstall(self, config, paths, rpm_file, runner):
        backend = RpmBackend(config, paths, runner=runner)
        with TransactionManager(runner=runner) as tx:
            record = backend.install(rpm_file, InstallOptions(), tx)
            tx.commit()

        backend.uninstall(record)
        assert ["pacman", "-R", "--noconfirm", "gitbutler-nightly"] in runner.calls
