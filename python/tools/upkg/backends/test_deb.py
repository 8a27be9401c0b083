from pathlib import Path

import pytest

from ..conftest import FakeRunner, write_elf
from ..core.errors import NoInstallationMethodError, UpkgError
from ..core.models import InstallMethod, InstallOptions, PackageType
from ..core.transaction import TransactionManager
from . import debtap as debtap_module
from .deb import DebBackend

PKGINFO = "pkgname = hello\npkgver = 1.0-1\ndepend = c>=2.17\ndepend = gtk3\n"


@pytest.fixture
def deb_file(tmp_path):
    path = tmp_path / "hello_1.0_amd64.deb"
    path.write_bytes(b"!<arch>\ndebian-binary   " + b"\x00" * 64)
    return path


def dpkg_deb(argv, cwd):
    if argv[1] == "--field":
        return "hello-world\n"
    if argv[1] == "-x":
        root = Path(argv[3])
        write_elf(root / "usr" / "bin" / "hello")
        apps = root / "usr" / "share" / "applications"
        apps.mkdir(parents=True)
        (apps / "hello.desktop").write_text(
            "[Desktop Entry]\nType=Application\nName=Hello\nExec=hello\nCategories=Utility;\n"
        )
    return ""


def install(backend, path, runner, **opts):
    with TransactionManager(runner=runner) as tx:
        record = backend.install(path, InstallOptions(**opts), tx)
        tx.commit()
    return record


class TestDebExtract:
    def test_install(self, config, paths, deb_file):
        runner = FakeRunner(available={"dpkg-deb"}, handlers={"dpkg-deb": dpkg_deb})
        backend = DebBackend(config, paths, runner=runner)

        record = install(backend, deb_file, runner)

        install_dir = paths.upkg_apps_dir / "hello-world"
        assert record.package_type == PackageType.DEB
        assert record.name == "hello-world"
        assert record.version == "1.0"
        assert record.install_path == str(install_dir)
        assert (install_dir / "usr" / "bin" / "hello").exists()
        assert "Name=Hello" in (paths.apps_dir / "hello-world.desktop").read_text()
        assert runner.calls[0][:2] == ["dpkg-deb", "--field"]

    def test_no_method(self, config, paths, deb_file):
        backend = DebBackend(config, paths, runner=FakeRunner())
        with pytest.raises(NoInstallationMethodError):
            install(backend, deb_file, None)


class TestDebDebtap:
    """Tests for converting DEBs with debtap and installing them with pacman."""

    @pytest.fixture
    def runner(self):
        def debtap(argv, cwd):
            (cwd / "hello-1.0-1-x86_64.pkg.tar.zst").write_bytes(b"pkg")
            return ""

        def bsdtar(argv, cwd):
            if argv[1] == "-xf":
                Path(argv[argv.index("-C") + 1], ".PKGINFO").write_text(PKGINFO)
            elif argv[1] == "-xOf":
                return PKGINFO
            return ""

        def pacman(argv, cwd):
            if "-Qi" in argv:
                return "Name    : hello\nVersion : 1.0-1\n"
            if "-Ql" in argv:
                return "hello /usr/bin/hello\n"
            return ""

        return FakeRunner(
            available={"debtap", "pacman", "bsdtar"},
            handlers={"debtap": debtap, "bsdtar": bsdtar, "pacman": pacman},
        )

    def test_not_initialized(self, config, paths, deb_file, runner, monkeypatch):
        monkeypatch.setattr(debtap_module, "is_debtap_initialized", lambda: False)
        backend = DebBackend(config, paths, runner=runner)

        with pytest.raises(UpkgError) as exc:
            install(backend, deb_file, runner)
        assert "sudo debtap -u" in exc.value.hint
        assert not runner.called("debtap")

    def test_install_repairs_and_uses_pkginfo(self, config, paths, deb_file, runner, monkeypatch):
        monkeypatch.setattr(debtap_module, "is_debtap_initialized", lambda: True)
        backend = DebBackend(config, paths, runner=runner)

        record = install(backend, deb_file, runner, skip_wayland_env=True)

        assert record.name == "hello"
        assert record.version == "1.0-1"
        assert record.metadata.install_method == InstallMethod.PACMAN
        assert record.install_path == "/usr (managed by pacman: hello)"
        assert any("--zstd" in call for call in runner.called("bsdtar"))

        backend.uninstall(record)
        assert runner.calls[-1] == ["pacman", "-R", "--noconfirm", "hello"]

    def test_uninstall_of_removed_package(self, config, paths, deb_file, runner, monkeypatch):
        monkeypatch.setattr(debtap_module, "is_debtap_initialized", lambda: True)
        backend = DebBackend(config, paths, runner=runner)
        record = install(backend, deb_file, runner, skip_wayland_env=True)

        runner.handlers["pacman"] = lambda argv, cwd: {
            "success": False,
            "stdout": "",
            "stderr": "error: package 'hello' was not found",
            "command": argv,
            "return_code": 1,
        }
        backend.uninstall(record)
        assert not [c for c in runner.called("pacman") if "-R" in c]

    def test_patches_packaged_desktop_files(self, config, paths, deb_file, runner, monkeypatch, tmp_path):
        monkeypatch.setattr(debtap_module, "is_debtap_initialized", lambda: True)
        desktop = tmp_path / "system" / "hello.desktop"
        desktop.parent.mkdir()
        desktop.write_text("[Desktop Entry]\nType=Application\nName=Hello\nExec=hello %U\n")
        listing = f"hello /usr/bin/hello\nhello {desktop}\n"
        query = runner.handlers["pacman"]
        runner.handlers["pacman"] = lambda argv, cwd: listing if "-Ql" in argv else query(argv, cwd)
        backend = DebBackend(config, paths, runner=runner)

        record = install(backend, deb_file, runner)

        assert record.metadata.desktop_files == [str(desktop)]
        assert record.desktop_file == str(desktop)
        moves = runner.called("mv")
        assert len(moves) == 1
        assert moves[0][-1] == str(desktop)
        assert "GDK_BACKEND" in Path(moves[0][1]).read_text()
        Path(moves[0][1]).unlink()
