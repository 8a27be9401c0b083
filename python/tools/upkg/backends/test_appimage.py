import os

import pytest

from ..conftest import FakeRunner, failed, write_appimage, write_png
from ..core.errors import ExternalToolError
from ..core.models import InstallOptions, PackageType
from ..core.transaction import TransactionManager
from .appimage import AppImageBackend

DESKTOP = (
    "[Desktop Entry]\nType=Application\nName=Demo Studio\nExec=AppRun %U\n"
    "Icon=demo\nCategories=Graphics;\nStartupWMClass=demo\n"
)


def populate_squashfs(root):
    root.mkdir(parents=True)
    (root / "demo.desktop").write_text(DESKTOP)
    write_png(root / "usr" / "share" / "icons" / "hicolor" / "128x128" / "apps" / "demo.png", 128)
    write_png(root / "usr" / "share" / "icons" / "hicolor" / "32x32" / "apps" / "other.png", 32)
    os.symlink("usr/share/icons/hicolor/128x128/apps/demo.png", root / ".DirIcon")


def fake_extract(argv, cwd):
    populate_squashfs(cwd / "squashfs-root")
    return ""


@pytest.fixture
def image(tmp_path):
    return write_appimage(tmp_path / "Demo-1.0-x86_64.AppImage")


def install(backend, path, **opts):
    with TransactionManager() as tx:
        record = backend.install(path, InstallOptions(**opts), tx)
        tx.commit()
    return record


class TestAppImage:
    """Tests for the AppImage backend."""

    def test_detect(self, config, paths, image, tmp_path):
        backend = AppImageBackend(config, paths, runner=FakeRunner())
        assert backend.detect(image)
        plain = tmp_path / "plain"
        plain.write_bytes(b"\x7fELF" + b"\x00" * 60)
        assert not backend.detect(plain)

    def test_install(self, config, paths, image):
        runner = FakeRunner(handlers={image.name: fake_extract})
        backend = AppImageBackend(config, paths, runner=runner)

        record = install(backend, image)

        dest = paths.bin_dir / "demo.appimage"
        assert record.package_type == PackageType.APPIMAGE
        assert record.name == "Demo"
        assert record.install_path == str(dest)
        assert dest.stat().st_mode & 0o777 == 0o755
        assert runner.calls[0] == [str(image.resolve()), "--appimage-extract"]

        assert record.metadata.icon_files == [
            str(paths.hicolor_dir / "128x128" / "apps" / "demo.png")
        ]
        assert record.metadata.original_desktop_file == "demo.desktop"
        assert record.metadata.extracted_meta.startup_wm_class == "demo"

        text = (paths.apps_dir / "demo.desktop").read_text()
        assert f"{dest} %U" in text
        assert "Name=Demo Studio" in text

    def test_icon_name_from_diricon(self, tmp_path):
        populate_squashfs(tmp_path / "root")
        assert AppImageBackend.icon_theme_name(tmp_path / "root", None) == "demo"

    def test_unsquashfs_fallback(self, config, paths, image):
        def unsquashfs(argv, cwd):
            populate_squashfs(cwd / argv[argv.index("-d") + 1])
            return ""

        runner = FakeRunner(
            available={"unsquashfs"},
            handlers={image.name: lambda argv, cwd: failed("no FUSE"), "unsquashfs": unsquashfs},
        )
        backend = AppImageBackend(config, paths, runner=runner)

        record = install(backend, image)
        assert runner.called("unsquashfs")
        assert record.name == "Demo"

    def test_extract_failure_without_fallback(self, config, paths, image):
        runner = FakeRunner(handlers={image.name: lambda argv, cwd: failed("broken")})
        backend = AppImageBackend(config, paths, runner=runner)

        with pytest.raises(ExternalToolError):
            install(backend, image)
        assert not paths.bin_dir.exists()

    def test_no_sandbox_for_electron(self, paths, image):
        from ..config import Config, DesktopConfig

        def electron_extract(argv, cwd):
            fake_extract(argv, cwd)
            resources = cwd / "squashfs-root" / "resources"
            resources.mkdir()
            (resources / "app.asar").write_bytes(b"")
            return ""

        config = Config(desktop=DesktopConfig(electron_disable_sandbox=True))
        runner = FakeRunner(handlers={image.name: electron_extract})
        install(AppImageBackend(config, paths, runner=runner), image)

        assert "demo.appimage --no-sandbox %U" in (paths.apps_dir / "demo.desktop").read_text()

    def test_uninstall(self, config, paths, image):
        runner = FakeRunner(handlers={image.name: fake_extract})
        backend = AppImageBackend(config, paths, runner=runner)
        record = install(backend, image)

        backend.uninstall(record)
        backend.uninstall(record)
        assert not (paths.bin_dir / "demo.appimage").exists()
        assert not (paths.apps_dir / "demo.desktop").exists()
