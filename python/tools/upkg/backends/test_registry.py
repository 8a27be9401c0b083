import pytest

from ..conftest import write_appimage, write_elf
from ..core.errors import NoBackendError, NotFoundError
from ..core.models import PackageType
from .appimage import AppImageBackend
from .binary import BinaryBackend
from .registry import BACKEND_ORDER, BackendRegistry


@pytest.fixture
def registry(config, paths, runner):
    return BackendRegistry(config, paths, runner=runner)


class TestDetection:
    """Tests for fixed-priority backend detection."""

    def test_order(self, registry):
        assert registry.list_backends() == ["deb", "rpm", "appimage", "binary", "tarball"]
        assert [t for t, _ in BACKEND_ORDER] == [
            PackageType.DEB,
            PackageType.RPM,
            PackageType.APPIMAGE,
            PackageType.BINARY,
            PackageType.TARBALL,
        ]

    @pytest.mark.parametrize(
        "name,content,expected",
        [
            ("pkg.deb", b"!<arch>\ndebian-binary", "deb"),
            ("pkg.rpm", b"\xed\xab\xee\xdb", "rpm"),
            ("pkg.tar.gz", b"\x1f\x8b\x08\x00", "tarball"),
            ("pkg.tar.xz", b"\xfd7zXZ\x00", "tarball"),
            ("pkg.zip", b"PK\x03\x04", "tarball"),
            ("download", b"\x1f\x8b\x08\x00", "tarball"),
            ("download", b"\xfd7zXZ\x00", "tarball"),
            ("download", b"BZh91AY&SY", "tarball"),
            ("download", b"PK\x03\x04", "tarball"),
            ("download", b"\x00" * 257 + b"ustar\x0000", "tarball"),
        ],
    )
    def test_formats(self, registry, tmp_path, name, content, expected):
        path = tmp_path / name
        path.write_bytes(content)
        assert registry.detect_backend(path).name == expected

    def test_squashfs_elf_is_appimage_not_binary(self, registry, tmp_path):
        path = write_appimage(tmp_path / "tool")
        assert isinstance(registry.detect_backend(path), AppImageBackend)

    def test_plain_elf_is_binary(self, registry, tmp_path):
        path = write_elf(tmp_path / "tool")
        assert isinstance(registry.detect_backend(path), BinaryBackend)

    def test_failing_backend_is_skipped(self, registry, tmp_path, monkeypatch):
        def explode(self, path):
            raise OSError("cannot read")

        monkeypatch.setattr(AppImageBackend, "detect", explode)
        path = write_elf(tmp_path / "tool")
        assert isinstance(registry.detect_backend(path), BinaryBackend)


class TestDiagnostics:
    """Tests for the error raised when nothing matches."""

    def test_text_file(self, registry, tmp_path):
        path = tmp_path / "notes"
        path.write_text("just some notes\n")

        with pytest.raises(NoBackendError) as exc_info:
            registry.detect_backend(path)

        err = exc_info.value
        assert err.detected_type == "text"
        assert "Detected file type: text" in err.message
        assert "Shell scripts and text files are not supported" in err.message
        assert "tarball (.tar.gz)" in err.hint
        assert isinstance(err, NotFoundError)

    def test_shell_script(self, registry, tmp_path):
        path = tmp_path / "install.sh"
        path.write_text("#!/bin/sh\necho hi\n")

        with pytest.raises(NoBackendError) as exc_info:
            registry.detect_backend(path)
        assert exc_info.value.detected_type == "shell script"
        assert "tarball" in exc_info.value.hint

    def test_snap_hint(self, registry, tmp_path):
        path = tmp_path / "app.snap"
        path.write_bytes(b"\x00\x01\x02\x03")

        with pytest.raises(NoBackendError) as exc_info:
            registry.detect_backend(path)
        assert "snap install" in exc_info.value.hint


class TestLookup:
    """Tests for lookup by name."""

    def test_zip_maps_to_tarball(self, registry):
        assert registry.get_backend("zip").name == "tarball"

    def test_unknown(self, registry):
        with pytest.raises(NotFoundError):
            registry.get_backend("flatpak")
