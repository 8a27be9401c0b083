import pytest

from ..conftest import FakeRunner
from ..core.errors import ExternalToolError, UpkgError
from .debtap import (
    DEBTAP_CACHE_FILES,
    convert,
    fix_dependency_line,
    fix_pkginfo,
    is_debtap_initialized,
    read_pkginfo,
)


class TestDependencyRepair:
    """Tests for .PKGINFO dependency repair."""

    @pytest.mark.parametrize(
        "line,expected",
        [
            ("depend = c>=2.17", "depend = glibc>=2.17"),
            ("depend = c=2.35", "depend = glibc=2.35"),
            ("depend = libx111.4.99.1", "depend = libx11>=1.4.99.1"),
            ("depend = nspr4.35", "depend = nspr>=4.35"),
            ("depend = gtk3", "depend = gtk3"),
            ("depend = curl>=7.0", "depend = curl>=7.0"),
            ("pkgname = demo", "pkgname = demo"),
            ("depend = anaconda>=1", None),
            ("depend = cura-bin", None),
        ],
    )
    def test_fix_dependency_line(self, line, expected):
        assert fix_dependency_line(line) == expected

    def test_fix_pkginfo(self):
        content = "pkgname = demo\ndepend = c>=2.17\ndepend = apparmor.d-git\ndepend = gtk3\n"
        assert fix_pkginfo(content) == "pkgname = demo\ndepend = glibc>=2.17\ndepend = gtk3\n"

    def test_fix_pkginfo_unchanged(self):
        assert fix_pkginfo("pkgname = demo\ndepend = gtk3\n") is None


class TestDebtapTooling:
    def test_initialized_needs_two_cache_files(self, tmp_path):
        assert not is_debtap_initialized(tmp_path / "missing")
        (tmp_path / DEBTAP_CACHE_FILES[0]).write_text("x")
        assert not is_debtap_initialized(tmp_path)
        (tmp_path / DEBTAP_CACHE_FILES[2]).write_text("x")
        assert is_debtap_initialized(tmp_path)

    def test_convert_without_output(self, tmp_path):
        with pytest.raises(UpkgError, match="no arch package"):
            convert(FakeRunner(), tmp_path / "demo.deb", tmp_path)

    def test_convert_returns_package(self, tmp_path):
        def debtap(argv, cwd):
            (cwd / "demo-1-1-x86_64.pkg.tar.zst").write_bytes(b"")
            return ""

        runner = FakeRunner(handlers={"debtap": debtap})
        pkg = convert(runner, tmp_path / "demo.deb", tmp_path)
        assert pkg.name == "demo-1-1-x86_64.pkg.tar.zst"
        assert runner.calls[0][:3] == ["debtap", "-q", "-Q"]

    def test_read_pkginfo(self, tmp_path):
        runner = FakeRunner(handlers={"bsdtar": lambda argv, cwd: "pkgname = demo\npkgver = 2.0-1\n"})
        info = read_pkginfo(runner, tmp_path / "demo.pkg.tar.zst")
        assert (info.name, info.version) == ("demo", "2.0-1")

    def test_read_pkginfo_without_name(self, tmp_path):
        runner = FakeRunner(handlers={"bsdtar": lambda argv, cwd: "pkgver = 2.0-1\n"})
        with pytest.raises(ExternalToolError):
            read_pkginfo(runner, tmp_path / "demo.pkg.tar.zst")
