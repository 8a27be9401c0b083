import pytest

from ..core.errors import InvalidInputError
from .naming import (
    clean_app_name,
    extract_rpm_base_name,
    extract_version_from_filename,
    format_display_name,
    generate_install_id,
    normalize_filename,
    strip_package_extension,
)
from .security import (
    is_within_directory,
    validate_environment_variable,
    validate_extract_path,
    validate_package_name,
    validate_symlink,
)


class TestNaming:
    """Tests for application name derivation."""

    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("GitButler_Nightly-0.5.1650-1.x86_64.rpm", "GitButler_Nightly"),
            ("code-1.85.0-1702462241.el7.x86_64.rpm", "code"),
            ("some-tool-2.0-3.noarch.rpm", "some-tool"),
            ("single.rpm", "single"),
        ],
    )
    def test_rpm_base_name(self, filename, expected):
        assert extract_rpm_base_name(filename) == expected

    @pytest.mark.parametrize(
        "base,expected",
        [
            ("Obsidian-1.5.3-x86_64", "Obsidian"),
            ("cursor-0.42.3-linux-x64", "cursor"),
            ("Joplin-2.13.4-beta2", "Joplin"),
            ("my-cool-app", "my-cool-app"),
            ("v2", "v2"),
        ],
    )
    def test_clean_app_name(self, base, expected):
        assert clean_app_name(base) == expected

    def test_strip_extension_longest_first(self):
        assert strip_package_extension("/tmp/App-1.0.tar.gz") == "App-1.0"
        assert strip_package_extension("Thing.AppImage") == "Thing"
        assert strip_package_extension("README") == "README"

    def test_display_name_keeps_acronyms(self):
        assert format_display_name("my_cool-app") == "My Cool App"
        assert format_display_name("sql-ide") == "SQL IDE"

    def test_normalize_filename(self):
        assert normalize_filename("My Cool_App!") == "my-cool-app"

    def test_version_from_filename(self):
        assert extract_version_from_filename("tool-1.2.3-linux.tar.gz") == "1.2.3"
        assert extract_version_from_filename("tool-v2.5.zip") == "2.5"
        assert extract_version_from_filename("tool.tar.gz") == ""

    def test_install_id(self):
        assert generate_install_id("myapp", now=1700000000.5) == "myapp-1700000000"


class TestSecurity:
    """Tests for input validation."""

    @pytest.mark.parametrize("name", ["", "..", "-rf", ".hidden", "a/b", "x" * 256, "a b"])
    def test_rejects_unsafe_names(self, name):
        with pytest.raises(InvalidInputError):
            validate_package_name(name)

    def test_accepts_normal_names(self):
        validate_package_name("my-app_2.0")

    def test_extract_path_rejects_traversal(self, tmp_path):
        with pytest.raises(InvalidInputError):
            validate_extract_path(tmp_path, "../evil")
        with pytest.raises(InvalidInputError):
            validate_extract_path(tmp_path, "/etc/passwd")
        assert validate_extract_path(tmp_path, "a/./b") == tmp_path / "a" / "b"

    def test_symlink_must_stay_inside(self, tmp_path):
        validate_symlink(tmp_path, tmp_path / "bin" / "app", "../lib/app")
        with pytest.raises(InvalidInputError):
            validate_symlink(tmp_path, tmp_path / "bin" / "app", "../../outside")
        with pytest.raises(InvalidInputError):
            validate_symlink(tmp_path, tmp_path / "link", "/usr/bin/env")

    def test_within_directory_is_not_prefix_match(self, tmp_path):
        assert is_within_directory(tmp_path / "a" / "b", tmp_path / "a")
        assert not is_within_directory(tmp_path / "ab", tmp_path / "a")

    def test_environment_variable(self):
        validate_environment_variable("GDK_BACKEND", "wayland")
        with pytest.raises(InvalidInputError):
            validate_environment_variable("lower", "x")
        with pytest.raises(InvalidInputError):
            validate_environment_variable("OK", "a\nb")
