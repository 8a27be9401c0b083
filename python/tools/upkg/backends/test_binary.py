import pytest

from ..conftest import write_elf
from ..core.errors import AlreadyInstalledError, NotFoundError
from ..core.models import InstallOptions, PackageType
from ..core.transaction import TransactionManager
from .binary import GENERIC_ICON, BinaryBackend


@pytest.fixture
def backend(config, paths, runner):
    return BinaryBackend(config, paths, runner=runner)


def install(backend, path, **opts):
    with TransactionManager() as tx:
        record = backend.install(path, InstallOptions(**opts), tx)
        tx.commit()
    return record


class TestBinary:
    def test_install(self, backend, paths, tmp_path):
        src = write_elf(tmp_path / "mytool", mode=0o644)

        record = install(backend, src)

        dest = paths.bin_dir / "mytool"
        assert record.package_type == PackageType.BINARY
        assert record.name == "mytool"
        assert record.install_path == str(dest)
        assert dest.stat().st_mode & 0o777 == 0o755

        text = (paths.apps_dir / "mytool.desktop").read_text()
        assert f"Icon={GENERIC_ICON}" in text
        assert "Name=Mytool" in text
        assert str(dest) in text

    def test_missing_source(self, backend, tmp_path):
        with pytest.raises(NotFoundError):
            install(backend, tmp_path / "nope")

    def test_already_installed(self, backend, tmp_path):
        src = write_elf(tmp_path / "mytool")
        install(backend, src)
        with pytest.raises(AlreadyInstalledError):
            install(backend, src)
        install(backend, src, force=True)

    def test_uninstall(self, backend, paths, tmp_path):
        record = install(backend, write_elf(tmp_path / "mytool"))
        backend.uninstall(record)
        assert not (paths.bin_dir / "mytool").exists()
        assert not (paths.apps_dir / "mytool.desktop").exists()
