import json
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from .core.errors import NotFoundError, PersistenceError
from .core.models import (
    ExtractedMeta,
    InstallMethod,
    InstallRecord,
    Metadata,
    PackageType,
    WaylandSupport,
)
from .db import SCHEMA_VERSION, InstallStore

BASE_DATE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_record(install_id="demo-1", name="Demo", days=0, **kwargs):
    return InstallRecord(
        install_id=install_id,
        package_type=kwargs.pop("package_type", PackageType.TARBALL),
        name=name,
        version="1.0.0",
        install_date=BASE_DATE + timedelta(days=days),
        original_file="/tmp/demo.tar.gz",
        install_path="/home/u/.local/share/upkg/apps/demo",
        desktop_file="/home/u/.local/share/applications/demo.desktop",
        **kwargs,
    )


@pytest.fixture
def store(tmp_path):
    with InstallStore(tmp_path / "db" / "installed.db") as store:
        yield store


class TestInstallStore:
    """Tests for the install record store."""

    def test_round_trip(self, store):
        record = make_record(
            metadata=Metadata(
                icon_files=["/icons/hicolor/64x64/apps/demo.png"],
                wrapper_script="/home/u/.local/bin/demo",
                wayland_support=WaylandSupport.NATIVE,
                desktop_files=["/home/u/.local/share/applications/demo.desktop"],
                extracted_meta=ExtractedMeta(categories=["Office"], comment="Demo"),
            )
        )
        store.create(record)

        loaded = store.get("demo-1")
        assert loaded == record
        assert loaded.install_date.tzinfo is not None

    def test_schema_version(self, store):
        assert store.schema_version() == SCHEMA_VERSION

    def test_duplicate_id(self, store):
        store.create(make_record())
        with pytest.raises(PersistenceError):
            store.create(make_record())

    def test_create_replaces_superseded(self, store):
        store.create(make_record("demo-1"))
        store.create(make_record("other-1", name="Other"))

        store.create(make_record("demo-2", days=1), superseded=["demo-1"])

        assert [r.install_id for r in store.list()] == ["demo-2", "other-1"]

    def test_failed_replace_keeps_superseded(self, store):
        store.create(make_record("demo-1"))
        store.create(make_record("other-1", name="Other"))

        with pytest.raises(PersistenceError):
            store.create(make_record("other-1"), superseded=["demo-1"])

        assert store.get("demo-1").install_id == "demo-1"

    def test_find_by_name_newest_first(self, store):
        store.create(make_record("demo-1", days=0))
        store.create(make_record("demo-3", days=2))
        store.create(make_record("demo-2", days=1))
        store.create(make_record("other-1", name="Other"))

        assert [r.install_id for r in store.find_by_name("demo")] == ["demo-3", "demo-2", "demo-1"]
        assert store.find_by_name("missing") == []
        assert len(store.list()) == 4

    def test_update(self, store):
        record = make_record()
        store.create(record)

        record.desktop_file = ""
        record.metadata.add_icon("/icons/demo.svg")
        store.update(record)

        loaded = store.get(record.install_id)
        assert loaded.desktop_file == ""
        assert loaded.metadata.icon_files == ["/icons/demo.svg"]

    def test_update_and_delete_missing(self, store):
        with pytest.raises(NotFoundError):
            store.update(make_record("ghost"))
        with pytest.raises(NotFoundError):
            store.delete("ghost")
        with pytest.raises(NotFoundError):
            store.get("ghost")

    def test_delete(self, store):
        store.create(make_record())
        store.delete("demo-1")
        assert store.list() == []

    def test_legacy_metadata(self, store):
        legacy = {
            "icon_files": [
                {"path": "/icons/a.png", "size": "48x48", "ext": "png"},
                {"path": "/icons/a.png", "size": "48x48", "ext": "png"},
                "/icons/b.svg",
            ],
            "install_method": "pacman",
            "wayland_support": "bogus",
        }
        with sqlite3.connect(store.db_path) as conn:
            conn.execute(
                "INSERT INTO installs VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                ("old-1", "deb", "old", None, BASE_DATE.isoformat(), "/tmp/old.deb",
                 "/usr (managed by pacman: old)", None, json.dumps(legacy)),
            )

        record = store.get("old-1")
        assert record.package_type == PackageType.DEB
        assert record.version == ""
        assert record.metadata.icon_files == ["/icons/a.png", "/icons/b.svg"]
        assert record.metadata.install_method == InstallMethod.PACMAN
        assert record.metadata.wayland_support == WaylandSupport.UNKNOWN

    def test_corrupt_row(self, store):
        with sqlite3.connect(store.db_path) as conn:
            conn.execute(
                "INSERT INTO installs VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                ("bad-1", "floppy", "bad", "", BASE_DATE.isoformat(), "", "", "", "{}"),
            )
        with pytest.raises(PersistenceError):
            store.get("bad-1")
