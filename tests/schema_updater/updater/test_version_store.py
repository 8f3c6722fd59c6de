from __future__ import annotations

from pathlib import Path

from schema_updater.updater import InMemoryVersionStore, SqliteVersionStore


def test_sqlite_store_starts_empty(tmp_path: Path) -> None:
    store = SqliteVersionStore(tmp_path / "nested" / "versions.db")

    assert store.get("core") is None
    assert store.all() == {}


def test_sqlite_store_upserts_and_reads_fresh(tmp_path: Path) -> None:
    db_path = tmp_path / "versions.db"
    writer = SqliteVersionStore(db_path)
    reader = SqliteVersionStore(db_path)

    writer.set("core", "2.15.0")
    assert reader.get("core") == "2.15.0"

    writer.set("core", "2.16.0")
    writer.set("Foo", "1.0.0")
    assert reader.get("core") == "2.16.0"
    assert reader.all() == {"Foo": "1.0.0", "core": "2.16.0"}


def test_sqlite_store_delete(tmp_path: Path) -> None:
    store = SqliteVersionStore(tmp_path / "versions.db")
    store.set("Foo", "1.0.0")

    store.delete("Foo")
    store.delete("Bar")

    assert store.get("Foo") is None


def test_in_memory_store() -> None:
    store = InMemoryVersionStore({"core": "1.0.0"})
    store.set("Foo", "0.1.0")

    assert store.get("core") == "1.0.0"
    assert list(store.all()) == ["Foo", "core"]

    store.delete("core")
    assert store.get("core") is None
