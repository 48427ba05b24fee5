import pytest

from alchemy.storage.kv_store import (
    JsonFileBackend,
    MemoryBackend,
    PersistenceFailure,
    SqliteBackend,
    open_backend,
)


@pytest.fixture(params=["memory", "json", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        b = MemoryBackend()
    elif request.param == "json":
        b = JsonFileBackend(str(tmp_path / "slots.json"))
    else:
        b = SqliteBackend(str(tmp_path / "slots.db"))
    yield b
    b.close()


def test_absent_slot_reads_none(backend):
    assert backend.read("alchemy_inventory") is None


def test_write_then_read_and_overwrite(backend):
    backend.write("alchemy_inventory", '[{"name": "Water", "glyph": "💧"}]')
    backend.write("alchemy_recipes", "[]")
    backend.write("alchemy_inventory", "[]")
    assert backend.read("alchemy_inventory") == "[]"
    assert backend.read("alchemy_recipes") == "[]"


def test_delete_is_idempotent(backend):
    backend.write("alchemy_recipes", "[]")
    backend.delete("alchemy_recipes")
    backend.delete("alchemy_recipes")
    assert backend.read("alchemy_recipes") is None


def test_sqlite_survives_reopen(tmp_path):
    path = str(tmp_path / "nested" / "discoveries.db")
    first = SqliteBackend(path)
    first.write("alchemy_inventory", '["x"]')
    first.close()

    second = SqliteBackend(path)
    assert second.read("alchemy_inventory") == '["x"]'
    second.close()


def test_json_file_with_garbage_raises_persistence_failure(tmp_path):
    path = tmp_path / "slots.json"
    path.write_text("[1, 2", encoding="utf-8")
    with pytest.raises(PersistenceFailure):
        JsonFileBackend(str(path)).read("alchemy_inventory")


def test_open_backend_by_suffix(tmp_path):
    assert isinstance(open_backend(), MemoryBackend)
    assert isinstance(open_backend(str(tmp_path / "a.json")), JsonFileBackend)
    db = open_backend(str(tmp_path / "a.db"))
    assert isinstance(db, SqliteBackend)
    db.close()
    lite = open_backend(str(tmp_path / "a.sqlite"))
    assert isinstance(lite, SqliteBackend)
    lite.close()
