import tempfile
from pathlib import Path

import pytest

from nexus_agent.domain.exceptions import BusinessError
from nexus_agent.infrastructure.storage.memory_store import InMemoryStore, JsonMemoryStore


def test_in_memory_store_roundtrip():
    store = InMemoryStore()
    assert len(store) == 0
    store.write_memory("user_name", "Asha")
    assert store.read_memory("user_name") == "Asha"
    assert store.read_memory("missing") is None
    store.clear()
    assert store.items() == {}


def test_json_memory_store_persists_between_instances():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d) / ".storage"
        store = JsonMemoryStore(root=root)
        store.write_memory("favorite_color", "teal")
        store.write_memory("city", "Pune")
        reopened = JsonMemoryStore(root=root)
        assert reopened.read_memory("favorite_color") == "teal"
        assert reopened.items() == {"favorite_color": "teal", "city": "Pune"}
        assert len(reopened) == 2


def test_json_memory_store_last_write_wins_and_clear():
    with tempfile.TemporaryDirectory() as d:
        store = JsonMemoryStore(root=d)
        store.write_memory("k", "v1")
        JsonMemoryStore(root=d).write_memory("k", "v2")
        assert store.read_memory("k") == "v2"
        store.clear()
        assert len(store) == 0
        assert not store.path.exists()


def test_json_memory_store_corrupt_file():
    with tempfile.TemporaryDirectory() as d:
        store = JsonMemoryStore(root=d)
        store.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(BusinessError) as exc:
            store.read_memory("k")
        assert exc.value.code == "STORE_READ_ERROR"
