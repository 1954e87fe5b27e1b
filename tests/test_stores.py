"""
Unit tests for config stores, the TTL cache and the record stores.
"""

from app.models.schemas import ConsolidatedRecord, ReceiptRecord
from app.services.stores import (
    CachedConfigStore,
    ConsolidatedStore,
    InMemoryConfigStore,
    JsonFileConfigStore,
    ReceiptStore,
    TTLCache,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestTTLCache:
    """Test expiry and invalidation with an injected clock."""

    def test_expiry(self):
        clock = FakeClock()
        cache = TTLCache(ttl=10, clock=clock)
        cache.put("a", 1)
        clock.now = 9.9
        assert cache.get("a") == 1
        clock.now = 10.0
        assert cache.get("a") is None
        assert "a" not in cache

    def test_none_is_a_cached_value(self):
        cache = TTLCache(ttl=10, clock=FakeClock())
        cache.put("a", None)
        assert "a" in cache

    def test_invalidate(self):
        cache = TTLCache(ttl=10, clock=FakeClock())
        cache.put("field_markers_LIME", 1)
        cache.put("field_markers_TYSA", 2)
        cache.put("ocr_replacements_LIME", 3)
        cache.invalidate("field_markers_LIME")
        assert "field_markers_LIME" not in cache
        cache.invalidate_prefix("field_markers_")
        assert "field_markers_TYSA" not in cache
        assert cache.get("ocr_replacements_LIME") == 3
        cache.clear()
        assert "ocr_replacements_LIME" not in cache


class TestConfigStores:
    """Test the key -> JSON stores."""

    def test_in_memory_returns_copies(self):
        store = InMemoryConfigStore({"k": {"rules": []}})
        value = store.get("k")
        value["rules"].append("x")
        assert store.get("k") == {"rules": []}
        store.delete("k")
        assert store.get("k") is None

    def test_json_file(self, tmp_path):
        path = tmp_path / "config.json"
        store = JsonFileConfigStore(path)
        assert store.get("missing") is None
        store.set("field_markers_LIME", {"fields": [{"fieldName": "NOMBRE"}]})
        assert JsonFileConfigStore(path).get("field_markers_LIME")["fields"][0]["fieldName"] == "NOMBRE"
        store.delete("field_markers_LIME")
        assert store.get("field_markers_LIME") is None

    def test_cached_store_reads_through_and_invalidates(self):
        clock = FakeClock()
        inner = InMemoryConfigStore({"k": 1})
        store = CachedConfigStore(inner, TTLCache(ttl=60, clock=clock))
        assert store.get("k") == 1

        inner.set("k", 2)
        assert store.get("k") == 1
        clock.now = 61
        assert store.get("k") == 2

        store.set("k", 3)
        assert store.get("k") == 3
        store.delete("k")
        assert store.get("k") is None


class TestReceiptStore:
    def test_hash_dedup(self):
        store = ReceiptStore()
        rec = ReceiptRecord(legajo="38", periodo="07/2025", filename="a.pdf", hashes=["h1"])
        assert store.add(rec)
        assert store.has_hash("h1")
        assert not store.add(rec.model_copy(update={"filename": "b.pdf"}))
        assert len(store) == 1
        assert [r.filename for r in store.by_key("38", "07/2025")] == ["a.pdf"]
        assert store.by_key("39", "07/2025") == []


class TestConsolidatedStore:
    def test_copies_and_purge(self):
        store = ConsolidatedStore()
        store.upsert(ConsolidatedRecord(key="38||07/2025", legajo="38", periodo="07/2025", data={"20595": "1.00"}))
        store.upsert(ConsolidatedRecord(key="12||07/2025", legajo="12", periodo="07/2025"))

        rec = store.get_by_key("38||07/2025")
        rec.data["20595"] = "999"
        assert store.get_by_key("38||07/2025").data["20595"] == "1.00"
        assert [r.key for r in store.all()] == ["12||07/2025", "38||07/2025"]

        assert store.purge("38||07/2025") == 1
        assert store.purge("38||07/2025") == 0
        assert store.purge() == 1
        assert len(store) == 0

    def test_purge_drops_key_locks(self):
        store = ConsolidatedStore()
        for legajo in ("38", "12"):
            key = f"{legajo}||07/2025"
            with store.locked(key):
                store.upsert(ConsolidatedRecord(key=key, legajo=legajo, periodo="07/2025"))
        assert set(store._key_locks) == {"38||07/2025", "12||07/2025"}

        store.purge("38||07/2025")
        assert set(store._key_locks) == {"12||07/2025"}
        store.purge()
        assert store._key_locks == {}

    def test_purge_keeps_a_held_lock(self):
        store = ConsolidatedStore()
        with store.locked("38||07/2025"):
            store.purge("38||07/2025")
            assert "38||07/2025" in store._key_locks
