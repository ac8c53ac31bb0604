"""
Tests for whole-document JSON persistence.
"""
import gc
import json
import tempfile
from pathlib import Path

from django.test import SimpleTestCase

from main.infra.json_store import (
    InMemoryDocumentStore,
    JsonDocumentStore,
    PersistenceError,
    StaleDocumentError,
)
from main.infra.locks import _locks, document_lock


class JsonDocumentStoreTest(SimpleTestCase):

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.path = Path(tmp.name) / "coins.json"
        self.store = JsonDocumentStore(self.path, lambda: {"customers": {}})

    def test_missing_file_is_default_document(self):
        stored = self.store.load()
        self.assertEqual(stored.data, {"customers": {}})
        self.assertEqual(stored.version, 0)
        self.assertFalse(self.path.exists())

    def test_save_and_load(self):
        version = self.store.save({"customers": {"c1": {"balance": 5}}}, expected_version=0)
        self.assertEqual(version, 1)

        stored = self.store.load()
        self.assertEqual(stored.data, {"customers": {"c1": {"balance": 5}}})
        self.assertEqual(stored.version, 1)

    def test_stale_version_is_rejected(self):
        self.store.save({"customers": {}}, expected_version=0)
        with self.assertRaises(StaleDocumentError) as context:
            self.store.save({"customers": {"c1": {}}}, expected_version=0)
        self.assertEqual(context.exception.expected, 0)
        self.assertEqual(context.exception.actual, 1)
        self.assertEqual(self.store.load().data, {"customers": {}})

    def test_no_temporary_files_left_behind(self):
        self.store.save({"customers": {}}, expected_version=0)
        self.assertEqual([p.name for p in self.path.parent.iterdir()], ["coins.json"])

    def test_invalid_json_raises_persistence_error(self):
        self.path.write_text("{not json")
        with self.assertRaises(PersistenceError):
            self.store.load()

    def test_non_object_document_raises_persistence_error(self):
        self.path.write_text(json.dumps([1, 2, 3]))
        with self.assertRaises(PersistenceError):
            self.store.load()

    def test_file_written_by_hand_loads_at_version_zero(self):
        self.path.write_text(json.dumps({"customers": {"c1": {}}}))
        stored = self.store.load()
        self.assertEqual(stored.version, 0)
        self.assertEqual(self.store.save(stored.data, stored.version), 1)


class InMemoryDocumentStoreTest(SimpleTestCase):

    def test_load_returns_a_copy(self):
        store = InMemoryDocumentStore({"items": [1]})
        store.load().data["items"].append(2)
        self.assertEqual(store.load().data, {"items": [1]})

    def test_stale_version_is_rejected(self):
        store = InMemoryDocumentStore()
        store.save({"a": 1}, 0)
        with self.assertRaises(StaleDocumentError):
            store.save({"a": 2}, 0)
        self.assertEqual(store.saves, 1)


class DocumentLockTest(SimpleTestCase):

    def test_same_path_shares_one_lock_key(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        first = JsonDocumentStore(Path(tmp.name) / "coins.json")
        second = JsonDocumentStore(Path(tmp.name) / "." / "coins.json")
        self.assertEqual(first.lock_key, second.lock_key)
        self.assertNotEqual(InMemoryDocumentStore().lock_key, InMemoryDocumentStore().lock_key)

    def test_released_locks_are_forgotten(self):
        keys = [f"document-{index}" for index in range(50)]
        for key in keys:
            with document_lock(key):
                self.assertIn(key, _locks)
        gc.collect()
        self.assertFalse(any(key in _locks for key in keys))
