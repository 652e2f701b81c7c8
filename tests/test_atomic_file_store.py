"""
Tests for the atomic JSON document store
"""

import json
import threading
import unittest
import tempfile
from pathlib import Path
from unittest.mock import patch

from src.modules.atomic_file_store import AtomicFileStore, atomic_write_json


def _default():
    return {"version": 1, "items": []}


def _is_v1(doc):
    return doc.get("version") == 1


class TestAtomicWriteJson(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_creates_parent_directories(self):
        target = self.root / "a" / "b" / "doc.json"
        atomic_write_json(target, {"ok": True})
        self.assertEqual(json.loads(target.read_text()), {"ok": True})

    def test_no_temp_files_left_behind(self):
        target = self.root / "doc.json"
        atomic_write_json(target, {"n": 1})
        atomic_write_json(target, {"n": 2})
        self.assertEqual([p.name for p in self.root.iterdir()], ["doc.json"])
        self.assertEqual(json.loads(target.read_text()), {"n": 2})

    def test_failed_rename_keeps_previous_document(self):
        target = self.root / "doc.json"
        atomic_write_json(target, {"n": 1})

        with patch("src.modules.atomic_file_store.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                atomic_write_json(target, {"n": 2})

        self.assertEqual(json.loads(target.read_text()), {"n": 1})
        self.assertEqual([p.name for p in self.root.iterdir()], ["doc.json"])


class TestAtomicFileStore(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = Path(self.tmp.name) / "store.json"

    def tearDown(self):
        self.tmp.cleanup()

    def _store(self):
        store = AtomicFileStore(self.path, default_factory=_default, validator=_is_v1, name="test")
        self.addCleanup(store.close)
        return store

    def test_missing_file_yields_default(self):
        self.assertEqual(self._store().load(), _default())

    def test_corrupt_file_yields_default(self):
        self.path.write_text("{not json")
        self.assertEqual(self._store().load(), _default())

    def test_version_mismatch_yields_default(self):
        self.path.write_text(json.dumps({"version": 99, "items": ["x"]}))
        self.assertEqual(self._store().load(), _default())

    def test_non_object_document_yields_default(self):
        self.path.write_text(json.dumps(["version", 1]))
        self.assertEqual(self._store().load(), _default())

    def test_mutate_persists_across_instances(self):
        store = self._store()

        def add(doc):
            doc["items"].append("a")
            return doc

        committed = store.mutate(add)
        self.assertEqual(committed["items"], ["a"])
        store.close()

        reopened = self._store()
        self.assertEqual(reopened.load()["items"], ["a"])

    def test_mutator_receives_a_copy(self):
        store = self._store()
        before = store.load()

        def add(doc):
            doc["items"].append("a")
            return doc

        store.mutate(add)
        self.assertEqual(before["items"], [])
        self.assertEqual(store.load()["items"], ["a"])

    def test_concurrent_mutations_all_apply_in_order(self):
        store = self._store()
        barrier = threading.Barrier(8)

        def worker(n):
            barrier.wait()
            for i in range(10):
                store.mutate(lambda doc, v=f"{n}-{i}": {**doc, "items": doc["items"] + [v]})

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        items = store.load()["items"]
        self.assertEqual(len(items), 80)
        for n in range(8):
            own = [v for v in items if v.startswith(f"{n}-")]
            self.assertEqual(own, [f"{n}-{i}" for i in range(10)])
        on_disk = json.loads(self.path.read_text())
        self.assertEqual(on_disk["items"], items)

    def test_failed_write_leaves_cache_unchanged(self):
        store = self._store()
        store.mutate(lambda doc: {**doc, "items": ["kept"]})

        with patch("src.modules.atomic_file_store.atomic_write_json", side_effect=OSError("read-only")):
            with self.assertRaises(OSError):
                store.mutate(lambda doc: {**doc, "items": ["lost"]})

        self.assertEqual(store.load()["items"], ["kept"])
        # The chain keeps working after a failure
        store.mutate(lambda doc: {**doc, "items": doc["items"] + ["next"]})
        self.assertEqual(store.load()["items"], ["kept", "next"])

    def test_mutator_returning_none_is_rejected(self):
        store = self._store()
        with self.assertRaises(ValueError):
            store.mutate(lambda doc: None)
        self.assertFalse(self.path.exists())

    def test_submit_then_flush(self):
        store = self._store()
        future = store.submit(lambda doc: {**doc, "items": ["queued"]})
        store.flush(timeout=5)
        self.assertTrue(future.done())
        self.assertEqual(json.loads(self.path.read_text())["items"], ["queued"])

    def test_submit_after_close_raises(self):
        store = self._store()
        store.close()
        with self.assertRaises(RuntimeError):
            store.submit(lambda doc: doc)


if __name__ == '__main__':
    unittest.main()
