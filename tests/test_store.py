import asyncio
import sqlite3
import tempfile
import unittest
from pathlib import Path

from isrc_meta.models import PersistenceError
from isrc_meta.store import MemoryRegistryStore, SqliteRegistryStore


class TestSqliteRegistryStore(unittest.IsolatedAsyncioTestCase):
    async def test_round_trips_records(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SqliteRegistryStore(Path(tmpdir) / "nested" / "registry.sqlite3")
            try:
                self.assertIsNone(await store.load("isrc_registry"))
                await store.save("isrc_registry", {"year": "25", "codes": {}})
                await store.save("isrc_registry", {"year": "26", "codes": {}})
                self.assertEqual(await store.load("isrc_registry"), {"year": "26", "codes": {}})
            finally:
                store.close()

    async def test_corrupt_json_loads_as_none(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "registry.sqlite3"
            store = SqliteRegistryStore(path)
            store.close()
            conn = sqlite3.connect(path)
            conn.execute(
                "INSERT INTO registry(key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)",
                ("isrc_registry", "{not json"),
            )
            conn.commit()
            conn.close()
            store = SqliteRegistryStore(path)
            try:
                with self.assertLogs("isrc_meta.store", level="WARNING"):
                    self.assertIsNone(await store.load("isrc_registry"))
            finally:
                store.close()

    async def test_write_failure_raises_persistence_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SqliteRegistryStore(Path(tmpdir) / "registry.sqlite3")
            store.close()
            with self.assertRaises(PersistenceError):
                await store.save("isrc_registry", {"year": "25"})


class TestMemoryRegistryStore(unittest.TestCase):
    def test_records_are_copied(self) -> None:
        store = MemoryRegistryStore()
        record = {"codes": {"A": {"used": False}}}
        asyncio.run(store.save("k", record))
        record["codes"]["A"]["used"] = True
        self.assertFalse(store.get("k")["codes"]["A"]["used"])
        loaded = asyncio.run(store.load("k"))
        loaded["codes"].clear()
        self.assertIn("A", store.get("k")["codes"])
        self.assertEqual(store.saves, 1)


if __name__ == "__main__":
    unittest.main()
