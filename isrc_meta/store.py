from __future__ import annotations

import asyncio
import copy
import json
import logging
import sqlite3
from functools import partial
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional, Protocol

from .models import PersistenceError

logger = logging.getLogger(__name__)


class RegistryStore(Protocol):
    async def load(self, key: str) -> Optional[dict]: ...

    async def save(self, key: str, record: dict) -> None: ...

    def close(self) -> None: ...


class SqliteRegistryStore:
    """SQLite-backed key/value store for whole registry snapshots.

    Every save replaces the stored JSON document for the key (last write wins).
    Blocking sqlite calls run on the default executor so callers on the event
    loop are not stalled.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS registry (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    async def load(self, key: str) -> Optional[dict]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get, key)

    async def save(self, key: str, record: dict) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, partial(self.set, key, record))

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            cursor = self._conn.execute("SELECT value FROM registry WHERE key = ?", (key,))
            row = cursor.fetchone()
        if not row:
            return None
        try:
            value = json.loads(row[0])
        except json.JSONDecodeError:
            logger.warning("Stored registry %s is not valid JSON; ignoring it", key)
            return None
        return value if isinstance(value, dict) else None

    def set(self, key: str, record: Dict[str, Any]) -> None:
        payload = json.dumps(record)
        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO registry(key, value, updated_at)
                    VALUES(?, ?, CURRENT_TIMESTAMP)
                    ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                    """,
                    (key, payload),
                )
                self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Failed to save registry {key}: {exc}") from exc


class MemoryRegistryStore:
    """In-process store; records are deep-copied in both directions."""

    def __init__(self, initial: Optional[Dict[str, dict]] = None) -> None:
        self._records: Dict[str, dict] = copy.deepcopy(initial or {})
        self.saves = 0

    async def load(self, key: str) -> Optional[dict]:
        record = self._records.get(key)
        return copy.deepcopy(record) if record is not None else None

    async def save(self, key: str, record: dict) -> None:
        self._records[key] = copy.deepcopy(record)
        self.saves += 1

    def get(self, key: str) -> Optional[dict]:
        record = self._records.get(key)
        return copy.deepcopy(record) if record is not None else None

    def close(self) -> None:
        return None
