import asyncio
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Protocol

from autozoom.errors import StorageFailure

logger = logging.getLogger(__name__)

DB_PATH = Path("data/autozoom.db")


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[bytes]: ...

    async def set(self, key: str, value: bytes) -> None: ...

    async def remove(self, key: str) -> None: ...


class SqliteKeyValueStore:
    """
    Dauerhafter Key/Value-Store auf SQLite.
    Die Zugriffe laufen synchron in einem Worker-Thread, serialisiert über _lock.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or DB_PATH)
        self._lock = threading.Lock()
        self._initialized = False

    @contextmanager
    def _conn(self):
        with self._lock:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path)
            except (sqlite3.Error, OSError) as exc:
                raise StorageFailure(f"Store nicht erreichbar: {self.db_path}: {exc}") from exc
            try:
                if not self._initialized:
                    conn.execute("CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value BLOB NOT NULL)")
                    self._initialized = True
                yield conn
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                logger.error("Store-Zugriff fehlgeschlagen (%s): %s", self.db_path, exc)
                raise StorageFailure(f"Store-Zugriff fehlgeschlagen: {exc}") from exc
            finally:
                conn.close()

    def _get(self, key: str) -> Optional[bytes]:
        with self._conn() as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return bytes(row[0]) if row else None

    def _set(self, key: str, value: bytes) -> None:
        with self._conn() as conn:
            conn.execute(
                "INSERT INTO kv(key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, sqlite3.Binary(value)),
            )

    def _remove(self, key: str) -> None:
        with self._conn() as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    async def get(self, key: str) -> Optional[bytes]:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: bytes) -> None:
        await asyncio.to_thread(self._set, key, value)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)
