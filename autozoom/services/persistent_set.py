import asyncio
import json
import logging
from typing import Hashable, Set

from autozoom.db.kv_store import KeyValueStore
from autozoom.errors import StorageFailure

logger = logging.getLogger(__name__)


class PersistentSet:
    """
    Menge, die als JSON-Liste unter einem Store-Schlüssel liegt.
    Jede Änderung ist ein Read-Modify-Write auf den ganzen Schlüssel und
    läuft deshalb unter einem Lock pro Instanz.
    """

    def __init__(self, store: KeyValueStore, storage_key: str):
        self.storage_key = storage_key
        self._store = store
        self._lock = asyncio.Lock()

    async def _load(self) -> Set[Hashable]:
        raw = await self._store.get(self.storage_key)
        if raw is None:
            return set()
        try:
            values = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise StorageFailure(f"Ungültiger Inhalt unter {self.storage_key}: {exc}") from exc
        if not isinstance(values, list):
            raise StorageFailure(f"Ungültiger Inhalt unter {self.storage_key}: keine Liste")
        return set(values)

    async def _save(self, values: Set[Hashable]) -> None:
        payload = json.dumps(sorted(values, key=str)).encode("utf-8")
        await self._store.set(self.storage_key, payload)

    async def add(self, value: Hashable) -> None:
        async with self._lock:
            values = await self._load()
            if value in values:
                return
            values.add(value)
            await self._save(values)

    async def delete(self, value: Hashable) -> None:
        async with self._lock:
            values = await self._load()
            if value not in values:
                return
            values.discard(value)
            await self._save(values)

    async def has(self, value: Hashable) -> bool:
        async with self._lock:
            return value in await self._load()

    async def members(self) -> Set[Hashable]:
        async with self._lock:
            return await self._load()

    async def clear(self) -> None:
        async with self._lock:
            await self._store.remove(self.storage_key)
        logger.debug("Persistente Menge %s geleert", self.storage_key)
