import logging

from autozoom.db.kv_store import KeyValueStore
from autozoom.services.persistent_set import PersistentSet

logger = logging.getLogger(__name__)

LISTENING_KEY = "activeListeners"
OVERRIDDEN_KEY = "overriddenOrigins"


class OverrideTracker:
    """
    Die beiden persistenten Mengen der Zoom-Steuerung:
    Tabs, deren nächste Zoom-Änderung wir auswerten, und Origins,
    deren Zoom der Nutzer selbst überschrieben hat.
    Schreibfehler kommen als StorageFailure beim Aufrufer an.
    """

    def __init__(self, store: KeyValueStore):
        self._listening = PersistentSet(store, LISTENING_KEY)
        self._overridden = PersistentSet(store, OVERRIDDEN_KEY)

    async def is_overridden(self, origin: str) -> bool:
        return await self._overridden.has(origin)

    async def mark_overridden(self, origin: str) -> None:
        await self._overridden.add(origin)
        logger.info("Zoom für %s vom Nutzer überschrieben", origin)

    async def is_listening(self, tab_id: int) -> bool:
        return await self._listening.has(tab_id)

    async def start_listening(self, tab_id: int) -> None:
        await self._listening.add(tab_id)

    async def stop_listening(self, tab_id: int) -> None:
        await self._listening.delete(tab_id)

    async def clear_all_listening(self) -> None:
        await self._listening.clear()
        logger.info("Liste beobachteter Tabs zurückgesetzt")
