from typing import Dict, Optional

import pytest

from autozoom.controller import ZoomDecisionController
from autozoom.errors import HostUnavailable, StorageFailure
from autozoom.fusion import ZOOM_FACTORS, nearest_candidate_index
from autozoom.options import OptionsStore
from autozoom.services.host_zoom import TabInfo, ZoomSettings
from autozoom.services.override_tracker import OverrideTracker


class MemoryStore:
    def __init__(self):
        self.data: Dict[str, bytes] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.writes = 0

    async def get(self, key: str) -> Optional[bytes]:
        if self.fail_reads:
            raise StorageFailure("read failed")
        return self.data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        if self.fail_writes:
            raise StorageFailure("write failed")
        self.writes += 1
        self.data[key] = value

    async def remove(self, key: str) -> None:
        if self.fail_writes:
            raise StorageFailure("write failed")
        self.data.pop(key, None)


class FakeHost:
    """Ein Browser mit Tabs; set_zoom rundet optional auf die Zoomstufen."""

    def __init__(self, zoom: float = 1.0, default_zoom: float = 1.0, quantize: bool = False):
        self.default_zoom = default_zoom
        self.quantize = quantize
        self.zooms: Dict[int, float] = {}
        self.modes: Dict[int, str] = {}
        self.scopes: Dict[int, str] = {}
        self.urls: Dict[int, str] = {}
        self.initial_zoom = zoom
        self.failing: set[str] = set()
        self.calls: list[tuple] = []

    def open_tab(self, tab_id: int, url: str, zoom: Optional[float] = None, scope: str = "per-origin", mode: str = "automatic"):
        self.urls[tab_id] = url
        self.zooms[tab_id] = self.initial_zoom if zoom is None else zoom
        self.scopes[tab_id] = scope
        self.modes[tab_id] = mode

    def _check(self, name: str):
        if name in self.failing:
            raise HostUnavailable(f"{name} failed")

    @property
    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in {"set_zoom", "set_zoom_settings"}]

    async def get_tab(self, tab_id: int) -> TabInfo:
        self._check("get_tab")
        return TabInfo(id=tab_id, url=self.urls.get(tab_id, ""))

    async def get_zoom(self, tab_id: int) -> float:
        self._check("get_zoom")
        return self.zooms.get(tab_id, self.initial_zoom)

    async def get_zoom_settings(self, tab_id: int) -> ZoomSettings:
        self._check("get_zoom_settings")
        return ZoomSettings(
            mode=self.modes.get(tab_id, "automatic"),
            scope=self.scopes.get(tab_id, "per-origin"),
            default_zoom_factor=self.default_zoom,
        )

    async def set_zoom(self, tab_id: int, zoom_factor: float) -> None:
        self._check("set_zoom")
        self.calls.append(("set_zoom", tab_id, zoom_factor))
        if self.quantize:
            zoom_factor = ZOOM_FACTORS[nearest_candidate_index(zoom_factor, ZOOM_FACTORS)]
        self.zooms[tab_id] = zoom_factor

    async def set_zoom_settings(self, tab_id: int, scope: str) -> None:
        self._check("set_zoom_settings")
        self.calls.append(("set_zoom_settings", tab_id, scope))
        self.scopes[tab_id] = scope


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def tracker(store):
    return OverrideTracker(store)


@pytest.fixture
def controller(host, store, tracker):
    return ZoomDecisionController(host, tracker, OptionsStore(store))
