import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol
from urllib.parse import urlsplit

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from autozoom.errors import HostUnavailable

logger = logging.getLogger(__name__)

MODE_AUTOMATIC = "automatic"
SCOPE_PER_ORIGIN = "per-origin"
SCOPE_PER_TAB = "per-tab"

ZOOMABLE_SCHEMES = {"http", "https"}


class _HostPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ZoomSettings(_HostPayload):
    mode: str = MODE_AUTOMATIC
    scope: str = SCOPE_PER_ORIGIN
    default_zoom_factor: float = 1.0


class ZoomChangeSettings(_HostPayload):
    mode: str
    scope: str


class ZoomChangeInfo(_HostPayload):
    tab_id: int
    old_zoom_factor: float
    new_zoom_factor: float
    zoom_settings: ZoomChangeSettings


class TabInfo(_HostPayload):
    id: int
    url: str = ""


class HostZoomService(Protocol):
    async def get_tab(self, tab_id: int) -> TabInfo: ...

    async def get_zoom(self, tab_id: int) -> float: ...

    async def get_zoom_settings(self, tab_id: int) -> ZoomSettings: ...

    async def set_zoom(self, tab_id: int, zoom_factor: float) -> None: ...

    async def set_zoom_settings(self, tab_id: int, scope: str) -> None: ...


def url_scheme(url: str) -> str:
    return urlsplit(url or "").scheme.lower()


def url_to_origin(url: str) -> str:
    """Origin als scheme://host, ohne Port und Pfad."""
    parts = urlsplit(url or "")
    return f"{parts.scheme.lower()}://{(parts.hostname or '').lower()}"


def is_zoomable_url(url: str) -> bool:
    parts = urlsplit(url or "")
    return parts.scheme.lower() in ZOOMABLE_SCHEMES and bool(parts.hostname)


@dataclass
class HttpHostZoomService:
    """
    Spricht die Tab-/Zoom-API des Browsers über eine lokale HTTP-Bridge an.
    Ein Client für die Lebensdauer des Dienstes; aclose() beim Herunterfahren.
    Jeder Transport- oder Protokollfehler wird zu HostUnavailable.
    """

    base_url: str
    timeout_sec: float = 5.0
    transport: Optional[httpx.AsyncBaseTransport] = None
    _client: Optional[httpx.AsyncClient] = field(default=None, init=False, repr=False)

    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_sec,
                transport=self.transport,
                trust_env=False,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        try:
            resp = await self.client().request(method, path, json=payload)
            resp.raise_for_status()
            if not resp.content:
                return None
            return resp.json()
        except httpx.HTTPError as exc:
            logger.warning("Host-Bridge %s %s fehlgeschlagen: %s", method, path, exc)
            raise HostUnavailable(f"{method} {path}: {exc}") from exc
        except ValueError as exc:
            raise HostUnavailable(f"{method} {path}: ungültige Antwort") from exc

    async def get_tab(self, tab_id: int) -> TabInfo:
        data = await self._request("GET", f"/tabs/{tab_id}")
        try:
            return TabInfo.model_validate(data)
        except ValidationError as exc:
            raise HostUnavailable(f"Tab {tab_id}: ungültige Antwort") from exc

    async def get_zoom(self, tab_id: int) -> float:
        data = await self._request("GET", f"/tabs/{tab_id}/zoom")
        try:
            return float(data["zoomFactor"])
        except (TypeError, KeyError, ValueError) as exc:
            raise HostUnavailable(f"Zoom von Tab {tab_id}: ungültige Antwort") from exc

    async def get_zoom_settings(self, tab_id: int) -> ZoomSettings:
        data = await self._request("GET", f"/tabs/{tab_id}/zoom-settings")
        try:
            return ZoomSettings.model_validate(data)
        except ValidationError as exc:
            raise HostUnavailable(f"Zoom-Einstellungen von Tab {tab_id}: ungültige Antwort") from exc

    async def set_zoom(self, tab_id: int, zoom_factor: float) -> None:
        await self._request("PUT", f"/tabs/{tab_id}/zoom", {"zoomFactor": zoom_factor})

    async def set_zoom_settings(self, tab_id: int, scope: str) -> None:
        await self._request("PUT", f"/tabs/{tab_id}/zoom-settings", {"scope": scope})
