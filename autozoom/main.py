import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from autozoom.config_loader import CentralConfig, ensure_dirs, load_config
from autozoom.controller import ZoomDecision, ZoomDecisionController
from autozoom.db.kv_store import KeyValueStore, SqliteKeyValueStore
from autozoom.errors import HostUnavailable, MalformedMeasurement, StorageFailure
from autozoom.logging_setup import setup_logging
from autozoom.metrics.types import parse_page_info
from autozoom.options import OptionsStore
from autozoom.services.host_zoom import HostZoomService, HttpHostZoomService, ZoomChangeInfo, url_to_origin
from autozoom.services.override_tracker import OverrideTracker

logger = logging.getLogger(__name__)


def serialize_decision(decision: ZoomDecision) -> Dict[str, Any]:
    return {
        "tabId": decision.tab_id,
        "applied": decision.applied,
        "state": decision.state.value,
        "zoom": decision.zoom,
        "previousZoom": decision.previous_zoom,
        "reason": decision.reason,
    }


def _require_int(payload: Dict[str, Any], key: str) -> int:
    try:
        return int(payload[key])
    except (KeyError, TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{key} fehlt oder ist ungültig")


def create_app(
    config: Optional[CentralConfig] = None,
    host_service: Optional[HostZoomService] = None,
    store: Optional[KeyValueStore] = None,
) -> FastAPI:
    config = config or load_config()
    ensure_dirs(config)
    setup_logging(config)
    store = store or SqliteKeyValueStore(config.storage.db_path)
    bridge: Optional[HttpHostZoomService] = None
    if host_service is None:
        bridge = host_service = HttpHostZoomService(config.host.bridge_url, config.host.timeout_sec)
    tracker = OverrideTracker(store)
    options_store = OptionsStore(store)
    controller = ZoomDecisionController(host_service, tracker, options_store)
    expected_secret = config.service.app_secret

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        # Beobachtete Tabs aus einem früheren Lauf sind ungültig, Overrides bleiben
        await controller.on_startup()
        logger.info("Auto-Zoom gestartet, Host-Bridge: %s", config.host.bridge_url)
        yield
        if bridge is not None:
            await bridge.aclose()

    app = FastAPI(title="Auto-Zoom", lifespan=lifespan)
    app.state.controller = controller
    app.state.tracker = tracker
    app.state.options = options_store
    app.state.bridge = bridge

    def require_secret(
        x_app_secret: Optional[str] = Header(default=None, alias="X-App-Secret"),
        authorization: Optional[str] = Header(default=None, alias="Authorization"),
    ):
        if not expected_secret:
            return True
        supplied = None
        if x_app_secret:
            supplied = x_app_secret.strip()
        elif authorization and authorization.lower().startswith("bearer "):
            supplied = authorization[7:].strip()
        if not supplied or supplied != expected_secret:
            raise HTTPException(status_code=401, detail="Unauthorized")
        return True

    @app.exception_handler(StorageFailure)
    async def storage_failure_handler(_request: Request, exc: StorageFailure):
        logger.error("Speicherfehler: %s", exc)
        return JSONResponse(status_code=503, content={"detail": "Speicher nicht verfügbar"})

    @app.exception_handler(HostUnavailable)
    async def host_unavailable_handler(_request: Request, exc: HostUnavailable):
        return JSONResponse(status_code=502, content={"detail": f"Host nicht erreichbar: {exc}"})

    @app.exception_handler(MalformedMeasurement)
    async def malformed_measurement_handler(_request: Request, exc: MalformedMeasurement):
        return JSONResponse(status_code=422, content={"detail": f"Ungültige Messdaten: {exc}"})

    @app.post("/api/tabs/{tab_id}/page-info")
    async def page_info(tab_id: int, payload: Dict[str, Any], _auth: bool = Depends(require_secret)):
        url = payload.get("url") or ""
        page = parse_page_info(payload.get("pageInfo") or {})
        decision = await controller.on_page_info(tab_id, url, page)
        return serialize_decision(decision)

    @app.get("/api/tabs/{tab_id}/permission")
    async def permission(tab_id: int, url: str = Query(...), _auth: bool = Depends(require_secret)):
        return {"tabId": tab_id, "allowed": await controller.may_auto_zoom(tab_id, url)}

    @app.get("/api/tabs/{tab_id}/state")
    def tab_state(tab_id: int, _auth: bool = Depends(require_secret)):
        st = controller.state_of(tab_id)
        return {"tabId": st.tab_id, "state": st.state.value, "lastKnownZoom": st.last_known_zoom}

    @app.post("/api/zoom-change")
    async def zoom_change(payload: Dict[str, Any], _auth: bool = Depends(require_secret)):
        try:
            info = ZoomChangeInfo.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=f"Ungültige Zoom-Änderung: {exc.error_count()} Fehler")
        verdict = await controller.on_zoom_change(info)
        st = controller.state_of(info.tab_id)
        return {"tabId": info.tab_id, "verdict": verdict.value, "state": st.state.value}

    @app.post("/api/tabs/{tab_id}/removed")
    async def tab_removed(tab_id: int, _auth: bool = Depends(require_secret)):
        await controller.on_tab_removed(tab_id)
        return {"status": "ok"}

    @app.post("/api/tabs/replaced")
    async def tab_replaced(payload: Dict[str, Any], _auth: bool = Depends(require_secret)):
        added = _require_int(payload, "addedTabId")
        removed = _require_int(payload, "removedTabId")
        await controller.on_tab_replaced(added, removed)
        return {"status": "ok"}

    @app.get("/api/options")
    async def get_options(_auth: bool = Depends(require_secret)):
        return (await options_store.get_options()).to_payload()

    @app.post("/api/options")
    async def set_options(payload: Dict[str, Any], _auth: bool = Depends(require_secret)):
        try:
            options = await options_store.set_options(payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return options.to_payload()

    @app.get("/api/overrides")
    async def overrides(url: str = Query(...), _auth: bool = Depends(require_secret)):
        origin = url_to_origin(url)
        return {"origin": origin, "overridden": await tracker.is_overridden(origin)}

    return app


if __name__ == "__main__":  # pragma: no cover
    cfg = load_config()
    uvicorn.run(create_app(cfg), host=cfg.service.host, port=cfg.service.port)
