import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional

from autozoom.errors import HostUnavailable, StorageFailure
from autozoom.fusion import fuse, zoom_values_equal
from autozoom.metrics import font_size, margin
from autozoom.metrics.types import Metric, PageInfo
from autozoom.options import Options, OptionsStore
from autozoom.services.host_zoom import (
    MODE_AUTOMATIC,
    SCOPE_PER_ORIGIN,
    SCOPE_PER_TAB,
    HostZoomService,
    ZoomChangeInfo,
    ZoomSettings,
    is_zoomable_url,
    url_to_origin,
)
from autozoom.services.keyed_lock import KeyedLock
from autozoom.services.override_tracker import OverrideTracker

logger = logging.getLogger(__name__)


class TabState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"


class ZoomChangeVerdict(str, Enum):
    NOT_TRACKED = "not_tracked"
    RESET = "reset"
    CONFIG_CHANGED = "config_changed"
    SPURIOUS = "spurious"
    SELF_CAUSED = "self_caused"
    OVERRIDE = "override"


_NEXT_STATE: Dict[ZoomChangeVerdict, TabState] = {
    ZoomChangeVerdict.RESET: TabState.TRACKING,
    ZoomChangeVerdict.CONFIG_CHANGED: TabState.IDLE,
    ZoomChangeVerdict.SPURIOUS: TabState.TRACKING,
    ZoomChangeVerdict.SELF_CAUSED: TabState.TRACKING,
    ZoomChangeVerdict.OVERRIDE: TabState.IDLE,
}


@dataclass(frozen=True)
class DocumentZoomState:
    tab_id: int
    state: TabState = TabState.IDLE
    last_known_zoom: Optional[float] = None

    @property
    def is_listening(self) -> bool:
        return self.state == TabState.TRACKING


@dataclass
class ZoomDecision:
    tab_id: int
    applied: bool
    state: TabState
    zoom: Optional[float] = None
    previous_zoom: Optional[float] = None
    reason: str = ""


def classify_zoom_change(info: ZoomChangeInfo, last_known_zoom: Optional[float]) -> ZoomChangeVerdict:
    """Ordnet eine Zoom-Benachrichtigung für einen beobachteten Tab ein."""
    settings = info.zoom_settings
    if settings.scope == SCOPE_PER_ORIGIN:
        return ZoomChangeVerdict.RESET
    if settings.scope != SCOPE_PER_TAB or settings.mode != MODE_AUTOMATIC:
        return ZoomChangeVerdict.CONFIG_CHANGED
    if zoom_values_equal(info.old_zoom_factor, info.new_zoom_factor):
        return ZoomChangeVerdict.SPURIOUS
    if last_known_zoom is not None and zoom_values_equal(info.new_zoom_factor, last_known_zoom):
        return ZoomChangeVerdict.SELF_CAUSED
    return ZoomChangeVerdict.OVERRIDE


def transition(current: DocumentZoomState, verdict: ZoomChangeVerdict, new_zoom: float) -> DocumentZoomState:
    if _NEXT_STATE[verdict] == TabState.IDLE:
        return DocumentZoomState(tab_id=current.tab_id)
    if verdict == ZoomChangeVerdict.SELF_CAUSED:
        return replace(current, last_known_zoom=new_zoom)
    return current


def collect_metrics(page: PageInfo, settings: ZoomSettings, options: Options, current_zoom: float) -> list[Metric]:
    # Grundannahme: die Seite passt beim Standard-Zoom
    prior = Metric(value=settings.default_zoom_factor, confidence=1.0, weight=1.0)
    weights = options.metric_weights
    return [
        prior,
        font_size.compute(page, options.ideal_font_size, weights.font_size),
        margin.compute(page, current_zoom, options.ideal_page_width, weights.margin),
    ]


def compute_zoom(page: PageInfo, settings: ZoomSettings, options: Options, current_zoom: float) -> Optional[float]:
    metrics = collect_metrics(page, settings, options, current_zoom)
    return fuse(metrics, options.fusion_strategy, settings.default_zoom_factor)


class ZoomDecisionController:
    """
    Steuert den Zoom pro Tab. Ein Tab ist IDLE oder TRACKING; TRACKING heißt,
    die nächste Zoom-Benachrichtigung des Tabs wird von uns ausgewertet.
    Alle Operationen auf demselben Tab laufen nacheinander.
    """

    def __init__(self, host: HostZoomService, tracker: OverrideTracker, options: OptionsStore):
        self._host = host
        self._tracker = tracker
        self._options = options
        self._tabs: Dict[int, DocumentZoomState] = {}
        self._tab_locks = KeyedLock()

    def state_of(self, tab_id: int) -> DocumentZoomState:
        return self._tabs.get(tab_id) or DocumentZoomState(tab_id=tab_id)

    async def on_startup(self) -> None:
        self._tabs.clear()
        await self._tracker.clear_all_listening()

    async def _check_permission(self, tab_id: int, url: str) -> tuple[bool, Optional[ZoomSettings], Optional[Options]]:
        if not is_zoomable_url(url):
            return False, None, None
        try:
            current_zoom = await self._host.get_zoom(tab_id)
            settings = await self._host.get_zoom_settings(tab_id)
            overridden = await self._tracker.is_overridden(url_to_origin(url))
            options = await self._options.get_options()
        except (HostUnavailable, StorageFailure) as exc:
            logger.warning("Tab %s: Auto-Zoom nicht erlaubt, Zustand unklar: %s", tab_id, exc)
            return False, None, None
        allowed = (
            settings.mode == MODE_AUTOMATIC
            and settings.scope == SCOPE_PER_ORIGIN
            and (
                options.ignore_overrides
                or (not overridden and zoom_values_equal(current_zoom, settings.default_zoom_factor))
            )
        )
        return allowed, settings, options

    async def may_auto_zoom(self, tab_id: int, url: str) -> bool:
        allowed, _settings, _options = await self._check_permission(tab_id, url)
        return allowed

    async def on_page_info(self, tab_id: int, url: str, page: PageInfo) -> ZoomDecision:
        async with self._tab_locks.hold(tab_id):
            allowed, settings, options = await self._check_permission(tab_id, url)
            if not allowed:
                return ZoomDecision(tab_id, applied=False, state=self.state_of(tab_id).state, reason="not_permitted")

            await self._tracker.stop_listening(tab_id)
            self._tabs[tab_id] = DocumentZoomState(tab_id=tab_id)
            try:
                await self._host.set_zoom_settings(tab_id, SCOPE_PER_TAB)
                current_zoom = await self._host.get_zoom(tab_id)
                target = compute_zoom(page, settings, options, current_zoom)
                if target is None:
                    logger.info("Tab %s: keine Empfehlung aus den Messdaten, Zoom bleibt", tab_id)
                    applied_zoom = current_zoom
                elif zoom_values_equal(target, current_zoom):
                    applied_zoom = current_zoom
                else:
                    await self._host.set_zoom(tab_id, target)
                    # der Host rundet auf seine Stufen, maßgeblich ist der gemeldete Wert
                    applied_zoom = await self._host.get_zoom(tab_id)
                    logger.info("Tab %s: Zoom %.2f -> %.2f", tab_id, current_zoom, applied_zoom)
            except HostUnavailable as exc:
                logger.warning("Tab %s: Zoom nicht gesetzt: %s", tab_id, exc)
                # Scope zurück auf per-origin, sonst scheitert jede weitere Prüfung
                await self._restore_origin_scope(tab_id)
                return ZoomDecision(tab_id, applied=False, state=TabState.IDLE, reason="host_unavailable")

            await self._tracker.start_listening(tab_id)
            self._tabs[tab_id] = DocumentZoomState(tab_id, TabState.TRACKING, applied_zoom)
            changed = not zoom_values_equal(applied_zoom, current_zoom)
            return ZoomDecision(
                tab_id,
                applied=changed,
                state=TabState.TRACKING,
                zoom=applied_zoom,
                previous_zoom=current_zoom,
                reason="zoomed" if changed else "unchanged",
            )

    async def on_zoom_change(self, info: ZoomChangeInfo) -> ZoomChangeVerdict:
        tab_id = info.tab_id
        async with self._tab_locks.hold(tab_id):
            if not await self._tracker.is_listening(tab_id):
                return ZoomChangeVerdict.NOT_TRACKED
            current = self._tabs.get(tab_id) or DocumentZoomState(tab_id, TabState.TRACKING)
            verdict = classify_zoom_change(info, current.last_known_zoom)
            reset_scope = False
            if verdict == ZoomChangeVerdict.OVERRIDE:
                # erst speichern, dann Tab freigeben; bei Fehlern bleibt er beobachtet
                reset_scope = not (await self._options.get_options()).ignore_overrides
                await self._record_override(tab_id)
            following = transition(current, verdict, info.new_zoom_factor)
            if not following.is_listening:
                await self._tracker.stop_listening(tab_id)
            self._tabs[tab_id] = following
            if verdict == ZoomChangeVerdict.CONFIG_CHANGED:
                logger.info("Tab %s: Zoom-Einstellungen extern geändert, Steuerung beendet", tab_id)
            elif reset_scope:
                await self._restore_origin_scope(tab_id)
            return verdict

    async def _record_override(self, tab_id: int) -> None:
        try:
            tab = await self._host.get_tab(tab_id)
        except HostUnavailable as exc:
            logger.warning("Tab %s: Override nicht gespeichert, Tab unbekannt: %s", tab_id, exc)
            raise
        await self._tracker.mark_overridden(url_to_origin(tab.url))

    async def _restore_origin_scope(self, tab_id: int) -> None:
        try:
            await self._host.set_zoom_settings(tab_id, SCOPE_PER_ORIGIN)
        except HostUnavailable as exc:
            logger.warning("Tab %s: Scope nicht zurückgesetzt: %s", tab_id, exc)

    async def on_tab_removed(self, tab_id: int) -> None:
        async with self._tab_locks.hold(tab_id):
            self._tabs.pop(tab_id, None)
            await self._tracker.stop_listening(tab_id)

    async def on_tab_replaced(self, added_tab_id: int, removed_tab_id: int) -> None:
        logger.debug("Tab %s ersetzt durch %s", removed_tab_id, added_tab_id)
        await self.on_tab_removed(removed_tab_id)
