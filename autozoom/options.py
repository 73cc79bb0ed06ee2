import json
import logging
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from autozoom.db.kv_store import KeyValueStore
from autozoom.errors import StorageFailure
from autozoom.fusion import DEFAULT_STRATEGY, FusionStrategy, normalize_strategy

logger = logging.getLogger(__name__)

OPTIONS_KEY = "options"


class _OptionsModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MetricWeights(_OptionsModel):
    font_size: float = 8
    margin: float = 4

    @field_validator("font_size", "margin")
    def validate_weight(cls, value: float) -> float:
        if value < 0:
            raise ValueError("Gewichte dürfen nicht negativ sein")
        return value


class Options(_OptionsModel):
    ignore_overrides: bool = False
    ideal_font_size: float = 16
    ideal_page_width: float = 1.0
    metric_weights: MetricWeights = Field(default_factory=MetricWeights)
    fusion_strategy: FusionStrategy = DEFAULT_STRATEGY

    @field_validator("ideal_font_size")
    def validate_font_size(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("idealFontSize muss positiv sein")
        return value

    @field_validator("ideal_page_width")
    def validate_page_width(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("idealPageWidth muss in (0, 1] liegen")
        return value

    @field_validator("fusion_strategy", mode="before")
    def validate_strategy(cls, value: Any) -> FusionStrategy:
        if isinstance(value, FusionStrategy):
            return value
        return normalize_strategy(str(value) if value is not None else None)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def merge_options(current: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(current)
    for key, value in changes.items():
        if "_" in key:
            key = to_camel(key)
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_options(merged[key], value)
        else:
            merged[key] = value
    return merged


class OptionsStore:
    """Optionen liegen als JSON unter OPTIONS_KEY; fehlende Werte kommen aus den Defaults."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    async def _load_raw(self) -> Dict[str, Any]:
        raw = await self._store.get(OPTIONS_KEY)
        if raw is None:
            return {}
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise StorageFailure(f"Ungültige Optionen im Store: {exc}") from exc
        return data if isinstance(data, dict) else {}

    async def get_options(self) -> Options:
        data = await self._load_raw()
        try:
            return Options.model_validate(data)
        except ValidationError as exc:
            logger.warning("Gespeicherte Optionen ungültig, verwende Defaults: %s", exc)
            return Options()

    async def set_options(self, changes: Dict[str, Any]) -> Options:
        current = (await self.get_options()).to_payload()
        # ValidationError ist ein ValueError, ungültige Werte werden nicht gespeichert
        options = Options.model_validate(merge_options(current, changes))
        await self._store.set(OPTIONS_KEY, json.dumps(options.to_payload()).encode("utf-8"))
        return options
