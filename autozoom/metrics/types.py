import math
from dataclasses import dataclass
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from autozoom.errors import MalformedMeasurement


@dataclass
class Metric:
    value: float  # Zoomfaktor
    confidence: float
    weight: float = 1.0

    @property
    def strength(self) -> float:
        return self.weight * self.confidence


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_extent(value: float, label: str) -> float:
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{label} muss endlich und nicht negativ sein")
    return value


class ContentDimensions(_Payload):
    height: float = 0.0
    width: float = 0.0

    @field_validator("height", "width")
    def validate_extent(cls, value: float) -> float:
        return _check_extent(value, "Inhaltsgröße")


class CenteredContainer(_Payload):
    width: float
    height: float
    relative: bool = False

    @field_validator("height", "width")
    def validate_extent(cls, value: float) -> float:
        return _check_extent(value, "Containergröße")


class PageInfo(_Payload):
    """
    Messdaten einer Seite, wie sie der Content-Script-Provider liefert.
    fontSizeDistribution: Schriftgröße (px) -> Anzahl Zeichen in dieser Größe.
    """

    font_size_distribution: Dict[float, int] = Field(default_factory=dict)
    text_area: float = 0.0
    object_area: float = 0.0
    content_dimensions: ContentDimensions = Field(default_factory=ContentDimensions)
    centered_containers: list[CenteredContainer] = Field(default_factory=list)

    @field_validator("font_size_distribution")
    def validate_distribution(cls, value: Dict[float, int]) -> Dict[float, int]:
        for size, count in value.items():
            if not math.isfinite(size) or size <= 0:
                raise ValueError("Schriftgröße muss positiv sein")
            if count < 0:
                raise ValueError("Zeichenanzahl darf nicht negativ sein")
        return value

    @field_validator("text_area", "object_area")
    def validate_area(cls, value: float) -> float:
        return _check_extent(value, "Fläche")


def parse_page_info(raw: Any) -> PageInfo:
    try:
        return PageInfo.model_validate(raw)
    except ValidationError as exc:
        raise MalformedMeasurement(str(exc)) from exc
