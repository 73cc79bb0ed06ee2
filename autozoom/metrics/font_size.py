from typing import Mapping, Optional

from autozoom.metrics.types import Metric, PageInfo

TEXTUAL_SHARE_FULL_CONFIDENCE = 0.5


def first_quartile(distribution: Mapping[float, int]) -> Optional[float]:
    """
    Kleinste Schriftgröße oberhalb des ersten Quartils.
    Keine Interpolation, die Position wird abgerundet.
    """
    total = sum(distribution.values())
    position = (total + 1) // 4
    for size in sorted(distribution):
        count = distribution[size]
        if position < count:
            return size
        position -= count
    return None


def text_confidence(text_area: float, object_area: float) -> float:
    covered = text_area + object_area
    if covered <= 0:
        return 0.0
    share = text_area / covered
    return 1.0 if share > TEXTUAL_SHARE_FULL_CONFIDENCE else share


def compute(page: PageInfo, ideal_font_size: float, weight: float) -> Metric:
    # Repräsentative Schrift soll nach dem Zoom so groß wirken wie ideal_font_size
    quartile = first_quartile(page.font_size_distribution)
    confidence = text_confidence(page.text_area, page.object_area)
    if not quartile or not confidence:
        return Metric(value=0.0, confidence=0.0, weight=weight)
    return Metric(value=ideal_font_size / quartile, confidence=confidence, weight=weight)
