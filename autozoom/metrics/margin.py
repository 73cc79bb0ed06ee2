from typing import Iterable, Optional

from autozoom.metrics.types import CenteredContainer, Metric, PageInfo


def widest_fixed_container(containers: Iterable[CenteredContainer], current_zoom: float) -> tuple[Optional[float], float]:
    """
    Liefert (breiteste Containerbreite bei Zoom 1.0, summierte Höhe).
    Viewport-relative Container werden ignoriert, ihre Ränder skalieren nicht mit.
    """
    widest: Optional[float] = None
    covered_height = 0.0
    for container in containers:
        if container.relative:
            continue
        width = container.width / current_zoom
        if widest is None or width > widest:
            widest = width
        covered_height += container.height
    return widest, covered_height


def compute(page: PageInfo, current_zoom: float, ideal_page_width: float, weight: float) -> Metric:
    if current_zoom <= 0:
        return Metric(value=0.0, confidence=0.0, weight=weight)
    widest, covered_height = widest_fixed_container(page.centered_containers, current_zoom)
    content = page.content_dimensions
    if not widest or not content.height or not content.width:
        return Metric(value=0.0, confidence=0.0, weight=weight)
    zoom = content.width * ideal_page_width / widest
    confidence = max(0.0, min(1.0, covered_height / content.height))
    return Metric(value=zoom, confidence=confidence, weight=weight)
