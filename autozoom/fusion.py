import logging
import math
from enum import Enum
from typing import Optional, Sequence

from autozoom.metrics.types import Metric

logger = logging.getLogger(__name__)

ZOOM_EPSILON = 0.01

# Zoomstufen des Browsers, aufsteigend
ZOOM_FACTORS: tuple[float, ...] = (
    0.25, 0.33, 0.5, 0.67, 0.75, 0.8, 0.9, 1.0, 1.1, 1.25, 1.5, 1.75, 2.0, 2.5, 3.0, 4.0, 5.0,
)

MAJORITY = 0.5
_VOTE_TOLERANCE = 1e-9


class FusionStrategy(str, Enum):
    WEIGHTED = "weighted"
    ELECTION = "election"


DEFAULT_STRATEGY = FusionStrategy.WEIGHTED


def normalize_strategy(value: Optional[str], default: FusionStrategy = DEFAULT_STRATEGY) -> FusionStrategy:
    if value:
        normalized = value.strip().lower()
        for strategy in FusionStrategy:
            if normalized == strategy.value:
                return strategy
    return default


def zoom_values_equal(a: float, b: float) -> bool:
    return abs(a - b) <= ZOOM_EPSILON


def total_strength(metrics: Sequence[Metric]) -> float:
    return sum(m.strength for m in metrics)


def weighted_fusion(metrics: Sequence[Metric]) -> float:
    """
    Gewichteter Mittelwert sum(value*weight*confidence) / sum(weight*confidence).
    Ohne positives Gesamtgewicht gibt es keine Empfehlung: NaN.
    """
    total = total_strength(metrics)
    if total <= 0:
        return math.nan
    return sum(m.value * m.strength for m in metrics) / total


def nearest_candidate_index(value: float, candidates: Sequence[float]) -> int:
    # bei Gleichstand gewinnt der kleinere Kandidat
    best = 0
    best_distance = abs(candidates[0] - value)
    for idx in range(1, len(candidates)):
        distance = abs(candidates[idx] - value)
        if distance < best_distance:
            best = idx
            best_distance = distance
    return best


def _transfer_target(votes: list[float], eliminated: int, protected: int) -> int:
    step = 1 if protected > eliminated else -1
    idx = eliminated + step
    while idx != protected and votes[idx] <= 0:
        idx += step
    return idx


def election_fusion(
    metrics: Sequence[Metric],
    candidates: Sequence[float] = ZOOM_FACTORS,
    default_zoom: float = 1.0,
) -> float:
    """
    Stichwahl (instant runoff) über die festen Zoomstufen.

    Jede Metrik stimmt mit weight*confidence für die nächstgelegene Stufe.
    Solange keine Stufe die Mehrheit hat, scheidet die schwächste Stufe aus und
    ihre Stimmen wandern zur nächsten noch besetzten Stufe in Richtung
    default_zoom. Die Stufe am default_zoom scheidet nie aus, daher endet die
    Schleife spätestens dort.
    """
    if not candidates:
        raise ValueError("Keine Zoomstufen angegeben")
    protected = nearest_candidate_index(default_zoom, candidates)
    total = total_strength(metrics)
    if total <= 0:
        return candidates[protected]

    votes = [0.0] * len(candidates)
    for metric in metrics:
        if metric.strength <= 0:
            continue
        votes[nearest_candidate_index(metric.value, candidates)] += metric.strength / total

    while True:
        alive = [idx for idx, share in enumerate(votes) if share > 0]
        leader = max(alive, key=lambda idx: (votes[idx], -abs(idx - protected)))
        if votes[leader] >= MAJORITY - _VOTE_TOLERANCE or len(alive) == 1:
            return candidates[leader]

        losers = [idx for idx in alive if idx != protected]
        loser = min(losers, key=lambda idx: votes[idx])
        target = _transfer_target(votes, loser, protected)
        logger.debug(
            "Stichwahl: %.2f scheidet aus (%.3f), Stimmen an %.2f",
            candidates[loser],
            votes[loser],
            candidates[target],
        )
        votes[target] += votes[loser]
        votes[loser] = 0.0


def fuse(
    metrics: Sequence[Metric],
    strategy: FusionStrategy = DEFAULT_STRATEGY,
    default_zoom: float = 1.0,
    candidates: Sequence[float] = ZOOM_FACTORS,
) -> Optional[float]:
    """Liefert den empfohlenen Zoomfaktor oder None, wenn keine Empfehlung möglich ist."""
    if total_strength(metrics) <= 0:
        return None
    if strategy == FusionStrategy.ELECTION:
        return election_fusion(metrics, candidates, default_zoom)
    result = weighted_fusion(metrics)
    if math.isnan(result):
        return None
    return result
