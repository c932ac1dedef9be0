from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from .geometry import haversine_distance
from .models import PickedEvent, SearchSettings

logger = logging.getLogger(__name__)

MIN_RATIO = 16.0
TARGET_EVENTS = 30
MIN_DELTA_P_MILLIS = 2000.0
DELTA_P_INACCURACY_FACTOR = 1.75


def find_good_events(
    picks: Sequence[PickedEvent],
    selected: list[PickedEvent],
    target: int = TARGET_EVENTS,
) -> list[PickedEvent]:
    """Grow `selected` with the picks farthest from everything selected so far.

    Each round adds the pick whose distance to its closest selected pick is
    largest; ties go to the pick that comes first in `picks`.
    """
    if not picks or not selected:
        return selected
    lats = np.array([pick.lat for pick in picks], dtype=float)
    lons = np.array([pick.lon for pick in picks], dtype=float)

    closest = np.full(len(picks), np.inf)
    for other in selected:
        closest = np.minimum(closest, haversine_distance(lats, lons, other.lat, other.lon))
    chosen = {id(pick) for pick in selected}
    for i, pick in enumerate(picks):
        if id(pick) in chosen:
            closest[i] = -np.inf

    while len(selected) < target:
        furthest = int(np.argmax(closest))
        if closest[furthest] == -np.inf:
            break
        pick = picks[furthest]
        selected.append(pick)
        closest = np.minimum(closest, haversine_distance(lats, lons, pick.lat, pick.lon))
        closest[furthest] = -np.inf
    return selected


def select_picks(
    picks: Sequence[PickedEvent],
    min_stations: int,
    target: int = TARGET_EVENTS,
) -> list[PickedEvent] | None:
    """Pick a spatially spread subset of at most `target` picks.

    Returns None when the strongest pick is below MIN_RATIO or there are
    fewer than `min_stations` picks.
    """
    if not picks:
        return None

    ordered = sorted(picks, key=lambda pick: pick.max_ratio)
    strongest = ordered[-1]
    if strongest.max_ratio < MIN_RATIO:
        logger.debug(
            "Pick selection skipped: strongest_ratio=%.2f min_ratio=%.2f",
            strongest.max_ratio,
            MIN_RATIO,
        )
        return None

    if len(ordered) < min_stations:
        logger.debug(
            "Pick selection skipped: picks=%d required=%d", len(ordered), min_stations
        )
        return None

    selected = find_good_events(ordered, [strongest], target=target)
    logger.debug("Selected picks: selected=%d available=%d", len(selected), len(ordered))
    return selected


def check_delta_p(selected: Sequence[PickedEvent], settings: SearchSettings) -> bool:
    """Require enough spread between the early and late P arrivals."""
    if not selected:
        return False
    arrivals = sorted(pick.p_wave_millis for pick in selected)
    low = arrivals[int((len(arrivals) - 1) * 0.1)]
    high = arrivals[int((len(arrivals) - 1) * 0.9)]
    required = max(
        MIN_DELTA_P_MILLIS,
        settings.p_wave_inaccuracy_threshold * DELTA_P_INACCURACY_FACTOR,
    )
    return high - low >= required
