from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from .geometry import azimuth, haversine_distance
from .models import Hypocenter, HypocenterCondition, PickedEvent
from .selector import select_better

logger = logging.getLogger(__name__)

QUADRANTS = 16
DISTANT_EVENT_KM = 2000.0
DISTANT_EVENT_MIN_CORRECT = 8
MIN_CORRECT_STATIONS = 4


def count_quadrants(hypocenter: Hypocenter, picks: Sequence[PickedEvent]) -> int:
    """Number of non-empty azimuth sectors around the hypocenter."""
    if not picks:
        return 0
    lats = np.array([pick.lat for pick in picks], dtype=float)
    lons = np.array([pick.lon for pick in picks], dtype=float)
    angles = azimuth(hypocenter.lat, hypocenter.lon, lats, lons)
    sectors = np.minimum((angles * QUADRANTS / 360.0).astype(int), QUADRANTS - 1)
    return int(np.unique(sectors).size)


def required_quadrants(distance_from_root_km: float) -> int:
    if distance_from_root_km > 4000.0:
        return 1
    if distance_from_root_km > 1000.0:
        return 2
    return 3


def check_conditions(
    selected: Sequence[PickedEvent],
    hypocenter: Hypocenter | None,
    previous: Hypocenter | None,
    root_lat: float,
    root_lon: float,
) -> HypocenterCondition:
    if hypocenter is None:
        return HypocenterCondition.NULL

    distance_from_root = float(
        haversine_distance(hypocenter.lat, hypocenter.lon, root_lat, root_lon)
    )
    if (
        distance_from_root > DISTANT_EVENT_KM
        and hypocenter.correct_stations < DISTANT_EVENT_MIN_CORRECT
    ):
        return HypocenterCondition.DISTANT_EVENT_NOT_ENOUGH_STATIONS

    if hypocenter.correct_stations < MIN_CORRECT_STATIONS:
        return HypocenterCondition.NOT_ENOUGH_CORRECT_STATIONS

    quadrants = count_quadrants(hypocenter, selected)
    if quadrants < required_quadrants(distance_from_root):
        logger.debug(
            "Azimuthal coverage too low: quadrants=%d distance_from_root_km=%.1f",
            quadrants,
            distance_from_root,
        )
        return HypocenterCondition.TOO_SHALLOW_ANGLE

    if select_better(previous, hypocenter) is not hypocenter:
        return HypocenterCondition.PREVIOUS_WAS_BETTER

    return HypocenterCondition.OK
