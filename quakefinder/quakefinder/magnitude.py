from __future__ import annotations

import logging
from typing import Sequence

from .geometry import geodetic_distance, haversine_distance, km_to_degrees
from .models import EarthquakeRecord, StationEvent

logger = logging.getLogger(__name__)

S_WAVE_SETTLE_MILLIS = 8000


def aggregate_magnitude(mags: Sequence[float]) -> float:
    ordered = sorted(mags)
    return ordered[int((len(ordered) - 1) * 0.5)]


def amplitude_multiplier(distance_km: float, s_wave_seen: bool) -> float:
    """Boost for stations whose S wave has not been recorded yet."""
    if s_wave_seen:
        return 1.0
    return max(1.0, 2.0 - distance_km / 400.0)


class MagnitudeEstimator:
    def __init__(self, travel_times, intensity_table):
        self.travel_times = travel_times
        self.intensity_table = intensity_table

    def station_magnitude(self, record: EarthquakeRecord, event: StationEvent) -> float:
        distance_gc = float(haversine_distance(record.lat, record.lon, event.lat, event.lon))
        distance_ge = float(
            geodetic_distance(
                record.lat,
                record.lon,
                -record.depth_km,
                event.lat,
                event.lon,
                event.elevation_m / 1000.0,
            )
        )
        s_travel = self.travel_times.s_time(record.depth_km, km_to_degrees(distance_gc))
        # NaN when the S wave never arrives; the comparison is then False.
        expected_s_arrival = record.origin_millis + float(s_travel) * 1000.0
        s_wave_seen = event.latest_sample_millis >= expected_s_arrival + S_WAVE_SETTLE_MILLIS
        ratio = event.max_ratio * amplitude_multiplier(distance_gc, s_wave_seen)
        return self.intensity_table.magnitude(distance_ge, ratio)

    def estimate(self, record: EarthquakeRecord) -> float | None:
        """Recompute the magnitude of a record from its cluster's stations."""
        cluster = record.cluster
        if cluster is None:
            return None
        events = cluster.valid_events()
        if not events:
            return None

        mags = sorted(self.station_magnitude(record, event) for event in events)
        magnitude = aggregate_magnitude(mags)
        record.set_magnitudes(mags, magnitude)
        logger.debug(
            "Magnitude updated: record=%s magnitude=%.2f stations=%d",
            record.id,
            magnitude,
            len(mags),
        )
        return magnitude
