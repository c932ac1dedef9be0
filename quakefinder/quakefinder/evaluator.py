from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from .geometry import haversine_distance, km_to_degrees
from .models import CandidateHypocenter, PickedEvent


def elevation_correction(elevation_m):
    """Travel-time correction in seconds for a station elevation in metres."""
    return np.asarray(elevation_m, dtype=float) / 6000.0


class WorkingPicks:
    """Pass-scoped copy of a pick set, annotated with candidate distances.

    ``distances_km`` has one row per candidate position and one column per
    pick. Instances are owned by a single worker and never shared.
    """

    def __init__(self, picks: Sequence[PickedEvent]):
        if not picks:
            raise ValueError("at least one pick is required")
        self.p_wave_millis = np.array([p.p_wave_millis for p in picks], dtype=np.int64)
        self.lats = np.array([p.lat for p in picks], dtype=float)
        self.lons = np.array([p.lon for p in picks], dtype=float)
        self.elevation_correction = elevation_correction([p.elevation_m for p in picks])
        self.distances_km = np.zeros((0, len(picks)), dtype=float)

    def __len__(self) -> int:
        return self.p_wave_millis.size

    def update_distances(self, lats, lons) -> np.ndarray:
        lats = np.atleast_1d(np.asarray(lats, dtype=float))
        lons = np.atleast_1d(np.asarray(lons, dtype=float))
        self.distances_km = haversine_distance(
            lats[:, None], lons[:, None], self.lats[None, :], self.lons[None, :]
        )
        return self.distances_km


@dataclass
class CandidateBatch:
    """Scores of candidates at a set of positions, one entry per position."""

    depth_km: np.ndarray = field(default_factory=lambda: np.zeros(0))
    origin_millis: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    err: np.ndarray = field(default_factory=lambda: np.zeros(0))
    correct: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.int64))
    valid: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=bool))

    def __len__(self) -> int:
        return self.depth_km.size


class CandidateEvaluator:
    """Scores candidate hypocenters against a fixed pick set.

    The adopted origin time of a candidate is the median of the origins
    predicted by each pick (the lower median for an even pick count). A pick
    is correct when its origin lies within the inaccuracy threshold of the
    adopted one; each residual is capped at the threshold before being
    squared into the error.
    """

    def __init__(self, travel_times, p_wave_inaccuracy_threshold: float):
        if p_wave_inaccuracy_threshold <= 0:
            raise ValueError("p_wave_inaccuracy_threshold must be > 0")
        self.travel_times = travel_times
        self.threshold = float(p_wave_inaccuracy_threshold)

    def evaluate_batch(
        self,
        picks: WorkingPicks,
        depths_km,
        out: CandidateBatch | None = None,
        origins: np.ndarray | None = None,
    ) -> CandidateBatch:
        distances = picks.distances_km
        rows = distances.shape[0]
        depths = np.broadcast_to(np.asarray(depths_km, dtype=float), (rows,))
        if out is None:
            out = CandidateBatch()
        if origins is None or origins.shape != distances.shape:
            origins = np.empty(distances.shape, dtype=np.int64)

        travel = self.travel_times.p_time(depths[:, None], km_to_degrees(distances))
        travel = np.asarray(travel, dtype=float).reshape(distances.shape)
        missing = np.isnan(travel)
        out.valid = ~missing.any(axis=1)

        travel = np.where(missing, 0.0, travel) + picks.elevation_correction[None, :]
        np.subtract(
            picks.p_wave_millis[None, :],
            (travel * 1000.0).astype(np.int64),
            out=origins,
        )
        origins.sort(axis=1)
        adopted = origins[:, (len(picks) - 1) // 2]

        residual = np.abs(origins - adopted[:, None]).astype(float)
        out.correct = (residual < self.threshold).sum(axis=1)
        capped = np.minimum(residual, self.threshold)
        out.err = (capped * capped).sum(axis=1)
        out.origin_millis = adopted.copy()
        out.depth_km = np.array(depths, dtype=float)
        return out

    def evaluate(
        self,
        candidate: CandidateHypocenter,
        lat: float,
        lon: float,
        depth_km: float,
        picks: WorkingPicks,
    ) -> bool:
        """Score a single position into `candidate`.

        Returns False, leaving `candidate` untouched, when the travel-time
        function has no arrival for one of the picks.
        """
        picks.update_distances([lat], [lon])
        batch = self.evaluate_batch(picks, [depth_km])
        if not batch.valid[0]:
            return False
        candidate.lat = float(lat)
        candidate.lon = float(lon)
        candidate.depth_km = float(depth_km)
        candidate.origin_millis = int(batch.origin_millis[0])
        candidate.err = float(batch.err[0])
        candidate.correct_stations = int(batch.correct[0])
        return True
