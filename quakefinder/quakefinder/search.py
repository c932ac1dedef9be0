from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .evaluator import CandidateBatch, CandidateEvaluator, WorkingPicks
from .geometry import move_on_globe
from .models import CandidateHypocenter, Cluster, PickedEvent, SearchSettings
from .selector import best_index, prefer_first, select_best, select_better

logger = logging.getLogger(__name__)

MAX_DEPTH_KM = 600.0
FORCED_DEPTHS_KM = (0.0, 10.0)


@dataclass(frozen=True)
class SearchPhase:
    name: str
    seed: str
    distance_resolution_km: float
    max_distance_km: float
    depth_iterations: int
    horizontal_resolution: float
    scale_horizontal: bool = True


# Seeds: "anchor" and "root" of the cluster, or "best" for the current winner.
PHASES = (
    SearchPhase("far", "anchor", 100.0, 10000.0, 5, 100.0),
    SearchPhase("close", "best", 10.0, 1000.0, 6, 16.0),
    SearchPhase("close_to_root", "root", 10.0, 1000.0, 6, 16.0),
    SearchPhase("exact", "best", 2.0, 100.0, 7, 2.0, scale_horizontal=False),
    SearchPhase("depth", "best", 1.0, 10.0, 10, 0.4),
)


def resolution_multiplier(resolution: float) -> float:
    """Sampling density relative to the default resolution of 40.

    About 0.27 at 0, 1.0 at 40 and 4.8 at 100.
    """
    return (resolution * resolution + 600.0) / 2200.0


def iterations_difference(resolution: float) -> int:
    return math.floor((resolution - 40.0) / 14.0 + 0.5)


def angular_resolution(
    distance_km: float, horizontal_resolution: float, multiplier: float
) -> float:
    return (horizontal_resolution * 360.0) / (5.0 * distance_km + 10.0) / multiplier


class SearchArena:
    """Scratch space owned by one ring task."""

    def __init__(self, picks: Sequence[PickedEvent]):
        self.working_picks = WorkingPicks(picks)
        self.candidates_a = CandidateBatch()
        self.candidates_b = CandidateBatch()
        self.best: CandidateHypocenter | None = None
        self._origins = np.empty((0, len(picks)), dtype=np.int64)

    def origins(self, rows: int) -> np.ndarray:
        if self._origins.shape[0] < rows:
            self._origins = np.empty((rows, self._origins.shape[1]), dtype=np.int64)
        return self._origins[:rows]


class GridSearchEngine:
    """Coarse-to-fine grid search for the hypocenter of a pick set.

    Every phase scans rings around a seed point; each ring is swept in
    azimuth with a step that grows with distance from the seed, and every
    position gets a depth bisection followed by checks at the forced depths.
    Rings are independent and run on a thread pool; their winners are
    reduced in ring order so the result does not depend on the worker count.
    """

    def __init__(self, travel_times, max_depth_km: float | None = None, workers: int = 4):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.travel_times = travel_times
        if max_depth_km is None:
            max_depth_km = getattr(travel_times, "max_depth_km", MAX_DEPTH_KM)
        self.max_depth_km = float(max_depth_km)
        self.workers = workers

    def find_hypocenter(
        self,
        selected: Sequence[PickedEvent],
        cluster: Cluster,
        settings: SearchSettings,
    ) -> CandidateHypocenter | None:
        if not selected:
            return None

        evaluator = CandidateEvaluator(self.travel_times, settings.p_wave_inaccuracy_threshold)
        multiplier = resolution_multiplier(settings.resolution)
        extra_iterations = iterations_difference(settings.resolution)
        logger.debug(
            "Searching hypocenter: cluster=%s picks=%d multiplier=%.3f iterations_difference=%d",
            cluster.id,
            len(selected),
            multiplier,
            extra_iterations,
        )

        best: CandidateHypocenter | None = None
        for phase in PHASES:
            started = time.perf_counter()
            if phase.seed == "anchor" or (phase.seed == "best" and best is None):
                seed_lat, seed_lon = cluster.anchor_lat, cluster.anchor_lon
            elif phase.seed == "root":
                seed_lat, seed_lon = cluster.root_lat, cluster.root_lon
            else:
                seed_lat, seed_lon = best.lat, best.lon

            horizontal = phase.horizontal_resolution
            if phase.scale_horizontal:
                horizontal /= multiplier
            found = self.scan_area(
                evaluator,
                selected,
                distance_resolution=phase.distance_resolution_km / multiplier,
                max_distance=phase.max_distance_km,
                seed_lat=seed_lat,
                seed_lon=seed_lon,
                depth_iterations=max(1, phase.depth_iterations + extra_iterations),
                horizontal_resolution=horizontal,
                multiplier=multiplier,
                parallel=settings.parallel,
            )
            best = select_better(found, best)
            logger.debug(
                "Phase %s finished: cluster=%s elapsed_ms=%.1f correct=%s err=%s",
                phase.name,
                cluster.id,
                (time.perf_counter() - started) * 1000.0,
                None if best is None else best.correct_stations,
                None if best is None else round(best.err, 3),
            )
        return best

    def scan_area(
        self,
        evaluator: CandidateEvaluator,
        picks: Sequence[PickedEvent],
        distance_resolution: float,
        max_distance: float,
        seed_lat: float,
        seed_lon: float,
        depth_iterations: int,
        horizontal_resolution: float,
        multiplier: float,
        parallel: bool = True,
    ) -> CandidateHypocenter | None:
        distances = np.arange(0.0, max_distance, distance_resolution)

        def scan_ring(distance: float) -> CandidateHypocenter | None:
            arena = SearchArena(picks)
            return self.best_at_distance(
                evaluator,
                arena,
                float(distance),
                horizontal_resolution,
                seed_lat,
                seed_lon,
                depth_iterations,
                multiplier,
            )

        if parallel and self.workers > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                ring_winners = list(pool.map(scan_ring, distances))
        else:
            ring_winners = [scan_ring(distance) for distance in distances]
        return select_best(ring_winners)

    def best_at_distance(
        self,
        evaluator: CandidateEvaluator,
        arena: SearchArena,
        distance_km: float,
        horizontal_resolution: float,
        seed_lat: float,
        seed_lon: float,
        depth_iterations: int,
        multiplier: float,
    ) -> CandidateHypocenter | None:
        step = angular_resolution(distance_km, horizontal_resolution, multiplier)
        angles = np.arange(0.0, 360.0, step)
        lats, lons = move_on_globe(seed_lat, seed_lon, distance_km, angles)
        lats = np.atleast_1d(lats)
        lons = np.atleast_1d(lons)
        arena.working_picks.update_distances(lats, lons)

        count = angles.size
        steps = depth_iterations + len(FORCED_DEPTHS_KM)
        depth = np.zeros((count, steps))
        origin = np.zeros((count, steps), dtype=np.int64)
        err = np.zeros((count, steps))
        correct = np.zeros((count, steps), dtype=np.int64)
        valid = np.zeros((count, steps), dtype=bool)

        a = arena.candidates_a
        b = arena.candidates_b
        origins = arena.origins(count)
        lower = np.zeros(count)
        upper = np.full(count, self.max_depth_km)
        for iteration in range(depth_iterations):
            span = upper - lower
            evaluator.evaluate_batch(arena.working_picks, lower + span / 3.0, out=a, origins=origins)
            evaluator.evaluate_batch(arena.working_picks, lower + span * 2.0 / 3.0, out=b, origins=origins)

            a_better = prefer_first(a.correct, a.err, a.valid, b.correct, b.err, b.valid)
            depth[:, iteration] = np.where(a_better, a.depth_km, b.depth_km)
            origin[:, iteration] = np.where(a_better, a.origin_millis, b.origin_millis)
            err[:, iteration] = np.where(a_better, a.err, b.err)
            correct[:, iteration] = np.where(a_better, a.correct, b.correct)
            valid[:, iteration] = a.valid | b.valid

            # Keep the shallower half of the bracket when depth A wins.
            go_up = a_better | (~a.valid & ~b.valid)
            middle = (upper + lower) / 2.0
            upper = np.where(go_up, middle, upper)
            lower = np.where(go_up, lower, middle)

        for offset, forced_depth in enumerate(FORCED_DEPTHS_KM):
            column = depth_iterations + offset
            evaluator.evaluate_batch(arena.working_picks, forced_depth, out=a, origins=origins)
            depth[:, column] = a.depth_km
            origin[:, column] = a.origin_millis
            err[:, column] = a.err
            correct[:, column] = a.correct
            valid[:, column] = a.valid

        winner = best_index(
            correct.ravel().tolist(), err.ravel().tolist(), valid.ravel().tolist()
        )
        if winner is None:
            return None
        row, column = divmod(winner, steps)
        arena.best = CandidateHypocenter(
            lat=float(lats[row]),
            lon=float(lons[row]),
            depth_km=float(depth[row, column]),
            origin_millis=int(origin[row, column]),
            err=float(err[row, column]),
            correct_stations=int(correct[row, column]),
        )
        return arena.best
