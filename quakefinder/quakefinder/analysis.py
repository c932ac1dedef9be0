from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Sequence

from .geometry import azimuth, azimuthal_gap
from .gate import check_conditions
from .intensity import IntensityTable
from .lifecycle import RecordLifecycleManager, RecordPool, now_millis
from .magnitude import MagnitudeEstimator
from .models import (
    Cluster,
    EarthquakeRecord,
    Hypocenter,
    HypocenterCondition,
    PickedEvent,
    SearchSettings,
)
from .picks import check_delta_p, select_picks
from .search import GridSearchEngine

logger = logging.getLogger(__name__)

THROTTLE_MIN_EVENTS = 24
THROTTLE_GROWTH = 1.2


@dataclass
class AnalysisContext:
    """Everything the analysis needs from the running system."""

    travel_times: object
    settings: SearchSettings = field(default_factory=SearchSettings)
    clusters: list[Cluster] = field(default_factory=list)
    clusters_lock: threading.Lock = field(default_factory=threading.Lock)
    pool: RecordPool = field(default_factory=RecordPool)
    intensity_table: IntensityTable = field(default_factory=IntensityTable)
    archive: Callable[[EarthquakeRecord], object] | None = None
    notifier: Callable[[EarthquakeRecord], object] | None = None
    clock: Callable[[], int] = now_millis


class EarthquakeAnalysis:
    def __init__(
        self,
        context: AnalysisContext,
        workers: int = 4,
        search_workers: int = 4,
        max_depth_km: float | None = None,
    ):
        self.context = context
        self.workers = max(1, workers)
        self.engine = GridSearchEngine(
            context.travel_times, max_depth_km=max_depth_km, workers=search_workers
        )
        self.lifecycle = RecordLifecycleManager(
            context.pool,
            archive=context.archive,
            notifier=context.notifier,
            clock=context.clock,
        )
        self.magnitudes = MagnitudeEstimator(context.travel_times, context.intensity_table)

    @property
    def earthquakes(self) -> list[EarthquakeRecord]:
        return self.context.pool.snapshot()

    def run(self) -> dict[int, HypocenterCondition | None]:
        """Search every cluster once, then refresh all magnitudes."""
        settings = self.context.settings
        with self.context.clusters_lock:
            clusters = list(self.context.clusters)

        def process(cluster: Cluster) -> HypocenterCondition | None:
            return self.process_cluster(cluster, cluster.picked_events(), settings)

        if settings.parallel and self.workers > 1 and len(clusters) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                conditions = list(pool.map(process, clusters))
        else:
            conditions = [process(cluster) for cluster in clusters]

        for record in self.context.pool.snapshot():
            self.magnitudes.estimate(record)
        return {cluster.id: condition for cluster, condition in zip(clusters, conditions)}

    def sweep(self) -> list[EarthquakeRecord]:
        return self.lifecycle.sweep()

    def process_cluster(
        self,
        cluster: Cluster,
        picks: Sequence[PickedEvent],
        settings: SearchSettings,
    ) -> HypocenterCondition | None:
        """Run one search pass for a cluster; None when the pass was skipped."""
        if not picks:
            return None

        record = cluster.earthquake
        if record is not None and len(picks) >= THROTTLE_MIN_EVENTS:
            if len(picks) < record.next_report_event_count:
                return None
            record.next_report_event_count = int(len(picks) * THROTTLE_GROWTH)
            logger.debug(
                "Next report: cluster=%s at_events=%d",
                cluster.id,
                record.next_report_event_count,
            )

        if cluster.last_epicenter_update == cluster.update_count:
            return None
        cluster.last_epicenter_update = cluster.update_count

        selected = select_picks(picks, settings.min_stations)
        if selected is None:
            return None
        cluster.selected = selected

        if not check_delta_p(selected, settings):
            logger.debug("Not enough delta-P: cluster=%s picks=%d", cluster.id, len(selected))
            return None

        return self.find_hypocenter(selected, cluster, settings)

    def find_hypocenter(
        self,
        selected: Sequence[PickedEvent],
        cluster: Cluster,
        settings: SearchSettings,
    ) -> HypocenterCondition:
        started = time.perf_counter()
        best = self.engine.find_hypocenter(selected, cluster, settings)
        hypocenter = None
        if best is not None:
            azimuths = [
                float(azimuth(best.lat, best.lon, pick.lat, pick.lon)) for pick in selected
            ]
            hypocenter = best.finish(len(selected), azimuthal_gap(azimuths))

        condition = self._post_process(selected, cluster, hypocenter, settings)
        logger.info(
            "Hypocenter search finished: cluster=%s condition=%s picks=%d gap_deg=%s elapsed_ms=%.0f",
            cluster.id,
            condition.name,
            len(selected),
            None if hypocenter is None else round(hypocenter.azimuthal_gap_deg, 1),
            (time.perf_counter() - started) * 1000.0,
        )
        return condition

    def _post_process(
        self,
        selected: Sequence[PickedEvent],
        cluster: Cluster,
        hypocenter: Hypocenter | None,
        settings: SearchSettings,
    ) -> HypocenterCondition:
        condition = check_conditions(
            selected,
            hypocenter,
            cluster.previous_hypocenter,
            cluster.root_lat,
            cluster.root_lon,
        )
        if condition is HypocenterCondition.OK:
            self.lifecycle.accept(cluster, hypocenter)
        else:
            pct = 0.0 if hypocenter is None else 100.0 * hypocenter.correctness
            logger.debug(
                "Hypocenter rejected: cluster=%s condition=%s pct=%.1f",
                cluster.id,
                condition.name,
                pct,
            )
            if pct <= settings.correctness_threshold and cluster.earthquake is not None:
                self.lifecycle.demote(cluster)

        if hypocenter is not None:
            cluster.previous_hypocenter = hypocenter
        return condition
