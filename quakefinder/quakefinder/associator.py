import logging
import threading

from .models import Cluster, StationEvent

logger = logging.getLogger(__name__)


class ClusterAssociator:
    """Groups station events into clusters by P arrival time.

    An event joins the cluster that already holds its station, or the first
    cluster whose earliest arrival lies within the association window. The
    remaining events are scanned in arrival order; a window containing at
    least `min_stations` stations seeds a new cluster rooted at its earliest
    station.
    """

    def __init__(self, window_seconds: float, min_stations: int):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.window_millis = int(window_seconds * 1000)
        self.min_stations = min_stations
        self.clusters: list[Cluster] = []
        self.lock = threading.Lock()
        self._next_id = 1

    def associate(self, events: list[StationEvent]) -> list[Cluster]:
        logger.info(
            "Starting association: events=%d clusters=%d window_ms=%d",
            len(events),
            len(self.clusters),
            self.window_millis,
        )
        ordered = sorted(events, key=lambda event: event.p_wave_millis)
        unassigned: list[StationEvent] = []
        updated = 0

        with self.lock:
            for event in ordered:
                cluster = self._find_cluster(event)
                if cluster is None:
                    unassigned.append(event)
                    continue
                if cluster.assign(event):
                    updated += 1

            created = self._seed_clusters(unassigned)
            self.clusters.extend(created)
            clusters = list(self.clusters)

        logger.info(
            "Association complete: clusters=%d created=%d updated_events=%d unassigned=%d",
            len(clusters),
            len(created),
            updated,
            len(unassigned) - sum(len(c.events) for c in created),
        )
        return clusters

    def prune(self, now_millis: int, max_age_seconds: float, active_records) -> list[Cluster]:
        """Drop clusters with no active record whose newest arrival is too old."""
        max_age_millis = max_age_seconds * 1000
        removed: list[Cluster] = []
        with self.lock:
            kept: list[Cluster] = []
            for cluster in self.clusters:
                newest = max(
                    (event.p_wave_millis for event in cluster.events.values()), default=0
                )
                has_record = cluster.earthquake is not None and cluster.earthquake in active_records
                if not has_record and now_millis - newest > max_age_millis:
                    removed.append(cluster)
                else:
                    kept.append(cluster)
            self.clusters[:] = kept
        if removed:
            logger.debug("Pruned clusters: removed=%d kept=%d", len(removed), len(kept))
        return removed

    def _find_cluster(self, event: StationEvent) -> Cluster | None:
        for cluster in self.clusters:
            if event.station_id in cluster.events:
                return cluster
        for cluster in self.clusters:
            start = min(e.p_wave_millis for e in cluster.events.values())
            if abs(event.p_wave_millis - start) <= self.window_millis:
                return cluster
        return None

    def _seed_clusters(self, events: list[StationEvent]) -> list[Cluster]:
        created: list[Cluster] = []
        used: set[str] = set()
        i = 0
        while i < len(events):
            seed = events[i]
            per_station: dict[str, StationEvent] = {}
            j = i
            while j < len(events) and events[j].p_wave_millis - seed.p_wave_millis <= self.window_millis:
                event = events[j]
                if event.station_id not in used:
                    per_station.setdefault(event.station_id, event)
                j += 1

            if len(per_station) >= self.min_stations:
                cluster = Cluster(self._next_id, seed.lat, seed.lon)
                self._next_id += 1
                for event in per_station.values():
                    cluster.assign(event)
                used.update(per_station)
                created.append(cluster)
                logger.info(
                    "Created cluster: id=%d stations=%d root=(%.3f, %.3f)",
                    cluster.id,
                    len(per_station),
                    cluster.root_lat,
                    cluster.root_lon,
                )
                i = j
                continue

            logger.debug(
                "Rejected window: seed_station=%s stations=%d/%d",
                seed.station_id,
                len(per_station),
                self.min_stations,
            )
            i += 1
        return created
