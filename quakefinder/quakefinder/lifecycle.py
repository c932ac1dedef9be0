from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterator

from .geometry import haversine_distance
from .models import Cluster, EarthquakeRecord, Hypocenter

logger = logging.getLogger(__name__)

# Minutes to keep a record, indexed by int(magnitude * 2): two entries per unit.
STORE_TABLE = (
    3, 3,  # M0
    3, 3,  # M1
    3, 3,  # M2
    5, 6,  # M3
    8, 16,  # M4
    30, 30,  # M5
    30, 30,  # M6
    60, 60,  # M7+
)
ANCHOR_DRIFT_KM = 400.0
QUIET_FRACTION = 0.25


def now_millis() -> int:
    return int(time.time() * 1000)


def retention_minutes(magnitude: float) -> int:
    index = max(0, min(len(STORE_TABLE) - 1, int(magnitude * 2.0)))
    return STORE_TABLE[index]


class RecordPool:
    """Insertion-ordered set of active records.

    Iteration works on a snapshot, so records may be added or removed while
    another thread iterates.
    """

    def __init__(self):
        self._records: list[EarthquakeRecord] = []
        self._lock = threading.Lock()

    def add(self, record: EarthquakeRecord) -> None:
        with self._lock:
            if not any(r is record for r in self._records):
                self._records.append(record)

    def remove(self, record: EarthquakeRecord) -> bool:
        with self._lock:
            for i, r in enumerate(self._records):
                if r is record:
                    del self._records[i]
                    return True
        return False

    def snapshot(self) -> list[EarthquakeRecord]:
        with self._lock:
            return list(self._records)

    def __iter__(self) -> Iterator[EarthquakeRecord]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, record: object) -> bool:
        with self._lock:
            return any(r is record for r in self._records)


class RecordLifecycleManager:
    def __init__(
        self,
        pool: RecordPool,
        archive: Callable[[EarthquakeRecord], object] | None = None,
        notifier: Callable[[EarthquakeRecord], object] | None = None,
        clock: Callable[[], int] = now_millis,
    ):
        self.pool = pool
        self.archive = archive
        self.notifier = notifier
        self.clock = clock
        self._sweep_lock = threading.Lock()

    def accept(self, cluster: Cluster, hypocenter: Hypocenter) -> EarthquakeRecord:
        """Create or update the record of `cluster` from an accepted hypocenter."""
        now = self.clock()
        record = cluster.earthquake
        if record is None:
            record = EarthquakeRecord(
                cluster=cluster,
                lat=hypocenter.lat,
                lon=hypocenter.lon,
                depth_km=hypocenter.depth_km,
                origin_millis=hypocenter.origin_millis,
            )
            record.update(hypocenter, now)
            self.pool.add(record)
            cluster.earthquake = record
            if self.notifier is not None:
                self.notifier(record)
            logger.info(
                "Earthquake created: record=%s cluster=%s lat=%.3f lon=%.3f depth_km=%.1f pct=%.1f",
                record.id,
                cluster.id,
                record.lat,
                record.lon,
                record.depth_km,
                record.pct,
            )
        else:
            record.update(hypocenter, now)

        drift = float(
            haversine_distance(
                hypocenter.lat, hypocenter.lon, cluster.anchor_lat, cluster.anchor_lon
            )
        )
        if drift > ANCHOR_DRIFT_KM:
            logger.debug("Moving anchor: cluster=%s drift_km=%.1f", cluster.id, drift)
            cluster.update_anchor(hypocenter)

        cluster.revision_id += 1
        record.revision_id = cluster.revision_id
        return record

    def demote(self, cluster: Cluster) -> EarthquakeRecord | None:
        """Detach the record of `cluster` and drop it from the active pool."""
        record = cluster.earthquake
        if record is None:
            return None
        self.pool.remove(record)
        cluster.earthquake = None
        logger.info("Earthquake demoted: record=%s cluster=%s", record.id, cluster.id)
        return record

    def is_expired(self, record: EarthquakeRecord, now: int) -> bool:
        magnitude, _mags = record.magnitude_snapshot()
        window_millis = retention_minutes(magnitude) * 60 * 1000
        return (
            now - record.origin_millis > window_millis
            and now - record.last_update_millis > QUIET_FRACTION * window_millis
        )

    def sweep(self, now: int | None = None) -> list[EarthquakeRecord]:
        """Archive and remove every quiescent record past its retention window.

        A record whose archive call fails stays in the pool for the next sweep.
        """
        if now is None:
            now = self.clock()
        retired: list[EarthquakeRecord] = []
        with self._sweep_lock:
            for record in self.pool.snapshot():
                if not self.is_expired(record, now):
                    continue
                if self.archive is not None:
                    try:
                        self.archive(record)
                    except Exception:
                        logger.exception("Archive failed: record=%s", record.id)
                        continue
                self.pool.remove(record)
                cluster = record.cluster
                if cluster is not None and cluster.earthquake is record:
                    cluster.earthquake = None
                retired.append(record)
                logger.info(
                    "Earthquake retired: record=%s magnitude=%.2f revision=%d",
                    record.id,
                    record.magnitude,
                    record.revision_id,
                )
        return retired
