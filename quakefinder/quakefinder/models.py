from __future__ import annotations

import enum
import threading
import uuid
from dataclasses import dataclass, field


@dataclass(frozen=True)
class PickedEvent:
    p_wave_millis: int
    lat: float
    lon: float
    elevation_m: float
    max_ratio: float


@dataclass(frozen=True)
class StationEvent:
    station_id: str
    lat: float
    lon: float
    elevation_m: float
    p_wave_millis: int
    max_ratio: float
    latest_sample_millis: int = field(default=0, compare=False)
    valid: bool = True

    def to_picked_event(self) -> PickedEvent:
        return PickedEvent(
            p_wave_millis=self.p_wave_millis,
            lat=self.lat,
            lon=self.lon,
            elevation_m=self.elevation_m,
            max_ratio=self.max_ratio,
        )


@dataclass
class CandidateHypocenter:
    lat: float = 0.0
    lon: float = 0.0
    depth_km: float = 0.0
    origin_millis: int = 0
    err: float = 0.0
    correct_stations: int = 0

    def finish(self, selected_count: int, azimuthal_gap_deg: float = 360.0) -> Hypocenter:
        return Hypocenter(
            lat=self.lat,
            lon=self.lon,
            depth_km=self.depth_km,
            origin_millis=self.origin_millis,
            err=self.err,
            correct_stations=self.correct_stations,
            selected_count=selected_count,
            azimuthal_gap_deg=azimuthal_gap_deg,
        )


@dataclass(frozen=True)
class Hypocenter:
    lat: float
    lon: float
    depth_km: float
    origin_millis: int
    err: float
    correct_stations: int
    selected_count: int
    azimuthal_gap_deg: float = 360.0

    @property
    def correctness(self) -> float:
        if self.selected_count <= 0:
            return 0.0
        return self.correct_stations / self.selected_count

    @property
    def wrong_events_count(self) -> int:
        return self.selected_count - self.correct_stations


@dataclass(frozen=True)
class SearchSettings:
    p_wave_inaccuracy_threshold: float = 1000.0
    correctness_threshold: float = 40.0
    resolution: float = 40.0
    min_stations: int = 5
    parallel: bool = True


class HypocenterCondition(enum.Enum):
    OK = "ok"
    NULL = "no_result"
    DISTANT_EVENT_NOT_ENOUGH_STATIONS = "distant_event_not_enough_stations"
    NOT_ENOUGH_CORRECT_STATIONS = "not_enough_correct_stations"
    TOO_SHALLOW_ANGLE = "too_shallow_angle"
    PREVIOUS_WAS_BETTER = "previous_was_better"


@dataclass(eq=False)
class EarthquakeRecord:
    cluster: Cluster | None
    lat: float
    lon: float
    depth_km: float
    origin_millis: int
    pct: float = 0.0
    azimuthal_gap_deg: float = 360.0
    magnitude: float = 0.0
    mags: list[float] = field(default_factory=list)
    revision_id: int = 0
    last_update_millis: int = 0
    next_report_event_count: int = 0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    mags_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def update(self, hypocenter: Hypocenter, now_millis: int) -> None:
        """Move the record to a new hypocenter without replacing the object."""
        self.lat = hypocenter.lat
        self.lon = hypocenter.lon
        self.depth_km = hypocenter.depth_km
        self.origin_millis = hypocenter.origin_millis
        self.pct = 100.0 * hypocenter.correctness
        self.azimuthal_gap_deg = hypocenter.azimuthal_gap_deg
        self.last_update_millis = now_millis

    def set_magnitudes(self, mags: list[float], magnitude: float) -> None:
        with self.mags_lock:
            self.mags = list(mags)
            self.magnitude = magnitude

    def magnitude_snapshot(self) -> tuple[float, list[float]]:
        with self.mags_lock:
            return self.magnitude, list(self.mags)


class Cluster:
    """A group of station events believed to belong to one earthquake."""

    def __init__(self, cluster_id: int, root_lat: float, root_lon: float):
        self.id = cluster_id
        self.root_lat = root_lat
        self.root_lon = root_lon
        self.anchor_lat = root_lat
        self.anchor_lon = root_lon
        self.events: dict[str, StationEvent] = {}
        self.update_count = 0
        self.last_epicenter_update = -1
        self.revision_id = 0
        self.earthquake: EarthquakeRecord | None = None

        self._selected: list[PickedEvent] = []
        self._selected_lock = threading.Lock()
        self._previous_hypocenter: Hypocenter | None = None
        self._previous_lock = threading.Lock()

    def __repr__(self) -> str:
        return (
            f"Cluster(id={self.id}, events={len(self.events)}, "
            f"root=({self.root_lat:.3f}, {self.root_lon:.3f}), update_count={self.update_count})"
        )

    def assign(self, event: StationEvent) -> bool:
        """Add or replace the event of one station; returns True on change."""
        previous = self.events.get(event.station_id)
        self.events[event.station_id] = event
        if previous == event:
            return False
        self.update_count += 1
        return True

    def valid_events(self) -> list[StationEvent]:
        return [event for event in self.events.values() if event.valid]

    def picked_events(self) -> list[PickedEvent]:
        return [event.to_picked_event() for event in self.valid_events()]

    def update_anchor(self, hypocenter: Hypocenter) -> None:
        self.anchor_lat = hypocenter.lat
        self.anchor_lon = hypocenter.lon

    @property
    def selected(self) -> list[PickedEvent]:
        with self._selected_lock:
            return list(self._selected)

    @selected.setter
    def selected(self, picks: list[PickedEvent]) -> None:
        with self._selected_lock:
            self._selected = list(picks)

    @property
    def previous_hypocenter(self) -> Hypocenter | None:
        with self._previous_lock:
            return self._previous_hypocenter

    @previous_hypocenter.setter
    def previous_hypocenter(self, hypocenter: Hypocenter | None) -> None:
        with self._previous_lock:
            self._previous_hypocenter = hypocenter
