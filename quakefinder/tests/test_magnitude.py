import pytest

from quakefinder.geometry import haversine_distance, km_to_degrees, move_on_globe
from quakefinder.intensity import IntensityTable
from quakefinder.magnitude import (
    S_WAVE_SETTLE_MILLIS,
    MagnitudeEstimator,
    aggregate_magnitude,
    amplitude_multiplier,
)
from quakefinder.models import Cluster, EarthquakeRecord, StationEvent
from quakefinder.traveltime import HomogeneousTravelTimes

T0 = 1_767_225_600_000


class _RatioTable:
    """Returns the amplified ratio itself as the magnitude."""

    def magnitude(self, geodetic_distance_km, ratio):
        return ratio


def _station(sta: str, distance_km: float, bearing: float, ratio: float, latest: int) -> StationEvent:
    lat, lon = move_on_globe(0.0, 0.0, distance_km, bearing)
    return StationEvent(
        station_id=f"AA.{sta}.",
        lat=float(lat),
        lon=float(lon),
        elevation_m=0.0,
        p_wave_millis=T0,
        max_ratio=ratio,
        latest_sample_millis=latest,
    )


def _record(cluster) -> EarthquakeRecord:
    return EarthquakeRecord(cluster=cluster, lat=0.0, lon=0.0, depth_km=10.0, origin_millis=T0)


def test_aggregate_magnitude_takes_lower_median() -> None:
    assert aggregate_magnitude([6.0, 2.0, 4.0, 3.0, 5.0]) == 4.0
    assert aggregate_magnitude([3.0, 1.0]) == 1.0
    assert aggregate_magnitude([2.5]) == 2.5


def test_amplitude_multiplier() -> None:
    assert amplitude_multiplier(0.0, s_wave_seen=False) == 2.0
    assert amplitude_multiplier(200.0, s_wave_seen=False) == 1.5
    assert amplitude_multiplier(800.0, s_wave_seen=False) == 1.0
    assert amplitude_multiplier(0.0, s_wave_seen=True) == 1.0


def test_station_magnitude_boosts_until_s_wave_settles() -> None:
    travel_times = HomogeneousTravelTimes()
    estimator = MagnitudeEstimator(travel_times, _RatioTable())
    record = _record(None)
    s_arrival = T0 + travel_times.s_time(10.0, km_to_degrees(200.0)) * 1000.0
    settled = _station("STA1", 200.0, 0.0, 10.0, latest=int(s_arrival) + S_WAVE_SETTLE_MILLIS + 1)
    early = _station("STA2", 200.0, 90.0, 10.0, latest=T0 + 1000)

    distance = float(haversine_distance(0.0, 0.0, early.lat, early.lon))
    assert estimator.station_magnitude(record, settled) == pytest.approx(10.0)
    assert estimator.station_magnitude(record, early) == pytest.approx(10.0 * (2.0 - distance / 400.0))


def test_estimate_sets_sorted_mags_and_median() -> None:
    cluster = Cluster(1, 0.0, 0.0)
    late = T0 + 3_600_000
    for i, ratio in enumerate([40.0, 10.0, 20.0]):
        cluster.assign(_station(f"STA{i}", 100.0, 120.0 * i, ratio, latest=late))
    cluster.assign(
        StationEvent("AA.BAD.", 0.5, 0.5, 0.0, T0, 999.0, latest_sample_millis=late, valid=False)
    )
    record = _record(cluster)

    magnitude = MagnitudeEstimator(HomogeneousTravelTimes(), _RatioTable()).estimate(record)

    assert magnitude == pytest.approx(20.0)
    snapshot_magnitude, mags = record.magnitude_snapshot()
    assert snapshot_magnitude == magnitude
    assert mags == pytest.approx([10.0, 20.0, 40.0])


def test_estimate_without_cluster_or_events() -> None:
    estimator = MagnitudeEstimator(HomogeneousTravelTimes(), IntensityTable())
    assert estimator.estimate(_record(None)) is None
    assert estimator.estimate(_record(Cluster(1, 0.0, 0.0))) is None


def test_intensity_grows_with_ratio_and_distance() -> None:
    table = IntensityTable()
    assert table.magnitude(100.0, 100.0) > table.magnitude(100.0, 10.0)
    assert table.magnitude(300.0, 10.0) > table.magnitude(100.0, 10.0)
    assert table.magnitude(100.0, 10.0) == pytest.approx(1.0 + 1.11 * 2.0 + 0.189 - 1.6)
    assert table.magnitude(0.0, 0.0) == table.magnitude(1.0, 1e-6)
