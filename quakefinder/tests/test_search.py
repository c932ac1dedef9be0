import pytest

from quakefinder.evaluator import CandidateEvaluator
from quakefinder.geometry import haversine_distance, km_to_degrees
from quakefinder.models import Cluster, PickedEvent, SearchSettings
from quakefinder.search import (
    PHASES,
    GridSearchEngine,
    SearchArena,
    angular_resolution,
    iterations_difference,
    resolution_multiplier,
)
from quakefinder.traveltime import HomogeneousTravelTimes

T0 = 1_767_225_600_000
SOURCE = (35.0, 139.0, 10.0)
STATIONS = [(35.5, 139.0), (34.3, 139.2), (35.1, 140.2), (34.8, 137.9)]


def _synthetic_picks(travel_times) -> list[PickedEvent]:
    lat, lon, depth = SOURCE
    picks = []
    for st_lat, st_lon in STATIONS:
        distance = float(haversine_distance(lat, lon, st_lat, st_lon))
        tt = travel_times.p_time(depth, km_to_degrees(distance))
        picks.append(
            PickedEvent(
                p_wave_millis=T0 + int(tt * 1000),
                lat=st_lat,
                lon=st_lon,
                elevation_m=0.0,
                max_ratio=50.0,
            )
        )
    return picks


def _cluster() -> Cluster:
    return Cluster(1, STATIONS[0][0], STATIONS[0][1])


def test_resolution_multiplier() -> None:
    assert resolution_multiplier(40.0) == pytest.approx(1.0)
    assert resolution_multiplier(0.0) == pytest.approx(0.2727, abs=1e-4)
    assert resolution_multiplier(100.0) == pytest.approx(4.818, abs=1e-3)


def test_iterations_difference_rounds_half_up() -> None:
    assert iterations_difference(40.0) == 0
    assert iterations_difference(47.0) == 1
    assert iterations_difference(33.0) == 0
    assert iterations_difference(100.0) == 4
    assert iterations_difference(0.0) == -3


def test_angular_resolution_narrows_with_distance() -> None:
    assert angular_resolution(0.0, 100.0, 1.0) == pytest.approx(3600.0)
    assert angular_resolution(1000.0, 16.0, 1.0) < angular_resolution(100.0, 16.0, 1.0)
    assert angular_resolution(100.0, 16.0, 2.0) == pytest.approx(angular_resolution(100.0, 16.0, 1.0) / 2.0)


def test_phases_run_coarse_to_fine() -> None:
    assert [phase.name for phase in PHASES] == ["far", "close", "close_to_root", "exact", "depth"]
    assert [phase.seed for phase in PHASES] == ["anchor", "best", "root", "best", "best"]
    resolutions = [phase.distance_resolution_km for phase in PHASES]
    assert resolutions == sorted(resolutions, reverse=True)


def test_best_at_seed_distance_uses_single_position() -> None:
    travel_times = HomogeneousTravelTimes()
    picks = _synthetic_picks(travel_times)
    engine = GridSearchEngine(travel_times)
    evaluator = CandidateEvaluator(travel_times, 1000.0)

    best = engine.best_at_distance(
        evaluator, SearchArena(picks), 0.0, 2.0, SOURCE[0], SOURCE[1], 10, 1.0
    )

    assert (best.lat, best.lon) == pytest.approx((SOURCE[0], SOURCE[1]))
    assert best.correct_stations == 4
    assert best.depth_km == pytest.approx(10.0, abs=1.0)


def test_find_hypocenter_recovers_synthetic_source() -> None:
    travel_times = HomogeneousTravelTimes()
    picks = _synthetic_picks(travel_times)
    engine = GridSearchEngine(travel_times, workers=1)
    settings = SearchSettings(min_stations=4, resolution=40.0, parallel=False)

    best = engine.find_hypocenter(picks, _cluster(), settings)

    assert best is not None
    assert best.correct_stations == 4
    assert float(haversine_distance(best.lat, best.lon, SOURCE[0], SOURCE[1])) < 10.0
    assert best.depth_km == pytest.approx(SOURCE[2], abs=10.0)
    assert best.origin_millis == pytest.approx(T0, abs=1000)


def test_find_hypocenter_is_deterministic_across_workers() -> None:
    travel_times = HomogeneousTravelTimes()
    picks = _synthetic_picks(travel_times)
    serial = GridSearchEngine(travel_times, workers=1)
    threaded = GridSearchEngine(travel_times, workers=4)

    first = serial.find_hypocenter(picks, _cluster(), SearchSettings(resolution=0.0, parallel=False))
    second = serial.find_hypocenter(picks, _cluster(), SearchSettings(resolution=0.0, parallel=False))
    third = threaded.find_hypocenter(picks, _cluster(), SearchSettings(resolution=0.0, parallel=True))

    assert first == second
    assert first == third


def test_find_hypocenter_without_picks() -> None:
    engine = GridSearchEngine(HomogeneousTravelTimes())
    assert engine.find_hypocenter([], _cluster(), SearchSettings()) is None


def test_engine_takes_depth_limit_from_travel_times() -> None:
    engine = GridSearchEngine(HomogeneousTravelTimes(max_depth_km=300.0))
    assert engine.max_depth_km == 300.0
    assert GridSearchEngine(HomogeneousTravelTimes(), max_depth_km=100.0).max_depth_km == 100.0
    with pytest.raises(ValueError):
        GridSearchEngine(HomogeneousTravelTimes(), workers=0)
