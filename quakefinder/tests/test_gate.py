import numpy as np

from quakefinder.gate import check_conditions, count_quadrants, required_quadrants
from quakefinder.geometry import move_on_globe
from quakefinder.models import Hypocenter, HypocenterCondition, PickedEvent


def _hypocenter(correct: int, selected: int = 10, err: float = 100.0, lat: float = 0.0, lon: float = 0.0) -> Hypocenter:
    return Hypocenter(
        lat=lat,
        lon=lon,
        depth_km=10.0,
        origin_millis=0,
        err=err,
        correct_stations=correct,
        selected_count=selected,
    )


def _picks_at(bearings, distance_km: float = 100.0) -> list[PickedEvent]:
    lats, lons = move_on_globe(0.0, 0.0, distance_km, np.asarray(bearings, dtype=float))
    return [
        PickedEvent(p_wave_millis=0, lat=float(lat), lon=float(lon), elevation_m=0.0, max_ratio=30.0)
        for lat, lon in zip(lats, lons)
    ]


def _root_at(distance_km: float) -> tuple[float, float]:
    lat, lon = move_on_globe(0.0, 0.0, distance_km, 180.0)
    return float(lat), float(lon)


SURROUNDING = _picks_at([10.0, 100.0, 190.0, 280.0, 45.0, 135.0, 225.0, 315.0])
ONE_SIDED = _picks_at([50.0, 52.0, 55.0, 57.0, 59.0, 60.0, 53.0, 51.0])


def test_count_quadrants() -> None:
    assert count_quadrants(_hypocenter(8), SURROUNDING) == 8
    assert count_quadrants(_hypocenter(8), ONE_SIDED) == 1
    assert count_quadrants(_hypocenter(8), []) == 0


def test_required_quadrants() -> None:
    assert required_quadrants(10.0) == 3
    assert required_quadrants(1000.0) == 3
    assert required_quadrants(1500.0) == 2
    assert required_quadrants(4000.0) == 2
    assert required_quadrants(4500.0) == 1


def test_no_hypocenter_is_null() -> None:
    assert check_conditions(SURROUNDING, None, None, 0.0, 0.0) is HypocenterCondition.NULL


def test_distant_event_needs_more_stations() -> None:
    root = _root_at(2500.0)
    assert (
        check_conditions(SURROUNDING, _hypocenter(7), None, *root)
        is HypocenterCondition.DISTANT_EVENT_NOT_ENOUGH_STATIONS
    )
    assert check_conditions(SURROUNDING, _hypocenter(8), None, *root) is HypocenterCondition.OK


def test_not_enough_correct_stations() -> None:
    assert (
        check_conditions(SURROUNDING, _hypocenter(3), None, 0.0, 0.0)
        is HypocenterCondition.NOT_ENOUGH_CORRECT_STATIONS
    )


def test_one_sided_coverage_is_rejected() -> None:
    for distance in (0.0, 500.0, 1500.0, 3000.0):
        root = _root_at(distance)
        assert (
            check_conditions(ONE_SIDED, _hypocenter(8), None, *root)
            is HypocenterCondition.TOO_SHALLOW_ANGLE
        )


def test_one_sector_is_enough_far_from_root() -> None:
    # Deliberate: past 4000 km from the root a single sector is accepted, so a
    # one-sided network is only rejected between 1000 and 4000 km.
    root = _root_at(4500.0)
    assert check_conditions(ONE_SIDED, _hypocenter(8), None, *root) is HypocenterCondition.OK


def test_previous_was_better() -> None:
    previous = _hypocenter(10, err=1.0)
    current = _hypocenter(6, err=1.0)
    assert (
        check_conditions(SURROUNDING, current, previous, 0.0, 0.0)
        is HypocenterCondition.PREVIOUS_WAS_BETTER
    )
    assert check_conditions(SURROUNDING, previous, current, 0.0, 0.0) is HypocenterCondition.OK


def test_equal_previous_does_not_block() -> None:
    hypocenter = _hypocenter(8)
    assert check_conditions(SURROUNDING, hypocenter, hypocenter, 0.0, 0.0) is HypocenterCondition.OK
