"""Travel-time functions consumed by the hypocenter search.

Both models expose ``p_time(depth_km, angle_deg)`` and ``s_time(depth_km,
angle_deg)``. Arguments may be scalars or numpy arrays (broadcast against each
other); the result is in seconds and holds ``NO_ARRIVAL`` (NaN) wherever the
model has no arrival for that depth/distance combination.
"""

import logging

import numpy as np

from .geometry import KM_PER_DEGREE

logger = logging.getLogger(__name__)

NO_ARRIVAL = float("nan")

P_PHASES = ["p", "P", "Pn", "Pdiff", "PKP", "PKIKP"]
S_PHASES = ["s", "S", "Sn", "Sdiff", "SKS", "SKIKS"]


def has_arrival(travel_time):
    return ~np.isnan(travel_time)


def _as_result(values: np.ndarray):
    return float(values) if values.ndim == 0 else values


class HomogeneousTravelTimes:
    """Straight-ray travel times through a constant-velocity half-space."""

    def __init__(
        self,
        vp_km_s: float = 6.0,
        vs_km_s: float = 3.5,
        max_depth_km: float = 600.0,
        max_angle_deg: float = 180.0,
    ):
        if vp_km_s <= 0 or vs_km_s <= 0:
            raise ValueError("vp_km_s and vs_km_s must be > 0")
        if max_depth_km <= 0:
            raise ValueError("max_depth_km must be > 0")
        self.vp_km_s = vp_km_s
        self.vs_km_s = vs_km_s
        self.max_depth_km = max_depth_km
        self.max_angle_deg = max_angle_deg

    def p_time(self, depth_km, angle_deg):
        return self._travel_time(depth_km, angle_deg, self.vp_km_s)

    def s_time(self, depth_km, angle_deg):
        return self._travel_time(depth_km, angle_deg, self.vs_km_s)

    def _travel_time(self, depth_km, angle_deg, velocity_km_s: float):
        depth = np.asarray(depth_km, dtype=float)
        angle = np.asarray(angle_deg, dtype=float)
        distance_km = angle * KM_PER_DEGREE
        tt = np.sqrt(distance_km**2 + depth**2) / velocity_km_s
        out_of_range = (
            (depth < 0.0)
            | (depth > self.max_depth_km)
            | (angle < 0.0)
            | (angle > self.max_angle_deg)
        )
        return _as_result(np.where(out_of_range, NO_ARRIVAL, tt))


class TravelTimeTable:
    """Travel times interpolated from a regular depth x angle grid."""

    def __init__(self, depths_km, angles_deg, p_times, s_times):
        from scipy.interpolate import RegularGridInterpolator

        depths = np.asarray(depths_km, dtype=float)
        angles = np.asarray(angles_deg, dtype=float)
        p = np.asarray(p_times, dtype=float)
        s = np.asarray(s_times, dtype=float)
        expected = (depths.size, angles.size)
        if depths.size < 2 or angles.size < 2:
            raise ValueError("travel-time grid needs at least two depths and two angles")
        if p.shape != expected or s.shape != expected:
            raise ValueError(
                f"travel-time grids must have shape {expected}, got {p.shape} and {s.shape}"
            )

        self.max_depth_km = float(depths[-1])
        self._p = RegularGridInterpolator(
            (depths, angles), p, bounds_error=False, fill_value=np.nan
        )
        self._s = RegularGridInterpolator(
            (depths, angles), s, bounds_error=False, fill_value=np.nan
        )

    def p_time(self, depth_km, angle_deg):
        return self._lookup(self._p, depth_km, angle_deg)

    def s_time(self, depth_km, angle_deg):
        return self._lookup(self._s, depth_km, angle_deg)

    @staticmethod
    def _lookup(interpolator, depth_km, angle_deg):
        depth, angle = np.broadcast_arrays(
            np.asarray(depth_km, dtype=float), np.asarray(angle_deg, dtype=float)
        )
        points = np.stack([depth.ravel(), angle.ravel()], axis=-1)
        return _as_result(interpolator(points).reshape(depth.shape))

    @classmethod
    def from_taup(
        cls,
        model: str = "iasp91",
        max_depth_km: float = 600.0,
        depth_step_km: float = 10.0,
        max_angle_deg: float = 180.0,
        angle_step_deg: float = 1.0,
    ) -> "TravelTimeTable":
        """Build first-arrival P and S grids with obspy's TauP."""
        from obspy.taup import TauPyModel

        taup = TauPyModel(model=model)
        depths = np.arange(0.0, max_depth_km + depth_step_km / 2, depth_step_km)
        angles = np.arange(0.0, max_angle_deg + angle_step_deg / 2, angle_step_deg)
        logger.info(
            "Building travel-time table: model=%s depths=%d angles=%d",
            model,
            depths.size,
            angles.size,
        )

        p_times = np.full((depths.size, angles.size), np.nan)
        s_times = np.full((depths.size, angles.size), np.nan)
        for i, depth in enumerate(depths):
            for j, angle in enumerate(angles):
                p_times[i, j] = _first_arrival(taup, depth, angle, P_PHASES)
                s_times[i, j] = _first_arrival(taup, depth, angle, S_PHASES)

        logger.info(
            "Travel-time table ready: p_missing=%d s_missing=%d",
            int(np.isnan(p_times).sum()),
            int(np.isnan(s_times).sum()),
        )
        return cls(depths, angles, p_times, s_times)


def _first_arrival(taup, depth_km: float, angle_deg: float, phases: list[str]) -> float:
    arrivals = taup.get_travel_times(
        source_depth_in_km=float(depth_km),
        distance_in_degree=float(angle_deg),
        phase_list=phases,
    )
    if not arrivals:
        return NO_ARRIVAL
    return float(min(arrival.time for arrival in arrivals))
