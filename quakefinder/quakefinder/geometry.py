import numpy as np

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 2.0 * np.pi * EARTH_RADIUS_KM / 360.0


def haversine_distance(lat1, lon1, lat2, lon2):
    """Calculate great circle distance in km using haversine formula."""
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(np.subtract(lat2, lat1))
    dlon = np.radians(np.subtract(lon2, lon1))
    a = (
        np.sin(dlat / 2) ** 2
        + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2) ** 2
    )
    a = np.clip(a, 0.0, 1.0)
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def azimuth(lat1, lon1, lat2, lon2):
    """Calculate azimuth from point 1 to point 2 in degrees (0-360)."""
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlon = np.radians(np.subtract(lon2, lon1))
    x = np.sin(dlon) * np.cos(lat2_rad)
    y = np.cos(lat1_rad) * np.sin(lat2_rad) - np.sin(lat1_rad) * np.cos(
        lat2_rad
    ) * np.cos(dlon)
    az = np.degrees(np.arctan2(x, y))
    return (az + 360) % 360


def km_to_degrees(distance_km):
    """Convert a surface distance in km to an angular distance in degrees."""
    return np.asarray(distance_km, dtype=float) / KM_PER_DEGREE


def move_on_globe(lat: float, lon: float, distance_km: float, bearings_deg):
    """Destination point(s) reached from (lat, lon) along each bearing.

    `bearings_deg` may be a scalar or an array; the returned latitudes and
    longitudes have the same shape. Longitudes are normalised to [-180, 180).
    """
    delta = distance_km / EARTH_RADIUS_KM
    lat_rad = np.radians(lat)
    lon_rad = np.radians(lon)
    theta = np.radians(bearings_deg)

    sin_lat = np.sin(lat_rad)
    cos_lat = np.cos(lat_rad)
    sin_delta = np.sin(delta)
    cos_delta = np.cos(delta)

    lat2 = np.arcsin(
        np.clip(sin_lat * cos_delta + cos_lat * sin_delta * np.cos(theta), -1.0, 1.0)
    )
    lon2 = lon_rad + np.arctan2(
        np.sin(theta) * sin_delta * cos_lat,
        cos_delta - sin_lat * np.sin(lat2),
    )
    lon2_deg = (np.degrees(lon2) + 540.0) % 360.0 - 180.0
    return np.degrees(lat2), lon2_deg


def geodetic_distance(lat1, lon1, alt1_km, lat2, lon2, alt2_km):
    """Straight-line distance in km between two points given with altitude.

    Altitudes are positive upwards, so a hypocenter at depth `d` is passed
    as `-d`.
    """
    r1 = EARTH_RADIUS_KM + np.asarray(alt1_km, dtype=float)
    r2 = EARTH_RADIUS_KM + np.asarray(alt2_km, dtype=float)
    lat1_rad, lon1_rad = np.radians(lat1), np.radians(lon1)
    lat2_rad, lon2_rad = np.radians(lat2), np.radians(lon2)

    x1 = r1 * np.cos(lat1_rad) * np.cos(lon1_rad)
    y1 = r1 * np.cos(lat1_rad) * np.sin(lon1_rad)
    z1 = r1 * np.sin(lat1_rad)
    x2 = r2 * np.cos(lat2_rad) * np.cos(lon2_rad)
    y2 = r2 * np.cos(lat2_rad) * np.sin(lon2_rad)
    z2 = r2 * np.sin(lat2_rad)
    return np.sqrt((x2 - x1) ** 2 + (y2 - y1) ** 2 + (z2 - z1) ** 2)


def azimuthal_gap(station_azimuths: list[float]) -> float:
    """Calculate largest azimuthal gap."""
    if len(station_azimuths) < 2:
        return 360.0
    sorted_az = sorted(station_azimuths)
    gaps = [sorted_az[i + 1] - sorted_az[i] for i in range(len(sorted_az) - 1)]
    gaps.append(360.0 + sorted_az[0] - sorted_az[-1])
    return max(gaps)
