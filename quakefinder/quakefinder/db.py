from datetime import datetime, timedelta, timezone

from .models import EarthquakeRecord, StationEvent
from .settings import Settings


def connect(settings: Settings):
    import psycopg2

    conn = psycopg2.connect(
        host=settings.pg_host,
        port=settings.pg_port,
        user=settings.pg_user,
        password=settings.pg_password,
        dbname=settings.pg_dbname,
    )
    conn.autocommit = True
    return conn


def to_millis(ts: datetime) -> int:
    return int(round(ts.timestamp() * 1000))


def from_millis(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)


def fetch_station_events(
    conn,
    lookback_seconds: int,
) -> list[StationEvent]:
    now = datetime.now(tz=timezone.utc)
    start_ts = now - timedelta(seconds=lookback_seconds)

    query = """
        SELECT p.net, p.sta, p.loc, s.lat, s.lon, s.elev_m,
               p.ts, p.amplitude_ratio, s.last_sample_ts
        FROM phase_picks p
        JOIN stations s
          ON s.net = p.net AND s.sta = p.sta AND s.loc = p.loc
        WHERE p.ts >= %s
          AND UPPER(p.phase) = 'P'
        ORDER BY p.ts ASC
    """

    with conn.cursor() as cur:
        cur.execute(query, (start_ts,))
        rows = cur.fetchall()

    return _rows_to_station_events(rows)


def archive_earthquake(conn, record: EarthquakeRecord) -> int:
    magnitude, mags = record.magnitude_snapshot()
    query = """
        INSERT INTO archived_earthquakes (
            record_id,
            origin_ts,
            lat,
            lon,
            depth_km,
            magnitude,
            magnitude_samples,
            pct,
            azimuthal_gap_deg,
            revision_id,
            last_update_ts
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        ON CONFLICT (record_id)
        DO UPDATE SET
            origin_ts = EXCLUDED.origin_ts,
            lat = EXCLUDED.lat,
            lon = EXCLUDED.lon,
            depth_km = EXCLUDED.depth_km,
            magnitude = EXCLUDED.magnitude,
            magnitude_samples = EXCLUDED.magnitude_samples,
            pct = EXCLUDED.pct,
            azimuthal_gap_deg = EXCLUDED.azimuthal_gap_deg,
            revision_id = EXCLUDED.revision_id,
            last_update_ts = EXCLUDED.last_update_ts
        RETURNING id
    """
    params = (
        record.id,
        from_millis(record.origin_millis),
        record.lat,
        record.lon,
        record.depth_km,
        magnitude,
        mags,
        record.pct,
        record.azimuthal_gap_deg,
        record.revision_id,
        from_millis(record.last_update_millis),
    )
    with conn.cursor() as cur:
        cur.execute(query, params)
        row = cur.fetchone()
    return int(row[0])


def _rows_to_station_events(rows) -> list[StationEvent]:
    per_station: dict[str, StationEvent] = {}
    for net, sta, loc, lat, lon, elev_m, ts, ratio, last_sample_ts in rows:
        station_id = f"{net}.{sta}.{loc}"
        p_wave_millis = to_millis(ts)
        latest_sample = to_millis(last_sample_ts) if last_sample_ts is not None else p_wave_millis
        # Rows arrive in time order; keep the first P pick of each station.
        if station_id in per_station:
            continue
        per_station[station_id] = StationEvent(
            station_id=station_id,
            lat=float(lat),
            lon=float(lon),
            elevation_m=float(elev_m or 0.0),
            p_wave_millis=p_wave_millis,
            max_ratio=float(ratio) if ratio is not None else 0.0,
            latest_sample_millis=latest_sample,
            valid=ratio is not None,
        )
    return list(per_station.values())
