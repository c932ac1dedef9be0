from __future__ import annotations

import argparse
from dataclasses import dataclass

from .models import SearchSettings


@dataclass
class Settings:
    poll_seconds: float = 1.0
    lookback_seconds: int = 600
    association_window_seconds: float = 60.0
    min_stations: int = 5
    p_wave_inaccuracy_threshold: float = 1000.0
    correctness_threshold: float = 40.0
    resolution: float = 40.0
    parallel: bool = True
    cluster_workers: int = 4
    search_workers: int = 4
    max_depth_km: float = 600.0
    travel_time_model: str = "homogeneous"
    taup_model: str = "iasp91"
    vp_km_s: float = 6.0
    vs_km_s: float = 3.5
    log_level: str = "INFO"
    pg_host: str = "localhost"
    pg_port: int = 5432
    pg_user: str = "seis"
    pg_password: str = "seis"
    pg_dbname: str = "seismic"

    def search_settings(self) -> SearchSettings:
        return SearchSettings(
            p_wave_inaccuracy_threshold=self.p_wave_inaccuracy_threshold,
            correctness_threshold=self.correctness_threshold,
            resolution=self.resolution,
            min_stations=self.min_stations,
            parallel=self.parallel,
        )


def parse_args(argv: list[str] | None = None) -> Settings:
    parser = argparse.ArgumentParser(description="Hypocenter finder")
    parser.add_argument("--poll-seconds", type=float, default=1.0)
    parser.add_argument("--lookback-seconds", type=int, default=600)
    parser.add_argument("--association-window-seconds", type=float, default=60.0)
    parser.add_argument("--min-stations", type=int, default=5)
    parser.add_argument("--p-wave-inaccuracy-ms", type=float, default=1000.0,
                        help="Residual below which a station counts as correct")
    parser.add_argument("--correctness-threshold", type=float, default=40.0,
                        help="Percent of correct stations required to keep a record")
    parser.add_argument("--resolution", type=float, default=40.0,
                        help="Search resolution level, 0-100")
    parser.add_argument("--no-parallel", action="store_true",
                        help="Evaluate clusters and search rings sequentially")
    parser.add_argument("--cluster-workers", type=int, default=4)
    parser.add_argument("--search-workers", type=int, default=4)
    parser.add_argument("--max-depth-km", type=float, default=600.0)
    parser.add_argument("--travel-time-model", choices=["homogeneous", "taup"],
                        default="homogeneous")
    parser.add_argument("--taup-model", default="iasp91")
    parser.add_argument("--vp-km-s", type=float, default=6.0)
    parser.add_argument("--vs-km-s", type=float, default=3.5)
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--pg-host", default="localhost")
    parser.add_argument("--pg-port", type=int, default=5432)
    parser.add_argument("--pg-user", default="seis")
    parser.add_argument("--pg-password", default="seis")
    parser.add_argument("--pg-db", default="seismic")
    args = parser.parse_args(argv)

    if not 0.0 <= args.resolution <= 100.0:
        parser.error("--resolution must be between 0 and 100")

    return Settings(
        poll_seconds=args.poll_seconds,
        lookback_seconds=args.lookback_seconds,
        association_window_seconds=args.association_window_seconds,
        min_stations=args.min_stations,
        p_wave_inaccuracy_threshold=args.p_wave_inaccuracy_ms,
        correctness_threshold=args.correctness_threshold,
        resolution=args.resolution,
        parallel=not args.no_parallel,
        cluster_workers=args.cluster_workers,
        search_workers=args.search_workers,
        max_depth_km=args.max_depth_km,
        travel_time_model=args.travel_time_model,
        taup_model=args.taup_model,
        vp_km_s=args.vp_km_s,
        vs_km_s=args.vs_km_s,
        log_level=args.log_level.upper(),
        pg_host=args.pg_host,
        pg_port=args.pg_port,
        pg_user=args.pg_user,
        pg_password=args.pg_password,
        pg_dbname=args.pg_db,
    )
