import functools
import logging
import time

from quakefinder.analysis import AnalysisContext, EarthquakeAnalysis
from quakefinder.associator import ClusterAssociator
from quakefinder.db import archive_earthquake, connect, fetch_station_events
from quakefinder.lifecycle import now_millis
from quakefinder.settings import Settings, parse_args
from quakefinder.traveltime import HomogeneousTravelTimes, TravelTimeTable


def build_travel_times(settings: Settings):
    if settings.travel_time_model == "taup":
        return TravelTimeTable.from_taup(
            model=settings.taup_model, max_depth_km=settings.max_depth_km
        )
    return HomogeneousTravelTimes(
        vp_km_s=settings.vp_km_s,
        vs_km_s=settings.vs_km_s,
        max_depth_km=settings.max_depth_km,
    )


def build_analysis(settings: Settings, associator: ClusterAssociator, travel_times, archive=None):
    context = AnalysisContext(
        travel_times=travel_times,
        settings=settings.search_settings(),
        clusters=associator.clusters,
        clusters_lock=associator.lock,
        archive=archive,
    )
    return EarthquakeAnalysis(
        context,
        workers=settings.cluster_workers,
        search_workers=settings.search_workers,
        max_depth_km=settings.max_depth_km,
    )


def run_cycle(conn, settings, associator, analysis, logger: logging.Logger):
    events = fetch_station_events(conn, lookback_seconds=settings.lookback_seconds)
    clusters = associator.associate(events)

    conditions = analysis.run()
    retired = analysis.sweep()
    associator.prune(now_millis(), settings.lookback_seconds, analysis.context.pool)

    searched = sum(1 for condition in conditions.values() if condition is not None)
    logger.info(
        "Cycle complete: events=%d clusters=%d searched=%d earthquakes=%d retired=%d",
        len(events),
        len(clusters),
        searched,
        len(analysis.context.pool),
        len(retired),
    )
    return {
        "events": len(events),
        "clusters": len(clusters),
        "searched": searched,
        "earthquakes": len(analysis.context.pool),
        "retired": len(retired),
    }


def main() -> None:
    settings = parse_args()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("quakefinder.main")
    logger.info("Starting hypocenter finder service")

    try:
        conn = connect(settings)
    except Exception:
        logger.exception("Failed to connect to PostgreSQL")
        return

    try:
        travel_times = build_travel_times(settings)
    except Exception:
        logger.exception("Failed to build travel-time model")
        return

    associator = ClusterAssociator(
        window_seconds=settings.association_window_seconds,
        min_stations=settings.min_stations,
    )
    analysis = build_analysis(
        settings,
        associator,
        travel_times,
        archive=functools.partial(archive_earthquake, conn),
    )

    try:
        while True:
            try:
                run_cycle(conn, settings, associator, analysis, logger)
            except Exception:
                logger.exception("Hypocenter cycle failed")
            time.sleep(settings.poll_seconds)
    except KeyboardInterrupt:
        logger.info("Stopping hypocenter finder service")


if __name__ == "__main__":
    main()
