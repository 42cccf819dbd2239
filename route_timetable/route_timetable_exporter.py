"""Export a route's timetable for one service date and area of interest.

The workflow reads a GTFS folder or .zip, keeps the trips running on the
chosen date, optionally clips the feed to a polygon area, selects the routes
whose short name matches a pattern and writes one stops × trips grid per
direction of travel.

Usage:
    route-timetable --gtfs ./gtfs.zip --date 2025-05-14 --route "101" \
        --area ./downtown.shp --buffer 0.25 --outdir ./out

Outputs:
    - ``route_<name>_<YYYYMMDD>.xlsx`` with ``Direction_0`` / ``Direction_1``
      sheets, or one CSV / HTML file per direction.
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import Mapping, Optional, Sequence

from route_timetable.config import (
    AREA_PATH,
    BUFFER_DISTANCE,
    BUFFER_UNIT,
    BUFFER_UNITS,
    GTFS_PATH,
    OUTPUT_DIR,
    OUTPUT_FORMAT,
    OUTPUT_FORMATS,
    PROJECTED_CRS,
    ROUTE_MATCH_MODE,
    ROUTE_MATCH_MODES,
    TIME_FIELD,
    TIME_FIELDS,
    TIME_FORMAT_OPTION,
    TIME_FORMATS,
    TRIP_POLICIES,
    TRIP_POLICY,
    TimetableConfig,
)
from route_timetable.date_filter import ServiceDate, filter_feed_by_date, normalize_service_date
from route_timetable.feed import GTFSFeed
from route_timetable.renderer import export_to_csv, export_to_excel, export_to_html
from route_timetable.route_selector import select_route
from route_timetable.schedule_builder import (
    DirectionSchedule,
    build_route_schedules,
    check_schedule_order,
)
from route_timetable.spatial_filter import AreaGeometry, filter_feed_by_area, load_area
from route_timetable.utils.gtfs_helpers import load_feed
from route_timetable.utils.logging_helper import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# PIPELINE
# =============================================================================


def build_route_timetables(
    feed: GTFSFeed,
    service_date: ServiceDate,
    route_pattern: str,
    area: Optional[AreaGeometry] = None,
    config: Optional[TimetableConfig] = None,
) -> dict[str, DirectionSchedule]:
    """Run the date → area → route → schedule stages on *feed*.

    Every stage returns a new feed; *feed* itself is never modified. Empty
    intermediate results flow through as empty tables.

    Args:
        feed: Full GTFS feed.
        service_date: The single date to build the timetable for.
        route_pattern: Matched against ``route_short_name``.
        area: Polygon in EPSG:4326, or None to skip the spatial filter.
        config: Run options; defaults to :class:`TimetableConfig`.

    Returns:
        ``{"0": DirectionSchedule, "1": DirectionSchedule}``.
    """
    config = config or TimetableConfig()
    config.validate()

    dated = filter_feed_by_date(feed, service_date)
    local = dated if area is None else filter_feed_by_area(dated, area, config.trip_policy)
    selection = select_route(local, route_pattern, config.match_mode)
    if selection.is_empty:
        logger.warning(
            "Route pattern %r has no stop_times on %s in the selected area.",
            route_pattern,
            normalize_service_date(service_date),
        )

    schedules = build_route_schedules(selection, local.stops, config.time_field)
    for dir_id, schedule in schedules.items():
        if not schedule.is_empty:
            check_schedule_order(schedule.wide, dir_id)
    return schedules


def _slugify(label: str) -> str:
    """Return a filesystem-friendly slug from a route pattern."""
    return re.sub(r"[^A-Za-z0-9]+", "_", str(label)).strip("_").lower() or "route"


def export_schedules(
    schedules: Mapping[str, DirectionSchedule],
    config: TimetableConfig,
    stem: str,
) -> list[Path]:
    """Write *schedules* in ``config.output_format`` under ``config.output_dir``."""
    out_dir = config.output_dir
    if config.output_format == "xlsx":
        out_file = export_to_excel(
            schedules, out_dir / f"{stem}.xlsx", config.time_format, config.missing_time
        )
        return [out_file] if out_file else []
    if config.output_format == "csv":
        return export_to_csv(schedules, out_dir, stem, config.time_format, config.missing_time)
    return export_to_html(schedules, out_dir, stem, config.time_format, config.missing_time)


# =============================================================================
# ARGUMENTS
# =============================================================================


def build_argparser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    p = argparse.ArgumentParser(
        description=(
            "Build a stops × trips timetable per direction for one GTFS route "
            "on one service date, optionally limited to an area of interest."
        )
    )
    p.add_argument("-g", "--gtfs", default=GTFS_PATH, help="GTFS folder or .zip archive.")
    p.add_argument("--date", required=True, help="Service date, YYYY-MM-DD or YYYYMMDD.")
    p.add_argument("-r", "--route", required=True, help="Pattern matched against route_short_name.")
    p.add_argument(
        "--match-mode",
        default=ROUTE_MATCH_MODE,
        choices=sorted(ROUTE_MATCH_MODES),
        help="How --route is compared to route_short_name.",
    )
    p.add_argument("-a", "--area", default=AREA_PATH, help="Polygon layer for the area of interest.")
    p.add_argument(
        "--buffer", type=float, default=BUFFER_DISTANCE, help="Buffer applied to the area."
    )
    p.add_argument(
        "--buffer-unit", default=BUFFER_UNIT, choices=sorted(BUFFER_UNITS), help="Unit of --buffer."
    )
    p.add_argument(
        "--projected-crs", default=PROJECTED_CRS, help="Projected CRS used for buffering."
    )
    p.add_argument(
        "--trip-policy",
        default=TRIP_POLICY,
        choices=sorted(TRIP_POLICIES),
        help="Keep trips with any stop in the area, or only those with all stops inside.",
    )
    p.add_argument(
        "--time-field", default=TIME_FIELD, choices=sorted(TIME_FIELDS), help="Time column used."
    )
    p.add_argument(
        "--time-format", default=TIME_FORMAT_OPTION, choices=sorted(TIME_FORMATS), help="12/24 h."
    )
    p.add_argument("-d", "--outdir", default=OUTPUT_DIR, help="Folder for output files.")
    p.add_argument(
        "-f", "--format", default=OUTPUT_FORMAT, choices=sorted(OUTPUT_FORMATS), help="Output type."
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return p


# =============================================================================
# MAIN
# =============================================================================


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Coordinate the end-to-end GTFS → timetable workflow."""
    parser = build_argparser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    gtfs_path = Path(args.gtfs)
    if not gtfs_path.exists():
        sys.exit(f"ERROR: GTFS path not found - {gtfs_path}")

    try:
        service_date = normalize_service_date(args.date)
        config = TimetableConfig.from_args(args)
    except ValueError as error:
        sys.exit(f"ERROR: {error}")

    try:
        feed = load_feed(gtfs_path)
    except (OSError, ValueError, RuntimeError) as error:
        logger.error("GTFS data loading error: %s", error)
        raise

    area = None
    if args.area:
        area = load_area(args.area, args.buffer, args.buffer_unit, args.projected_crs)

    schedules = build_route_timetables(feed, service_date, args.route, area, config)
    if all(schedule.is_empty for schedule in schedules.values()):
        logger.warning("No timetable rows for route %r on %s; nothing to write.", args.route, service_date)
        return

    stem = f"route_{_slugify(args.route)}_{service_date}"
    written = export_schedules(schedules, config, stem)
    logger.info("Finished: %d file(s) written to %s.", len(written), config.output_dir)


if __name__ == "__main__":
    main()
