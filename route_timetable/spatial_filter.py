"""Restrict a GTFS feed to stops inside a polygon area of interest.

Inputs:
    - A polygon in EPSG:4326, usually prepared with :func:`load_area` from a
      shapefile or GeoPackage (reprojected, buffered, dissolved).

Trip retention is a policy choice. With ``"any"`` a trip that touches the
area at least once is kept (only its in-area stop visits survive); with
``"all"`` a trip is kept only when every stop it serves is inside the area.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import geopandas as gpd
import pandas as pd
from pyproj import CRS
from shapely.geometry import MultiPolygon, Polygon

from route_timetable.config import BUFFER_UNITS, GTFS_CRS, PROJECTED_CRS, TRIP_POLICIES
from route_timetable.feed import GTFSFeed
from route_timetable.utils.gtfs_helpers import require_columns

logger = logging.getLogger(__name__)

AreaGeometry = Union[Polygon, MultiPolygon]

METERS_PER_UNIT: dict[str, float] = {
    "miles": 1609.344,
    "feet": 0.3048,
    "meters": 1.0,
    "kilometers": 1000.0,
}


# =============================================================================
# AREA PREPARATION
# =============================================================================


def _buffer_in_crs_units(distance: float, unit: str, crs: CRS) -> float:
    """Convert *distance* in *unit* into the linear units of *crs*."""
    if unit not in BUFFER_UNITS:
        raise ValueError(f"Unknown buffer unit {unit!r}; expected one of {sorted(BUFFER_UNITS)}")
    if not crs.is_projected:
        raise ValueError(f"Buffering needs a projected CRS, got {crs.to_string()}")
    meters = distance * METERS_PER_UNIT[unit]
    unit_factor = crs.axis_info[0].unit_conversion_factor  # metres per CRS unit
    return meters / unit_factor


def load_area(
    path: Union[str, Path],
    buffer_distance: float = 0.0,
    buffer_unit: str = "miles",
    projected_crs: str = PROJECTED_CRS,
) -> AreaGeometry:
    """Read a polygon layer and return one (optionally buffered) area geometry.

    The layer is reprojected to *projected_crs* so the buffer is applied in
    real distances, dissolved into a single geometry and returned in
    EPSG:4326 to match GTFS stop coordinates.

    Raises:
        ValueError: The layer is empty or the buffer unit is unknown.
    """
    gdf = gpd.read_file(path)
    if gdf.empty:
        raise ValueError(f"Area layer '{path}' contains no features.")
    if gdf.crs is None:
        logger.warning("Area layer '%s' has no CRS; assuming %s.", path, GTFS_CRS)
        gdf = gdf.set_crs(GTFS_CRS)

    projected = gdf.to_crs(projected_crs)
    if buffer_distance:
        dist = _buffer_in_crs_units(buffer_distance, buffer_unit, CRS.from_user_input(projected_crs))
        logger.info("Buffering area by %s %s (%.2f CRS units).", buffer_distance, buffer_unit, dist)
        projected = projected.buffer(dist)

    dissolved = gpd.GeoSeries([projected.union_all()], crs=projected_crs).to_crs(GTFS_CRS)
    area = dissolved.iloc[0]
    if not isinstance(area, (Polygon, MultiPolygon)):
        raise ValueError(f"Area layer '{path}' does not describe a polygon ({area.geom_type}).")
    return area


# =============================================================================
# FEED FILTERING
# =============================================================================


def _stops_to_gdf(stops: pd.DataFrame) -> gpd.GeoDataFrame:
    require_columns(stops, ["stop_id", "stop_lat", "stop_lon"], "stops.txt")
    stops = stops.assign(
        stop_lat=pd.to_numeric(stops["stop_lat"], errors="coerce"),
        stop_lon=pd.to_numeric(stops["stop_lon"], errors="coerce"),
    )
    return gpd.GeoDataFrame(
        stops,
        geometry=gpd.points_from_xy(stops.stop_lon, stops.stop_lat),
        crs=GTFS_CRS,
    )


def stops_in_area(stops: pd.DataFrame, area: AreaGeometry) -> pd.DataFrame:
    """Return the rows of *stops* whose location intersects *area*.

    Stops without usable coordinates are treated as outside the area.
    """
    gdf = _stops_to_gdf(stops)
    mask = gdf.geometry.intersects(area) & gdf["stop_lat"].notna() & gdf["stop_lon"].notna()
    return stops[mask.to_numpy()]


def filter_feed_by_area(
    feed: GTFSFeed,
    area: AreaGeometry,
    trip_policy: str = "any",
) -> GTFSFeed:
    """Return a feed limited to stops inside *area* and the trips serving them.

    Args:
        feed: Feed to restrict.
        area: Polygon in EPSG:4326.
        trip_policy: ``"any"`` keeps trips with at least one stop in the area;
            ``"all"`` keeps trips whose stops are all in the area.

    Returns:
        A new feed whose stop_times reference only in-area stops and kept
        trips, with trips, routes and calendars pruned to match.
    """
    if trip_policy not in TRIP_POLICIES:
        raise ValueError(
            f"Unknown trip policy {trip_policy!r}; expected one of {sorted(TRIP_POLICIES)}"
        )

    inside_ids = stops_in_area(feed.stops, area)["stop_id"]
    logger.info("%d of %d stops fall inside the area.", len(inside_ids), len(feed.stops))

    stop_times = feed.stop_times
    in_area = stop_times["stop_id"].isin(inside_ids)
    if trip_policy == "any":
        kept_trip_ids = stop_times.loc[in_area, "trip_id"].unique()
    else:
        all_inside = in_area.groupby(stop_times["trip_id"]).all()
        kept_trip_ids = all_inside[all_inside].index

    trips = feed.trips[feed.trips["trip_id"].isin(kept_trip_ids)]
    stop_times = stop_times[in_area & stop_times["trip_id"].isin(trips["trip_id"])]
    filtered = feed.restrict_to(trips, stop_times)

    if filtered.is_empty:
        logger.warning("No trips serve the area of interest (policy=%s).", trip_policy)
    else:
        logger.info("After spatial filter (policy=%s): %s.", trip_policy, filtered.summary())
    return filtered
