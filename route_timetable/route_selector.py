"""Select a route's trips and stop_times, split by direction of travel."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

import pandas as pd

from route_timetable.config import DIRECTION_IDS, ROUTE_MATCH_MODES
from route_timetable.feed import GTFSFeed
from route_timetable.utils.gtfs_helpers import require_columns

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RouteSelection:
    """Trips and stop_times of the matched route(s), keyed by direction_id."""

    route_ids: tuple[str, ...]
    trips_by_direction: dict[str, pd.DataFrame] = field(default_factory=dict)
    stop_times_by_direction: dict[str, pd.DataFrame] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return all(st.empty for st in self.stop_times_by_direction.values())


def match_routes(routes: pd.DataFrame, pattern: str, match_mode: str = "regex") -> pd.DataFrame:
    """Return the routes whose ``route_short_name`` matches *pattern*.

    ``"exact"`` compares whole strings, ``"contains"`` looks for a substring
    and ``"regex"`` requires the regular expression to match the full name.
    """
    if match_mode not in ROUTE_MATCH_MODES:
        raise ValueError(
            f"Unknown match mode {match_mode!r}; expected one of {sorted(ROUTE_MATCH_MODES)}"
        )
    require_columns(routes, ["route_id", "route_short_name"], "routes.txt")

    names = routes["route_short_name"].fillna("").astype(str).str.strip()
    pattern = str(pattern).strip()
    if match_mode == "exact":
        mask = names == pattern
    elif match_mode == "contains":
        mask = names.str.contains(pattern, regex=False)
    else:
        try:
            compiled = re.compile(pattern)
        except re.error as exc:
            raise ValueError(f"Invalid route pattern {pattern!r}: {exc}") from exc
        mask = names.map(lambda name: compiled.fullmatch(name) is not None)

    return routes[mask.to_numpy(dtype=bool)]


def _direction_ids(trips: pd.DataFrame) -> pd.Series:
    """Return direction_id as "0"/"1" strings; blanks fall back to "0"."""
    if "direction_id" not in trips.columns:
        if not trips.empty:
            logger.warning("trips.txt has no direction_id column; treating all trips as direction 0.")
        return pd.Series("0", index=trips.index, dtype=object)

    direction = trips["direction_id"].astype(str).str.strip()
    # Accept float-formatted ids such as "1.0"
    direction = direction.str.replace(r"\.0$", "", regex=True)
    missing = ~direction.isin(DIRECTION_IDS)
    if missing.any():
        logger.warning(
            "%d trip(s) have a missing or unknown direction_id; treating them as direction 0.",
            int(missing.sum()),
        )
        direction = direction.mask(missing, "0")
    return direction


def select_route(feed: GTFSFeed, pattern: str, match_mode: str = "regex") -> RouteSelection:
    """Collect the trips and stop_times of every route matching *pattern*.

    All matching routes are included. When nothing matches, an empty
    selection is returned and a warning is logged; callers should check
    :attr:`RouteSelection.is_empty` before building schedules.
    """
    matched = match_routes(feed.routes, pattern, match_mode)
    route_ids = tuple(matched["route_id"].astype(str))
    if not route_ids:
        logger.warning("No routes match %r (mode=%s).", pattern, match_mode)
    elif len(route_ids) > 1:
        logger.info("Pattern %r matches %d routes: %s", pattern, len(route_ids), list(route_ids))
    else:
        logger.info("Pattern %r matches route_id %s.", pattern, route_ids[0])

    trips = feed.trips[feed.trips["route_id"].astype(str).isin(route_ids)]
    trips = trips.assign(direction_id=_direction_ids(trips))

    trips_by_direction: dict[str, pd.DataFrame] = {}
    stop_times_by_direction: dict[str, pd.DataFrame] = {}
    for dir_id in DIRECTION_IDS:
        trips_dir = trips[trips["direction_id"] == dir_id]
        stop_times_dir = feed.stop_times[feed.stop_times["trip_id"].isin(trips_dir["trip_id"])]
        trips_by_direction[dir_id] = trips_dir.copy()
        stop_times_by_direction[dir_id] = stop_times_dir.copy()
        logger.info(
            "Direction %s: %d trips, %d stop_times.", dir_id, len(trips_dir), len(stop_times_dir)
        )

    return RouteSelection(
        route_ids=route_ids,
        trips_by_direction=trips_by_direction,
        stop_times_by_direction=stop_times_by_direction,
    )
