"""Pivot one direction of a route into a stops × trips timetable grid.

Stops are ordered by the earliest time any trip serves them and trips by
their first served time, so the grid reads top-to-bottom in travel order and
left-to-right in departure order without relying on ``stop_sequence``.
Ranks are dense (1..N), and ties keep the order in which stops or trips first
appear in stop_times.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from route_timetable.config import DIRECTION_IDS, TIME_FIELD
from route_timetable.route_selector import RouteSelection
from route_timetable.utils.gtfs_helpers import parse_gtfs_time, require_columns

logger = logging.getLogger(__name__)

STOP_ORDER = "stop_order"
TRIP_ORDER = "trip_order"
FIRST_TIME = "first_time"
_TIME = "_time"


@dataclass(frozen=True)
class DirectionSchedule:
    """Everything derived for one direction of the selected route."""

    direction_id: str
    stop_order: pd.DataFrame
    trip_order: pd.DataFrame
    long: pd.DataFrame
    wide: pd.DataFrame

    @property
    def is_empty(self) -> bool:
        return self.wide.empty


def empty_wide_schedule() -> pd.DataFrame:
    """Return a header-only grid with the standard index and column names."""
    index = pd.MultiIndex.from_arrays(
        [pd.Index([], dtype="int64"), pd.Index([], dtype=object)],
        names=[STOP_ORDER, "stop_name"],
    )
    return pd.DataFrame(index=index, columns=pd.Index([], dtype="int64", name=TRIP_ORDER))


def _timed_rows(stop_times: pd.DataFrame, time_field: str) -> pd.DataFrame:
    """Attach parsed times and drop rows missing a time, trip_id or stop_id."""
    require_columns(stop_times, ["trip_id", "stop_id", time_field], "stop_times.txt")
    timed = stop_times.assign(**{_TIME: parse_gtfs_time(stop_times[time_field])})
    invalid = timed[_TIME].isna()
    for key in ("trip_id", "stop_id"):
        invalid |= timed[key].isna() | (timed[key].astype(str).str.strip() == "")
    if invalid.any():
        logger.warning(
            "%d stop_times row(s) lack a usable %s, trip_id or stop_id and are "
            "left out of the schedule.",
            int(invalid.sum()),
            time_field,
        )
    return timed[~invalid]


def _rank_by_first_time(timed: pd.DataFrame, key: str, order_col: str) -> pd.DataFrame:
    first = timed.groupby(key, sort=False)[_TIME].min().sort_values(kind="stable")
    return pd.DataFrame(
        {
            key: first.index.to_numpy(),
            FIRST_TIME: first.to_numpy(),
            order_col: np.arange(1, len(first) + 1, dtype="int64"),
        }
    )


def compute_stop_order(stop_times: pd.DataFrame, time_field: str = TIME_FIELD) -> pd.DataFrame:
    """Rank stops 1..N by the earliest time any trip serves them.

    Returns:
        DataFrame with ``stop_id``, ``first_time`` (Timedelta) and ``stop_order``.
    """
    return _rank_by_first_time(_timed_rows(stop_times, time_field), "stop_id", STOP_ORDER)


def compute_trip_order(stop_times: pd.DataFrame, time_field: str = TIME_FIELD) -> pd.DataFrame:
    """Rank trips 1..M by their first served time.

    Returns:
        DataFrame with ``trip_id``, ``first_time`` (Timedelta) and ``trip_order``.
    """
    return _rank_by_first_time(_timed_rows(stop_times, time_field), "trip_id", TRIP_ORDER)


def pivot_schedule(long_df: pd.DataFrame, value_col: str = TIME_FIELD) -> pd.DataFrame:
    """Reshape the long stop-time table into the stops × trips grid.

    The index is ``(stop_order, stop_name)`` and there is one column per
    ``trip_order``. A trip that does not serve a stop leaves the cell empty.
    """
    if long_df.empty:
        return empty_wide_schedule()
    wide = long_df.pivot(index=[STOP_ORDER, "stop_name"], columns=TRIP_ORDER, values=value_col)
    wide.columns.name = TRIP_ORDER
    return wide.sort_index()


def build_direction_schedule(
    stop_times: pd.DataFrame,
    stops: pd.DataFrame,
    direction_id: str,
    time_field: str = TIME_FIELD,
) -> DirectionSchedule:
    """Order, join and pivot the stop_times of one direction.

    Args:
        stop_times: stop_times rows of a single route direction.
        stops: stops table used for ``stop_name``.
        direction_id: Label recorded on the result ("0" or "1").
        time_field: ``arrival_time`` or ``departure_time``.

    Returns:
        A :class:`DirectionSchedule`; its grid is header-only when there are
        no usable stop_times.
    """
    timed = _timed_rows(stop_times, time_field)
    stop_order = _rank_by_first_time(timed, "stop_id", STOP_ORDER)
    trip_order = _rank_by_first_time(timed, "trip_id", TRIP_ORDER)

    if timed.empty:
        logger.info("Direction %s has no stop_times; returning an empty schedule.", direction_id)
        long_df = timed.assign(**{STOP_ORDER: [], TRIP_ORDER: [], "stop_name": []})
        return DirectionSchedule(
            direction_id, stop_order, trip_order, long_df.drop(columns=_TIME), empty_wide_schedule()
        )

    require_columns(stops, ["stop_id", "stop_name"], "stops.txt")
    names = stops[["stop_id", "stop_name"]].drop_duplicates("stop_id")

    long_df = (
        timed.merge(stop_order[["stop_id", STOP_ORDER]], on="stop_id", how="left")
        .merge(trip_order[["trip_id", TRIP_ORDER]], on="trip_id", how="left")
        .merge(names, on="stop_id", how="left")
    )
    long_df["stop_name"] = long_df["stop_name"].fillna(
        "Unknown stop " + long_df["stop_id"].astype(str)
    )
    long_df[time_field] = long_df[time_field].astype(str).str.strip()

    # A looping trip may visit a stop twice; the grid shows the first visit.
    long_df = long_df.sort_values(_TIME, kind="stable")
    repeats = long_df.duplicated(["stop_id", "trip_id"])
    if repeats.any():
        logger.info(
            "Direction %s: %d repeated stop visit(s) dropped; earliest visit kept.",
            direction_id,
            int(repeats.sum()),
        )
        long_df = long_df[~repeats]
    long_df = long_df.sort_values([TRIP_ORDER, STOP_ORDER]).drop(columns=_TIME)
    long_df = long_df.reset_index(drop=True)

    wide = pivot_schedule(long_df, time_field)
    logger.info(
        "Direction %s: %d stops × %d trips.", direction_id, wide.shape[0], wide.shape[1]
    )
    return DirectionSchedule(direction_id, stop_order, trip_order, long_df, wide)


def build_route_schedules(
    selection: RouteSelection,
    stops: pd.DataFrame,
    time_field: str = TIME_FIELD,
) -> dict[str, DirectionSchedule]:
    """Build a schedule for each direction of *selection* independently."""
    schedules: dict[str, DirectionSchedule] = {}
    for dir_id in DIRECTION_IDS:
        stop_times = selection.stop_times_by_direction.get(dir_id)
        if stop_times is None:
            stop_times = pd.DataFrame(columns=["trip_id", "stop_id", time_field])
        schedules[dir_id] = build_direction_schedule(stop_times, stops, dir_id, time_field)
    return schedules


def check_schedule_order(wide: pd.DataFrame, direction_id: str = "") -> list[int]:
    """Flag trips whose times go backwards down the stop order.

    This is a diagnostic only: stops are ordered by their earliest service, so
    a trip running a different pattern can legitimately disagree.

    Returns:
        The ``trip_order`` values with at least one backwards step.
    """
    violations: list[int] = []
    for trip in wide.columns:
        times = parse_gtfs_time(wide[trip].dropna())
        if (times.diff().dropna() < pd.Timedelta(0)).any():
            violations.append(int(trip))
            logger.warning(
                "Time order violation in direction '%s', trip %s: a later stop is served "
                "earlier than the stop above it.",
                direction_id,
                trip,
            )
    if not violations:
        logger.info("Schedule order check passed for direction '%s'.", direction_id)
    return violations
