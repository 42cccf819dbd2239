"""Restrict a GTFS feed to the service running on one calendar date.

``calendar.txt`` gives each service a weekly pattern and a validity window;
``calendar_dates.txt`` overrides it for single dates (``exception_type`` 1
adds service, 2 removes it). A date outside every window simply produces an
empty feed.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Union

import pandas as pd

from route_timetable.feed import GTFSFeed
from route_timetable.utils.gtfs_helpers import require_columns

logger = logging.getLogger(__name__)

WEEKDAYS: tuple[str, ...] = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

ServiceDate = Union[str, date, datetime, pd.Timestamp]


def normalize_service_date(value: ServiceDate) -> str:
    """Return *value* as a GTFS ``YYYYMMDD`` string.

    Accepts ``date``/``datetime``/``Timestamp`` objects and ``YYYY-MM-DD`` or
    ``YYYYMMDD`` strings.
    """
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y%m%d")
    if isinstance(value, str):
        text = value.strip()
        for fmt in ("%Y-%m-%d", "%Y%m%d"):
            try:
                return datetime.strptime(text, fmt).strftime("%Y%m%d")
            except ValueError:
                continue
    raise ValueError(f"Unrecognised service date {value!r}; use YYYY-MM-DD or YYYYMMDD.")


def _flag(series: pd.Series) -> pd.Series:
    """Normalise a 0/1 or exception_type column to stripped strings."""
    return series.astype(str).str.strip()


def active_service_ids(feed: GTFSFeed, service_date: ServiceDate) -> set[str]:
    """Return the service_ids that run on *service_date*.

    A service runs when the date lies in its calendar window on an enabled
    weekday and is not removed by calendar_dates, or when calendar_dates adds
    it for that date.
    """
    ymd = normalize_service_date(service_date)
    weekday = WEEKDAYS[datetime.strptime(ymd, "%Y%m%d").weekday()]

    active: set[str] = set()
    calendar = feed.calendar
    if calendar is not None and not calendar.empty:
        require_columns(calendar, ["service_id", "start_date", "end_date", weekday], "calendar.txt")
        start = pd.to_numeric(calendar["start_date"], errors="coerce")
        end = pd.to_numeric(calendar["end_date"], errors="coerce")
        in_window = (start <= int(ymd)) & (end >= int(ymd))
        runs_today = _flag(calendar[weekday]) == "1"
        active = set(calendar.loc[in_window & runs_today, "service_id"].astype(str))

    calendar_dates = feed.calendar_dates
    if calendar_dates is not None and not calendar_dates.empty:
        require_columns(
            calendar_dates, ["service_id", "date", "exception_type"], "calendar_dates.txt"
        )
        today = calendar_dates[_flag(calendar_dates["date"]) == ymd]
        exception_type = _flag(today["exception_type"])
        added = set(today.loc[exception_type == "1", "service_id"].astype(str))
        removed = set(today.loc[exception_type == "2", "service_id"].astype(str))
        active = (active - removed) | added

    logger.info("%d service_id(s) active on %s.", len(active), ymd)
    return active


def filter_feed_by_date(feed: GTFSFeed, service_date: ServiceDate) -> GTFSFeed:
    """Return a feed holding only trips whose service runs on *service_date*."""
    services = active_service_ids(feed, service_date)
    trips = feed.trips[feed.trips["service_id"].astype(str).isin(services)]
    stop_times = feed.stop_times[feed.stop_times["trip_id"].isin(trips["trip_id"])]
    filtered = feed.restrict_to(trips, stop_times)
    if filtered.is_empty:
        logger.warning(
            "No trips run on %s; the feed is empty after date filtering.",
            normalize_service_date(service_date),
        )
    else:
        logger.info("After date filter: %s.", filtered.summary())
    return filtered
