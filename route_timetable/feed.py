"""In-memory GTFS feed container shared by every pipeline stage."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Mapping, Optional

import pandas as pd

REQUIRED_TABLES: tuple[str, ...] = ("routes", "trips", "stops", "stop_times")


@dataclass(frozen=True)
class GTFSFeed:
    """The GTFS tables the timetable pipeline works on.

    Stages never modify a feed; they return a new one built with
    :meth:`replace`. ``calendar`` and ``calendar_dates`` are optional in GTFS,
    but at least one of them is needed to resolve service dates.
    """

    routes: pd.DataFrame
    trips: pd.DataFrame
    stops: pd.DataFrame
    stop_times: pd.DataFrame
    calendar: Optional[pd.DataFrame] = None
    calendar_dates: Optional[pd.DataFrame] = None

    @classmethod
    def from_tables(cls, data: Mapping[str, pd.DataFrame]) -> "GTFSFeed":
        """Build a feed from a ``{file stem: DataFrame}`` mapping."""
        missing = [name for name in REQUIRED_TABLES if name not in data]
        if missing:
            raise KeyError(f"GTFS tables missing from loaded data: {', '.join(missing)}")
        return cls(
            routes=data["routes"],
            trips=data["trips"],
            stops=data["stops"],
            stop_times=data["stop_times"],
            calendar=data.get("calendar"),
            calendar_dates=data.get("calendar_dates"),
        )

    def replace(self, **tables: Optional[pd.DataFrame]) -> "GTFSFeed":
        """Return a copy of the feed with the given tables swapped in."""
        return dataclasses.replace(self, **tables)

    def restrict_to(self, trips: pd.DataFrame, stop_times: pd.DataFrame) -> "GTFSFeed":
        """Return a feed limited to *trips* and *stop_times*.

        Stops, routes and calendar rows are pruned to those still referenced so
        that no table points at a record that no longer exists.
        """
        stops = self.stops[self.stops["stop_id"].isin(stop_times["stop_id"])]
        routes = self.routes[self.routes["route_id"].isin(trips["route_id"])]
        service_ids = trips["service_id"]
        calendar = self.calendar
        if calendar is not None:
            calendar = calendar[calendar["service_id"].isin(service_ids)]
        calendar_dates = self.calendar_dates
        if calendar_dates is not None:
            calendar_dates = calendar_dates[calendar_dates["service_id"].isin(service_ids)]
        return self.replace(
            routes=routes.copy(),
            trips=trips.copy(),
            stops=stops.copy(),
            stop_times=stop_times.copy(),
            calendar=None if calendar is None else calendar.copy(),
            calendar_dates=None if calendar_dates is None else calendar_dates.copy(),
        )

    @property
    def is_empty(self) -> bool:
        return self.trips.empty or self.stop_times.empty

    def summary(self) -> str:
        """One-line record count summary used in log messages."""
        return (
            f"{len(self.routes)} routes, {len(self.trips)} trips, "
            f"{len(self.stops)} stops, {len(self.stop_times)} stop_times"
        )
