"""Build per-direction GTFS route timetables for one service date and area."""

from route_timetable.feed import GTFSFeed

__all__ = ["GTFSFeed"]
