from __future__ import annotations

import pandas as pd
import pytest

from conftest import WEDNESDAY, make_stop_times, make_stops
from route_timetable.config import TimetableConfig
from route_timetable.route_timetable_exporter import build_route_timetables
from route_timetable.schedule_builder import (
    build_direction_schedule,
    check_schedule_order,
    compute_stop_order,
    compute_trip_order,
    pivot_schedule,
)

STOPS = make_stops({"X": "Main St", "Y": "Oak Ave"})

TWO_TRIPS = [
    ("A", "X", "08:00:00"),
    ("A", "Y", "08:10:00"),
    ("B", "X", "08:30:00"),
    ("B", "Y", "08:45:00"),
]


def _orders(table: pd.DataFrame, key: str, order_col: str) -> dict[str, int]:
    return dict(zip(table[key], table[order_col]))


def test_two_trip_scenario() -> None:
    """Two trips over X then Y produce a 2 × 2 grid in time order."""
    schedule = build_direction_schedule(make_stop_times(TWO_TRIPS), STOPS, "0")

    assert _orders(schedule.stop_order, "stop_id", "stop_order") == {"X": 1, "Y": 2}
    assert _orders(schedule.trip_order, "trip_id", "trip_order") == {"A": 1, "B": 2}

    wide = schedule.wide
    assert list(wide.index) == [(1, "Main St"), (2, "Oak Ave")]
    assert list(wide.columns) == [1, 2]
    assert wide.loc[(1, "Main St"), 1] == "08:00:00"
    assert wide.loc[(2, "Oak Ave"), 1] == "08:10:00"
    assert wide.loc[(1, "Main St"), 2] == "08:30:00"
    assert wide.loc[(2, "Oak Ave"), 2] == "08:45:00"


def test_trip_skipping_a_stop_leaves_cell_absent() -> None:
    rows = TWO_TRIPS + [("C", "X", "09:00:00")]
    schedule = build_direction_schedule(make_stop_times(rows), STOPS, "0")

    assert _orders(schedule.trip_order, "trip_id", "trip_order") == {"A": 1, "B": 2, "C": 3}
    assert schedule.wide.loc[(1, "Main St"), 3] == "09:00:00"
    assert pd.isna(schedule.wide.loc[(2, "Oak Ave"), 3])


def test_orders_are_dense_and_follow_first_time() -> None:
    rows = [
        ("T3", "S3", "09:40:00"),
        ("T3", "S1", "09:55:00"),
        ("T1", "S2", "07:05:00"),
        ("T1", "S1", "07:20:00"),
        ("T2", "S2", "08:00:00"),
        ("T2", "S4", "26:10:00"),
    ]
    stop_order = compute_stop_order(make_stop_times(rows))
    trip_order = compute_trip_order(make_stop_times(rows))

    assert list(stop_order["stop_order"]) == [1, 2, 3, 4]
    assert list(stop_order["stop_id"]) == ["S2", "S1", "S3", "S4"]
    assert stop_order["first_time"].is_monotonic_increasing
    assert list(trip_order["trip_id"]) == ["T1", "T2", "T3"]
    assert list(trip_order["trip_order"]) == [1, 2, 3]


def test_ties_keep_first_appearance_order() -> None:
    rows = [
        ("T2", "Q", "08:00:00"),
        ("T1", "P", "08:00:00"),
        ("T1", "Q", "08:05:00"),
        ("T2", "P", "08:10:00"),
    ]
    stop_order = compute_stop_order(make_stop_times(rows))
    trip_order = compute_trip_order(make_stop_times(rows))

    assert list(stop_order["stop_id"]) == ["Q", "P"]
    assert list(trip_order["trip_id"]) == ["T2", "T1"]


def test_grid_shape_and_cell_presence() -> None:
    rows = [
        ("T1", "S1", "06:00:00"),
        ("T1", "S2", "06:10:00"),
        ("T1", "S3", "06:25:00"),
        ("T2", "S1", "06:30:00"),
        ("T2", "S3", "06:50:00"),
        ("T3", "S2", "07:15:00"),
    ]
    stops = make_stops({"S1": "One", "S2": "Two", "S3": "Three"})
    stop_times = make_stop_times(rows)
    schedule = build_direction_schedule(stop_times, stops, "1")

    assert schedule.wide.shape == (3, 3)
    stop_rank = _orders(schedule.stop_order, "stop_id", "stop_order")
    trip_rank = _orders(schedule.trip_order, "trip_id", "trip_order")
    present = {(stop_rank[s], trip_rank[t]) for t, s, _ in rows}
    for (stop_rank_value, _name), row in schedule.wide.iterrows():
        for trip_rank_value, value in row.items():
            assert pd.notna(value) == ((stop_rank_value, trip_rank_value) in present)


def test_missing_times_are_excluded_from_ordering() -> None:
    rows = TWO_TRIPS + [("A", "Z", ""), ("B", "Z", "soon")]
    stops = make_stops({"X": "Main St", "Y": "Oak Ave", "Z": "Far Park"})
    schedule = build_direction_schedule(make_stop_times(rows), stops, "0")

    assert set(schedule.stop_order["stop_id"]) == {"X", "Y"}
    assert schedule.wide.shape == (2, 2)


def test_rows_without_stop_or_trip_id_are_excluded() -> None:
    """A stop_times row with no stop_id or trip_id adds no row, column or rank."""
    rows = [
        ("A", "X", "08:00:00"),
        ("A", "Y", "08:10:00"),
        ("B", "X", "08:30:00"),
        ("C", None, "07:00:00"),
        ("D", " ", "06:50:00"),
        (None, "X", "06:00:00"),
    ]
    schedule = build_direction_schedule(make_stop_times(rows), STOPS, "0")

    assert _orders(schedule.trip_order, "trip_id", "trip_order") == {"A": 1, "B": 2}
    assert _orders(schedule.stop_order, "stop_id", "stop_order") == {"X": 1, "Y": 2}
    assert schedule.stop_order["stop_order"].dtype == "int64"
    assert schedule.wide.shape == (2, 2)
    assert list(schedule.wide.index) == [(1, "Main St"), (2, "Oak Ave")]


def test_unknown_stop_name_gets_placeholder() -> None:
    rows = [("A", "X", "08:00:00"), ("A", "W", "08:05:00")]
    schedule = build_direction_schedule(make_stop_times(rows), STOPS, "0")
    assert (2, "Unknown stop W") in list(schedule.wide.index)


def test_repeated_stop_keeps_earliest_visit() -> None:
    rows = [("L", "X", "08:00:00"), ("L", "Y", "08:10:00"), ("L", "X", "08:20:00")]
    schedule = build_direction_schedule(make_stop_times(rows), STOPS, "0")
    assert schedule.wide.loc[(1, "Main St"), 1] == "08:00:00"
    assert len(schedule.long) == 2


def test_departure_time_field() -> None:
    stop_times = make_stop_times(TWO_TRIPS)
    stop_times["departure_time"] = ["08:01:00", "08:11:00", "08:31:00", "08:46:00"]
    schedule = build_direction_schedule(stop_times, STOPS, "0", time_field="departure_time")
    assert schedule.wide.loc[(1, "Main St"), 1] == "08:01:00"


def test_empty_input_gives_header_only_grid() -> None:
    empty = make_stop_times([])
    schedule = build_direction_schedule(empty, STOPS, "0")

    assert schedule.is_empty
    assert schedule.wide.shape[0] == 0
    assert list(schedule.wide.index.names) == ["stop_order", "stop_name"]
    assert pivot_schedule(schedule.long).empty


def test_check_schedule_order_flags_backwards_trip() -> None:
    rows = TWO_TRIPS + [("C", "Y", "09:00:00"), ("C", "X", "09:20:00")]
    schedule = build_direction_schedule(make_stop_times(rows), STOPS, "0")
    assert check_schedule_order(schedule.wide, "0") == [3]
    assert check_schedule_order(build_direction_schedule(make_stop_times(TWO_TRIPS), STOPS, "0").wide) == []


# -----------------------------------------------------------------------------
# Whole-pipeline properties on the Toy Transit feed
# -----------------------------------------------------------------------------


def test_route_timetables_with_area(sample_feed, downtown) -> None:
    schedules = build_route_timetables(sample_feed, WEDNESDAY, "101", area=downtown)

    dir0 = schedules["0"]
    assert list(dir0.wide.index) == [(1, "Main St"), (2, "Oak Ave")]
    assert _orders(dir0.trip_order, "trip_id", "trip_order") == {"G": 1, "A": 2, "B": 3}
    assert dir0.wide.loc[(1, "Main St"), 1] == "07:00:00"
    assert pd.isna(dir0.wide.loc[(2, "Oak Ave"), 1])

    dir1 = schedules["1"]
    assert list(dir1.wide.index) == [(1, "Oak Ave"), (2, "Main St")]
    assert list(dir1.wide.columns) == [1]


def test_route_timetables_without_area_keeps_outside_stops(sample_feed) -> None:
    schedules = build_route_timetables(sample_feed, WEDNESDAY, "101")
    names = [name for _, name in schedules["0"].wide.index]
    assert names == ["Main St", "Far Park", "Oak Ave"]


def test_all_policy_changes_direction_zero(sample_feed, downtown) -> None:
    config = TimetableConfig(trip_policy="all")
    schedules = build_route_timetables(sample_feed, WEDNESDAY, "101", downtown, config)
    assert _orders(schedules["0"].trip_order, "trip_id", "trip_order") == {"A": 1, "B": 2}


def test_unmatched_route_gives_empty_tables(sample_feed) -> None:
    schedules = build_route_timetables(sample_feed, WEDNESDAY, "999")
    assert set(schedules) == {"0", "1"}
    for schedule in schedules.values():
        assert schedule.is_empty
        assert len(schedule.wide) == 0


def test_direction_independence(sample_feed, downtown) -> None:
    """Dropping direction-1 stop_times leaves the direction-0 grid unchanged."""
    full = build_route_timetables(sample_feed, WEDNESDAY, "101", downtown)

    dir1_trips = sample_feed.trips.loc[sample_feed.trips["direction_id"] == "1", "trip_id"]
    stop_times = sample_feed.stop_times[~sample_feed.stop_times["trip_id"].isin(dir1_trips)]
    reduced = build_route_timetables(
        sample_feed.replace(stop_times=stop_times), WEDNESDAY, "101", downtown
    )

    pd.testing.assert_frame_equal(full["0"].wide, reduced["0"].wide)
    assert reduced["1"].is_empty


def test_invalid_config_is_rejected(sample_feed) -> None:
    with pytest.raises(ValueError, match="trip_policy"):
        build_route_timetables(
            sample_feed, WEDNESDAY, "101", config=TimetableConfig(trip_policy="some")
        )
