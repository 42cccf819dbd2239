from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest
from shapely.geometry import box

from route_timetable.feed import GTFSFeed
from route_timetable.utils.gtfs_helpers import load_feed

# Toy Transit feed:
#   X (Main St) and Y (Oak Ave) sit downtown, Z (Far Park) is well outside it.
#   WKD runs Mon-Fri, SAT runs Saturdays; on 2025-07-04 WKD is removed and SAT added.
SAMPLE_GTFS_DIR = Path(__file__).parent / "fixtures" / "sample_gtfs"

WEDNESDAY = "2025-05-14"
SATURDAY = "2025-05-17"
HOLIDAY = "2025-07-04"


@pytest.fixture
def sample_gtfs_dir() -> Path:
    return SAMPLE_GTFS_DIR


@pytest.fixture
def sample_feed() -> GTFSFeed:
    return load_feed(SAMPLE_GTFS_DIR)


@pytest.fixture
def downtown():
    """Polygon around stops X and Y, excluding Z."""
    return box(-77.05, 38.89, -77.00, 38.92)


def make_stop_times(rows: list[tuple[str, str, str]]) -> pd.DataFrame:
    """Build stop_times from (trip_id, stop_id, arrival_time) tuples."""
    df = pd.DataFrame(rows, columns=["trip_id", "stop_id", "arrival_time"])
    df["stop_sequence"] = df.groupby("trip_id").cumcount().add(1).astype(str)
    return df


def make_stops(names: dict[str, str]) -> pd.DataFrame:
    return pd.DataFrame({"stop_id": list(names), "stop_name": list(names.values())})
