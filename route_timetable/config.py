"""Default settings for the route timetable pipeline.

Edit the constants in the CONFIGURATION block to change defaults; every one of
them can also be overridden from the command line.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# =============================================================================
# CONFIGURATION
# =============================================================================

GTFS_PATH = r"C:\Path\To\Your\GTFS_Folder"  # Folder of .txt files or a .zip archive
AREA_PATH: Optional[str] = None  # Polygon shapefile / GeoPackage; None = no spatial filter
OUTPUT_DIR = r"C:\Path\To\Your\Output_Folder"

GTFS_CRS = "EPSG:4326"
PROJECTED_CRS = "EPSG:2232"  # NAD83 / DC state plane (ft)
BUFFER_DISTANCE = 0.0
BUFFER_UNIT = "miles"  # "miles" | "feet" | "meters" | "kilometers"

# "any": keep a trip when at least one of its stops is inside the area.
# "all": keep a trip only when every one of its stops is inside the area.
TRIP_POLICY = "any"

ROUTE_MATCH_MODE = "regex"  # "exact" | "contains" | "regex"
TIME_FIELD = "arrival_time"  # "arrival_time" | "departure_time"
TIME_FORMAT_OPTION = "24"  # "12" or "24"
MISSING_TIME = "---"
MAX_COLUMN_WIDTH = 30
OUTPUT_FORMAT = "xlsx"  # "xlsx" | "csv" | "html"

# Required and optional GTFS files
REQUIRED_GTFS_FILES: tuple[str, ...] = (
    "routes.txt",
    "trips.txt",
    "stops.txt",
    "stop_times.txt",
)

OPTIONAL_GTFS_FILES: tuple[str, ...] = (
    "calendar.txt",
    "calendar_dates.txt",
    "agency.txt",
    "feed_info.txt",
)

DIRECTION_IDS: tuple[str, ...] = ("0", "1")

TRIP_POLICIES = frozenset({"any", "all"})
ROUTE_MATCH_MODES = frozenset({"exact", "contains", "regex"})
TIME_FIELDS = frozenset({"arrival_time", "departure_time"})
TIME_FORMATS = frozenset({"12", "24"})
OUTPUT_FORMATS = frozenset({"xlsx", "csv", "html"})
BUFFER_UNITS = frozenset({"miles", "feet", "meters", "kilometers"})


# =============================================================================
# RUN CONFIGURATION
# =============================================================================


@dataclass(frozen=True, slots=True)
class TimetableConfig:
    """Settings for one pipeline run.

    Attributes:
        trip_policy: Spatial trip-retention policy, ``"any"`` or ``"all"``.
        match_mode: How the route pattern is compared to ``route_short_name``.
        time_field: stop_times column used for ordering and grid cells.
        time_format: ``"12"`` or ``"24"`` hour display.
        missing_time: Placeholder for trips that skip a stop.
        output_format: Export format for the finished tables.
        output_dir: Folder for exported files.
    """

    trip_policy: str = TRIP_POLICY
    match_mode: str = ROUTE_MATCH_MODE
    time_field: str = TIME_FIELD
    time_format: str = TIME_FORMAT_OPTION
    missing_time: str = MISSING_TIME
    output_format: str = OUTPUT_FORMAT
    output_dir: Path = Path(OUTPUT_DIR)

    def validate(self) -> None:
        """Raise ``ValueError`` if any option is outside its allowed set."""
        checks = (
            ("trip_policy", self.trip_policy, TRIP_POLICIES),
            ("match_mode", self.match_mode, ROUTE_MATCH_MODES),
            ("time_field", self.time_field, TIME_FIELDS),
            ("time_format", self.time_format, TIME_FORMATS),
            ("output_format", self.output_format, OUTPUT_FORMATS),
        )
        for name, value, allowed in checks:
            if value not in allowed:
                raise ValueError(f"Invalid {name} {value!r}; expected one of {sorted(allowed)}")

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "TimetableConfig":
        """Build a validated config from parsed command-line arguments."""
        config = cls(
            trip_policy=args.trip_policy,
            match_mode=args.match_mode,
            time_field=args.time_field,
            time_format=args.time_format,
            output_format=args.format,
            output_dir=Path(args.outdir),
        )
        config.validate()
        return config
