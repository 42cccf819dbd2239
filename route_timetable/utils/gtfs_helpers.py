"""Reusable GTFS loading helpers."""

from __future__ import annotations

import logging
import os
import zipfile
from pathlib import Path
from typing import IO, Any, Mapping, Optional, Sequence, Union

import pandas as pd

from route_timetable.config import OPTIONAL_GTFS_FILES, REQUIRED_GTFS_FILES
from route_timetable.feed import GTFSFeed

logger = logging.getLogger(__name__)


def _read_table(
    source: Union[str, IO[bytes]],
    file_name: str,
    gtfs_path: str,
    dtype: str | type[str] | Mapping[str, Any],
) -> pd.DataFrame:
    """Read one GTFS table, translating pandas errors into readable ones."""
    try:
        return pd.read_csv(source, dtype=dtype, low_memory=False)
    except pd.errors.EmptyDataError as exc:
        raise ValueError(f"File '{file_name}' in '{gtfs_path}' is empty.") from exc
    except pd.errors.ParserError as exc:
        raise ValueError(f"Parser error in '{file_name}' in '{gtfs_path}': {exc}") from exc
    except OSError as exc:
        raise RuntimeError(f"OS error reading file '{file_name}' in '{gtfs_path}': {exc}") from exc


def _zip_members(zf: zipfile.ZipFile) -> dict[str, str]:
    """Map bare file names to archive member names (feeds are sometimes nested)."""
    members: dict[str, str] = {}
    for name in zf.namelist():
        if name.endswith("/"):
            continue
        members.setdefault(os.path.basename(name), name)
    return members


def load_gtfs_data(
    gtfs_path: str | Path,
    files: Optional[Sequence[str]] = None,
    dtype: str | type[str] | Mapping[str, Any] = str,
) -> dict[str, pd.DataFrame]:
    """Load one or more GTFS text files into memory.

    Loads required GTFS files and any optional files that exist. Raises on missing
    required files but not on optional ones.

    Args:
        gtfs_path: Folder containing the GTFS ``.txt`` files, or a ``.zip``
            archive of them.
        files: Explicit sequence of file names to load. If None, defaults to
            REQUIRED_GTFS_FILES plus any OPTIONAL_GTFS_FILES found.
        dtype: Passed to pandas.read_csv(dtype=…) to control column dtypes.

    Returns:
        Mapping of file stem → dataframe, e.g., data["trips"].

    Raises:
        OSError: Folder/archive missing or requested file not present.
        ValueError: Empty file or CSV parser failure.
        RuntimeError: OS error while reading a file.
    """
    gtfs_path = str(gtfs_path)
    if not os.path.exists(gtfs_path):
        raise OSError(f"The directory '{gtfs_path}' does not exist.")

    is_zip = os.path.isfile(gtfs_path) and zipfile.is_zipfile(gtfs_path)
    if not is_zip and not os.path.isdir(gtfs_path):
        raise OSError(f"'{gtfs_path}' is neither a GTFS folder nor a .zip archive.")

    data: dict[str, pd.DataFrame] = {}
    if is_zip:
        with zipfile.ZipFile(gtfs_path, "r") as zf:
            members = _zip_members(zf)
            if files is None:
                files = list(REQUIRED_GTFS_FILES) + [f for f in OPTIONAL_GTFS_FILES if f in members]
            missing = [file_name for file_name in files if file_name not in members]
            if missing:
                raise OSError(f"Missing GTFS files in '{gtfs_path}': {', '.join(missing)}")
            for file_name in files:
                with zf.open(members[file_name]) as handle:
                    df = _read_table(handle, file_name, gtfs_path, dtype)
                data[file_name.replace(".txt", "")] = df
                logger.info("Loaded %s (%d records).", file_name, len(df))
        return data

    # Default behavior: required + optional that actually exist
    if files is None:
        files = list(REQUIRED_GTFS_FILES) + [
            f for f in OPTIONAL_GTFS_FILES if os.path.exists(os.path.join(gtfs_path, f))
        ]

    missing = [
        file_name for file_name in files if not os.path.exists(os.path.join(gtfs_path, file_name))
    ]
    if missing:
        raise OSError(f"Missing GTFS files in '{gtfs_path}': {', '.join(missing)}")

    for file_name in files:
        df = _read_table(os.path.join(gtfs_path, file_name), file_name, gtfs_path, dtype)
        data[file_name.replace(".txt", "")] = df
        logger.info("Loaded %s (%d records).", file_name, len(df))

    return data


def load_feed(gtfs_path: str | Path) -> GTFSFeed:
    """Load a GTFS folder or archive into a :class:`GTFSFeed`.

    Raises:
        ValueError: Neither calendar.txt nor calendar_dates.txt is present.
    """
    data = load_gtfs_data(gtfs_path)
    if "calendar" not in data and "calendar_dates" not in data:
        raise ValueError(
            f"'{gtfs_path}' has neither calendar.txt nor calendar_dates.txt; "
            "service dates cannot be resolved."
        )
    feed = GTFSFeed.from_tables(data)
    logger.info("Feed loaded: %s.", feed.summary())
    return feed


def parse_gtfs_time(values: pd.Series) -> pd.Series:
    """Convert GTFS ``H:MM:SS`` strings to Timedeltas.

    Hours past 23 are valid (trips running after midnight). Blank or malformed
    values become ``NaT``.
    """
    parts = (
        values.astype(str).str.strip().str.extract(r"^(\d{1,3}):(\d{2}):(\d{2})$").astype(float)
    )
    total = parts[0] * 3600 + parts[1] * 60 + parts[2]
    return pd.to_timedelta(total, unit="s")


def require_columns(df: pd.DataFrame, required: Sequence[str], context: str) -> None:
    """Raise a clear error if required columns are missing."""
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns in {context}: {missing}")
