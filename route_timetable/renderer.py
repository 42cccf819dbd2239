"""Turn timetable grids into display tables and export them.

Outputs:
    - One Excel workbook per route with a sheet per direction, or
    - one CSV / HTML file per direction.
"""

from __future__ import annotations

import html
import logging
from pathlib import Path
from typing import Mapping, Optional

import pandas as pd
from openpyxl.styles import Alignment
from openpyxl.utils import get_column_letter

from route_timetable.config import MAX_COLUMN_WIDTH, MISSING_TIME, TIME_FORMAT_OPTION
from route_timetable.schedule_builder import DirectionSchedule

logger = logging.getLogger(__name__)


def format_gtfs_time(time_str: str, time_format: str = "24") -> Optional[str]:
    """Re-format a GTFS time string.

    Args:
        time_str: Raw *arrival_time* or *departure_time* field.
        time_format: Either ``"12"`` for 12-hour *h:MM AM/PM* output or
            ``"24"`` for zero-padded 24-hour output.

    Returns:
        The re-formatted time, or ``None`` for an unparsable input.
    """
    if not isinstance(time_str, str):
        return None

    parts = time_str.strip().split(":")
    if len(parts) < 2:
        return None

    try:
        hours = int(parts[0])
        minutes = int(parts[1])
    except ValueError:
        return None

    if time_format == "12":
        # Past-midnight service has no 12-hour equivalent
        if hours >= 24:
            return f"{hours:02d}:{minutes:02d}"
        period = "AM" if hours < 12 else "PM"
        adjusted_hour = hours % 12
        if adjusted_hour == 0:
            adjusted_hour = 12
        return f"{adjusted_hour}:{minutes:02d} {period}"
    return f"{hours:02d}:{minutes:02d}"


def format_schedule(
    wide: pd.DataFrame,
    time_format: str = TIME_FORMAT_OPTION,
    missing_time: str = MISSING_TIME,
) -> pd.DataFrame:
    """Return a printable copy of a timetable grid.

    Columns become ``Stop #``, ``Stop`` and ``Trip 1..M``; absent cells show
    *missing_time*.
    """

    def _cell(value: object) -> str:
        if not isinstance(value, str):
            return missing_time
        return format_gtfs_time(value, time_format) or value

    display = pd.DataFrame(
        {f"Trip {trip}": wide[trip].map(_cell) for trip in wide.columns},
        index=wide.index,
    )
    display = display.reset_index().rename(columns={"stop_order": "Stop #", "stop_name": "Stop"})
    return display


def _sheet_name(direction_id: str) -> str:
    return f"Direction_{direction_id}"


def export_to_excel(
    schedules: Mapping[str, DirectionSchedule],
    out_file: Path,
    time_format: str = TIME_FORMAT_OPTION,
    missing_time: str = MISSING_TIME,
) -> Optional[Path]:
    """Write each direction's grid to its own sheet in *out_file*.

    Directions with an empty grid are skipped; nothing is written when every
    direction is empty.
    """
    sheets = {
        _sheet_name(dir_id): format_schedule(schedule.wide, time_format, missing_time)
        for dir_id, schedule in schedules.items()
        if not schedule.is_empty
    }
    if not sheets:
        logger.info("No data to export to %s.", out_file)
        return None

    out_file.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(out_file, engine="openpyxl") as writer:
        for sheet_name, display in sheets.items():
            display.to_excel(writer, index=False, sheet_name=sheet_name)
            worksheet = writer.sheets[sheet_name]

            # Adjust column widths & alignment
            for col_num, _ in enumerate(display.columns, 1):
                col_letter = get_column_letter(col_num)
                worksheet[f"{col_letter}1"].alignment = Alignment(
                    horizontal="left", vertical="top", wrap_text=True
                )
                for row_num in range(2, worksheet.max_row + 1):
                    worksheet[f"{col_letter}{row_num}"].alignment = Alignment(horizontal="left")

                lengths = [len(str(cell.value)) for cell in worksheet[col_letter] if cell.value]
                max_length = max(lengths) if lengths else 10
                worksheet.column_dimensions[col_letter].width = min(
                    max_length + 2, MAX_COLUMN_WIDTH
                )
    logger.info("Data exported to %s", out_file)
    return out_file


def export_to_csv(
    schedules: Mapping[str, DirectionSchedule],
    out_dir: Path,
    stem: str,
    time_format: str = TIME_FORMAT_OPTION,
    missing_time: str = MISSING_TIME,
) -> list[Path]:
    """Write one ``<stem>_direction_<id>.csv`` per non-empty direction."""
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for dir_id, schedule in schedules.items():
        if schedule.is_empty:
            logger.info("No data for direction %s. Skipping.", dir_id)
            continue
        out_path = out_dir / f"{stem}_direction_{dir_id}.csv"
        format_schedule(schedule.wide, time_format, missing_time).to_csv(out_path, index=False)
        logger.info("Wrote %s", out_path)
        written.append(out_path)
    return written


def render_html(
    schedule: DirectionSchedule,
    title: str = "",
    time_format: str = TIME_FORMAT_OPTION,
    missing_time: str = MISSING_TIME,
) -> str:
    """Return a standalone HTML table for one direction."""
    display = format_schedule(schedule.wide, time_format, missing_time)
    heading = html.escape(title or f"Direction {schedule.direction_id}")
    table = display.to_html(index=False, classes="timetable", border=0)
    return f"<h2>{heading}</h2>\n{table}\n"


def export_to_html(
    schedules: Mapping[str, DirectionSchedule],
    out_dir: Path,
    stem: str,
    time_format: str = TIME_FORMAT_OPTION,
    missing_time: str = MISSING_TIME,
) -> list[Path]:
    """Write one ``<stem>_direction_<id>.html`` per non-empty direction."""
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for dir_id, schedule in schedules.items():
        if schedule.is_empty:
            logger.info("No data for direction %s. Skipping.", dir_id)
            continue
        out_path = out_dir / f"{stem}_direction_{dir_id}.html"
        title = f"{stem} - Direction {dir_id}"
        out_path.write_text(
            render_html(schedule, title, time_format, missing_time), encoding="utf-8"
        )
        logger.info("Wrote %s", out_path)
        written.append(out_path)
    return written
