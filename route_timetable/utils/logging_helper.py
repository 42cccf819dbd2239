"""Console logging for the route timetable CLI and pipeline modules."""
import logging
import sys


def setup_logging(level=logging.INFO):
    """Send pipeline log records to stdout; ``--verbose`` passes DEBUG."""
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
