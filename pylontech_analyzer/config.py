"""
Runtime configuration and domain constants for the Pylontech history analyzer.

Environment variables:
- PYLONTECH_STORE_DIR: root folder of the persistence store
- PYLONTECH_MAX_WORKERS: thread pool size used when parsing several files
- PYLONTECH_LOG_LEVEL: logging level name (INFO, DEBUG, ...)
"""

from __future__ import annotations

import os
import logging
from datetime import timedelta
from pathlib import Path

# ---------------- Runtime config ----------------
STORE_DIR = Path(os.environ.get("PYLONTECH_STORE_DIR", str(Path.home() / ".pylontech_analyzer")))
MAX_WORKERS = int(os.environ.get("PYLONTECH_MAX_WORKERS", "4"))
LOG_LEVEL = os.environ.get("PYLONTECH_LOG_LEVEL", "INFO").upper()

LOG_FORMAT = "[%(levelname)s] %(message)s"

# ---------------- Domain constants ----------------
APP_VERSION = "Pylontech Parser v1.5"
EXPORT_FORMAT_VERSION = "1.0"

BATTERY_CYCLE_LIMIT = 8000          # nominal cycle life of a Pylontech pack
CELL_COUNT = 15                     # cells in a 48V Pylontech pack
HISTORY_ENTRY_INTERVAL = timedelta(minutes=1)

# Alert thresholds (°C / V)
DEFAULT_THRESHOLDS = {
    "temp_warning_c": 40.0,
    "temp_critical_c": 45.0,
    "voltage_high_v": 53.2,
    "voltage_low_v": 48.0,
    "voltage_high_critical_v": 54.5,
    "voltage_low_critical_v": 46.0,
}

CELL_IMBALANCE_THRESHOLD_MV = 20

# Display formats (fr-FR locale)
DATE_FORMAT = "%d/%m/%Y"
TIME_FORMAT = "%H:%M:%S"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging once for scripts and the Streamlit app."""
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
