"""Battery identifiers, file timestamps and display names derived from filenames."""

from __future__ import annotations

import re
import logging
from datetime import datetime
from typing import Optional

from .models import BatteryDocument

logger = logging.getLogger(__name__)

# [H|K]<serial>_history_<YYYYMMDDHHMMSS>.txt
SERIAL_PATTERN = re.compile(r"[HK]([A-Z0-9]+)_history")
FILE_DATETIME_PATTERN = re.compile(r"[HK][A-Z0-9]+_history_(\d{14})\.txt$", re.IGNORECASE)
NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")

FALLBACK_ID_LENGTH = 12


def generate_battery_id(filename: str) -> str:
    """Serial number from a device filename, else a cleaned 12-char slug."""
    match = SERIAL_PATTERN.search(filename)
    if match:
        return match.group(1)
    return NON_ALNUM.sub("", filename)[:FALLBACK_ID_LENGTH]


def extract_file_datetime(filename: str) -> Optional[datetime]:
    """Creation datetime embedded in the filename (naive local time) or None."""
    match = FILE_DATETIME_PATTERN.search(filename)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), "%Y%m%d%H%M%S")
    except ValueError:
        logger.debug(f"Invalid calendar date in filename {filename}")
        return None


def generate_display_name(document: BatteryDocument) -> str:
    if document.device_address:
        return f"Battery {document.device_address}"
    address = document.info.get("Device address")
    if address:
        return f"Battery {address}"
    return f"Battery {document.battery_id[:8]}"
