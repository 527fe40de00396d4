"""
Absolute timestamps for history entries.

The BMS clock prints truncated day/time fields. The file name carries the
dump creation time, so entries are re-dated backwards from it assuming the
last entry is the most recent one and a fixed sampling interval.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import List, Optional

from .config import DATE_FORMAT, HISTORY_ENTRY_INTERVAL, TIME_FORMAT
from .models import HistoryEntry


def correct_history_dates(history: List[HistoryEntry], file_date: Optional[datetime],
                          interval: timedelta = HISTORY_ENTRY_INTERVAL) -> List[HistoryEntry]:
    """Return re-dated copies of `history`; the input list and entries are left untouched."""
    if file_date is None or not history:
        return history

    last = len(history) - 1
    corrected = []
    for index, entry in enumerate(history):
        when = file_date - (last - index) * interval
        corrected.append(replace(
            entry,
            corrected_at=when,
            corrected_day=when.strftime(DATE_FORMAT),
            corrected_time=when.strftime(TIME_FORMAT),
            original_day=entry.day,
            original_time=entry.time,
            use_corrected_date=True,
        ))
    return corrected
