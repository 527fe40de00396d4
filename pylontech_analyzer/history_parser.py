#!/usr/bin/env python3
"""
Pylontech history dump parser

The BMS "history" console dump is a loose text format:
- an `info` block and a `stat` block made of `key : value` lines
- a `data history` (or `datalist history`) block of whitespace separated
  records, one per sample, optionally followed by per-cell telemetry

Section headers are detected by substring, so device boilerplate around them
is tolerated. Malformed lines are skipped, the parser never raises.
"""

from __future__ import annotations

import re
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .config import CELL_COUNT
from .date_correction import correct_history_dates
from .identity import extract_file_datetime
from .models import BatteryDocument, CellData, HistoryEntry

logger = logging.getLogger(__name__)

RECORD_PATTERN = re.compile(r"^\d+\s+")
LEADING_INT = re.compile(r"^\s*[+-]?\d+")

MIN_RECORD_FIELDS = 10
CELL_BLOCK_MIN_FIELDS = 18
CELL_SEARCH_START = 17
CELL_BLOCK_MARKER = "50000"
CELL_RECORD_WIDTH = 6   # number, voltage, temperature, state1, state2, percentage


class Section(Enum):
    NONE = "none"
    INFO = "info"
    STATS = "stats"
    HISTORY = "history"


# Checked in order; the first matching predicate wins and the header line is consumed.
SECTION_TRANSITIONS: Tuple[Tuple[Section, Callable[[str], bool]], ...] = (
    (Section.INFO, lambda line: "info" in line),
    (Section.STATS, lambda line: "stat" in line),
    (Section.HISTORY, lambda line: "data history" in line or "datalist history" in line),
)


def next_section(line: str) -> Optional[Section]:
    """Section switched to by a header line, or None for a content line."""
    for section, matches in SECTION_TRANSITIONS:
        if matches(line):
            return section
    return None


def parse_int(token: Optional[str]) -> Optional[int]:
    """Leading integer of a device token ("52000", "-1200", "95%"), else None."""
    if token is None:
        return None
    match = LEADING_INT.match(token)
    return int(match.group()) if match else None


@dataclass(frozen=True)
class FieldSpec:
    index: int
    name: str
    numeric: bool
    unit: Optional[str] = None


# Position -> HistoryEntry attribute. Indices 14-15 and >= 17 are variable.
HISTORY_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(0, "sequence_id", False),
    FieldSpec(1, "day", False),
    FieldSpec(2, "time", False),
    FieldSpec(3, "voltage_mv", True, "mV"),
    FieldSpec(4, "current_ma", True, "mA"),
    FieldSpec(5, "temperature_mc", True, "m°C"),
    FieldSpec(6, "temp_low_mc", True, "m°C"),
    FieldSpec(7, "temp_high_mc", True, "m°C"),
    FieldSpec(8, "voltage_lowest_mv", True, "mV"),
    FieldSpec(9, "voltage_highest_mv", True, "mV"),
    FieldSpec(10, "base_state", False),
    FieldSpec(11, "voltage_state", False),
    FieldSpec(12, "current_state", False),
    FieldSpec(13, "temp_state", False),
    FieldSpec(16, "soc", False, "%"),
)


def parse_history_record(parts: List[str]) -> Optional[HistoryEntry]:
    """Map a split record onto a HistoryEntry using HISTORY_FIELDS."""
    if len(parts) < MIN_RECORD_FIELDS:
        return None

    values = {}
    for spec in HISTORY_FIELDS:
        token = parts[spec.index] if spec.index < len(parts) else None
        values[spec.name] = parse_int(token) if spec.numeric else token

    entry = HistoryEntry(**values)
    if len(parts) >= CELL_BLOCK_MIN_FIELDS:
        entry.cell_data = parse_cell_data(parts)
    return entry


def find_cell_block_start(parts: List[str]) -> Optional[int]:
    """Index of cell #1 in a record, or None when no cell block is found."""
    for i in range(CELL_SEARCH_START, len(parts) - 1):
        if parts[i] == CELL_BLOCK_MARKER and parts[i + 1] == "1":
            return i + 1

    for i in range(CELL_SEARCH_START, len(parts)):
        if parts[i] == "1" and i + CELL_RECORD_WIDTH - 1 < len(parts):
            return i
    return None


def parse_cell_data(parts: List[str]) -> Optional[CellData]:
    """Extract up to CELL_COUNT sequentially numbered cell records.

    Extraction stops at the first record whose number is out of sequence or
    which is truncated. Returns None when no cell record could be read.
    """
    start = find_cell_block_start(parts)
    if start is None:
        return None

    cells = CellData()
    for cell_index in range(CELL_COUNT):
        base = start + cell_index * CELL_RECORD_WIDTH
        if base + CELL_RECORD_WIDTH - 1 >= len(parts):
            break
        if parse_int(parts[base]) != cell_index + 1:
            break
        cells.append(
            voltage_mv=parse_int(parts[base + 1]),
            temperature_mc=parse_int(parts[base + 2]),
            state1=parts[base + 3],
            state2=parts[base + 4],
            percentage=parts[base + 5],
        )

    return cells if cells.cell_count else None


def _split_key_value(line: str) -> Optional[Tuple[str, str]]:
    key, _, value = line.partition(":")
    key, value = key.strip(), value.strip()
    if key and value:
        return key, value
    return None


class HistoryFileParser:
    """Single forward scan over the lines of a history dump."""

    def __init__(self):
        self.section = Section.NONE
        self.document = BatteryDocument()
        self.dropped_records = 0

    def feed(self, raw_line: str) -> None:
        line = raw_line.strip()

        section = next_section(line)
        if section is not None:
            self.section = section
            return

        if self.section in (Section.INFO, Section.STATS) and ":" in line:
            pair = _split_key_value(line)
            if pair is None:
                return
            key, value = pair
            if self.section is Section.INFO:
                self.document.info[key] = value
                if "device address" in key.lower():
                    self.document.device_address = value
            else:
                self.document.stats[key] = value

        elif self.section is Section.HISTORY and RECORD_PATTERN.match(line):
            entry = parse_history_record(line.split())
            if entry is None:
                self.dropped_records += 1
                logger.debug(f"Dropped short history record: {line[:40]!r}")
            else:
                self.document.history.append(entry)

    def parse(self, content: str, filename: Optional[str] = None) -> BatteryDocument:
        for raw_line in content.splitlines():
            self.feed(raw_line)

        document = self.document
        document.filename = filename
        document.file_date = extract_file_datetime(filename) if filename else None

        if document.file_date is not None and document.history:
            document.history = correct_history_dates(document.history, document.file_date)
            document.has_corrected_dates = True

        logger.info(
            f"Parsed {filename or '<content>'}: {len(document.info)} info keys, "
            f"{len(document.stats)} stats, {len(document.history)} records "
            f"({self.dropped_records} dropped)"
        )
        return document


def parse_file(content: str, filename: Optional[str] = None) -> BatteryDocument:
    """Parse a history dump into a BatteryDocument (dates corrected when possible)."""
    return HistoryFileParser().parse(content, filename)
