"""
Typed records for parsed Pylontech history files.

Device values are kept in the fixed-point units printed by the BMS
(mV, mA, m°C); the `*_v`, `*_a` and `*_c` properties convert to physical units.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple


def _scaled(value: Optional[int]) -> Optional[float]:
    return value / 1000 if value is not None else None


@dataclass
class CellData:
    """Per-cell telemetry of one history record.

    All lists are parallel and indexed by cell position (cell number - 1).
    A cell whose voltage is missing or non-positive stays in place with
    `valid[i] = False` and `voltages_mv[i] = None`, so indexing never drifts.
    """
    voltages_mv: List[Optional[int]] = field(default_factory=list)
    temperatures_mc: List[Optional[int]] = field(default_factory=list)
    states: List[Tuple[str, str]] = field(default_factory=list)
    percentages: List[str] = field(default_factory=list)
    valid: List[bool] = field(default_factory=list)

    @property
    def cell_count(self) -> int:
        return len(self.voltages_mv)

    @property
    def valid_voltages_mv(self) -> List[int]:
        return [v for v, ok in zip(self.voltages_mv, self.valid) if ok and v is not None]

    def append(self, voltage_mv: Optional[int], temperature_mc: Optional[int],
               state1: str, state2: str, percentage: str) -> None:
        ok = voltage_mv is not None and voltage_mv > 0
        self.voltages_mv.append(voltage_mv if ok else None)
        self.temperatures_mc.append(temperature_mc)
        self.states.append((state1, state2))
        self.percentages.append(percentage)
        self.valid.append(ok)


@dataclass
class HistoryEntry:
    """One sampled telemetry record of the device history."""
    sequence_id: str
    day: str
    time: str

    voltage_mv: Optional[int] = None
    current_ma: Optional[int] = None
    temperature_mc: Optional[int] = None
    temp_low_mc: Optional[int] = None
    temp_high_mc: Optional[int] = None
    voltage_lowest_mv: Optional[int] = None
    voltage_highest_mv: Optional[int] = None

    # Opaque device tokens
    base_state: Optional[str] = None
    voltage_state: Optional[str] = None
    current_state: Optional[str] = None
    temp_state: Optional[str] = None
    soc: Optional[str] = None

    cell_data: Optional[CellData] = None

    # Filled by date correction
    corrected_at: Optional[datetime] = None
    corrected_day: Optional[str] = None
    corrected_time: Optional[str] = None
    original_day: Optional[str] = None
    original_time: Optional[str] = None
    use_corrected_date: bool = False

    @property
    def voltage_v(self) -> Optional[float]:
        return _scaled(self.voltage_mv)

    @property
    def current_a(self) -> Optional[float]:
        return _scaled(self.current_ma)

    @property
    def temperature_c(self) -> Optional[float]:
        return _scaled(self.temperature_mc)

    @property
    def raw_label(self) -> str:
        return f"{self.day} {self.time}"

    @property
    def display_label(self) -> str:
        if self.use_corrected_date:
            return f"{self.corrected_day} {self.corrected_time}"
        return self.raw_label


@dataclass
class Alert:
    """Threshold violation raised for a single history entry."""
    severity: str                   # "warning" | "critical"
    kind: str                       # "temperature" | "voltage"
    message: str
    timestamp_label: str
    source_entry: HistoryEntry = field(repr=False, compare=False)


@dataclass
class BatteryDocument:
    """One parsed history file, i.e. one physical battery unit."""
    info: Dict[str, str] = field(default_factory=dict)
    stats: Dict[str, str] = field(default_factory=dict)
    history: List[HistoryEntry] = field(default_factory=list)
    alerts: List[Alert] = field(default_factory=list)

    filename: Optional[str] = None
    file_date: Optional[datetime] = None
    has_corrected_dates: bool = False
    device_address: Optional[str] = None

    battery_id: str = ""
    display_name: str = ""
    loaded_at: Optional[datetime] = None

    @property
    def critical_alerts(self) -> int:
        return sum(1 for a in self.alerts if a.severity == "critical")

    @property
    def warning_alerts(self) -> int:
        return sum(1 for a in self.alerts if a.severity == "warning")
