"""
Threshold alerts for history entries.

Thresholds are process-wide configuration: the collection regenerates the
alerts of every loaded battery whenever they change (see BatteryFleet).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from pydantic import BaseModel, ConfigDict

from .config import DEFAULT_THRESHOLDS
from .models import Alert, HistoryEntry

WARNING = "warning"
CRITICAL = "critical"

TEMPERATURE = "temperature"
VOLTAGE = "voltage"


class Thresholds(BaseModel):
    """Alert thresholds in °C and V."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    temp_warning_c: float = DEFAULT_THRESHOLDS["temp_warning_c"]
    temp_critical_c: float = DEFAULT_THRESHOLDS["temp_critical_c"]
    voltage_high_v: float = DEFAULT_THRESHOLDS["voltage_high_v"]
    voltage_low_v: float = DEFAULT_THRESHOLDS["voltage_low_v"]
    voltage_high_critical_v: float = DEFAULT_THRESHOLDS["voltage_high_critical_v"]
    voltage_low_critical_v: float = DEFAULT_THRESHOLDS["voltage_low_critical_v"]

    def updated(self, **changes: float) -> "Thresholds":
        """Validated copy with `changes` applied."""
        return Thresholds.model_validate({**self.model_dump(), **changes})


def _temperature_alert(entry: HistoryEntry, thresholds: Thresholds) -> Alert | None:
    temp_c = entry.temperature_c
    if temp_c is None or temp_c <= thresholds.temp_warning_c:
        return None
    return Alert(
        severity=CRITICAL if temp_c > thresholds.temp_critical_c else WARNING,
        kind=TEMPERATURE,
        message=f"High temperature: {temp_c:.1f}°C",
        timestamp_label=entry.display_label,
        source_entry=entry,
    )


def _voltage_alert(entry: HistoryEntry, thresholds: Thresholds) -> Alert | None:
    voltage_v = entry.voltage_v
    if voltage_v is None:
        return None
    high = voltage_v > thresholds.voltage_high_v
    if not high and not voltage_v < thresholds.voltage_low_v:
        return None
    critical = (voltage_v > thresholds.voltage_high_critical_v
                or voltage_v < thresholds.voltage_low_critical_v)
    return Alert(
        severity=CRITICAL if critical else WARNING,
        kind=VOLTAGE,
        message=f"{'High' if high else 'Low'} voltage: {voltage_v:.2f}V",
        timestamp_label=entry.display_label,
        source_entry=entry,
    )


def generate_alerts(history: Iterable[HistoryEntry], thresholds: Thresholds) -> List[Alert]:
    """Alerts in history order; an entry yields at most one temperature and one voltage alert."""
    alerts = []
    for entry in history:
        for check in (_temperature_alert, _voltage_alert):
            alert = check(entry, thresholds)
            if alert is not None:
                alerts.append(alert)
    return alerts


@dataclass
class AlertFilters:
    temperature: bool = True
    voltage: bool = True


def filter_alerts(alerts: Iterable[Alert], filters: AlertFilters) -> List[Alert]:
    enabled = {TEMPERATURE: filters.temperature, VOLTAGE: filters.voltage}
    return [a for a in alerts if enabled.get(a.kind, True)]
