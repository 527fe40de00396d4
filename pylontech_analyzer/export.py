"""Export formats: history CSV, single battery JSON, fleet JSON and report summary."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Sequence

import pandas as pd

from .alerts import CRITICAL, WARNING, Thresholds
from .config import APP_VERSION, EXPORT_FORMAT_VERSION
from .models import BatteryDocument
from .serialization import document_to_dict

CSV_COLUMNS = ["Date", "Heure", "Tension(V)", "Courant(A)", "Temperature(°C)",
               "SOC", "Etat", "TempAlert", "VoltageAlert"]


def export_filename(kind: str, ext: str, now: Optional[datetime] = None) -> str:
    """e.g. pylontech-export-2024-01-15T14-30-00.csv"""
    stamp = (now or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S")
    return f"pylontech-{kind}-{stamp}.{ext}"


def _fmt(value: Optional[float], decimals: int) -> str:
    return "" if value is None else f"{value:.{decimals}f}"


def _flag(value: bool) -> str:
    return "true" if value else "false"


def history_to_csv(document: BatteryDocument, thresholds: Thresholds) -> str:
    rows = []
    for entry in document.history:
        temp_c, voltage_v = entry.temperature_c, entry.voltage_v
        temp_alert = temp_c is not None and temp_c > thresholds.temp_warning_c
        voltage_alert = voltage_v is not None and (
            voltage_v > thresholds.voltage_high_v or voltage_v < thresholds.voltage_low_v)
        rows.append([
            entry.day, entry.time,
            _fmt(voltage_v, 2), _fmt(entry.current_a, 2), _fmt(temp_c, 1),
            entry.soc or "", entry.base_state or "",
            _flag(temp_alert), _flag(voltage_alert),
        ])
    frame = pd.DataFrame(rows, columns=CSV_COLUMNS, dtype=str)
    return frame.to_csv(index=False, lineterminator="\n")


def document_to_export(document: BatteryDocument, thresholds: Thresholds,
                       now: Optional[datetime] = None) -> Dict[str, Any]:
    data = document_to_dict(document)
    history = []
    for entry, item in zip(document.history, data["history"]):
        history.append({
            **item,
            "temperatureC": entry.temperature_c,
            "voltageV": entry.voltage_v,
            "currentA": entry.current_a,
        })
    return {
        "exportDate": (now or datetime.now()).isoformat(),
        "systemInfo": data["info"],
        "statistics": data["stats"],
        "alerts": data["alerts"],
        "history": history,
        "thresholds": thresholds.model_dump() if thresholds is not None else None,
    }


def fleet_to_export(documents: Sequence[BatteryDocument], thresholds: Optional[Thresholds] = None,
                    now: Optional[datetime] = None) -> Dict[str, Any]:
    stamp = (now or datetime.now()).isoformat()
    payload = {
        "exportDate": stamp,
        "version": EXPORT_FORMAT_VERSION,
        "appVersion": APP_VERSION,
        "batteriesCount": len(documents),
        "batteries": [{**document_to_dict(d), "exportedAt": stamp} for d in documents],
    }
    if thresholds is not None:
        payload["thresholds"] = thresholds.model_dump()
    return payload


def build_report(document: BatteryDocument, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Summary figures of one battery for a printable report."""
    history = document.history
    voltages = pd.Series([e.voltage_mv for e in history], dtype="float64") / 1000
    temps = pd.Series([e.temperature_mc for e in history], dtype="float64") / 1000

    def stats(series: pd.Series, decimals: int) -> Dict[str, Optional[float]]:
        if series.dropna().empty:
            return {"avg": None, "max": None, "min": None}
        return {
            "avg": round(float(series.mean()), decimals),
            "max": round(float(series.max()), decimals),
            "min": round(float(series.min()), decimals),
        }

    return {
        "generatedAt": (now or datetime.now()).isoformat(),
        "systemInfo": dict(document.info),
        "statistics": dict(document.stats),
        "totalEntries": len(history),
        "alertsSummary": {
            "total": len(document.alerts),
            "critical": sum(1 for a in document.alerts if a.severity == CRITICAL),
            "warning": sum(1 for a in document.alerts if a.severity == WARNING),
        },
        "dataRange": {
            "from": history[0].raw_label if history else None,
            "to": history[-1].raw_label if history else None,
        },
        "temperatureStats": stats(temps, 1),
        "voltageStats": stats(voltages, 2),
    }
