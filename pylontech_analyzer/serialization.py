"""
JSON-compatible dict views of BatteryDocument.

Keys use the camelCase names of the exported/persisted format. Alerts keep
a reference to their history entry through `entryIndex`, so a loaded
document has alerts pointing at its own entries rather than copies.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import Alert, BatteryDocument, CellData, HistoryEntry

# python attribute -> exported key
ENTRY_KEYS = {
    "sequence_id": "id",
    "day": "day",
    "time": "time",
    "voltage_mv": "voltage",
    "current_ma": "current",
    "temperature_mc": "temperature",
    "temp_low_mc": "tempLow",
    "temp_high_mc": "tempHigh",
    "voltage_lowest_mv": "voltageLowest",
    "voltage_highest_mv": "voltageHighest",
    "base_state": "baseState",
    "voltage_state": "voltageState",
    "current_state": "currentState",
    "temp_state": "tempState",
    "soc": "soc",
    "corrected_day": "correctedDay",
    "corrected_time": "correctedTime",
    "original_day": "originalDay",
    "original_time": "originalTime",
    "use_corrected_date": "useCorrectedDate",
}


def datetime_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def datetime_from_str(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def cell_data_to_dict(cells: CellData) -> Dict[str, Any]:
    return {
        "voltages": list(cells.voltages_mv),
        "temperatures": list(cells.temperatures_mc),
        "states": [{"state1": s1, "state2": s2} for s1, s2 in cells.states],
        "percentages": list(cells.percentages),
        "valid": list(cells.valid),
        "cellCount": cells.cell_count,
    }


def cell_data_from_dict(data: Dict[str, Any]) -> CellData:
    voltages = list(data.get("voltages", []))
    return CellData(
        voltages_mv=voltages,
        temperatures_mc=list(data.get("temperatures", [])),
        states=[(s.get("state1"), s.get("state2")) for s in data.get("states", [])],
        percentages=list(data.get("percentages", [])),
        valid=list(data.get("valid", [v is not None and v > 0 for v in voltages])),
    )


def entry_to_dict(entry: HistoryEntry) -> Dict[str, Any]:
    data = {key: getattr(entry, attr) for attr, key in ENTRY_KEYS.items()}
    data["correctedAt"] = datetime_to_str(entry.corrected_at)
    if entry.cell_data is not None:
        data["cellData"] = cell_data_to_dict(entry.cell_data)
    return data


def entry_from_dict(data: Dict[str, Any]) -> HistoryEntry:
    values = {attr: data.get(key) for attr, key in ENTRY_KEYS.items()}
    values["use_corrected_date"] = bool(values["use_corrected_date"])
    entry = HistoryEntry(**values)
    entry.corrected_at = datetime_from_str(data.get("correctedAt"))
    if data.get("cellData"):
        entry.cell_data = cell_data_from_dict(data["cellData"])
    return entry


def alert_to_dict(alert: Alert, index_of: Dict[int, int]) -> Dict[str, Any]:
    return {
        "type": alert.severity,
        "kind": alert.kind,
        "message": alert.message,
        "timestamp": alert.timestamp_label,
        "entryIndex": index_of.get(id(alert.source_entry)),
    }


def document_to_dict(document: BatteryDocument) -> Dict[str, Any]:
    index_of = {id(entry): i for i, entry in enumerate(document.history)}
    return {
        "batteryId": document.battery_id,
        "displayName": document.display_name,
        "filename": document.filename,
        "fileDate": datetime_to_str(document.file_date),
        "hasCorrectedDates": document.has_corrected_dates,
        "deviceAddress": document.device_address,
        "loadedAt": datetime_to_str(document.loaded_at),
        "info": dict(document.info),
        "stats": dict(document.stats),
        "history": [entry_to_dict(e) for e in document.history],
        "alerts": [alert_to_dict(a, index_of) for a in document.alerts],
    }


def document_from_dict(data: Dict[str, Any]) -> BatteryDocument:
    history: List[HistoryEntry] = [entry_from_dict(e) for e in data.get("history", [])]
    alerts = []
    for item in data.get("alerts", []):
        index = item.get("entryIndex")
        if index is None or not 0 <= index < len(history):
            continue
        alerts.append(Alert(
            severity=item["type"],
            kind=item.get("kind", ""),
            message=item.get("message", ""),
            timestamp_label=item.get("timestamp", ""),
            source_entry=history[index],
        ))

    return BatteryDocument(
        info=dict(data.get("info", {})),
        stats=dict(data.get("stats", {})),
        history=history,
        alerts=alerts,
        filename=data.get("filename"),
        file_date=datetime_from_str(data.get("fileDate")),
        has_corrected_dates=bool(data.get("hasCorrectedDates", False)),
        device_address=data.get("deviceAddress"),
        battery_id=data["batteryId"],
        display_name=data.get("displayName") or data["batteryId"],
        loaded_at=datetime_from_str(data.get("loadedAt")),
    )
