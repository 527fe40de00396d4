"""
File-backed battery store

One JSON record per battery under `<root>/batteries/`. Each record holds the
serialized document plus denormalized index fields (display name, filename,
load time) so listings do not need to decode the whole document.
"""

from __future__ import annotations

import os
import re
import json
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .config import STORE_DIR
from .errors import ImportFormatError, StoreError
from .export import fleet_to_export
from .models import BatteryDocument
from .serialization import datetime_to_str, document_from_dict, document_to_dict

logger = logging.getLogger(__name__)

SAFE_KEY = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


# Strict: JSON strings are not coerced into device integers
class _Payload(BaseModel):
    model_config = ConfigDict(strict=True, extra="allow", populate_by_name=True)


class CellStatePayload(_Payload):
    state1: Optional[str] = None
    state2: Optional[str] = None


class CellDataPayload(_Payload):
    voltages: List[Optional[int]] = Field(default_factory=list)
    temperatures: List[Optional[int]] = Field(default_factory=list)
    states: List[CellStatePayload] = Field(default_factory=list)
    percentages: List[Optional[str]] = Field(default_factory=list)
    valid: Optional[List[bool]] = None
    cell_count: Optional[int] = Field(default=None, alias="cellCount")

    @model_validator(mode="after")
    def check_parallel_lists(self) -> "CellDataPayload":
        size = len(self.voltages)
        lists = [self.temperatures, self.states, self.percentages]
        if self.valid is not None:
            lists.append(self.valid)
        if any(len(values) != size for values in lists):
            raise ValueError("cell lists must have the same length")
        return self


class HistoryEntryPayload(_Payload):
    """One serialized history entry, keyed like serialization.ENTRY_KEYS."""
    sequence_id: Optional[str] = Field(default=None, alias="id")
    day: Optional[str] = None
    time: Optional[str] = None
    voltage_mv: Optional[int] = Field(default=None, alias="voltage")
    current_ma: Optional[int] = Field(default=None, alias="current")
    temperature_mc: Optional[int] = Field(default=None, alias="temperature")
    temp_low_mc: Optional[int] = Field(default=None, alias="tempLow")
    temp_high_mc: Optional[int] = Field(default=None, alias="tempHigh")
    voltage_lowest_mv: Optional[int] = Field(default=None, alias="voltageLowest")
    voltage_highest_mv: Optional[int] = Field(default=None, alias="voltageHighest")
    base_state: Optional[str] = Field(default=None, alias="baseState")
    voltage_state: Optional[str] = Field(default=None, alias="voltageState")
    current_state: Optional[str] = Field(default=None, alias="currentState")
    temp_state: Optional[str] = Field(default=None, alias="tempState")
    soc: Optional[str] = None
    corrected_at: Optional[str] = Field(default=None, alias="correctedAt")
    corrected_day: Optional[str] = Field(default=None, alias="correctedDay")
    corrected_time: Optional[str] = Field(default=None, alias="correctedTime")
    original_day: Optional[str] = Field(default=None, alias="originalDay")
    original_time: Optional[str] = Field(default=None, alias="originalTime")
    use_corrected_date: Optional[bool] = Field(default=None, alias="useCorrectedDate")
    cell_data: Optional[CellDataPayload] = Field(default=None, alias="cellData")


class AlertPayload(_Payload):
    severity: Literal["warning", "critical"] = Field(alias="type")
    kind: Optional[str] = None
    message: Optional[str] = None
    timestamp: Optional[str] = None
    entry_index: Optional[int] = Field(default=None, alias="entryIndex")


class BatteryPayload(_Payload):
    """Serialized battery, as stored and as found inside a fleet export."""
    battery_id: str = Field(alias="batteryId", min_length=1)
    display_name: Optional[str] = Field(default=None, alias="displayName")
    filename: Optional[str] = None
    file_date: Optional[str] = Field(default=None, alias="fileDate")
    has_corrected_dates: Optional[bool] = Field(default=None, alias="hasCorrectedDates")
    device_address: Optional[str] = Field(default=None, alias="deviceAddress")
    loaded_at: Optional[str] = Field(default=None, alias="loadedAt")
    info: Dict[str, str] = Field(default_factory=dict)
    stats: Dict[str, str] = Field(default_factory=dict)
    history: List[HistoryEntryPayload] = Field(default_factory=list)
    alerts: List[AlertPayload] = Field(default_factory=list)


class FleetImport(_Payload):
    batteries: List[BatteryPayload]


@dataclass
class ImportResult:
    success: bool
    message: str
    imported: List[BatteryDocument] = field(default_factory=list)


class BatteryStore:
    """Key-value store of BatteryDocuments keyed by battery id."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root) if root is not None else STORE_DIR
        self.records_dir = self.root / "batteries"

    # ---------------- Internals ----------------
    def _ensure_dir(self) -> None:
        try:
            self.records_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create store directory {self.records_dir}: {e}") from e

    def _record_path(self, battery_id: str) -> Path:
        if SAFE_KEY.match(battery_id):
            name = battery_id
        else:
            name = hashlib.md5(battery_id.encode("utf-8")).hexdigest()
        return self.records_dir / f"{name}.json"

    def _write(self, path: Path, record: Dict[str, Any]) -> None:
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(json.dumps(record), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise StoreError(f"Failed to write {path.name}: {e}") from e

    def _read_records(self) -> List[Dict[str, Any]]:
        if not self.records_dir.exists():
            return []
        records = []
        try:
            paths = sorted(self.records_dir.glob("*.json"))
        except OSError as e:
            raise StoreError(f"Cannot list {self.records_dir}: {e}") from e
        for path in paths:
            try:
                record = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Skipping unreadable battery record {path.name}: {e}")
                continue
            if isinstance(record, dict):
                records.append(record)
            else:
                logger.warning(f"Skipping battery record {path.name}: not a JSON object")
        return records

    @staticmethod
    def _make_record(document: BatteryDocument) -> Dict[str, Any]:
        return {
            "batteryId": document.battery_id,
            "displayName": document.display_name or document.battery_id,
            "filename": document.filename,
            "fileDate": datetime_to_str(document.file_date),
            "deviceAddress": document.device_address,
            "loadedAt": datetime_to_str(document.loaded_at or datetime.now()),
            "createdAt": datetime.now().isoformat(),
            "data": document_to_dict(document),
        }

    # ---------------- Public API ----------------
    def save(self, document: BatteryDocument) -> None:
        self._ensure_dir()
        self._write(self._record_path(document.battery_id), self._make_record(document))

    def save_many(self, documents: Sequence[BatteryDocument]) -> None:
        if not documents:
            return
        self._ensure_dir()
        # Serialize everything before touching the disk
        records = [self._make_record(d) for d in documents]
        for record in records:
            self._write(self._record_path(record["batteryId"]), record)

    def get_all(self) -> List[BatteryDocument]:
        """Stored batteries, most recently saved first."""
        records = sorted(self._read_records(), key=lambda r: r.get("createdAt") or "", reverse=True)
        documents = []
        for record in records:
            try:
                document = decode_battery(record.get("data"))
            except ImportFormatError as e:
                logger.warning(f"Skipping corrupted battery {record.get('batteryId')}: {e}")
                continue
            document.display_name = record.get("displayName") or document.display_name
            documents.append(document)
        return documents

    def ids(self) -> List[str]:
        return [r["batteryId"] for r in self._read_records() if "batteryId" in r]

    def delete(self, battery_id: str) -> bool:
        path = self._record_path(battery_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreError(f"Failed to delete {battery_id}: {e}") from e
        return True

    def rename(self, battery_id: str, new_name: str) -> bool:
        path = self._record_path(battery_id)
        if not path.exists():
            return False
        try:
            record = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Failed to read {battery_id}: {e}") from e
        record["displayName"] = new_name
        record["data"]["displayName"] = new_name
        self._write(path, record)
        return True

    def clear(self) -> None:
        if not self.records_dir.exists():
            return
        for path in self.records_dir.glob("*.json"):
            try:
                path.unlink()
            except OSError as e:
                raise StoreError(f"Failed to clear store: {e}") from e

    def stats(self) -> Dict[str, int]:
        records = self._read_records()
        data = [r.get("data", {}) for r in records]
        return {
            "batteriesCount": len(records),
            "totalHistoryEntries": sum(len(d.get("history", [])) for d in data),
            "totalAlerts": sum(len(d.get("alerts", [])) for d in data),
            "databaseSize": len(json.dumps(data)),
        }

    # ---------------- JSON export / import ----------------
    def export_json(self) -> Dict[str, Any]:
        return fleet_to_export(self.get_all())

    def import_json(self, payload: Any) -> ImportResult:
        """Import a fleet export, skipping batteries already stored.

        The payload is validated as a whole: one malformed battery rejects
        the import and nothing is written.
        """
        try:
            documents = parse_fleet_import(payload)
        except ImportFormatError as e:
            logger.warning(f"Rejected JSON import: {e}")
            return ImportResult(False, f"Import failed: {e}")

        try:
            existing = set(self.ids())
        except StoreError as e:
            return ImportResult(False, f"Import failed: {e}")

        new_documents = []
        for document in documents:
            if document.battery_id in existing:
                continue
            existing.add(document.battery_id)
            new_documents.append(document)

        if not new_documents:
            return ImportResult(False, "No new battery to import")

        try:
            self.save_many(new_documents)
        except StoreError as e:
            logger.error(f"JSON import not saved: {e}")
            return ImportResult(False, f"Import failed: {e}")
        return ImportResult(True, f"{len(new_documents)} battery(ies) imported", new_documents)


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "<root>"
    return f"{error.error_count()} error(s), first at {location}: {first['msg']}"


def decode_battery(data: Any) -> BatteryDocument:
    """Validate one serialized battery and decode it; raises ImportFormatError."""
    try:
        BatteryPayload.model_validate(data)
        return document_from_dict(data)
    except ValidationError as e:
        raise ImportFormatError(f"invalid battery ({_describe(e)})") from e
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ImportFormatError(f"invalid battery: {e}") from e


def parse_fleet_import(payload: Any) -> List[BatteryDocument]:
    """Validate a fleet export payload and decode its batteries."""
    try:
        FleetImport.model_validate(payload)
    except ValidationError as e:
        raise ImportFormatError(f"invalid JSON format ({_describe(e)})") from e

    documents = []
    for item in payload["batteries"]:
        try:
            documents.append(document_from_dict(item))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ImportFormatError(f"invalid battery {item.get('batteryId')!r}: {e}") from e
    return documents
