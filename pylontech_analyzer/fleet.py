"""
In-memory collection of loaded batteries

Owns the process-wide thresholds and the alert state derived from them.
Files submitted together are parsed in a thread pool and merged in
submission order, so the final state does not depend on completion order.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .alerts import Thresholds, generate_alerts
from .analysis import AnalysisResult, perform_advanced_analysis
from .config import MAX_WORKERS
from .errors import DuplicateBatteryError, StoreError
from .history_parser import parse_file
from .identity import generate_battery_id, generate_display_name
from .models import BatteryDocument
from .store import BatteryStore

logger = logging.getLogger(__name__)


@dataclass
class LoadReport:
    """Outcome of one multi-file load."""
    loaded: List[str] = field(default_factory=list)              # battery ids, submission order
    rejected: List[Tuple[str, str]] = field(default_factory=list)  # (filename, reason)
    selected: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.rejected


def build_document(content: str, filename: str) -> BatteryDocument:
    """Parse one file and attach identity and load time (alerts are added by the fleet)."""
    document = parse_file(content, filename)
    document.battery_id = generate_battery_id(filename)
    document.display_name = generate_display_name(document)
    document.loaded_at = datetime.now()
    return document


class BatteryFleet:
    """Loaded batteries keyed by battery id, in load order."""

    def __init__(self, thresholds: Optional[Thresholds] = None,
                 store: Optional[BatteryStore] = None,
                 max_workers: Optional[int] = None):
        self._thresholds = thresholds or Thresholds()
        self._batteries: Dict[str, BatteryDocument] = {}
        self._lock = threading.RLock()
        self._analysis: Optional[AnalysisResult] = None
        self.store = store
        self.max_workers = max_workers or MAX_WORKERS
        self.selected_id: Optional[str] = None
        self.notifications: List[str] = []

    # ---------------- Read access ----------------
    @property
    def thresholds(self) -> Thresholds:
        return self._thresholds

    @property
    def batteries(self) -> List[BatteryDocument]:
        with self._lock:
            return list(self._batteries.values())

    def __len__(self) -> int:
        return len(self._batteries)

    def __contains__(self, battery_id: str) -> bool:
        return battery_id in self._batteries

    def get(self, battery_id: str) -> Optional[BatteryDocument]:
        return self._batteries.get(battery_id)

    @property
    def selected(self) -> Optional[BatteryDocument]:
        return self._batteries.get(self.selected_id) if self.selected_id else None

    # ---------------- Internals ----------------
    def _invalidate(self) -> None:
        self._analysis = None

    def _notify(self, message: str) -> None:
        logger.warning(message)
        self.notifications.append(message)

    def _persist(self, documents: Sequence[BatteryDocument]) -> None:
        if self.store is None or not documents:
            return
        try:
            self.store.save_many(documents)
        except StoreError as e:
            self._notify(f"Batteries kept in memory but not saved: {e}")

    # ---------------- Loading ----------------
    def add_document(self, document: BatteryDocument) -> BatteryDocument:
        """Register a parsed document; raises DuplicateBatteryError if its id is loaded."""
        with self._lock:
            if document.battery_id in self._batteries:
                raise DuplicateBatteryError(document.battery_id)
            document.alerts = generate_alerts(document.history, self._thresholds)
            self._batteries[document.battery_id] = document
            self._invalidate()
        return document

    def add_files(self, files: Sequence[Tuple[str, str]]) -> LoadReport:
        """Parse `(filename, content)` pairs and merge them in submission order.

        A file whose battery id is already loaded (or repeated in the same
        submission) is rejected and the existing battery is kept.
        """
        report = LoadReport()
        if not files:
            return report

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [(name, executor.submit(build_document, content, name)) for name, content in files]

        accepted = []
        for filename, future in futures:
            try:
                document = future.result()
            except Exception as e:
                reason = f"Error while parsing {filename}: {e}"
                logger.error(reason)
                report.rejected.append((filename, reason))
                continue
            try:
                self.add_document(document)
            except DuplicateBatteryError as e:
                self._notify(str(e))
                report.rejected.append((filename, str(e)))
                continue
            accepted.append(document)
            report.loaded.append(document.battery_id)

        if accepted and self.selected_id is None:
            self.selected_id = accepted[0].battery_id
        report.selected = self.selected_id

        self._persist(accepted)
        logger.info(f"Loaded {len(report.loaded)} of {len(files)} file(s)")
        return report

    def load_paths(self, paths: Iterable[Path]) -> LoadReport:
        files = []
        unreadable = []
        for path in map(Path, paths):
            try:
                files.append((path.name, path.read_text(encoding="utf-8", errors="ignore")))
            except OSError as e:
                unreadable.append((path.name, f"Cannot read {path.name}: {e}"))
        report = self.add_files(files)
        report.rejected = unreadable + report.rejected
        return report

    def load_from_store(self) -> int:
        """Replace the collection with the stored batteries; returns the count."""
        if self.store is None:
            return 0
        try:
            documents = self.store.get_all()
        except StoreError as e:
            self._notify(f"Could not read stored batteries: {e}")
            return 0

        with self._lock:
            self._batteries = {}
            for document in documents:
                document.alerts = generate_alerts(document.history, self._thresholds)
                self._batteries[document.battery_id] = document
            if self.selected_id not in self._batteries:
                self.selected_id = documents[0].battery_id if documents else None
            self._invalidate()
        return len(documents)

    # ---------------- Mutations ----------------
    def select(self, battery_id: str) -> bool:
        if battery_id not in self._batteries:
            return False
        self.selected_id = battery_id
        return True

    def remove(self, battery_id: str) -> bool:
        with self._lock:
            if self._batteries.pop(battery_id, None) is None:
                return False
            if self.selected_id == battery_id:
                self.selected_id = next(iter(self._batteries), None)
            self._invalidate()
        if self.store is not None:
            try:
                self.store.delete(battery_id)
            except StoreError as e:
                self._notify(f"Battery removed from session but not from store: {e}")
        return True

    def rename(self, battery_id: str, new_name: str) -> bool:
        with self._lock:
            document = self._batteries.get(battery_id)
            if document is None:
                return False
            document.display_name = new_name
            self._invalidate()
        if self.store is not None:
            try:
                self.store.rename(battery_id, new_name)
            except StoreError as e:
                self._notify(f"New name not saved: {e}")
        return True

    def update_thresholds(self, **changes: float) -> Thresholds:
        """Apply threshold changes and regenerate every battery's alerts atomically.

        New alert lists are computed first and swapped in under the lock
        together with the thresholds, so readers never see a mix.
        """
        thresholds = self._thresholds.updated(**changes)
        with self._lock:
            regenerated = {
                battery_id: generate_alerts(document.history, thresholds)
                for battery_id, document in self._batteries.items()
            }
            for battery_id, alerts in regenerated.items():
                self._batteries[battery_id].alerts = alerts
            self._thresholds = thresholds
            self._invalidate()
        logger.info(f"Thresholds updated, alerts regenerated for {len(regenerated)} battery(ies)")
        return thresholds

    # ---------------- Analysis ----------------
    def analysis(self) -> Optional[AnalysisResult]:
        """Cached analysis of the whole collection, recomputed after any change."""
        with self._lock:
            if self._analysis is None and self._batteries:
                self._analysis = perform_advanced_analysis(list(self._batteries.values()))
            return self._analysis
