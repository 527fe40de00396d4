"""
Pylontech history analyzer

Parses Pylontech BMS "history" dumps, re-dates their records from the
file timestamp, raises threshold alerts and analyzes battery health
across a set of loaded batteries.
"""

__version__ = "1.5.0"

from .alerts import AlertFilters, Thresholds, filter_alerts, generate_alerts
from .analysis import (
    AnalysisResult,
    analyze_battery_health,
    analyze_cell_balance,
    analyze_degradation,
    assess_risk,
    calculate_cell_imbalance,
    compare_performance,
    generate_recommendations,
    perform_advanced_analysis,
)
from .date_correction import correct_history_dates
from .fleet import BatteryFleet, LoadReport
from .history_parser import parse_file
from .identity import extract_file_datetime, generate_battery_id, generate_display_name
from .models import Alert, BatteryDocument, CellData, HistoryEntry
from .store import BatteryStore, ImportResult

__all__ = [
    "Alert",
    "AlertFilters",
    "AnalysisResult",
    "BatteryDocument",
    "BatteryFleet",
    "BatteryStore",
    "CellData",
    "HistoryEntry",
    "ImportResult",
    "LoadReport",
    "Thresholds",
    "analyze_battery_health",
    "analyze_cell_balance",
    "analyze_degradation",
    "assess_risk",
    "calculate_cell_imbalance",
    "compare_performance",
    "correct_history_dates",
    "extract_file_datetime",
    "filter_alerts",
    "generate_alerts",
    "generate_battery_id",
    "generate_display_name",
    "generate_recommendations",
    "parse_file",
    "perform_advanced_analysis",
]
