#!/usr/bin/env python3
"""
Battery fleet analysis - health, degradation, balance, ranking and risk

All functions are pure: they read the loaded BatteryDocuments and never
modify them. Results are recomputed on demand by the collection.

Data sources:
- `stats` counters printed by the BMS ("SOH", "Charge Cnt.", "Pwr Percent")
- the history records (pack voltage, temperature, SOC, lowest/highest cell)
- the alerts generated with the current thresholds
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .alerts import CRITICAL, WARNING
from .config import BATTERY_CYCLE_LIMIT, CELL_IMBALANCE_THRESHOLD_MV
from .history_parser import parse_int
from .models import BatteryDocument, HistoryEntry

# ---------------- Configuration ----------------
RECENT_WINDOW = 50              # entries compared by degradation / SOH estimate
MIN_DEGRADATION_ENTRIES = 10
BALANCE_WINDOW = 10
NOMINAL_PACK_VOLTAGE = 54.0     # V, full score in performance ranking

SOH_KEY = "SOH"
CYCLES_KEY = "Charge Cnt."
POWER_PERCENT_KEY = "Pwr Percent"

# BatteryHealth.soh_source
SOH_DIRECT = "direct"
SOH_ESTIMATED = "estimated"


class HealthStatus(Enum):
    CRITICAL = "Critical"
    DEGRADED = "Degraded"
    GOOD = "Good"
    VERY_GOOD = "Very Good"
    EXCELLENT = "Excellent"


class DegradationTrend(Enum):
    INSUFFICIENT_DATA = "Insufficient data"
    RAPID = "Rapid degradation"
    MODERATE = "Moderate degradation"
    IMPROVEMENT = "Improvement"
    STABLE = "Stable"


class BalanceStatus(Enum):
    INSUFFICIENT_DATA = "Insufficient data"
    CRITICAL = "Critical imbalance"
    MODERATE = "Moderate imbalance"
    SLIGHT = "Slight imbalance"
    BALANCED = "Well balanced"


class RiskLevel(Enum):
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"
    CRITICAL = "Critical"


# Upper SOH bound (exclusive) -> status; anything above the last bound is EXCELLENT
SOH_STATUS_BANDS = (
    (70, HealthStatus.CRITICAL),
    (80, HealthStatus.DEGRADED),
    (90, HealthStatus.GOOD),
    (95, HealthStatus.VERY_GOOD),
)

# Cycle upper bound (exclusive) -> estimated SOH
CYCLE_SOH_ESTIMATES = ((1000, 95), (2000, 90), (3000, 85), (5000, 80), (7000, 75))

# Average pack voltage lower bound (exclusive) -> estimated SOH
VOLTAGE_SOH_ESTIMATES = ((51.0, 95), (50.0, 88), (49.0, 82), (48.0, 75))

# Max cell spread lower bound (exclusive, V) -> balance status
BALANCE_BANDS = (
    (0.1, BalanceStatus.CRITICAL),
    (0.05, BalanceStatus.MODERATE),
    (0.02, BalanceStatus.SLIGHT),
)


@dataclass
class BatteryHealth:
    battery_id: str
    display_name: str
    soh: int
    soh_source: str             # SOH_DIRECT | SOH_ESTIMATED
    cycles: int
    power_percent: Optional[int]
    health_status: HealthStatus
    health_score: float
    estimated_life_remaining: float   # years


@dataclass
class DegradationResult:
    battery_id: str
    display_name: str
    trend: DegradationTrend
    degradation_rate: float = 0.0     # % voltage decline (absolute)
    soc_degradation: float = 0.0      # % SOC decline (absolute)
    voltage_change_pct: float = 0.0   # signed, positive = decline
    soc_change_pct: float = 0.0
    recent_avg_voltage: Optional[float] = None
    older_avg_voltage: Optional[float] = None


@dataclass
class CellBalanceResult:
    battery_id: str
    display_name: str
    balance_status: BalanceStatus
    avg_spread_v: float = 0.0
    max_spread_v: float = 0.0

    @property
    def imbalance_mv(self) -> int:
        return int(round(self.max_spread_v * 1000))

    @property
    def avg_imbalance_mv(self) -> int:
        return int(round(self.avg_spread_v * 1000))


@dataclass
class PerformanceEntry:
    battery_id: str
    display_name: str
    soh: int
    cycles: int
    avg_voltage: float
    avg_temp: float
    alerts: int
    performance_score: float
    rank: int = 0
    relative_performance: str = ""


@dataclass
class RiskAssessment:
    battery_id: str
    display_name: str
    risk_score: int
    risk_level: RiskLevel
    risk_factors: List[str] = field(default_factory=list)


@dataclass
class Recommendation:
    severity: str       # "critical" | "warning" | "info"
    battery: str
    message: str
    priority: int       # 1 = highest


@dataclass
class AnalysisResult:
    battery_health: List[BatteryHealth]
    degradation_analysis: List[DegradationResult]
    cell_balance: List[CellBalanceResult]
    performance_comparison: List[PerformanceEntry]
    risk_assessment: List[RiskAssessment]
    recommendations: List[Recommendation]


@dataclass
class CellImbalance:
    voltages: List[float]
    min_voltage: float
    max_voltage: float
    avg_voltage: float
    imbalance: float
    cell_count: int
    timestamp: str


# ---------------- Helpers ----------------
def stat_int(stats: Dict[str, str], key: str, default: int) -> int:
    """Integer value of a BMS counter ("95%", "1234"), `default` if missing or unreadable."""
    value = parse_int(stats.get(key))
    return default if value is None else value


def history_frame(history: Sequence[HistoryEntry]) -> pd.DataFrame:
    """Physical-unit view of a history (V, °C, %), NaN where the device field was unreadable."""
    return pd.DataFrame({
        "voltage_v": pd.Series([e.voltage_mv for e in history], dtype="float64") / 1000,
        "temperature_c": pd.Series([e.temperature_mc for e in history], dtype="float64") / 1000,
        "soc": pd.Series([parse_int(e.soc) or 0 for e in history], dtype="float64"),
        "spread_v": (pd.Series([e.voltage_highest_mv for e in history], dtype="float64")
                     - pd.Series([e.voltage_lowest_mv for e in history], dtype="float64")) / 1000,
    })


def _mean(series: pd.Series, default: float = 0.0) -> float:
    value = series.mean()
    return default if pd.isna(value) else float(value)


def _pct_change(older: float, recent: float) -> float:
    """Relative decline older -> recent in %, positive = decline."""
    if older == 0:
        return 0.0
    return (older - recent) / older * 100


def _bucket(value: float, bands, default):
    for bound, result in bands:
        if value < bound:
            return result
    return default


def _bucket_above(value: float, bands, default):
    for bound, result in bands:
        if value > bound:
            return result
    return default


# ---------------- Health ----------------
def health_status_for(soh: float) -> HealthStatus:
    return _bucket(soh, SOH_STATUS_BANDS, HealthStatus.EXCELLENT)


def estimate_soh(battery: BatteryDocument, cycles: int, power_percent: Optional[int]) -> int:
    """SOH fallback chain for dumps without a usable SOH counter."""
    if power_percent is not None and power_percent > 0:
        return max(70, power_percent - 10)

    if cycles > 0:
        return _bucket(cycles, CYCLE_SOH_ESTIMATES, 70)

    if len(battery.history) > MIN_DEGRADATION_ENTRIES:
        frame = history_frame(battery.history[:RECENT_WINDOW])
        avg_voltage = frame["voltage_v"].mean()
        if not pd.isna(avg_voltage):
            return _bucket_above(avg_voltage, VOLTAGE_SOH_ESTIMATES, 65)
        return 65

    return 75


def cycle_penalty(cycles: int) -> float:
    if cycles > 6000:
        return min(5.0, (cycles - 6000) / 1000 * 2)
    if cycles > 4000:
        return min(3.0, (cycles - 4000) / 1000 * 1.5)
    if cycles > 2000:
        return min(2.0, (cycles - 2000) / 1000)
    return 0.0


def analyze_battery_health(battery: BatteryDocument) -> BatteryHealth:
    cycles = stat_int(battery.stats, CYCLES_KEY, 0)
    power_percent = parse_int(battery.stats.get(POWER_PERCENT_KEY))
    has_direct_soh = bool(battery.stats.get(SOH_KEY))

    soh = stat_int(battery.stats, SOH_KEY, 0)
    if not has_direct_soh or soh == 0:
        soh = estimate_soh(battery, cycles, power_percent)

    score = soh - cycle_penalty(cycles)
    if battery.critical_alerts > 0:
        score -= min(battery.critical_alerts * 3, 10)
    # Adjustments must not contradict the SOH-derived status
    score = float(np.clip(score, max(0, soh - 10), min(100, soh + 5)))

    return BatteryHealth(
        battery_id=battery.battery_id,
        display_name=battery.display_name,
        soh=soh,
        soh_source=SOH_DIRECT if has_direct_soh else SOH_ESTIMATED,
        cycles=cycles,
        power_percent=power_percent,
        health_status=health_status_for(soh),
        health_score=score,
        estimated_life_remaining=max(0.0, (BATTERY_CYCLE_LIMIT - cycles) / 365),
    )


# ---------------- Degradation ----------------
def analyze_degradation(battery: BatteryDocument) -> DegradationResult:
    """Compare the first and last RECENT_WINDOW records of the stored history.

    The head of the history is treated as "recent", following the device
    dump order (newest first).
    """
    history = battery.history
    if len(history) < MIN_DEGRADATION_ENTRIES:
        return DegradationResult(battery.battery_id, battery.display_name,
                                 DegradationTrend.INSUFFICIENT_DATA)

    window = min(RECENT_WINDOW, len(history))
    frame = history_frame(history)
    recent, older = frame.head(window), frame.tail(window)

    recent_v, older_v = _mean(recent["voltage_v"]), _mean(older["voltage_v"])
    voltage_change = _pct_change(older_v, recent_v)
    soc_change = _pct_change(_mean(older["soc"]), _mean(recent["soc"]))

    if voltage_change > 2 or soc_change > 5:
        trend = DegradationTrend.RAPID
    elif voltage_change > 1 or soc_change > 2:
        trend = DegradationTrend.MODERATE
    elif voltage_change < -1:
        trend = DegradationTrend.IMPROVEMENT
    else:
        trend = DegradationTrend.STABLE

    return DegradationResult(
        battery_id=battery.battery_id,
        display_name=battery.display_name,
        trend=trend,
        degradation_rate=round(abs(voltage_change), 2),
        soc_degradation=round(abs(soc_change), 2),
        voltage_change_pct=voltage_change,
        soc_change_pct=soc_change,
        recent_avg_voltage=round(recent_v, 2),
        older_avg_voltage=round(older_v, 2),
    )


# ---------------- Cell balance ----------------
def analyze_cell_balance(battery: BatteryDocument) -> CellBalanceResult:
    """Pack-level balance from the BMS lowest/highest cell voltages of recent records."""
    spreads = history_frame(battery.history[:BALANCE_WINDOW])["spread_v"].dropna()
    if spreads.empty:
        return CellBalanceResult(battery.battery_id, battery.display_name,
                                 BalanceStatus.INSUFFICIENT_DATA)

    max_spread = float(spreads.max())
    return CellBalanceResult(
        battery_id=battery.battery_id,
        display_name=battery.display_name,
        balance_status=_bucket_above(max_spread, BALANCE_BANDS, BalanceStatus.BALANCED),
        avg_spread_v=float(spreads.mean()),
        max_spread_v=max_spread,
    )


def calculate_cell_imbalance(entry: HistoryEntry) -> Optional[CellImbalance]:
    """Per-cell spread of one record, from the cell block when present."""
    if entry.cell_data is None:
        return None
    voltages = np.array(entry.cell_data.valid_voltages_mv, dtype=float) / 1000
    if voltages.size == 0:
        return None
    return CellImbalance(
        voltages=voltages.tolist(),
        min_voltage=float(voltages.min()),
        max_voltage=float(voltages.max()),
        avg_voltage=float(voltages.mean()),
        imbalance=float(voltages.max() - voltages.min()),
        cell_count=int(voltages.size),
        timestamp=entry.raw_label,
    )


def imbalanced_entries(history: Sequence[HistoryEntry],
                       threshold_mv: float = CELL_IMBALANCE_THRESHOLD_MV) -> List[HistoryEntry]:
    """Records whose per-cell spread exceeds `threshold_mv`."""
    result = []
    for entry in history:
        imbalance = calculate_cell_imbalance(entry)
        if imbalance is not None and imbalance.imbalance * 1000 > threshold_mv:
            result.append(entry)
    return result


# ---------------- Performance ranking ----------------
def performance_score(soh: float, cycles: int, avg_voltage: float, alert_count: int,
                      avg_temp: float) -> float:
    if 15 < avg_temp < 35:
        temp_score = 10.0
    else:
        temp_score = max(0.0, 10 - abs(avg_temp - 25))
    return (soh * 0.4
            + (BATTERY_CYCLE_LIMIT - cycles) / BATTERY_CYCLE_LIMIT * 30
            + min(avg_voltage / NOMINAL_PACK_VOLTAGE * 20, 20)
            + max(20 - alert_count * 2, 0)
            + temp_score)


def compare_performance(batteries: Sequence[BatteryDocument]) -> List[PerformanceEntry]:
    """Rank batteries by composite score; empty for fewer than two batteries."""
    if len(batteries) < 2:
        return []

    entries = []
    for battery in batteries:
        soh = stat_int(battery.stats, SOH_KEY, 0)
        cycles = stat_int(battery.stats, CYCLES_KEY, 0)
        frame = history_frame(battery.history)
        avg_voltage = _mean(frame["voltage_v"])
        avg_temp = _mean(frame["temperature_c"])
        entries.append(PerformanceEntry(
            battery_id=battery.battery_id,
            display_name=battery.display_name,
            soh=soh,
            cycles=cycles,
            avg_voltage=round(avg_voltage, 2),
            avg_temp=round(avg_temp, 1),
            alerts=len(battery.alerts),
            performance_score=performance_score(soh, cycles, avg_voltage, len(battery.alerts), avg_temp),
        ))

    entries.sort(key=lambda e: e.performance_score, reverse=True)
    for index, entry in enumerate(entries):
        entry.rank = index + 1
        if index == 0:
            entry.relative_performance = "Best"
        elif index < len(entries) / 2:
            entry.relative_performance = "Above average"
        else:
            entry.relative_performance = "Below average"
    return entries


# ---------------- Risk ----------------
def assess_risk(battery: BatteryDocument) -> RiskAssessment:
    soh = stat_int(battery.stats, SOH_KEY, 100)
    cycles = stat_int(battery.stats, CYCLES_KEY, 0)
    critical = battery.critical_alerts
    warnings = battery.warning_alerts

    score = 0
    factors = []

    if soh < 70:
        score += 40
        factors.append("Critical SOH (< 70%)")
    elif soh < 80:
        score += 25
        factors.append("Degraded SOH (< 80%)")
    elif soh < 90:
        score += 10
        factors.append("Slightly degraded SOH (< 90%)")

    if cycles > 6000:
        score += 30
        factors.append("Very high cycle count (> 6000)")
    elif cycles > 4000:
        score += 15
        factors.append("High cycle count (> 4000)")
    elif cycles > 2000:
        score += 5
        factors.append("Moderate cycle count (> 2000)")

    if critical > 0:
        score += critical * 20
        factors.append(f"{critical} critical alert(s)")

    if warnings > 10:
        score += 15
        factors.append(f"Many warnings ({warnings})")
    elif warnings > 5:
        score += 8
        factors.append(f"Several warnings ({warnings})")

    # Healthy young packs: warnings alone must not raise the risk
    if soh >= 95 and cycles < 1000 and critical == 0:
        score = min(score, 10)

    score = int(np.clip(score, 0, 100))
    if score > 70:
        level = RiskLevel.CRITICAL
    elif score > 40:
        level = RiskLevel.HIGH
    elif score > 20:
        level = RiskLevel.MODERATE
    else:
        level = RiskLevel.LOW

    return RiskAssessment(battery.battery_id, battery.display_name, score, level, factors)


# ---------------- Recommendations ----------------
FLEET_LABEL = "Whole system"


def generate_recommendations(batteries: Sequence[BatteryDocument]) -> List[Recommendation]:
    recommendations = []

    for battery in batteries:
        soh = stat_int(battery.stats, SOH_KEY, 100)
        cycles = stat_int(battery.stats, CYCLES_KEY, 0)
        name = battery.display_name

        if soh < 80:
            recommendations.append(Recommendation(
                CRITICAL, name, "Urgent replacement recommended - critical SOH", 1))
        elif soh < 90:
            recommendations.append(Recommendation(
                WARNING, name, "Enhanced monitoring recommended - SOH declining", 2))

        if cycles > 5000:
            recommendations.append(Recommendation(
                "info", name, "Plan replacement - high cycle count", 2))

        if battery.critical_alerts > 0:
            recommendations.append(Recommendation(
                CRITICAL, name, "Immediate intervention required - critical alerts", 1))

    if len(batteries) > 1:
        avg_soh = np.mean([stat_int(b.stats, SOH_KEY, 100) for b in batteries])
        if avg_soh < 85:
            recommendations.append(Recommendation(
                WARNING, FLEET_LABEL, "Fleet-wide aging of the battery bank", 2))

    # sort() is stable: equal priorities keep their insertion order
    recommendations.sort(key=lambda r: r.priority)
    return recommendations


def perform_advanced_analysis(batteries: Sequence[BatteryDocument]) -> Optional[AnalysisResult]:
    """Full analysis of the loaded collection, None when nothing is loaded."""
    if not batteries:
        return None
    return AnalysisResult(
        battery_health=[analyze_battery_health(b) for b in batteries],
        degradation_analysis=[analyze_degradation(b) for b in batteries],
        cell_balance=[analyze_cell_balance(b) for b in batteries],
        performance_comparison=compare_performance(batteries),
        risk_assessment=[assess_risk(b) for b in batteries],
        recommendations=generate_recommendations(batteries),
    )
