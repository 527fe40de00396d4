import pytest

from pylontech_analyzer.analysis import (
    BalanceStatus,
    DegradationTrend,
    HealthStatus,
    RiskLevel,
    SOH_DIRECT,
    SOH_ESTIMATED,
    analyze_battery_health,
    analyze_cell_balance,
    analyze_degradation,
    assess_risk,
    calculate_cell_imbalance,
    compare_performance,
    generate_recommendations,
    health_status_for,
    imbalanced_entries,
    perform_advanced_analysis,
)
from pylontech_analyzer.models import CellData


def _history(make_entry, voltages):
    return [make_entry(i, voltage=v) for i, v in enumerate(voltages, 1)]


# ---------------- Health ----------------
def test_health_direct_soh(make_battery):
    health = analyze_battery_health(make_battery(stats={"SOH": "95%", "Charge Cnt.": "500"}))

    assert health.soh == 95
    assert health.soh_source == SOH_DIRECT == "direct"
    assert health.health_status is HealthStatus.EXCELLENT
    assert health.health_score == 95
    assert health.estimated_life_remaining == pytest.approx(7500 / 365)


def test_health_estimated_from_power_percent(make_battery):
    health = analyze_battery_health(make_battery(stats={"Pwr Percent": "98%", "Charge Cnt.": "2500"}))
    assert health.soh == 88
    assert health.soh_source == SOH_ESTIMATED
    assert health.power_percent == 98


def test_health_estimated_from_cycles(make_battery):
    assert analyze_battery_health(make_battery(stats={"Charge Cnt.": "2500"})).soh == 85
    assert analyze_battery_health(make_battery(stats={"Charge Cnt.": "9000"})).soh == 70


def test_health_estimated_from_voltage(make_battery, make_entry):
    battery = make_battery(history=_history(make_entry, [51500] * 11))
    assert analyze_battery_health(battery).soh == 95

    battery = make_battery(history=_history(make_entry, [47000] * 11))
    assert analyze_battery_health(battery).soh == 65


def test_health_default_estimate(make_battery):
    health = analyze_battery_health(make_battery())
    assert health.soh == 75
    assert health.soh_source == SOH_ESTIMATED
    assert health.health_status is HealthStatus.DEGRADED


@pytest.mark.parametrize("soh, status", [
    (69, HealthStatus.CRITICAL),
    (70, HealthStatus.DEGRADED),
    (80, HealthStatus.GOOD),
    (90, HealthStatus.VERY_GOOD),
    (95, HealthStatus.EXCELLENT),
    (100, HealthStatus.EXCELLENT),
])
def test_health_status_bands(soh, status):
    assert health_status_for(soh) is status


def test_health_score_penalties_are_clamped(make_battery):
    stats = {"SOH": "90%", "Charge Cnt.": "7000"}
    assert analyze_battery_health(make_battery(stats=stats)).health_score == 88

    health = analyze_battery_health(make_battery(stats=stats, critical=5))
    assert health.health_score == 80
    assert health.health_status is HealthStatus.VERY_GOOD


# ---------------- Degradation ----------------
def test_degradation_insufficient_data(make_battery, make_entry):
    result = analyze_degradation(make_battery(history=_history(make_entry, [52000] * 9)))
    assert result.trend is DegradationTrend.INSUFFICIENT_DATA


def test_degradation_stable(make_battery, make_entry):
    result = analyze_degradation(make_battery(history=_history(make_entry, [52000] * 10)))
    assert result.trend is DegradationTrend.STABLE
    assert result.degradation_rate == 0


@pytest.mark.parametrize("recent, older, trend", [
    (50000, 52000, DegradationTrend.RAPID),
    (51300, 52000, DegradationTrend.MODERATE),
    (52000, 50000, DegradationTrend.IMPROVEMENT),
    (51900, 52000, DegradationTrend.STABLE),
])
def test_degradation_trends(make_battery, make_entry, recent, older, trend):
    battery = make_battery(history=_history(make_entry, [recent] * 50 + [older] * 50))

    result = analyze_degradation(battery)

    assert result.trend is trend
    assert result.recent_avg_voltage == pytest.approx(recent / 1000)
    assert result.older_avg_voltage == pytest.approx(older / 1000)


def test_degradation_from_soc(make_battery, make_entry):
    history = [make_entry(i, soc="80") for i in range(50)] + [make_entry(i, soc="90") for i in range(50)]
    result = analyze_degradation(make_battery(history=history))
    assert result.trend is DegradationTrend.RAPID
    assert result.soc_degradation == pytest.approx(11.11, abs=0.01)


# ---------------- Cell balance ----------------
def test_balance_without_history(make_battery):
    assert analyze_cell_balance(make_battery()).balance_status is BalanceStatus.INSUFFICIENT_DATA


@pytest.mark.parametrize("highest, status", [
    (3310, BalanceStatus.BALANCED),
    (3330, BalanceStatus.SLIGHT),
    (3360, BalanceStatus.MODERATE),
    (3420, BalanceStatus.CRITICAL),
])
def test_balance_bands(make_battery, make_entry, highest, status):
    battery = make_battery(history=[make_entry(1, lowest=3300, highest=highest)])
    result = analyze_cell_balance(battery)
    assert result.balance_status is status
    assert result.imbalance_mv == highest - 3300


def test_balance_uses_first_ten_records(make_battery, make_entry):
    history = [make_entry(i) for i in range(10)] + [make_entry(99, highest=3500)]
    assert analyze_cell_balance(make_battery(history=history)).balance_status is BalanceStatus.BALANCED


def test_cell_imbalance_of_record(make_entry):
    entry = make_entry()
    assert calculate_cell_imbalance(entry) is None

    entry.cell_data = CellData()
    for mv in (3300, 3310, 3290, 3305):
        entry.cell_data.append(mv, 25000, "Normal", "Normal", "95%")
    entry.cell_data.append(None, 25000, "Normal", "Normal", "95%")

    imbalance = calculate_cell_imbalance(entry)
    assert imbalance.cell_count == 4
    assert imbalance.min_voltage == pytest.approx(3.29)
    assert imbalance.max_voltage == pytest.approx(3.31)
    assert imbalance.imbalance == pytest.approx(0.02)
    assert imbalance.timestamp == "01/01 10:00:00"


def test_imbalanced_entries(make_entry):
    balanced, skewed = make_entry(1), make_entry(2)
    balanced.cell_data, skewed.cell_data = CellData(), CellData()
    for mv in (3300, 3310):
        balanced.cell_data.append(mv, 25000, "Normal", "Normal", "95%")
    for mv in (3300, 3350):
        skewed.cell_data.append(mv, 25000, "Normal", "Normal", "95%")

    assert imbalanced_entries([balanced, skewed, make_entry(3)]) == [skewed]


# ---------------- Ranking ----------------
def test_comparison_needs_two_batteries(make_battery):
    assert compare_performance([]) == []
    assert compare_performance([make_battery()]) == []


def test_comparison_ranks(make_battery, make_entry):
    batteries = [
        make_battery("MID", stats={"SOH": "90%", "Charge Cnt.": "2000"}, history=_history(make_entry, [52000] * 3)),
        make_battery("BEST", stats={"SOH": "99%", "Charge Cnt.": "100"}, history=_history(make_entry, [52000] * 3)),
        make_battery("WORST", stats={"SOH": "70%", "Charge Cnt.": "6000"}, history=_history(make_entry, [52000] * 3),
                     warnings=4),
    ]

    ranking = compare_performance(batteries)

    assert [p.battery_id for p in ranking] == ["BEST", "MID", "WORST"]
    assert [p.rank for p in ranking] == [1, 2, 3]
    scores = [p.performance_score for p in ranking]
    assert scores == sorted(scores, reverse=True)
    assert [p.relative_performance for p in ranking] == ["Best", "Above average", "Below average"]
    assert ranking[2].alerts == 4


# ---------------- Risk ----------------
def test_risk_capped_for_healthy_young_pack(make_battery):
    risk = assess_risk(make_battery(stats={"SOH": "96%", "Charge Cnt.": "500"}, warnings=12))
    assert risk.risk_score <= 10
    assert risk.risk_level is RiskLevel.LOW


def test_risk_critical(make_battery):
    risk = assess_risk(make_battery(stats={"SOH": "65%", "Charge Cnt.": "7000"}, critical=2))
    assert risk.risk_score == 100
    assert risk.risk_level is RiskLevel.CRITICAL
    assert len(risk.risk_factors) == 3


def test_risk_levels(make_battery):
    assert assess_risk(make_battery(stats={"SOH": "85%", "Charge Cnt.": "2500"})).risk_level is RiskLevel.LOW
    assert assess_risk(make_battery(stats={"SOH": "75%"})).risk_level is RiskLevel.MODERATE
    assert assess_risk(make_battery(stats={"SOH": "75%", "Charge Cnt.": "5000"})).risk_level is RiskLevel.MODERATE
    assert assess_risk(make_battery(stats={"SOH": "75%", "Charge Cnt.": "7000"})).risk_level is RiskLevel.HIGH


# ---------------- Recommendations ----------------
def test_recommendations_sorted_by_priority(make_battery):
    batteries = [
        make_battery("A", stats={"SOH": "75%", "Charge Cnt.": "6000"}),
        make_battery("B", stats={"SOH": "85%"}, critical=1),
    ]

    recommendations = generate_recommendations(batteries)

    assert [(r.battery, r.severity) for r in recommendations] == [
        ("Battery A", "critical"),
        ("Battery B", "critical"),
        ("Battery A", "info"),
        ("Battery B", "warning"),
        ("Whole system", "warning"),
    ]
    assert [r.priority for r in recommendations] == [1, 1, 2, 2, 2]


def test_no_recommendation_for_healthy_battery(make_battery):
    assert generate_recommendations([make_battery(stats={"SOH": "98%", "Charge Cnt.": "100"})]) == []


def test_advanced_analysis(make_battery, make_entry):
    assert perform_advanced_analysis([]) is None

    batteries = [make_battery("A", history=_history(make_entry, [52000] * 12)),
                 make_battery("B", stats={"SOH": "92%"})]
    result = perform_advanced_analysis(batteries)

    assert len(result.battery_health) == 2
    assert len(result.degradation_analysis) == 2
    assert len(result.cell_balance) == 2
    assert len(result.risk_assessment) == 2
    assert len(result.performance_comparison) == 2
