# frontend/app.py: Streamlit viewer for Pylontech history dumps
import json

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from pylontech_analyzer.alerts import AlertFilters, filter_alerts
from pylontech_analyzer.config import configure_logging
from pylontech_analyzer.export import (
    build_report, document_to_export, export_filename, fleet_to_export, history_to_csv,
)
from pylontech_analyzer.fleet import BatteryFleet
from pylontech_analyzer.store import BatteryStore

configure_logging()
st.set_page_config(page_title="🔋 Pylontech History Analyzer", layout="wide")


def _get_fleet() -> BatteryFleet:
    if "fleet" not in st.session_state:
        fleet = BatteryFleet(store=BatteryStore())
        fleet.load_from_store()
        st.session_state["fleet"] = fleet
    return st.session_state["fleet"]


fleet = _get_fleet()

# ---------------- Sidebar: files & thresholds ----------------
with st.sidebar:
    st.markdown("### 🔋 Pylontech Analyzer")
    uploads = st.file_uploader("History files", type=["txt"], accept_multiple_files=True)
    if uploads and st.button("Load files"):
        files = [(u.name, u.getvalue().decode("utf-8", errors="ignore")) for u in uploads]
        report = fleet.add_files(files)
        for filename, reason in report.rejected:
            st.warning(f"{filename}: {reason}")
        if report.loaded:
            st.success(f"{len(report.loaded)} battery(ies) loaded")

    st.markdown("### ⚙️ Thresholds")
    current = fleet.thresholds
    with st.form("thresholds"):
        values = {
            "temp_warning_c": st.number_input("Temperature warning (°C)", value=current.temp_warning_c),
            "temp_critical_c": st.number_input("Temperature critical (°C)", value=current.temp_critical_c),
            "voltage_high_v": st.number_input("Voltage high (V)", value=current.voltage_high_v),
            "voltage_low_v": st.number_input("Voltage low (V)", value=current.voltage_low_v),
            "voltage_high_critical_v": st.number_input("Voltage high critical (V)", value=current.voltage_high_critical_v),
            "voltage_low_critical_v": st.number_input("Voltage low critical (V)", value=current.voltage_low_critical_v),
        }
        if st.form_submit_button("Apply"):
            fleet.update_thresholds(**values)

    for message in fleet.notifications:
        st.info(message)
    fleet.notifications.clear()

if not len(fleet):
    st.title("Pylontech History Analyzer")
    st.info("Drop one or more `*_history_*.txt` files in the sidebar to start.")
    st.stop()

# ---------------- Battery selection ----------------
names = {b.battery_id: b.display_name for b in fleet.batteries}
ids = list(names)
chosen = st.selectbox("Battery", ids, index=ids.index(fleet.selected_id) if fleet.selected_id in ids else 0,
                      format_func=lambda i: f"{names[i]} ({i})")
fleet.select(chosen)
battery = fleet.selected

c1, c2 = st.columns([3, 1])
with c1:
    new_name = st.text_input("Display name", value=battery.display_name)
    if new_name and new_name != battery.display_name:
        fleet.rename(battery.battery_id, new_name)
with c2:
    if st.button("Remove battery"):
        fleet.remove(battery.battery_id)
        st.rerun()

tab_history, tab_alerts, tab_analysis, tab_export = st.tabs(["History", "Alerts", "Analysis", "Export"])

# ---------------- History ----------------
with tab_history:
    m1, m2, m3 = st.columns(3)
    m1.metric("Records", len(battery.history))
    m2.metric("Critical alerts", battery.critical_alerts)
    m3.metric("Warnings", battery.warning_alerts)

    st.markdown("#### System info")
    st.table(pd.Series(battery.info, name="value"))
    st.markdown("#### Statistics")
    st.table(pd.Series(battery.stats, name="value"))

    if battery.history:
        labels = [e.display_label for e in battery.history]
        fig = go.Figure()
        fig.add_trace(go.Scatter(x=labels, y=[e.voltage_v for e in battery.history], name="Voltage (V)"))
        fig.add_trace(go.Scatter(x=labels, y=[e.temperature_c for e in battery.history],
                                 name="Temperature (°C)", yaxis="y2"))
        fig.update_layout(height=420, yaxis=dict(title="V"),
                          yaxis2=dict(title="°C", overlaying="y", side="right"))
        st.plotly_chart(fig, use_container_width=True)

# ---------------- Alerts ----------------
with tab_alerts:
    f1, f2 = st.columns(2)
    filters = AlertFilters(temperature=f1.checkbox("Temperature", value=True),
                           voltage=f2.checkbox("Voltage", value=True))
    shown = filter_alerts(battery.alerts, filters)
    st.dataframe(pd.DataFrame(
        [{"When": a.timestamp_label, "Severity": a.severity, "Message": a.message} for a in shown]
    ), use_container_width=True)

# ---------------- Analysis ----------------
with tab_analysis:
    result = fleet.analysis()
    if result is not None:
        st.markdown("#### Health")
        st.dataframe(pd.DataFrame([{
            "Battery": h.display_name, "SOH": h.soh, "Source": h.soh_source, "Cycles": h.cycles,
            "Status": h.health_status.value, "Score": round(h.health_score, 1),
            "Life (years)": round(h.estimated_life_remaining, 1),
        } for h in result.battery_health]), use_container_width=True)

        st.markdown("#### Degradation & balance")
        st.dataframe(pd.DataFrame([{
            "Battery": d.display_name, "Trend": d.trend.value, "Voltage %": d.degradation_rate,
            "SOC %": d.soc_degradation, "Balance": b.balance_status.value, "Max spread (mV)": b.imbalance_mv,
        } for d, b in zip(result.degradation_analysis, result.cell_balance)]), use_container_width=True)

        st.markdown("#### Risk")
        st.dataframe(pd.DataFrame([{
            "Battery": r.display_name, "Score": r.risk_score, "Level": r.risk_level.value,
            "Factors": ", ".join(r.risk_factors),
        } for r in result.risk_assessment]), use_container_width=True)

        if result.performance_comparison:
            st.markdown("#### Ranking")
            st.dataframe(pd.DataFrame([{
                "Rank": p.rank, "Battery": p.display_name, "Score": round(p.performance_score, 1),
                "Position": p.relative_performance,
            } for p in result.performance_comparison]), use_container_width=True)

        for rec in result.recommendations:
            show = {"critical": st.error, "warning": st.warning}.get(rec.severity, st.info)
            show(f"**{rec.battery}**: {rec.message}")

# ---------------- Export ----------------
with tab_export:
    st.download_button("CSV", history_to_csv(battery, fleet.thresholds),
                       file_name=export_filename("export", "csv"), mime="text/csv")
    st.download_button("JSON", json.dumps(document_to_export(battery, fleet.thresholds), indent=2),
                       file_name=export_filename("export", "json"), mime="application/json")
    st.download_button("All batteries (JSON)",
                       json.dumps(fleet_to_export(fleet.batteries, fleet.thresholds), indent=2),
                       file_name=export_filename("battery-history", "json"), mime="application/json")
    st.json(build_report(battery))
