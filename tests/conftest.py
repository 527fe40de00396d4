from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

from pylontech_analyzer.models import Alert, BatteryDocument, HistoryEntry



def history_line(seq: int, voltage: int = 52000, current: int = 1000, temperature: int = 25000,
                 lowest: int = 3300, highest: int = 3310, soc: str = "80", state: str = "Charge",
                 cells: Optional[Sequence[Tuple[int, int]]] = None, marker: str = "50000") -> str:
    """One raw history record; `cells` are (voltage_mv, temperature_mc) pairs."""
    parts = [str(seq), "01/01", "10:00:00", str(voltage), str(current), str(temperature),
             str(temperature - 1000), str(temperature + 1000), str(lowest), str(highest),
             state, "Normal", "Normal", "Normal", "0", "0", soc]
    if cells is not None:
        parts.append(marker)
        for number, (cell_v, cell_t) in enumerate(cells, 1):
            parts += [str(number), str(cell_v), str(cell_t), "Normal", "Normal", "95%"]
    return " ".join(parts)


def dump(info: Optional[Dict[str, str]] = None, stats: Optional[Dict[str, str]] = None,
         lines: Iterable[str] = ()) -> str:
    out = ["pylon> info"]
    out += [f"{k}: {v}" for k, v in (info or {}).items()]
    out.append("pylon> stat")
    out += [f"{k}: {v}" for k, v in (stats or {}).items()]
    out.append("pylon> data history")
    out += list(lines)
    out.append("pylon>")
    return "\n".join(out)


def entry(seq: int = 1, voltage: int = 52000, temperature: int = 25000, soc: str = "80",
          lowest: int = 3300, highest: int = 3310) -> HistoryEntry:
    return HistoryEntry(
        sequence_id=str(seq), day="01/01", time="10:00:00",
        voltage_mv=voltage, current_ma=1000, temperature_mc=temperature,
        temp_low_mc=temperature - 1000, temp_high_mc=temperature + 1000,
        voltage_lowest_mv=lowest, voltage_highest_mv=highest,
        base_state="Charge", soc=soc,
    )


def battery(battery_id: str = "ABC123", stats: Optional[Dict[str, str]] = None,
            history: Optional[List[HistoryEntry]] = None, critical: int = 0,
            warnings: int = 0) -> BatteryDocument:
    history = history if history is not None else []
    doc = BatteryDocument(stats=dict(stats or {}), history=history,
                          battery_id=battery_id, display_name=f"Battery {battery_id}")
    source = history[0] if history else entry()
    doc.alerts = (
        [Alert("critical", "temperature", "High temperature: 50.0°C", "x", source) for _ in range(critical)]
        + [Alert("warning", "voltage", "Low voltage: 47.50V", "x", source) for _ in range(warnings)]
    )
    return doc


@pytest.fixture

def make_line():
    return history_line


@pytest.fixture

def make_dump():
    return dump


@pytest.fixture

def make_entry():
    return entry


@pytest.fixture

def make_battery():
    return battery


@pytest.fixture

def sample_content():
    return dump(
        info={"Device address": "2", "Manufacturer": "PYLON"},
        stats={"SOH": "95%", "Charge Cnt.": "100"},
        lines=[history_line(i, voltage=52000 + i) for i in range(1, 4)],
    )
