from datetime import datetime

import pytest

from pylontech_analyzer.identity import (
    extract_file_datetime,
    generate_battery_id,
    generate_display_name,
)
from pylontech_analyzer.models import BatteryDocument


@pytest.mark.parametrize("filename, expected", [
    ("HABC123_history_20240115143000.txt", "ABC123"),
    ("KXYZ789_history_20240115120000.txt", "XYZ789"),
    ("/tmp/upload/H1234567890AB_history.txt", "1234567890AB"),
])
def test_battery_id_from_device_filename(filename, expected):
    assert generate_battery_id(filename) == expected


def test_battery_id_fallback_is_cleaned_and_truncated():
    result = generate_battery_id("unknown-format-file.txt")
    assert result == "unknownforma"
    assert len(result) <= 12
    assert result.isalnum()


def test_file_datetime_fields():
    assert extract_file_datetime("HABC123_history_20240115143000.txt") == datetime(2024, 1, 15, 14, 30, 0)
    assert extract_file_datetime("KXYZ789_history_20231225180000.TXT") == datetime(2023, 12, 25, 18, 0, 0)


@pytest.mark.parametrize("filename", [
    "invalid-file.txt",
    "HABC123_history_2024011514.txt",
    "HABC123_history_20241345000000.txt",   # month 13
    "HABC123_history_20240115143000.csv",
])
def test_file_datetime_none_when_not_matching(filename):
    assert extract_file_datetime(filename) is None


def test_display_name_priority():
    assert generate_display_name(BatteryDocument(device_address="2", info={"Device address": "9"})) == "Battery 2"
    assert generate_display_name(BatteryDocument(info={"Device address": "5"})) == "Battery 5"
    assert generate_display_name(BatteryDocument(battery_id="ABC123456789")) == "Battery ABC12345"
