from datetime import datetime, timedelta

from pylontech_analyzer.date_correction import correct_history_dates


def test_unchanged_without_file_date_or_history(make_entry):
    history = [make_entry(1)]
    assert correct_history_dates(history, None) is history
    assert history[0].use_corrected_date is False

    empty = []
    assert correct_history_dates(empty, datetime(2024, 1, 15)) is empty


def test_last_entry_matches_file_date(make_entry):
    file_date = datetime(2024, 1, 15, 14, 30, 0)
    history = [make_entry(i) for i in range(1, 6)]

    result = correct_history_dates(history, file_date)

    assert len(result) == 5
    assert result[-1].corrected_at == file_date
    for i, item in enumerate(result):
        assert item.corrected_at == file_date - timedelta(minutes=4 - i)
        assert item.use_corrected_date is True
        assert item.original_day == "01/01"
        assert item.original_time == "10:00:00"


def test_locale_labels(make_entry):
    result = correct_history_dates([make_entry(1), make_entry(2)], datetime(2024, 1, 15, 0, 0, 30))

    assert result[1].corrected_day == "15/01/2024"
    assert result[1].corrected_time == "00:00:30"
    assert result[0].corrected_day == "14/01/2024"
    assert result[0].corrected_time == "23:59:30"
    assert result[0].display_label == "14/01/2024 23:59:30"


def test_input_entries_not_mutated(make_entry):
    history = [make_entry(1), make_entry(2)]
    result = correct_history_dates(history, datetime(2024, 1, 15))

    assert result is not history
    assert all(not e.use_corrected_date and e.corrected_at is None for e in history)
    assert result[0].raw_label == "01/01 10:00:00"
