"""
Tests for exports.py and profanity_filter.py (pure helpers).
"""
import csv
import io

import profanity_filter
from exports import rows_to_csv, records_to_csv
from conftest import make_bus


def test_rows_to_csv_uses_first_row_keys():
    text = rows_to_csv([{"bus_id": "B1", "capacity": 40}, {"bus_id": "B2", "capacity": 0}])
    assert text.splitlines() == ["bus_id,capacity", "B1,40", "B2,0"]


def test_rows_to_csv_quotes_commas():
    text = rows_to_csv([{"name": "Ravi, K", "route": "North"}])
    assert list(csv.reader(io.StringIO(text)))[1] == ["Ravi, K", "North"]


def test_empty_rows_without_fieldnames():
    assert rows_to_csv([]) == ""


def test_records_to_csv_with_fieldnames():
    text = records_to_csv([make_bus("B1", 40)], fieldnames=["bus_id", "capacity"])
    assert text.splitlines() == ["bus_id,capacity", "B1,40"]


def test_profanity_detection_uses_whole_words():
    assert profanity_filter.contains_profanity("Bus is shit")[0]
    assert profanity_filter.contains_profanity("F**K this delay")[0]
    assert not profanity_filter.contains_profanity("Scunthorpe route")[0]
    assert not profanity_filter.contains_profanity("")[0]


def test_sanitize_input_masks_and_trims():
    assert profanity_filter.sanitize_input("  this shit bus  ") == "this *** bus"


def test_validate_text_input():
    assert profanity_filter.validate_text_input("All good", "feedback") == (True, None)
    is_valid, message = profanity_filter.validate_text_input("", "feedback")
    assert not is_valid
    assert "feedback" in message
