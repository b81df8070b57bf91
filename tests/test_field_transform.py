from __future__ import annotations

from datetime import date

import pytest

from src.backend.utils.field_transform import (
    apply_date_format,
    apply_number_format,
    apply_text_transform,
    parse_date_value,
    transform_field_value,
)


@pytest.mark.parametrize(
    "transform,expected",
    [
        ("sentence", "Hello world"),
        ("lowercase", "hello world"),
        ("uppercase", "HELLO WORLD"),
        ("capitalize_words", "Hello World"),
        ("toggle", "HEllO wORLD"),
        ("none", "heLLo World"),
        (None, "heLLo World"),
    ],
)
def test_text_transforms(transform, expected):
    assert apply_text_transform("heLLo World", transform) == expected


def test_number_with_commas():
    assert apply_number_format("1234567", "with_commas") == "1,234,567"
    assert apply_number_format("1234.5", "with_commas") == "1,234.5"
    assert apply_number_format("1234.56789", "with_commas") == "1,234.568"


def test_number_without_commas_strips_grouping():
    assert apply_number_format("1,234,567", "without_commas") == "1234567"
    assert apply_number_format("12.50", "none") == "12.5"


def test_non_numeric_is_untouched():
    assert apply_number_format("N/A", "with_commas") == "N/A"
    assert apply_number_format("", "with_commas") == ""


def test_parse_date_accepts_iso_and_day_first():
    assert parse_date_value("2024-03-05") == date(2024, 3, 5)
    assert parse_date_value("2024-03-05T10:00:00") == date(2024, 3, 5)
    assert parse_date_value("05/03/2024") == date(2024, 3, 5)
    assert parse_date_value("05.03.2024") == date(2024, 3, 5)
    assert parse_date_value("31/02/2024") is None
    assert parse_date_value("soon") is None


@pytest.mark.parametrize(
    "fmt,expected",
    [
        ("DD-MM-YYYY", "05-03-2024"),
        ("MM/DD/YYYY", "03/05/2024"),
        ("YYYY.MM.DD", "2024.03.05"),
        ("DD Mon YYYY", "05 Mar 2024"),
        ("DD Month YYYY", "05 March 2024"),
        ("Month DD, YYYY", "March 05, 2024"),
        ("YYYY Month DD", "2024 March 05"),
        (None, "05-03-2024"),
    ],
)
def test_date_formats(fmt, expected):
    assert apply_date_format("2024-03-05", fmt) == expected


def test_unparseable_date_passes_through():
    assert apply_date_format("next week", "DD/MM/YYYY") == "next week"


def test_dispatch_by_field_type():
    assert transform_field_value(None, "text") == ""
    assert transform_field_value("ravi kumar", "text", text_transform="capitalize_words") == "Ravi Kumar"
    assert transform_field_value("250000", "number", number_format="with_commas") == "250,000"
    assert transform_field_value(date(2024, 1, 9), "date", date_format="DD/MM/YYYY") == "09/01/2024"
    assert transform_field_value("Option A", "dropdown") == "Option A"
