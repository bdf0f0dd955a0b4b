"""Tests for text and formatting helpers."""
from datetime import date, datetime

import pytest

from sow_engine.utils.helpers import (
    collapse_whitespace,
    filename_component,
    format_currency,
    format_date,
    normalize_key,
)


@pytest.mark.parametrize("label,key", [
    ("Client Name", "client_name"),
    ("  Charges & Payment ", "charges_and_payment"),
    ("Start-Date (UTC)", "start_date_utc"),
    ("", ""),
    ("???", ""),
])
def test_normalize_key(label, key):
    assert normalize_key(label) == key


def test_collapse_whitespace():
    assert collapse_whitespace("  Client \t\n Name ") == "Client Name"
    assert collapse_whitespace(None) == ""


def test_filename_component():
    assert filename_component("Acme Corp", "Client") == "Acme_Corp"
    assert filename_component("", "Client") == "Client"
    assert filename_component("Café Ltd", "x") == "Caf_Ltd"


@pytest.mark.parametrize("value,expected", [
    ("2025-03-05", "05 Mar 2025"),
    ("2025-03-05T10:30:00", "05 Mar 2025"),
    (date(2025, 12, 1), "01 Dec 2025"),
    (datetime(2025, 1, 2, 8, 0), "02 Jan 2025"),
    ("next spring", "next spring"),
    (None, ""),
])
def test_format_date(value, expected):
    assert format_date(value) == expected


def test_format_date_custom_format():
    assert format_date("2025-03-05", "%Y/%m/%d") == "2025/03/05"


@pytest.mark.parametrize("value,expected", [
    (48000, "$48,000.00"),
    ("150", "$150.00"),
    ("$1,250.5", "$1,250.50"),
    (-20, "-$20.00"),
    ("TBD", "TBD"),
    ("", ""),
])
def test_format_currency(value, expected):
    assert format_currency(value) == expected


def test_format_currency_symbol():
    assert format_currency(10, "€") == "€10.00"
