"""
Common utility functions and helpers.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
import re


def collapse_whitespace(text: str) -> str:
    """
    Collapse internal whitespace runs to single spaces and trim.

    Args:
        text: Raw text string

    Returns:
        Normalized text
    """
    return re.sub(r'\s+', ' ', text or '').strip()


def normalize_key(label: str) -> str:
    """
    Derive a stable snake-case key from a placeholder label.

    Args:
        label: Raw placeholder or heading label

    Returns:
        Lowercase key with '&' spelled out and non-alphanumerics collapsed to '_'
    """
    key = str(label or '').lower()
    key = key.replace('&', ' and ')
    key = re.sub(r'[^a-z0-9]+', '_', key)
    return key.strip('_')


def filename_component(text: Optional[str], default: str) -> str:
    """
    Make a string safe for use inside a download filename.

    Args:
        text: Raw component (client name, document title)
        default: Value used when text is empty

    Returns:
        Component with runs of non-word characters replaced by '_'
    """
    value = (text or '').strip() or default
    return re.sub(r'[^\w-]+', '_', value, flags=re.ASCII)


def format_date(value: Any, fmt: str = "%d %b %Y") -> str:
    """
    Format a date-like value for display.

    Accepts date/datetime objects and ISO strings ("2025-03-05",
    "2025-03-05T10:00:00"). Anything unparseable is returned as text.

    Args:
        value: Date-like value
        fmt: strftime format for the output

    Returns:
        Formatted date string
    """
    if value is None or value == '':
        return ''
    if isinstance(value, datetime):
        return value.strftime(fmt)
    if isinstance(value, date):
        return value.strftime(fmt)
    text = str(value).strip()
    for parser in (date.fromisoformat, datetime.fromisoformat):
        try:
            return parser(text).strftime(fmt)
        except ValueError:
            continue
    return text


def format_currency(value: Any, symbol: str = "$") -> str:
    """
    Format an amount as a currency string with thousands separators.

    Args:
        value: Number or numeric string (symbols and commas are ignored)
        symbol: Currency symbol prefix

    Returns:
        e.g. "$12,500.00"; non-numeric input is returned unchanged
    """
    if value is None or value == '':
        return ''
    if isinstance(value, bool):
        return str(value)
    raw = str(value).strip()
    cleaned = re.sub(r'[^\d.\-]', '', raw)
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return raw
    sign = '-' if amount < 0 else ''
    return f"{sign}{symbol}{abs(amount):,.2f}"
