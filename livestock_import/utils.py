"""Utility functions shared across import steps.

Text conversion helpers that treat None, NaN and whitespace-only values
uniformly, plus conversion of documents into JSON-safe structures.
"""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Mapping

import pandas as pd

_EASTERN_DIGITS = str.maketrans(
    "٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹",
    "01234567890123456789",
)


def is_missing(value: Any) -> bool:
    """Return True for None, NaN and NaT scalars."""
    if value is None:
        return True
    return bool(pd.api.types.is_scalar(value) and pd.isna(value))


def string_or_empty(value: Any) -> str:
    """Safely convert value to string, returning empty string for None/NaN.

    Parameters
    ----------
    value : Any
        Value to convert (may be None, NaN, empty string, or any type)

    Returns
    -------
    str
        Stripped string value or empty string for missing values
    """
    if is_missing(value):
        return ""
    return str(value).strip()


def is_blank(value: Any) -> bool:
    """Return True when value is missing or only whitespace."""
    return string_or_empty(value) == ""


def identifier_text(value: Any) -> str:
    """Render an identifier cell as text.

    Spreadsheet engines hand back numeric identifiers as floats
    (``1004458947.0``); whole floats are rendered without the fraction.
    """
    if isinstance(value, float) and not is_missing(value) and value.is_integer():
        return str(int(value))
    return ascii_digits(string_or_empty(value))


def ascii_digits(text: str) -> str:
    """Replace Arabic-Indic and extended Arabic-Indic digits with ASCII digits."""
    return text.translate(_EASTERN_DIGITS)


def plain_value(value: Any) -> Any:
    """Convert a value into something ``json.dumps`` accepts.

    Dates become ISO strings, enums their values, dataclasses and mappings
    plain dicts, tuples lists. Missing scalars become None.
    """
    if is_dataclass(value) and not isinstance(value, type):
        return plain_value(asdict(value))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(key): plain_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [plain_value(item) for item in value]
    if is_missing(value):
        return None
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        # numpy scalar
        return value.item()
    return value
