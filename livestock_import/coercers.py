"""Value coercers for raw spreadsheet and webhook cells.

Each coercer is a pure function that never raises on bad input. When a
non-blank value cannot be interpreted, the coercer returns the caller's
default and, if an ``issues`` list is supplied, appends a message to it.
Blank values fall back to the default silently. Strict mode in the batch
orchestrator turns collected issues into row errors.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime, timedelta
from functools import lru_cache
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
from babel.dates import get_month_names

from .data_models import LabelTable
from .utils import ascii_digits, is_missing, string_or_empty

LOG = logging.getLogger(__name__)

# Serial day 0 in the 1900 date system, shifted for the 1900 leap-year bug.
EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_SERIAL_MAX = 100000
# Numeric text below this (1927-05-18) is not taken as a workbook serial.
EXCEL_TEXT_SERIAL_MIN = 10000

DATE_FORMATS = (
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%Y/%m/%d",
    "%Y-%m-%d",
    "%Y-%d-%m",
    "%d-%m-%Y",
    "%d.%m.%Y",
)

TRUTHY = frozenset({"yes", "true", "نعم", "1"})

_DAY_MONTH = re.compile(r"^(\d{1,2})[-\s]([^\W\d_]+)\.?$")
_YEAR_ONLY = re.compile(r"^(1[89]\d{2}|2\d{3})$")
_PHONE_SEPARATORS = re.compile(r"[\s\-().]")


def _note(issues: Optional[List[str]], message: str) -> None:
    if issues is not None:
        issues.append(message)


@lru_cache(maxsize=None)
def build_month_table(locales: Tuple[str, ...] = ("en", "ar")) -> Mapping[str, int]:
    """Build a lowercase month-name to month-number table from CLDR data.

    Wide and abbreviated names of every locale are included, plus the
    three-letter prefix of Latin-script names so that ``Sep`` and ``Sept``
    both resolve.

    Parameters
    ----------
    locales : tuple of str
        Babel locale identifiers.

    Returns
    -------
    Mapping[str, int]
        Read-only mapping, built once per locale tuple.
    """
    table = {}
    for locale in locales:
        for width in ("wide", "abbreviated"):
            for number, name in get_month_names(width, locale=locale).items():
                name = name.strip().rstrip(".").lower()
                table[name] = number
                if name.isascii() and len(name) > 3:
                    table.setdefault(name[:3], number)
    return MappingProxyType(table)


def _excel_serial(value: float) -> Optional[date]:
    if 0 < value < EXCEL_SERIAL_MAX:
        return EXCEL_EPOCH + timedelta(days=int(value))
    return None


def parse_date(
    value: Any,
    default: Optional[date],
    *,
    today: Optional[date] = None,
    issues: Optional[List[str]] = None,
    months: Optional[Mapping[str, int]] = None,
) -> Optional[date]:
    """Parse a date cell, falling back to a default.

    Tried in order: date/datetime/Timestamp passthrough; a bare four-digit
    year (January 1st of that year); Excel serial numbers, where numeric text
    must be at least ``EXCEL_TEXT_SERIAL_MIN``; ``day-Mon`` (``1-Sep``,
    ``3-سبتمبر``) in the year of ``today``; the explicit formats in
    ``DATE_FORMATS`` (day-first before month-first); finally
    ``pandas.to_datetime``. Arabic-Indic digits are normalized first.

    Parameters
    ----------
    value : Any
        Raw cell value.
    default : date or None
        Returned for blank or unparseable input.
    today : date, optional
        Reference date for year-less values. Defaults to ``date.today()``.
    issues : list of str, optional
        Receives a message when a non-blank value is unparseable.
    months : Mapping[str, int], optional
        Month-name table. Defaults to English and Arabic CLDR names.

    Returns
    -------
    date or None
        Parsed date or ``default``.
    """
    if is_missing(value):
        return default
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if float(value).is_integer() and _YEAR_ONLY.match(str(int(value))):
            return date(int(value), 1, 1)
        parsed = _excel_serial(float(value))
        if parsed is None:
            _note(issues, f"unparseable date {value!r}")
            return default
        return parsed

    text = ascii_digits(string_or_empty(value))
    if not text:
        return default

    year_only = _YEAR_ONLY.match(text)
    if year_only:
        return date(int(year_only.group(1)), 1, 1)

    try:
        number = float(text)
    except ValueError:
        number = None
    if number is not None and number >= EXCEL_TEXT_SERIAL_MIN:
        parsed = _excel_serial(number)
        if parsed is not None:
            return parsed

    match = _DAY_MONTH.match(text)
    if match:
        month = (months or build_month_table()).get(match.group(2).lower())
        if month is not None:
            year = (today or date.today()).year
            try:
                return date(year, month, int(match.group(1)))
            except ValueError:
                pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    try:
        parsed_ts = pd.to_datetime(text, errors="coerce")
    except (ValueError, OverflowError):
        parsed_ts = pd.NaT
    if not pd.isna(parsed_ts):
        return parsed_ts.date()

    LOG.debug("Could not parse date %r; using default %s", value, default)
    _note(issues, f"unparseable date {value!r}")
    return default


def _numeric_text(value: Any) -> str:
    return ascii_digits(string_or_empty(value)).replace(",", "")


def parse_int(value: Any, default: int = 0, *, issues: Optional[List[str]] = None) -> int:
    """Parse an integer count; blank or non-numeric input yields ``default``.

    Accepts ``42``, ``42.0`` and ``"42.7"`` (truncated). Never raises.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if is_missing(value):
        return default
    if isinstance(value, float):
        try:
            return int(value)
        except (ValueError, OverflowError):
            _note(issues, f"non-numeric value {value!r}")
            return default

    text = _numeric_text(value)
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return int(float(text))
    except (ValueError, OverflowError):
        _note(issues, f"non-numeric value {value!r}")
        return default


def parse_float(
    value: Any, default: float = 0.0, *, issues: Optional[List[str]] = None
) -> float:
    """Parse a decimal value such as a coordinate; blank or invalid yields ``default``."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if is_missing(value):
            return default
        return float(value)

    text = _numeric_text(value)
    if not text:
        return default
    try:
        parsed = float(text)
    except ValueError:
        _note(issues, f"non-numeric value {value!r}")
        return default
    if is_missing(parsed):
        _note(issues, f"non-numeric value {value!r}")
        return default
    return parsed


def normalize_phone(value: Any, country_code: str = "966") -> str:
    """Rewrite a local phone number into international form.

    - 9 digits starting with ``5``: prepend ``+<country_code>``
    - 10 digits starting with ``05``: drop the trunk ``0``, prepend ``+<country_code>``
    - 12 or 13 digits starting with the country code: prepend ``+``
    - anything already starting with ``+`` or of another shape: unchanged

    Examples
    --------
    >>> normalize_phone("543599283")
    '+966543599283'
    >>> normalize_phone("0543599283")
    '+966543599283'
    >>> normalize_phone("966543599283")
    '+966543599283'
    """
    if isinstance(value, float) and not is_missing(value) and value.is_integer():
        value = int(value)
    text = ascii_digits(string_or_empty(value))
    if not text or text.startswith("+"):
        return text

    digits = _PHONE_SEPARATORS.sub("", text)
    if not digits.isdigit():
        return text
    if len(digits) == 9 and digits.startswith("5"):
        return f"+{country_code}{digits}"
    if len(digits) == 10 and digits.startswith("05"):
        return f"+{country_code}{digits[1:]}"
    if len(digits) in (12, 13) and digits.startswith(country_code):
        return f"+{digits}"
    return text


def parse_bool(value: Any) -> bool:
    """Return True for ``yes``/``true``/``نعم``/``1`` (case-insensitive), else False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and not is_missing(value):
        return value == 1
    return string_or_empty(value).lower() in TRUTHY


def parse_label(
    value: Any,
    labels: LabelTable,
    default: Optional[str] = None,
    *,
    issues: Optional[List[str]] = None,
) -> str:
    """Map a category cell to its canonical label.

    Synonyms and canonical labels match case-insensitively. Blank values
    return ``default`` (the table's default when not given); unknown values do
    the same and are reported to ``issues``.
    """
    fallback = labels.default if default is None else default
    text = string_or_empty(value)
    if not text:
        return fallback
    canonical = labels.lookup.get(text.lower())
    if canonical is not None:
        return canonical
    _note(issues, f"unknown {labels.name} value {value!r}")
    return fallback


def parse_list(value: Any) -> Tuple[str, ...]:
    """Split a list cell into items.

    Accepts a real list, a JSON array string, or a comma/Arabic-comma
    separated string. Blank items are dropped.
    """
    if is_missing(value):
        return ()
    if isinstance(value, (list, tuple)):
        items: Sequence[Any] = value
    else:
        text = string_or_empty(value)
        if not text:
            return ()
        items = []
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                decoded = None
            if isinstance(decoded, list):
                items = decoded
        if not items:
            items = re.split(r"[,،]", text.strip("[]"))
    return tuple(item for item in (string_or_empty(i) for i in items) if item)
