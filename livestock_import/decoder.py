"""Decode import payloads into raw rows.

**Input Contract:**
- CSV bytes or text: first line holds headers; values are read as text with a
  single layer of surrounding quotes removed. Encodings are tried in order
  (UTF-8 with optional BOM, Windows Arabic, Latin-1).
- Excel workbook bytes (.xlsx, .xls): first sheet only, first row holds headers.
- JSON: an already-parsed list of flat mappings (webhook case), or the bytes or
  text of such a list.

**Output Contract:**
- One RawRow per data row, in input order, indexed from 1
- Header text preserved as decoded; empty cells become ``""``

**Error Handling:**
- Any structural problem (unsupported format, undecodable bytes, corrupt
  workbook, non-list JSON, non-mapping element) raises DecodeError. This is a
  batch-fatal condition; no rows are returned.
"""

from __future__ import annotations

import io
import json
import logging
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Union

import pandas as pd

from .data_models import RawRow
from .enums import InputFormat
from .exceptions import DecodeError
from .utils import is_missing

LOG = logging.getLogger(__name__)

CSV_ENCODINGS = ("utf-8-sig", "cp1256", "latin-1")

Payload = Union[bytes, str, List[Mapping[str, Any]]]


def _csv_text(payload: Union[bytes, str]) -> str:
    if isinstance(payload, str):
        return payload
    for enc in CSV_ENCODINGS:
        try:
            text = payload.decode(enc)
        except UnicodeDecodeError:
            continue
        LOG.debug("Decoded CSV payload as %s", enc)
        return text
    raise DecodeError("Could not decode CSV with common encodings")


def _decode_csv(payload: Union[bytes, str], delimiter: str) -> List[Dict[str, Any]]:
    if not isinstance(payload, (bytes, str)):
        raise DecodeError(f"CSV payload must be bytes or text, got {type(payload).__name__}")
    text = _csv_text(payload)
    if not text.strip():
        return []
    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep=delimiter,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            quotechar='"',
        )
    except pd.errors.EmptyDataError:
        return []
    except pd.errors.ParserError as exc:
        raise DecodeError(f"Malformed CSV: {exc}") from exc
    df.columns = [str(column) for column in df.columns]
    return df.to_dict("records")


def _cell(value: Any) -> Any:
    if is_missing(value):
        return ""
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


def _decode_excel(payload: bytes) -> List[Dict[str, Any]]:
    if not isinstance(payload, (bytes, bytearray)):
        raise DecodeError(f"Excel payload must be bytes, got {type(payload).__name__}")
    # .xlsx files are zip archives; legacy .xls is left to pandas' engine choice
    engine = "openpyxl" if bytes(payload[:2]) == b"PK" else None
    try:
        df = pd.read_excel(io.BytesIO(payload), sheet_name=0, dtype=object, engine=engine)
    except Exception as exc:
        LOG.error("Failed to read workbook: %s", exc)
        raise DecodeError(f"Could not read workbook: {exc}") from exc

    df = df.dropna(how="all")
    df.columns = [str(column) for column in df.columns]
    return [
        {header: _cell(value) for header, value in record.items()}
        for record in df.to_dict("records")
    ]


def _decode_json(payload: Payload) -> List[Mapping[str, Any]]:
    if isinstance(payload, (bytes, str)):
        try:
            payload = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise DecodeError(f"Invalid JSON payload: {exc}") from exc
    if not isinstance(payload, list):
        raise DecodeError(f"JSON payload must be a list of rows, got {type(payload).__name__}")
    for position, element in enumerate(payload, start=1):
        if not isinstance(element, Mapping):
            raise DecodeError(
                f"JSON row {position} must be an object, got {type(element).__name__}"
            )
    return payload


def decode(
    payload: Payload,
    declared_format: Union[InputFormat, str],
    *,
    delimiter: str = ",",
) -> List[RawRow]:
    """Turn an import payload into raw rows.

    Parameters
    ----------
    payload : bytes, str or list of mappings
        File bytes, CSV text, or pre-parsed webhook rows.
    declared_format : InputFormat or str
        Format of the payload (``csv``, ``excel``/``xlsx``/``xls``, ``json``).
    delimiter : str, default ","
        CSV field delimiter.

    Returns
    -------
    List[RawRow]
        Rows in input order with 1-based indices.

    Raises
    ------
    DecodeError
        If the format is unsupported or the payload cannot be decoded.
    """
    if isinstance(declared_format, InputFormat):
        input_format = declared_format
    else:
        try:
            input_format = InputFormat.from_string(declared_format)
        except ValueError as exc:
            raise DecodeError(str(exc)) from exc

    if input_format is InputFormat.CSV:
        records = _decode_csv(payload, delimiter)
    elif input_format is InputFormat.EXCEL:
        records = _decode_excel(payload)
    else:
        records = _decode_json(payload)

    rows = [
        RawRow(index=index, values=MappingProxyType(dict(record)))
        for index, record in enumerate(records, start=1)
    ]
    LOG.info("Decoded %s rows from %s input", len(rows), input_format.value)
    return rows
