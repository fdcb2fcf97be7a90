"""Resolve raw row headers to canonical field names.

For each canonical field of a record type, the alias list is scanned in
priority order and the first present, non-blank value wins. Exact header
matches are tried before case- and whitespace-insensitive ones. An optional
fuzzy pass (rapidfuzz) catches near-miss spellings such as ``Vacinated Sheep``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Union

from rapidfuzz import fuzz, process

from .data_models import FieldAliasTable, RawRow
from .utils import is_blank

LOG = logging.getLogger(__name__)

# Aliases shorter than this (``N``, ``E``, ``ID``) are never fuzzy matched.
MIN_FUZZY_LENGTH = 4


def normalize_header(header: Any) -> str:
    """Normalize header formatting prior to matching."""
    return re.sub(r"\s+", " ", str(header).strip().lower())


def _row_values(raw_row: Union[RawRow, Mapping[str, Any]]) -> Mapping[str, Any]:
    return raw_row.values if isinstance(raw_row, RawRow) else raw_row


def _folded(values: Mapping[str, Any]) -> Dict[str, Any]:
    folded: Dict[str, Any] = {}
    for header, value in values.items():
        key = normalize_header(header)
        if key not in folded or is_blank(folded[key]):
            folded[key] = value
    return folded


def _known_headers(alias_table: FieldAliasTable) -> set:
    return {normalize_header(alias) for aliases in alias_table.aliases.values() for alias in aliases}


def _fuzzy_value(
    folded: Mapping[str, Any],
    candidates: List[str],
    aliases: tuple,
    threshold: int,
) -> Optional[Any]:
    if not candidates:
        return None
    for alias in aliases:
        query = normalize_header(alias)
        if len(query) < MIN_FUZZY_LENGTH:
            continue
        match = process.extractOne(
            query=query,
            choices=candidates,
            scorer=fuzz.ratio,
            score_cutoff=threshold,
        )
        if match is None:
            continue
        header, score, _ = match
        LOG.debug("Matching header '%s' to alias '%s' with score %s", header, alias, score)
        return folded[header]
    return None


def resolve(
    raw_row: Union[RawRow, Mapping[str, Any]],
    alias_table: FieldAliasTable,
    *,
    fuzzy_threshold: Optional[int] = None,
) -> Dict[str, Any]:
    """Map a raw row to canonical field names.

    Parameters
    ----------
    raw_row : RawRow or Mapping[str, Any]
        Row keyed by original header text. Never mutated.
    alias_table : FieldAliasTable
        Header spellings per canonical field.
    fuzzy_threshold : int, optional
        When set, headers that match no alias exactly are compared with
        ``rapidfuzz.fuzz.ratio`` and accepted at or above this score.

    Returns
    -------
    Dict[str, Any]
        Canonical field name to raw value. Fields with no present, non-blank
        value are omitted.

    Examples
    --------
    >>> resolve({"F. Sheep": "49", "sheep": ""}, table)["sheep_female"]
    '49'
    """
    values = _row_values(raw_row)
    folded = _folded(values)

    fuzzy_candidates: List[str] = []
    if fuzzy_threshold is not None:
        known = _known_headers(alias_table)
        fuzzy_candidates = [
            header for header, value in folded.items() if header not in known and not is_blank(value)
        ]

    resolved: Dict[str, Any] = {}
    for field_name, aliases in alias_table.aliases.items():
        value = next(
            (values[alias] for alias in aliases if alias in values and not is_blank(values[alias])),
            None,
        )
        if value is None:
            value = next(
                (
                    folded[key]
                    for key in (normalize_header(alias) for alias in aliases)
                    if key in folded and not is_blank(folded[key])
                ),
                None,
            )
        if value is None and fuzzy_threshold is not None:
            value = _fuzzy_value(folded, fuzzy_candidates, aliases, fuzzy_threshold)
        if value is not None:
            resolved[field_name] = value
    return resolved


def unmapped_headers(
    raw_row: Union[RawRow, Mapping[str, Any]], alias_table: FieldAliasTable
) -> List[str]:
    """Return headers of the row that match none of the table's aliases."""
    known = _known_headers(alias_table)
    return [header for header in _row_values(raw_row) if normalize_header(header) not in known]
