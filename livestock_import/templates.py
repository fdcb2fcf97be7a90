"""Downloadable CSV import templates.

A template has one header row, listing the preferred spelling of every
canonical field in the record type's alias table, and one example row taken
from the table's ``example`` values.
"""

from __future__ import annotations

from typing import List

import pandas as pd

from .data_models import FieldAliasTable
from .enums import RecordType


def template_headers(alias_table: FieldAliasTable) -> List[str]:
    """Preferred header per field, skipping spellings already used by an earlier field."""
    headers: List[str] = []
    for aliases in alias_table.aliases.values():
        header = next((alias for alias in aliases if alias not in headers), aliases[0])
        headers.append(header)
    return headers


def build_template(record_type: RecordType, alias_table: FieldAliasTable) -> str:
    """Render the CSV template for a record type.

    Parameters
    ----------
    record_type : RecordType
        Record type the template is for.
    alias_table : FieldAliasTable
        Alias table of that record type.

    Returns
    -------
    str
        CSV text: header row plus one example row.

    Raises
    ------
    ValueError
        If the alias table belongs to a different record type.
    """
    if alias_table.record_type is not record_type:
        raise ValueError(
            f"Alias table is for {alias_table.record_type.value}, not {record_type.value}"
        )
    headers = template_headers(alias_table)
    example = [alias_table.examples.get(field_name, "") for field_name in alias_table.fields]
    frame = pd.DataFrame([example], columns=headers)
    return frame.to_csv(index=False, lineterminator="\n")
