"""Unit tests for aliases module - header resolution.

Tests cover:
- Priority order among aliases of one field
- Skipping of blank cells
- Case and whitespace insensitive fallback
- Optional fuzzy matching of near-miss headers
- Reporting of unmapped headers

Real-world significance:
- Every field team names columns differently (``Cattle`` vs ``Cattel``,
  English vs Arabic); resolution decides whether their data is kept
"""

from __future__ import annotations

from types import MappingProxyType

import pytest

from livestock_import import aliases
from livestock_import.data_models import FieldAliasTable, RawRow
from livestock_import.enums import RecordType


@pytest.fixture
def table() -> FieldAliasTable:
    return FieldAliasTable(
        record_type=RecordType.VACCINATION,
        aliases={
            "serial_no": ("Serial No", "serialNo"),
            "sheep_female": ("F. Sheep", "fSheep", "female_sheep"),
            "sheep_vaccinated": ("Vaccinated Sheep", "vaccinatedSheep"),
            "latitude": ("N Coordinate", "N", "n"),
            "name": ("Name", "الاسم"),
        },
        examples={},
    )


@pytest.mark.unit
class TestNormalizeHeader:
    """Unit tests for normalize_header."""

    def test_lowercases_and_collapses_whitespace(self) -> None:
        assert aliases.normalize_header("  Vaccinated   Sheep ") == "vaccinated sheep"

    def test_non_string_header(self) -> None:
        assert aliases.normalize_header(2025) == "2025"


@pytest.mark.unit
class TestResolve:
    """Unit tests for resolve function."""

    def test_first_present_alias_wins(self, table: FieldAliasTable) -> None:
        resolved = aliases.resolve({"fSheep": "10", "F. Sheep": "49"}, table)
        assert resolved["sheep_female"] == "49"

    def test_blank_alias_skipped_for_next(self, table: FieldAliasTable) -> None:
        """Verify an empty preferred column does not hide a filled alternative.

        Real-world significance:
        - Templates often carry both an English and a legacy column, only
          one of which is filled
        """
        resolved = aliases.resolve({"F. Sheep": "", "female_sheep": "49"}, table)
        assert resolved["sheep_female"] == "49"

    def test_missing_fields_omitted(self, table: FieldAliasTable) -> None:
        resolved = aliases.resolve({"Serial No": "1"}, table)
        assert resolved == {"serial_no": "1"}

    def test_case_and_whitespace_insensitive_fallback(self, table: FieldAliasTable) -> None:
        resolved = aliases.resolve({" vaccinated  sheep": "57", "SERIAL NO": "7"}, table)

        assert resolved["sheep_vaccinated"] == "57"
        assert resolved["serial_no"] == "7"

    def test_exact_match_preferred_over_folded(self, table: FieldAliasTable) -> None:
        """Verify ``N`` and ``n`` are distinct exact aliases before folding."""
        resolved = aliases.resolve({"n": "26.1", "N": ""}, table)
        assert resolved["latitude"] == "26.1"

    def test_arabic_headers(self, table: FieldAliasTable) -> None:
        assert aliases.resolve({"الاسم": "سعد"}, table)["name"] == "سعد"

    def test_accepts_raw_row_and_does_not_mutate(self, table: FieldAliasTable) -> None:
        values = {"Serial No": "1", "Extra": "x"}
        row = RawRow(index=1, values=MappingProxyType(dict(values)))

        resolved = aliases.resolve(row, table)

        assert resolved == {"serial_no": "1"}
        assert dict(row.values) == values

    def test_fuzzy_disabled_by_default(self, table: FieldAliasTable) -> None:
        assert "sheep_vaccinated" not in aliases.resolve({"Vacinated Sheep": "57"}, table)

    def test_fuzzy_matches_typo(self, table: FieldAliasTable) -> None:
        """Verify near-miss headers resolve when fuzzy matching is on.

        Real-world significance:
        - Hand-typed headers such as ``Vacinated Sheep`` would otherwise
          silently drop a whole column
        """
        resolved = aliases.resolve({"Vacinated Sheep": "57"}, table, fuzzy_threshold=90)
        assert resolved["sheep_vaccinated"] == "57"

    def test_fuzzy_ignores_short_aliases(self, table: FieldAliasTable) -> None:
        """Verify one-letter aliases such as ``N`` never fuzzy match."""
        resolved = aliases.resolve({"nn": "26.1"}, table, fuzzy_threshold=60)
        assert "latitude" not in resolved

    def test_fuzzy_does_not_reuse_known_headers(self, table: FieldAliasTable) -> None:
        resolved = aliases.resolve({"F. Sheep": "49"}, table, fuzzy_threshold=50)

        assert resolved["sheep_female"] == "49"
        assert "sheep_vaccinated" not in resolved


@pytest.mark.unit
class TestUnmappedHeaders:
    """Unit tests for unmapped_headers."""

    def test_lists_unknown_headers_in_row_order(self, table: FieldAliasTable) -> None:
        row = {"Serial No": "1", "Owner Notes": "x", "serial no": "2", "Column1": ""}
        assert aliases.unmapped_headers(row, table) == ["Owner Notes", "Column1"]
