"""Unit tests for enums module - record types, formats and strategies.

Tests cover:
- RecordType name normalization (snake, kebab, camel, table type)
- Derived record type attributes (table type, serial prefix, identifier)
- InputFormat conversion from declared formats and filenames
- RequestSituation and MatchStrategy defaults

Real-world significance:
- Route segments, CLI arguments and webhook table types all name record types
  differently and must land on the same enum member
- Error messages must list valid options so operators can fix their input
"""

from __future__ import annotations

import pytest

from livestock_import.enums import (
    ClientStatus,
    ImportStage,
    InputFormat,
    MatchStrategy,
    RecordType,
    RequestSituation,
)


@pytest.mark.unit
class TestRecordType:
    """Unit tests for RecordType enumeration."""

    @pytest.mark.parametrize(
        "value",
        ["parasite_control", "parasite-control", "ParasiteControl", "parasitecontrol", " PARASITE_CONTROL "],
    )
    def test_from_string_accepts_naming_variants(self, value: str) -> None:
        """Verify every naming convention resolves to the same member.

        Real-world significance:
        - Webhook routes use kebab case, the CLI snake case, responses the
          lowercase model name
        """
        assert RecordType.from_string(value) is RecordType.PARASITE_CONTROL

    def test_from_string_unknown_lists_valid_options(self) -> None:
        """Verify unknown names raise with the valid options in the message."""
        with pytest.raises(ValueError, match="Unknown record type: dentistry") as exc_info:
            RecordType.from_string("dentistry")

        message = str(exc_info.value)
        for name in RecordType.all_values():
            assert name in message

    def test_from_string_none_raises(self) -> None:
        """Verify None is rejected rather than silently defaulted.

        Real-world significance:
        - A batch without a record type cannot be routed to a collection
        """
        with pytest.raises(ValueError):
            RecordType.from_string(None)

    def test_all_values_in_declaration_order(self) -> None:
        assert RecordType.all_values() == [
            "vaccination",
            "parasite_control",
            "mobile_clinic",
            "laboratory",
            "equine_health",
        ]

    def test_table_type_drops_underscores(self) -> None:
        """Verify webhook table types match the lowercase model names."""
        assert RecordType.PARASITE_CONTROL.table_type == "parasitecontrol"
        assert RecordType.MOBILE_CLINIC.table_type == "mobileclinic"
        assert RecordType.EQUINE_HEALTH.table_type == "equinehealth"
        assert RecordType.VACCINATION.table_type == "vaccination"

    def test_identifier_field_is_sample_code_for_laboratory_only(self) -> None:
        """Verify laboratory records are keyed by sample code.

        Real-world significance:
        - Lab serial numbers are plain sequence numbers that repeat across
          sheets; the sample code is the unique key
        """
        assert RecordType.LABORATORY.identifier_field == "sample_code"
        for record_type in RecordType:
            if record_type is not RecordType.LABORATORY:
                assert record_type.identifier_field == "serial_no"

    def test_serial_prefixes_are_distinct(self) -> None:
        prefixes = [record_type.serial_prefix for record_type in RecordType]
        assert len(set(prefixes)) == len(prefixes)
        assert RecordType.VACCINATION.serial_prefix == "VAC"

    def test_collection_and_service_tag_match_value(self) -> None:
        for record_type in RecordType:
            assert record_type.collection == record_type.value
            assert record_type.service_tag == record_type.value


@pytest.mark.unit
class TestInputFormat:
    """Unit tests for InputFormat enumeration."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("csv", InputFormat.CSV),
            ("CSV", InputFormat.CSV),
            ("xlsx", InputFormat.EXCEL),
            (".xls", InputFormat.EXCEL),
            ("excel", InputFormat.EXCEL),
            ("json", InputFormat.JSON),
        ],
    )
    def test_from_string(self, value: str, expected: InputFormat) -> None:
        assert InputFormat.from_string(value) is expected

    def test_from_string_unsupported_raises(self) -> None:
        """Verify unsupported formats fail with a helpful message.

        Real-world significance:
        - Users occasionally upload PDFs or ODS files; the rejection must say
          which formats are accepted
        """
        with pytest.raises(ValueError, match="Unsupported input format: pdf"):
            InputFormat.from_string("pdf")

    def test_from_filename_uses_last_extension(self) -> None:
        assert InputFormat.from_filename("visits.2025.xlsx") is InputFormat.EXCEL
        assert InputFormat.from_filename("upload.CSV") is InputFormat.CSV

    def test_from_filename_without_extension_raises(self) -> None:
        with pytest.raises(ValueError, match="without extension"):
            InputFormat.from_filename("visits")


@pytest.mark.unit
class TestRequestSituation:
    """Unit tests for RequestSituation enumeration."""

    def test_none_defaults_to_closed(self) -> None:
        """Verify a missing situation means the request was closed.

        Real-world significance:
        - Historical sheets record completed visits without a situation column
        """
        assert RequestSituation.from_string(None) is RequestSituation.CLOSED

    def test_case_insensitive(self) -> None:
        assert RequestSituation.from_string("ongoing") is RequestSituation.ONGOING

    def test_unknown_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown request situation"):
            RequestSituation.from_string("cancelled")


@pytest.mark.unit
class TestMatchStrategy:
    """Unit tests for MatchStrategy enumeration."""

    def test_none_defaults_to_any(self) -> None:
        assert MatchStrategy.from_string(None) is MatchStrategy.ANY

    def test_national_id(self) -> None:
        assert MatchStrategy.from_string("National_ID") is MatchStrategy.NATIONAL_ID

    def test_unknown_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown client match strategy"):
            MatchStrategy.from_string("phone")


@pytest.mark.unit
class TestSimpleEnums:
    """Unit tests for value-only enumerations."""

    def test_client_status_values_are_arabic(self) -> None:
        """Verify stored status text matches what the registry UI filters on."""
        assert ClientStatus.ACTIVE.value == "نشط"
        assert ClientStatus.INACTIVE.value == "غير نشط"

    def test_import_stage_values(self) -> None:
        assert [stage.value for stage in ImportStage] == [
            "decode",
            "resolve",
            "client",
            "mapping",
            "validation",
            "persist",
        ]
