"""Unit tests for data_models module - core pipeline data structures.

Tests cover:
- Client entity serialization to and from store documents
- Visit record serialization with nested herd counts and request blocks
- Row error and batch result response shapes

Real-world significance:
- Documents written here are what the registry and reporting screens read
- Response keys (``totalRows``, ``batchId``...) are consumed by the upload
  screen and the external import tool and must not drift
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import date

import pytest

from livestock_import.data_models import (
    ClientEntity,
    ClientSnapshot,
    Coordinates,
    ImportBatchResult,
    ImportRowError,
    LaboratoryRecord,
    RequestInfo,
    SpeciesCounts,
    VaccinationRecord,
)
from livestock_import.enums import ClientStatus, ImportStage, RecordType, RequestSituation


def _client(**overrides) -> ClientEntity:
    options = dict(
        id="c1",
        name="Owner",
        national_id="1004458947",
        phone="+966543599283",
        village="ابو خريط",
        detailed_address="ابو خريط",
        birth_date=date(1961, 12, 8),
        available_services=("vaccination",),
        created_by="u1",
    )
    options.update(overrides)
    return ClientEntity(**options)


@pytest.mark.unit
class TestClientEntity:
    """Unit tests for ClientEntity."""

    def test_to_document_uses_underscore_id(self) -> None:
        document = _client().to_document()

        assert document["_id"] == "c1"
        assert "id" not in document
        assert document["birth_date"] == "1961-12-08"
        assert document["status"] == "نشط"
        assert document["available_services"] == ["vaccination"]

    def test_to_document_omits_empty_id(self) -> None:
        """Verify unsaved clients let the store assign the id."""
        assert "_id" not in _client(id="").to_document()

    def test_round_trip_through_document(self) -> None:
        client = _client()
        assert ClientEntity.from_document(client.to_document()) == client

    def test_from_document_fills_missing_fields(self) -> None:
        client = ClientEntity.from_document({"_id": "x", "name": "Only Name"})

        assert client.national_id == ""
        assert client.birth_date is None
        assert client.status is ClientStatus.ACTIVE
        assert client.available_services == ()

    def test_is_frozen(self) -> None:
        with pytest.raises(FrozenInstanceError):
            _client().name = "Changed"  # type: ignore[misc]


@pytest.mark.unit
class TestValueObjects:
    """Unit tests for small value objects."""

    def test_coordinates_fix(self) -> None:
        """Verify (0, 0) is treated as no GPS fix."""
        assert not Coordinates().has_fix
        assert Coordinates(26.26, 37.97).has_fix

    def test_species_counts_document_names_counted_key(self) -> None:
        counts = SpeciesCounts(total=67, young=0, female=49, counted=57, counted_as="vaccinated")
        assert counts.to_document() == {"total": 67, "young": 0, "female": 49, "vaccinated": 57}

    def test_species_counts_document_without_counted_key(self) -> None:
        assert SpeciesCounts(total=3).to_document() == {"total": 3, "young": 0, "female": 0}

    def test_client_snapshot_copies_owner_fields(self) -> None:
        snapshot = ClientSnapshot.from_client(_client())
        assert snapshot.national_id == "1004458947"
        assert snapshot.birth_date == date(1961, 12, 8)


@pytest.mark.unit
class TestVisitRecordDocuments:
    """Unit tests for visit record serialization."""

    def test_vaccination_document_flattens_nested_values(self) -> None:
        record = VaccinationRecord(
            serial_no="1",
            date=date(2025, 9, 1),
            client_id="c1",
            coordinates=Coordinates(26.263183, 37.974167),
            request=RequestInfo(date(2025, 8, 31), RequestSituation.CLOSED, date(2025, 9, 1)),
            herd_counts={"sheep": SpeciesCounts(67, 0, 49, 57, "vaccinated")},
            custom_import_data={"original_data": {"Serial No": "1"}},
        )

        document = record.to_document()

        assert document["date"] == "2025-09-01"
        assert document["coordinates"] == {"latitude": 26.263183, "longitude": 37.974167}
        assert document["request"] == {
            "date": "2025-08-31",
            "situation": "Closed",
            "fulfilling_date": "2025-09-01",
        }
        assert document["herd_counts"]["sheep"]["vaccinated"] == 57
        assert document["custom_import_data"] == {"original_data": {"Serial No": "1"}}
        assert record.identifier == "1"

    def test_laboratory_identifier_is_sample_code(self) -> None:
        record = LaboratoryRecord(
            serial_no="17",
            date=date(2025, 9, 10),
            client_id="c1",
            sample_code="LAB-001",
            client=ClientSnapshot.from_client(_client()),
            species_counts={"sheep": 2},
        )

        document = record.to_document()

        assert record.identifier == "LAB-001"
        assert document["species_counts"] == {"sheep": 2}
        assert document["client"]["name"] == "Owner"
        assert document["request"] is None


@pytest.mark.unit
class TestBatchResult:
    """Unit tests for ImportRowError and ImportBatchResult."""

    def _result(self, errors=None) -> ImportBatchResult:
        errors = errors or []
        return ImportBatchResult(
            total_rows=3,
            success_count=3 - len(errors),
            error_count=len(errors),
            errors=errors,
            created_identifiers=["1", "2", "3"][: 3 - len(errors)],
            batch_id="dromo_1757937600000_parasitecontrol",
            record_type=RecordType.PARASITE_CONTROL,
            source="dromo-webhook",
        )

    def test_row_error_dict(self) -> None:
        error = ImportRowError(2, ImportStage.PERSIST, "Duplicate serial_no", data={"Serial No": "1"})
        assert error.to_dict() == {
            "rowIndex": 2,
            "stage": "persist",
            "error": "Duplicate serial_no",
            "data": {"Serial No": "1"},
        }

    def test_row_error_dict_without_data(self) -> None:
        assert "data" not in ImportRowError(1, ImportStage.RESOLVE, "x").to_dict()

    def test_upload_response(self) -> None:
        error = ImportRowError(2, ImportStage.PERSIST, "dup")
        response = self._result([error]).to_upload_response()

        assert response == {
            "success": False,
            "totalRows": 3,
            "successRows": 2,
            "errorRows": 1,
            "errors": [{"rowIndex": 2, "stage": "persist", "error": "dup"}],
            "importedRecordIdentifiers": ["1", "2"],
        }

    def test_webhook_response(self) -> None:
        """Verify the webhook response carries the Arabic success message.

        Real-world significance:
        - The external import tool shows this message to the uploader verbatim
        """
        response = self._result().to_webhook_response()

        assert response["success"] is True
        assert response["message"] == "تم استيراد 3 سجل بنجاح"
        assert response["insertedCount"] == 3
        assert response["tableType"] == "parasitecontrol"
        assert response["batchId"] == "dromo_1757937600000_parasitecontrol"
        assert response["source"] == "dromo-webhook"
