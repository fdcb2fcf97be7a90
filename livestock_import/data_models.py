"""Unified data models for the livestock import pipeline.

This module provides the dataclasses passed between import steps: decoded
rows, alias and label tables, client entities, the five canonical visit
records and the batch result returned to callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .enums import BatchState, ClientStatus, ImportStage, RecordType, RequestSituation
from .utils import plain_value, string_or_empty


@dataclass(frozen=True)
class RawRow:
    """One undecoded entry of an import batch.

    Parameters
    ----------
    index : int
        1-based position of the row within its batch, used in error reports.
    values : Mapping[str, Any]
        Header text (as decoded) mapped to the raw scalar value.
    """

    index: int
    values: Mapping[str, Any]


@dataclass(frozen=True)
class FieldAliasTable:
    """Header spellings accepted for each canonical field of a record type.

    Fields
    ------
    record_type : RecordType
        Record type the table applies to.
    aliases : Mapping[str, Tuple[str, ...]]
        Canonical field name to header spellings in priority order. The first
        spelling is the preferred template header.
    examples : Mapping[str, str]
        Canonical field name to the sample value shown in templates.
    """

    record_type: RecordType
    aliases: Mapping[str, Tuple[str, ...]]
    examples: Mapping[str, str]

    @property
    def fields(self) -> Tuple[str, ...]:
        return tuple(self.aliases)

    @property
    def identifier_field(self) -> str:
        return self.record_type.identifier_field


@dataclass(frozen=True)
class LabelTable:
    """Synonym table for one categorical field.

    Parameters
    ----------
    name : str
        Table name as used in ``config/value_labels.yaml``.
    default : str
        Canonical label used for blank or unrecognized values.
    lookup : Mapping[str, str]
        Lowercased synonym to canonical label.
    labels : Tuple[str, ...]
        Canonical labels, accepted verbatim (case-insensitive).
    """

    name: str
    default: str
    lookup: Mapping[str, str]
    labels: Tuple[str, ...]


@dataclass(frozen=True)
class ClientEntity:
    """A livestock owner as stored in the ``clients`` collection."""

    id: str
    name: str
    national_id: str
    phone: str
    village: str
    detailed_address: str
    birth_date: Optional[date] = None
    status: ClientStatus = ClientStatus.ACTIVE
    available_services: Tuple[str, ...] = ()
    created_by: Optional[str] = None
    holding_code: str = ""

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a store document; ``id`` becomes ``_id`` when set."""
        document = plain_value(self)
        client_id = document.pop("id")
        if client_id:
            document["_id"] = client_id
        return document

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "ClientEntity":
        birth_date = document.get("birth_date")
        if isinstance(birth_date, str):
            birth_date = date.fromisoformat(birth_date) if birth_date else None
        status = document.get("status") or ClientStatus.ACTIVE.value
        return cls(
            id=string_or_empty(document.get("_id")),
            name=string_or_empty(document.get("name")),
            national_id=string_or_empty(document.get("national_id")),
            phone=string_or_empty(document.get("phone")),
            village=string_or_empty(document.get("village")),
            detailed_address=string_or_empty(document.get("detailed_address")),
            birth_date=birth_date,
            status=ClientStatus(status),
            available_services=tuple(document.get("available_services") or ()),
            created_by=document.get("created_by"),
            holding_code=string_or_empty(document.get("holding_code")),
        )


@dataclass(frozen=True)
class ClientSnapshot:
    """Owner details embedded in laboratory and equine health records."""

    name: str
    national_id: str
    phone: str
    village: str
    detailed_address: str
    birth_date: Optional[date] = None

    @classmethod
    def from_client(cls, client: ClientEntity) -> "ClientSnapshot":
        return cls(
            name=client.name,
            national_id=client.national_id,
            phone=client.phone,
            village=client.village,
            detailed_address=client.detailed_address,
            birth_date=client.birth_date,
        )


@dataclass(frozen=True)
class Coordinates:
    """GPS position; ``(0, 0)`` means no fix was recorded."""

    latitude: float = 0.0
    longitude: float = 0.0

    @property
    def has_fix(self) -> bool:
        return self.latitude != 0 or self.longitude != 0


@dataclass(frozen=True)
class SpeciesCounts:
    """Head counts for one species.

    ``counted`` holds the treated or vaccinated count; ``counted_as`` names
    which, and is empty when the record type tracks totals only.
    """

    total: int = 0
    young: int = 0
    female: int = 0
    counted: int = 0
    counted_as: str = ""

    def to_document(self) -> Dict[str, int]:
        document = {"total": self.total, "young": self.young, "female": self.female}
        if self.counted_as:
            document[self.counted_as] = self.counted
        return document


@dataclass(frozen=True)
class RequestInfo:
    """Service request attached to a visit."""

    date: date
    situation: RequestSituation = RequestSituation.CLOSED
    fulfilling_date: Optional[date] = None


@dataclass(frozen=True)
class Insecticide:
    type: str = ""
    method: str = ""
    volume_ml: int = 0
    status: str = "Sprayed"
    category: str = ""


@dataclass(frozen=True)
class VisitRecord:
    """Fields shared by every canonical visit record.

    Subclasses only add fields with defaults, so the three leading fields
    are the only ones a mapper must always supply.
    """

    serial_no: str
    date: date
    client_id: str
    coordinates: Coordinates = field(default_factory=Coordinates)
    supervisor: str = ""
    vehicle_no: str = ""
    request: Optional[RequestInfo] = None
    remarks: str = ""
    created_by: Optional[str] = None
    holding_code: str = ""
    custom_import_data: Mapping[str, Any] = field(default_factory=dict)

    @property
    def identifier(self) -> str:
        """Value of the record type's unique identifier field."""
        return self.serial_no

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a store document with nested structures flattened to dicts."""
        document = plain_value(
            {
                name: value
                for name, value in vars(self).items()
                if not isinstance(value, Mapping) or name == "custom_import_data"
            }
        )
        for name, value in vars(self).items():
            if isinstance(value, Mapping) and name != "custom_import_data":
                document[name] = {
                    key: item.to_document() if isinstance(item, SpeciesCounts) else plain_value(item)
                    for key, item in value.items()
                }
        return document


@dataclass(frozen=True)
class VaccinationRecord(VisitRecord):
    farm_location: str = ""
    team: str = ""
    vaccine_type: str = ""
    vaccine_category: str = "Preventive"
    herd_counts: Mapping[str, SpeciesCounts] = field(default_factory=dict)
    herd_health: str = "Healthy"
    animals_handling: str = "Easy"
    labours: str = "Available"
    reachable_location: str = "Easy"


@dataclass(frozen=True)
class ParasiteControlRecord(VisitRecord):
    herd_location: str = ""
    herd_counts: Mapping[str, SpeciesCounts] = field(default_factory=dict)
    insecticide: Insecticide = field(default_factory=Insecticide)
    animal_barn_size_sqm: int = 0
    breeding_sites: str = ""
    parasite_control_volume: int = 0
    parasite_control_status: str = ""
    herd_health_status: str = "Healthy"
    complying_to_instructions: str = "Comply"


@dataclass(frozen=True)
class MobileClinicRecord(VisitRecord):
    farm_location: str = ""
    animal_counts: Mapping[str, int] = field(default_factory=dict)
    diagnosis: str = ""
    intervention_category: str = "Routine"
    treatment: str = ""
    medications_used: Tuple[str, ...] = ()
    follow_up_required: bool = False
    follow_up_date: Optional[date] = None


@dataclass(frozen=True)
class LaboratoryRecord(VisitRecord):
    sample_code: str = ""
    client: Optional[ClientSnapshot] = None
    farm_location: str = ""
    collector: str = ""
    sample_type: str = "Blood"
    sample_number: str = ""
    positive_cases: int = 0
    negative_cases: int = 0
    species_counts: Mapping[str, int] = field(default_factory=dict)
    other_species: str = ""
    test_results: Tuple[str, ...] = ()

    @property
    def identifier(self) -> str:
        return self.sample_code


@dataclass(frozen=True)
class EquineHealthRecord(VisitRecord):
    client: Optional[ClientSnapshot] = None
    farm_location: str = ""
    horse_count: int = 1
    horse_breed: str = ""
    horse_age: str = ""
    horse_gender: str = ""
    horse_color: str = ""
    diagnosis: str = ""
    intervention_category: str = "Clinical Examination"
    service_type: str = ""
    treatment: str = ""
    medications_used: Tuple[str, ...] = ()
    vaccines_given: Tuple[str, ...] = ()
    follow_up_required: bool = False
    follow_up_date: Optional[date] = None


@dataclass(frozen=True)
class ImportRowError:
    """Diagnostic for one row that could not be imported.

    Parameters
    ----------
    row_index : int
        1-based index of the failing row (0 for batch-fatal errors).
    stage : ImportStage
        Step of the row chain that raised.
    message : str
        Human-readable reason.
    data : Mapping[str, Any], optional
        The raw row, echoed back in webhook responses.
    """

    row_index: int
    stage: ImportStage
    message: str
    data: Optional[Mapping[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "rowIndex": self.row_index,
            "stage": self.stage.value,
            "error": self.message,
        }
        if self.data is not None:
            result["data"] = plain_value(self.data)
        return result


@dataclass(frozen=True)
class ImportBatchResult:
    """Aggregate outcome of one batch.

    Parameters
    ----------
    total_rows : int
        Rows handed to the batch.
    success_count : int
        Rows persisted.
    error_count : int
        Rows reported in ``errors``.
    errors : List[ImportRowError]
        One entry per failed row, in row order.
    created_identifiers : List[str]
        Serial numbers (sample codes for laboratory) of persisted records.
    batch_id : str
        Derived ``<prefix>_<timestamp_ms>_<table type>`` string.
    record_type : RecordType
        Record type of the batch.
    source : str
        Origin tag (``upload``, ``dromo-webhook``, ``cli``).
    state : BatchState
        Final state; always REPORTED for results returned to callers.
    """

    total_rows: int
    success_count: int
    error_count: int
    errors: List[ImportRowError]
    created_identifiers: List[str]
    batch_id: str
    record_type: RecordType
    source: str
    state: BatchState = BatchState.REPORTED

    @property
    def success(self) -> bool:
        return self.error_count == 0

    def to_upload_response(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "totalRows": self.total_rows,
            "successRows": self.success_count,
            "errorRows": self.error_count,
            "errors": [error.to_dict() for error in self.errors],
            "importedRecordIdentifiers": list(self.created_identifiers),
        }

    def to_webhook_response(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": f"تم استيراد {self.success_count} سجل بنجاح",
            "insertedCount": self.success_count,
            "totalRows": self.total_rows,
            "successRows": self.success_count,
            "errorRows": self.error_count,
            "errors": [error.to_dict() for error in self.errors],
            "batchId": self.batch_id,
            "tableType": self.record_type.table_type,
            "source": self.source,
        }
