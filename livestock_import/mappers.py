"""Build canonical visit records from resolved rows.

One mapper per record type composes the coercers into a typed record. Shared
structure (serial number, visit date, coordinates, request, herd blocks,
custom import data) is built by the helpers in this module so that the five
mappers differ only in their record-specific fields.

Mappers never raise on missing optional data: counts default to 0,
coordinates to ``(0, 0)``, the request date to the visit date and the
request situation to Closed. Values that had to be defaulted despite being
present are recorded on ``MappingContext.issues``.
"""

from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from . import coercers
from .aliases import unmapped_headers
from .config_loader import UNSPECIFIED
from .data_models import (
    ClientEntity,
    ClientSnapshot,
    Coordinates,
    EquineHealthRecord,
    FieldAliasTable,
    Insecticide,
    LabelTable,
    LaboratoryRecord,
    MobileClinicRecord,
    ParasiteControlRecord,
    RawRow,
    RequestInfo,
    SpeciesCounts,
    VaccinationRecord,
    VisitRecord,
)
from .enums import RecordType, RequestSituation
from .utils import identifier_text, plain_value, string_or_empty

LOG = logging.getLogger(__name__)

SPECIES = ("sheep", "goats", "camel", "cattle", "horse")

_SERIAL_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


@dataclass
class MappingContext:
    """Per-row inputs shared by the mapping helpers.

    A batch builds one context and derives a fresh copy per row with
    ``for_row``, so each row gets its own ``issues`` list.
    """

    record_type: RecordType
    alias_table: FieldAliasTable
    labels: Mapping[str, LabelTable]
    today: date
    actor_id: Optional[str] = None
    sentinel: str = UNSPECIFIED
    months: Optional[Mapping[str, int]] = None
    clock: Callable[[], float] = time.time
    rng: random.Random = field(default_factory=random.Random)
    raw_row: Optional[RawRow] = None
    issues: List[str] = field(default_factory=list)

    def for_row(self, raw_row: Optional[RawRow]) -> "MappingContext":
        return replace(self, raw_row=raw_row, issues=[])

    def _collect(self, name: str, found: List[str]) -> None:
        self.issues.extend(f"{name}: {message}" for message in found)

    def text(self, fields: Mapping[str, Any], name: str, default: str = "") -> str:
        return identifier_text(fields.get(name)) or default

    def integer(self, fields: Mapping[str, Any], name: str, default: int = 0) -> int:
        found: List[str] = []
        value = coercers.parse_int(fields.get(name), default, issues=found)
        self._collect(name, found)
        return value

    def number(self, fields: Mapping[str, Any], name: str, default: float = 0.0) -> float:
        found: List[str] = []
        value = coercers.parse_float(fields.get(name), default, issues=found)
        self._collect(name, found)
        return value

    def date(self, fields: Mapping[str, Any], name: str, default: Optional[date]) -> Optional[date]:
        found: List[str] = []
        value = coercers.parse_date(
            fields.get(name), default, today=self.today, issues=found, months=self.months
        )
        self._collect(name, found)
        return value

    def label(self, fields: Mapping[str, Any], name: str, table: str) -> str:
        found: List[str] = []
        value = coercers.parse_label(fields.get(name), self.labels[table], issues=found)
        self._collect(name, found)
        return value

    def flag(self, fields: Mapping[str, Any], name: str) -> bool:
        return coercers.parse_bool(fields.get(name))

    def items(self, fields: Mapping[str, Any], name: str) -> Tuple[str, ...]:
        return coercers.parse_list(fields.get(name))


def default_visit_date(record_type: RecordType, today: date) -> date:
    """Visit date used when a row has none: yesterday for laboratory samples, else today."""
    if record_type is RecordType.LABORATORY:
        return today - timedelta(days=1)
    return today


def synthesize_serial(prefix: str, context: MappingContext) -> str:
    """``<prefix>-<last 8 digits of ms clock>-<4 random chars>``."""
    millis = int(context.clock() * 1000)
    suffix = "".join(context.rng.choice(_SERIAL_SUFFIX_ALPHABET) for _ in range(4))
    return f"{prefix}-{millis % 10**8:08d}-{suffix}"


def build_herd_counts(
    fields: Mapping[str, Any],
    species: str,
    counted_key: Optional[str],
    context: MappingContext,
) -> SpeciesCounts:
    """Build the count block of one species.

    Reads ``<species>_total``, ``<species>_young``, ``<species>_female`` and,
    when ``counted_key`` is given, ``<species>_<counted_key>``. A missing
    treated count defaults to the total, since parasite control rounds treat
    the whole herd unless stated otherwise.
    """
    total = context.integer(fields, f"{species}_total")
    counted = 0
    if counted_key:
        counted_name = f"{species}_{counted_key}"
        if counted_key == "treated" and counted_name not in fields:
            counted = total
        else:
            counted = context.integer(fields, counted_name)
    return SpeciesCounts(
        total=total,
        young=context.integer(fields, f"{species}_young"),
        female=context.integer(fields, f"{species}_female"),
        counted=counted,
        counted_as=counted_key or "",
    )


def build_herd_block(
    fields: Mapping[str, Any], counted_key: Optional[str], context: MappingContext
) -> Dict[str, SpeciesCounts]:
    return {species: build_herd_counts(fields, species, counted_key, context) for species in SPECIES}


def build_totals(fields: Mapping[str, Any], context: MappingContext) -> Dict[str, int]:
    """Per-species head totals, for record types that do not track herd structure."""
    return {species: counts.total for species, counts in build_herd_block(fields, None, context).items()}


def build_coordinates(fields: Mapping[str, Any], context: MappingContext) -> Coordinates:
    return Coordinates(
        latitude=context.number(fields, "latitude"),
        longitude=context.number(fields, "longitude"),
    )


def build_request(
    fields: Mapping[str, Any], visit_date: date, context: MappingContext
) -> RequestInfo:
    """Build the request block.

    The request date defaults to the visit date. A fulfilling date earlier
    than the request date is clamped to the request date.
    """
    request_date = context.date(fields, "request_date", visit_date)
    situation = RequestSituation.from_string(
        context.label(fields, "request_situation", "request_situation")
    )
    fulfilling_date = context.date(fields, "request_fulfilling_date", None)
    if fulfilling_date is not None and fulfilling_date < request_date:
        LOG.debug(
            "Fulfilling date %s precedes request date %s; using request date",
            fulfilling_date,
            request_date,
        )
        fulfilling_date = request_date
    return RequestInfo(date=request_date, situation=situation, fulfilling_date=fulfilling_date)


def build_custom_import_data(fields: Mapping[str, Any], context: MappingContext) -> Dict[str, Any]:
    """Keep the original row and any columns no alias claimed."""
    if context.raw_row is None:
        return {}
    values = context.raw_row.values
    return {
        "original_data": plain_value(values),
        "holding_code": context.text(fields, "holding_code"),
        "birth_date": string_or_empty(plain_value(fields.get("birth_date"))),
        "unmapped_columns": {
            header: plain_value(values[header])
            for header in unmapped_headers(context.raw_row, context.alias_table)
        },
    }


def _base_fields(
    fields: Mapping[str, Any],
    client: ClientEntity,
    context: MappingContext,
    *,
    with_request: bool = True,
) -> Dict[str, Any]:
    visit_date = context.date(fields, "date", default_visit_date(context.record_type, context.today))
    serial = context.text(fields, "serial_no") or synthesize_serial(
        context.record_type.serial_prefix, context
    )
    return {
        "serial_no": serial,
        "date": visit_date,
        "client_id": client.id,
        "coordinates": build_coordinates(fields, context),
        "supervisor": context.text(fields, "supervisor"),
        "vehicle_no": context.text(fields, "vehicle_no"),
        "request": build_request(fields, visit_date, context) if with_request else None,
        "remarks": context.text(fields, "remarks"),
        "created_by": context.actor_id,
        "holding_code": context.text(fields, "holding_code") or client.holding_code,
        "custom_import_data": build_custom_import_data(fields, context),
    }


def map_vaccination(
    fields: Mapping[str, Any], client: ClientEntity, context: MappingContext
) -> VaccinationRecord:
    return VaccinationRecord(
        **_base_fields(fields, client, context),
        farm_location=context.text(fields, "farm_location", client.village),
        team=context.text(fields, "team"),
        vaccine_type=context.text(fields, "vaccine_type"),
        vaccine_category=context.label(fields, "vaccine_category", "vaccine_category"),
        herd_counts=build_herd_block(fields, "vaccinated", context),
        herd_health=context.label(fields, "herd_health", "herd_health"),
        animals_handling=context.label(fields, "animals_handling", "animals_handling"),
        labours=context.label(fields, "labours", "labours"),
        reachable_location=context.label(fields, "reachable_location", "reachable_location"),
    )


def map_parasite_control(
    fields: Mapping[str, Any], client: ClientEntity, context: MappingContext
) -> ParasiteControlRecord:
    volume = context.integer(fields, "insecticide_volume_ml")
    return ParasiteControlRecord(
        **_base_fields(fields, client, context),
        herd_location=context.text(fields, "herd_location", client.village),
        herd_counts=build_herd_block(fields, "treated", context),
        insecticide=Insecticide(
            type=context.text(fields, "insecticide_type"),
            method=context.text(fields, "insecticide_method"),
            volume_ml=volume,
            status=context.label(fields, "insecticide_status", "insecticide_status"),
            category=context.text(fields, "insecticide_category"),
        ),
        animal_barn_size_sqm=context.integer(fields, "animal_barn_size_sqm"),
        breeding_sites=context.text(fields, "breeding_sites"),
        parasite_control_volume=context.integer(fields, "parasite_control_volume", volume),
        parasite_control_status=context.text(fields, "parasite_control_status"),
        herd_health_status=context.label(fields, "herd_health_status", "herd_health_status"),
        complying_to_instructions=context.label(
            fields, "complying_to_instructions", "compliance"
        ),
    )


def map_mobile_clinic(
    fields: Mapping[str, Any], client: ClientEntity, context: MappingContext
) -> MobileClinicRecord:
    return MobileClinicRecord(
        **_base_fields(fields, client, context),
        farm_location=context.text(fields, "farm_location", client.village),
        animal_counts=build_totals(fields, context),
        diagnosis=context.text(fields, "diagnosis"),
        intervention_category=context.label(
            fields, "intervention_category", "intervention_category"
        ),
        treatment=context.text(fields, "treatment"),
        medications_used=context.items(fields, "medications_used"),
        follow_up_required=context.flag(fields, "follow_up_required"),
        follow_up_date=context.date(fields, "follow_up_date", None),
    )


def map_laboratory(
    fields: Mapping[str, Any], client: ClientEntity, context: MappingContext
) -> LaboratoryRecord:
    base = _base_fields(fields, client, context, with_request=False)
    # laboratory serials are numeric; sample_code carries the unique identifier
    fallback_serial = int(context.clock() * 1000) % 1_000_000
    base["serial_no"] = str(context.integer(fields, "serial_no", fallback_serial))
    return LaboratoryRecord(
        **base,
        sample_code=context.text(fields, "sample_code")
        or synthesize_serial(context.record_type.serial_prefix, context),
        client=ClientSnapshot.from_client(client),
        farm_location=context.text(fields, "farm_location", client.village),
        collector=context.text(fields, "collector"),
        sample_type=context.text(fields, "sample_type", "Blood"),
        sample_number=context.text(fields, "sample_number"),
        positive_cases=context.integer(fields, "positive_cases"),
        negative_cases=context.integer(fields, "negative_cases"),
        species_counts=build_totals(fields, context),
        other_species=context.text(fields, "other_species"),
        test_results=context.items(fields, "test_results"),
    )


def map_equine_health(
    fields: Mapping[str, Any], client: ClientEntity, context: MappingContext
) -> EquineHealthRecord:
    return EquineHealthRecord(
        **_base_fields(fields, client, context),
        client=ClientSnapshot.from_client(client),
        farm_location=context.text(fields, "farm_location", client.village),
        horse_count=context.integer(fields, "horse_count", 1),
        horse_breed=context.text(fields, "horse_breed"),
        horse_age=context.text(fields, "horse_age"),
        horse_gender=context.text(fields, "horse_gender"),
        horse_color=context.text(fields, "horse_color"),
        diagnosis=context.text(fields, "diagnosis", context.sentinel),
        intervention_category=context.label(
            fields, "intervention_category", "equine_intervention_category"
        ),
        service_type=context.text(fields, "service_type"),
        treatment=context.text(fields, "treatment", context.sentinel),
        medications_used=context.items(fields, "medications_used"),
        vaccines_given=context.items(fields, "vaccines_given"),
        follow_up_required=context.flag(fields, "follow_up_required"),
        follow_up_date=context.date(fields, "follow_up_date", None),
    )


MAPPERS: Mapping[RecordType, Callable[[Mapping[str, Any], ClientEntity, MappingContext], VisitRecord]] = {
    RecordType.VACCINATION: map_vaccination,
    RecordType.PARASITE_CONTROL: map_parasite_control,
    RecordType.MOBILE_CLINIC: map_mobile_clinic,
    RecordType.LABORATORY: map_laboratory,
    RecordType.EQUINE_HEALTH: map_equine_health,
}


def map_record(
    fields: Mapping[str, Any], client: ClientEntity, context: MappingContext
) -> VisitRecord:
    """Dispatch to the mapper of ``context.record_type``."""
    return MAPPERS[context.record_type](fields, client, context)
