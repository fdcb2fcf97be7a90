"""Enumerations for the livestock import pipeline."""

from __future__ import annotations

from enum import Enum


class RecordType(Enum):
    """Category of field visit a batch imports.

    The value doubles as the store collection name and as the service tag
    appended to a client's ``available_services``.
    """

    VACCINATION = "vaccination"
    PARASITE_CONTROL = "parasite_control"
    MOBILE_CLINIC = "mobile_clinic"
    LABORATORY = "laboratory"
    EQUINE_HEALTH = "equine_health"

    @classmethod
    def from_string(cls, value: str | None) -> "RecordType":
        """Convert a user or route supplied name to a RecordType.

        Accepts snake case (``parasite_control``), kebab case
        (``parasite-control``), spaced or camel-cased model names
        (``ParasiteControl``) and the webhook table type (``parasitecontrol``).

        Parameters
        ----------
        value : str | None
            Record type name. Case-insensitive.

        Returns
        -------
        RecordType
            Matching record type.

        Raises
        ------
        ValueError
            If value is None or names no known record type. The message lists
            all valid options.
        """
        if value is not None:
            compact = (
                str(value).strip().lower().replace("-", "").replace("_", "").replace(" ", "")
            )
            for record_type in cls:
                if record_type.table_type == compact:
                    return record_type

        raise ValueError(
            f"Unknown record type: {value}. "
            f"Valid options: {', '.join(r.value for r in cls)}"
        )

    @classmethod
    def all_values(cls) -> list[str]:
        """Return record type names in declaration order."""
        return [record_type.value for record_type in cls]

    @property
    def collection(self) -> str:
        return self.value

    @property
    def service_tag(self) -> str:
        return self.value

    @property
    def table_type(self) -> str:
        """Lowercase model name reported in webhook responses (``parasitecontrol``)."""
        return self.value.replace("_", "")

    @property
    def serial_prefix(self) -> str:
        """Prefix used when a serial number has to be synthesized."""
        return _SERIAL_PREFIXES[self]

    @property
    def identifier_field(self) -> str:
        """Canonical field holding the record's unique identifier."""
        if self is RecordType.LABORATORY:
            return "sample_code"
        return "serial_no"


_SERIAL_PREFIXES = {
    RecordType.VACCINATION: "VAC",
    RecordType.PARASITE_CONTROL: "PAR",
    RecordType.MOBILE_CLINIC: "MC",
    RecordType.LABORATORY: "LAB",
    RecordType.EQUINE_HEALTH: "EH",
}


class InputFormat(Enum):
    """Encoding of an import payload."""

    CSV = "csv"
    EXCEL = "excel"
    JSON = "json"

    @classmethod
    def from_string(cls, value: str | None) -> "InputFormat":
        """Convert a declared format or file extension to an InputFormat.

        ``xlsx`` and ``xls`` (with or without the leading dot) map to EXCEL.

        Raises
        ------
        ValueError
            If value is None or not a supported format.
        """
        if value is not None:
            value_lower = str(value).strip().lower().lstrip(".")
            if value_lower in ("xlsx", "xls"):
                return cls.EXCEL
            for input_format in cls:
                if input_format.value == value_lower:
                    return input_format

        raise ValueError(
            f"Unsupported input format: {value}. "
            f"Valid options: {', '.join(f.value for f in cls)}, xlsx, xls"
        )

    @classmethod
    def from_filename(cls, filename: str) -> "InputFormat":
        """Derive the format from an uploaded file's extension."""
        name = str(filename)
        if "." not in name:
            raise ValueError(f"Cannot determine input format of file without extension: {name}")
        return cls.from_string(name.rsplit(".", 1)[1])


class ClientStatus(Enum):
    """Lifecycle status stored on client documents."""

    ACTIVE = "نشط"
    INACTIVE = "غير نشط"


class RequestSituation(Enum):
    """Situation of the service request attached to a visit."""

    ONGOING = "Ongoing"
    CLOSED = "Closed"
    PENDING = "Pending"

    @classmethod
    def from_string(cls, value: str | None) -> "RequestSituation":
        """Convert a canonical label to a RequestSituation, defaulting to CLOSED."""
        if value is None:
            return cls.CLOSED

        value_lower = str(value).strip().lower()
        for situation in cls:
            if situation.value.lower() == value_lower:
                return situation

        raise ValueError(
            f"Unknown request situation: {value}. "
            f"Valid options: {', '.join(s.value for s in cls)}"
        )


class MatchStrategy(Enum):
    """How an incoming owner is matched against existing clients.

    ANY matches a client sharing any one of name, national id, phone or
    village. NATIONAL_ID matches on the identity number only.
    """

    ANY = "any"
    NATIONAL_ID = "national_id"

    @classmethod
    def from_string(cls, value: str | None) -> "MatchStrategy":
        """Convert a config value to a MatchStrategy, defaulting to ANY.

        Raises
        ------
        ValueError
            If value is not a valid strategy name.
        """
        if value is None:
            return cls.ANY

        value_lower = str(value).strip().lower()
        for strategy in cls:
            if strategy.value == value_lower:
                return strategy

        raise ValueError(
            f"Unknown client match strategy: {value}. "
            f"Valid options: {', '.join(s.value for s in cls)}"
        )


class BatchState(Enum):
    """Lifecycle of one import batch."""

    DECODING = "decoding"
    PROCESSING = "processing"
    REPORTED = "reported"


class ImportStage(Enum):
    """Step of the per-row chain at which a row failed."""

    DECODE = "decode"
    RESOLVE = "resolve"
    CLIENT = "client"
    MAPPING = "mapping"
    VALIDATION = "validation"
    PERSIST = "persist"
