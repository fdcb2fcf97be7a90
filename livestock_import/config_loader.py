"""Configuration loading utilities for the livestock import pipeline.

Provides a centralized way to load and validate ``parameters.yaml`` and the
two static lookup files, ``field_aliases.yaml`` and ``value_labels.yaml``.
Lookup tables are built once per path and returned as read-only mappings so
they can be shared and injected without risk of mutation.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from .data_models import FieldAliasTable, LabelTable
from .enums import MatchStrategy, RecordType
from .exceptions import ConfigError

SCRIPT_DIR = Path(__file__).resolve().parent
CONFIG_DIR = SCRIPT_DIR.parent / "config"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "parameters.yaml"
DEFAULT_ALIASES_PATH = CONFIG_DIR / "field_aliases.yaml"
DEFAULT_LABELS_PATH = CONFIG_DIR / "value_labels.yaml"

UNSPECIFIED = "غير محدد"


@dataclass(frozen=True)
class ImportSettings:
    """Typed view of the ``import`` and ``webhook`` config sections."""

    strict_coercion: bool = False
    client_match: MatchStrategy = MatchStrategy.ANY
    fuzzy_headers: bool = False
    fuzzy_threshold: int = 90
    csv_delimiter: str = ","
    country_code: str = "966"
    unspecified: str = UNSPECIFIED
    month_locales: Tuple[str, ...] = ("en", "ar")
    webhook_source: str = "dromo-webhook"
    batch_prefix: str = "dromo"

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]]) -> "ImportSettings":
        """Build settings from a validated config dict; missing keys use defaults."""
        config = config or {}
        import_config = config.get("import", {}) or {}
        webhook_config = config.get("webhook", {}) or {}
        defaults = cls()
        return cls(
            strict_coercion=import_config.get("strict_coercion", defaults.strict_coercion),
            client_match=MatchStrategy.from_string(import_config.get("client_match")),
            fuzzy_headers=import_config.get("fuzzy_headers", defaults.fuzzy_headers),
            fuzzy_threshold=import_config.get("fuzzy_threshold", defaults.fuzzy_threshold),
            csv_delimiter=import_config.get("csv_delimiter", defaults.csv_delimiter),
            country_code=str(import_config.get("country_code", defaults.country_code)),
            unspecified=import_config.get("unspecified", defaults.unspecified),
            month_locales=tuple(import_config.get("month_locales", defaults.month_locales)),
            webhook_source=webhook_config.get("source", defaults.webhook_source),
            batch_prefix=webhook_config.get("batch_prefix", defaults.batch_prefix),
        )

    @property
    def fuzzy_cutoff(self) -> Optional[int]:
        """Fuzzy header threshold, or None when fuzzy matching is disabled."""
        return self.fuzzy_threshold if self.fuzzy_headers else None


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load and parse the parameters.yaml configuration file.

    Automatically validates the configuration after loading so that
    misconfiguration fails before any batch is started.

    Parameters
    ----------
    config_path : Path, optional
        Path to the configuration file. If not provided, uses the default
        location (config/parameters.yaml in the project root).

    Returns
    -------
    Dict[str, Any]
        Parsed and validated YAML configuration as a nested dictionary.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    yaml.YAMLError
        If the configuration file is invalid YAML.
    ConfigError
        If the configuration fails validation (see validate_config).
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    validate_config(config)
    return config


def validate_config(config: Dict[str, Any]) -> None:
    """Validate the configuration for consistency and required values.

    Parameters
    ----------
    config : Dict[str, Any]
        Configuration dictionary (result of load_config).

    Raises
    ------
    ConfigError
        If a value has the wrong type or is out of range. ConfigError is a
        ValueError, so callers catching ValueError keep working.

    Notes
    -----
    **Validation checks:**

    - ``import.strict_coercion`` and ``import.fuzzy_headers`` must be booleans
    - ``import.client_match`` must name a MatchStrategy
    - ``import.fuzzy_threshold`` must be an integer between 0 and 100
    - ``import.csv_delimiter`` must be a single character
    - ``import.country_code`` must be digits only
    - ``import.unspecified`` must be a non-empty string
    - ``import.month_locales`` must be a non-empty list of locale codes
    - ``webhook.source`` and ``webhook.batch_prefix`` must be non-empty strings
    """
    import_config = config.get("import", {}) or {}
    if not isinstance(import_config, dict):
        raise ConfigError(f"import must be a mapping, got {type(import_config).__name__}")

    for key in ("strict_coercion", "fuzzy_headers"):
        value = import_config.get(key, False)
        if not isinstance(value, bool):
            raise ConfigError(f"import.{key} must be a boolean, got {type(value).__name__}")

    try:
        MatchStrategy.from_string(import_config.get("client_match"))
    except ValueError as exc:
        raise ConfigError(f"Invalid import.client_match: {exc}") from exc

    threshold = import_config.get("fuzzy_threshold", 90)
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise ConfigError(
            f"import.fuzzy_threshold must be an integer, got {type(threshold).__name__}"
        )
    if not 0 <= threshold <= 100:
        raise ConfigError(f"import.fuzzy_threshold must be between 0 and 100, got {threshold}")

    delimiter = import_config.get("csv_delimiter", ",")
    if not isinstance(delimiter, str) or len(delimiter) != 1:
        raise ConfigError(f"import.csv_delimiter must be a single character, got {delimiter!r}")

    country_code = str(import_config.get("country_code", "966"))
    if not country_code.isdigit():
        raise ConfigError(f"import.country_code must contain digits only, got {country_code!r}")

    unspecified = import_config.get("unspecified", UNSPECIFIED)
    if not isinstance(unspecified, str) or not unspecified.strip():
        raise ConfigError("import.unspecified must be a non-empty string")

    locales = import_config.get("month_locales", ["en", "ar"])
    if not isinstance(locales, list) or not locales or not all(
        isinstance(locale, str) for locale in locales
    ):
        raise ConfigError("import.month_locales must be a non-empty list of locale codes")

    webhook_config = config.get("webhook", {}) or {}
    for key in ("source", "batch_prefix"):
        value = webhook_config.get(key, "x")
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"webhook.{key} must be a non-empty string")


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the top level")
    return data


@lru_cache(maxsize=None)
def _alias_tables_from(path: Path) -> Mapping[RecordType, FieldAliasTable]:
    data = _read_yaml(path)
    groups = data.get("groups", {}) or {}
    record_types = data.get("record_types", {}) or {}

    tables: Dict[RecordType, FieldAliasTable] = {}
    for type_name, type_config in record_types.items():
        try:
            record_type = RecordType.from_string(type_name)
        except ValueError as exc:
            raise ConfigError(f"{path.name}: {exc}") from exc

        aliases: Dict[str, Tuple[str, ...]] = {}
        examples: Dict[str, str] = {}
        for section in type_config.get("sections", ["own"]):
            if section == "own":
                block = type_config.get("fields", {}) or {}
            elif section in groups:
                block = groups[section] or {}
            else:
                raise ConfigError(
                    f"{path.name}: record type {type_name} references unknown group {section!r}"
                )
            for field_name, entry in block.items():
                if field_name in aliases:
                    continue
                spellings = tuple(str(alias) for alias in (entry or {}).get("aliases", []))
                if not spellings:
                    raise ConfigError(
                        f"{path.name}: field {type_name}.{field_name} has no aliases"
                    )
                aliases[field_name] = spellings
                examples[field_name] = str(entry.get("example", "") or "")

        if record_type.identifier_field not in aliases:
            raise ConfigError(
                f"{path.name}: record type {type_name} lacks identifier field "
                f"{record_type.identifier_field!r}"
            )
        tables[record_type] = FieldAliasTable(
            record_type=record_type,
            aliases=MappingProxyType(aliases),
            examples=MappingProxyType(examples),
        )

    missing = [r.value for r in RecordType if r not in tables]
    if missing:
        raise ConfigError(f"{path.name}: no alias table for {', '.join(missing)}")
    return MappingProxyType(tables)


def load_alias_tables(path: Optional[Path] = None) -> Mapping[RecordType, FieldAliasTable]:
    """Load per-record-type header alias tables.

    Tables are cached per resolved path; repeated calls return the same
    read-only mapping.

    Raises
    ------
    FileNotFoundError
        If the alias file does not exist.
    ConfigError
        If a record type is missing, references an unknown group, or a field
        lists no aliases.
    """
    return _alias_tables_from(Path(path or DEFAULT_ALIASES_PATH).resolve())


@lru_cache(maxsize=None)
def _label_tables_from(path: Path) -> Mapping[str, LabelTable]:
    data = _read_yaml(path)
    tables: Dict[str, LabelTable] = {}
    for name, table_config in data.items():
        labels_config = (table_config or {}).get("labels", {}) or {}
        if not labels_config:
            raise ConfigError(f"{path.name}: label table {name!r} defines no labels")
        lookup: Dict[str, str] = {}
        for canonical, synonyms in labels_config.items():
            for synonym in synonyms or []:
                lookup[str(synonym).strip().lower()] = str(canonical)
        # canonical labels always map to themselves
        for canonical in labels_config:
            lookup[str(canonical).lower()] = str(canonical)
        default = str(table_config.get("default", next(iter(labels_config))))
        if default not in labels_config:
            raise ConfigError(
                f"{path.name}: default {default!r} of {name!r} is not one of its labels"
            )
        tables[name] = LabelTable(
            name=name,
            default=default,
            lookup=MappingProxyType(lookup),
            labels=tuple(str(label) for label in labels_config),
        )
    return MappingProxyType(tables)


def load_value_labels(path: Optional[Path] = None) -> Mapping[str, LabelTable]:
    """Load category synonym tables keyed by table name.

    Raises
    ------
    FileNotFoundError
        If the label file does not exist.
    ConfigError
        If a table has no labels or a default that is not one of them.
    """
    return _label_tables_from(Path(path or DEFAULT_LABELS_PATH).resolve())
