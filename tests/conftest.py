"""Shared pytest fixtures for unit and integration tests.

This module provides:
- Temporary directory fixtures for file I/O testing
- An empty in-memory document store per test
- Configuration fixtures for parameter testing
- Deterministic clock, randomness and reference date
"""

from __future__ import annotations

import random
import tempfile
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Mapping

import pytest
import yaml

from livestock_import import config_loader
from livestock_import.data_models import FieldAliasTable, LabelTable
from livestock_import.enums import RecordType
from livestock_import.mappers import MappingContext
from livestock_import.store import USERS, InMemoryStore

# 2025-09-15 12:00:00 UTC
FIXED_EPOCH_SECONDS = 1757937600.0


@pytest.fixture
def tmp_test_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after each test.

    Real-world significance:
    - Isolates file I/O tests (store snapshots, logs, CSV inputs) from each other
    - Prevents test artifacts from polluting the file system

    Yields
    ------
    Path
        Absolute path to temporary directory (automatically deleted after test)
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store() -> InMemoryStore:
    """Provide an empty store with the production unique indexes.

    Real-world significance:
    - Each test starts with no clients and no records
    - Unique indexes on national id and serial numbers behave as in production
    """
    return InMemoryStore()


@pytest.fixture
def store_with_admin(store: InMemoryStore) -> InMemoryStore:
    """Provide a store holding one super_admin user, as webhook imports require."""
    store.insert_one(USERS, {"_id": "admin-1", "name": "System Admin", "role": "super_admin"})
    return store


@pytest.fixture
def default_config() -> Dict[str, Any]:
    """Provide a minimal valid configuration mirroring config/parameters.yaml.

    Real-world significance:
    - Tests can flip single options (strict mode, match strategy) without
      reading the shipped file

    Returns
    -------
    Dict[str, Any]
        Configuration with ``import`` and ``webhook`` sections
    """
    return {
        "import": {
            "strict_coercion": False,
            "client_match": "any",
            "fuzzy_headers": False,
            "fuzzy_threshold": 90,
            "csv_delimiter": ",",
            "country_code": "966",
            "unspecified": "غير محدد",
            "month_locales": ["en", "ar"],
        },
        "webhook": {
            "source": "dromo-webhook",
            "batch_prefix": "dromo",
        },
    }


@pytest.fixture
def config_file(tmp_test_dir: Path, default_config: Dict[str, Any]) -> Path:
    """Write the default configuration to a temporary parameters.yaml."""
    config_path = tmp_test_dir / "parameters.yaml"
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(default_config, f, allow_unicode=True)
    return config_path


@pytest.fixture
def today() -> date:
    """Reference date for year-less dates and visit-date defaults."""
    return date(2025, 9, 15)


@pytest.fixture
def fixed_clock() -> Callable[[], float]:
    """Clock frozen at 2025-09-15 12:00:00 UTC."""
    return lambda: FIXED_EPOCH_SECONDS


@pytest.fixture
def rng() -> random.Random:
    """Seeded randomness for placeholders and synthesized serials."""
    return random.Random(1234)


@pytest.fixture
def alias_tables() -> Mapping[RecordType, FieldAliasTable]:
    """Alias tables loaded from the shipped config/field_aliases.yaml."""
    return config_loader.load_alias_tables()


@pytest.fixture
def labels() -> Mapping[str, LabelTable]:
    """Label tables loaded from the shipped config/value_labels.yaml."""
    return config_loader.load_value_labels()


@pytest.fixture
def mapping_context_factory(
    alias_tables: Mapping[RecordType, FieldAliasTable],
    labels: Mapping[str, LabelTable],
    today: date,
    fixed_clock: Callable[[], float],
    rng: random.Random,
) -> Callable[..., MappingContext]:
    """Build a MappingContext for a record type with deterministic inputs."""

    def factory(record_type: RecordType, **overrides: Any) -> MappingContext:
        options: Dict[str, Any] = {
            "record_type": record_type,
            "alias_table": alias_tables[record_type],
            "labels": labels,
            "today": today,
            "actor_id": "user-1",
            "clock": fixed_clock,
            "rng": rng,
        }
        options.update(overrides)
        return MappingContext(**options)

    return factory
