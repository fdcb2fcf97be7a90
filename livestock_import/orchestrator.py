"""Livestock import batch orchestrator.

Drives one batch through its three states: DECODING (payload to raw rows),
PROCESSING (each row through resolve, validation, client, mapping and persist)
and REPORTED (aggregate result returned). Also provides the
``livestock-import`` command line entry point.

**Error Handling Philosophy:**

- **Batch-fatal errors** (unsupported or corrupt input, invalid configuration)
  are raised before any row is processed. Nothing is persisted.
- **Row-local errors** (any exception raised while handling one row) are
  captured as one ImportRowError keyed by the row's index and the stage that
  failed. Processing continues with the next row; earlier rows stay persisted.
- **Silently defaulted values** (unparseable dates, non-numeric counts) are not
  errors unless ``import.strict_coercion`` is enabled, in which case the row
  fails at the validation stage. That check maps the row against a blank
  client first, so a rejected row never creates or updates a client.

Rows are processed strictly in order: the client lookup for a row never starts
before the previous row's client has been written.

**Exit Codes:**
- 0: All rows imported
- 1: Batch failed before processing (input or configuration error)
- 3: Batch completed but some rows failed
"""

from __future__ import annotations

import argparse
import copy
import logging
import random
import sys
import time
import traceback
from dataclasses import replace
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from .aliases import resolve
from .coercers import build_month_table
from .config_loader import ImportSettings, load_alias_tables, load_config, load_value_labels
from .data_models import (
    ClientEntity,
    FieldAliasTable,
    ImportBatchResult,
    ImportRowError,
    LabelTable,
    RawRow,
)
from .decoder import Payload, decode
from .enums import BatchState, ImportStage, InputFormat, RecordType
from .exceptions import CoercionError
from .mappers import MappingContext, map_record
from .reconcile import ClientReconciler
from .store import DocumentStore, InMemoryStore

SCRIPT_DIR = Path(__file__).resolve().parent
ROOT_DIR = SCRIPT_DIR.parent
DEFAULT_OUTPUT_DIR = ROOT_DIR / "output"
DEFAULT_CONFIG_DIR = ROOT_DIR / "config"

LOG = logging.getLogger(__name__)

UNSAVED_CLIENT = ClientEntity(
    id="", name="", national_id="", phone="", village="", detailed_address=""
)


def make_batch_id(prefix: str, record_type: RecordType, clock: Callable[[], float] = time.time) -> str:
    """Derive ``<prefix>_<timestamp_ms>_<table type>``."""
    return f"{prefix}_{int(clock() * 1000)}_{record_type.table_type}"


def coercion_issues(
    fields: Mapping[str, Any], reconciler: ClientReconciler, context: MappingContext
) -> List[str]:
    """Collect a row's coercion issues without writing to the store.

    The row is mapped against a blank client on a copy of the context, so
    the batch's randomness and the context's issue list are left untouched.
    """
    dry_context = replace(context, issues=[], rng=copy.deepcopy(context.rng))
    reconciler.incoming_fields(fields, dry_context.issues)
    map_record(fields, UNSAVED_CLIENT, dry_context)
    return dry_context.issues


def run_batch(
    rows: Sequence[RawRow],
    record_type: RecordType,
    store: DocumentStore,
    *,
    actor_id: Optional[str],
    config: Optional[Mapping[str, Any]] = None,
    source: str = "upload",
    batch_prefix: str = "upload",
    alias_tables: Optional[Mapping[RecordType, FieldAliasTable]] = None,
    labels: Optional[Mapping[str, LabelTable]] = None,
    today: Optional[date] = None,
    clock: Callable[[], float] = time.time,
    rng: Optional[random.Random] = None,
) -> ImportBatchResult:
    """Process decoded rows and persist one record per successful row.

    Parameters
    ----------
    rows : Sequence[RawRow]
        Decoded rows, in order.
    record_type : RecordType
        Record type of every row in the batch.
    store : DocumentStore
        Target store for clients and records.
    actor_id : str, optional
        User recorded as creator of new clients and records.
    config : Mapping, optional
        Validated configuration (see ``config_loader.load_config``).
    source : str, default "upload"
        Origin tag reported in the result.
    batch_prefix : str, default "upload"
        First component of the batch id.
    alias_tables, labels : Mapping, optional
        Lookup tables; default to the tables under ``config/``.
    today : date, optional
        Reference date for defaults and year-less dates.
    clock : Callable[[], float], optional
        Seconds since the epoch, used for batch ids and placeholders.
    rng : random.Random, optional
        Randomness for placeholders and synthesized serials.

    Returns
    -------
    ImportBatchResult
        Always returned, also for zero rows (success with zero counts).
    """
    settings = ImportSettings.from_config(config)
    alias_tables = alias_tables or load_alias_tables()
    labels = labels or load_value_labels()
    rng = rng or random.Random()
    alias_table = alias_tables[record_type]

    reconciler = ClientReconciler(
        store,
        match_strategy=settings.client_match,
        sentinel=settings.unspecified,
        country_code=settings.country_code,
        clock=clock,
        rng=rng,
    )
    context = MappingContext(
        record_type=record_type,
        alias_table=alias_table,
        labels=labels,
        today=today or date.today(),
        actor_id=actor_id,
        sentinel=settings.unspecified,
        months=build_month_table(settings.month_locales),
        clock=clock,
        rng=rng,
    )
    batch_id = make_batch_id(batch_prefix, record_type, clock)

    LOG.info(
        "Batch %s: %s %s rows of %s",
        batch_id,
        BatchState.PROCESSING.value,
        len(rows),
        record_type.value,
    )
    errors: List[ImportRowError] = []
    created: List[str] = []

    for row in rows:
        stage = ImportStage.RESOLVE
        try:
            fields = resolve(row, alias_table, fuzzy_threshold=settings.fuzzy_cutoff)
            if not fields:
                raise ValueError("Row has no recognized columns")

            row_context = context.for_row(row)
            if settings.strict_coercion:
                stage = ImportStage.VALIDATION
                issues = coercion_issues(fields, reconciler, row_context)
                if issues:
                    raise CoercionError(issues)

            stage = ImportStage.CLIENT
            client = reconciler.find_or_create(
                fields, actor_id, record_type.service_tag, row_context.issues
            )

            stage = ImportStage.MAPPING
            record = map_record(fields, client, row_context)

            stage = ImportStage.PERSIST
            store.insert_one(record_type.collection, record.to_document())
        except Exception as exc:
            LOG.warning("Row %s failed at %s stage: %s", row.index, stage.value, exc)
            errors.append(ImportRowError(row.index, stage, str(exc), data=row.values))
            continue

        created.append(record.identifier)
        LOG.debug("Row %s imported as %s", row.index, record.identifier)

    result = ImportBatchResult(
        total_rows=len(rows),
        success_count=len(created),
        error_count=len(errors),
        errors=errors,
        created_identifiers=created,
        batch_id=batch_id,
        record_type=record_type,
        source=source,
    )
    LOG.info(
        "Batch %s: %s (%s succeeded, %s failed)",
        batch_id,
        BatchState.REPORTED.value,
        result.success_count,
        result.error_count,
    )
    return result


def run_import(
    payload: Payload,
    declared_format: Union[InputFormat, str],
    record_type: RecordType,
    store: DocumentStore,
    *,
    actor_id: Optional[str],
    config: Optional[Mapping[str, Any]] = None,
    **batch_options: Any,
) -> ImportBatchResult:
    """Decode a payload and run it as one batch.

    Raises
    ------
    DecodeError
        If the payload cannot be decoded. No row is processed.
    """
    settings = ImportSettings.from_config(config)
    LOG.info("Batch state: %s (%s)", BatchState.DECODING.value, declared_format)
    rows = decode(payload, declared_format, delimiter=settings.csv_delimiter)
    return run_batch(rows, record_type, store, actor_id=actor_id, config=config, **batch_options)


def configure_logging(output_dir: Path, run_id: str) -> Path:
    """Configure file logging for a command line import.

    Parameters
    ----------
    output_dir : Path
        Root output directory where logs subdirectory will be created.
    run_id : str
        Unique run identifier used in log filename.

    Returns
    -------
    Path
        Path to the created log file.
    """
    log_dir = output_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / f"import_{run_id}.log"

    handler = logging.FileHandler(log_path, encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.INFO)
    root_logger.addHandler(handler)

    return log_path


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Import livestock field-visit records from a CSV or Excel file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s visits.xlsx vaccination
  %(prog)s samples.csv laboratory --store state.json
        """,
    )
    parser.add_argument("input_file", type=Path, help="Path to the CSV or Excel file")
    parser.add_argument(
        "record_type",
        choices=RecordType.all_values(),
        help=f"Record type of the rows ({', '.join(RecordType.all_values())})",
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=None,
        dest="store_path",
        help="JSON store snapshot to load before and save after the import",
    )
    parser.add_argument(
        "--actor",
        type=str,
        default="cli",
        dest="actor_id",
        help="User id recorded as creator (default: cli)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_DIR,
        dest="config_dir",
        help=f"Config directory (default: {DEFAULT_CONFIG_DIR})",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=DEFAULT_OUTPUT_DIR,
        dest="output_dir",
        help=f"Output directory for logs (default: {DEFAULT_OUTPUT_DIR})",
    )
    return parser.parse_args(argv)


def print_step(step_num: int, description: str) -> None:
    """Print a step header."""
    print()
    print(f"{'=' * 60}")
    print(f"Step {step_num}: {description}")
    print(f"{'=' * 60}")


def print_summary(result: ImportBatchResult, duration: float) -> None:
    """Print the batch summary."""
    print()
    print(f"{'=' * 60}")
    if result.success:
        print("🎉 Import completed successfully!")
    else:
        print("⚠️  Import completed with row errors")
    print(f"{'=' * 60}")
    print(f"🆔 Batch:            {result.batch_id}")
    print(f"📄 Rows:             {result.total_rows}")
    print(f"✅ Imported:         {result.success_count}")
    print(f"❌ Failed:           {result.error_count}")
    for error in result.errors:
        print(f"   - row {error.row_index} [{error.stage.value}]: {error.message}")
    print(f"🕒 Total time:       {duration:.1f}s")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run a command line import."""
    args = parse_args(argv)
    record_type = RecordType.from_string(args.record_type)

    output_dir = args.output_dir.resolve()
    run_id = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")

    try:
        config = load_config(args.config_dir / "parameters.yaml")
        alias_tables = load_alias_tables(args.config_dir / "field_aliases.yaml")
        labels = load_value_labels(args.config_dir / "value_labels.yaml")
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    log_path = configure_logging(output_dir, run_id)
    print()
    print("🚀 Starting livestock import")
    print(f"🗂️  Input File: {args.input_file}")

    start = time.time()
    try:
        print_step(1, "Loading store")
        if args.store_path is not None and args.store_path.exists():
            store = InMemoryStore.load(args.store_path)
        else:
            store = InMemoryStore()

        print_step(2, "Decoding and importing rows")
        input_format = InputFormat.from_filename(args.input_file.name)
        result = run_import(
            args.input_file.read_bytes(),
            input_format,
            record_type,
            store,
            actor_id=args.actor_id,
            config=config,
            source="cli",
            batch_prefix="cli",
            alias_tables=alias_tables,
            labels=labels,
        )

        if args.store_path is not None:
            print_step(3, "Saving store")
            store.dump(args.store_path)
            print(f"💾 Store snapshot: {args.store_path}")
    except Exception as exc:
        print(f"\n❌ Import failed: {exc}", file=sys.stderr)
        traceback.print_exc()
        return 1

    print_summary(result, time.time() - start)
    print(f"Import log written to {log_path}")
    return 0 if result.success else 3


if __name__ == "__main__":
    raise SystemExit(main())
