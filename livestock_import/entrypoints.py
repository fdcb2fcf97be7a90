"""Caller-facing import entry points.

These functions sit where an HTTP layer would call in: they take bytes or a
parsed JSON body plus a record-type selector and always hand back a plain
response dict. Transport, routing and multipart parsing live elsewhere.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .config_loader import ImportSettings, load_alias_tables
from .data_models import FieldAliasTable
from .decoder import decode
from .enums import ImportStage, InputFormat, RecordType
from .exceptions import LivestockImportError
from .orchestrator import make_batch_id, run_batch, run_import
from .store import USERS, DocumentStore
from .templates import build_template

LOG = logging.getLogger(__name__)

ADMIN_ROLE = "super_admin"
WEBHOOK_FAILURE_MESSAGE = "خطأ في معالجة الاستيراد"


def _declared_format(filename_or_format: Union[InputFormat, str]) -> InputFormat:
    if isinstance(filename_or_format, InputFormat):
        return filename_or_format
    text = str(filename_or_format)
    if "." in text.strip(".") or text.startswith("."):
        return InputFormat.from_filename(text)
    return InputFormat.from_string(text)


def _fatal_error(message: str) -> Dict[str, Any]:
    return {"rowIndex": 0, "stage": ImportStage.DECODE.value, "error": message}


def import_upload(
    data: Union[bytes, str],
    filename_or_format: Union[InputFormat, str],
    record_type: Union[RecordType, str],
    store: DocumentStore,
    *,
    actor_id: Optional[str],
    config: Optional[Mapping[str, Any]] = None,
    **batch_options: Any,
) -> Dict[str, Any]:
    """Import an uploaded CSV or Excel file.

    Parameters
    ----------
    data : bytes or str
        File contents.
    filename_or_format : InputFormat or str
        Upload filename (``visits.xlsx``) or declared format (``csv``).
    record_type : RecordType or str
        Target record type.
    store : DocumentStore
        Target store.
    actor_id : str, optional
        Authenticated user performing the upload.
    config : Mapping, optional
        Validated configuration.

    Returns
    -------
    Dict[str, Any]
        ``{success, totalRows, successRows, errorRows, errors,
        importedRecordIdentifiers}``. Batch-fatal failures add ``message``
        and report a single error with zero counts.
    """
    try:
        input_format = _declared_format(filename_or_format)
        if not isinstance(record_type, RecordType):
            record_type = RecordType.from_string(record_type)
        result = run_import(
            data,
            input_format,
            record_type,
            store,
            actor_id=actor_id,
            config=config,
            source="upload",
            batch_prefix="upload",
            **batch_options,
        )
    except (LivestockImportError, ValueError) as exc:
        LOG.error("Upload import failed before processing rows: %s", exc)
        return {
            "success": False,
            "message": str(exc),
            "totalRows": 0,
            "successRows": 0,
            "errorRows": 0,
            "errors": [_fatal_error(str(exc))],
            "importedRecordIdentifiers": [],
        }
    return result.to_upload_response()


def _webhook_failure(
    message: str,
    record_type: Optional[RecordType],
    settings: ImportSettings,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    response: Dict[str, Any] = {
        "success": False,
        "message": message,
        "insertedCount": 0,
        "totalRows": 0,
        "successRows": 0,
        "errorRows": 0,
        "errors": [],
        "batchId": make_batch_id(settings.batch_prefix, record_type) if record_type else "",
        "tableType": record_type.table_type if record_type else "",
        "source": settings.webhook_source,
    }
    if error is not None:
        response["error"] = error
    return response


def import_webhook(
    body: Optional[Mapping[str, Any]],
    record_type: Union[RecordType, str],
    store: DocumentStore,
    *,
    config: Optional[Mapping[str, Any]] = None,
    **batch_options: Any,
) -> Dict[str, Any]:
    """Import rows pushed by the external import tool's webhook.

    The acting user is the store's ``super_admin`` user. The response is
    always a dict, including on internal failure, because the calling tool
    expects a success status for every delivery.

    Parameters
    ----------
    body : Mapping, optional
        Parsed JSON body of the form ``{"data": [row, ...]}``.
    record_type : RecordType or str
        Target record type (one webhook per record type).
    store : DocumentStore
        Target store; must hold a ``users`` document with role ``super_admin``.
    config : Mapping, optional
        Validated configuration.

    Returns
    -------
    Dict[str, Any]
        ``{success, message, insertedCount, totalRows, successRows, errorRows,
        errors, batchId, tableType, source}``.
    """
    settings = ImportSettings.from_config(config)
    try:
        if not isinstance(record_type, RecordType):
            record_type = RecordType.from_string(record_type)
    except ValueError as exc:
        return _webhook_failure(str(exc), None, settings)

    try:
        admin = store.find_one(USERS, {"role": ADMIN_ROLE})
        if admin is None:
            LOG.error("No %s user found for webhook import", ADMIN_ROLE)
            return _webhook_failure("No admin user found for import", record_type, settings)
        if not isinstance(body, Mapping):
            return _webhook_failure("Request body is missing", record_type, settings)

        rows = decode(body.get("data") or [], InputFormat.JSON)
        result = run_batch(
            rows,
            record_type,
            store,
            actor_id=str(admin["_id"]),
            config=config,
            source=settings.webhook_source,
            batch_prefix=settings.batch_prefix,
            **batch_options,
        )
    except Exception as exc:
        LOG.exception("Webhook import for %s failed", record_type.value)
        return _webhook_failure(WEBHOOK_FAILURE_MESSAGE, record_type, settings, error=str(exc))
    return result.to_webhook_response()


def download_template(
    record_type: Union[RecordType, str],
    alias_tables: Optional[Mapping[RecordType, FieldAliasTable]] = None,
) -> Tuple[str, str]:
    """Return ``(filename, csv_text)`` of the import template for a record type."""
    if not isinstance(record_type, RecordType):
        record_type = RecordType.from_string(record_type)
    tables = alias_tables or load_alias_tables()
    return f"{record_type.value}_template.csv", build_template(record_type, tables[record_type])
