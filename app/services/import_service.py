"""Bulk import service - parse uploaded files and route rows into record collections.

Supports CSV/TSV, Excel (.xlsx) and JSON-array uploads. Jobs run in the
background worker; the upload request only stores the file and returns
the job id. Progress counters and the bounded error log are checkpointed
while the job runs so status polls never see a silently stalled job.
"""

from __future__ import annotations

import asyncio
import csv
import io
import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any

from openpyxl import load_workbook
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.structured_logging import build_log_context
from app.db.base import utcnow
from app.db.enums import CollectionTarget, ImportMode, ImportStatus, LeadStatus
from app.db.models import BulkImportJob
from app.schemas.forms import FormSchema
from app.schemas.imports import BulkImportCreate
from app.services import form_service, response_service, upload_storage_service
from app.services.form_submission_service import (
    ProcessedSubmission,
    SubmissionMetadata,
    build_field_index,
    build_record,
)
from app.services.import_ai_mapper_service import RowEnhancer, build_row_enhancer
from app.services.import_detection_service import (
    apply_field_mapping,
    compact_key,
    decode_text,
    detect_collection_type,
    detect_delimiter,
    humanize_label,
    is_ignored_key,
)
from app.services.record_classifier import (
    Classification,
    calculate_lead_score,
    clamp_score,
    classify_responses,
    detect_opt_ins,
    value_text,
)

logger = logging.getLogger(__name__)


class BulkImportError(Exception):
    """Base exception for bulk import errors."""

    pass


class UnsupportedFileFormat(BulkImportError):
    """File extension is not one the importer can read."""

    pass


class FileParseError(BulkImportError):
    """Extension recognised but the content could not be parsed."""

    pass


class RecordError(BulkImportError):
    """A single row could not be transformed."""

    pass


class ImportInProgressError(BulkImportError):
    """The job is still running and cannot be removed."""

    pass


FILE_TYPES = {
    ".csv": "csv",
    ".tsv": "csv",
    ".txt": "csv",
    ".json": "json",
    ".xlsx": "xlsx",
    ".xlsm": "xlsx",
}

# Canonical keys lifted out of the row instead of becoming response entries
CLASSIFICATION_KEYS = ("name", "email", "phone", "khanda", "valaya", "milan_ghat")
METADATA_KEYS = frozenset(
    {
        *CLASSIFICATION_KEYS,
        "lead_score",
        "status",
        "source",
        "form_id",
        "form_title",
        "form_slug",
        "ip_address",
        "user_agent",
        "submitted_at",
        "form_type",
    }
)
_METADATA_COMPACT = frozenset(compact_key(k) for k in METADATA_KEYS)


# =============================================================================
# File Parsing
# =============================================================================


def file_type_for(filename: str) -> str:
    _, ext = os.path.splitext(filename or "")
    file_type = FILE_TYPES.get(ext.lower())
    if not file_type:
        raise UnsupportedFileFormat(
            f"Unsupported file format: {ext or filename}. Use CSV, Excel (.xlsx) or JSON."
        )
    return file_type


def _has_values(row: dict[str, Any]) -> bool:
    return any(value not in (None, "") for value in row.values())


def parse_csv_file(content: bytes) -> list[dict[str, Any]]:
    try:
        text = decode_text(content)
        reader = csv.DictReader(io.StringIO(text), delimiter=detect_delimiter(text))
        if not reader.fieldnames:
            raise FileParseError("Missing header row")
        rows = []
        for raw in reader:
            row = {
                key.strip(): value.strip() if isinstance(value, str) else value
                for key, value in raw.items()
                if key and key.strip()
            }
            if _has_values(row):
                rows.append(row)
        return rows
    except (csv.Error, UnicodeDecodeError) as exc:
        raise FileParseError(str(exc)) from exc


def parse_json_file(content: bytes) -> list[Any]:
    try:
        data = json.loads(decode_text(content))
    except (ValueError, UnicodeDecodeError) as exc:
        raise FileParseError(f"Invalid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise FileParseError("JSON file must contain an array of records")
    return data


def _cell_value(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return value.strip()
    return value


def parse_xlsx_file(content: bytes) -> list[dict[str, Any]]:
    """First worksheet, first row as header, blank rows skipped."""
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as exc:
        raise FileParseError(f"Unreadable spreadsheet: {exc}") from exc

    try:
        if not workbook.worksheets:
            raise FileParseError("Workbook has no sheets")
        rows_iter = workbook.worksheets[0].iter_rows(values_only=True)
        header = next(rows_iter, None)
        if not header:
            raise FileParseError("Spreadsheet is empty")
        headers = [str(h).strip() if h is not None else "" for h in header]
        rows = []
        for values in rows_iter:
            row = {h: _cell_value(v) for h, v in zip(headers, values) if h}
            if _has_values(row):
                rows.append(row)
        return rows
    finally:
        workbook.close()


def parse_file(filename: str, content: bytes) -> tuple[str, list[Any]]:
    """Dispatch on extension. Raises UnsupportedFileFormat or FileParseError."""
    file_type = file_type_for(filename)
    if file_type == "csv":
        rows = parse_csv_file(content)
    elif file_type == "json":
        rows = parse_json_file(content)
    else:
        rows = parse_xlsx_file(content)
    if not rows:
        raise FileParseError("No records found in file")
    return file_type, rows


# =============================================================================
# Row Transform
# =============================================================================


def _field_by_label(schema: FormSchema | None) -> dict[str, str]:
    if schema is None:
        return {}
    return {
        f.label.strip().lower(): f.id
        for f in form_service.flatten_fields(schema).values()
        if f.label
    }


def _looks_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(str(value))
        return True
    except ValueError:
        return False


def row_to_submission(
    row: dict[str, Any], schema: FormSchema | None = None
) -> tuple[list[dict], dict[str, Any]]:
    """
    Split a mapped row into (enriched response entries, explicit metadata).

    Metadata/classification keys are matched case-insensitively and kept
    out of the entries. Empty values are dropped. With a schema, columns
    resolve against field ids first, then labels.
    """
    index = build_field_index(schema) if schema else {}
    by_label = _field_by_label(schema)

    entries: list[dict] = []
    explicit: dict[str, Any] = {}
    for key, value in row.items():
        key = str(key)
        if is_ignored_key(key):
            continue
        compact = compact_key(key)
        if key in METADATA_KEYS or compact in _METADATA_COMPACT:
            canonical = next(k for k in METADATA_KEYS if compact_key(k) == compact)
            explicit.setdefault(canonical, value)
            continue
        if value is None or value_text(value) == "":
            continue

        field_id = key if key in index else by_label.get(key.strip().lower())
        if field_id:
            field_type, field_label = index[field_id]
        else:
            field_id = key
            field_type = "number" if _looks_numeric(value) else "text"
            field_label = humanize_label(key)
        entries.append(
            {
                "field_id": field_id,
                "field_type": field_type,
                "field_label": field_label,
                "value": value,
            }
        )
    return entries, explicit


def _parse_lead_score(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return clamp_score(int(float(str(value).strip())))
    except (ValueError, OverflowError):
        return None


def _parse_lead_status(value: Any) -> str | None:
    text = value_text(value).lower()
    return text if text in {s.value for s in LeadStatus} else None


def _parse_submitted_at(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    text = value_text(value)
    if text:
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            pass
    return utcnow()


def transform_row(
    row: Any,
    collection: str,
    *,
    source_tag: str,
    schema: FormSchema | None = None,
    hierarchy_defaults: dict[str, str] | None = None,
) -> tuple[ProcessedSubmission, str | None]:
    """
    Turn one mapped row into a processed submission.

    Explicit row values override the heuristic classification; hierarchy
    defaults fill gaps. Lead scores come from the row when it carries a
    numeric score, otherwise from the shared scorer. Returns the submission
    and the explicit lead status (if any).
    """
    if not isinstance(row, dict):
        raise RecordError("Record is not an object")

    entries, explicit = row_to_submission(row, schema)
    if not entries and not any(value_text(explicit.get(k)) for k in CLASSIFICATION_KEYS):
        raise RecordError("Record has no usable values")

    classification: Classification = classify_responses(entries, collection).merge(explicit)
    for key, default in (hierarchy_defaults or {}).items():
        if key in ("khanda", "valaya", "milan_ghat") and default and not getattr(classification, key):
            setattr(classification, key, str(default))

    lead_score = None
    if collection == CollectionTarget.LEAD.value:
        lead_score = _parse_lead_score(explicit.get("lead_score"))
        if lead_score is None:
            lead_score = calculate_lead_score(classification, entries)

    whatsapp, arratai = detect_opt_ins(entries)
    processed = ProcessedSubmission(
        target_collection=collection,
        responses=entries,
        classification=classification,
        lead_score=lead_score,
        whatsapp_opt_in=whatsapp,
        arratai_opt_in=arratai,
        payment_required=False,
        payment_amount=None,
        group_links={},
        source=source_tag,
        form_type=value_text(explicit.get("form_type")) or None,
        metadata=SubmissionMetadata(
            ip_address=value_text(explicit.get("ip_address")) or None,
            user_agent=value_text(explicit.get("user_agent")) or None,
            submitted_at=_parse_submitted_at(explicit.get("submitted_at")),
        ),
    )
    return processed, _parse_lead_status(explicit.get("status"))


# =============================================================================
# Job Management
# =============================================================================


def create_import_job(
    db: Session, data: BulkImportCreate, original_name: str, content: bytes, mime_type: str | None = None
) -> BulkImportJob:
    """Validate the format, store the upload and create the job (status processing)."""
    file_type_for(original_name)
    if data.form_id and form_service.get_form(db, data.form_id) is None:
        raise form_service.FormNotFoundError("Form not found")

    file_path = upload_storage_service.store_upload(original_name, content)
    job = BulkImportJob(
        original_name=os.path.basename(original_name),
        file_path=file_path,
        mime_type=mime_type,
        size=len(content),
        target_collection=data.target_collection.value if data.target_collection else None,
        import_mode=data.import_mode.value,
        source_tag=data.source_tag,
        form_id=data.form_id,
        hierarchy_defaults=data.hierarchy_defaults.model_dump(exclude_none=True),
        enable_ai_mapping=data.enable_ai_mapping,
        status=ImportStatus.PROCESSING.value,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info("Bulk import job created: %s", job.id, extra=build_log_context(job_id=str(job.id)))
    return job


def get_import_job(db: Session, job_id: uuid.UUID) -> BulkImportJob | None:
    return db.query(BulkImportJob).filter(BulkImportJob.id == job_id).first()


def list_import_jobs(
    db: Session, status: ImportStatus | None = None, limit: int = 50
) -> list[BulkImportJob]:
    query = db.query(BulkImportJob)
    if status:
        query = query.filter(BulkImportJob.status == status.value)
    return query.order_by(BulkImportJob.created_at.desc()).limit(limit).all()


def delete_import_job(db: Session, job: BulkImportJob) -> int:
    """
    Delete a finished job together with the records it imported.

    Returns the number of records removed. Raises ImportInProgressError
    while the worker still owns the job.
    """
    if not job.is_terminal:
        raise ImportInProgressError("Import is still processing")

    deleted = sum(
        response_service.delete_by_import(db, collection, job.id)
        for collection in response_service.RECORD_MODELS
    )
    upload_storage_service.delete_upload(job.file_path)
    db.delete(job)
    db.commit()
    logger.info(
        "Bulk import job deleted: %s (%s records)",
        job.id,
        deleted,
        extra=build_log_context(job_id=str(job.id)),
    )
    return deleted


# =============================================================================
# Job Execution
# =============================================================================


@dataclass
class ImportProgress:
    """In-memory counters, copied onto the job at each checkpoint."""

    total: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors = (self.errors + [message])[-settings.IMPORT_ERROR_LOG_LIMIT:]

    def terminal_status(self) -> ImportStatus:
        if self.failed == 0:
            return ImportStatus.COMPLETED
        if self.successful == 0:
            return ImportStatus.FAILED
        return ImportStatus.PARTIAL


def _append_error(job: BulkImportJob, message: str) -> None:
    # Reassign so the JSON column is flagged dirty
    job.errors = (list(job.errors or []) + [message])[-settings.IMPORT_ERROR_LOG_LIMIT:]


def _checkpoint(db: Session, job: BulkImportJob, progress: ImportProgress) -> None:
    job.total_records = progress.total
    job.processed_records = progress.processed
    job.successful_records = progress.successful
    job.failed_records = progress.failed
    job.errors = list(progress.errors)
    db.commit()


def _finalize(db: Session, job: BulkImportJob, status: ImportStatus) -> None:
    job.status = status.value
    job.completed_at = utcnow()
    db.commit()


def _fail_job(db: Session, job: BulkImportJob, message: str) -> BulkImportJob:
    _append_error(job, message)
    _finalize(db, job, ImportStatus.FAILED)
    logger.error("Bulk import %s failed: %s", job.id, message)
    return job


def _abort_job(db: Session, job: BulkImportJob, exc: Exception) -> None:
    """
    Close a job interrupted by an unexpected error.

    Counters come from the last checkpoint: partial when some records were
    already saved, failed otherwise. The caller re-raises.
    """
    try:
        if job.is_terminal:
            return
        status = ImportStatus.PARTIAL if job.successful_records else ImportStatus.FAILED
        _append_error(job, f"Import error: {exc}")
        _finalize(db, job, status)
        logger.error("Bulk import %s aborted (%s): %s", job.id, status.value, type(exc).__name__)
    except Exception as inner:
        db.rollback()
        logger.error("Could not record failure of bulk import %s: %s", job.id, inner)


def _clear_previous_import(db: Session, job: BulkImportJob, collection: str) -> None:
    """Replace mode: drop records carrying the job's source tag. Best-effort."""
    try:
        deleted = response_service.delete_by_source(db, collection, job.source_tag)
        db.commit()
        logger.info(
            "Replace mode removed %s %s records with source %r",
            deleted,
            collection,
            job.source_tag,
        )
    except Exception as exc:
        db.rollback()
        logger.error("Replace mode delete failed for job %s: %s", job.id, exc)


async def _prepare_enhancer(
    enhancer: RowEnhancer, rows: list[Any], file_type: str, timeout: float
):
    samples = [r for r in rows[: settings.AI_SAMPLE_ROWS] if isinstance(r, dict)]
    try:
        return await asyncio.wait_for(enhancer.prepare(samples, file_type), timeout=timeout)
    except Exception as exc:
        logger.warning("AI mapping preparation failed: %s", type(exc).__name__)
        return None


async def _enhance_row(enhancer: RowEnhancer | None, row: Any, timeout: float) -> Any:
    """AI relabelling is best-effort: any failure yields the raw row."""
    if enhancer is None or not isinstance(row, dict):
        return row
    try:
        enhanced = await asyncio.wait_for(enhancer.enhance(dict(row)), timeout=timeout)
    except Exception as exc:
        logger.debug("Row enhancement skipped: %s", type(exc).__name__)
        return row
    return enhanced if isinstance(enhanced, dict) else row


async def run_import_job(
    db: Session,
    job: BulkImportJob,
    file_bytes: bytes | None = None,
    enhancer: RowEnhancer | None = None,
    enhancement_timeout: float | None = None,
) -> BulkImportJob:
    """
    Process every row of the job's file, strictly in order.

    processing -> completed (no failures) | partial | failed (nothing
    succeeded, or the file could not be read/parsed). The terminal status
    is written exactly once; the temp upload is removed afterwards.
    """
    if job.is_terminal:
        logger.warning("Bulk import %s already finished (%s), skipping", job.id, job.status)
        return job

    timeout = (
        enhancement_timeout
        if enhancement_timeout is not None
        else settings.AI_MAPPING_TIMEOUT_SECONDS
    )
    log_extra = build_log_context(job_id=str(job.id))
    file_path = job.file_path

    try:
        return await _run(db, job, file_bytes, enhancer, timeout, log_extra)
    except Exception as exc:
        db.rollback()
        _abort_job(db, job, exc)
        raise
    finally:
        upload_storage_service.delete_upload(file_path)


async def _run(
    db: Session,
    job: BulkImportJob,
    file_bytes: bytes | None,
    enhancer: RowEnhancer | None,
    timeout: float,
    log_extra: dict,
) -> BulkImportJob:
    if file_bytes is None:
        try:
            file_bytes = upload_storage_service.read_upload(job.file_path or "")
        except OSError as exc:
            return _fail_job(db, job, f"File read error: {exc}")

    try:
        file_type, rows = parse_file(job.original_name, file_bytes)
    except UnsupportedFileFormat as exc:
        return _fail_job(db, job, str(exc))
    except FileParseError as exc:
        return _fail_job(db, job, f"File parsing error: {exc}")

    logger.info("Starting bulk import job: %s, rows=%s", job.id, len(rows), extra=log_extra)

    if enhancer is None:
        enhancer = build_row_enhancer(job.enable_ai_mapping)

    suggestion = None
    if enhancer is not None:
        suggestion = await _prepare_enhancer(enhancer, rows, file_type, timeout)
        if suggestion is not None:
            job.ai_analysis = suggestion.model_dump()

    collection = job.target_collection
    if not collection:
        if suggestion is not None and suggestion.collection_type:
            collection = suggestion.collection_type
        else:
            headers = list(rows[0].keys()) if isinstance(rows[0], dict) else []
            collection = detect_collection_type(headers)
        job.target_collection = collection

    schema = None
    if job.form_id:
        form = form_service.get_form(db, job.form_id)
        if form is not None:
            schema = form_service.form_to_schema(form)

    progress = ImportProgress(total=len(rows), errors=list(job.errors or []))
    _checkpoint(db, job, progress)

    if job.import_mode == ImportMode.REPLACE.value:
        _clear_previous_import(db, job, collection)

    interval = max(1, settings.IMPORT_PROGRESS_INTERVAL)
    for i, raw in enumerate(rows):
        row = await _enhance_row(enhancer, raw, timeout)
        try:
            if isinstance(row, dict):
                row = apply_field_mapping(row)
            processed, lead_status = transform_row(
                row,
                collection,
                source_tag=job.source_tag,
                schema=schema,
                hierarchy_defaults=job.hierarchy_defaults,
            )
            record = build_record(
                processed,
                form_id=job.form_id,
                form_title=value_text(row.get("form_title")) or None,
                form_slug=value_text(row.get("form_slug")) or None,
                status=lead_status,
                import_job_id=job.id,
            )
            db.add(record)
            db.commit()
            progress.successful += 1
        except Exception as exc:
            db.rollback()
            progress.failed += 1
            progress.add_error(f"Record {i + 1}: {exc}")
            logger.warning("Bulk import %s record %s failed: %s", job.id, i + 1, type(exc).__name__)
        progress.processed += 1

        if i % interval == 0 or i == len(rows) - 1:
            _checkpoint(db, job, progress)

    _finalize(db, job, progress.terminal_status())
    logger.info(
        "Bulk import %s finished: status=%s ok=%s failed=%s",
        job.id,
        job.status,
        progress.successful,
        progress.failed,
        extra=log_extra,
    )
    return job
