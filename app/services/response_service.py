"""Response record service - collection routing and admin bulk operations."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Type

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.db.enums import CollectionTarget, LeadStatus
from app.db.models import GenericRecord, LeadRecord, VolunteerRecord

logger = logging.getLogger(__name__)

RecordModel = Type[LeadRecord] | Type[VolunteerRecord] | Type[GenericRecord]

RECORD_MODELS: dict[str, RecordModel] = {
    CollectionTarget.LEAD.value: LeadRecord,
    CollectionTarget.VOLUNTEER.value: VolunteerRecord,
    CollectionTarget.GENERIC.value: GenericRecord,
}


_CONTACT_COLUMNS = frozenset({"name", "email", "phone", "khanda", "valaya", "milan_ghat", "source"})

EDITABLE_COLUMNS: dict[RecordModel, frozenset[str]] = {
    LeadRecord: _CONTACT_COLUMNS | {"lead_score", "status"},
    VolunteerRecord: _CONTACT_COLUMNS,
    GenericRecord: frozenset({"source", "form_type"}),
}

# String columns an explicit null resets to ""
BLANKABLE_COLUMNS = frozenset({"name", "email", "phone", "khanda", "valaya", "milan_ghat"})


class RecordUpdateError(ValueError):
    """Raised when an edit does not fit the record's columns."""

    pass


def record_model_for(collection: str) -> RecordModel:
    model = RECORD_MODELS.get(collection)
    if model is None:
        raise ValueError(f"Unknown collection: {collection}")
    return model


def count_form_records(db: Session, collection: str, form_id: uuid.UUID) -> int:
    model = record_model_for(collection)
    return db.query(func.count(model.id)).filter(model.form_id == form_id).scalar() or 0


def has_response_from(db: Session, collection: str, form_id: uuid.UUID, ip_address: str) -> bool:
    model = record_model_for(collection)
    return (
        db.query(model.id)
        .filter(model.form_id == form_id, model.ip_address == ip_address)
        .first()
        is not None
    )


def delete_by_source(db: Session, collection: str, source: str) -> int:
    """Delete every record in a collection tagged with `source`. Caller commits."""
    model = record_model_for(collection)
    return db.query(model).filter(model.source == source).delete(synchronize_session=False)


def count_by_source(db: Session, collection: str, source: str) -> int:
    model = record_model_for(collection)
    return db.query(func.count(model.id)).filter(model.source == source).scalar() or 0


# =============================================================================
# Admin Operations
# =============================================================================


def list_records(
    db: Session,
    collection: str,
    form_id: uuid.UUID | None = None,
    status: LeadStatus | None = None,
    source: str | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
    import_job_id: uuid.UUID | None = None,
) -> tuple[list, int]:
    """List records newest first. Returns (records, total)."""
    model = record_model_for(collection)
    query = db.query(model)
    if form_id:
        query = query.filter(model.form_id == form_id)
    if import_job_id:
        query = query.filter(model.import_job_id == import_job_id)
    if source:
        query = query.filter(model.source == source)
    if status and model is LeadRecord:
        query = query.filter(LeadRecord.status == status.value)
    if search and hasattr(model, "name"):
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(model.name.ilike(pattern), model.email.ilike(pattern), model.phone.ilike(pattern))
        )

    total = query.count()
    records = (
        query.order_by(model.submitted_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return records, total


def get_record(db: Session, collection: str, record_id: uuid.UUID):
    model = record_model_for(collection)
    return db.query(model).filter(model.id == record_id).first()


def update_record(db: Session, record, changes: dict[str, Any]):
    """
    Apply admin edits to one record.

    Raises RecordUpdateError when a key is not a column of the record's
    family (e.g. lead_score on a volunteer), or when null is sent for a
    column that cannot be cleared.
    """
    unknown = sorted(key for key in changes if key not in EDITABLE_COLUMNS[type(record)])
    if unknown:
        raise RecordUpdateError(f"Not editable on this collection: {', '.join(unknown)}")
    required = sorted(
        key for key, value in changes.items() if value is None and key not in BLANKABLE_COLUMNS
    )
    if required:
        raise RecordUpdateError(f"Cannot be cleared: {', '.join(required)}")

    for key, value in changes.items():
        if isinstance(value, LeadStatus):
            value = value.value
        setattr(record, key, "" if value is None else value)
    db.commit()
    db.refresh(record)
    return record


def delete_record(db: Session, record) -> None:
    db.delete(record)
    db.commit()


def delete_by_import(db: Session, collection: str, import_job_id: uuid.UUID) -> int:
    """Delete the records one import job produced. Caller commits."""
    model = record_model_for(collection)
    return (
        db.query(model)
        .filter(model.import_job_id == import_job_id)
        .delete(synchronize_session=False)
    )


def bulk_update_status(db: Session, ids: list[uuid.UUID], status: LeadStatus) -> int:
    """Set follow-up status on many leads. Returns the number updated."""
    if not ids:
        return 0
    updated = (
        db.query(LeadRecord)
        .filter(LeadRecord.id.in_(ids))
        .update({LeadRecord.status: status.value}, synchronize_session=False)
    )
    db.commit()
    logger.info("Bulk status update: %s leads -> %s", updated, status.value)
    return updated


def bulk_delete(db: Session, collection: str, ids: list[uuid.UUID]) -> int:
    if not ids:
        return 0
    model = record_model_for(collection)
    deleted = db.query(model).filter(model.id.in_(ids)).delete(synchronize_session=False)
    db.commit()
    logger.info("Bulk delete: %s records from %s", deleted, collection)
    return deleted


def collection_stats(db: Session) -> dict[str, object]:
    counts = {
        collection: db.query(func.count(model.id)).scalar() or 0
        for collection, model in RECORD_MODELS.items()
    }
    average = db.query(func.avg(LeadRecord.lead_score)).scalar()
    by_status = dict(
        db.query(LeadRecord.status, func.count(LeadRecord.id)).group_by(LeadRecord.status).all()
    )
    return {
        "counts": counts,
        "average_lead_score": round(float(average), 1) if average is not None else None,
        "leads_by_status": by_status,
    }
