"""Admin endpoints for stored response records."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.db.enums import CollectionTarget, LeadStatus
from app.schemas.responses import (
    BulkDelete,
    BulkOperationResult,
    BulkStatusUpdate,
    CollectionStats,
    RecordListResponse,
    RecordRead,
    RecordUpdate,
)
from app.services import response_service

router = APIRouter(prefix="/responses", tags=["responses"])


@router.get("/stats", response_model=CollectionStats)
def get_stats(db: Session = Depends(get_db)):
    return response_service.collection_stats(db)


@router.get("/{collection}", response_model=RecordListResponse)
def list_records(
    collection: CollectionTarget,
    form_id: UUID | None = Query(None),
    status: LeadStatus | None = Query(None),
    source: str | None = Query(None),
    q: str | None = Query(None, max_length=200),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    import_job_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
):
    if status and collection != CollectionTarget.LEAD:
        raise HTTPException(status_code=400, detail="Status filter applies to leads only")
    records, total = response_service.list_records(
        db,
        collection.value,
        form_id=form_id,
        status=status,
        source=source,
        search=q,
        page=page,
        per_page=per_page,
        import_job_id=import_job_id,
    )
    return RecordListResponse(
        items=[RecordRead.model_validate(r) for r in records],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("/{collection}/bulk-status", response_model=BulkOperationResult)
def bulk_update_status(
    collection: CollectionTarget,
    data: BulkStatusUpdate,
    db: Session = Depends(get_db),
):
    if collection != CollectionTarget.LEAD:
        raise HTTPException(status_code=400, detail="Status updates apply to leads only")
    updated = response_service.bulk_update_status(db, data.ids, data.status)
    return BulkOperationResult(affected=updated)


@router.post("/{collection}/bulk-delete", response_model=BulkOperationResult)
def bulk_delete(
    collection: CollectionTarget,
    data: BulkDelete,
    db: Session = Depends(get_db),
):
    deleted = response_service.bulk_delete(db, collection.value, data.ids)
    return BulkOperationResult(affected=deleted)


def _get_record_or_404(db: Session, collection: CollectionTarget, record_id: UUID):
    record = response_service.get_record(db, collection.value, record_id)
    if not record:
        raise HTTPException(status_code=404, detail="Record not found")
    return record


@router.get("/{collection}/{record_id}", response_model=RecordRead)
def get_record(collection: CollectionTarget, record_id: UUID, db: Session = Depends(get_db)):
    return _get_record_or_404(db, collection, record_id)


@router.patch("/{collection}/{record_id}", response_model=RecordRead)
def update_record(
    collection: CollectionTarget,
    record_id: UUID,
    data: RecordUpdate,
    db: Session = Depends(get_db),
):
    record = _get_record_or_404(db, collection, record_id)
    try:
        return response_service.update_record(db, record, data.model_dump(exclude_unset=True))
    except response_service.RecordUpdateError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.delete("/{collection}/{record_id}", status_code=204)
def delete_record(collection: CollectionTarget, record_id: UUID, db: Session = Depends(get_db)):
    record = _get_record_or_404(db, collection, record_id)
    response_service.delete_record(db, record)
