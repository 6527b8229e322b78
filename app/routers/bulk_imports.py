"""Bulk import endpoints - upload files, poll job progress, browse and remove imports."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.db.enums import ImportStatus, JobType
from app.schemas.imports import (
    BulkImportAccepted,
    BulkImportCreate,
    BulkImportDeleted,
    BulkImportRead,
    HierarchyDefaults,
)
from app.schemas.responses import RecordListResponse, RecordRead
from app.services import (
    form_service,
    import_service,
    job_service,
    response_service,
    upload_storage_service,
)
from app.services.upload_storage_service import UploadTooLargeError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bulk-imports", tags=["bulk-imports"])


@router.post("", response_model=BulkImportAccepted, status_code=202)
async def create_bulk_import(
    file: UploadFile = File(...),
    source_tag: str = Form(...),
    target_collection: str | None = Form(None),
    import_mode: str = Form("append"),
    form_id: UUID | None = Form(None),
    khanda: str | None = Form(None),
    valaya: str | None = Form(None),
    milan_ghat: str | None = Form(None),
    enable_ai_mapping: bool = Form(False),
    db: Session = Depends(get_db),
):
    """
    Accept an upload and queue it for the worker.

    Returns immediately with the job id; poll GET /bulk-imports/{id} for
    progress and the final status.
    """
    try:
        data = BulkImportCreate(
            source_tag=source_tag,
            target_collection=target_collection or None,
            import_mode=import_mode,
            form_id=form_id,
            hierarchy_defaults=HierarchyDefaults(
                khanda=khanda or None, valaya=valaya or None, milan_ghat=milan_ghat or None
            ),
            enable_ai_mapping=enable_ai_mapping,
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc

    filename = file.filename or "upload"
    try:
        content = await upload_storage_service.read_limited(file)
        job = import_service.create_import_job(
            db, data, filename, content, mime_type=file.content_type
        )
    except import_service.UnsupportedFileFormat as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UploadTooLargeError as exc:
        raise HTTPException(status_code=413, detail=str(exc)) from exc
    except form_service.FormNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    # One attempt only: a retried import would double-insert appended rows
    job_service.schedule_job(
        db, JobType.BULK_IMPORT, {"import_job_id": str(job.id)}, max_attempts=1
    )
    return BulkImportAccepted(job_id=job.id, status=job.status)


@router.get("", response_model=list[BulkImportRead])
def list_bulk_imports(
    status: ImportStatus | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    return import_service.list_import_jobs(db, status=status, limit=limit)


def _get_job_or_404(db: Session, job_id: UUID):
    job = import_service.get_import_job(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Import job not found")
    return job


@router.get("/{job_id}", response_model=BulkImportRead)
def get_bulk_import(job_id: UUID, db: Session = Depends(get_db)):
    return _get_job_or_404(db, job_id)


@router.get("/{job_id}/records", response_model=RecordListResponse)
def list_bulk_import_records(
    job_id: UUID,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Records this import wrote, in its detected or chosen collection."""
    job = _get_job_or_404(db, job_id)
    records, total = [], 0
    if job.target_collection:
        records, total = response_service.list_records(
            db, job.target_collection, import_job_id=job.id, page=page, per_page=per_page
        )
    return RecordListResponse(
        items=[RecordRead.model_validate(r) for r in records],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.delete("/{job_id}", response_model=BulkImportDeleted)
def delete_bulk_import(job_id: UUID, db: Session = Depends(get_db)):
    job = _get_job_or_404(db, job_id)
    try:
        deleted = import_service.delete_import_job(db, job)
    except import_service.ImportInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return BulkImportDeleted(job_id=job_id, deleted_records=deleted)
