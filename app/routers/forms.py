"""Form builder endpoints (admin)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.deps import get_db
from app.db.enums import FormStatus
from app.schemas.forms import FormCreate, FormRead, FormSummary, FormUpdate, SlugCheckResponse
from app.services import form_service

router = APIRouter(prefix="/forms", tags=["forms"])


def _get_form_or_404(db: Session, form_id: UUID):
    form = form_service.get_form(db, form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


@router.get("", response_model=list[FormSummary])
def list_forms(
    status: FormStatus | None = Query(None),
    db: Session = Depends(get_db),
):
    return form_service.list_forms(db, status=status)


@router.get("/check-slug", response_model=SlugCheckResponse)
def check_slug(
    slug: str = Query(..., min_length=1, max_length=120),
    exclude_form_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
):
    available = form_service.check_slug_available(db, slug, exclude_form_id=exclude_form_id)
    return SlugCheckResponse(slug=slug, available=available)


@router.post("", response_model=FormRead, status_code=201)
def create_form(data: FormCreate, db: Session = Depends(get_db)):
    try:
        return form_service.create_form(db, data)
    except form_service.SchemaValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@router.get("/{form_id}", response_model=FormRead)
def get_form(form_id: UUID, db: Session = Depends(get_db)):
    return _get_form_or_404(db, form_id)


@router.patch("/{form_id}", response_model=FormRead)
def update_form(form_id: UUID, data: FormUpdate, db: Session = Depends(get_db)):
    form = _get_form_or_404(db, form_id)
    try:
        return form_service.update_form(db, form, data)
    except form_service.SchemaValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except form_service.SlugConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.delete("/{form_id}", status_code=204)
def delete_form(form_id: UUID, db: Session = Depends(get_db)):
    form = _get_form_or_404(db, form_id)
    form_service.delete_form(db, form)


@router.post("/{form_id}/publish", response_model=FormRead)
def publish_form(form_id: UUID, db: Session = Depends(get_db)):
    form = _get_form_or_404(db, form_id)
    try:
        return form_service.publish_form(db, form)
    except form_service.SchemaValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except form_service.SlugConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.post("/{form_id}/unpublish", response_model=FormRead)
def unpublish_form(form_id: UUID, db: Session = Depends(get_db)):
    form = _get_form_or_404(db, form_id)
    return form_service.unpublish_form(db, form)


@router.post("/{form_id}/duplicate", response_model=FormRead, status_code=201)
def duplicate_form(form_id: UUID, db: Session = Depends(get_db)):
    form = _get_form_or_404(db, form_id)
    return form_service.duplicate_form(db, form)
