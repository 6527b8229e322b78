"""Lead source endpoints: admin management plus the public list."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import get_db
from app.core.rate_limit import limiter
from app.schemas.sources import SourceCreate, SourceRead, SourceUpdate
from app.services import source_service

router = APIRouter(prefix="/sources", tags=["sources"])
public_router = APIRouter(prefix="/public/sources", tags=["sources-public"])


def _get_source_or_404(db: Session, source_id: UUID):
    source = source_service.get_source(db, source_id)
    if not source:
        raise HTTPException(status_code=404, detail="Source not found")
    return source


@router.get("", response_model=list[SourceRead])
def list_sources(
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
):
    return source_service.list_sources(db, active_only=active_only)


@router.post("", response_model=SourceRead, status_code=201)
def create_source(body: SourceCreate, db: Session = Depends(get_db)):
    try:
        return source_service.create_source(db, body)
    except source_service.SourceConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("/{source_id}", response_model=SourceRead)
def get_source(source_id: UUID, db: Session = Depends(get_db)):
    return _get_source_or_404(db, source_id)


@router.patch("/{source_id}", response_model=SourceRead)
def update_source(source_id: UUID, body: SourceUpdate, db: Session = Depends(get_db)):
    source = _get_source_or_404(db, source_id)
    try:
        return source_service.update_source(db, source, body)
    except source_service.SourceConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.delete("/{source_id}", status_code=204)
def delete_source(source_id: UUID, db: Session = Depends(get_db)):
    source = _get_source_or_404(db, source_id)
    source_service.delete_source(db, source)


@public_router.get("", response_model=list[str])
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_READ}/minute")
def list_public_sources(request: Request, db: Session = Depends(get_db)):
    """Active source names in display order."""
    return [source.name for source in source_service.list_sources(db, active_only=True)]
