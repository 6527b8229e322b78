"""Schemas for stored response records and admin bulk operations."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.db.enums import LeadStatus


class RecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    form_id: UUID | None
    form_title: str | None
    form_slug: str | None
    responses: list[dict[str, Any]]
    source: str
    submitted_at: datetime
    import_job_id: UUID | None

    # Family-specific (absent on other families)
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    lead_score: int | None = None
    status: str | None = None
    khanda: str | None = None
    valaya: str | None = None
    milan_ghat: str | None = None
    form_type: str | None = None


class RecordListResponse(BaseModel):
    items: list[RecordRead]
    total: int
    page: int
    per_page: int


class BulkStatusUpdate(BaseModel):
    ids: list[UUID] = Field(..., min_length=1, max_length=500)
    status: LeadStatus


class BulkDelete(BaseModel):
    ids: list[UUID] = Field(..., min_length=1, max_length=500)


class BulkOperationResult(BaseModel):
    affected: int


class CollectionStats(BaseModel):
    counts: dict[str, int]
    average_lead_score: float | None
    leads_by_status: dict[str, int]


class RecordUpdate(BaseModel):
    """Admin edit of one record. Fields a family lacks are rejected."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, max_length=255)
    email: str | None = Field(None, max_length=255)
    phone: str | None = Field(None, max_length=50)
    source: str | None = Field(None, min_length=1, max_length=100)
    khanda: str | None = Field(None, max_length=150)
    valaya: str | None = Field(None, max_length=150)
    milan_ghat: str | None = Field(None, max_length=150)
    lead_score: int | None = Field(None, ge=0, le=100)
    status: LeadStatus | None = None
    form_type: str | None = Field(None, min_length=1, max_length=50)
