"""Schemas for bulk import jobs."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.db.enums import CollectionTarget, ImportMode


class HierarchyDefaults(BaseModel):
    """Organization hierarchy names applied to rows that carry none."""

    khanda: str | None = Field(None, max_length=150)
    valaya: str | None = Field(None, max_length=150)
    milan_ghat: str | None = Field(None, max_length=150)


class BulkImportCreate(BaseModel):
    target_collection: CollectionTarget | None = None  # None = detect from file
    import_mode: ImportMode = ImportMode.APPEND
    source_tag: str = Field(..., min_length=1, max_length=100)
    form_id: UUID | None = None
    hierarchy_defaults: HierarchyDefaults = Field(default_factory=HierarchyDefaults)
    enable_ai_mapping: bool = False


class BulkImportAccepted(BaseModel):
    job_id: UUID
    status: str
    message: str = "Import started"


class BulkImportRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    original_name: str
    size: int
    target_collection: str | None
    import_mode: str
    source_tag: str
    form_id: UUID | None
    enable_ai_mapping: bool
    status: str
    total_records: int
    processed_records: int
    successful_records: int
    failed_records: int
    errors: list[str]
    ai_analysis: dict[str, Any] | None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None


class BulkImportDeleted(BaseModel):
    job_id: UUID
    deleted_records: int
