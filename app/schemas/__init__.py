"""Pydantic schemas for API request/response models."""

from app.schemas.forms import (
    FormCreate,
    FormPublicRead,
    FormRead,
    FormSchema,
    FormSummary,
    FormUpdate,
    SubmissionResult,
)
from app.schemas.imports import BulkImportAccepted, BulkImportCreate, BulkImportRead
from app.schemas.responses import RecordListResponse, RecordRead, RecordUpdate
from app.schemas.sources import SourceCreate, SourceRead, SourceUpdate

__all__ = [
    "FormCreate",
    "FormPublicRead",
    "FormRead",
    "FormSchema",
    "FormSummary",
    "FormUpdate",
    "SubmissionResult",
    "BulkImportAccepted",
    "BulkImportCreate",
    "BulkImportRead",
    "RecordListResponse",
    "RecordRead",
    "RecordUpdate",
    "SourceCreate",
    "SourceRead",
    "SourceUpdate",
]
