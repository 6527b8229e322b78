"""Bulk import enums."""

from enum import Enum


class ImportMode(str, Enum):
    APPEND = "append"
    REPLACE = "replace"  # Delete records with the same source tag first


class ImportStatus(str, Enum):
    """Bulk import job status. Everything except PROCESSING is terminal."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"
