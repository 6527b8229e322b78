"""Bulk import job model."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin
from app.db.enums import ImportMode, ImportStatus
from app.db.types import JSONType


class BulkImportJob(TimestampMixin, Base):
    """
    Tracks one uploaded file being converted into response records.

    Counters and the bounded error log are checkpointed while the job runs
    so status polls can observe progress. target_collection is NULL when
    the collection should be detected from the file.
    """

    __tablename__ = "bulk_import_jobs"
    __table_args__ = (
        Index("idx_bulk_import_jobs_status", "status"),
        Index("idx_bulk_import_jobs_source", "source_tag"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Uploaded file (temporary, removed when the job finishes)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    size: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    target_collection: Mapped[str | None] = mapped_column(String(20), nullable=True)
    import_mode: Mapped[str] = mapped_column(
        String(20), default=ImportMode.APPEND.value, nullable=False
    )
    source_tag: Mapped[str] = mapped_column(String(100), nullable=False)
    form_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("forms.id", ondelete="SET NULL"), nullable=True
    )
    hierarchy_defaults: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    enable_ai_mapping: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ImportStatus.PROCESSING.value,
        server_default=text(f"'{ImportStatus.PROCESSING.value}'"),
        nullable=False,
    )
    total_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    errors: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    # Last AI mapping suggestion, if the assistant answered
    ai_analysis: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status != ImportStatus.PROCESSING.value
