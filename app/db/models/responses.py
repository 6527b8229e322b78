"""Stored response record families: leads, volunteers and generic responses."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, utcnow
from app.db.enums import DEFAULT_LEAD_STATUS, DEFAULT_SUBMISSION_SOURCE
from app.db.types import JSONType


class ResponseRecordMixin:
    """Columns shared by every record family (the enriched responses snapshot)."""

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    form_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("forms.id", ondelete="SET NULL"), nullable=True
    )
    form_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    form_slug: Mapped[str | None] = mapped_column(String(120), nullable=True)

    # [{"field_id", "field_type", "field_label", "value"}, ...]
    responses: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    source: Mapped[str] = mapped_column(
        String(100), default=DEFAULT_SUBMISSION_SOURCE, nullable=False
    )
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    import_job_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("bulk_import_jobs.id", ondelete="SET NULL"), nullable=True
    )


class LeadRecord(ResponseRecordMixin, Base):
    """Prospect captured from a lead form or a lead import."""

    __tablename__ = "lead_records"
    __table_args__ = (
        Index("idx_lead_records_form", "form_id"),
        Index("idx_lead_records_source", "source"),
        Index("idx_lead_records_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    lead_score: Mapped[int] = mapped_column(Integer, default=0, server_default=text("0"), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_LEAD_STATUS.value,
        server_default=text(f"'{DEFAULT_LEAD_STATUS.value}'"),
        nullable=False,
    )
    khanda: Mapped[str] = mapped_column(String(150), default="", nullable=False)
    valaya: Mapped[str] = mapped_column(String(150), default="", nullable=False)
    milan_ghat: Mapped[str] = mapped_column(String(150), default="", nullable=False)


class VolunteerRecord(ResponseRecordMixin, Base):
    """Swayamsevak (volunteer) registration with organization hierarchy names."""

    __tablename__ = "volunteer_records"
    __table_args__ = (
        Index("idx_volunteer_records_form", "form_id"),
        Index("idx_volunteer_records_source", "source"),
    )

    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    khanda: Mapped[str] = mapped_column(String(150), default="", nullable=False)
    valaya: Mapped[str] = mapped_column(String(150), default="", nullable=False)
    milan_ghat: Mapped[str] = mapped_column(String(150), default="", nullable=False)


class GenericRecord(ResponseRecordMixin, Base):
    """Response from the legacy generic submission path."""

    __tablename__ = "generic_records"
    __table_args__ = (
        Index("idx_generic_records_form", "form_id"),
        Index("idx_generic_records_source", "source"),
    )

    form_type: Mapped[str] = mapped_column(String(50), default="lead", nullable=False)
