"""Form definition model."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin
from app.db.enums import FormStatus
from app.db.types import JSONType


class Form(TimestampMixin, Base):
    """
    A multi-section form definition.

    The schema (sections, theme, settings) is stored as JSON and parsed into
    pydantic models by the form service. custom_slug mirrors
    settings["custom_slug"] so public lookups can hit an index.
    """

    __tablename__ = "forms"
    __table_args__ = (
        Index("idx_forms_status", "status"),
        Index("idx_forms_custom_slug", "custom_slug"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    internal_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    sections: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    theme: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    settings: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(
        String(20),
        default=FormStatus.DRAFT.value,
        server_default=text(f"'{FormStatus.DRAFT.value}'"),
        nullable=False,
    )
    custom_slug: Mapped[str | None] = mapped_column(String(120), nullable=True)
    published_at: Mapped[datetime | None] = mapped_column(nullable=True)

    @property
    def is_published(self) -> bool:
        return self.status == FormStatus.PUBLISHED.value

    @property
    def is_active(self) -> bool:
        return bool((self.settings or {}).get("is_active", True))
