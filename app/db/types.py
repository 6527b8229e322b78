"""Portable column types shared by the ORM models."""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB

# JSONB on PostgreSQL, plain JSON elsewhere (sqlite in tests and local dev)
JSONType = JSON().with_variant(JSONB(), "postgresql")
