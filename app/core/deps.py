"""FastAPI dependencies for database access and request metadata."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from app.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@dataclass
class RequestMetadata:
    """Request metadata captured alongside a submission."""

    ip_address: str | None
    user_agent: str | None
    submitted_at: datetime


def get_request_metadata(request: Request) -> RequestMetadata:
    """Extract client IP, user agent and receive time from the request."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return RequestMetadata(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
        submitted_at=datetime.now(timezone.utc),
    )
