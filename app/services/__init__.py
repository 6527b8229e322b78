"""Service layer modules."""

# Import service modules (not individual functions) for cleaner access
from app.services import form_service
from app.services import visibility_service
from app.services import form_submission_service
from app.services import response_service
from app.services import import_service
from app.services import job_service
from app.services import source_service

__all__ = [
    "form_service",
    "visibility_service",
    "form_submission_service",
    "response_service",
    "import_service",
    "job_service",
    "source_service",
]
