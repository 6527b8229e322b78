"""SQLAlchemy ORM models."""

from app.db.models.forms import Form
from app.db.models.imports import BulkImportJob
from app.db.models.jobs import Job
from app.db.models.responses import GenericRecord, LeadRecord, VolunteerRecord
from app.db.models.sources import Source

__all__ = [
    "Form",
    "BulkImportJob",
    "Job",
    "LeadRecord",
    "VolunteerRecord",
    "GenericRecord",
    "Source",
]
