"""Enum definitions for application constants."""

from app.db.enums.forms import (
    CHOICE_FIELD_TYPES,
    CONSENT_FIELD_TYPES,
    HIERARCHY_LEVELS,
    ConditionOperator,
    FieldType,
    FormStatus,
    RuleAction,
)
from app.db.enums.imports import ImportMode, ImportStatus
from app.db.enums.jobs import JobStatus, JobType
from app.db.enums.responses import CollectionTarget, LeadStatus

DEFAULT_JOB_STATUS = JobStatus.PENDING
DEFAULT_LEAD_STATUS = LeadStatus.NEW
DEFAULT_SUBMISSION_SOURCE = "form_submission"

__all__ = [
    "CHOICE_FIELD_TYPES",
    "CONSENT_FIELD_TYPES",
    "HIERARCHY_LEVELS",
    "ConditionOperator",
    "FieldType",
    "FormStatus",
    "RuleAction",
    "ImportMode",
    "ImportStatus",
    "JobStatus",
    "JobType",
    "CollectionTarget",
    "LeadStatus",
    "DEFAULT_JOB_STATUS",
    "DEFAULT_LEAD_STATUS",
    "DEFAULT_SUBMISSION_SOURCE",
]
