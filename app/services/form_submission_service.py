"""Form submission service - enrichment, classification and routing of public submissions."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.structured_logging import build_log_context
from app.db.base import utcnow
from app.db.enums import (
    DEFAULT_LEAD_STATUS,
    DEFAULT_SUBMISSION_SOURCE,
    HIERARCHY_LEVELS,
    CollectionTarget,
    FieldType,
)
from app.db.models import Form, GenericRecord, LeadRecord, VolunteerRecord
from app.schemas.forms import FormSchema, SubmittedEntry
from app.services import form_service, response_service, visibility_service
from app.services.record_classifier import (
    Classification,
    calculate_lead_score,
    classify_responses,
    detect_opt_ins,
    value_text,
)

logger = logging.getLogger(__name__)

UNKNOWN_FIELD_TYPE = "unknown"
DEFAULT_FORM_TYPE = "lead"
DEFAULT_CUSTOMER_NAME = "Customer"


class SubmissionError(Exception):
    """Base exception for submission errors."""

    pass


class MalformedSubmission(SubmissionError):
    """Raised when the payload has no usable `responses` array."""

    pass


class FormUnavailableError(SubmissionError):
    """Raised when the slug does not resolve to an active published form."""

    pass


class ResponseLimitReachedError(SubmissionError):
    """Raised when the form has reached max_responses."""

    pass


class DuplicateResponseError(SubmissionError):
    """Raised when multiple responses are disabled and this client already responded."""

    pass


class SubmissionValidationError(SubmissionError):
    """Raised when required visible fields are empty."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Missing required fields: {', '.join(missing)}")


@dataclass
class SubmissionMetadata:
    ip_address: str | None = None
    user_agent: str | None = None
    submitted_at: datetime = field(default_factory=utcnow)


@dataclass
class ProcessedSubmission:
    """An enriched, classified submission plus its routing decision. Not persisted."""

    target_collection: str
    responses: list[dict]
    classification: Classification
    lead_score: int | None
    whatsapp_opt_in: bool
    arratai_opt_in: bool
    payment_required: bool
    payment_amount: float | None
    group_links: dict[str, Any]
    source: str
    form_type: str | None
    metadata: SubmissionMetadata

    @property
    def customer_details(self) -> dict[str, str]:
        return {
            "name": self.classification.name or DEFAULT_CUSTOMER_NAME,
            "email": self.classification.email,
            "contact": self.classification.phone,
        }


# =============================================================================
# Field resolution + enrichment
# =============================================================================


def parse_submitted_entries(payload: Any) -> list[SubmittedEntry]:
    """Validate the `responses` array, raising MalformedSubmission before any processing."""
    if not isinstance(payload, dict):
        raise MalformedSubmission("Invalid responses format")
    raw = payload.get("responses")
    if not isinstance(raw, list):
        raise MalformedSubmission("Invalid responses format")
    try:
        return [SubmittedEntry.model_validate(item) for item in raw]
    except ValidationError as exc:
        raise MalformedSubmission("Invalid responses format") from exc


def build_field_index(schema: FormSchema) -> dict[str, tuple[str, str]]:
    """
    Map every submittable id to (field_type, field_label).

    Covers nested fields at any depth and the per-level entries a
    hierarchy selector submits as "<field_id>-<level>".
    """
    index: dict[str, tuple[str, str]] = {}
    for field_id, form_field in form_service.flatten_fields(schema).items():
        index[field_id] = (form_field.type, form_field.label)
        if form_field.type == FieldType.SANGHA.value:
            for level in HIERARCHY_LEVELS:
                index.setdefault(
                    f"{field_id}-{level}",
                    (FieldType.SANGHA.value, f"{form_field.label} ({level.capitalize()})"),
                )
    return index


def enrich_responses(
    index: dict[str, tuple[str, str]], entries: list[SubmittedEntry]
) -> list[dict]:
    """Attach type/label to each entry. Unknown ids are kept, typed "unknown"."""
    enriched: list[dict] = []
    for entry in entries:
        field_type, field_label = index.get(entry.field_id, (UNKNOWN_FIELD_TYPE, entry.field_id))
        enriched.append(
            {
                "field_id": entry.field_id,
                "field_type": field_type,
                "field_label": field_label,
                "value": entry.value,
            }
        )
    return enriched


def values_by_field(entries: list[SubmittedEntry]) -> dict[str, Any]:
    return {entry.field_id: entry.value for entry in entries}


def _source_from_responses(responses: list[dict]) -> str:
    for entry in responses:
        if entry["field_type"] == FieldType.SOURCE.value:
            text = value_text(entry.get("value"))
            if text:
                return text
    return DEFAULT_SUBMISSION_SOURCE


def _group_links(schema: FormSchema) -> dict[str, Any]:
    settings = schema.settings
    return {
        "show_group_links": settings.show_group_links,
        "whatsapp_group_link": settings.whatsapp_group_link,
        "arratai_group_link": settings.arratai_group_link,
        "conditional_group_links": [
            link.model_dump() for link in settings.conditional_group_links
        ],
    }


# =============================================================================
# Processing
# =============================================================================


def process_submission(
    schema: FormSchema,
    payload: Any,
    metadata: SubmissionMetadata | None = None,
    *,
    legacy: bool = False,
) -> ProcessedSubmission:
    """
    Turn a raw submission into an enriched, classified record.

    Routing comes from settings only: collection_target, or for the legacy
    generic path the generic collection tagged with settings.form_type.
    Nothing here touches storage.
    """
    entries = parse_submitted_entries(payload)
    settings = schema.settings

    responses = enrich_responses(build_field_index(schema), entries)

    if legacy:
        target = CollectionTarget.GENERIC.value
        form_type = settings.form_type or DEFAULT_FORM_TYPE
    else:
        target = settings.collection_target
        form_type = None

    classification = classify_responses(responses, target)
    lead_score = (
        calculate_lead_score(classification, responses)
        if target == CollectionTarget.LEAD.value
        else None
    )
    whatsapp, arratai = detect_opt_ins(responses)
    amount = settings.payment_amount or 0

    return ProcessedSubmission(
        target_collection=target,
        responses=responses,
        classification=classification,
        lead_score=lead_score,
        whatsapp_opt_in=whatsapp,
        arratai_opt_in=arratai,
        payment_required=bool(settings.accept_payments and amount > 0),
        payment_amount=settings.payment_amount,
        group_links=_group_links(schema),
        source=_source_from_responses(responses),
        form_type=form_type,
        metadata=metadata or SubmissionMetadata(),
    )


def build_record(
    processed: ProcessedSubmission,
    *,
    form_id: uuid.UUID | None = None,
    form_title: str | None = None,
    form_slug: str | None = None,
    status: str | None = None,
    import_job_id: uuid.UUID | None = None,
) -> LeadRecord | VolunteerRecord | GenericRecord:
    """Build (but do not add) the ORM record for the chosen collection."""
    common = {
        "form_id": form_id,
        "form_title": form_title,
        "form_slug": form_slug,
        "responses": processed.responses,
        "source": processed.source,
        "ip_address": processed.metadata.ip_address,
        "user_agent": processed.metadata.user_agent,
        "submitted_at": processed.metadata.submitted_at,
        "import_job_id": import_job_id,
    }
    c = processed.classification
    if processed.target_collection == CollectionTarget.LEAD.value:
        return LeadRecord(
            **common,
            name=c.name,
            email=c.email,
            phone=c.phone,
            lead_score=processed.lead_score or 0,
            status=status or DEFAULT_LEAD_STATUS.value,
            khanda=c.khanda,
            valaya=c.valaya,
            milan_ghat=c.milan_ghat,
        )
    if processed.target_collection == CollectionTarget.VOLUNTEER.value:
        return VolunteerRecord(
            **common,
            name=c.name,
            email=c.email,
            phone=c.phone,
            khanda=c.khanda,
            valaya=c.valaya,
            milan_ghat=c.milan_ghat,
        )
    return GenericRecord(**common, form_type=processed.form_type or DEFAULT_FORM_TYPE)


def save_processed_submission(
    db: Session, form: Form, processed: ProcessedSubmission
) -> LeadRecord | VolunteerRecord | GenericRecord:
    record = build_record(
        processed,
        form_id=form.id,
        form_title=form.title,
        form_slug=form.custom_slug or str(form.id),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


# =============================================================================
# Public Flow
# =============================================================================


def _check_limits(db: Session, form: Form, schema: FormSchema, collection: str, metadata: SubmissionMetadata) -> None:
    settings = schema.settings
    if settings.max_responses is not None:
        if response_service.count_form_records(db, collection, form.id) >= settings.max_responses:
            raise ResponseLimitReachedError("This form is no longer accepting responses")
    if not settings.allow_multiple_responses and metadata.ip_address:
        if response_service.has_response_from(db, collection, form.id, metadata.ip_address):
            raise DuplicateResponseError("You have already submitted this form")


def _submit(
    db: Session,
    form: Form,
    payload: Any,
    metadata: SubmissionMetadata,
    *,
    legacy: bool,
) -> tuple[LeadRecord | VolunteerRecord | GenericRecord, ProcessedSubmission]:
    schema = form_service.form_to_schema(form)
    entries = parse_submitted_entries(payload)
    collection = (
        CollectionTarget.GENERIC.value if legacy else schema.settings.collection_target
    )

    _check_limits(db, form, schema, collection, metadata)

    missing = visibility_service.validate_required_fields(schema, values_by_field(entries))
    if missing:
        raise SubmissionValidationError(missing)

    processed = process_submission(schema, payload, metadata, legacy=legacy)
    record = save_processed_submission(db, form, processed)
    logger.info(
        "Form submission stored: %s",
        record.id,
        extra=build_log_context(
            form_id=str(form.id), form_slug=form.custom_slug, collection=collection
        ),
    )
    return record, processed


def submit_to_form(
    db: Session, slug: str, payload: Any, metadata: SubmissionMetadata
) -> tuple[LeadRecord | VolunteerRecord | GenericRecord, ProcessedSubmission]:
    """Resolve the published form by slug, validate, process and persist."""
    # Reject malformed payloads before touching storage
    parse_submitted_entries(payload)
    try:
        form = form_service.get_published_form_by_slug(db, slug)
    except form_service.FormNotFoundError as exc:
        raise FormUnavailableError(str(exc)) from exc
    return _submit(db, form, payload, metadata, legacy=False)


def submit_generic(
    db: Session, payload: Any, metadata: SubmissionMetadata
) -> tuple[LeadRecord | VolunteerRecord | GenericRecord, ProcessedSubmission]:
    """Legacy path: body carries form_id/formId and lands in the generic collection."""
    parse_submitted_entries(payload)
    form_ref = payload.get("form_id") or payload.get("formId")
    if not form_ref:
        raise MalformedSubmission("Form ID is required")
    try:
        form = form_service.get_published_form_by_slug(db, str(form_ref))
    except form_service.FormNotFoundError as exc:
        raise FormUnavailableError(str(exc)) from exc
    return _submit(db, form, payload, metadata, legacy=True)
