"""Public form endpoints for respondents."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.deps import RequestMetadata, get_db, get_request_metadata
from app.core.rate_limit import limiter
from app.core.structured_logging import build_log_context
from app.schemas.forms import (
    FormPublicRead,
    FormStateRead,
    OptIns,
    PaymentInfo,
    SubmissionResult,
    VisibilityRequest,
)
from app.services import form_service, form_submission_service, visibility_service
from app.services.form_submission_service import ProcessedSubmission, SubmissionMetadata

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public/forms", tags=["forms-public"])


def _state_read(state: visibility_service.FormState) -> FormStateRead:
    return FormStateRead(
        visible_sections=sorted(state.visible_sections),
        visible_fields=sorted(state.visible_fields),
        disabled_fields=sorted(state.disabled_fields),
    )


def _load_published(db: Session, slug: str):
    try:
        return form_service.get_published_form_by_slug(db, slug)
    except form_service.FormNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _submission_result(record, processed: ProcessedSubmission) -> SubmissionResult:
    return SubmissionResult(
        response_id=record.id,
        collection=processed.target_collection,
        lead_score=processed.lead_score,
        opt_ins=OptIns(whatsapp=processed.whatsapp_opt_in, arratai=processed.arratai_opt_in),
        payment=PaymentInfo(
            required=processed.payment_required, amount=processed.payment_amount
        ),
        customer_details=processed.customer_details,
        **processed.group_links,
    )


def _submit_or_raise(submit, *args) -> SubmissionResult:
    try:
        record, processed = submit(*args)
    except form_submission_service.MalformedSubmission as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except form_submission_service.FormUnavailableError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except form_submission_service.SubmissionValidationError as exc:
        raise HTTPException(
            status_code=422, detail={"message": str(exc), "missing_fields": exc.missing}
        ) from exc
    except form_submission_service.ResponseLimitReachedError as exc:
        raise HTTPException(status_code=429, detail=str(exc)) from exc
    except form_submission_service.DuplicateResponseError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _submission_result(record, processed)


def _submission_metadata(meta: RequestMetadata) -> SubmissionMetadata:
    return SubmissionMetadata(
        ip_address=meta.ip_address,
        user_agent=meta.user_agent,
        submitted_at=meta.submitted_at,
    )


@router.post("/submit", response_model=SubmissionResult, status_code=201)
@limiter.limit(f"{settings.RATE_LIMIT_SUBMIT}/minute")
def submit_generic(
    request: Request,
    payload: Any = Body(...),
    db: Session = Depends(get_db),
):
    """Legacy submission: body carries form_id plus responses, stored as a generic record."""
    metadata = _submission_metadata(get_request_metadata(request))
    return _submit_or_raise(form_submission_service.submit_generic, db, payload, metadata)


@router.get("/{slug}", response_model=FormPublicRead)
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_READ}/minute")
def get_public_form(request: Request, slug: str, db: Session = Depends(get_db)):
    form = _load_published(db, slug)
    schema = form_service.form_to_schema(form)
    state = visibility_service.evaluate_form_state(schema, {})
    return FormPublicRead(
        id=form.id,
        title=form.title,
        description=form.description,
        sections=form_service.sorted_sections(schema),
        theme=form.theme or {},
        accept_payments=schema.settings.accept_payments,
        payment_amount=schema.settings.payment_amount,
        state=_state_read(state),
    )


@router.post("/{slug}/visibility", response_model=FormStateRead)
@limiter.limit(f"{settings.RATE_LIMIT_PUBLIC_READ}/minute")
def evaluate_visibility(
    request: Request,
    slug: str,
    data: VisibilityRequest,
    db: Session = Depends(get_db),
):
    form = _load_published(db, slug)
    schema = form_service.form_to_schema(form)
    return _state_read(visibility_service.evaluate_form_state(schema, data.values))


@router.post("/{slug}/submit", response_model=SubmissionResult, status_code=201)
@limiter.limit(f"{settings.RATE_LIMIT_SUBMIT}/minute")
def submit_form(
    request: Request,
    slug: str,
    payload: Any = Body(...),
    db: Session = Depends(get_db),
):
    metadata = _submission_metadata(get_request_metadata(request))
    logger.info(
        "Public submission received",
        extra=build_log_context(form_slug=slug, route="/public/forms/{slug}/submit", method="POST"),
    )
    return _submit_or_raise(form_submission_service.submit_to_form, db, slug, payload, metadata)
