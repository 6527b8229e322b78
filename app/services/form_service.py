"""Form service: schema parsing/validation and form CRUD."""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterator

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.db.base import utcnow
from app.db.enums import CHOICE_FIELD_TYPES, FormStatus
from app.db.models import Form
from app.schemas.forms import (
    FormCreate,
    FormField,
    FormSchema,
    FormSection,
    FormUpdate,
)

logger = logging.getLogger(__name__)

MAX_NESTING_DEPTH = 8


class FormServiceError(Exception):
    """Base exception for form service errors."""

    pass


class FormNotFoundError(FormServiceError):
    """Raised when a form does not exist (or is not published for public access)."""

    pass


class SchemaValidationError(FormServiceError):
    """Raised when a form schema violates a structural invariant."""

    pass


class SlugConflictError(FormServiceError):
    """Raised when publishing would give two published forms the same slug."""

    pass


# =============================================================================
# Schema parsing + traversal
# =============================================================================


@dataclass(frozen=True)
class FieldRef:
    """A field located in the schema tree."""

    field: FormField
    section_id: str
    parent_id: str | None
    depth: int


def parse_schema(payload: dict[str, Any]) -> FormSchema:
    """Build a FormSchema from stored/incoming JSON, raising SchemaValidationError."""
    try:
        return FormSchema.model_validate(payload)
    except ValidationError as exc:
        raise SchemaValidationError(str(exc)) from exc


def form_to_schema(form: Form) -> FormSchema:
    return parse_schema({"sections": form.sections or [], "settings": form.settings or {}})


def _ordered(items: list) -> list:
    # sorted() is stable, so equal `order` keeps the original array position
    return sorted(items, key=lambda item: item.order)


def sorted_sections(schema: FormSchema) -> list[FormSection]:
    return _ordered(schema.sections)


def sorted_fields(fields: list[FormField]) -> list[FormField]:
    return _ordered(fields)


def iter_fields(schema: FormSchema) -> Iterator[FieldRef]:
    """Depth-first walk over every field, nested descendants included."""

    def walk(fields: list[FormField], section_id: str, parent_id: str | None, depth: int):
        for field in sorted_fields(fields):
            yield FieldRef(field=field, section_id=section_id, parent_id=parent_id, depth=depth)
            if depth < MAX_NESTING_DEPTH:
                yield from walk(field.nested_fields, section_id, field.id, depth + 1)

    for section in sorted_sections(schema):
        yield from walk(section.fields, section.id, None, 0)


def flatten_fields(schema: FormSchema) -> dict[str, FormField]:
    """Map field id -> field for the whole tree. First occurrence wins."""
    fields: dict[str, FormField] = {}
    for ref in iter_fields(schema):
        fields.setdefault(ref.field.id, ref.field)
    return fields


def validate_schema(schema: FormSchema, *, for_publish: bool = False) -> None:
    """
    Enforce structural invariants.

    - section ids unique
    - field ids unique across the whole tree (nested fields included)
    - no field is its own ancestor; nesting depth is bounded
    - choice fields carry options (publish only)
    """
    section_ids: set[str] = set()
    for section in schema.sections:
        if section.id in section_ids:
            raise SchemaValidationError(f"Duplicate section id: {section.id}")
        section_ids.add(section.id)

    seen: set[str] = set()

    def check(field: FormField, ancestors: tuple[str, ...], ancestor_objects: tuple[int, ...]) -> None:
        if field.id in ancestors or id(field) in ancestor_objects:
            raise SchemaValidationError(f"Field {field.id} is nested inside itself")
        if len(ancestors) >= MAX_NESTING_DEPTH:
            raise SchemaValidationError(
                f"Field {field.id} exceeds maximum nesting depth of {MAX_NESTING_DEPTH}"
            )
        if field.id in seen:
            raise SchemaValidationError(f"Duplicate field id: {field.id}")
        seen.add(field.id)
        if for_publish and field.type in CHOICE_FIELD_TYPES and not field.options:
            raise SchemaValidationError(f"Field {field.id} requires at least one option")
        for child in field.nested_fields:
            check(child, ancestors + (field.id,), ancestor_objects + (id(field),))

    for section in schema.sections:
        for field in section.fields:
            check(field, (), ())


# =============================================================================
# CRUD
# =============================================================================


def _dump_sections(sections: list[FormSection]) -> list[dict]:
    return [section.model_dump(mode="json") for section in sections]


def list_forms(db: Session, status: FormStatus | None = None) -> list[Form]:
    query = db.query(Form)
    if status:
        query = query.filter(Form.status == status.value)
    return query.order_by(Form.created_at.desc()).all()


def get_form(db: Session, form_id: uuid.UUID) -> Form | None:
    return db.query(Form).filter(Form.id == form_id).first()


def create_form(db: Session, data: FormCreate) -> Form:
    schema = FormSchema(sections=data.sections, settings=data.settings)
    validate_schema(schema)
    form = Form(
        title=data.title,
        internal_name=data.internal_name,
        description=data.description,
        sections=_dump_sections(data.sections),
        theme=data.theme,
        settings=data.settings.model_dump(mode="json"),
        custom_slug=data.settings.custom_slug,
        status=FormStatus.DRAFT.value,
    )
    db.add(form)
    db.commit()
    db.refresh(form)
    logger.info("Form created: %s", form.id)
    return form


def update_form(db: Session, form: Form, data: FormUpdate) -> Form:
    current = form_to_schema(form)
    sections = data.sections if data.sections is not None else current.sections
    settings = data.settings if data.settings is not None else current.settings
    validate_schema(FormSchema(sections=sections, settings=settings), for_publish=form.is_published)

    if form.is_published and settings.custom_slug and settings.custom_slug != form.custom_slug:
        if not check_slug_available(db, settings.custom_slug, exclude_form_id=form.id):
            raise SlugConflictError(f"Slug already in use: {settings.custom_slug}")

    if data.title is not None:
        form.title = data.title
    if "internal_name" in data.model_fields_set:
        form.internal_name = data.internal_name
    if "description" in data.model_fields_set:
        form.description = data.description
    if data.sections is not None:
        form.sections = _dump_sections(data.sections)
    if data.theme is not None:
        form.theme = data.theme
    if data.settings is not None:
        form.settings = data.settings.model_dump(mode="json")
        form.custom_slug = data.settings.custom_slug
    db.commit()
    db.refresh(form)
    return form


def delete_form(db: Session, form: Form) -> None:
    db.delete(form)
    db.commit()


def duplicate_form(db: Session, form: Form) -> Form:
    """Copy a form as a new draft. The copy drops the custom slug."""
    settings = copy.deepcopy(form.settings or {})
    settings["custom_slug"] = None
    clone = Form(
        title=f"{form.title} (Copy)",
        internal_name=form.internal_name,
        description=form.description,
        sections=copy.deepcopy(form.sections or []),
        theme=copy.deepcopy(form.theme or {}),
        settings=settings,
        custom_slug=None,
        status=FormStatus.DRAFT.value,
    )
    db.add(clone)
    db.commit()
    db.refresh(clone)
    return clone


def check_slug_available(
    db: Session, slug: str, exclude_form_id: uuid.UUID | None = None
) -> bool:
    """A slug is taken when another published form already uses it."""
    query = db.query(Form).filter(
        Form.custom_slug == slug,
        Form.status == FormStatus.PUBLISHED.value,
    )
    if exclude_form_id:
        query = query.filter(Form.id != exclude_form_id)
    return query.first() is None


def publish_form(db: Session, form: Form) -> Form:
    schema = form_to_schema(form)
    if not schema.sections:
        raise SchemaValidationError("Form needs at least one section before publishing")
    validate_schema(schema, for_publish=True)
    if form.custom_slug and not check_slug_available(db, form.custom_slug, exclude_form_id=form.id):
        raise SlugConflictError(f"Slug already in use: {form.custom_slug}")

    form.status = FormStatus.PUBLISHED.value
    form.published_at = utcnow()
    db.commit()
    db.refresh(form)
    logger.info("Form published: %s", form.id)
    return form


def unpublish_form(db: Session, form: Form) -> Form:
    form.status = FormStatus.DRAFT.value
    db.commit()
    db.refresh(form)
    return form


def get_published_form_by_slug(db: Session, slug: str) -> Form:
    """
    Resolve a public slug (custom slug or form id) to an active published form.

    Raises FormNotFoundError when nothing matches.
    """
    form = (
        db.query(Form)
        .filter(Form.custom_slug == slug, Form.status == FormStatus.PUBLISHED.value)
        .first()
    )
    if form is None:
        try:
            form_id = uuid.UUID(slug)
        except ValueError:
            form_id = None
        if form_id:
            form = (
                db.query(Form)
                .filter(Form.id == form_id, Form.status == FormStatus.PUBLISHED.value)
                .first()
            )
    if form is None or not form.is_active:
        raise FormNotFoundError("Form not found or not published")
    return form
