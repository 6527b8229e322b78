"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    form_id: str | None = None,
    form_slug: str | None = None,
    job_id: str | None = None,
    collection: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict (identifiers only, never submitted values)."""
    context: dict[str, Any] = {}
    if form_id:
        context["form_id"] = str(form_id)
    if form_slug:
        context["form_slug"] = form_slug
    if job_id:
        context["job_id"] = str(job_id)
    if collection:
        context["collection"] = collection
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
