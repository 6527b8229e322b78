"""Shared classification and lead scoring for enriched responses.

Used by both interactive submissions and bulk imports so a logical record
scores the same no matter how it entered the system.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from app.db.enums import CollectionTarget, FieldType

MAX_LEAD_SCORE = 100

EMAIL_POINTS = 25
PHONE_POINTS = 25
NAME_POINTS = 15
INTEREST_POINTS = 20
CONSENT_POINTS = 15

PHONE_LABEL_KEYWORDS = ("phone", "mobile")
NAME_LABEL_KEYWORD = "name"
INTEREST_LABEL_KEYWORD = "interest"

# hierarchy attribute -> sub-entry suffixes / label keywords, in priority order
HIERARCHY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "khanda": ("khanda",),
    "valaya": ("valaya",),
    "milan_ghat": ("milan", "ghata", "ghat"),
}


@dataclass
class Classification:
    name: str = ""
    email: str = ""
    phone: str = ""
    khanda: str = ""
    valaya: str = ""
    milan_ghat: str = ""

    def as_dict(self) -> dict[str, str]:
        return asdict(self)

    def merge(self, overrides: dict[str, Any]) -> "Classification":
        """Explicit non-empty values win over heuristic ones."""
        data = self.as_dict()
        for key in data:
            value = value_text(overrides.get(key))
            if value:
                data[key] = value
        return Classification(**data)


def value_text(value: Any) -> str:
    """Flatten a submitted value to display text ('' when absent)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ", ".join(value_text(item) for item in value if value_text(item))
    return str(value).strip()


def _label(entry: dict) -> str:
    return str(entry.get("field_label") or "").lower()


def _first(entries: list[dict], predicate) -> str:
    for entry in entries:
        if predicate(entry):
            text = value_text(entry.get("value"))
            if text:
                return text
    return ""


def _hierarchy_value(entries: list[dict], keywords: tuple[str, ...]) -> str:
    for keyword in keywords:
        found = _first(
            entries,
            lambda e: e.get("field_type") == FieldType.SANGHA.value
            and str(e.get("field_id", "")).endswith(f"-{keyword}"),
        )
        if found:
            return found
    for keyword in keywords:
        found = _first(entries, lambda e: keyword in _label(e))
        if found:
            return found
    return ""


def classify_responses(entries: list[dict], collection: str) -> Classification:
    """
    Best-effort extraction of contact and hierarchy attributes.

    Precedence:
    - email: first entry typed "email"
    - phone: first entry whose label mentions phone/mobile
    - name: first entry whose label mentions "name"; leads fall back to
      the first plain text field
    - hierarchy: hierarchy selector sub-entries, then matching labels
    """
    not_hierarchy = lambda e: e.get("field_type") != FieldType.SANGHA.value  # noqa: E731

    email = _first(entries, lambda e: e.get("field_type") == FieldType.EMAIL.value)
    phone = _first(
        entries,
        lambda e: not_hierarchy(e) and any(k in _label(e) for k in PHONE_LABEL_KEYWORDS),
    )
    name = _first(entries, lambda e: not_hierarchy(e) and NAME_LABEL_KEYWORD in _label(e))
    if not name and collection == CollectionTarget.LEAD.value:
        name = _first(entries, lambda e: e.get("field_type") == FieldType.TEXT.value)

    return Classification(
        name=name,
        email=email,
        phone=phone,
        khanda=_hierarchy_value(entries, HIERARCHY_KEYWORDS["khanda"]),
        valaya=_hierarchy_value(entries, HIERARCHY_KEYWORDS["valaya"]),
        milan_ghat=_hierarchy_value(entries, HIERARCHY_KEYWORDS["milan_ghat"]),
    )


def detect_opt_ins(entries: list[dict]) -> tuple[bool, bool]:
    """(whatsapp, arratai) consent toggles submitted as "true"."""
    whatsapp = arratai = False
    for entry in entries:
        if value_text(entry.get("value")).lower() != "true":
            continue
        if entry.get("field_type") == FieldType.WHATSAPP_OPTIN.value:
            whatsapp = True
        elif entry.get("field_type") == FieldType.ARRATAI_OPTIN.value:
            arratai = True
    return whatsapp, arratai


def calculate_lead_score(classification: Classification, entries: list[dict]) -> int:
    score = 0
    if classification.email:
        score += EMAIL_POINTS
    if classification.phone:
        score += PHONE_POINTS
    if classification.name:
        score += NAME_POINTS
    if any(INTEREST_LABEL_KEYWORD in _label(e) and value_text(e.get("value")) for e in entries):
        score += INTEREST_POINTS
    if any(detect_opt_ins(entries)):
        score += CONSENT_POINTS
    return clamp_score(score)


def clamp_score(score: int) -> int:
    return max(0, min(MAX_LEAD_SCORE, int(score)))
