"""AI-assisted column mapping for bulk imports.

The assistant looks at a handful of sample rows and suggests which target
collection the file belongs to and how its columns map onto record keys.
It is strictly best-effort: every failure (no key, HTTP error, timeout,
unparseable answer) surfaces as EnhancementFailure and the import falls
back to the heuristic mapping.

PII Hygiene:
- Mask emails: user@example.com → u***@e***.com
- Mask phones: +15551234567 → ***-***-4567
- Cap samples to AI_SAMPLE_ROWS rows
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator

from app.core.config import settings
from app.db.enums import CollectionTarget
from app.services.ai_provider import AIProvider, ChatMessage, get_configured_provider
from app.services.ai_response_validation import parse_model
from app.services.import_detection_service import apply_field_mapping

logger = logging.getLogger(__name__)


class EnhancementFailure(Exception):
    """Raised when the AI assistant cannot produce a usable mapping."""

    pass


# Assistant vocabulary -> collection names
COLLECTION_ALIASES = {
    "leads": CollectionTarget.LEAD.value,
    "lead": CollectionTarget.LEAD.value,
    "swayamsevak": CollectionTarget.VOLUNTEER.value,
    "volunteer": CollectionTarget.VOLUNTEER.value,
    "volunteers": CollectionTarget.VOLUNTEER.value,
    "form_responses": CollectionTarget.GENERIC.value,
    "generic": CollectionTarget.GENERIC.value,
}


class MappingSuggestion(BaseModel):
    collection_type: str | None = Field(
        None, validation_alias=AliasChoices("collection_type", "collectionType")
    )
    field_mappings: dict[str, str] = Field(
        default_factory=dict, validation_alias=AliasChoices("field_mappings", "fieldMappings")
    )
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    reasoning: str = ""

    @field_validator("collection_type", mode="before")
    @classmethod
    def _normalize_collection(cls, value: Any) -> str | None:
        if value is None:
            return None
        return COLLECTION_ALIASES.get(str(value).strip().lower())

    @field_validator("field_mappings", mode="before")
    @classmethod
    def _drop_empty_mappings(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, dict):
            return {}
        return {str(k): str(v) for k, v in value.items() if k and v}


# =============================================================================
# PII Masking
# =============================================================================


def mask_email(email: str) -> str:
    """Mask email for AI prompt: user@example.com → u***@e***.com"""
    if "@" not in email:
        return email

    local, domain = email.split("@", 1)
    domain_parts = domain.split(".")

    masked_local = local[0] + "***" if local else "***"
    masked_domain = domain_parts[0][0] + "***" if domain_parts and domain_parts[0] else "***"
    masked_tld = domain_parts[-1] if len(domain_parts) > 1 else "com"

    return f"{masked_local}@{masked_domain}.{masked_tld}"


def mask_phone(phone: str) -> str:
    """Mask phone for AI prompt: +15551234567 → ***-***-4567"""
    digits = re.sub(r"\D", "", phone)
    if len(digits) >= 4:
        return f"***-***-{digits[-4:]}"
    return "***"


def looks_like_email(value: str) -> bool:
    return bool(re.match(r"[^@\s]+@[^@\s]+\.[^@\s]+", value))


def looks_like_phone(value: str) -> bool:
    digits = re.sub(r"\D", "", value)
    return len(digits) >= 10 and len(digits) >= len(value.strip()) // 2


def mask_sample_value(value: Any) -> Any:
    """Mask PII in a sample value if detected."""
    if not isinstance(value, str):
        return value
    if looks_like_email(value):
        return mask_email(value)
    if looks_like_phone(value):
        return mask_phone(value)
    return value


def mask_samples(rows: list[dict[str, Any]], max_rows: int) -> list[dict[str, Any]]:
    """Mask PII in sample rows and limit count."""
    return [
        {key: mask_sample_value(value) for key, value in row.items()}
        for row in rows[:max_rows]
    ]


# =============================================================================
# AI Prompt Construction
# =============================================================================

SYSTEM_PROMPT = (
    "You map uploaded spreadsheet columns onto records for a volunteer and "
    "lead management system. Reply with a single JSON object only."
)


def build_mapping_prompt(sample_rows: list[dict[str, Any]], file_type: str) -> str:
    samples = json.dumps(sample_rows, ensure_ascii=False, default=str, indent=2)
    return f"""Analyze these sample rows from an uploaded {file_type} file.

Sample rows:
{samples}

Decide which collection the rows belong to:
- "leads": prospects with contact details and interests
- "swayamsevak": volunteer registrations with organization hierarchy (khanda, valaya, milan/ghata)
- "form_responses": anything else

Map each column that carries one of these keys: name, email, phone, khanda,
valaya, milan_ghat, lead_score, status, source. Leave other columns out.

Respond with JSON:
{{"collectionType": "leads" | "swayamsevak" | "form_responses",
  "fieldMappings": {{"<original column>": "<key>"}},
  "confidence": <0.0-1.0>,
  "reasoning": "<one sentence>"}}"""


# =============================================================================
# Main Service Functions
# =============================================================================


async def suggest_mapping(
    provider: AIProvider,
    sample_rows: list[dict[str, Any]],
    file_type: str,
    timeout: float | None = None,
) -> MappingSuggestion:
    """
    Ask the provider for a mapping suggestion, bounded by `timeout` seconds.

    Raises EnhancementFailure on any error.
    """
    timeout = timeout if timeout is not None else settings.AI_MAPPING_TIMEOUT_SECONDS
    masked = mask_samples(sample_rows, settings.AI_SAMPLE_ROWS)
    messages = [
        ChatMessage(role="system", content=SYSTEM_PROMPT),
        ChatMessage(role="user", content=build_mapping_prompt(masked, file_type)),
    ]
    try:
        response = await asyncio.wait_for(
            provider.chat(messages, timeout=timeout), timeout=timeout
        )
    except asyncio.TimeoutError as exc:
        raise EnhancementFailure(f"AI mapping timed out after {timeout:g}s") from exc
    except Exception as exc:
        raise EnhancementFailure(f"AI mapping request failed: {type(exc).__name__}") from exc

    logger.info("AI mapping answered (model=%s, tokens=%s)", response.model, response.total_tokens)
    suggestion = parse_model(MappingSuggestion, response.content)
    if suggestion is None:
        raise EnhancementFailure("AI mapping response was not a valid mapping object")
    return suggestion


class RowEnhancer(ABC):
    """
    Optional per-row enrichment used by the import pipeline.

    enhance() returns the (possibly relabelled) row or raises; callers fall
    back to the raw row on any exception.
    """

    async def prepare(self, sample_rows: list[dict[str, Any]], file_type: str) -> MappingSuggestion | None:
        """Called once per job before the record loop."""
        return None

    @abstractmethod
    async def enhance(self, row: dict[str, Any]) -> dict[str, Any]:
        pass


class MappingRowEnhancer(RowEnhancer):
    """Asks the assistant once per job, then applies the cached mapping to each row."""

    def __init__(self, provider: AIProvider, timeout: float | None = None):
        self.provider = provider
        self.timeout = timeout
        self.suggestion: MappingSuggestion | None = None
        self.failure: EnhancementFailure | None = None
        self._prepared = False

    async def prepare(self, sample_rows: list[dict[str, Any]], file_type: str) -> MappingSuggestion | None:
        if self._prepared:
            return self.suggestion
        self._prepared = True
        try:
            self.suggestion = await suggest_mapping(
                self.provider, sample_rows, file_type, timeout=self.timeout
            )
        except EnhancementFailure as exc:
            # Cached so later rows do not retry a failing assistant
            self.failure = exc
            logger.warning("AI mapping unavailable, using heuristic mapping: %s", exc)
        return self.suggestion

    async def enhance(self, row: dict[str, Any]) -> dict[str, Any]:
        if self.failure is not None:
            raise EnhancementFailure(str(self.failure))
        if self.suggestion is None:
            raise EnhancementFailure("AI mapping was not prepared")
        return apply_field_mapping(row, self.suggestion.field_mappings)


def build_row_enhancer(enabled: bool) -> RowEnhancer | None:
    """Enhancer for a job, or None when AI mapping is off or unconfigured."""
    if not enabled:
        return None
    provider = get_configured_provider()
    if provider is None:
        logger.info("AI mapping requested but no provider key configured")
        return None
    return MappingRowEnhancer(provider)
