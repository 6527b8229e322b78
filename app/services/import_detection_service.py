"""Import detection service for uploaded files.

Provides smart detection of:
- File encoding (BOM detection, UTF-8 try, charset_normalizer fallback)
- Delimiter detection (csv.Sniffer + frequency analysis)
- Header aliasing onto classification keys (heuristic column mapping)
- Target collection inference from headers
"""

from __future__ import annotations

import csv
import re
from typing import Any

from charset_normalizer import from_bytes

from app.db.enums import CollectionTarget


# =============================================================================
# Types & Constants
# =============================================================================

# Canonical classification/metadata keys a row may carry explicitly.
# Aliases are compared in compact form (see compact_key).
COLUMN_ALIASES: dict[str, str] = {
    # Contact
    "name": "name",
    "fullname": "name",
    "yourname": "name",
    "contactname": "name",
    "naam": "name",
    "email": "email",
    "emailaddress": "email",
    "emailid": "email",
    "mail": "email",
    "phone": "phone",
    "phonenumber": "phone",
    "phoneno": "phone",
    "mobile": "phone",
    "mobilenumber": "phone",
    "mobileno": "phone",
    "contactnumber": "phone",
    "whatsappnumber": "phone",
    # Organization hierarchy
    "khanda": "khanda",
    "valaya": "valaya",
    "milan": "milan_ghat",
    "milanghat": "milan_ghat",
    "milanghata": "milan_ghat",
    "ghata": "milan_ghat",
    "ghat": "milan_ghat",
    # Lead tracking
    "leadscore": "lead_score",
    "score": "lead_score",
    "status": "status",
    "leadstatus": "status",
    # Metadata
    "source": "source",
    "formid": "form_id",
    "formtitle": "form_title",
    "formslug": "form_slug",
    "ipaddress": "ip_address",
    "useragent": "user_agent",
    "submittedat": "submitted_at",
}

# Keys never turned into response entries (storage bookkeeping)
IGNORED_KEYS = frozenset({"id", "createdat", "updatedat", "v", "responses"})

VOLUNTEER_KEYWORDS = (
    "sangha",
    "area",
    "district",
    "state",
    "ghata",
    "valaya",
    "khanda",
    "vibhaag",
    "swayamsevakid",
)
CONTACT_KEYWORDS = ("name", "email", "phone", "mobile", "contact")


# =============================================================================
# Encoding Detection
# =============================================================================


def detect_encoding(content: bytes) -> str:
    """
    Detect file encoding.

    Args:
        content: Raw file bytes

    Returns:
        Detected encoding string
    """
    # Check for BOM
    if content.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    if content.startswith(b"\xff\xfe"):
        return "utf-16-le"
    if content.startswith(b"\xfe\xff"):
        return "utf-16-be"

    try:
        content.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        pass

    best = from_bytes(content).best()
    if best:
        return best.encoding

    # Last resort: latin-1 (accepts any byte sequence)
    return "latin-1"


def decode_text(content: bytes) -> str:
    text = content.decode(detect_encoding(content))
    return text.lstrip("\ufeff")


# =============================================================================
# Delimiter Detection
# =============================================================================


def detect_delimiter(content: str) -> str:
    """Detect CSV delimiter using csv.Sniffer, then frequency analysis."""
    sample = content[:8192]

    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",\t;|")
        return dialect.delimiter
    except csv.Error:
        pass

    lines = sample.split("\n")[:5]
    delimiter_counts = {",": 0, "\t": 0, ";": 0, "|": 0}
    for line in lines:
        for delim in delimiter_counts:
            delimiter_counts[delim] += line.count(delim)

    best = ","
    best_count = 0
    for delim, count in delimiter_counts.items():
        if count > best_count:
            best = delim
            best_count = count
    return best


# =============================================================================
# Column Analysis
# =============================================================================


def normalize_column_name(col: str) -> str:
    """Normalize column name for matching."""
    normalized = col.lower().strip()
    normalized = re.sub(r"[\s\-/.]+", "_", normalized)
    normalized = normalized.rstrip("?:_")
    return normalized


def compact_key(col: str) -> str:
    """Separator-free form so "formId", "form_id" and "Form ID" compare equal."""
    return normalize_column_name(col).replace("_", "")


def canonical_key(col: str) -> str | None:
    return COLUMN_ALIASES.get(compact_key(col))


def is_ignored_key(col: str) -> bool:
    return col.startswith("_") or compact_key(col) in IGNORED_KEYS


def humanize_label(key: str) -> str:
    """fieldName / field_name / field-name -> "Field Name"."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", key.strip())
    spaced = re.sub(r"[_\-]+", " ", spaced)
    words = [w for w in spaced.split() if w]
    return " ".join(w[:1].upper() + w[1:] for w in words)


def apply_field_mapping(row: dict[str, Any], mappings: dict[str, str] | None = None) -> dict[str, Any]:
    """
    Rename columns onto canonical keys.

    Explicit `mappings` (original column -> target key, e.g. from the AI
    assistant) take precedence over the alias table. The first non-empty
    value wins when several columns land on the same key.
    """
    mappings = mappings or {}
    mapped: dict[str, Any] = {}
    for column, value in row.items():
        target = mappings.get(column) or canonical_key(column) or column
        if target in mapped and mapped[target] not in (None, ""):
            continue
        mapped[target] = value
    return mapped


def detect_collection_type(headers: list[str]) -> str:
    """Guess the target collection from column headers."""
    compact = [compact_key(h) for h in headers]
    if any(keyword in h for h in compact for keyword in VOLUNTEER_KEYWORDS):
        return CollectionTarget.VOLUNTEER.value
    if any(keyword in h for h in compact for keyword in CONTACT_KEYWORDS):
        return CollectionTarget.LEAD.value
    return CollectionTarget.GENERIC.value
