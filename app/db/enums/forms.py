"""Form-related enums."""

from enum import Enum


class FormStatus(str, Enum):
    """Status of a form configuration."""

    DRAFT = "draft"
    PUBLISHED = "published"


class FieldType(str, Enum):
    """Input types a form field can take."""

    TEXT = "text"
    EMAIL = "email"
    NUMBER = "number"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    DATE = "date"
    SANGHA = "sangha"  # Organization hierarchy selector (one entry per level)
    FILE = "file"
    WHATSAPP_OPTIN = "whatsapp_optin"
    ARRATAI_OPTIN = "arratai_optin"
    READONLY_TEXT = "readonly_text"
    SOURCE = "source"


CHOICE_FIELD_TYPES = frozenset({FieldType.SELECT.value, FieldType.RADIO.value, FieldType.CHECKBOX.value})
CONSENT_FIELD_TYPES = frozenset({FieldType.WHATSAPP_OPTIN.value, FieldType.ARRATAI_OPTIN.value})

# Sub-entries submitted by a hierarchy selector: "<field_id>-<level>"
HIERARCHY_LEVELS = ("khanda", "valaya", "milan", "ghata")


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"


class RuleAction(str, Enum):
    SHOW = "show"
    HIDE = "hide"
    ENABLE = "enable"
    DISABLE = "disable"
