"""Conditional visibility evaluation for form sections and fields.

Pure functions only: every call derives the result from (schema, values)
and nothing is cached between calls, so the evaluator can run after each
keystroke in a live session, once at submit time, and per imported row.

Rule semantics:
- rules are evaluated in declaration order and the last matching
  show/hide rule wins
- an element with rules but no matching show/hide rule is hidden when it
  declares any "show" rule (it is waiting to be revealed), otherwise visible
- enable/disable rules only toggle the disabled set, never visibility
- a rule whose target field is not in the schema never matches
- a hidden section hides all of its fields; a nested field needs its
  parent to be visible
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from app.db.enums import ConditionOperator, FieldType, HIERARCHY_LEVELS, RuleAction
from app.schemas.forms import ConditionalRule, FormField, FormSchema
from app.services.form_service import flatten_fields, sorted_fields, sorted_sections


@dataclass(frozen=True)
class FormState:
    visible_sections: frozenset[str]
    visible_fields: frozenset[str]
    disabled_fields: frozenset[str]


_VISIBILITY_ACTIONS = (RuleAction.SHOW.value, RuleAction.HIDE.value)
_ENABLE_ACTIONS = (RuleAction.ENABLE.value, RuleAction.DISABLE.value)


# =============================================================================
# Operators
# =============================================================================


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _compare_scalar(operator: str, actual: Any, expected: Any) -> bool:
    if operator == ConditionOperator.EQUALS.value:
        return _as_text(actual) == _as_text(expected)
    if operator == ConditionOperator.NOT_EQUALS.value:
        return _as_text(actual) != _as_text(expected)
    if operator == ConditionOperator.CONTAINS.value:
        return _as_text(expected) in _as_text(actual)
    if operator in (ConditionOperator.GREATER_THAN.value, ConditionOperator.LESS_THAN.value):
        left = _as_number(actual)
        right = _as_number(expected)
        if left is None or right is None:
            return False
        if operator == ConditionOperator.GREATER_THAN.value:
            return left > right
        return left < right
    return False


def matches(operator: str, actual: Any, expected: Any) -> bool:
    """Test one operator against a submitted value. Missing values never match."""
    if actual is None:
        return False
    if isinstance(actual, (list, tuple, set)):
        # Checkbox groups: membership semantics
        if operator == ConditionOperator.NOT_EQUALS.value:
            return not any(_as_text(item) == _as_text(expected) for item in actual)
        return any(_compare_scalar(operator, item, expected) for item in actual)
    return _compare_scalar(operator, actual, expected)


def rule_matches(rule: ConditionalRule, values: dict[str, Any], known_fields: Iterable[str]) -> bool:
    if rule.target_field_id not in known_fields:
        return False
    return matches(rule.operator, values.get(rule.target_field_id), rule.value)


def resolve_rules(
    rules: list[ConditionalRule], values: dict[str, Any], known_fields: Iterable[str]
) -> tuple[bool, bool]:
    """Return (visible, enabled) for an element carrying `rules`."""
    if not rules:
        return True, True

    visible: bool | None = None
    enabled = True
    for rule in rules:
        if not rule_matches(rule, values, known_fields):
            continue
        if rule.action in _VISIBILITY_ACTIONS:
            visible = rule.action == RuleAction.SHOW.value
        elif rule.action in _ENABLE_ACTIONS:
            enabled = rule.action == RuleAction.ENABLE.value

    if visible is None:
        visible = not any(rule.action == RuleAction.SHOW.value for rule in rules)
    return visible, enabled


# =============================================================================
# Evaluation
# =============================================================================


def evaluate_form_state(schema: FormSchema, values: dict[str, Any] | None) -> FormState:
    values = dict(values or {})
    known = set(flatten_fields(schema))

    visible_sections: set[str] = set()
    visible_fields: set[str] = set()
    disabled_fields: set[str] = set()

    def visit(fields: list[FormField]) -> None:
        for field in sorted_fields(fields):
            visible, enabled = resolve_rules(field.conditional_rules, values, known)
            if not visible:
                continue
            visible_fields.add(field.id)
            if not enabled:
                disabled_fields.add(field.id)
            visit(field.nested_fields)

    for section in sorted_sections(schema):
        section_visible, _ = resolve_rules(section.conditional_rules, values, known)
        if not section_visible:
            continue
        visible_sections.add(section.id)
        visit(section.fields)

    return FormState(
        visible_sections=frozenset(visible_sections),
        visible_fields=frozenset(visible_fields),
        disabled_fields=frozenset(disabled_fields),
    )


def visible_field_ids(schema: FormSchema, values: dict[str, Any] | None) -> set[str]:
    return set(evaluate_form_state(schema, values).visible_fields)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


_NOT_VALIDATED_TYPES = {FieldType.FILE.value, FieldType.READONLY_TEXT.value}


def validate_required_fields(schema: FormSchema, values: dict[str, Any] | None) -> list[str]:
    """Labels of required fields that are visible, enabled and left empty."""
    values = values or {}
    state = evaluate_form_state(schema, values)
    missing: list[str] = []
    for field_id, field in flatten_fields(schema).items():
        if field_id not in state.visible_fields or field_id in state.disabled_fields:
            continue
        if not field.required or field.type in _NOT_VALIDATED_TYPES:
            continue
        if field.type == FieldType.SANGHA.value:
            parts = [values.get(f"{field.id}-{level}") for level in HIERARCHY_LEVELS]
            if not _is_empty(values.get(field.id)) or any(not _is_empty(p) for p in parts):
                continue
        elif not _is_empty(values.get(field.id)):
            continue
        missing.append(field.label or field.id)
    return missing
