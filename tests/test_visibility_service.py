"""Tests for conditional visibility evaluation."""

import pytest

from app.services.form_service import parse_schema
from app.services.visibility_service import (
    evaluate_form_state,
    matches,
    validate_required_fields,
    visible_field_ids,
)


def _schema(fields, section_rules=None, extra_sections=None):
    sections = [{"id": "s1", "fields": fields, "conditionalRules": section_rules or []}]
    return parse_schema({"sections": sections + (extra_sections or [])})


# =============================================================================
# Operators
# =============================================================================

@pytest.mark.parametrize(
    "operator,actual,expected,result",
    [
        ("equals", "yes", "yes", True),
        ("equals", "yes", "no", False),
        ("equals", True, "true", True),
        ("not_equals", "a", "b", True),
        ("contains", "hello world", "world", True),
        ("greater_than", "10", 5, True),
        ("greater_than", "abc", 5, False),
        ("less_than", 3, "4.5", True),
        ("equals", None, None, False),
        ("not_equals", None, "x", False),
    ],
)
def test_matches_scalar_operators(operator, actual, expected, result):
    assert matches(operator, actual, expected) is result


def test_matches_list_values_use_membership():
    assert matches("equals", ["red", "blue"], "blue") is True
    assert matches("contains", ["red", "blue"], "lu") is True
    assert matches("not_equals", ["red", "blue"], "blue") is False
    assert matches("not_equals", ["red", "blue"], "green") is True


def test_unknown_operator_never_matches():
    assert matches("regex", "abc", "a") is False


# =============================================================================
# Field and section visibility
# =============================================================================

def test_show_rule_reveals_field_only_when_matched():
    schema = _schema(
        [
            {"id": "member", "type": "radio", "label": "Member?", "options": ["yes", "no"]},
            {
                "id": "member_id",
                "type": "text",
                "label": "Member ID",
                "conditionalRules": [
                    {"field": "member", "operator": "equals", "value": "yes", "action": "show"}
                ],
            },
        ]
    )

    assert "member_id" not in visible_field_ids(schema, {})
    assert "member_id" not in visible_field_ids(schema, {"member": "no"})
    assert "member_id" in visible_field_ids(schema, {"member": "yes"})


def test_hide_only_rules_default_to_visible():
    schema = _schema(
        [
            {"id": "age", "type": "number", "label": "Age"},
            {
                "id": "guardian",
                "type": "text",
                "label": "Guardian",
                "conditionalRules": [
                    {"field": "age", "operator": "greater_than", "value": 17, "action": "hide"}
                ],
            },
        ]
    )

    assert "guardian" in visible_field_ids(schema, {})
    assert "guardian" in visible_field_ids(schema, {"age": 12})
    assert "guardian" not in visible_field_ids(schema, {"age": 30})


def test_last_matching_rule_wins():
    schema = _schema(
        [
            {"id": "a", "type": "text", "label": "A"},
            {
                "id": "b",
                "type": "text",
                "label": "B",
                "conditionalRules": [
                    {"field": "a", "operator": "contains", "value": "x", "action": "show"},
                    {"field": "a", "operator": "contains", "value": "y", "action": "hide"},
                ],
            },
        ]
    )

    assert "b" in visible_field_ids(schema, {"a": "x"})
    assert "b" not in visible_field_ids(schema, {"a": "xy"})


def test_rule_referencing_missing_field_never_matches():
    schema = _schema(
        [
            {
                "id": "b",
                "type": "text",
                "label": "B",
                "conditionalRules": [
                    {"field": "ghost", "operator": "equals", "value": "1", "action": "hide"}
                ],
            },
        ]
    )

    assert "b" in visible_field_ids(schema, {"ghost": "1"})


def test_disable_rule_keeps_field_visible():
    schema = _schema(
        [
            {"id": "locked", "type": "checkbox", "label": "Lock", "options": ["yes"]},
            {
                "id": "notes",
                "type": "textarea",
                "label": "Notes",
                "conditionalRules": [
                    {"field": "locked", "operator": "equals", "value": "yes", "action": "disable"}
                ],
            },
        ]
    )

    state = evaluate_form_state(schema, {"locked": ["yes"]})
    assert "notes" in state.visible_fields
    assert "notes" in state.disabled_fields


def test_hidden_section_hides_its_fields():
    schema = _schema(
        [{"id": "kind", "type": "select", "label": "Kind", "options": ["a", "b"]}],
        extra_sections=[
            {
                "id": "s2",
                "conditionalRules": [
                    {"field": "kind", "operator": "equals", "value": "b", "action": "show"}
                ],
                "fields": [{"id": "detail", "type": "text", "label": "Detail"}],
            }
        ],
    )

    hidden = evaluate_form_state(schema, {"kind": "a"})
    assert "s2" not in hidden.visible_sections
    assert "detail" not in hidden.visible_fields

    shown = evaluate_form_state(schema, {"kind": "b"})
    assert "s2" in shown.visible_sections
    assert "detail" in shown.visible_fields


def test_nested_field_requires_visible_parent():
    schema = _schema(
        [
            {"id": "toggle", "type": "radio", "label": "Toggle", "options": ["on", "off"]},
            {
                "id": "parent",
                "type": "text",
                "label": "Parent",
                "conditionalRules": [
                    {"field": "toggle", "operator": "equals", "value": "on", "action": "show"}
                ],
                "nestedFields": [{"id": "child", "type": "text", "label": "Child"}],
            },
        ]
    )

    assert "child" not in visible_field_ids(schema, {"toggle": "off"})
    assert "child" in visible_field_ids(schema, {"toggle": "on"})


def test_evaluation_is_pure_between_calls():
    schema = _schema(
        [
            {"id": "a", "type": "text", "label": "A"},
            {
                "id": "b",
                "type": "text",
                "label": "B",
                "conditionalRules": [
                    {"field": "a", "operator": "equals", "value": "1", "action": "show"}
                ],
            },
        ]
    )

    assert "b" in visible_field_ids(schema, {"a": "1"})
    assert "b" not in visible_field_ids(schema, {"a": "2"})
    assert "b" in visible_field_ids(schema, {"a": "1"})


# =============================================================================
# Required field validation
# =============================================================================

def test_hidden_required_field_is_not_reported():
    schema = _schema(
        [
            {"id": "member", "type": "radio", "label": "Member?", "options": ["yes", "no"]},
            {
                "id": "member_id",
                "type": "text",
                "label": "Member ID",
                "required": True,
                "conditionalRules": [
                    {"field": "member", "operator": "equals", "value": "yes", "action": "show"}
                ],
            },
        ]
    )

    assert validate_required_fields(schema, {"member": "no"}) == []
    assert validate_required_fields(schema, {"member": "yes"}) == ["Member ID"]
    assert validate_required_fields(schema, {"member": "yes", "member_id": "M-1"}) == []


def test_required_labels_follow_form_order_and_skip_files():
    schema = _schema(
        [
            {"id": "z", "type": "text", "label": "First", "required": True, "order": 0},
            {"id": "a", "type": "email", "label": "Second", "required": True, "order": 1},
            {"id": "doc", "type": "file", "label": "Upload", "required": True, "order": 2},
            {"id": "blank", "type": "text", "label": "Third", "required": True, "order": 3},
        ]
    )

    assert validate_required_fields(schema, {"blank": "   "}) == ["First", "Second", "Third"]


def test_hierarchy_field_satisfied_by_level_entry():
    schema = _schema([{"id": "org", "type": "sangha", "label": "Sangha", "required": True}])

    assert validate_required_fields(schema, {}) == ["Sangha"]
    assert validate_required_fields(schema, {"org-khanda": "North"}) == []
