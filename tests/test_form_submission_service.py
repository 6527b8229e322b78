"""Tests for submission processing and the public submit flow."""

import pytest

from app.db.models import GenericRecord, LeadRecord, VolunteerRecord
from app.services import form_service
from app.services import form_submission_service as fss
from app.services.form_submission_service import SubmissionMetadata


def _responses(**values):
    return {"responses": [{"field_id": k, "value": v} for k, v in values.items()]}


# =============================================================================
# Processing (no storage)
# =============================================================================

@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {},
        {"responses": "name=Asha"},
        {"responses": [{"value": "no id"}]},
        {"responses": [{"field_id": "", "value": "x"}]},
    ],
)
def test_malformed_payload_rejected(payload):
    with pytest.raises(fss.MalformedSubmission, match="Invalid responses format"):
        fss.parse_submitted_entries(payload)


def test_process_lead_submission(db, lead_form):
    schema = form_service.form_to_schema(lead_form)
    processed = fss.process_submission(
        schema,
        _responses(
            name="Asha Rao",
            email="asha@example.com",
            phone="9876543210",
            interest="Seva",
            wa="true",
        ),
    )

    assert processed.target_collection == "lead"
    assert processed.lead_score == 100
    assert processed.whatsapp_opt_in is True
    assert processed.arratai_opt_in is False
    assert processed.customer_details == {
        "name": "Asha Rao",
        "email": "asha@example.com",
        "contact": "9876543210",
    }
    assert [r["field_label"] for r in processed.responses] == [
        "Full Name",
        "Email",
        "Phone Number",
        "Area of interest",
        "Join WhatsApp",
    ]


def test_unknown_field_ids_are_kept_as_unknown(db, lead_form):
    schema = form_service.form_to_schema(lead_form)
    processed = fss.process_submission(schema, _responses(name="A", utm_campaign="diwali"))

    unknown = processed.responses[-1]
    assert unknown == {
        "field_id": "utm_campaign",
        "field_type": "unknown",
        "field_label": "utm_campaign",
        "value": "diwali",
    }


def test_hierarchy_sub_entries_resolve_to_parent_label(db, volunteer_form):
    schema = form_service.form_to_schema(volunteer_form)
    processed = fss.process_submission(
        schema,
        _responses(vname="Ravi", **{"org-khanda": "North", "org-valaya": "V1"}),
    )

    by_id = {r["field_id"]: r for r in processed.responses}
    assert by_id["org-khanda"]["field_type"] == "sangha"
    assert by_id["org-khanda"]["field_label"] == "Sangha (Khanda)"
    assert processed.classification.khanda == "North"
    assert processed.classification.valaya == "V1"
    assert processed.lead_score is None


def test_nested_fields_resolve_at_any_depth():
    schema = form_service.parse_schema(
        {
            "sections": [
                {
                    "id": "s1",
                    "fields": [
                        {
                            "id": "outer",
                            "type": "text",
                            "label": "Outer",
                            "nestedFields": [
                                {
                                    "id": "mid",
                                    "type": "text",
                                    "label": "Mid",
                                    "nestedFields": [
                                        {"id": "deep", "type": "email", "label": "Deep email"}
                                    ],
                                }
                            ],
                        }
                    ],
                }
            ]
        }
    )
    processed = fss.process_submission(schema, _responses(deep="d@e.f"))

    assert processed.responses[0]["field_type"] == "email"
    assert processed.classification.email == "d@e.f"


def test_payment_and_source_come_from_settings_and_responses():
    schema = form_service.parse_schema(
        {
            "sections": [{"id": "s1", "fields": [{"id": "src", "type": "source", "label": "Source"}]}],
            "settings": {"acceptPayments": True, "paymentAmount": 250},
        }
    )
    processed = fss.process_submission(schema, _responses(src="poster"))

    assert processed.payment_required is True
    assert processed.payment_amount == 250
    assert processed.source == "poster"


def test_legacy_path_targets_generic_collection():
    schema = form_service.parse_schema(
        {"sections": [], "settings": {"collectionTarget": "volunteer", "formType": "event"}}
    )
    processed = fss.process_submission(schema, _responses(x="1"), legacy=True)

    assert processed.target_collection == "generic"
    assert processed.form_type == "event"
    assert processed.lead_score is None
    assert processed.customer_details["name"] == "Customer"


# =============================================================================
# Public flow
# =============================================================================

def test_submit_to_form_persists_lead(db, lead_form):
    record, processed = fss.submit_to_form(
        db,
        "contact",
        _responses(name="Asha", email="asha@example.com"),
        SubmissionMetadata(ip_address="10.0.0.1", user_agent="pytest"),
    )

    stored = db.get(LeadRecord, record.id)
    assert stored.name == "Asha"
    assert stored.email == "asha@example.com"
    assert stored.lead_score == 40
    assert stored.status == "new"
    assert stored.form_slug == "contact"
    assert stored.ip_address == "10.0.0.1"
    assert stored.source == "form_submission"


def test_submit_to_form_persists_volunteer(db, volunteer_form):
    record, _ = fss.submit_to_form(
        db,
        "volunteer",
        _responses(vname="Ravi", mobile="9999988888", **{"org-khanda": "South"}),
        SubmissionMetadata(),
    )

    stored = db.get(VolunteerRecord, record.id)
    assert stored.name == "Ravi"
    assert stored.phone == "9999988888"
    assert stored.khanda == "South"


def test_missing_required_fields_reported_in_order(db, volunteer_form):
    with pytest.raises(fss.SubmissionValidationError) as exc_info:
        fss.submit_to_form(db, "volunteer", _responses(role="lead"), SubmissionMetadata())

    assert exc_info.value.missing == ["Name", "Sangha", "Years of experience"]
    assert db.query(VolunteerRecord).count() == 0


def test_unknown_slug_is_unavailable(db):
    with pytest.raises(fss.FormUnavailableError):
        fss.submit_to_form(db, "nope", _responses(a="1"), SubmissionMetadata())


def test_malformed_payload_checked_before_form_lookup(db):
    with pytest.raises(fss.MalformedSubmission):
        fss.submit_to_form(db, "nope", {"responses": None}, SubmissionMetadata())


def test_max_responses_enforced(db, make_published_form, lead_form_payload):
    make_published_form(lead_form_payload, customSlug="limited", maxResponses=1)
    fss.submit_to_form(db, "limited", _responses(name="One"), SubmissionMetadata())

    with pytest.raises(fss.ResponseLimitReachedError):
        fss.submit_to_form(db, "limited", _responses(name="Two"), SubmissionMetadata())


def test_duplicate_ip_rejected_when_single_response(db, make_published_form, lead_form_payload):
    make_published_form(lead_form_payload, customSlug="once", allowMultipleResponses=False)
    meta = SubmissionMetadata(ip_address="192.168.1.9")
    fss.submit_to_form(db, "once", _responses(name="One"), meta)

    with pytest.raises(fss.DuplicateResponseError):
        fss.submit_to_form(db, "once", _responses(name="Again"), meta)
    fss.submit_to_form(db, "once", _responses(name="Other"), SubmissionMetadata(ip_address="192.168.1.10"))


def test_submit_generic_requires_form_id(db):
    with pytest.raises(fss.MalformedSubmission, match="Form ID is required"):
        fss.submit_generic(db, _responses(a="1"), SubmissionMetadata())


def test_submit_generic_stores_generic_record(db, lead_form):
    payload = {"formId": str(lead_form.id), **_responses(name="Legacy")}
    record, processed = fss.submit_generic(db, payload, SubmissionMetadata())

    stored = db.get(GenericRecord, record.id)
    assert stored.form_type == "lead"
    assert stored.form_id == lead_form.id
    assert processed.target_collection == "generic"
