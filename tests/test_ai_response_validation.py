from pydantic import BaseModel

from app.services.ai_response_validation import parse_json_object, parse_model, validate_model


class Sample(BaseModel):
    subject: str
    count: int = 0


def test_parse_json_object_handles_code_fence():
    payload = parse_json_object('```json\n{"subject":"Hello","count":2}\n```')
    assert payload == {"subject": "Hello", "count": 2}


def test_parse_json_object_extracts_object_from_chatter():
    payload = parse_json_object('Sure! Here it is: {"subject": "Hi"} Hope that helps.')
    assert payload == {"subject": "Hi"}


def test_parse_json_object_rejects_arrays_and_garbage():
    assert parse_json_object("[1, 2]") is None
    assert parse_json_object("no json here") is None


def test_validate_model_returns_instance():
    model = validate_model(Sample, {"subject": "Hi"})
    assert model is not None
    assert model.subject == "Hi"


def test_validate_model_returns_none_on_invalid():
    assert validate_model(Sample, {"count": "many"}) is None
    assert validate_model(Sample, None) is None


def test_parse_model_end_to_end():
    assert parse_model(Sample, '{"subject": "x", "count": "3"}').count == 3
