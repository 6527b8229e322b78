"""
Tests for the bulk import pipeline.

Covers parsing, row transform, replace idempotence, AI fallback and the
counter/error-log bookkeeping of run_import_job.
"""
import asyncio
import io
import json
import os

import pytest
from openpyxl import Workbook
from sqlalchemy.exc import OperationalError

from app.core.config import settings
from app.db.models import BulkImportJob, GenericRecord, LeadRecord, VolunteerRecord
from app.schemas.imports import BulkImportCreate, HierarchyDefaults
from app.services import form_service, import_service, response_service
from app.services.import_ai_mapper_service import MappingSuggestion, RowEnhancer


THREE_ROW_CSV = (
    b"Name,Email,Area\n"
    b"Alice,alice@example.com,North\n"
    b"Bob,,South\n"
    b"Cara,cara@example.com,East\n"
)


def _create_job(db, filename: str, content: bytes, **kwargs):
    data = BulkImportCreate(source_tag=kwargs.pop("source_tag", "test-import"), **kwargs)
    return import_service.create_import_job(db, data, filename, content)


def _xlsx_bytes(rows: list[list]) -> bytes:
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


class FailingEnhancer(RowEnhancer):
    async def enhance(self, row):
        raise RuntimeError("assistant unavailable")


class SlowEnhancer(RowEnhancer):
    async def enhance(self, row):
        await asyncio.sleep(5)
        return {"name": "never used"}


class RenamingEnhancer(RowEnhancer):
    """Stands in for a successful assistant suggestion."""

    def __init__(self):
        self.suggestion = MappingSuggestion(
            collection_type="swayamsevak",
            field_mappings={"Contact": "phone", "Person": "name"},
            confidence=0.9,
            reasoning="hierarchy columns",
        )

    async def prepare(self, sample_rows, file_type):
        return self.suggestion

    async def enhance(self, row):
        return {self.suggestion.field_mappings.get(k, k): v for k, v in row.items()}


# =============================================================================
# Parsing
# =============================================================================

def test_parse_csv_detects_semicolon_delimiter_and_skips_blank_rows():
    content = "Name;Email\nAsha;asha@example.com\n;\nRavi;ravi@example.com\n".encode("utf-8")
    file_type, rows = import_service.parse_file("people.csv", content)

    assert file_type == "csv"
    assert rows == [
        {"Name": "Asha", "Email": "asha@example.com"},
        {"Name": "Ravi", "Email": "ravi@example.com"},
    ]


def test_parse_csv_handles_bom_and_latin1():
    bom = b"\xef\xbb\xbfName,City\nAsha,Pune\n"
    assert import_service.parse_file("bom.csv", bom)[1] == [{"Name": "Asha", "City": "Pune"}]

    latin = "Name,City\nJosé,Málaga\n".encode("latin-1")
    rows = import_service.parse_file("latin.csv", latin)[1]
    assert len(rows) == 1
    assert set(rows[0]) == {"Name", "City"}


def test_parse_xlsx_uses_first_sheet_and_header_row():
    content = _xlsx_bytes([["Name", "Phone"], ["Asha", 9876543210], [None, None], ["Ravi", 9123456780]])
    file_type, rows = import_service.parse_file("people.xlsx", content)

    assert file_type == "xlsx"
    assert rows == [{"Name": "Asha", "Phone": 9876543210}, {"Name": "Ravi", "Phone": 9123456780}]


def test_parse_json_requires_array():
    with pytest.raises(import_service.FileParseError, match="array of records"):
        import_service.parse_file("data.json", b'{"name": "Asha"}')


def test_empty_file_is_a_parse_error():
    with pytest.raises(import_service.FileParseError, match="No records found"):
        import_service.parse_file("empty.csv", b"Name,Email\n")


@pytest.mark.parametrize("filename", ["old.xls", "notes.pdf", "noextension"])
def test_unsupported_extension(filename):
    with pytest.raises(import_service.UnsupportedFileFormat):
        import_service.file_type_for(filename)


# =============================================================================
# Row transform
# =============================================================================

def test_transform_row_uses_explicit_score_and_status():
    processed, status = import_service.transform_row(
        {"name": "Asha", "email": "a@b.co", "lead_score": "80", "status": "Contacted", "City": "Pune"},
        "lead",
        source_tag="fair",
    )

    assert processed.lead_score == 80
    assert status == "contacted"
    assert processed.source == "fair"
    assert [e["field_label"] for e in processed.responses] == ["City"]


@pytest.mark.parametrize("score", ["n/a", "inf", "-inf", "1e400", "nan"])
def test_transform_row_scores_with_shared_scorer_when_no_score(score):
    processed, status = import_service.transform_row(
        {"name": "Asha", "email": "a@b.co", "lead_score": score}, "lead", source_tag="fair"
    )
    assert processed.lead_score == 40
    assert status is None


def test_transform_row_applies_hierarchy_defaults_only_to_gaps():
    processed, _ = import_service.transform_row(
        {"name": "Ravi", "khanda": "East"},
        "volunteer",
        source_tag="camp",
        hierarchy_defaults={"khanda": "North", "valaya": "V1"},
    )

    assert processed.classification.khanda == "East"
    assert processed.classification.valaya == "V1"
    assert processed.lead_score is None


def test_transform_row_resolves_columns_against_form_schema(db, lead_form):
    schema = form_service.form_to_schema(lead_form)
    processed, _ = import_service.transform_row(
        {"Full Name": "Asha", "Area of interest": "Seva", "favouriteColour": "blue"},
        "lead",
        source_tag="fair",
        schema=schema,
    )

    by_id = {e["field_id"]: e for e in processed.responses}
    assert by_id["name"]["field_type"] == "text"
    assert by_id["interest"]["field_label"] == "Area of interest"
    assert by_id["favouriteColour"]["field_label"] == "Favourite Colour"
    assert processed.lead_score == 35


@pytest.mark.parametrize("row", [["not", "an", "object"], {}, {"name": "", "notes": None}])
def test_transform_row_rejects_unusable_records(row):
    with pytest.raises(import_service.RecordError):
        import_service.transform_row(row, "lead", source_tag="fair")


# =============================================================================
# Job execution
# =============================================================================

@pytest.mark.asyncio
async def test_three_row_csv_import_scores_missing_email_lower(db):
    job = _create_job(db, "leads.csv", THREE_ROW_CSV, target_collection="lead")
    job = await import_service.run_import_job(db, job)

    assert job.status == "completed"
    assert job.total_records == 3
    assert job.successful_records == 3
    assert job.failed_records == 0
    assert job.errors == []

    alice = db.query(LeadRecord).filter(LeadRecord.name == "Alice").one()
    bob = db.query(LeadRecord).filter(LeadRecord.name == "Bob").one()
    assert alice.lead_score - bob.lead_score == 25
    assert alice.source == "test-import"
    assert alice.import_job_id == job.id


@pytest.mark.asyncio
async def test_replace_mode_is_idempotent(db):
    for _ in range(2):
        job = _create_job(
            db, "leads.csv", THREE_ROW_CSV, target_collection="lead", import_mode="replace", source_tag="fair-2024"
        )
        await import_service.run_import_job(db, job)

    assert db.query(LeadRecord).filter(LeadRecord.source == "fair-2024").count() == 3


@pytest.mark.asyncio
async def test_append_mode_accumulates(db):
    for _ in range(2):
        job = _create_job(db, "leads.csv", THREE_ROW_CSV, target_collection="lead", source_tag="fair-2024")
        await import_service.run_import_job(db, job)

    assert db.query(LeadRecord).count() == 6


@pytest.mark.asyncio
async def test_collection_detected_from_headers(db):
    content = _xlsx_bytes([["Name", "Phone", "Khanda"], ["Ravi", 9876543210, "North"]])
    job = _create_job(db, "volunteers.xlsx", content)
    job = await import_service.run_import_job(db, job)

    assert job.target_collection == "volunteer"
    volunteer = db.query(VolunteerRecord).one()
    assert volunteer.name == "Ravi"
    assert volunteer.phone == "9876543210"
    assert volunteer.khanda == "North"


@pytest.mark.asyncio
async def test_hierarchy_defaults_fill_missing_values(db):
    job = _create_job(
        db,
        "camp.csv",
        b"Name,Valaya\nRavi,\nMeera,V3\n",
        target_collection="volunteer",
        hierarchy_defaults=HierarchyDefaults(valaya="V1", khanda="South"),
    )
    await import_service.run_import_job(db, job)

    by_name = {v.name: v for v in db.query(VolunteerRecord).all()}
    assert by_name["Ravi"].valaya == "V1"
    assert by_name["Meera"].valaya == "V3"
    assert by_name["Meera"].khanda == "South"


@pytest.mark.asyncio
async def test_bad_records_make_job_partial(db):
    rows = [{"name": "Asha", "email": "a@b.co"}, "oops", {"name": "Ravi"}, {}]
    job = _create_job(db, "rows.json", json.dumps(rows).encode(), target_collection="generic")
    job = await import_service.run_import_job(db, job)

    assert job.status == "partial"
    assert job.successful_records == 2
    assert job.failed_records == 2
    assert job.processed_records == job.successful_records + job.failed_records == job.total_records
    assert job.errors[0].startswith("Record 2:")
    assert job.errors[1].startswith("Record 4:")
    assert db.query(GenericRecord).count() == 2


@pytest.mark.asyncio
async def test_all_records_failing_marks_job_failed_and_caps_error_log(db, monkeypatch):
    monkeypatch.setattr(settings, "IMPORT_ERROR_LOG_LIMIT", 3)
    job = _create_job(db, "rows.json", json.dumps([1, 2, 3, 4, 5]).encode(), target_collection="lead")
    job = await import_service.run_import_job(db, job)

    assert job.status == "failed"
    assert job.failed_records == 5
    assert len(job.errors) == 3
    assert job.errors[-1].startswith("Record 5:")


@pytest.mark.asyncio
async def test_unsupported_format_fails_job(db):
    job = BulkImportJob(original_name="legacy.xls", source_tag="old", status="processing")
    db.add(job)
    db.commit()

    job = await import_service.run_import_job(db, job, file_bytes=b"\xd0\xcf\x11\xe0")

    assert job.status == "failed"
    assert job.errors[0].startswith("Unsupported file format")
    assert job.completed_at is not None


@pytest.mark.asyncio
async def test_parse_error_fails_job_with_message(db):
    job = _create_job(db, "broken.json", b"{not json", target_collection="lead")
    job = await import_service.run_import_job(db, job)

    assert job.status == "failed"
    assert job.errors[0].startswith("File parsing error:")
    assert db.query(LeadRecord).count() == 0


@pytest.mark.asyncio
async def test_temp_upload_removed_after_job(db):
    job = _create_job(db, "leads.csv", THREE_ROW_CSV, target_collection="lead")
    assert os.path.exists(job.file_path)

    await import_service.run_import_job(db, job)

    assert not os.path.exists(job.file_path)


@pytest.mark.asyncio
async def test_finished_job_is_not_rerun(db):
    job = _create_job(db, "leads.csv", THREE_ROW_CSV, target_collection="lead")
    await import_service.run_import_job(db, job)
    await import_service.run_import_job(db, job, file_bytes=THREE_ROW_CSV)

    assert db.query(LeadRecord).count() == 3


@pytest.mark.asyncio
async def test_progress_checkpoints_every_interval(db, monkeypatch):
    monkeypatch.setattr(settings, "IMPORT_PROGRESS_INTERVAL", 2)
    seen = []
    original = import_service._checkpoint

    def spy(db, job, progress):
        seen.append(progress.processed)
        original(db, job, progress)

    monkeypatch.setattr(import_service, "_checkpoint", spy)
    rows = [{"name": f"Person {i}"} for i in range(5)]
    job = _create_job(db, "rows.json", json.dumps(rows).encode(), target_collection="generic")
    await import_service.run_import_job(db, job)

    # Initial checkpoint, then after records 1, 3 and 5
    assert seen == [0, 1, 3, 5]


def _db_down(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("connection lost"))


@pytest.mark.asyncio
async def test_database_error_before_records_fails_job(db, lead_form, monkeypatch):
    job = _create_job(db, "leads.csv", THREE_ROW_CSV, target_collection="lead", form_id=lead_form.id)
    monkeypatch.setattr(form_service, "get_form", _db_down)

    with pytest.raises(OperationalError):
        await import_service.run_import_job(db, job)

    db.refresh(job)
    assert job.status == "failed"
    assert job.completed_at is not None
    assert job.errors[-1].startswith("Import error:")
    assert not os.path.exists(job.file_path)
    assert db.query(LeadRecord).count() == 0


@pytest.mark.asyncio
async def test_database_error_mid_run_ends_partial(db, monkeypatch):
    monkeypatch.setattr(settings, "IMPORT_PROGRESS_INTERVAL", 1)
    calls = []
    original = import_service._checkpoint

    def flaky(db, job, progress):
        calls.append(progress.processed)
        if len(calls) == 3:
            _db_down()
        original(db, job, progress)

    monkeypatch.setattr(import_service, "_checkpoint", flaky)
    job = _create_job(db, "leads.csv", THREE_ROW_CSV, target_collection="lead")

    with pytest.raises(OperationalError):
        await import_service.run_import_job(db, job)

    db.refresh(job)
    assert job.status == "partial"
    assert job.successful_records == 1
    assert job.errors[-1].startswith("Import error:")


@pytest.mark.asyncio
async def test_replace_mode_delete_failure_does_not_stop_job(db, monkeypatch):
    monkeypatch.setattr(response_service, "delete_by_source", _db_down)
    # Collection left to detection: the "Area" header marks volunteers
    job = _create_job(db, "people.csv", THREE_ROW_CSV, import_mode="replace", source_tag="fair-2024")

    job = await import_service.run_import_job(db, job)

    db.refresh(job)
    assert job.status == "completed"
    assert job.successful_records == 3
    assert job.target_collection == "volunteer"
    assert db.query(VolunteerRecord).filter(VolunteerRecord.source == "fair-2024").count() == 3


# =============================================================================
# AI enhancement fallback
# =============================================================================

@pytest.mark.asyncio
async def test_failing_enhancer_falls_back_to_raw_rows(db):
    job = _create_job(db, "leads.csv", THREE_ROW_CSV, target_collection="lead", enable_ai_mapping=True)
    job = await import_service.run_import_job(db, job, enhancer=FailingEnhancer())

    assert job.status == "completed"
    assert job.successful_records == 3
    assert job.ai_analysis is None


@pytest.mark.asyncio
async def test_slow_enhancer_is_bounded_by_timeout(db):
    job = _create_job(db, "leads.csv", THREE_ROW_CSV, target_collection="lead", enable_ai_mapping=True)
    job = await asyncio.wait_for(
        import_service.run_import_job(db, job, enhancer=SlowEnhancer(), enhancement_timeout=0.05),
        timeout=3,
    )

    assert job.status == "completed"
    assert db.query(LeadRecord).filter(LeadRecord.name == "never used").count() == 0
    assert db.query(LeadRecord).count() == 3


@pytest.mark.asyncio
async def test_successful_enhancer_relabels_and_picks_collection(db):
    content = b"Person,Contact,Shakha\nRavi,9876543210,Pune\n"
    job = _create_job(db, "export.csv", content, enable_ai_mapping=True)
    job = await import_service.run_import_job(db, job, enhancer=RenamingEnhancer())

    assert job.target_collection == "volunteer"
    assert job.ai_analysis["confidence"] == 0.9
    volunteer = db.query(VolunteerRecord).one()
    assert volunteer.name == "Ravi"
    assert volunteer.phone == "9876543210"
