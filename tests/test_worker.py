"""Tests for the job queue and worker dispatch."""

import uuid
from datetime import timedelta

import pytest

from app import worker
from app.db.base import utcnow
from app.db.enums import JobType
from app.jobs.handlers.imports import process_bulk_import
from app.jobs.registry import JOB_HANDLERS, resolve_job_handler
from app.services import job_service


def test_registry_resolves_bulk_import():
    assert resolve_job_handler("bulk_import") is process_bulk_import
    assert set(JOB_HANDLERS) == {JobType.BULK_IMPORT.value}


def test_unknown_job_type():
    with pytest.raises(ValueError, match="Unknown job type"):
        resolve_job_handler("send_email")


def test_future_jobs_are_not_pending(db):
    job_service.schedule_job(db, JobType.BULK_IMPORT, {}, run_at=utcnow() + timedelta(hours=1))
    assert job_service.get_pending_jobs(db) == []


def test_failed_job_retries_until_max_attempts(db):
    job = job_service.schedule_job(db, JobType.BULK_IMPORT, {}, max_attempts=2)

    job_service.mark_job_running(db, job)
    job_service.mark_job_failed(db, job, "boom")
    assert job.status == "pending"

    job_service.mark_job_running(db, job)
    job_service.mark_job_failed(db, job, "boom again")
    assert job.status == "failed"
    assert job.attempts == 2
    assert job.last_error == "boom again"


@pytest.mark.asyncio
async def test_worker_marks_missing_import_as_failed(db):
    job = job_service.schedule_job(
        db, JobType.BULK_IMPORT, {"import_job_id": str(uuid.uuid4())}, max_attempts=1
    )

    assert await worker.run_pending_jobs(db) == 1

    stored = job_service.get_job(db, job.id)
    assert stored.status == "failed"
    assert "not found" in stored.last_error


@pytest.mark.asyncio
async def test_worker_fails_job_without_payload(db):
    job = job_service.schedule_job(db, JobType.BULK_IMPORT, {}, max_attempts=1)

    await worker.run_pending_jobs(db)

    assert job_service.get_job(db, job.id).last_error == "Missing import_job_id in payload"
