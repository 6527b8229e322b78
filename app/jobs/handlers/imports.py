"""Import job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

logger = logging.getLogger(__name__)


async def process_bulk_import(db, job) -> None:
    """
    Process a bulk import job in background.

    Payload:
        - import_job_id: UUID of the BulkImportJob record
    """
    from app.services import import_service

    payload = job.payload or {}
    import_job_id = payload.get("import_job_id")

    if not import_job_id:
        raise Exception("Missing import_job_id in payload")

    import_job = import_service.get_import_job(db, UUID(import_job_id))
    if not import_job:
        raise Exception(f"Bulk import job {import_job_id} not found")

    logger.info("Starting bulk import: %s", import_job_id)
    await import_service.run_import_job(db, import_job)
    logger.info(
        "Bulk import %s ended with status=%s (%s/%s ok)",
        import_job_id,
        import_job.status,
        import_job.successful_records,
        import_job.total_records,
    )
