"""
Celery tasks for import processing.
"""
import asyncio
from typing import Any, Dict

from celery.utils.log import get_task_logger
from pydantic import ValidationError

from backfill.core.celery_app import PARSE_IMPORT_TASK, celery_app
from backfill.core.database import WorkerSessionLocal
from backfill.core.sentry import set_tag
from backfill.models.schemas.imports import CsvParseJob
from backfill.queues.job_queue import JobQueue
from backfill.services.imports.csv_parse_worker import CsvParseWorker
from backfill.storage.import_storage import ImportStorage

logger = get_task_logger(__name__)


async def _parse_import_async(job: CsvParseJob) -> Dict[str, Any]:
    """Build a worker for this task's event loop and process the job."""
    worker = CsvParseWorker(
        session_factory=WorkerSessionLocal,
        storage=ImportStorage(),
        queue=JobQueue(),
    )
    outcome = await worker.process(job)
    return outcome.to_dict()


@celery_app.task(
    bind=True,
    name=PARSE_IMPORT_TASK,
    track_started=True,
    acks_late=True
)
def parse_import_csv_task(self, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Celery task to parse an uploaded export in the background.

    Failures are recorded on the import job rather than raised, so the task
    itself only fails on malformed payloads.

    Args:
        payload: Serialized ``CsvParseJob``

    Returns:
        Import outcome with row counters
    """
    try:
        job = CsvParseJob.model_validate(payload)
    except ValidationError as e:
        logger.error(f"Discarding malformed parse job payload: {e}")
        return {"status": "failed", "error": "Malformed parse job payload"}

    logger.info(f"Starting import parse for {job.import_id} (site {job.site}, source {job.source.value})")
    logger.info(f"Worker: {self.request.hostname}, Task ID: {self.request.id}")
    set_tag("import_source", job.source.value)

    # Get or create event loop
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

    result = loop.run_until_complete(_parse_import_async(job))
    logger.info(f"Import {job.import_id} finished with status {result['status']}")
    return result
