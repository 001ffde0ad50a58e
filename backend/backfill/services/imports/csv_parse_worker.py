"""
CSV parse and normalize worker.

Streams an uploaded export, filters each row through the date range, the
organization's quota and the platform mapper, and publishes accepted events
to the insertion queue in fixed-size chunks.
"""
import asyncio
import re
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, BinaryIO, Callable, Coroutine, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backfill.core.config import settings
from backfill.core.database import get_db_session
from backfill.core.logging import get_logger
from backfill.core.metrics import (
    import_chunks_sent_total,
    import_duration_seconds,
    import_jobs_in_progress,
    import_jobs_total,
    import_rows_total,
)
from backfill.core.sentry import capture_exception
from backfill.models.database.import_jobs import ImportStatus
from backfill.models.schemas.imports import ChunkMessage, CsvParseJob
from backfill.processors.csv_processor import CSVProcessor
from backfill.queues.job_queue import JobQueue
from backfill.services.imports.date_filter import create_date_range_filter
from backfill.services.imports.errors import (
    ImportPipelineError,
    ImportRowLimitExceededError,
    ImportTimeoutError,
)
from backfill.services.imports.mappers import SourceMapper, get_mapper
from backfill.services.imports.quota_tracker import ImportQuotaTracker
from backfill.services.imports.status import ImportStatusService
from backfill.storage.import_storage import ImportStorage

logger = get_logger(__name__)

QuotaTrackerFactory = Callable[[AsyncSession, str], Awaitable[ImportQuotaTracker]]

GENERIC_FAILURE_MESSAGE = "An unexpected error occurred during import processing"
MAX_ERROR_MESSAGE_LENGTH = 500


def sanitize_error_message(error: BaseException) -> str:
    """Strip filesystem paths from an error before it is shown to users."""
    message = str(error)
    if not message:
        return GENERIC_FAILURE_MESSAGE
    return re.sub(r"/[^\s]+", "[path]", message)[:MAX_ERROR_MESSAGE_LENGTH]


def quota_exhausted_message(skipped: int, months_at_capacity: int, window_months: int) -> str:
    return (
        f"No events could be imported. All {skipped} events exceeded monthly quotas or fell outside "
        f"the {window_months}-month historical window. "
        f"{months_at_capacity} of {window_months} months are at full capacity. "
        "Try importing newer data or upgrade your plan for higher monthly quotas."
    )


@dataclass
class ImportOutcome:
    """Result of processing one parse job."""
    status: str  # completed, failed or skipped
    accepted: int = 0
    skipped_quota: int = 0
    skipped_date: int = 0
    invalid: int = 0
    rows: int = 0
    chunks_sent: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class _ImportRun:
    """Mutable state of a job while it is processed."""
    job: CsvParseJob
    started: float
    stream: Optional[BinaryIO] = None
    reader: Any = None
    # Storage or parser call still running in a thread
    pending: Optional[asyncio.Future] = None
    chunk: List[Dict[str, Any]] = field(default_factory=list)
    accepted: int = 0
    skipped_quota: int = 0
    skipped_date: int = 0
    invalid: int = 0
    rows: int = 0
    chunks_sent: int = 0

    def outcome(self, status: str, error: Optional[str] = None) -> ImportOutcome:
        return ImportOutcome(
            status=status,
            accepted=self.accepted,
            skipped_quota=self.skipped_quota,
            skipped_date=self.skipped_date,
            invalid=self.invalid,
            rows=self.rows,
            chunks_sent=self.chunks_sent,
            error=error,
        )


class CsvParseWorker:
    """
    Processes queued CSV parse jobs one at a time.

    Every collaborator is passed in; the Celery task builds a worker per job
    with the worker database engine.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        storage: ImportStorage,
        queue: JobQueue,
        quota_tracker_factory: Optional[QuotaTrackerFactory] = None,
        csv_processor: Optional[CSVProcessor] = None,
        clock: Callable[[], float] = time.monotonic,
        chunk_size: Optional[int] = None,
        max_rows: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        insert_queue: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.storage = storage
        self.queue = queue
        self.quota_tracker_factory = quota_tracker_factory or ImportQuotaTracker.create
        self.csv_processor = csv_processor or CSVProcessor()
        self.clock = clock
        self.chunk_size = chunk_size or settings.IMPORT_CHUNK_SIZE
        self.max_rows = max_rows or settings.IMPORT_MAX_ROWS
        self.timeout_seconds = timeout_seconds or settings.IMPORT_TIMEOUT_SECONDS
        self.insert_queue = insert_queue or settings.IMPORT_INSERT_QUEUE

    async def process(self, job: CsvParseJob) -> ImportOutcome:
        """
        Parse one uploaded file and publish its accepted events.

        Never raises: failures are recorded on the import job and returned
        in the outcome. The stored file is deleted whatever the result.
        """
        run = _ImportRun(job=job, started=self.clock())
        source = job.source.value
        import_jobs_in_progress.labels(source=source).inc()

        try:
            outcome = await self._process(run)
        except Exception as e:
            outcome = await self._fail(run, e)
        finally:
            import_jobs_in_progress.labels(source=source).dec()
            await self._cleanup(run)

        import_jobs_total.labels(source=source, status=outcome.status).inc()
        import_duration_seconds.labels(source=source).observe(self.clock() - run.started)
        for name in ("accepted", "skipped_quota", "skipped_date", "invalid"):
            import_rows_total.labels(source=source, outcome=name).inc(getattr(outcome, name))
        return outcome

    async def _process(self, run: _ImportRun) -> ImportOutcome:
        job = run.job
        mapper = get_mapper(job.source)
        is_in_range = create_date_range_filter(job.start_date, job.end_date)

        if not await self._set_status(job.import_id, ImportStatus.PROCESSING):
            logger.warning(f"[Import {job.import_id}] Job missing or already finished, skipping")
            return run.outcome("skipped")

        deadline = run.started + self.timeout_seconds

        async with get_db_session(self.session_factory) as db:
            tracker = await self.quota_tracker_factory(db, job.organization)

        logger.info(f"[Import {job.import_id}] Reading {job.source.value} export for site {job.site}")

        async def open_stream():
            run.stream = await self.storage.open_stream(job.storage_location)

        async def open_reader():
            run.reader = await asyncio.to_thread(self.csv_processor.open_reader, run.stream, mapper.headers)

        await self._before_deadline(run, deadline, open_stream())
        await self._before_deadline(run, deadline, open_reader())

        while run.reader is not None:
            rows = await self._before_deadline(
                run,
                deadline,
                asyncio.to_thread(self.csv_processor.read_block, run.reader),
            )
            if rows is None:
                break
            for raw_row in rows:
                self._check_deadline(deadline)
                await self._handle_row(run, mapper, tracker, is_in_range, raw_row)

        logger.info(
            f"[Import {job.import_id}] Processed CSV: {run.accepted} events accepted, "
            f"{run.skipped_quota} skipped (quota/window), {run.skipped_date} skipped (date), "
            f"{run.invalid} invalid"
        )

        if run.accepted == 0 and run.skipped_quota > 0:
            summary = tracker.get_summary()
            message = quota_exhausted_message(
                run.skipped_quota, summary.months_at_capacity, summary.total_months_in_window
            )
            await self._record_counts(run)
            await self._set_status(job.import_id, ImportStatus.FAILED, message)
            return run.outcome("failed", message)

        if run.chunk:
            await self._send_chunk(run)

        await self.queue.send(
            self.insert_queue,
            ChunkMessage(
                site=job.site,
                import_id=job.import_id,
                source=job.source,
                chunk=[],
                all_chunks_sent=True,
                total_chunks=run.chunks_sent,
            ),
        )

        await self._record_counts(run)
        await self._set_status(job.import_id, ImportStatus.COMPLETED)
        return run.outcome("completed")

    async def _handle_row(self, run: _ImportRun, mapper: SourceMapper, tracker: ImportQuotaTracker,
                          is_in_range: Callable[[str], bool], raw_row: Dict[str, Any]) -> None:
        run.rows += 1
        if run.rows > self.max_rows:
            raise ImportRowLimitExceededError(self.max_rows)

        timestamp = mapper.extract_timestamp(raw_row)
        if timestamp is None or not is_in_range(timestamp):
            run.skipped_date += 1
            return

        if not tracker.can_import_event(timestamp):
            run.skipped_quota += 1
            return

        event = mapper.transform(raw_row, run.job.site, run.job.import_id)
        if event is None:
            run.invalid += 1
            return

        run.chunk.append(event.model_dump())
        run.accepted += 1
        if len(run.chunk) >= self.chunk_size:
            await self._send_chunk(run)

    async def _send_chunk(self, run: _ImportRun) -> None:
        message = ChunkMessage(
            site=run.job.site,
            import_id=run.job.import_id,
            source=run.job.source,
            chunk=run.chunk,
            chunk_number=run.chunks_sent,
            all_chunks_sent=False,
        )
        await self.queue.send(self.insert_queue, message)
        run.chunks_sent += 1
        run.chunk = []
        import_chunks_sent_total.labels(source=run.job.source.value).inc()

    def _check_deadline(self, deadline: float) -> None:
        if self.clock() >= deadline:
            raise ImportTimeoutError(self.timeout_seconds)

    async def _before_deadline(self, run: _ImportRun, deadline: float, awaitable: Coroutine[Any, Any, Any]) -> Any:
        """
        Await a blocking step, giving up once the import deadline passes.

        A step that times out keeps running in its thread; it is remembered
        on the run so that cleanup can wait for it after closing the stream.
        """
        remaining = deadline - self.clock()
        if remaining <= 0:
            awaitable.close()
            raise ImportTimeoutError(self.timeout_seconds)

        run.pending = asyncio.ensure_future(awaitable)
        try:
            result = await asyncio.wait_for(asyncio.shield(run.pending), timeout=remaining)
        except asyncio.TimeoutError as e:
            raise ImportTimeoutError(self.timeout_seconds) from e
        finally:
            if run.pending.done():
                run.pending = None
        return result

    async def _set_status(self, import_id: str, status: ImportStatus, message: Optional[str] = None) -> bool:
        async with get_db_session(self.session_factory) as db:
            return await ImportStatusService.update_status(db, import_id, status, message)

    async def _record_counts(self, run: _ImportRun) -> None:
        async with get_db_session(self.session_factory) as db:
            await ImportStatusService.record_counts(
                db,
                run.job.import_id,
                imported=run.accepted,
                skipped=run.skipped_quota + run.skipped_date,
                invalid=run.invalid,
            )

    async def _fail(self, run: _ImportRun, error: Exception) -> ImportOutcome:
        import_id = run.job.import_id
        if isinstance(error, ImportPipelineError):
            logger.error(f"[Import {import_id}] Import failed: {error}")
        else:
            logger.error(f"[Import {import_id}] Error in CSV parse worker: {error}", exc_info=True)
            capture_exception(error, context={"import": {"import_id": import_id, "site": run.job.site}})

        message = sanitize_error_message(error)
        try:
            await self._record_counts(run)
            await self._set_status(import_id, ImportStatus.FAILED, message)
        except Exception as status_error:
            logger.error(f"[Import {import_id}] Failed to record import failure: {status_error}")

        return run.outcome("failed", message)

    async def _close_stream(self, run: _ImportRun) -> None:
        if run.stream is None or getattr(run.stream, "closed", False):
            return
        try:
            # Buffered streams wait for an in-flight read before closing
            await asyncio.to_thread(run.stream.close)
        except Exception as e:
            logger.warning(f"[Import {run.job.import_id}] Failed to close import stream: {e}")

    async def _cleanup(self, run: _ImportRun) -> None:
        import_id = run.job.import_id

        if run.pending is not None:
            # Closing the stream makes a read still blocked in its thread fail
            await self._close_stream(run)
            try:
                await run.pending
            except Exception as e:
                logger.debug(f"[Import {import_id}] Abandoned read ended with: {e}")
            run.pending = None

        if run.reader is not None:
            try:
                self.csv_processor.close_reader(run.reader)
            except Exception as e:
                logger.warning(f"[Import {import_id}] Failed to close CSV reader: {e}")

        await self._close_stream(run)

        result = await self.storage.delete(run.job.storage_location)
        if not result.success:
            logger.warning(f"[Import {import_id}] File cleanup failed, file remains in storage: {result.error}")
