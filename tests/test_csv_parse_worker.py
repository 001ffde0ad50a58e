"""Tests for the CSV parse and normalize worker."""

import io
import itertools
import time
from datetime import datetime, timezone

import pytest

from backfill.core.config import settings
from backfill.models.database import ImportPlatform, ImportStatus
from backfill.models.schemas.imports import CsvParseJob
from backfill.services.imports.csv_parse_worker import CsvParseWorker, sanitize_error_message
from backfill.services.imports.errors import ImportTimeoutError
from backfill.services.imports.quota_tracker import ImportQuotaTracker
from backfill.services.imports.status import ImportStatusService

from factories import (
    SIMPLE_ANALYTICS_HEADERS,
    UMAMI_HEADERS,
    MemoryStorage,
    RecordingQueue,
    add_import,
    seed_site,
    simple_analytics_row,
    to_csv,
    umami_row,
)

NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)
INSERT_QUEUE = settings.IMPORT_INSERT_QUEUE


def fixed_now():
    return NOW


async def unbounded_tracker(db, organization_id):
    return ImportQuotaTracker({}, None, "190001", now=fixed_now)


async def setup_job(session_factory, csv_bytes, source=ImportPlatform.UMAMI, status=ImportStatus.PENDING, **job_fields):
    await seed_site(session_factory)
    import_id = await add_import(session_factory, status=status, source=source)
    location = f"imports/{import_id}/export.csv"
    job = CsvParseJob(
        site=1,
        import_id=import_id,
        source=source,
        storage_location=location,
        organization="org-1",
        **job_fields,
    )
    return job, MemoryStorage({location: csv_bytes})


def make_worker(session_factory, storage, queue, **kwargs):
    kwargs.setdefault("quota_tracker_factory", unbounded_tracker)
    return CsvParseWorker(session_factory=session_factory, storage=storage, queue=queue, **kwargs)


async def load_job(session_factory, import_id):
    async with session_factory() as db:
        return await ImportStatusService.get_import(db, import_id)


@pytest.mark.asyncio
async def test_rows_without_timestamp_are_skipped(session_factory):
    rows = [umami_row(), umami_row(created_at=""), umami_row(created_at="2024-03-06 11:00:00")]
    job, storage = await setup_job(session_factory, to_csv(rows, UMAMI_HEADERS))
    queue = RecordingQueue()

    outcome = await make_worker(session_factory, storage, queue).process(job)

    assert outcome.status == "completed"
    assert (outcome.accepted, outcome.skipped_date, outcome.skipped_quota, outcome.invalid) == (2, 1, 0, 0)

    messages = queue.messages(INSERT_QUEUE)
    assert len(messages) == 2
    assert len(messages[0]["chunk"]) == 2
    assert messages[0]["all_chunks_sent"] is False
    assert messages[1] == {
        "site": 1,
        "import_id": job.import_id,
        "source": "umami",
        "chunk": [],
        "chunk_number": None,
        "all_chunks_sent": True,
        "total_chunks": 1,
    }

    stored = await load_job(session_factory, job.import_id)
    assert stored.status == ImportStatus.COMPLETED
    assert (stored.imported_events, stored.skipped_events, stored.invalid_events) == (2, 1, 0)
    assert storage.deleted == [job.storage_location]


@pytest.mark.asyncio
async def test_exhausted_quota_fails_the_import(session_factory):
    months = ("202312", "202401", "202402", "202403", "202404", "202405", "202406")

    async def full_tracker(db, organization_id):
        return ImportQuotaTracker({key: 10 for key in months}, 10, "202312", now=fixed_now)

    rows = [umami_row(created_at=f"2024-03-{day:02d} 10:00:00") for day in range(1, 6)]
    rows.append(umami_row(created_at="2022-01-01 00:00:00"))
    job, storage = await setup_job(session_factory, to_csv(rows, UMAMI_HEADERS))
    queue = RecordingQueue()

    outcome = await make_worker(session_factory, storage, queue, quota_tracker_factory=full_tracker).process(job)

    assert outcome.status == "failed"
    assert outcome.accepted == 0
    assert outcome.skipped_quota == 6
    assert "All 6 events exceeded monthly quotas" in outcome.error
    assert "7 of 7 months are at full capacity" in outcome.error
    assert queue.sent == []
    assert storage.files == {}

    stored = await load_job(session_factory, job.import_id)
    assert stored.status == ImportStatus.FAILED
    assert stored.error_message == outcome.error
    assert stored.skipped_events == 6


@pytest.mark.asyncio
async def test_partial_quota_still_completes(session_factory):
    async def tight_tracker(db, organization_id):
        return ImportQuotaTracker({"202403": 8}, 10, "202312", now=fixed_now)

    rows = [umami_row(created_at=f"2024-03-{day:02d} 10:00:00") for day in range(1, 6)]
    job, storage = await setup_job(session_factory, to_csv(rows, UMAMI_HEADERS))
    queue = RecordingQueue()

    outcome = await make_worker(session_factory, storage, queue, quota_tracker_factory=tight_tracker).process(job)

    assert outcome.status == "completed"
    assert (outcome.accepted, outcome.skipped_quota) == (2, 3)


@pytest.mark.asyncio
async def test_large_file_is_split_into_fixed_size_chunks(session_factory):
    rows = [umami_row() for _ in range(12_000)]
    job, storage = await setup_job(session_factory, to_csv(rows, UMAMI_HEADERS))
    queue = RecordingQueue()

    outcome = await make_worker(session_factory, storage, queue, chunk_size=5000).process(job)

    messages = queue.messages(INSERT_QUEUE)
    assert outcome.status == "completed"
    assert outcome.chunks_sent == 3
    assert [len(m["chunk"]) for m in messages] == [5000, 5000, 2000, 0]
    assert [m["chunk_number"] for m in messages[:3]] == [0, 1, 2]
    assert messages[-1]["all_chunks_sent"] is True
    assert messages[-1]["total_chunks"] == 3


@pytest.mark.asyncio
async def test_exact_multiple_of_chunk_size_has_no_empty_data_chunk(session_factory):
    rows = [umami_row() for _ in range(4)]
    job, storage = await setup_job(session_factory, to_csv(rows, UMAMI_HEADERS))
    queue = RecordingQueue()

    await make_worker(session_factory, storage, queue, chunk_size=2).process(job)

    assert [len(m["chunk"]) for m in queue.messages(INSERT_QUEUE)] == [2, 2, 0]
    assert queue.messages(INSERT_QUEUE)[-1]["total_chunks"] == 2


@pytest.mark.asyncio
async def test_date_range_and_invalid_rows_are_counted(session_factory):
    rows = [
        umami_row(created_at="2024-02-29 23:59:59"),
        umami_row(created_at="2024-03-01 00:00:00"),
        umami_row(created_at="2024-03-31 23:59:59"),
        umami_row(created_at="2024-04-01 00:00:00"),
        umami_row(created_at="2024-03-15 12:00:00", session_id="not-a-uuid"),
    ]
    job, storage = await setup_job(
        session_factory,
        to_csv(rows, UMAMI_HEADERS),
        start_date="2024-03-01",
        end_date="2024-03-31",
    )
    queue = RecordingQueue()

    outcome = await make_worker(session_factory, storage, queue).process(job)

    assert outcome.status == "completed"
    assert (outcome.accepted, outcome.skipped_date, outcome.invalid) == (2, 2, 1)

    stored = await load_job(session_factory, job.import_id)
    assert (stored.imported_events, stored.skipped_events, stored.invalid_events) == (2, 2, 1)


@pytest.mark.asyncio
async def test_simple_analytics_export(session_factory):
    rows = [simple_analytics_row(), simple_analytics_row(datapoint="signup")]
    job, storage = await setup_job(
        session_factory,
        to_csv(rows, SIMPLE_ANALYTICS_HEADERS),
        source=ImportPlatform.SIMPLE_ANALYTICS,
    )
    queue = RecordingQueue()

    outcome = await make_worker(session_factory, storage, queue).process(job)

    events = queue.messages(INSERT_QUEUE)[0]["chunk"]
    assert outcome.accepted == 2
    assert [e["type"] for e in events] == ["pageview", "custom_event"]
    assert events[1]["event_name"] == "signup"
    assert all(e["import_id"] == job.import_id for e in events)


@pytest.mark.asyncio
async def test_extra_columns_are_ignored(session_factory):
    headers = UMAMI_HEADERS + ["visit_id"]
    row = dict(umami_row(), visit_id="x")
    job, storage = await setup_job(session_factory, to_csv([row], headers))

    outcome = await make_worker(session_factory, storage, RecordingQueue()).process(job)

    assert outcome.accepted == 1


@pytest.mark.asyncio
async def test_missing_columns_fail_the_import(session_factory):
    job, storage = await setup_job(session_factory, b"foo,bar\n1,2\n")
    queue = RecordingQueue()

    outcome = await make_worker(session_factory, storage, queue).process(job)

    assert outcome.status == "failed"
    assert "missing expected columns" in outcome.error
    assert queue.sent == []
    assert (await load_job(session_factory, job.import_id)).status == ImportStatus.FAILED
    assert storage.files == {}


@pytest.mark.asyncio
async def test_empty_file_completes_with_no_events(session_factory):
    job, storage = await setup_job(session_factory, b"")
    queue = RecordingQueue()

    outcome = await make_worker(session_factory, storage, queue).process(job)

    assert outcome.status == "completed"
    assert queue.messages(INSERT_QUEUE) == [
        {
            "site": 1,
            "import_id": job.import_id,
            "source": "umami",
            "chunk": [],
            "chunk_number": None,
            "all_chunks_sent": True,
            "total_chunks": 0,
        }
    ]


@pytest.mark.asyncio
async def test_row_cap_fails_the_import(session_factory):
    rows = [umami_row() for _ in range(3)]
    job, storage = await setup_job(session_factory, to_csv(rows, UMAMI_HEADERS))

    outcome = await make_worker(session_factory, storage, RecordingQueue(), max_rows=2).process(job)

    assert outcome.status == "failed"
    assert outcome.error == "Import exceeds maximum row limit of 2"
    stored = await load_job(session_factory, job.import_id)
    assert stored.status == ImportStatus.FAILED
    assert stored.imported_events == 2


@pytest.mark.asyncio
async def test_timeout_fails_the_import(session_factory):
    rows = [umami_row() for _ in range(10)]
    job, storage = await setup_job(session_factory, to_csv(rows, UMAMI_HEADERS))
    ticks = itertools.count()

    worker = make_worker(
        session_factory,
        storage,
        RecordingQueue(),
        clock=lambda: float(next(ticks)),
        timeout_seconds=5,
    )
    outcome = await worker.process(job)

    assert outcome.status == "failed"
    assert "timeout exceeded" in outcome.error
    assert outcome.rows < 10
    assert (await load_job(session_factory, job.import_id)).status == ImportStatus.FAILED
    assert storage.deleted == [job.storage_location]


@pytest.mark.asyncio
async def test_redelivered_finished_job_is_skipped(session_factory):
    job, storage = await setup_job(
        session_factory,
        to_csv([umami_row()], UMAMI_HEADERS),
        status=ImportStatus.COMPLETED,
    )
    queue = RecordingQueue()

    outcome = await make_worker(session_factory, storage, queue).process(job)

    assert outcome.status == "skipped"
    assert queue.sent == []
    assert (await load_job(session_factory, job.import_id)).status == ImportStatus.COMPLETED
    assert storage.files == {}


@pytest.mark.asyncio
async def test_queue_failure_is_recorded(session_factory):
    job, storage = await setup_job(session_factory, to_csv([umami_row()], UMAMI_HEADERS))

    outcome = await make_worker(session_factory, storage, RecordingQueue(fail=True)).process(job)

    assert outcome.status == "failed"
    assert outcome.error == "broker unavailable"
    assert (await load_job(session_factory, job.import_id)).status == ImportStatus.FAILED


class SlowStream(io.RawIOBase):
    """Raw stream serving a few bytes per read, like a slow network body."""

    def __init__(self, data, delay):
        super().__init__()
        self._data = io.BytesIO(data)
        self.delay = delay
        self.in_flight = 0
        self.reads_after_close = 0

    def readable(self):
        return True

    def readinto(self, buffer):
        if self.closed:
            self.reads_after_close += 1
            raise ValueError("I/O operation on closed file")
        self.in_flight += 1
        try:
            time.sleep(self.delay)
            if self.closed:
                raise ValueError("I/O operation on closed file")
            chunk = self._data.read(min(len(buffer), 32))
            buffer[:len(chunk)] = chunk
            return len(chunk)
        finally:
            self.in_flight -= 1


class SlowStorage(MemoryStorage):
    def __init__(self, stream, location):
        super().__init__({location: b""})
        self.stream = stream
        self.in_flight_at_delete = None

    async def open_stream(self, location):
        return self.stream

    async def delete(self, location):
        self.in_flight_at_delete = self.stream.in_flight
        return await super().delete(location)


@pytest.mark.asyncio
async def test_read_past_deadline_is_stopped_before_cleanup(session_factory):
    job, _ = await setup_job(session_factory, b"")
    stream = SlowStream(to_csv([umami_row() for _ in range(50)], UMAMI_HEADERS), delay=0.2)
    storage = SlowStorage(stream, job.storage_location)

    outcome = await make_worker(session_factory, storage, RecordingQueue(), timeout_seconds=0.3).process(job)

    assert outcome.status == "failed"
    assert outcome.error == "Import processing timeout exceeded (0.3 seconds)"
    assert stream.closed
    assert stream.in_flight == 0
    assert stream.reads_after_close == 0
    assert storage.in_flight_at_delete == 0
    assert storage.deleted == [job.storage_location]


def test_timeout_message_units():
    assert str(ImportTimeoutError(0.3)) == "Import processing timeout exceeded (0.3 seconds)"
    assert str(ImportTimeoutError(45)) == "Import processing timeout exceeded (45 seconds)"
    assert str(ImportTimeoutError(1800)) == "Import processing timeout exceeded (30 minutes)"


def test_error_messages_hide_paths():
    error = FileNotFoundError("No such file: /app/storage/imports/abc/export.csv")

    assert sanitize_error_message(error) == "No such file: [path]"
    assert sanitize_error_message(RuntimeError()) == "An unexpected error occurred during import processing"
    assert len(sanitize_error_message(RuntimeError("x" * 2000))) == 500
