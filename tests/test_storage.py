"""Tests for import file storage and the job queue."""

import io
from types import SimpleNamespace

import pytest

from backfill.core.config import settings
from backfill.core.celery_app import PARSE_IMPORT_TASK
from backfill.models.database import ImportPlatform
from backfill.models.schemas.imports import CsvParseJob
from backfill.queues.job_queue import JobQueue
from backfill.storage.import_storage import ImportStorage, get_import_storage_location


def test_storage_location_sanitizes_filenames():
    assert get_import_storage_location("abc", "export.csv") == "imports/abc/export.csv"
    assert get_import_storage_location("abc", "../../etc/passwd") == "imports/abc/passwd"
    assert get_import_storage_location("abc", "my export (1).csv") == "imports/abc/my_export__1_.csv"
    assert get_import_storage_location("abc", "") == "imports/abc/upload.csv"


@pytest.mark.asyncio
async def test_local_storage_round_trip(tmp_path):
    storage = ImportStorage(provider="local", local_storage_path=str(tmp_path))
    location = get_import_storage_location("abc", "export.csv")

    await storage.store(location, io.BytesIO(b"a,b\n1,2\n"), content_type="text/csv")
    stream = await storage.open_stream(location)
    try:
        assert stream.read() == b"a,b\n1,2\n"
    finally:
        stream.close()

    assert (await storage.delete(location)).success
    missing = await storage.delete(location)
    assert not missing.success
    assert missing.error == "File not found"


@pytest.mark.asyncio
async def test_local_storage_refuses_paths_outside_root(tmp_path):
    storage = ImportStorage(provider="local", local_storage_path=str(tmp_path / "root"))

    with pytest.raises(ValueError):
        await storage.store("../escape.csv", io.BytesIO(b"x"))

    result = await storage.delete("../escape.csv")
    assert not result.success


def test_unknown_storage_provider():
    with pytest.raises(ValueError, match="Unsupported storage provider"):
        ImportStorage(provider="ftp")


class RecordingCelery:
    def __init__(self):
        self.calls = []

    def send_task(self, name, kwargs=None, queue=None):
        self.calls.append((name, kwargs, queue))
        return SimpleNamespace(id="task-1")


@pytest.mark.asyncio
async def test_job_queue_routes_payloads_to_tasks():
    app = RecordingCelery()
    queue = JobQueue(app=app)
    job = CsvParseJob(
        site=1,
        import_id="abc",
        source=ImportPlatform.SIMPLE_ANALYTICS,
        storage_location="imports/abc/export.csv",
        organization="org-1",
    )

    task_id = await queue.send(settings.IMPORT_PARSE_QUEUE, job)

    assert task_id == "task-1"
    [(name, kwargs, queue_name)] = app.calls
    assert name == PARSE_IMPORT_TASK
    assert queue_name == settings.IMPORT_PARSE_QUEUE
    assert kwargs["payload"]["source"] == "simple_analytics"
    assert kwargs["payload"]["start_date"] is None


@pytest.mark.asyncio
async def test_job_queue_rejects_unrouted_queue():
    with pytest.raises(KeyError):
        await JobQueue(app=RecordingCelery()).send("nowhere", {"a": 1})
