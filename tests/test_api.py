"""Tests for the import HTTP API."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from backfill.core.config import settings
from backfill.core.database import get_db
from backfill.main import create_app
from backfill.models.database import ImportStatus
from backfill.services.imports.limiter import ImportLimiter
from backfill.services.imports.status import ImportStatusService

from factories import UMAMI_HEADERS, MemoryStorage, RecordingQueue, add_import, seed_site, to_csv, umami_row

PREFIX = settings.API_V1_PREFIX


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def queue():
    return RecordingQueue()


@pytest_asyncio.fixture
async def client(session_factory, storage, queue):
    app = create_app()
    app.state.import_limiter = ImportLimiter(max_concurrent_imports=1)
    app.state.import_storage = storage
    app.state.job_queue = queue

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def upload(filename="export.csv", content=None, content_type="text/csv"):
    if content is None:
        content = to_csv([umami_row()], UMAMI_HEADERS)
    return {"file": (filename, content, content_type)}


@pytest.mark.asyncio
async def test_upload_is_accepted_and_queued(client, session_factory, storage, queue):
    await seed_site(session_factory)

    response = await client.post(
        f"{PREFIX}/sites/1/imports",
        files=upload(),
        data={"source": "umami", "start_date": "2024-01-01", "end_date": "2024-03-31"},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "pending"
    assert body["message"] == "Import queued for processing"

    import_id = body["import_id"]
    location = f"imports/{import_id}/export.csv"
    assert location in storage.files

    [message] = queue.messages(settings.IMPORT_PARSE_QUEUE)
    assert message == {
        "site": 1,
        "import_id": import_id,
        "source": "umami",
        "storage_location": location,
        "organization": "org-1",
        "start_date": "2024-01-01",
        "end_date": "2024-03-31",
    }

    async with session_factory() as db:
        job = await ImportStatusService.get_import(db, import_id)
    assert job.status == ImportStatus.PENDING
    assert job.file_name == "export.csv"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "files, data, detail",
    [
        (upload(filename="export.txt"), {"source": "umami"}, "File must have .csv extension"),
        (upload(content=b""), {"source": "umami"}, "File is empty"),
        (upload(), {"source": "plausible"}, None),
        (upload(), {"source": "umami", "start_date": "2024-03-01", "end_date": "2024-02-01"},
         "Start date must be before or equal to end date"),
        (upload(), {"source": "umami", "start_date": "03/01/2024"}, None),
    ],
)
async def test_invalid_uploads_are_rejected(client, session_factory, storage, queue, files, data, detail):
    await seed_site(session_factory)

    response = await client.post(f"{PREFIX}/sites/1/imports", files=files, data=data)

    assert response.status_code == 400
    if detail is not None:
        assert response.json()["detail"] == detail
    assert storage.files == {}
    assert queue.sent == []


@pytest.mark.asyncio
async def test_future_start_date_is_rejected(client, session_factory):
    await seed_site(session_factory)
    tomorrow = (datetime.now(timezone.utc) + timedelta(days=2)).strftime("%Y-%m-%d")

    response = await client.post(
        f"{PREFIX}/sites/1/imports",
        files=upload(),
        data={"source": "umami", "start_date": tomorrow},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Start date cannot be in the future"


@pytest.mark.asyncio
async def test_unknown_site_returns_404(client):
    response = await client.post(f"{PREFIX}/sites/404/imports", files=upload(), data={"source": "umami"})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_second_import_for_organization_returns_429(client, session_factory, storage, queue):
    await seed_site(session_factory, site_ids=(1, 2))
    await add_import(session_factory, site_id=1, status=ImportStatus.PROCESSING)

    response = await client.post(f"{PREFIX}/sites/2/imports", files=upload(), data={"source": "umami"})

    assert response.status_code == 429
    assert "concurrent import" in response.json()["detail"]
    assert storage.files == {}
    assert queue.sent == []


@pytest.mark.asyncio
async def test_storage_failure_marks_import_failed(client, session_factory, storage, queue):
    await seed_site(session_factory)
    storage.fail_store = True

    response = await client.post(f"{PREFIX}/sites/1/imports", files=upload(), data={"source": "umami"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to store import file"
    assert queue.sent == []

    async with session_factory() as db:
        [job], total = await ImportStatusService.list_site_imports(db, 1)
    assert total == 1
    assert job.status == ImportStatus.FAILED
    assert job.error_message == "Failed to store import file"


@pytest.mark.asyncio
async def test_queue_failure_marks_import_failed_and_removes_file(client, session_factory, storage, queue):
    await seed_site(session_factory)
    queue.fail = True

    response = await client.post(f"{PREFIX}/sites/1/imports", files=upload(), data={"source": "umami"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to queue import"
    assert storage.files == {}
    assert len(storage.deleted) == 1

    async with session_factory() as db:
        [job], _ = await ImportStatusService.list_site_imports(db, 1)
    assert job.status == ImportStatus.FAILED
    assert job.error_message == "Failed to queue import"


@pytest.mark.asyncio
async def test_failed_import_frees_the_slot(client, session_factory):
    await seed_site(session_factory)
    await add_import(session_factory, status=ImportStatus.FAILED)

    response = await client.post(f"{PREFIX}/sites/1/imports", files=upload(), data={"source": "umami"})

    assert response.status_code == 202


@pytest.mark.asyncio
async def test_import_status_endpoints(client, session_factory):
    await seed_site(session_factory, site_ids=(1, 2))
    import_id = await add_import(session_factory, site_id=1, status=ImportStatus.COMPLETED)
    await add_import(session_factory, site_id=2, status=ImportStatus.FAILED)

    single = await client.get(f"{PREFIX}/imports/{import_id}")
    listing = await client.get(f"{PREFIX}/sites/1/imports")
    missing = await client.get(f"{PREFIX}/imports/does-not-exist")

    assert single.status_code == 200
    assert single.json()["status"] == "completed"
    assert single.json()["source_platform"] == "umami"
    assert listing.json()["total"] == 1
    assert [job["id"] for job in listing.json()["imports"]] == [import_id]
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_health_endpoints(client):
    basic = await client.get("/health")
    detailed = await client.get("/health/detailed")

    assert basic.json()["status"] == "healthy"
    assert detailed.json()["checks"] == {"database": "healthy", "storage": "healthy (memory)"}


@pytest.mark.asyncio
async def test_metrics_endpoint_exposes_import_counters(client, session_factory):
    await seed_site(session_factory)
    await client.post(f"{PREFIX}/sites/1/imports", files=upload(), data={"source": "umami"})

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "import_requests_total" in response.text


@pytest.mark.asyncio
async def test_simultaneous_uploads_for_one_organization(client, session_factory, storage, queue):
    await seed_site(session_factory, site_ids=(1, 2))

    responses = await asyncio.gather(
        client.post(f"{PREFIX}/sites/1/imports", files=upload(), data={"source": "umami"}),
        client.post(f"{PREFIX}/sites/2/imports", files=upload(), data={"source": "umami"}),
    )

    assert sorted(r.status_code for r in responses) == [202, 429]
    assert len(storage.files) == 1
    assert len(queue.messages(settings.IMPORT_PARSE_QUEUE)) == 1
