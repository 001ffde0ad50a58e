"""
Import upload and status API endpoints.
"""
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from backfill.core.config import settings
from backfill.core.database import get_db
from backfill.core.logging import get_logger
from backfill.core.metrics import import_requests_total
from backfill.models.database.import_jobs import ImportJob, ImportStatus
from backfill.models.schemas.imports import (
    CsvParseJob,
    ImportAcceptedResponse,
    ImportJobListResponse,
    ImportJobResponse,
    ImportRequestFields,
)
from backfill.processors.csv_processor import CSVProcessor
from backfill.queues.job_queue import JobQueue
from backfill.services.imports.errors import OrganizationNotFoundError
from backfill.services.imports.limiter import ImportLimiter
from backfill.services.imports.status import ImportStatusService
from backfill.storage.import_storage import ImportStorage, get_import_storage_location

logger = get_logger(__name__)

router = APIRouter(tags=["Imports"])


def get_import_limiter(request: Request) -> ImportLimiter:
    return request.app.state.import_limiter


def get_import_storage(request: Request) -> ImportStorage:
    return request.app.state.import_storage


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    message = first.get("msg", "Invalid request")
    return message.removeprefix("Value error, ")


async def _upload_size(file: UploadFile) -> int:
    if file.size is not None:
        return file.size
    await file.seek(0, 2)
    size = file.file.tell()
    await file.seek(0)
    return size


@router.post(
    "/sites/{site_id}/imports",
    response_model=ImportAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def create_import(
    site_id: int,
    file: UploadFile = File(...),
    source: str = Form(...),
    start_date: Optional[str] = Form(None),
    end_date: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db),
    limiter: ImportLimiter = Depends(get_import_limiter),
    storage: ImportStorage = Depends(get_import_storage),
    queue: JobQueue = Depends(get_job_queue),
):
    """
    Upload an analytics export and queue it for import.

    The import is admitted only if the site's organization is below its
    concurrent import limit; the file is stored and queued afterwards.
    """
    try:
        fields = ImportRequestFields(source=source, start_date=start_date, end_date=end_date)
    except ValidationError as e:
        import_requests_total.labels(source="unknown", outcome="invalid").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_first_error(e))

    platform = fields.source.value
    validation = CSVProcessor().validate_upload(file.filename, file.content_type, await _upload_size(file))
    if not validation["valid"]:
        import_requests_total.labels(source=platform, outcome="invalid").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=validation["message"])

    concurrency = await limiter.check_concurrent_limit(db, site_id)
    if not concurrency.allowed:
        if concurrency.organization_id is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=concurrency.reason)
        import_requests_total.labels(source=platform, outcome="concurrency_limit").inc()
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=concurrency.reason)

    organization_id = concurrency.organization_id
    quota = await limiter.check_quota_headroom(db, organization_id)
    if not quota.allowed:
        import_requests_total.labels(source=platform, outcome="quota_exhausted").inc()
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=quota.reason)

    import_id = str(uuid.uuid4())
    job = ImportJob(
        id=import_id,
        site_id=site_id,
        organization_id=organization_id,
        source_platform=fields.source,
        status=ImportStatus.PENDING,
        file_name=file.filename,
    )

    try:
        created = await limiter.create_import_with_concurrency_check(db, job)
    except OrganizationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if not created.success:
        import_requests_total.labels(source=platform, outcome="concurrency_limit").inc()
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=created.reason)

    storage_location = get_import_storage_location(import_id, file.filename)
    try:
        await file.seek(0)
        await storage.store(storage_location, file.file, content_type=file.content_type)
    except Exception as e:
        logger.error(f"Failed to store file for import {import_id}: {e}")
        await ImportStatusService.update_status(db, import_id, ImportStatus.FAILED, "Failed to store import file")
        import_requests_total.labels(source=platform, outcome="error").inc()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to store import file")

    parse_job = CsvParseJob(
        site=site_id,
        import_id=import_id,
        source=fields.source,
        storage_location=storage_location,
        organization=organization_id,
        start_date=fields.start_date,
        end_date=fields.end_date,
    )
    try:
        await queue.send(settings.IMPORT_PARSE_QUEUE, parse_job)
    except Exception as e:
        logger.error(f"Failed to queue import {import_id}: {e}")
        await ImportStatusService.update_status(db, import_id, ImportStatus.FAILED, "Failed to queue import")
        delete_result = await storage.delete(storage_location)
        if not delete_result.success:
            logger.warning(f"File cleanup failed for import {import_id}: {delete_result.error}")
        import_requests_total.labels(source=platform, outcome="error").inc()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to queue import")

    import_requests_total.labels(source=platform, outcome="accepted").inc()
    logger.info(f"Import {import_id} queued for site {site_id} ({platform})")

    return ImportAcceptedResponse(
        import_id=import_id,
        status=ImportStatus.PENDING,
        message="Import queued for processing",
    )


@router.get("/sites/{site_id}/imports", response_model=ImportJobListResponse)
async def list_imports(
    site_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """List a site's imports, newest first."""
    imports, total = await ImportStatusService.list_site_imports(db, site_id, skip=skip, limit=limit)
    return ImportJobListResponse(
        imports=[ImportJobResponse.model_validate(job) for job in imports],
        total=total,
    )


@router.get("/imports/{import_id}", response_model=ImportJobResponse)
async def get_import(
    import_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Get the status and counters of one import."""
    job = await ImportStatusService.get_import(db, import_id)
    if not job:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Import {import_id} not found")
    return ImportJobResponse.model_validate(job)
