"""
Celery application for background import processing.
"""
from celery import Celery
from kombu import Queue

from backfill.core.config import settings

PARSE_IMPORT_TASK = "backfill.tasks.imports.parse_import_csv"

# Create Celery app
celery_app = Celery(
    "backfill_worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["backfill.tasks.imports"]
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.IMPORT_TIMEOUT_SECONDS + 600,  # Hard stop well after the import deadline
    task_soft_time_limit=settings.IMPORT_TIMEOUT_SECONDS + 300,
    worker_prefetch_multiplier=1,  # Process one task at a time
    worker_max_tasks_per_child=50,  # Recycle workers to bound pandas memory growth
    task_acks_late=True,  # Acknowledge task after completion
    task_reject_on_worker_lost=True,  # Redeliver if the worker crashes
    result_expires=3600,  # Results expire after 1 hour
    task_queues=(
        Queue(settings.IMPORT_PARSE_QUEUE),
        Queue(settings.IMPORT_INSERT_QUEUE),
    ),
    task_routes={
        PARSE_IMPORT_TASK: {"queue": settings.IMPORT_PARSE_QUEUE},
        settings.IMPORT_INSERT_TASK: {"queue": settings.IMPORT_INSERT_QUEUE},
    },
)
