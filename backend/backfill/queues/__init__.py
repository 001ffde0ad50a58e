# Job queue package
from backfill.queues.job_queue import JobQueue

__all__ = [
    "JobQueue",
]
