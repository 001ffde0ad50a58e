"""
Job queue over Celery.

Work is addressed by queue name; each queue is consumed by one Celery task.
Delivery is at-least-once, so every consumer must tolerate redelivery.
"""
import asyncio
from typing import Any, Dict, Mapping, Optional, Union

from celery import Celery
from pydantic import BaseModel

from backfill.core.celery_app import PARSE_IMPORT_TASK, celery_app
from backfill.core.config import settings
from backfill.core.logging import get_logger

logger = get_logger(__name__)


def default_routes() -> Dict[str, str]:
    """Queue name -> Celery task name."""
    return {
        settings.IMPORT_PARSE_QUEUE: PARSE_IMPORT_TASK,
        settings.IMPORT_INSERT_QUEUE: settings.IMPORT_INSERT_TASK,
    }


class JobQueue:
    """Publishes job payloads to named queues."""

    def __init__(self, app: Celery = celery_app, routes: Optional[Mapping[str, str]] = None):
        self.app = app
        self.routes = dict(routes) if routes is not None else default_routes()

    async def send(self, queue: str, payload: Union[BaseModel, Dict[str, Any]]) -> str:
        """
        Publish a payload to a queue.

        Args:
            queue: Queue name
            payload: Pydantic model or JSON-serializable dict

        Returns:
            ID of the queued task

        Raises:
            KeyError: If no task consumes the queue
        """
        task_name = self.routes[queue]
        data = payload.model_dump(mode="json") if isinstance(payload, BaseModel) else dict(payload)

        # Publishing blocks on the broker connection
        result = await asyncio.to_thread(
            self.app.send_task,
            task_name,
            kwargs={"payload": data},
            queue=queue,
        )
        logger.debug(f"Queued {task_name} on {queue}: task {result.id}")
        return result.id
