"""
RQ queue configuration and utilities.
Provides the Redis connection and queue used for background maintenance jobs.
"""

from typing import Any, Callable

from redis import Redis
from rq import Queue
from rq.exceptions import NoSuchJobError
from rq.job import Job

from nursecred.core.config import settings
from nursecred.core.logging import get_logger

logger = get_logger(__name__)

# Redis connection for RQ; no socket is opened until first use
redis_conn = Redis(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    db=settings.REDIS_DB,
)

# Queue for user-maintenance tasks
maintenance_queue = Queue("maintenance", connection=redis_conn)


def enqueue_task(func: Callable[..., Any], *args: Any, **kwargs: Any) -> str:
    """
    Enqueue a background task.

    Args:
        func: Function to execute
        *args: Positional arguments for the function
        **kwargs: Keyword arguments for the function

    Returns:
        Job ID
    """
    job = maintenance_queue.enqueue(func, *args, **kwargs)
    logger.info(f"Enqueued task {func.__name__} with job ID: {job.id}")
    return job.id


def get_job_status(job_id: str) -> dict[str, Any]:
    """
    Get the status of a background job.

    Args:
        job_id: Job ID to check

    Returns:
        Job status information; status is "not_found" for unknown ids
    """
    try:
        job = Job.fetch(job_id, connection=redis_conn)
    except NoSuchJobError:
        logger.warning(f"Job {job_id} not found")
        return {"job_id": job_id, "status": "not_found", "result": None, "error": None}

    return {
        "job_id": job.id,
        "status": job.get_status(),
        "result": job.result if job.is_finished else None,
        "error": str(job.exc_info) if job.is_failed else None,
    }
