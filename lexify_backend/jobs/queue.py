"""
Job Queue Management
====================

Redis Queue (RQ) integration for async jobs.
"""

import logging
from typing import Dict, Any, Callable
from datetime import datetime

from redis import Redis
from rq import Queue, Retry

from ..config import get_settings

logger = logging.getLogger(__name__)

# Queue names
QUEUE_NOTIFICATIONS = "notifications"
QUEUE_LIFECYCLE = "lifecycle"
ALL_QUEUES = [QUEUE_LIFECYCLE, QUEUE_NOTIFICATIONS]


def get_redis_connection() -> Redis:
    """Get Redis connection"""
    return Redis.from_url(get_settings().redis_url)


def get_queue(queue_name: str = QUEUE_NOTIFICATIONS) -> Queue:
    """Get RQ queue by name"""
    return Queue(queue_name, connection=get_redis_connection())


def enqueue_job(
    func: Callable,
    *args,
    queue_name: str = QUEUE_NOTIFICATIONS,
    job_id: str = None,
    timeout: int = 300,
    retry: int = 3,
    meta: Dict[str, Any] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Enqueue a job for async processing.

    Args:
        func: Function to execute
        *args: Positional arguments for function
        queue_name: Queue to use (notifications/lifecycle)
        job_id: Optional custom job ID
        timeout: Job timeout in seconds
        retry: Number of retries on failure
        meta: Custom metadata for job
        **kwargs: Keyword arguments for function

    Returns:
        Dict with job_id and status
    """
    def _run_sync(reason: str) -> Dict[str, Any]:
        logger.warning(f"Running job synchronously ({reason})")
        try:
            result = func(*args, **kwargs)
            return {
                "job_id": job_id or "sync",
                "status": "done",
                "result": result
            }
        except Exception as e:
            logger.exception(f"Synchronous job {func.__name__} failed")
            return {
                "job_id": job_id or "sync",
                "status": "failed",
                "error": str(e)
            }

    retry_policy = Retry(max=retry, interval=[10, 30, 60]) if retry > 0 else None

    # Fall back to sync if Redis is unreachable
    try:
        queue = get_queue(queue_name)
        job = queue.enqueue(
            func,
            *args,
            job_id=job_id,
            job_timeout=timeout,
            retry=retry_policy,
            meta=meta or {},
            **kwargs
        )
    except Exception as e:
        return _run_sync(f"RQ enqueue failed: {e}")

    return {
        "job_id": job.id,
        "status": job.get_status(),
        "queue": queue_name,
        "enqueued_at": datetime.utcnow().isoformat()
    }


def get_queue_stats() -> Dict[str, Any]:
    """Get statistics for the lifecycle queues"""
    try:
        conn = get_redis_connection()
        conn.ping()
    except Exception as e:
        return {"available": False, "error": str(e)}

    stats: Dict[str, Any] = {"available": True, "queues": {}}
    for queue_name in ALL_QUEUES:
        queue = Queue(queue_name, connection=conn)
        stats["queues"][queue_name] = {
            "length": len(queue),
            "failed": queue.failed_job_registry.count,
        }
    return stats
