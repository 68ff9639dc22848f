"""
Job Queue Package
=================

Async notification delivery and queued sweeps with Redis Queue (RQ).
"""

from .queue import enqueue_job, get_queue_stats, QUEUE_NOTIFICATIONS, QUEUE_LIFECYCLE
from .tasks import task_dispatch_notifications, task_run_sweep

__all__ = [
    # Queue management
    "enqueue_job", "get_queue_stats", "QUEUE_NOTIFICATIONS", "QUEUE_LIFECYCLE",
    # Tasks
    "task_dispatch_notifications",
    "task_run_sweep",
]
