"""
Job Tasks
=========

Async task implementations for the request lifecycle.
"""

import logging
from typing import Dict, Any, List

logger = logging.getLogger(__name__)


def task_dispatch_notifications(payloads: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Deliver lifecycle notifications queued after a committed transition.

    Args:
        payloads: Serialized `Notification` records

    Returns:
        Dict with counts of queued and sent notifications
    """
    from ..notifications import Notification, deliver_notifications

    notifications = [Notification.from_dict(p) for p in payloads]
    sent = deliver_notifications(notifications)
    logger.info(f"Delivered {sent}/{len(notifications)} queued notifications")
    return {"queued": len(notifications), "sent": sent}


def task_run_sweep() -> Dict[str, Any]:
    """
    Run one lifecycle sweep pass from the queue.

    Returns:
        The sweep summary (ran_at + per-bucket stats)
    """
    from ..lifecycle.sweep import run_sweep

    return run_sweep().to_dict()
