"""
RQ Worker
=========

Consumes the lifecycle queues: queued sweep passes and post-commit
notification batches.

Usage:
    python -m lexify_backend.jobs.worker                 # all queues
    python -m lexify_backend.jobs.worker -q notifications --burst

Retries enqueued with an interval (see `enqueue_job`) are only re-run when
the worker's scheduler is on, so it is enabled unless --no-scheduler is given.
"""

import argparse
import logging
from typing import List, Optional, Sequence

from rq import Worker

from .queue import ALL_QUEUES, get_redis_connection

logger = logging.getLogger(__name__)


def resolve_queues(names: Optional[Sequence[str]] = None) -> List[str]:
    """Validate queue names, keeping ALL_QUEUES priority order. Defaults to every queue."""
    if not names:
        return list(ALL_QUEUES)
    unknown = sorted(set(names) - set(ALL_QUEUES))
    if unknown:
        raise ValueError(f"Unknown queue(s): {', '.join(unknown)}")
    return [q for q in ALL_QUEUES if q in names]


def log_failed_job(job, exc_type, exc_value, traceback) -> bool:
    """Worker exception handler: log and let RQ continue with its default handling."""
    logger.error(f"Job {job.id} ({job.func_name}) failed on {job.origin}: {exc_value}")
    return True


def build_worker(queues: Sequence[str], name: Optional[str] = None) -> Worker:
    return Worker(
        list(queues),
        connection=get_redis_connection(),
        name=name,
        exception_handlers=[log_failed_job],
    )


def start_worker(
    queues: Optional[Sequence[str]] = None,
    burst: bool = False,
    with_scheduler: bool = True,
    name: Optional[str] = None,
) -> bool:
    """Run a worker until stopped (or until the queues drain in burst mode)."""
    queue_names = resolve_queues(queues)
    worker = build_worker(queue_names, name=name)
    logger.info(
        f"Worker {worker.name} listening on {', '.join(queue_names)} "
        f"(burst={burst}, scheduler={with_scheduler})"
    )
    return worker.work(burst=burst, with_scheduler=with_scheduler)


def run_worker_cli(argv: Optional[Sequence[str]] = None):
    """CLI entry point for the worker"""
    parser = argparse.ArgumentParser(description="LEXIFY lifecycle worker")
    parser.add_argument("--queues", "-q", nargs="+", choices=ALL_QUEUES, help="Queues to consume (default: all)")
    parser.add_argument("--burst", "-b", action="store_true", help="Exit once the queues are empty")
    parser.add_argument("--no-scheduler", action="store_true", help="Do not run scheduled retries")
    parser.add_argument("--name", help="Worker name (default: generated by RQ)")
    parser.add_argument("--log-level", "-l", default="INFO", help="Logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    start_worker(
        queues=args.queues,
        burst=args.burst,
        with_scheduler=not args.no_scheduler,
        name=args.name,
    )


if __name__ == "__main__":
    run_worker_cli()
