"""
Sweep Evaluator
===============

One pass over every request whose time trigger has fired. Each request is
re-read and re-evaluated inside its own transaction, so overlapping or
repeated passes converge on the same outcome; notifications go out only
after that transaction commits.

Usage:
    python -m lexify_backend.lifecycle.sweep
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ..config import Settings, get_settings
from ..db.models import Offer, Request, RequestState
from ..db.session import get_db_session
from ..notifications import dispatch_notifications
from .contracts import award_request
from .engine import Decision, RequestSnapshot, SweepBucket, evaluate
from .selector import OfferSnapshot

logger = logging.getLogger(__name__)


@dataclass
class SweepStats:
    """Counts per transition bucket"""
    pending_expired_processed: int = 0
    expired_no_offers: int = 0
    on_hold_manual: int = 0
    auto_awarded_contracts: int = 0
    on_hold_auto_over_budget: int = 0
    on_hold_expired_no_contract: int = 0
    failed: int = 0

    def record(self, bucket: SweepBucket) -> None:
        setattr(self, bucket.value, getattr(self, bucket.value) + 1)


@dataclass
class SweepResult:
    ran_at: datetime
    stats: SweepStats = field(default_factory=SweepStats)

    def to_dict(self) -> dict:
        return {
            "ok": True,
            "ran_at": self.ran_at.isoformat(),
            "stats": asdict(self.stats),
        }


def load_request_for_update(db: Session, request_id: int) -> Optional[Request]:
    """Load a request with its offers, locking the row where the database supports it."""
    return (
        db.query(Request)
        .options(selectinload(Request.offers).joinedload(Offer.provider))
        .filter(Request.id == request_id)
        .with_for_update(of=Request)
        .populate_existing()
        .first()
    )


def apply_decision(db: Session, request: Request, decision: Decision) -> bool:
    """
    Write a decision to the loaded request.

    Returns True if this call created the contract.
    """
    created = False
    previous = request.state

    if decision.award is not None:
        offer = next((o for o in request.offers if o.id == decision.award.offer_id), None)
        if offer is None:
            raise LookupError(f"Offer {decision.award.offer_id} not found on request {request.id}")
        created = award_request(db, request, offer).created
    else:
        request.state = decision.next_state
        if decision.contract_result is not None:
            request.contract_result = decision.contract_result
        if decision.next_state == RequestState.ON_HOLD:
            request.accept_deadline = decision.accept_deadline
        elif decision.next_state == RequestState.EXPIRED:
            request.accept_deadline = None

    logger.info(
        f"Request {request.id}: {previous.value} -> {request.state.value} "
        f"({decision.bucket.value if decision.bucket else 'manual'})"
    )
    return created


def process_request(request_id: int, now: datetime, accept_window: timedelta) -> Decision:
    """Evaluate and apply one request in its own transaction, then notify."""
    with get_db_session() as db:
        request = load_request_for_update(db, request_id)
        if request is None:
            return Decision(request_id=request_id)

        decision = evaluate(
            RequestSnapshot.from_model(request),
            [OfferSnapshot.from_model(o) for o in request.offers],
            now,
            accept_window,
        )
        if decision.is_noop:
            return decision

        created = apply_decision(db, request, decision)

    notifications = list(decision.notifications)
    if created:
        notifications.extend(decision.award_notifications)
    elif decision.award is not None:
        logger.info(f"Request {request_id}: contract already existed, award notifications skipped")
    dispatch_notifications(notifications)
    return decision


def _due_pending_ids(now: datetime) -> List[int]:
    with get_db_session() as db:
        rows = (
            db.query(Request.id)
            .filter(Request.state == RequestState.PENDING, Request.date_expired <= now)
            .order_by(Request.id)
            .all()
        )
    return [row.id for row in rows]


def _due_on_hold_ids(now: datetime) -> List[int]:
    with get_db_session() as db:
        rows = (
            db.query(Request.id)
            .filter(
                Request.state == RequestState.ON_HOLD,
                Request.accept_deadline <= now,
                or_(Request.contract_result.is_(None), Request.contract_result != "Yes"),
            )
            .order_by(Request.id)
            .all()
        )
    return [row.id for row in rows]


def _run_bucket(ids: List[int], now: datetime, window: timedelta, stats: SweepStats, touched: Set[int]) -> None:
    for request_id in ids:
        if request_id in touched:
            continue
        try:
            decision = process_request(request_id, now, window)
        except Exception:
            stats.failed += 1
            logger.exception(f"Sweep failed for request {request_id}")
            continue
        if not decision.is_noop:
            stats.record(decision.bucket)
            touched.add(request_id)


def run_sweep(now: Optional[datetime] = None, settings: Optional[Settings] = None) -> SweepResult:
    """
    Run one sweep pass.

    A request gets at most one transition per pass: a request moved to
    ON HOLD here is not also expired here, even if its new deadline has
    already passed.
    """
    settings = settings or get_settings()
    now = now or datetime.utcnow()
    window = timedelta(days=settings.accept_window_days)
    result = SweepResult(ran_at=now)
    touched: Set[int] = set()

    pending_ids = _due_pending_ids(now)
    result.stats.pending_expired_processed = len(pending_ids)
    _run_bucket(pending_ids, now, window, result.stats, touched)
    _run_bucket(_due_on_hold_ids(now), now, window, result.stats, touched)

    logger.info(f"Sweep finished at {now.isoformat()}: {asdict(result.stats)}")
    return result


def main():
    """CLI entry point for a single sweep pass"""
    from ..db.session import init_db

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    init_db()
    result = run_sweep()
    print(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    main()
