"""
Conflict Resolver
=================

Purchaser-driven winner selection and the admin accept/deny decision that
follows a conflict-of-interest check.

    ON HOLD --select (confidential)--> CONFLICT_CHECK   clock paused
    ON HOLD --select (otherwise)-----> EXPIRED / "Yes"  contract formed
    CONFLICT_CHECK --accept----------> EXPIRED / "Yes"  contract formed
    CONFLICT_CHECK --deny------------> ON HOLD          clock resumed

Each operation runs in one transaction; notifications are dispatched after
it commits, and contract emails only when this call created the contract.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from ..db.models import Offer, OfferStatus, Request, RequestState
from ..db.session import get_db_session
from ..notifications import (
    Notification,
    NotificationKind,
    PREF_WINNER_CONFLICT_CHECK,
    dispatch_notifications,
)
from .contracts import award_request
from .engine import award_notifications, pause_remaining_ms, resume_deadline
from .errors import InvalidStateError, LifecycleError, NotFoundError
from .selector import OfferSnapshot
from .sweep import load_request_for_update

logger = logging.getLogger(__name__)

DECISION_ACCEPT = "accept"
DECISION_DENY = "deny"


@dataclass
class SelectionOutcome:
    request_id: int
    offer_id: int
    state: RequestState
    conflict_check: bool
    created_now: bool = False


@dataclass
class ConflictOutcome:
    request_id: int
    decision: str
    state: RequestState
    created_now: bool = False
    accept_deadline: Optional[datetime] = None
    remaining_offers: int = 0


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _award(db, request: Request, offer: Offer) -> Tuple[bool, List[Notification]]:
    """Award `offer`; notifications are only returned if the contract is new."""
    formation = award_request(db, request, offer)
    if not formation.created:
        logger.info(f"Request {request.id}: contract already existed, award notifications skipped")
        return False, []
    return True, award_notifications(
        request.id,
        offer.id,
        [OfferSnapshot.from_model(o) for o in request.offers],
        (request.details or {}).get("team_request"),
    )


def select_winning_offer(
    request_id: int,
    offer_id: int,
    purchaser_id: int,
    select_reason: Optional[str] = None,
    team_request: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SelectionOutcome:
    """
    Record the purchaser's choice of winning offer.

    Confidential requests pause the decision clock and wait for the
    conflict check; all others form the contract right away.
    """
    now = now or datetime.utcnow()
    notifications: List[Notification] = []

    with get_db_session() as db:
        request = load_request_for_update(db, request_id)
        if request is None or request.client_id != purchaser_id:
            raise NotFoundError("Request not found")
        if request.state != RequestState.ON_HOLD:
            raise InvalidStateError("Request is not awaiting offer selection")

        offer = next((o for o in request.offers if o.id == offer_id), None)
        if offer is None:
            raise NotFoundError("Offer not found for this request")
        if offer.status == OfferStatus.DISQUALIFIED or offer_id in (request.disqualified_offer_ids or []):
            raise InvalidStateError("Offer has been disqualified")
        if request.accept_deadline is not None and request.accept_deadline <= now:
            raise InvalidStateError("Decision deadline has passed")

        # JSON columns only track reassignment
        details = dict(request.details or {})
        reason = _clean_text(select_reason)
        team = _clean_text(team_request)
        if reason:
            details["select_reason"] = reason
        if team:
            details["team_request"] = team
        request.details = details

        if request.confidential:
            remaining_ms = pause_remaining_ms(request.accept_deadline, now)
            request.state = RequestState.CONFLICT_CHECK
            request.selected_offer_id = offer.id
            request.accept_deadline_paused_at = now
            request.accept_deadline_paused_remaining_ms = remaining_ms

            provider = offer.provider
            opted_in = provider is not None and PREF_WINNER_CONFLICT_CHECK in (provider.notification_preferences or [])
            notifications.append(
                Notification(
                    NotificationKind.PROVIDER_CONFLICT_CHECK,
                    request.id,
                    offer.id,
                    {"provider_opted_in": opted_in},
                )
            )
            logger.info(
                f"Request {request.id}: ON HOLD -> CONFLICT_CHECK "
                f"(offer {offer.id}, {remaining_ms} ms remaining)"
            )
            outcome = SelectionOutcome(request.id, offer.id, request.state, conflict_check=True)
        else:
            created, notifications = _award(db, request, offer)
            logger.info(f"Request {request.id}: ON HOLD -> EXPIRED (manual award to offer {offer.id})")
            outcome = SelectionOutcome(
                request.id, offer.id, request.state, conflict_check=False, created_now=created
            )

    dispatch_notifications(notifications)
    return outcome


def resolve_conflict(request_id: int, decision: str, now: Optional[datetime] = None) -> ConflictOutcome:
    """
    Apply the outcome of a conflict check.

    accept: the selected offer wins and the contract is formed.
    deny: the selected offer is disqualified and the purchaser gets the
    paused decision time back.
    """
    decision = (decision or "").strip().lower()
    if decision not in (DECISION_ACCEPT, DECISION_DENY):
        raise LifecycleError("Decision must be 'accept' or 'deny'")
    now = now or datetime.utcnow()

    with get_db_session() as db:
        request = load_request_for_update(db, request_id)
        if request is None:
            raise NotFoundError("Request not found")
        if request.state != RequestState.CONFLICT_CHECK:
            raise InvalidStateError("Request is not in conflict check")
        if not request.selected_offer_id:
            raise InvalidStateError("No offer selected for conflict check")

        offer = next((o for o in request.offers if o.id == request.selected_offer_id), None)
        if offer is None:
            raise NotFoundError("Selected offer not found")

        if decision == DECISION_ACCEPT:
            created, notifications = _award(db, request, offer)
            logger.info(f"Request {request.id}: CONFLICT_CHECK -> EXPIRED (accepted offer {offer.id})")
            outcome = ConflictOutcome(request.id, decision, request.state, created_now=created)
        else:
            offer.status = OfferStatus.DISQUALIFIED
            disqualified = list(request.disqualified_offer_ids or [])
            if offer.id not in disqualified:
                disqualified.append(offer.id)
            request.disqualified_offer_ids = disqualified

            request.state = RequestState.ON_HOLD
            request.accept_deadline = resume_deadline(request.accept_deadline_paused_remaining_ms, now)
            request.accept_deadline_paused_at = None
            request.accept_deadline_paused_remaining_ms = None
            request.selected_offer_id = None

            remaining = [
                o for o in request.offers
                if o.status != OfferStatus.DISQUALIFIED and o.id not in disqualified
            ]
            kind = (
                NotificationKind.PURCHASER_CONFLICT_DENIED_REMAINING
                if remaining else NotificationKind.PURCHASER_CONFLICT_DENIED_NONE
            )
            notifications = [Notification(kind, request.id)]
            logger.info(
                f"Request {request.id}: CONFLICT_CHECK -> ON HOLD (denied offer {offer.id}, "
                f"{len(remaining)} offers left, deadline {request.accept_deadline.isoformat()})"
            )
            outcome = ConflictOutcome(
                request.id,
                decision,
                request.state,
                accept_deadline=request.accept_deadline,
                remaining_offers=len(remaining),
            )

    dispatch_notifications(notifications)
    return outcome
