"""
Purchaser and admin actions on a request outside the sweep:
deadline extension, state override and the offer-selection listings.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_

from ..config import Settings, get_settings
from ..db.models import Request, RequestState
from ..db.session import get_db_session
from .engine import is_contracted
from .errors import ExtensionNotAllowedError, InvalidStateError, NotFoundError
from .pricing import effective_ceiling
from .selector import OfferSnapshot, any_within_ceiling, priced_offers, top_offers
from .sweep import load_request_for_update

logger = logging.getLogger(__name__)

OVERRIDE_STATES = (RequestState.PENDING, RequestState.EXPIRED, RequestState.ON_HOLD)


@dataclass
class RequestListing:
    """A request shown to the purchaser together with its best offers"""
    request_id: int
    title: Optional[str]
    state: RequestState
    currency: Optional[str]
    payment_rate: Optional[str]
    maximum_price: Optional[str]
    date_expired: Optional[datetime]
    accept_deadline: Optional[datetime]
    extended_once: bool
    top_offers: List[OfferSnapshot] = field(default_factory=list)


def extend_accept_deadline(
    request_id: int,
    purchaser_id: int,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> datetime:
    """Give the purchaser one extra grace period. Returns the new deadline."""
    settings = settings or get_settings()
    now = now or datetime.utcnow()

    with get_db_session() as db:
        request = load_request_for_update(db, request_id)
        if request is None or request.client_id != purchaser_id:
            raise NotFoundError("Request not found")
        if request.state != RequestState.ON_HOLD:
            raise InvalidStateError("Deadline can only be extended while awaiting offer selection")
        if request.extended_once:
            raise ExtensionNotAllowedError("Deadline can only be extended once")
        if request.accept_deadline is None or request.accept_deadline <= now:
            raise ExtensionNotAllowedError("Decision deadline has already passed")

        request.accept_deadline = request.accept_deadline + timedelta(hours=settings.extension_hours)
        request.extended_once = True
        new_deadline = request.accept_deadline

    logger.info(f"Request {request_id}: decision deadline extended to {new_deadline.isoformat()}")
    return new_deadline


def override_state(
    request_id: int,
    state: str,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> Request:
    """
    Admin override of a request's state.

    ON HOLD restarts the decision window from now.
    """
    settings = settings or get_settings()
    now = now or datetime.utcnow()

    try:
        target = RequestState(state)
    except ValueError:
        raise InvalidStateError(f"Invalid request state: {state}")
    if target not in OVERRIDE_STATES:
        raise InvalidStateError(f"Invalid request state: {state}")

    with get_db_session() as db:
        request = load_request_for_update(db, request_id)
        if request is None:
            raise NotFoundError("Request not found")

        previous = request.state
        request.state = target
        request.selected_offer_id = None
        request.accept_deadline_paused_at = None
        request.accept_deadline_paused_remaining_ms = None
        if target == RequestState.ON_HOLD:
            request.date_expired = now
            request.accept_deadline = now + timedelta(days=settings.accept_window_days)
        else:
            request.accept_deadline = None

    logger.info(f"Request {request_id}: {previous.value} -> {target.value} (admin override)")
    return request


def _listing(request: Request, limit: int) -> RequestListing:
    offers = [OfferSnapshot.from_model(o) for o in request.offers]
    return RequestListing(
        request_id=request.id,
        title=request.title,
        state=request.state,
        currency=request.currency,
        payment_rate=request.payment_rate,
        maximum_price=request.maximum_price,
        date_expired=request.date_expired,
        accept_deadline=request.accept_deadline,
        extended_once=bool(request.extended_once),
        top_offers=top_offers(offers, limit, exclude_ids=request.disqualified_offer_ids or []),
    )


def list_awaiting(
    purchaser_id: int,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[RequestListing]:
    """Purchaser's ON HOLD requests whose decision deadline is still open, newest first."""
    now = now or datetime.utcnow()
    limit = limit or get_settings().top_offers_limit

    with get_db_session() as db:
        requests = (
            db.query(Request)
            .filter(
                Request.client_id == purchaser_id,
                Request.state == RequestState.ON_HOLD,
                Request.accept_deadline > now,
            )
            .order_by(Request.date_created.desc(), Request.id.desc())
            .all()
        )
        return [_listing(r, limit) for r in requests]


def list_over_max(
    purchaser_id: int,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[RequestListing]:
    """
    Purchaser's closed-for-bidding requests without a contract where every
    priced offer exceeds the maximum price.
    """
    now = now or datetime.utcnow()
    limit = limit or get_settings().top_offers_limit

    with get_db_session() as db:
        requests = (
            db.query(Request)
            .filter(
                Request.client_id == purchaser_id,
                Request.date_expired <= now,
                Request.maximum_price.isnot(None),
                or_(Request.contract_result.is_(None), Request.contract_result != "Yes"),
                Request.offers.any(),
            )
            .order_by(Request.date_created.desc(), Request.id.desc())
            .all()
        )

        result = []
        for request in requests:
            if is_contracted(request.contract_result):
                continue
            ceiling = effective_ceiling(request.maximum_price, request.payment_rate)
            if ceiling is None:
                continue
            offers = [OfferSnapshot.from_model(o) for o in request.offers]
            if not priced_offers(offers) or any_within_ceiling(offers, ceiling):
                continue
            result.append(_listing(request, limit))
        return result

