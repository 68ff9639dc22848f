"""
Lifecycle Engine
================

Pure decision logic for time-driven request transitions. Given a request
snapshot, its offers and the current time, `evaluate()` returns a
`Decision`: the next state, the fields to write, an optional award, and the
notifications to send after commit. Nothing here touches the database or
the clock.

Transition rules:
- PENDING past `date_expired`:
    * no selectable offers       -> EXPIRED / "No"
    * manual (or unknown) mode   -> ON HOLD, accept deadline = date_expired + window
    * automatic, winner in range -> award, EXPIRED / "Yes"
    * automatic, over ceiling    -> ON HOLD, accept deadline = date_expired + window
- ON HOLD past `accept_deadline` without a contract -> EXPIRED / "No"
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, List, Optional, Sequence

from ..db.models import ContractResult, OfferStatus, Request, RequestState, SelectionMode
from ..notifications import (
    Notification,
    NotificationKind,
    PREF_NO_OFFERS,
    PREF_NO_WINNING_OFFER,
    PREF_OVER_MAX_PRICE,
    PREF_PENDING_OFFER_SELECTION,
)
from .pricing import effective_ceiling
from .selector import OfferSnapshot, any_within_ceiling, eligible_offers, select_automatic_winner

DEFAULT_ACCEPT_WINDOW = timedelta(days=7)


class SweepBucket(str, enum.Enum):
    """Which transition a sweep applied"""
    EXPIRED_NO_OFFERS = "expired_no_offers"
    ON_HOLD_MANUAL = "on_hold_manual"
    AUTO_AWARDED = "auto_awarded_contracts"
    ON_HOLD_AUTO_OVER_BUDGET = "on_hold_auto_over_budget"
    ON_HOLD_EXPIRED_NO_CONTRACT = "on_hold_expired_no_contract"


@dataclass
class RequestSnapshot:
    """Read-only view of a request as the engine sees it"""
    request_id: int
    client_id: int
    state: RequestState
    date_expired: Optional[datetime]
    accept_deadline: Optional[datetime] = None
    contract_result: Optional[str] = None
    selection_mode: Optional[str] = None
    maximum_price: Any = None
    payment_rate: Optional[str] = None
    purchaser_preferences: List[str] = field(default_factory=list)
    team_request: Optional[str] = None

    @classmethod
    def from_model(cls, request: Request) -> "RequestSnapshot":
        client = request.client
        details = request.details or {}
        return cls(
            request_id=request.id,
            client_id=request.client_id,
            state=request.state,
            date_expired=request.date_expired,
            accept_deadline=request.accept_deadline,
            contract_result=request.contract_result,
            selection_mode=client.winning_offer_selection if client is not None else None,
            maximum_price=request.maximum_price,
            payment_rate=request.payment_rate,
            purchaser_preferences=list((client.notification_preferences if client is not None else None) or []),
            team_request=details.get("team_request"),
        )


@dataclass
class Award:
    """Offer chosen as the winner"""
    offer_id: int
    provider_id: int
    price: Any


@dataclass
class Decision:
    """Outcome of evaluating one request at one point in time"""
    request_id: int
    bucket: Optional[SweepBucket] = None
    next_state: Optional[RequestState] = None
    contract_result: Optional[str] = None
    accept_deadline: Optional[datetime] = None
    award: Optional[Award] = None
    # Sent after commit regardless of contract creation
    notifications: List[Notification] = field(default_factory=list)
    # Sent after commit only if this call created the contract
    award_notifications: List[Notification] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return self.next_state is None


def normalize_selection_mode(raw: Optional[str]) -> Optional[SelectionMode]:
    """Return the selection mode, or None for missing/unknown values."""
    value = (raw or "").strip().lower()
    try:
        return SelectionMode(value)
    except ValueError:
        return None


def is_contracted(contract_result: Optional[str]) -> bool:
    return str(contract_result or "").strip().lower() == ContractResult.YES.value.lower()


# =============================================================================
# NOTIFICATION BUILDERS
# =============================================================================

def award_notifications(
    request_id: int,
    winner_offer_id: int,
    offers: Sequence[OfferSnapshot],
    team_request: Optional[str] = None,
) -> List[Notification]:
    """Contract-formed notifications: package, purchaser, winner, subscribed losers."""
    notes = [
        Notification(NotificationKind.CONTRACT_PACKAGE, request_id),
        Notification(NotificationKind.PURCHASER_CONTRACT_FORMED, request_id),
    ]

    winner_data = {}
    if team_request and str(team_request).strip():
        winner_data["team_request"] = str(team_request).strip()
    notes.append(Notification(NotificationKind.WINNER_CONTRACT_FORMED, request_id, winner_offer_id, winner_data))

    for offer in offers:
        if offer.offer_id == winner_offer_id or offer.status == OfferStatus.DISQUALIFIED:
            continue
        if PREF_NO_WINNING_OFFER in offer.provider_preferences:
            notes.append(Notification(NotificationKind.LOSER_NOT_SELECTED, request_id, offer.offer_id))
    return notes


def _purchaser_notice(
    request: RequestSnapshot,
    kind: NotificationKind,
    preference: str,
) -> List[Notification]:
    if preference not in request.purchaser_preferences:
        return []
    return [Notification(kind, request.request_id)]


def _on_hold_notice(request: RequestSnapshot, offers: Sequence[OfferSnapshot], ceiling) -> List[Notification]:
    if any_within_ceiling(offers, ceiling):
        return _purchaser_notice(request, NotificationKind.PURCHASER_OFFERS_AWAIT_SELECTION, PREF_PENDING_OFFER_SELECTION)
    return _purchaser_notice(request, NotificationKind.PURCHASER_ALL_OFFERS_OVER_MAX, PREF_OVER_MAX_PRICE)


# =============================================================================
# EVALUATION
# =============================================================================

def _hold(request: RequestSnapshot, bucket: SweepBucket, window: timedelta, notes: List[Notification]) -> Decision:
    return Decision(
        request_id=request.request_id,
        bucket=bucket,
        next_state=RequestState.ON_HOLD,
        accept_deadline=request.date_expired + window,
        notifications=notes,
    )


def _evaluate_pending(
    request: RequestSnapshot,
    offers: Sequence[OfferSnapshot],
    window: timedelta,
) -> Decision:
    # Disqualified offers cannot be selected, so they do not count
    if not eligible_offers(offers):
        return Decision(
            request_id=request.request_id,
            bucket=SweepBucket.EXPIRED_NO_OFFERS,
            next_state=RequestState.EXPIRED,
            contract_result=ContractResult.NO.value,
            notifications=_purchaser_notice(request, NotificationKind.PURCHASER_NO_OFFERS, PREF_NO_OFFERS),
        )

    ceiling = effective_ceiling(request.maximum_price, request.payment_rate)
    mode = normalize_selection_mode(request.selection_mode)

    if mode == SelectionMode.AUTOMATIC:
        winner = select_automatic_winner(offers, ceiling)
        if winner is None:
            notes = _purchaser_notice(request, NotificationKind.PURCHASER_ALL_OFFERS_OVER_MAX, PREF_OVER_MAX_PRICE)
            return _hold(request, SweepBucket.ON_HOLD_AUTO_OVER_BUDGET, window, notes)

        return Decision(
            request_id=request.request_id,
            bucket=SweepBucket.AUTO_AWARDED,
            next_state=RequestState.EXPIRED,
            contract_result=ContractResult.YES.value,
            award=Award(offer_id=winner.offer_id, provider_id=winner.provider_id, price=winner.price),
            award_notifications=award_notifications(
                request.request_id, winner.offer_id, offers, request.team_request
            ),
        )

    # Manual, missing or unknown mode: the purchaser decides
    return _hold(request, SweepBucket.ON_HOLD_MANUAL, window, _on_hold_notice(request, offers, ceiling))


def evaluate(
    request: RequestSnapshot,
    offers: Sequence[OfferSnapshot],
    now: datetime,
    accept_window: timedelta = DEFAULT_ACCEPT_WINDOW,
) -> Decision:
    """
    Decide the time-driven transition for one request.

    Returns a no-op decision when no trigger has fired, so calling this
    again after a transition was applied is harmless.
    """
    if request.state == RequestState.PENDING:
        if request.date_expired is not None and request.date_expired <= now:
            return _evaluate_pending(request, offers, accept_window)
        return Decision(request_id=request.request_id)

    if request.state == RequestState.ON_HOLD:
        if (
            request.accept_deadline is not None
            and request.accept_deadline <= now
            and not is_contracted(request.contract_result)
        ):
            return Decision(
                request_id=request.request_id,
                bucket=SweepBucket.ON_HOLD_EXPIRED_NO_CONTRACT,
                next_state=RequestState.EXPIRED,
                contract_result=ContractResult.NO.value,
            )
        return Decision(request_id=request.request_id)

    # CONFLICT_CHECK freezes the clock; EXPIRED is terminal
    return Decision(request_id=request.request_id)


# =============================================================================
# DEADLINE PAUSE / RESUME
# =============================================================================

def pause_remaining_ms(accept_deadline: Optional[datetime], now: datetime) -> int:
    """Milliseconds left on the decision clock, never negative."""
    if accept_deadline is None:
        return 0
    remaining = accept_deadline - now
    return max(0, int(remaining.total_seconds() * 1000))


def resume_deadline(remaining_ms: Optional[int], now: datetime) -> datetime:
    """New decision deadline after a pause; `now` when nothing was left."""
    remaining = max(0, int(remaining_ms or 0))
    if not remaining:
        return now
    return now + timedelta(milliseconds=remaining)
