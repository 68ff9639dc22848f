"""
Winner Selector
===============

Deterministic choice of the automatic winner and the "top offers" shown to
purchasers who select manually.

Tie-break: exact price ties resolve to the offer that appears first in the
input order (offers are loaded ordered by id, so the earliest submission).
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from ..db.models import Offer, OfferStatus
from .pricing import parse_price


@dataclass
class OfferSnapshot:
    """Read-only view of an offer as the engine sees it"""
    offer_id: int
    price: Any
    provider_id: int
    status: OfferStatus = OfferStatus.PENDING
    title: str = ""
    lawyer: str = ""
    provider_preferences: List[str] = field(default_factory=list)

    @property
    def amount(self) -> Optional[Decimal]:
        return parse_price(self.price)

    @classmethod
    def from_model(cls, offer: Offer) -> "OfferSnapshot":
        provider = offer.provider
        prefs = list(provider.notification_preferences or []) if provider is not None else []
        return cls(
            offer_id=offer.id,
            price=offer.price,
            provider_id=offer.provider_id,
            status=offer.status or OfferStatus.PENDING,
            title=offer.title or "",
            lawyer=offer.lawyer or "",
            provider_preferences=prefs,
        )


def eligible_offers(offers: Iterable[OfferSnapshot]) -> List[OfferSnapshot]:
    """Offers that can still be selected: everything not disqualified."""
    return [o for o in offers if o.status != OfferStatus.DISQUALIFIED]


def priced_offers(offers: Iterable[OfferSnapshot]) -> List[Tuple[OfferSnapshot, Decimal]]:
    """Eligible offers with a parseable price, in input order."""
    result = []
    for offer in eligible_offers(offers):
        amount = offer.amount
        if amount is not None:
            result.append((offer, amount))
    return result


def lowest_offer(offers: Iterable[OfferSnapshot]) -> Optional[OfferSnapshot]:
    """Lowest-priced offer; the first one wins on ties."""
    best = None
    best_amount = None
    for offer, amount in priced_offers(offers):
        if best is None or amount < best_amount:
            best, best_amount = offer, amount
    return best


def within_ceiling(amount: Decimal, ceiling: Optional[Decimal]) -> bool:
    return ceiling is None or amount <= ceiling


def select_automatic_winner(
    offers: Sequence[OfferSnapshot],
    ceiling: Optional[Decimal],
) -> Optional[OfferSnapshot]:
    """
    Pick the automatic winner.

    The lowest-priced offer wins if it is within the ceiling (or there is
    no ceiling). Returns None when no offer has a usable price or the lowest
    one is over the ceiling; the caller then falls back to ON HOLD.
    """
    lowest = lowest_offer(offers)
    if lowest is None:
        return None
    if not within_ceiling(lowest.amount, ceiling):
        return None
    return lowest


def any_within_ceiling(offers: Sequence[OfferSnapshot], ceiling: Optional[Decimal]) -> bool:
    """True if at least one eligible offer is at or below the ceiling (any, without one)."""
    if ceiling is None:
        return len(eligible_offers(offers)) > 0
    return any(amount <= ceiling for _, amount in priced_offers(offers))


def top_offers(
    offers: Iterable[OfferSnapshot],
    limit: int,
    exclude_ids: Iterable[int] = (),
) -> List[OfferSnapshot]:
    """The `limit` cheapest priced offers, skipping disqualified ones."""
    excluded = {int(x) for x in exclude_ids}
    candidates = [(offer, amount) for offer, amount in priced_offers(offers) if offer.offer_id not in excluded]
    # sorted() is stable, so ties keep input order
    candidates = sorted(candidates, key=lambda pair: pair[1])
    return [offer for offer, _ in candidates[:limit]]
