"""
Pricing and Winner Selection Tests
==================================

Price parsing, ceiling rules, automatic winner choice and top offers.
No database needed.
"""

from decimal import Decimal

import pytest

from lexify_backend.db.models import OfferStatus
from lexify_backend.lifecycle.pricing import PricingMode, effective_ceiling, parse_price, pricing_mode
from lexify_backend.lifecycle.selector import (
    OfferSnapshot,
    any_within_ceiling,
    lowest_offer,
    select_automatic_winner,
    top_offers,
)


def _offers(*prices):
    return [OfferSnapshot(offer_id=i + 1, price=p, provider_id=100 + i) for i, p in enumerate(prices)]


# =============================================================================
# Price parsing
# =============================================================================

@pytest.mark.parametrize("raw,expected", [
    ("100", Decimal("100")),
    ("EUR 950", Decimal("950")),
    ("1,200.50", Decimal("1200.50")),
    ("1200,50", Decimal("1200.50")),
    ("1.200,50", Decimal("1200.50")),
    ("EUR 1.200.000,00", Decimal("1200000.00")),
    ("1 200", Decimal("1200")),
    (95, Decimal("95")),
    (99.5, Decimal("99.5")),
    (Decimal("42"), Decimal("42")),
])
def test_parse_price_accepts_numbers_and_text(raw, expected):
    assert parse_price(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "abc", "-", "1.2.3", True, float("nan"), float("inf"), ["100"]])
def test_parse_price_rejects_unusable_values(raw):
    assert parse_price(raw) is None


def test_pricing_mode_from_payment_rate():
    assert pricing_mode("Hourly Rate") == PricingMode.HOURLY
    assert pricing_mode("Lump sum fixed price") == PricingMode.FIXED_FEE
    assert pricing_mode("Capped price") == PricingMode.FIXED_FEE
    assert pricing_mode(None) == PricingMode.FIXED_FEE


def test_hourly_requests_have_no_ceiling():
    assert effective_ceiling("100", "Hourly rate") is None
    assert effective_ceiling("100", "Lump sum fixed price") == Decimal("100")
    assert effective_ceiling(None, "Lump sum fixed price") is None
    assert effective_ceiling("not a number", "Lump sum fixed price") is None


# =============================================================================
# Winner selection
# =============================================================================

def test_lowest_offer_within_ceiling_wins():
    winner = select_automatic_winner(_offers("120", "95", "140"), Decimal("100"))
    assert winner.offer_id == 2


def test_no_winner_when_every_offer_is_over_ceiling():
    assert select_automatic_winner(_offers("120", "140"), Decimal("100")) is None


def test_offer_exactly_at_ceiling_qualifies():
    assert select_automatic_winner(_offers("100", "150"), Decimal("100")).offer_id == 1


def test_without_ceiling_the_lowest_offer_wins():
    assert select_automatic_winner(_offers("5000", "4200"), None).offer_id == 2


def test_unparseable_prices_are_never_lowest():
    offers = _offers("call us", "", "300")
    assert lowest_offer(offers).offer_id == 3
    assert select_automatic_winner(_offers("n/a", None), None) is None


def test_european_formatted_price_is_not_a_cheap_winner():
    winner = select_automatic_winner(_offers("1.200,50", "95"), Decimal("100"))
    assert winner.offer_id == 2


def test_disqualified_offers_never_win():
    offers = _offers("90", "95", "140")
    offers[0].status = OfferStatus.DISQUALIFIED
    assert lowest_offer(offers).offer_id == 2
    assert select_automatic_winner(offers, Decimal("100")).offer_id == 2

    offers[1].status = OfferStatus.DISQUALIFIED
    assert select_automatic_winner(offers, Decimal("100")) is None
    assert not any_within_ceiling(offers, Decimal("100"))
    assert any_within_ceiling(offers, None)

    offers[2].status = OfferStatus.DISQUALIFIED
    assert select_automatic_winner(offers, None) is None
    assert not any_within_ceiling(offers, None)


def test_exact_ties_go_to_the_first_offer_in_input_order():
    offers = _offers("95", "95", "95")
    assert select_automatic_winner(offers, Decimal("100")).offer_id == 1
    assert select_automatic_winner(list(reversed(offers)), Decimal("100")).offer_id == 3


def test_any_within_ceiling():
    assert any_within_ceiling(_offers("120", "99"), Decimal("100"))
    assert not any_within_ceiling(_offers("120", "140"), Decimal("100"))
    assert any_within_ceiling(_offers("120"), None)
    assert not any_within_ceiling([], None)


# =============================================================================
# Top offers
# =============================================================================

def test_top_offers_sorted_and_limited():
    offers = _offers("300", "100", "200", "150", "x")
    assert [o.offer_id for o in top_offers(offers, 3)] == [2, 4, 3]


def test_top_offers_skip_disqualified_and_excluded():
    offers = _offers("100", "200", "300", "400")
    offers[0].status = OfferStatus.DISQUALIFIED
    assert [o.offer_id for o in top_offers(offers, 3, exclude_ids=[2])] == [3, 4]


def test_top_offers_keep_input_order_on_ties():
    offers = _offers("100", "100", "50")
    assert [o.offer_id for o in top_offers(offers, 3)] == [3, 1, 2]
