"""
Contract Formation
==================

At-most-once creation of the contract for a request, plus the shared
"award" step (contract + offer outcomes + terminal request fields) used by
the sweep, manual selection and the conflict-accept decision.

The unique constraint on `contracts.request_id` is the final arbiter: a
losing concurrent insert is rolled back to its SAVEPOINT and reported as
"not newly created" instead of failing the caller's transaction.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..db.models import Contract, ContractResult, Offer, OfferStatus, Request, RequestState
from .errors import InvalidStateError

logger = logging.getLogger(__name__)


@dataclass
class ContractFormation:
    contract: Contract
    created: bool


def _price_text(price: Any) -> Optional[str]:
    return None if price is None else str(price)


def _existing_contract(db: Session, request_id: int) -> Optional[Contract]:
    return db.query(Contract).filter(Contract.request_id == request_id).first()


def form_contract(
    db: Session,
    request_id: int,
    client_id: int,
    provider_id: int,
    price: Any,
    offer_id: Optional[int] = None,
) -> ContractFormation:
    """
    Create the contract for `request_id` unless one exists.

    `created` tells the caller whether this call inserted the row, which is
    what gates contract emails.
    """
    existing = _existing_contract(db, request_id)
    if existing is not None:
        return ContractFormation(contract=existing, created=False)

    contract = Contract(
        request_id=request_id,
        offer_id=offer_id,
        client_id=client_id,
        provider_id=provider_id,
        contract_price=_price_text(price),
    )
    try:
        with db.begin_nested():
            db.add(contract)
            db.flush()
    except IntegrityError:
        logger.info(f"Contract for request {request_id} created concurrently; skipping")
        existing = db.query(Contract).filter(Contract.request_id == request_id).one()
        return ContractFormation(contract=existing, created=False)

    logger.info(f"Contract {contract.id} formed for request {request_id} (provider {provider_id})")
    return ContractFormation(contract=contract, created=True)


def mark_offer_outcomes(db: Session, request_id: int, winner_offer_id: int) -> None:
    """Winner becomes WON, siblings LOST; disqualified offers keep their status."""
    db.query(Offer).filter(
        Offer.id == winner_offer_id,
        Offer.status != OfferStatus.DISQUALIFIED,
    ).update(
        {Offer.status: OfferStatus.WON}, synchronize_session="fetch"
    )
    db.query(Offer).filter(
        Offer.request_id == request_id,
        Offer.id != winner_offer_id,
        Offer.status != OfferStatus.DISQUALIFIED,
    ).update({Offer.status: OfferStatus.LOST}, synchronize_session="fetch")


def award_request(db: Session, request: Request, offer: Offer) -> ContractFormation:
    """
    Form the contract for `offer` and close the request as contracted.

    If a contract already exists for another offer, that contract wins and
    the offer outcomes follow it.
    """
    if offer.status == OfferStatus.DISQUALIFIED:
        raise InvalidStateError(f"Offer {offer.id} has been disqualified")

    formation = form_contract(
        db,
        request_id=request.id,
        client_id=request.client_id,
        provider_id=offer.provider_id,
        price=offer.price,
        offer_id=offer.id,
    )

    winner_offer_id = offer.id
    if not formation.created and formation.contract.offer_id and formation.contract.offer_id != offer.id:
        logger.warning(
            f"Request {request.id} already contracted with offer {formation.contract.offer_id}; "
            f"ignoring award to offer {offer.id}"
        )
        winner_offer_id = formation.contract.offer_id

    mark_offer_outcomes(db, request.id, winner_offer_id)

    request.state = RequestState.EXPIRED
    request.contract_result = ContractResult.YES.value
    request.accept_deadline = None
    request.selected_offer_id = None
    request.accept_deadline_paused_at = None
    request.accept_deadline_paused_remaining_ms = None
    return formation
