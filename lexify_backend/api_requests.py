"""
Request Lifecycle API
=====================

Routes for the scheduler, purchasers and admins. Handlers stay thin: they
resolve the caller, call into `lifecycle` and shape the response. Rejected
operations raise `LifecycleError` subclasses, mapped to HTTP by the app.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Response

from .auth import AuthContext, get_auth_context, require_admin, require_cron_secret
from .lifecycle import (
    RequestListing,
    extend_accept_deadline,
    list_awaiting,
    list_over_max,
    override_state,
    resolve_conflict,
    run_sweep,
    select_winning_offer,
)
from .schemas import (
    ConflictDecisionRequest,
    ConflictDecisionResponse,
    ExtendDeadlineResponse,
    OfferSummary,
    RequestListResponse,
    RequestListingResponse,
    SelectOfferRequest,
    SelectOfferResponse,
    StateOverrideRequest,
    StateOverrideResponse,
    SweepQueuedResponse,
    SweepResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Requests"])


def _listing_response(listing: RequestListing) -> RequestListingResponse:
    return RequestListingResponse(
        request_id=listing.request_id,
        title=listing.title,
        state=listing.state.value,
        currency=listing.currency,
        payment_rate=listing.payment_rate,
        maximum_price=listing.maximum_price,
        date_expired=listing.date_expired,
        accept_deadline=listing.accept_deadline,
        extended_once=listing.extended_once,
        top_offers=[
            OfferSummary(
                offer_id=o.offer_id,
                provider_id=o.provider_id,
                price=None if o.price is None else str(o.price),
                title=o.title or None,
                lawyer=o.lawyer or None,
                status=o.status.value,
            )
            for o in listing.top_offers
        ],
    )


def _listings_response(listings: List[RequestListing]) -> RequestListResponse:
    return RequestListResponse(requests=[_listing_response(item) for item in listings])


# =============================================================================
# Scheduler
# =============================================================================

@router.post("/cron/requests", dependencies=[Depends(require_cron_secret)])
def cron_sweep(queued: bool = Query(False, description="Run the sweep on the RQ lifecycle queue")):
    """Run one lifecycle sweep pass"""
    if queued:
        from .jobs.queue import enqueue_job, QUEUE_LIFECYCLE
        from .jobs.tasks import task_run_sweep

        job = enqueue_job(task_run_sweep, queue_name=QUEUE_LIFECYCLE, retry=0)
        return SweepQueuedResponse(job={k: v for k, v in job.items() if k != "result"})

    result = run_sweep()
    return SweepResponse(**result.to_dict())


# =============================================================================
# Purchaser
# =============================================================================

@router.get("/me/requests/awaiting", response_model=RequestListResponse)
def get_awaiting_requests(auth: AuthContext = Depends(get_auth_context)):
    """Caller's requests waiting for a winning offer to be selected"""
    return _listings_response(list_awaiting(auth.user_id))


@router.get("/me/requests/overmax", response_model=RequestListResponse)
def get_over_max_requests(auth: AuthContext = Depends(get_auth_context)):
    """Caller's requests where every offer exceeds the maximum price"""
    return _listings_response(list_over_max(auth.user_id))


@router.post("/me/requests/awaiting/select", response_model=SelectOfferResponse)
def select_offer(
    body: SelectOfferRequest,
    response: Response,
    auth: AuthContext = Depends(get_auth_context),
):
    """
    Select the winning offer.

    201 when this call formed the contract, 200 otherwise (conflict check
    started, or the contract already existed).
    """
    outcome = select_winning_offer(
        request_id=body.request_id,
        offer_id=body.offer_id,
        purchaser_id=auth.user_id,
        select_reason=body.select_reason,
        team_request=body.team_request,
    )
    if outcome.created_now:
        response.status_code = 201

    return SelectOfferResponse(
        request_id=outcome.request_id,
        offer_id=outcome.offer_id,
        state=outcome.state.value,
        conflict_check=outcome.conflict_check,
        contract_created=outcome.created_now,
    )


@router.post("/me/requests/{request_id}/extend-deadline", response_model=ExtendDeadlineResponse)
def extend_deadline(request_id: int, auth: AuthContext = Depends(get_auth_context)):
    """Extend the decision deadline once"""
    deadline = extend_accept_deadline(request_id, auth.user_id)
    return ExtendDeadlineResponse(request_id=request_id, accept_deadline=deadline)


# =============================================================================
# Admin
# =============================================================================

@router.put("/admin/requests/{request_id}/conflict", response_model=ConflictDecisionResponse)
def decide_conflict(
    request_id: int,
    body: ConflictDecisionRequest,
    auth: AuthContext = Depends(require_admin),
):
    """Accept or deny the selected offer after the conflict check"""
    outcome = resolve_conflict(request_id, body.decision)
    logger.info(f"Admin {auth.user_id} resolved conflict check on request {request_id}: {outcome.decision}")
    return ConflictDecisionResponse(
        request_id=outcome.request_id,
        decision=outcome.decision,
        state=outcome.state.value,
        contract_created=outcome.created_now,
        accept_deadline=outcome.accept_deadline,
        remaining_offers=outcome.remaining_offers,
    )


@router.put("/admin/requests/{request_id}/state", response_model=StateOverrideResponse)
def set_request_state(
    request_id: int,
    body: StateOverrideRequest,
    auth: AuthContext = Depends(require_admin),
):
    """Override a request's state"""
    request = override_state(request_id, body.request_state)
    logger.info(f"Admin {auth.user_id} set request {request_id} to {request.state.value}")
    return StateOverrideResponse(
        request_id=request.id,
        state=request.state.value,
        date_expired=request.date_expired,
        accept_deadline=request.accept_deadline,
    )
