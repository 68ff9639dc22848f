"""
Pydantic Schemas for the Lifecycle API
======================================

Request bodies and responses for the sweep, purchaser and admin endpoints.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime


# =============================================================================
# REQUEST BODIES
# =============================================================================

class SelectOfferRequest(BaseModel):
    """Purchaser's choice of winning offer"""
    request_id: int = Field(..., description="Request awaiting selection")
    offer_id: int = Field(..., description="Chosen offer")
    select_reason: Optional[str] = Field(None, max_length=2000, description="Why this offer was chosen")
    team_request: Optional[str] = Field(None, max_length=2000, description="Requested team composition")


class ConflictDecisionRequest(BaseModel):
    """Outcome of the conflict of interest check"""
    decision: str = Field(..., description="'accept' or 'deny'")


class StateOverrideRequest(BaseModel):
    """Admin override of a request's state"""
    request_state: str = Field(..., description="PENDING, EXPIRED or ON HOLD")


# =============================================================================
# RESPONSES
# =============================================================================

class SweepStatsResponse(BaseModel):
    pending_expired_processed: int = 0
    expired_no_offers: int = 0
    on_hold_manual: int = 0
    auto_awarded_contracts: int = 0
    on_hold_auto_over_budget: int = 0
    on_hold_expired_no_contract: int = 0
    failed: int = 0


class SweepResponse(BaseModel):
    """Summary of one sweep pass"""
    ok: bool = True
    ran_at: datetime
    stats: SweepStatsResponse


class SweepQueuedResponse(BaseModel):
    ok: bool = True
    job: Dict[str, Any] = Field(default_factory=dict)


class OfferSummary(BaseModel):
    offer_id: int
    provider_id: int
    price: Optional[str] = None
    title: Optional[str] = None
    lawyer: Optional[str] = None
    status: str


class RequestListingResponse(BaseModel):
    """Request shown for offer selection, with its lowest offers"""
    request_id: int
    title: Optional[str] = None
    state: str
    currency: Optional[str] = None
    payment_rate: Optional[str] = None
    maximum_price: Optional[str] = None
    date_expired: Optional[datetime] = None
    accept_deadline: Optional[datetime] = None
    extended_once: bool = False
    top_offers: List[OfferSummary] = Field(default_factory=list)


class RequestListResponse(BaseModel):
    requests: List[RequestListingResponse] = Field(default_factory=list)


class SelectOfferResponse(BaseModel):
    ok: bool = True
    request_id: int
    offer_id: int
    state: str
    conflict_check: bool
    contract_created: bool = False


class ExtendDeadlineResponse(BaseModel):
    ok: bool = True
    request_id: int
    accept_deadline: datetime


class ConflictDecisionResponse(BaseModel):
    ok: bool = True
    request_id: int
    decision: str
    state: str
    contract_created: bool = False
    accept_deadline: Optional[datetime] = None
    remaining_offers: int = 0


class StateOverrideResponse(BaseModel):
    ok: bool = True
    request_id: int
    state: str
    date_expired: Optional[datetime] = None
    accept_deadline: Optional[datetime] = None


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Service version")
    database: bool = Field(..., description="Database reachable")
    notifications_async: bool = Field(False, description="Notifications go through RQ")
    queue: Optional[Dict[str, Any]] = Field(None, description="RQ queue stats when async")
    timestamp: datetime = Field(..., description="Current timestamp")
