"""
Request Lifecycle
=================

State machine driving requests from bidding to contract:
pure decision engine, winner selection, idempotent contract formation,
the periodic sweep and the conflict-check flow.
"""

from .errors import (
    LifecycleError, InvalidStateError, ExtensionNotAllowedError,
    NotFoundError,
)
from .engine import (
    Decision, RequestSnapshot, SweepBucket, evaluate,
    pause_remaining_ms, resume_deadline,
)
from .selector import OfferSnapshot, select_automatic_winner, top_offers
from .contracts import ContractFormation, form_contract, award_request
from .sweep import SweepResult, SweepStats, run_sweep
from .conflict import ConflictOutcome, SelectionOutcome, select_winning_offer, resolve_conflict
from .actions import RequestListing, extend_accept_deadline, override_state, list_awaiting, list_over_max

__all__ = [
    # Errors
    "LifecycleError", "InvalidStateError", "ExtensionNotAllowedError",
    "NotFoundError",
    # Engine
    "Decision", "RequestSnapshot", "SweepBucket", "evaluate",
    "pause_remaining_ms", "resume_deadline",
    "OfferSnapshot", "select_automatic_winner", "top_offers",
    # Persistence-backed operations
    "ContractFormation", "form_contract", "award_request",
    "SweepResult", "SweepStats", "run_sweep",
    "ConflictOutcome", "SelectionOutcome", "select_winning_offer", "resolve_conflict",
    "RequestListing", "extend_accept_deadline", "override_state", "list_awaiting", "list_over_max",
]
