"""
Database Package - PostgreSQL with SQLAlchemy
==============================================

Persistence layer for requests, offers and contracts.
"""

from .models import (
    Base,
    AppUser, Request, Offer, Contract,
    UserRole, SelectionMode, RequestState, OfferStatus, ContractResult,
)
from .session import get_db_session, init_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base",
    # Accounts
    "AppUser",
    # Marketplace
    "Request", "Offer", "Contract",
    # Enums
    "UserRole", "SelectionMode", "RequestState", "OfferStatus", "ContractResult",
    # Session
    "get_db_session", "init_db", "get_engine", "reset_engine",
]
