"""
SQLAlchemy Models for Database
==============================

Schema for the LEXIFY request lifecycle:
- Accounts (purchasers, providers, admins) with contacts and notification preferences
- Requests posted by purchasers
- Offers submitted by providers
- Contracts formed from a winning offer (at most one per request)

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

import enum
from datetime import datetime
from sqlalchemy import (
    Column, String, Text, Integer, Boolean, DateTime, Enum, ForeignKey,
    BigInteger, UniqueConstraint, Index, JSON
)
from sqlalchemy.orm import relationship, declarative_base

# Use JSON for cross-database compatibility (works with both PostgreSQL and SQLite)
JSONB = JSON

Base = declarative_base()


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, enum.Enum):
    """Account roles"""
    PURCHASER = "purchaser"
    PROVIDER = "provider"
    ADMIN = "admin"


class SelectionMode(str, enum.Enum):
    """How the winning offer is chosen once bidding closes"""
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class RequestState(str, enum.Enum):
    """Request lifecycle state"""
    PENDING = "PENDING"
    ON_HOLD = "ON HOLD"
    CONFLICT_CHECK = "CONFLICT_CHECK"
    EXPIRED = "EXPIRED"


class OfferStatus(str, enum.Enum):
    """Offer outcome"""
    PENDING = "PENDING"
    WON = "WON"
    LOST = "LOST"
    DISQUALIFIED = "DISQUALIFIED"


class ContractResult(str, enum.Enum):
    """Terminal outcome marker stored on the request"""
    YES = "Yes"
    NO = "No"


# =============================================================================
# ACCOUNT MODELS
# =============================================================================

class AppUser(Base):
    """Purchaser, provider or admin account"""
    __tablename__ = "app_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    role = Column(Enum(UserRole, values_callable=_enum_values, native_enum=False), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    company_name = Column(String(255), nullable=True)
    business_id = Column(String(64), nullable=True)

    # Purchasers only: "automatic" | "manual"; anything else is treated as manual
    winning_offer_selection = Column(String(20), nullable=True)

    # Purchasers: no_offers / over_max_price / pending_offer_selection
    # Providers: no-winning-offer / winner-conflict-check
    notification_preferences = Column(JSONB, default=list)

    # [{first_name, last_name, email, telephone, all_notifications}]
    contact_persons = Column(JSONB, default=list)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    requests = relationship("Request", back_populates="client", foreign_keys="Request.client_id")
    offers = relationship("Offer", back_populates="provider")


# =============================================================================
# MARKETPLACE MODELS
# =============================================================================

class Request(Base):
    """Purchaser's solicitation for legal work"""
    __tablename__ = "requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False)
    created_by_user_id = Column(Integer, ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True)

    title = Column(String(500), nullable=True)
    currency = Column(String(10), nullable=True)
    payment_rate = Column(String(100), nullable=True)  # e.g. "Lump sum fixed price", "Hourly rate"
    maximum_price = Column(String(50), nullable=True)  # only meaningful for fixed-fee pricing
    confidential = Column(Boolean, default=False)  # selecting a winner triggers a conflict check
    details = Column(JSONB, default=dict)  # select_reason, team_request, ...
    primary_contact = Column(JSONB, nullable=True)

    state = Column(
        Enum(RequestState, values_callable=_enum_values, native_enum=False, length=20),
        nullable=False,
        default=RequestState.PENDING,
    )
    date_created = Column(DateTime, default=datetime.utcnow)
    date_expired = Column(DateTime, nullable=False)  # offer submission deadline

    # Decision deadline; only set while ON HOLD (frozen during CONFLICT_CHECK)
    accept_deadline = Column(DateTime, nullable=True)
    accept_deadline_paused_at = Column(DateTime, nullable=True)
    accept_deadline_paused_remaining_ms = Column(BigInteger, nullable=True)
    extended_once = Column(Boolean, default=False)

    selected_offer_id = Column(Integer, nullable=True)
    disqualified_offer_ids = Column(JSONB, default=list)
    contract_result = Column(String(3), nullable=True)  # "Yes" | "No"

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_request_state_expired", "state", "date_expired"),
        Index("ix_request_state_accept", "state", "accept_deadline"),
        Index("ix_request_client", "client_id"),
    )

    # Relationships
    client = relationship("AppUser", back_populates="requests", foreign_keys=[client_id])
    offers = relationship("Offer", back_populates="request", cascade="all, delete-orphan", order_by="Offer.id")
    contract = relationship("Contract", back_populates="request", uselist=False)


class Offer(Base):
    """Provider's priced bid against a request"""
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    provider_id = Column(Integer, ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False)

    price = Column(String(50), nullable=True)  # kept as text; unparseable prices never win
    currency = Column(String(10), nullable=True)
    title = Column(String(500), nullable=True)
    lawyer = Column(String(255), nullable=True)  # name of the provider's responsible lawyer
    status = Column(
        Enum(OfferStatus, values_callable=_enum_values, native_enum=False, length=20),
        default=OfferStatus.PENDING,
    )
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_offer_request", "request_id"),
    )

    # Relationships
    request = relationship("Request", back_populates="offers")
    provider = relationship("AppUser", back_populates="offers")


class Contract(Base):
    """Binding outcome of a request"""
    __tablename__ = "contracts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("requests.id", ondelete="CASCADE"), nullable=False)
    offer_id = Column(Integer, ForeignKey("offers.id", ondelete="SET NULL"), nullable=True)
    client_id = Column(Integer, ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True)
    provider_id = Column(Integer, ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True)
    contract_price = Column(String(50), nullable=True)
    contract_date = Column(DateTime, default=datetime.utcnow)
    pdf_file = Column(JSONB, nullable=True)  # attached later by the PDF renderer
    note = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("request_id", name="uq_contract_request"),
    )

    # Relationships
    request = relationship("Request", back_populates="contract")
