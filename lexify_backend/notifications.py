"""
Lifecycle Notifications
=======================

The lifecycle engine describes the emails it wants sent as `Notification`
records. They are delivered here after the transition has committed:

- recipients are resolved from the request/offer contacts at delivery time
- every notification is sent independently; failures are logged and skipped
- with NOTIFICATIONS_ASYNC=true delivery goes through the RQ queue
"""

import enum
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .config import Settings, get_settings
from .db.models import Offer, OfferStatus, Request
from .db.session import get_db_session
from .email_utils import render_email, send_email

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    """Emails the lifecycle can trigger"""
    PURCHASER_NO_OFFERS = "purchaser_no_offers"
    PURCHASER_OFFERS_AWAIT_SELECTION = "purchaser_offers_await_selection"
    PURCHASER_ALL_OFFERS_OVER_MAX = "purchaser_all_offers_over_max"
    PURCHASER_CONTRACT_FORMED = "purchaser_contract_formed"
    WINNER_CONTRACT_FORMED = "winner_contract_formed"
    LOSER_NOT_SELECTED = "loser_not_selected"
    PROVIDER_CONFLICT_CHECK = "provider_conflict_check"
    PURCHASER_CONFLICT_DENIED_REMAINING = "purchaser_conflict_denied_remaining"
    PURCHASER_CONFLICT_DENIED_NONE = "purchaser_conflict_denied_none"
    CONTRACT_PACKAGE = "contract_package"


PURCHASER_KINDS = {
    NotificationKind.PURCHASER_NO_OFFERS,
    NotificationKind.PURCHASER_OFFERS_AWAIT_SELECTION,
    NotificationKind.PURCHASER_ALL_OFFERS_OVER_MAX,
    NotificationKind.PURCHASER_CONTRACT_FORMED,
    NotificationKind.PURCHASER_CONFLICT_DENIED_REMAINING,
    NotificationKind.PURCHASER_CONFLICT_DENIED_NONE,
}

# Purchaser preference keys
PREF_NO_OFFERS = "no_offers"
PREF_OVER_MAX_PRICE = "over_max_price"
PREF_PENDING_OFFER_SELECTION = "pending_offer_selection"

# Provider preference keys
PREF_NO_WINNING_OFFER = "no-winning-offer"
PREF_WINNER_CONFLICT_CHECK = "winner-conflict-check"


@dataclass
class Notification:
    """An email the engine wants sent once its transition has committed"""
    kind: NotificationKind
    request_id: int
    offer_id: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "request_id": self.request_id,
            "offer_id": self.offer_id,
            "data": dict(self.data),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Notification":
        return cls(
            kind=NotificationKind(payload["kind"]),
            request_id=payload["request_id"],
            offer_id=payload.get("offer_id"),
            data=dict(payload.get("data") or {}),
        )


# =============================================================================
# RECIPIENTS
# =============================================================================

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_RE.match(value.strip()))


def _norm(value: Any) -> str:
    return ("" if value is None else str(value)).strip().lower()


def full_name(contact: Optional[Dict[str, Any]]) -> str:
    if not contact:
        return ""
    parts = [contact.get("first_name"), contact.get("last_name")]
    return " ".join(p for p in parts if p).strip()


def expand_with_all_notification_contacts(
    primary_email: Optional[str],
    contacts: Optional[Sequence[Dict[str, Any]]],
) -> List[str]:
    """Primary address plus every contact opted into all notifications, de-duplicated."""
    recipients: List[str] = []
    if is_email(primary_email):
        recipients.append(primary_email.strip())

    for contact in contacts or []:
        if not isinstance(contact, dict) or contact.get("all_notifications") is not True:
            continue
        email = contact.get("email")
        if is_email(email) and email.strip() not in recipients:
            recipients.append(email.strip())

    return recipients


def find_contact_by_lawyer(lawyer: Optional[str], contacts: Optional[Sequence[Dict[str, Any]]]):
    """Match an offer's lawyer name against a provider's contact persons."""
    name = _norm(lawyer)
    if not name or not contacts:
        return None
    for contact in contacts:
        if _norm(full_name(contact)) == name:
            return contact
    for contact in contacts:
        if _norm(contact.get("first_name")) == name or _norm(contact.get("last_name")) == name:
            return contact
    return None


def purchaser_primary_email(request: Request) -> str:
    """Request's primary contact (matched against company contacts), else the first contact."""
    client = request.client
    contacts = list((client.contact_persons if client is not None else None) or [])
    primary = request.primary_contact or None

    email = ""
    if primary:
        target = _norm(full_name(primary))
        match = next((c for c in contacts if target and _norm(full_name(c)) == target), None)
        if match is None:
            match = next(
                (
                    c for c in contacts
                    if (primary.get("first_name") and _norm(c.get("first_name")) == _norm(primary.get("first_name")))
                    or (primary.get("last_name") and _norm(c.get("last_name")) == _norm(primary.get("last_name")))
                ),
                None,
            )
        email = ((match or {}).get("email") or primary.get("email") or "").strip()

    if not email and contacts:
        email = (contacts[0].get("email") or "").strip()
    if not email and client is not None:
        email = (client.email or "").strip()
    return email


def purchaser_recipients(request: Request) -> List[str]:
    contacts = request.client.contact_persons if request.client is not None else []
    return expand_with_all_notification_contacts(purchaser_primary_email(request), contacts)


def provider_recipients(offer: Offer) -> List[str]:
    """Offer's lawyer plus all-notification contacts; the account email as a last resort."""
    provider = offer.provider
    contacts = list((provider.contact_persons if provider is not None else None) or [])
    lawyer_contact = find_contact_by_lawyer(offer.lawyer, contacts)
    primary = (lawyer_contact or {}).get("email")

    recipients = expand_with_all_notification_contacts(primary, contacts)
    if not recipients and provider is not None and is_email(provider.email):
        recipients = [provider.email.strip()]
    return recipients


# =============================================================================
# DELIVERY
# =============================================================================

def _format_dt(value: Optional[datetime]) -> str:
    return value.strftime("%d.%m.%Y %H:%M UTC") if value else ""


def _base_context(request: Request, offer: Optional[Offer]) -> Dict[str, Any]:
    context = {
        "request_id": request.id,
        "request_title": request.title or "LEXIFY Request",
        "accept_deadline": _format_dt(request.accept_deadline),
        "currency": request.currency or "",
        "payment_rate": request.payment_rate or "",
    }
    if offer is not None:
        context["offer_title"] = offer.title or ""
        context["offer_price"] = offer.price or ""
    return context


def _contract_package_context(request: Request) -> Optional[Dict[str, Any]]:
    contract = request.contract
    if contract is None:
        return None

    winner = next((o for o in request.offers if o.id == contract.offer_id), None)
    if winner is None:
        winner = next((o for o in request.offers if o.status == OfferStatus.WON), None)
    provider = winner.provider if winner is not None else None
    provider_contacts = list((provider.contact_persons if provider is not None else None) or [])
    lawyer_contact = find_contact_by_lawyer(winner.lawyer if winner else None, provider_contacts) or {}

    client = request.client
    purchaser_contact = request.primary_contact or (
        (client.contact_persons or [None])[0] if client is not None else None
    ) or {}

    return {
        "contract_date": _format_dt(contract.contract_date),
        "contract_price": contract.contract_price or "",
        "provider_company": (provider.company_name if provider else "") or "-",
        "provider_contact": full_name(lawyer_contact) or (winner.lawyer if winner else "") or "-",
        "provider_email": lawyer_contact.get("email") or (provider.email if provider else "") or "",
        "purchaser_company": (client.company_name if client else "") or "-",
        "purchaser_contact": full_name(purchaser_contact) or "-",
        "purchaser_email": purchaser_contact.get("email") or purchaser_primary_email(request),
        "_winner": winner,
    }


def deliver_notification(notification: Notification, settings: Optional[Settings] = None) -> bool:
    """Resolve recipients, render and send one notification. Returns True if sent."""
    settings = settings or get_settings()

    with get_db_session() as db:
        request = db.query(Request).filter(Request.id == notification.request_id).first()
        if request is None:
            logger.warning(f"Notification {notification.kind.value}: request {notification.request_id} not found")
            return False

        offer = None
        if notification.offer_id is not None:
            offer = db.query(Offer).filter(Offer.id == notification.offer_id).first()

        context = _base_context(request, offer)
        context.update(notification.data)
        kind = notification.kind
        bcc: List[str] = []

        if kind == NotificationKind.CONTRACT_PACKAGE:
            package = _contract_package_context(request)
            if package is None:
                logger.warning(f"Contract package: no contract for request {request.id}")
                return False
            winner = package.pop("_winner")
            context.update(package)
            subject, html_body, text_body = render_email(kind.value, context)
            sent = False
            purchaser_to = purchaser_recipients(request)
            if purchaser_to:
                sent = send_email(purchaser_to, subject, html_body, text_body, bcc=[settings.support_email]) or sent
            else:
                logger.warning(f"Contract package: no purchaser recipients for request {request.id}")
            provider_to = provider_recipients(winner) if winner is not None else []
            if provider_to:
                sent = send_email(provider_to, subject, html_body, text_body, bcc=[settings.support_email]) or sent
            else:
                logger.warning(f"Contract package: no provider recipients for request {request.id}")
            return sent

        if kind in PURCHASER_KINDS:
            to = purchaser_recipients(request)
        elif kind == NotificationKind.PROVIDER_CONFLICT_CHECK and not context.get("provider_opted_in"):
            # Provider opted out; support still needs to run the check
            to = [settings.support_email]
        elif offer is not None:
            to = provider_recipients(offer)
            if kind == NotificationKind.PROVIDER_CONFLICT_CHECK:
                bcc = [settings.support_email]
        else:
            logger.warning(f"Notification {kind.value} for request {request.id} has no offer")
            return False

        if not to:
            logger.warning(f"Notification {kind.value} for request {request.id}: no recipients resolved")
            return False

        subject, html_body, text_body = render_email(kind.value, context)

    return send_email(to, subject, html_body, text_body, bcc=bcc)


def deliver_notifications(notifications: Iterable[Notification], settings: Optional[Settings] = None) -> int:
    """Send each notification independently. Returns the number sent."""
    sent = 0
    for notification in notifications:
        try:
            if deliver_notification(notification, settings=settings):
                sent += 1
        except Exception:
            logger.exception(
                f"Notification {notification.kind.value} for request {notification.request_id} failed"
            )
    return sent


def dispatch_notifications(notifications: Sequence[Notification], settings: Optional[Settings] = None) -> int:
    """
    Post-commit entry point used by the lifecycle.

    Never raises: a notification problem must not undo or block a transition.
    """
    notifications = list(notifications)
    if not notifications:
        return 0
    settings = settings or get_settings()

    if settings.notifications_async:
        from .jobs.queue import enqueue_job, QUEUE_NOTIFICATIONS
        from .jobs.tasks import task_dispatch_notifications

        try:
            enqueue_job(
                task_dispatch_notifications,
                [n.to_dict() for n in notifications],
                queue_name=QUEUE_NOTIFICATIONS,
            )
            return len(notifications)
        except Exception:
            logger.exception("Failed to enqueue notifications")
            return 0

    return deliver_notifications(notifications, settings=settings)
