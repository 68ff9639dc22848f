"""
Shared fixtures: a fresh SQLite database per test, a small marketplace
builder and an outbox that captures notifications instead of sending mail.
"""

import os
from datetime import datetime, timedelta
from itertools import count
from pathlib import Path
from unittest.mock import patch

import pytest

# Add parent to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

ALL_PURCHASER_PREFS = ["no_offers", "over_max_price", "pending_offer_selection"]
CRON_SECRET = "test-cron-secret"


@pytest.fixture
def sqlalchemy_db(tmp_path):
    """Configure a fresh SQLAlchemy SQLite DB for tests."""
    from lexify_backend.config import get_settings
    from lexify_backend.db.session import reset_engine, init_db, drop_db

    saved = {key: os.environ.get(key) for key in ("DATABASE_URL", "CRON_SECRET", "NOTIFICATIONS_ASYNC")}
    os.environ["DATABASE_URL"] = f"sqlite:///{tmp_path / 'lexify_test.db'}"
    os.environ["CRON_SECRET"] = CRON_SECRET
    os.environ["NOTIFICATIONS_ASYNC"] = "false"
    get_settings.cache_clear()
    reset_engine()
    init_db()

    yield

    drop_db()
    for key, value in saved.items():
        if value is not None:
            os.environ[key] = value
        else:
            os.environ.pop(key, None)
    get_settings.cache_clear()
    reset_engine()


class Outbox(list):
    """Notifications handed to delivery, in dispatch order"""

    def kinds(self, request_id=None):
        return [n.kind.value for n in self if request_id is None or n.request_id == request_id]

    def of_kind(self, kind):
        return [n for n in self if n.kind.value == kind]


@pytest.fixture
def outbox():
    """Capture delivered notifications instead of rendering and sending them."""
    sent = Outbox()

    def _deliver(notification, settings=None):
        sent.append(notification)
        return True

    with patch("lexify_backend.notifications.deliver_notification", side_effect=_deliver):
        yield sent


class Marketplace:
    """Seeds accounts, requests and offers and reads them back detached."""

    def __init__(self):
        self._seq = count(1)

    def _add(self, obj):
        from lexify_backend.db.session import get_db_session

        with get_db_session() as db:
            db.add(obj)
            db.flush()
            return obj.id

    def purchaser(self, selection="manual", preferences=None, contacts=None, company="Buyer Oy"):
        from lexify_backend.db.models import AppUser, UserRole

        n = next(self._seq)
        email = f"buyer{n}@example.com"
        return self._add(AppUser(
            role=UserRole.PURCHASER,
            email=email,
            company_name=company,
            winning_offer_selection=selection,
            notification_preferences=list(ALL_PURCHASER_PREFS if preferences is None else preferences),
            contact_persons=contacts if contacts is not None else [
                {"first_name": "Paula", "last_name": "Purchaser", "email": email, "all_notifications": False},
            ],
        ))

    def provider(self, preferences=(), lawyer=("Liisa", "Lawyer"), company="Law Firm Oy"):
        from lexify_backend.db.models import AppUser, UserRole

        n = next(self._seq)
        email = f"firm{n}@example.com"
        return self._add(AppUser(
            role=UserRole.PROVIDER,
            email=email,
            company_name=company,
            notification_preferences=list(preferences),
            contact_persons=[
                {"first_name": lawyer[0], "last_name": lawyer[1], "email": f"lawyer{n}@example.com", "all_notifications": False},
            ],
        ))

    def admin(self):
        from lexify_backend.db.models import AppUser, UserRole

        return self._add(AppUser(role=UserRole.ADMIN, email=f"admin{next(self._seq)}@lexify.online"))

    def request(
        self,
        client_id,
        date_expired=None,
        maximum_price=None,
        payment_rate="Lump sum fixed price",
        confidential=False,
        **fields,
    ):
        from lexify_backend.db.models import Request

        return self._add(Request(
            client_id=client_id,
            created_by_user_id=client_id,
            title=fields.pop("title", "Share purchase agreement review"),
            currency="EUR",
            payment_rate=payment_rate,
            maximum_price=maximum_price,
            confidential=confidential,
            date_expired=date_expired or (datetime.utcnow() - timedelta(hours=1)),
            details=fields.pop("details", {}),
            **fields,
        ))

    def offer(self, request_id, provider_id, price, **fields):
        from lexify_backend.db.models import Offer

        return self._add(Offer(
            request_id=request_id,
            provider_id=provider_id,
            price=price,
            currency="EUR",
            title=fields.pop("title", f"Offer {price}"),
            lawyer=fields.pop("lawyer", "Liisa Lawyer"),
            **fields,
        ))

    def get_request(self, request_id):
        from sqlalchemy.orm import joinedload, selectinload
        from lexify_backend.db.models import Request
        from lexify_backend.db.session import get_db_session

        with get_db_session() as db:
            return (
                db.query(Request)
                .options(selectinload(Request.offers), joinedload(Request.contract))
                .filter(Request.id == request_id)
                .one()
            )

    def offer_statuses(self, request_id):
        return {o.id: o.status.value for o in self.get_request(request_id).offers}

    def contracts(self, request_id):
        from lexify_backend.db.models import Contract
        from lexify_backend.db.session import get_db_session

        with get_db_session() as db:
            return db.query(Contract).filter(Contract.request_id == request_id).all()


@pytest.fixture
def market(sqlalchemy_db):
    return Marketplace()
