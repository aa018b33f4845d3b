"""Shared fixtures: an app on a throwaway SQLite file with a frozen clock and
fake payment gateway / notifier injected through create_app."""

import json
from datetime import date, datetime, time, timedelta

import pytest

from app import create_app
from config import Config
from models import db
from models.booking import Booking, PAID, PENDING
from models.service import Service
from services import get_services
from services.gateway import PaymentGateway
from services.notifications import Notifier
from utils.clock import Clock

ADMIN_TOKEN = "admin-test-token"
CRON_SECRET = "cron-test-secret"


class FrozenClock(Clock):
    def __init__(self, current: datetime, tz_name: str = "Asia/Kuala_Lumpur"):
        super().__init__(tz_name)
        self.current = current.replace(tzinfo=self.tz)

    def now(self):
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


class FakeGateway(PaymentGateway):
    """Accepts the literal signature "valid"; records refunds and checkouts."""

    def __init__(self):
        self.refunds = []
        self.fail_refund = False
        self.checkouts = {}
        self.fail_retrieve = False

    def construct_event(self, payload, signature):
        if signature != "valid":
            raise ValueError("No signatures found matching the expected signature for payload")
        return json.loads(payload)

    def refund(self, payment_ref):
        if self.fail_refund:
            raise RuntimeError("charge_already_refunded")
        self.refunds.append(payment_ref)
        return {"id": f"re_{len(self.refunds)}", "status": "succeeded"}

    def create_checkout(self, booking, success_url, cancel_url):
        session = {"id": f"cs_test_{booking.id}", "url": f"https://checkout.stripe.test/{booking.id}",
                   "success_url": success_url, "cancel_url": cancel_url}
        self.checkouts[session["id"]] = booking.id
        return session

    def retrieve_checkout(self, session_id):
        if self.fail_retrieve:
            raise RuntimeError("api_connection_error")
        if session_id not in self.checkouts:
            return None
        booking_id = self.checkouts[session_id]
        return {"id": session_id, "client_reference_id": str(booking_id),
                "payment_status": "paid", "metadata": {}}


class FakeNotifier(Notifier):
    def __init__(self):
        self.sent = []
        self.fail_to = set()

    def send(self, payload):
        if payload["to"] in self.fail_to:
            return False
        self.sent.append(payload)
        return True

    def templates(self):
        return [p["template"] for p in self.sent]


@pytest.fixture
def clock():
    # Thursday 20 Feb 2025, 09:30 in Kuala Lumpur
    return FrozenClock(datetime(2025, 2, 20, 9, 30))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def app(tmp_path, clock, gateway, notifier):
    class TestConfig(Config):
        TESTING = True
        SECRET_KEY = "test-secret-key"
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "test.db")
        LOG_LEVEL = "WARNING"
        STRIPE_SECRET_KEY = "sk_test_dummy"
        STRIPE_WEBHOOK_SECRET = "whsec_test"
        STRIPE_SUCCESS_URL = "https://site.test/book/success"
        STRIPE_CANCEL_URL = "https://site.test/book/cancel"
        SELF_SERVICE_TOKEN_SECRET = "self-service-secret"
        ADMIN_API_TOKEN = ADMIN_TOKEN
        CRON_SECRET = CRON_SECRET
        ADMIN_EMAIL = "owner@example.com"
        SITE_URL = "https://site.test"
        SMTP_HOST = None

    app = create_app(TestConfig, gateway=gateway, notifier=notifier, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return get_services()


@pytest.fixture
def service(app):
    row = Service(name="Strategy Session", price=450, price_label="RM450", duration_label="90 minutes")
    db.session.add(row)
    db.session.commit()
    return row


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


def make_booking(service, day, status=PENDING, email="aina@example.com", booking_time=time(10, 0),
                 payment_ref=None, meet_link=None, **extra):
    """Insert a booking row directly, bypassing the lifecycle checks."""
    if isinstance(day, str):
        day = date.fromisoformat(day)
    booking = Booking(
        service_id=service.id,
        booking_date=day,
        booking_time=booking_time,
        customer_name="Aina Rahman",
        customer_email=email,
        price_paid=service.price,
        status=status,
        stripe_payment_id=payment_ref if payment_ref else ("pi_" + day.isoformat() if status == PAID else None),
        google_meet_link=meet_link,
        **extra,
    )
    db.session.add(booking)
    db.session.commit()
    return booking


def completed_event(booking_id, payment_intent="pi_test_123", session_id="cs_test_abc", event_type="checkout.session.completed"):
    return json.dumps({
        "id": "evt_test",
        "type": event_type,
        "data": {"object": {
            "id": session_id,
            "object": "checkout.session",
            "client_reference_id": str(booking_id) if booking_id is not None else None,
            "payment_intent": payment_intent,
            "payment_status": "paid",
            "metadata": {},
        }},
    })
