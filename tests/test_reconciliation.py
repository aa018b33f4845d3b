import hashlib
import hmac
import json
import time

import pytest

from models import db
from models.audit_log import AuditLog
from models.booking import CANCELLED, PAID, PENDING
from services.errors import InvalidSignature
from services.gateway import StripeGateway
from services.reconciliation import PaymentReconciler

from conftest import completed_event, make_booking


def test_happy_path_create_then_pay(services, service, notifier):
    booking = services.bookings.create(
        service.id, "2025-03-01", "10:00", {"name": "Aina Rahman", "email": "aina@example.com"}
    )
    assert booking.status == PENDING
    assert booking.price_paid == 450

    outcome = services.reconciler.handle(completed_event(booking.id, "pi_happy"), "valid")

    db.session.refresh(booking)
    assert outcome.changed is True
    assert booking.status == PAID
    assert booking.stripe_payment_id == "pi_happy"

    assert notifier.templates() == ["booking_confirmation", "admin_new_booking"]
    assert [p["to"] for p in notifier.sent] == ["aina@example.com", "owner@example.com"]

    claims = services.codec.validate(outcome.token)
    assert (claims.booking_id, claims.email) == (booking.id, "aina@example.com")
    assert notifier.sent[0]["context"]["cancel_url"] == f"https://site.test/booking/cancel/{outcome.token}"


def test_redelivered_event_sends_one_email_pair(services, service, notifier):
    booking = make_booking(service, "2025-03-01")
    payload = completed_event(booking.id, "pi_dup")

    first = services.reconciler.handle(payload, "valid")
    second = services.reconciler.handle(payload, "valid")

    assert (first.changed, second.changed) == (True, False)
    db.session.refresh(booking)
    assert booking.status == PAID
    assert len(notifier.sent) == 2


def test_bad_signature_changes_nothing(services, service, notifier):
    booking = make_booking(service, "2025-03-01")

    with pytest.raises(InvalidSignature):
        services.reconciler.handle(completed_event(booking.id), "t=1,v1=forged")

    db.session.refresh(booking)
    assert booking.status == PENDING
    assert notifier.sent == []
    assert AuditLog.query.filter_by(action="WEBHOOK_SIGNATURE_INVALID").count() == 1


def test_unknown_event_type_is_acknowledged(services, service):
    booking = make_booking(service, "2025-03-01")

    outcome = services.reconciler.handle(
        completed_event(booking.id, event_type="payment_intent.created"), "valid"
    )

    assert outcome.detail == "ignored"
    db.session.refresh(booking)
    assert booking.status == PENDING


def test_missing_booking_id_is_terminal(services, notifier):
    outcome = services.reconciler.handle(completed_event(None), "valid")

    assert outcome.detail == "missing booking id"
    assert notifier.sent == []
    assert AuditLog.query.filter_by(action="WEBHOOK_MISSING_BOOKING").count() == 1


def test_booking_id_falls_back_to_metadata(services, service):
    booking = make_booking(service, "2025-03-01")
    event = json.loads(completed_event(None, "pi_meta"))
    event["data"]["object"]["metadata"] = {"booking_id": str(booking.id)}

    services.reconciler.handle(json.dumps(event), "valid")

    db.session.refresh(booking)
    assert booking.status == PAID


def test_unpaid_session_is_ignored(services, service):
    booking = make_booking(service, "2025-03-01")
    event = json.loads(completed_event(booking.id))
    event["data"]["object"]["payment_status"] = "unpaid"

    services.reconciler.handle(json.dumps(event), "valid")

    db.session.refresh(booking)
    assert booking.status == PENDING


def test_payment_for_cancelled_booking_is_logged_for_operator(services, service, notifier):
    booking = make_booking(service, "2025-03-01", status=CANCELLED)

    outcome = services.reconciler.handle(completed_event(booking.id, "pi_late"), "valid")

    assert outcome.changed is False
    assert notifier.sent == []
    row = AuditLog.query.filter_by(action="PAYMENT_RECONCILE_FAIL").one()
    assert json.loads(row.metadata_json)["stripe_payment_id"] == "pi_late"


def test_expired_checkout_releases_pending_booking(services, service):
    booking = make_booking(service, "2025-03-01", stripe_session_id="cs_test_abc")

    outcome = services.reconciler.handle(
        completed_event(booking.id, event_type="checkout.session.expired"), "valid"
    )

    assert outcome.detail == "released"
    db.session.refresh(booking)
    assert booking.status == CANCELLED
    assert "[CANCELLED BY SYSTEM" in booking.admin_notes
    assert services.availability.is_available(booking.booking_date)


def test_expired_checkout_leaves_paid_booking(services, service):
    booking = make_booking(service, "2025-03-01", status=PAID)

    services.reconciler.handle(completed_event(booking.id, event_type="checkout.session.expired"), "valid")

    db.session.refresh(booking)
    assert booking.status == PAID


def test_expiry_of_superseded_session_keeps_booking(services, service, notifier):
    # customer restarted checkout: cs_old was replaced by cs_new
    booking = make_booking(service, "2025-03-01", stripe_session_id="cs_new")

    stale = services.reconciler.handle(
        completed_event(booking.id, session_id="cs_old", event_type="checkout.session.expired"), "valid"
    )

    assert stale.detail == "stale session"
    db.session.refresh(booking)
    assert booking.status == PENDING

    paid = services.reconciler.handle(completed_event(booking.id, "pi_new", session_id="cs_new"), "valid")

    assert paid.changed is True
    db.session.refresh(booking)
    assert booking.status == PAID
    assert booking.stripe_payment_id == "pi_new"
    assert notifier.templates() == ["booking_confirmation", "admin_new_booking"]


def _stripe_header(payload: str, secret: str) -> str:
    ts = int(time.time())
    signed = f"{ts}.{payload}".encode("utf-8")
    sig = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def test_real_stripe_signature_scheme(services, service):
    booking = make_booking(service, "2025-03-01")
    reconciler = PaymentReconciler(services.bookings, StripeGateway("sk_test_dummy", "whsec_real"))
    payload = completed_event(booking.id, "pi_signed")

    with pytest.raises(InvalidSignature):
        reconciler.handle(payload.encode("utf-8"), _stripe_header(payload, "whsec_wrong"))

    outcome = reconciler.handle(payload.encode("utf-8"), _stripe_header(payload, "whsec_real"))

    assert outcome.changed is True
    db.session.refresh(booking)
    assert booking.stripe_payment_id == "pi_signed"
