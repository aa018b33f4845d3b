import pytest
from sqlalchemy.exc import OperationalError

from models import db
from models.audit_log import AuditLog
from models.booking import CANCELLED, COMPLETED, PAID, PENDING
from services.errors import (
    AlreadyCancelled, CancellationNotPersisted, Conflict, NotFound, RefundFailed, ValidationError,
)

from conftest import make_booking


def test_paid_booking_is_refunded_then_cancelled(services, service, gateway, notifier):
    booking = make_booking(service, "2025-03-01", status=PAID, payment_ref="pi_paid_1")

    result = services.bookings.cancel(booking.id, "customer", "schedule conflict")

    assert result == {"refunded": True}
    assert gateway.refunds == ["pi_paid_1"]
    db.session.refresh(booking)
    assert booking.status == CANCELLED
    assert "[CANCELLED BY CUSTOMER" in booking.notes
    assert booking.notes.endswith("schedule conflict")
    assert notifier.templates() == ["cancellation_confirmation", "cancellation_alert"]
    assert notifier.sent[0]["context"]["refunded"] is True


def test_failed_refund_leaves_booking_untouched(services, service, gateway, notifier):
    booking = make_booking(service, "2025-03-01", status=PAID, payment_ref="pi_paid_1", notes="Original note")
    gateway.fail_refund = True

    with pytest.raises(RefundFailed):
        services.bookings.cancel(booking.id, "customer", "schedule conflict")

    db.session.refresh(booking)
    assert booking.status == PAID
    assert booking.notes == "Original note"
    assert booking.admin_notes is None
    assert notifier.sent == []
    assert AuditLog.query.filter_by(action="REFUND_FAIL", entity_id=str(booking.id)).count() == 1


def test_unpaid_booking_is_cancelled_without_refund(services, service, gateway):
    booking = make_booking(service, "2025-03-01", status=PENDING)

    result = services.bookings.cancel(booking.id, "customer", "changed my mind")

    assert result == {"refunded": False}
    assert gateway.refunds == []
    db.session.refresh(booking)
    assert booking.status == CANCELLED


def test_admin_cancel_appends_to_admin_notes(services, service, notifier):
    booking = make_booking(service, "2025-03-01", status=PAID, admin_notes="Asked for invoice")

    services.bookings.cancel(booking.id, "admin", "")

    db.session.refresh(booking)
    assert booking.admin_notes.startswith("Asked for invoice")
    assert "[CANCELLED BY ADMIN" in booking.admin_notes
    assert booking.admin_notes.endswith("Cancelled by admin")
    assert booking.notes is None
    assert notifier.sent[0]["context"]["reason"] == "[Admin] Cancelled by admin"


def test_cancel_twice(services, service):
    booking = make_booking(service, "2025-03-01", status=PENDING)
    services.bookings.cancel(booking.id, "customer", "no longer needed")

    with pytest.raises(AlreadyCancelled):
        services.bookings.cancel(booking.id, "customer", "no longer needed")


def test_completed_booking_cannot_be_cancelled(services, service):
    booking = make_booking(service, "2025-03-01", status=COMPLETED)
    with pytest.raises(Conflict):
        services.bookings.cancel(booking.id, "admin", "late")


def test_customer_reason_min_length(services, service):
    booking = make_booking(service, "2025-03-01", status=PAID)
    with pytest.raises(ValidationError):
        services.bookings.cancel(booking.id, "customer", " no ")


def test_non_string_reason_is_rejected_before_refund(services, service, gateway):
    booking = make_booking(service, "2025-03-01", status=PAID)

    with pytest.raises(ValidationError):
        services.bookings.cancel(booking.id, "customer", 12345)

    assert gateway.refunds == []
    db.session.refresh(booking)
    assert booking.status == PAID


def test_customer_can_only_cancel_own_booking(services, service, gateway):
    booking = make_booking(service, "2025-03-01", status=PAID)
    with pytest.raises(NotFound):
        services.bookings.cancel(booking.id, "customer", "schedule conflict", customer_email="other@example.com")
    assert gateway.refunds == []


def test_refund_ok_but_persist_fails_is_reported(services, service, gateway, notifier, monkeypatch):
    booking = make_booking(service, "2025-03-01", status=PAID, payment_ref="pi_paid_1")

    def broken(*args, **kwargs):
        raise OperationalError("UPDATE bookings", {}, Exception("database is locked"))

    monkeypatch.setattr(services.bookings, "record_cancellation", broken)

    with pytest.raises(CancellationNotPersisted):
        services.bookings.cancel(booking.id, "customer", "schedule conflict")

    assert gateway.refunds == ["pi_paid_1"]
    assert AuditLog.query.filter_by(action="REFUND_PERSIST_MISMATCH", entity_id=str(booking.id)).count() == 1
    assert notifier.sent == []
