"""Stripe webhook reconciliation.

Every verified event is acknowledged; only a bad signature is rejected. Stripe
retries rejected deliveries on its own schedule, and `mark_paid` being
idempotent makes redelivered events harmless.
"""
import logging
from dataclasses import dataclass, field

import stripe

from services.errors import BookingError, InvalidSignature
from utils.audit import log_event

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_EXPIRED = "checkout.session.expired"


@dataclass
class WebhookOutcome:
    event_type: str
    booking_id: int = None
    changed: bool = False
    detail: str = ""
    token: str = field(default=None, repr=False)


def _booking_id_from(session_obj):
    raw = session_obj.get("client_reference_id") or (session_obj.get("metadata") or {}).get("booking_id")
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class PaymentReconciler:
    def __init__(self, manager, gateway):
        self.manager = manager
        self.gateway = gateway

    def handle(self, payload: bytes, signature: str) -> WebhookOutcome:
        try:
            event = self.gateway.construct_event(payload, signature)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            logger.warning("Stripe webhook signature verification failed: %s", exc)
            log_event("WEBHOOK_SIGNATURE_INVALID", actor="stripe", entity="webhook")
            raise InvalidSignature()

        event_type = event.get("type") or ""
        obj = (event.get("data") or {}).get("object") or {}

        if event_type == CHECKOUT_COMPLETED:
            return self._completed(event_type, obj)
        if event_type == CHECKOUT_EXPIRED:
            return self._expired(event_type, obj)

        logger.info("Unhandled Stripe event type: %s", event_type)
        return WebhookOutcome(event_type=event_type, detail="ignored")

    def _completed(self, event_type, obj):
        if obj.get("payment_status") != "paid":
            return WebhookOutcome(event_type=event_type, detail="not paid")

        booking_id = _booking_id_from(obj)
        if booking_id is None:
            logger.warning("Checkout session %s has no booking id", obj.get("id"))
            log_event("WEBHOOK_MISSING_BOOKING", actor="stripe", entity="checkout_session",
                      entity_id=obj.get("id"))
            return WebhookOutcome(event_type=event_type, detail="missing booking id")

        payment_ref = obj.get("payment_intent") or obj.get("id")
        try:
            booking, changed = self.manager.mark_paid(booking_id, payment_ref, session_id=obj.get("id"))
        except BookingError as exc:
            # Paid for a booking we can no longer honour; an operator must refund by hand
            logger.error("Could not mark booking %s paid (%s): %s", booking_id, payment_ref, exc.message)
            log_event("PAYMENT_RECONCILE_FAIL", actor="stripe", entity="booking", entity_id=booking_id,
                      metadata={"stripe_payment_id": payment_ref, "error": exc.message})
            return WebhookOutcome(event_type=event_type, booking_id=booking_id, detail=exc.message)

        if not changed:
            logger.info("Booking %s already paid; duplicate delivery ignored", booking_id)
            return WebhookOutcome(event_type=event_type, booking_id=booking_id, detail="already paid")

        logger.info("Booking %s marked as paid", booking_id)
        links = self.manager.self_service_links(booking)
        self.manager.notify_pair(
            "booking_confirmation", "admin_new_booking", booking,
            cancel_url=links.get("cancel_url"),
            reschedule_url=links.get("reschedule_url"),
        )
        return WebhookOutcome(event_type=event_type, booking_id=booking_id, changed=True,
                              detail="paid", token=links.get("token"))

    def _expired(self, event_type, obj):
        booking_id = _booking_id_from(obj)
        if booking_id is None:
            return WebhookOutcome(event_type=event_type, detail="missing booking id")
        try:
            booking = self.manager.get(booking_id)
        except BookingError:
            return WebhookOutcome(event_type=event_type, booking_id=booking_id, detail="unknown booking")

        if booking.status != "pending":
            return WebhookOutcome(event_type=event_type, booking_id=booking_id, detail=booking.status)
        # Checkout may have been restarted; only the booking's current session can release it
        if obj.get("id") != booking.stripe_session_id:
            logger.info("Ignoring expiry of superseded session %s for booking %s", obj.get("id"), booking_id)
            return WebhookOutcome(event_type=event_type, booking_id=booking_id, detail="stale session")

        try:
            self.manager.record_cancellation(booking, "system", "Checkout session expired before payment")
        except BookingError as exc:
            return WebhookOutcome(event_type=event_type, booking_id=booking_id, detail=exc.message)
        logger.info("Pending booking %s released after checkout expiry", booking_id)
        return WebhookOutcome(event_type=event_type, booking_id=booking_id, changed=True,
                              detail="released")
