"""Cancel-with-refund.

The refund is requested before anything is written. A failed refund aborts the
cancellation with the booking untouched; a refund that succeeds but cannot be
persisted is surfaced for manual reconciliation.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from services.errors import BookingError, CancellationNotPersisted, RefundFailed
from utils.audit import log_event

logger = logging.getLogger(__name__)


class RefundOrchestrator:
    def __init__(self, manager, gateway, notifier):
        self.manager = manager
        self.gateway = gateway
        self.notifier = notifier

    def _refund(self, booking, actor):
        if self.gateway is None:
            logger.error("Refund needed for booking %s but no payment gateway is configured", booking.id)
            log_event("REFUND_FAIL", actor=actor, entity="booking", entity_id=booking.id,
                      metadata={"error": "gateway not configured"})
            raise RefundFailed(booking_id=booking.id)
        try:
            result = self.gateway.refund(booking.stripe_payment_id)
        except Exception as exc:
            logger.error("Refund failed for booking %s (%s): %s", booking.id, booking.stripe_payment_id, exc)
            log_event("REFUND_FAIL", actor=actor, entity="booking", entity_id=booking.id,
                      metadata={"stripe_payment_id": booking.stripe_payment_id, "error": str(exc)})
            raise RefundFailed(booking_id=booking.id) from exc

        logger.info("Refund processed for booking %s", booking.id)
        log_event("REFUND_OK", actor=actor, entity="booking", entity_id=booking.id,
                  metadata={"stripe_payment_id": booking.stripe_payment_id, "refund": result})

    def refund_and_cancel(self, booking, reason, actor):
        refunded = False
        if booking.stripe_payment_id:
            self._refund(booking, actor)
            refunded = True

        try:
            self.manager.record_cancellation(booking, actor, reason)
        except (SQLAlchemyError, BookingError) as exc:
            if not refunded:
                raise
            self.manager.session.rollback()
            logger.critical(
                "Booking %s refunded (%s) but cancellation was not saved: %s",
                booking.id, booking.stripe_payment_id, exc,
            )
            log_event("REFUND_PERSIST_MISMATCH", actor=actor, entity="booking", entity_id=booking.id,
                      metadata={"stripe_payment_id": booking.stripe_payment_id, "reason": reason,
                                "error": str(exc)})
            raise CancellationNotPersisted(booking_id=booking.id) from exc

        label = f"[Admin] {reason}" if actor == "admin" else reason
        self.manager.notify_pair("cancellation_confirmation", "cancellation_alert", booking,
                                 reason=label, refunded=refunded)
        return {"refunded": refunded}
