import logging
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

from flask import Blueprint, request, jsonify

from models import db
from models.booking import PENDING
from services import get_services
from services.errors import CheckoutFailed, Conflict, PaymentNotConfigured, ValidationError
from utils.audit import log_event

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")

def _append_query(url: str, params: dict) -> str:
    if not url:
        return url
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query))
    query.update({k: v for k, v in params.items() if v is not None})
    # Stripe substitutes this placeholder itself, so keep the braces unescaped
    new_query = urlencode(query, safe="{}")
    return urlunparse(parts._replace(query=new_query))


@payments_bp.post("/checkout")
def start_checkout():
    svc = get_services()
    cfg = svc.settings
    if not cfg.get("STRIPE_SECRET_KEY"):
        raise PaymentNotConfigured("Stripe secret key missing (STRIPE_SECRET_KEY)")
    success_url = cfg.get("STRIPE_SUCCESS_URL")
    cancel_url = cfg.get("STRIPE_CANCEL_URL")
    if not success_url or not cancel_url:
        raise PaymentNotConfigured("Stripe success/cancel URLs not configured")

    data = request.get_json(silent=True) or {}
    booking_id = data.get("bookingId")
    try:
        booking_id = int(booking_id)
    except (TypeError, ValueError):
        raise ValidationError("bookingId required")

    booking = svc.bookings.get(booking_id)
    if booking.status != PENDING:
        raise Conflict(f"Booking is {booking.status}; payment is only possible while pending",
                       booking_id=booking.id)

    try:
        session = svc.gateway.create_checkout(
            booking,
            success_url=_append_query(success_url, {"session_id": "{CHECKOUT_SESSION_ID}"}),
            cancel_url=_append_query(cancel_url, {"booking_id": str(booking.id)}),
        )
    except Exception as exc:
        logger.error("Checkout session for booking %s failed: %s", booking.id, exc)
        log_event("PAYMENT_SESSION_FAIL", actor="customer", entity="booking", entity_id=booking.id,
                  metadata={"error": str(exc)})
        raise CheckoutFailed(booking_id=booking.id) from exc

    booking.stripe_session_id = session["id"]
    db.session.commit()

    log_event("PAYMENT_SESSION_CREATED", actor="customer", entity="booking", entity_id=booking.id,
              metadata={"stripe_session_id": session["id"]})
    return jsonify(checkout_url=session["url"]), 200
