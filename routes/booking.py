import logging

from flask import Blueprint, request, jsonify

from models.service import Service
from security.rate_limit import rate_limited
from services import get_services
from services.errors import CheckoutFailed, NotFound, PaymentNotConfigured, ValidationError

logger = logging.getLogger(__name__)

booking_bp = Blueprint("booking", __name__)


# ---------- PUBLIC: services ----------
@booking_bp.get("/services")
def list_services():
    rows = (
        Service.query
        .filter_by(is_active=True)
        .order_by(Service.sort_order.asc(), Service.id.asc())
        .all()
    )
    return jsonify(services=[s.to_dict() for s in rows]), 200


# ---------- PUBLIC: calendar ----------
@booking_bp.get("/bookings/available")
def available_dates():
    svc = get_services()
    days = svc.settings.get("AVAILABILITY_WINDOW_DAYS", 30)
    return jsonify(svc.availability.available_dates(days)), 200


# ---------- PUBLIC: create pending booking (DOUBLE-BOOKING SAFE) ----------
@booking_bp.post("/bookings")
@rate_limited("booking_create", "BOOKING_RATE_WINDOW_SECONDS", "BOOKING_RATE_MAX_REQUESTS")
def create_booking():
    data = request.get_json(silent=True) or {}
    booking = get_services().bookings.create(
        data.get("serviceId"),
        data.get("date"),
        data.get("time"),
        {
            "name": data.get("name"),
            "email": data.get("email"),
            "phone": data.get("phone"),
            "notes": data.get("notes"),
        },
    )
    return jsonify(success=True, bookingId=booking.id, status=booking.status), 201


# ---------- PUBLIC: summary after Stripe redirects back ----------
@booking_bp.get("/bookings/success")
def booking_success():
    session_id = request.args.get("session_id")
    if not session_id:
        raise ValidationError("Session ID required")

    svc = get_services()
    if not svc.settings.get("STRIPE_SECRET_KEY"):
        raise PaymentNotConfigured()

    try:
        session = svc.gateway.retrieve_checkout(session_id)
    except Exception as exc:
        logger.error("Retrieving checkout session %s failed: %s", session_id, exc)
        raise CheckoutFailed("Could not load payment details. Please try again.") from exc
    if session is None:
        raise NotFound()

    raw_id = session.get("client_reference_id") or session.get("metadata", {}).get("booking_id")
    if not raw_id:
        raise NotFound()

    try:
        booking_id = int(raw_id)
    except (TypeError, ValueError):
        raise NotFound()
    booking = svc.bookings.get(booking_id)
    summary = booking.summary()
    return jsonify(booking={
        "service_name": summary["service_name"],
        "booking_date": summary["booking_date"],
        "booking_time": summary["booking_time"],
        "customer_email": summary["customer_email"],
        "status": summary["status"],
    }), 200
