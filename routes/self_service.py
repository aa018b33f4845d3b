from datetime import timedelta

from flask import Blueprint, request, jsonify

from services import get_services
from services.errors import InvalidToken
from utils.audit import log_event

self_service_bp = Blueprint("self_service", __name__, url_prefix="/booking")


def _claims_or_reject(token):
    claims = get_services().codec.validate(token)
    if claims is None:
        log_event("SELF_SERVICE_TOKEN_INVALID", actor="customer", entity="token",
                  metadata={"path": request.path})
        raise InvalidToken()
    return claims


# ---------- CUSTOMER: cancel via emailed link ----------
@self_service_bp.get("/cancel/<token>")
def cancel_details(token):
    claims = _claims_or_reject(token)
    svc = get_services()
    booking = svc.bookings.get_for_claims(claims)
    return jsonify(booking=booking.summary(), linkExpiresSoon=svc.codec.expires_soon(token)), 200


@self_service_bp.post("/cancel/<token>")
def cancel_booking(token):
    data = request.get_json(silent=True) or {}
    claims = _claims_or_reject(token)

    result = get_services().bookings.cancel(
        claims.booking_id, "customer", data.get("reason"), customer_email=claims.email
    )
    message = (
        "Booking cancelled and refund processed successfully"
        if result["refunded"] else "Booking cancelled successfully"
    )
    return jsonify(success=True, message=message, refunded=result["refunded"]), 200


# ---------- CUSTOMER: reschedule via emailed link ----------
@self_service_bp.get("/reschedule/<token>")
def reschedule_details(token):
    claims = _claims_or_reject(token)
    svc = get_services()
    booking = svc.bookings.get_for_claims(claims)

    today = svc.clock.today()
    window = svc.settings.get("RESCHEDULE_WINDOW_DAYS", 90)
    unavailable = svc.availability.list_unavailable(
        today, today + timedelta(days=window), exclude_booking_id=booking.id
    )
    return jsonify(
        booking=booking.summary(),
        unavailableDates=sorted(d.isoformat() for d in unavailable),
        linkExpiresSoon=svc.codec.expires_soon(token),
    ), 200


@self_service_bp.post("/reschedule/<token>")
def reschedule_booking(token):
    data = request.get_json(silent=True) or {}
    claims = _claims_or_reject(token)

    booking = get_services().bookings.reschedule(
        claims.booking_id, data.get("newDate"), data.get("newTime"), customer_email=claims.email
    )
    return jsonify(
        success=True,
        message="Booking rescheduled successfully",
        newDate=booking.booking_date.isoformat(),
        newTime=booking.booking_time.strftime("%H:%M"),
    ), 200
