from flask import Blueprint, jsonify, request
from sqlalchemy.exc import IntegrityError

from models import db
from models.blocked_date import BlockedDate
from models.service import Service
from security.rbac import require_admin
from services import get_services
from services.errors import ServiceNotFound, ValidationError
from utils.audit import log_event
from utils.parsing import parse_date

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")

SERVICE_FIELDS = ("name", "description", "price", "price_label", "duration_label",
                  "is_active", "is_featured", "sort_order")


# ---------- ADMIN: bookings ----------
@admin_bp.get("/bookings")
@require_admin
def list_bookings():
    rows = get_services().bookings.list(
        month=request.args.get("month"), status=request.args.get("status")
    )
    return jsonify(bookings=[b.to_dict() for b in rows]), 200


@admin_bp.get("/bookings/<int:booking_id>")
@require_admin
def get_booking(booking_id: int):
    booking = get_services().bookings.get(booking_id)
    return jsonify(booking=booking.to_dict()), 200


@admin_bp.patch("/bookings/<int:booking_id>")
@require_admin
def update_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    booking = get_services().bookings.update(booking_id, data)
    return jsonify(booking=booking.to_dict()), 200


@admin_bp.delete("/bookings/<int:booking_id>")
@require_admin
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    result = get_services().bookings.cancel(booking_id, "admin", data.get("reason"))
    return jsonify(success=True, refunded=result["refunded"]), 200


# ---------- ADMIN: blocked dates ----------
@admin_bp.get("/blocked-dates")
@require_admin
def list_blocked_dates():
    rows = BlockedDate.query.order_by(BlockedDate.blocked_date.asc()).all()
    return jsonify(blockedDates=[r.to_dict() for r in rows]), 200


@admin_bp.post("/blocked-dates")
@require_admin
def block_date():
    data = request.get_json(silent=True) or {}
    try:
        day = parse_date(data.get("date"))
    except (TypeError, ValueError):
        raise ValidationError("Invalid date. Use YYYY-MM-DD")
    reason = (data.get("reason") or "").strip() or None

    row = BlockedDate(blocked_date=day, reason=reason)
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Date already blocked"), 409

    # Existing bookings on this date are left alone; the operator handles them
    clash = get_services().availability.has_active_booking(day)
    log_event("DATE_BLOCK", actor="admin", entity="blocked_date", entity_id=row.id,
              metadata={"date": day.isoformat(), "reason": reason})
    return jsonify(blockedDate=row.to_dict(), hasBooking=clash), 201


@admin_bp.delete("/blocked-dates")
@require_admin
def unblock_date():
    raw = request.args.get("date")
    if not raw:
        raise ValidationError("Date required")
    try:
        day = parse_date(raw)
    except ValueError:
        raise ValidationError("Invalid date. Use YYYY-MM-DD")

    deleted = BlockedDate.query.filter_by(blocked_date=day).delete()
    db.session.commit()
    log_event("DATE_UNBLOCK", actor="admin", entity="blocked_date", metadata={"date": day.isoformat()})
    return jsonify(success=True, removed=deleted), 200


# ---------- ADMIN: services ----------
def _apply_service_fields(service, data):
    for key in SERVICE_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if key in ("price", "sort_order"):
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise ValidationError(f"{key} must be an integer")
            if value < 0:
                raise ValidationError(f"{key} must not be negative")
        elif key in ("is_active", "is_featured"):
            value = bool(value)
        elif isinstance(value, str):
            value = value.strip() or None
        setattr(service, key, value)
    if not service.name:
        raise ValidationError("Service name required")


@admin_bp.get("/services")
@require_admin
def list_all_services():
    rows = Service.query.order_by(Service.sort_order.asc(), Service.id.asc()).all()
    return jsonify(services=[s.to_dict() for s in rows]), 200


@admin_bp.post("/services")
@require_admin
def create_service():
    data = request.get_json(silent=True) or {}
    service = Service()
    _apply_service_fields(service, data)
    db.session.add(service)
    db.session.commit()

    log_event("SERVICE_CREATE", actor="admin", entity="service", entity_id=service.id)
    return jsonify(service=service.to_dict()), 201


@admin_bp.patch("/services/<int:service_id>")
@require_admin
def update_service(service_id: int):
    service = db.session.get(Service, service_id)
    if service is None:
        raise ServiceNotFound()

    data = request.get_json(silent=True) or {}
    _apply_service_fields(service, data)
    # Booking.price_paid is a snapshot, so price edits never touch existing bookings
    db.session.commit()

    log_event("SERVICE_UPDATE", actor="admin", entity="service", entity_id=service.id,
              metadata={"fields": sorted(k for k in data if k in SERVICE_FIELDS)})
    return jsonify(service=service.to_dict()), 200
