"""Booking state machine: pending -> paid -> completed, with cancelled reachable
from pending or paid and never left."""
import calendar
import logging
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError

from models.booking import (
    Booking, CANCELLED, COMPLETED, PAID, PENDING, STATUSES, TRANSITIONS,
)
from models.service import Service
from services.errors import (
    AlreadyCancelled, AlreadyPaid, BookingCancelled, Conflict, DateUnavailable,
    NotFound, ServiceNotFound, ValidationError,
)
from services.notifications import booking_context, notify
from services.refunds import RefundOrchestrator
from utils.audit import log_event
from utils.parsing import is_valid_email, normalize_email, parse_date, parse_time

logger = logging.getLogger(__name__)

ACTORS = ("customer", "admin", "system")
ADMIN_EDITABLE_FIELDS = ("google_meet_link", "admin_notes", "status", "booking_time")


def _append_note(existing, line):
    return f"{existing or ''}\n\n{line}".strip()


def _text(value, field):
    """Stripped string for an optional free-text field; non-strings are rejected."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip()


class BookingManager:
    def __init__(self, session, resolver, clock, notifier=None, codec=None,
                 gateway=None, settings=None):
        self.session = session
        self.resolver = resolver
        self.clock = clock
        self.notifier = notifier
        self.codec = codec
        self.settings = settings or {}
        self.refunds = RefundOrchestrator(self, gateway, notifier)

    # ---------- lookups ----------
    def get(self, booking_id) -> Booking:
        booking = self.session.get(Booking, booking_id) if booking_id is not None else None
        if booking is None:
            raise NotFound(booking_id=booking_id)
        return booking

    def get_for_customer(self, booking_id, email) -> Booking:
        """Load a booking only if it belongs to `email` (self-service links)."""
        booking = self.get(booking_id)
        if normalize_email(booking.customer_email) != normalize_email(email):
            raise NotFound(booking_id=booking_id)
        return booking

    def get_for_claims(self, claims) -> Booking:
        return self.get_for_customer(claims.booking_id, claims.email)

    def list(self, month=None, status=None):
        q = self.session.query(Booking)
        if month:
            try:
                year, mon = (int(part) for part in month.split("-"))
                start = date(year, mon, 1)
            except ValueError:
                raise ValidationError("Invalid month. Use YYYY-MM")
            end = date(year, mon, calendar.monthrange(year, mon)[1])
            q = q.filter(Booking.booking_date >= start, Booking.booking_date <= end)
        if status:
            if status not in STATUSES:
                raise ValidationError(f"Unknown status: {status}")
            q = q.filter(Booking.status == status)
        return q.order_by(Booking.booking_date.asc()).all()

    # ---------- self-service links ----------
    def self_service_links(self, booking) -> dict:
        if self.codec is None:
            return {}
        token = self.codec.issue(booking.id, booking.customer_email)
        site = (self.settings.get("SITE_URL") or "").rstrip("/")
        return {
            "token": token,
            "cancel_url": f"{site}/booking/cancel/{token}",
            "reschedule_url": f"{site}/booking/reschedule/{token}",
        }

    def notify_pair(self, customer_template, admin_template, booking, **extra):
        ctx = booking_context(booking, **extra)
        notify(self.notifier, customer_template, booking.customer_email, ctx)
        notify(self.notifier, admin_template, self.settings.get("ADMIN_EMAIL"), ctx)

    # ---------- create ----------
    def create(self, service_id, booking_date, booking_time, customer) -> Booking:
        name = _text(customer.get("name"), "name")
        email = normalize_email(_text(customer.get("email"), "email"))
        phone = _text(customer.get("phone"), "phone") or None
        notes = _text(customer.get("notes"), "notes") or None

        if not service_id or not booking_date or not name or not email:
            raise ValidationError("Missing required fields")
        if not is_valid_email(email):
            raise ValidationError("Invalid email address")
        try:
            service_id = int(service_id)
        except (TypeError, ValueError):
            raise ValidationError("Invalid serviceId")
        try:
            day = parse_date(booking_date)
            slot = parse_time(booking_time or self.settings.get("DEFAULT_BOOKING_TIME", "10:00"))
        except ValueError:
            raise ValidationError("Invalid date or time. Use YYYY-MM-DD and HH:MM")

        service = self.session.get(Service, service_id)
        if service is None or not service.is_active:
            raise ServiceNotFound()

        if day <= self.clock.today():
            raise DateUnavailable("Please choose a date after today")
        if self.resolver.is_blocked(day):
            raise DateUnavailable("This date is blocked")
        if not self.resolver.is_available(day):
            raise DateUnavailable()

        booking = Booking(
            service_id=service.id,
            booking_date=day,
            booking_time=slot,
            customer_name=name,
            customer_email=email,
            customer_phone=phone,
            notes=notes,
            price_paid=service.price,
            status=PENDING,
        )
        self.session.add(booking)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            # Unique index uq_bookings_active_date triggers here
            log_event("BOOKING_FAIL_DATE_TAKEN", actor="customer", entity="booking",
                      metadata={"booking_date": day.isoformat()})
            raise DateUnavailable()

        log_event("BOOKING_CREATE", actor="customer", entity="booking", entity_id=booking.id,
                  metadata={"booking_date": day.isoformat(), "service_id": service.id})
        return booking

    # ---------- payment ----------
    def mark_paid(self, booking_id, payment_ref, session_id=None):
        """Flip pending -> paid. Returns (booking, changed).

        Redelivery with the same payment reference is a no-op (changed=False).
        """
        if not payment_ref:
            raise ValidationError("Payment reference required")
        booking = self.get(booking_id)
        self._check_payable(booking, payment_ref)

        values = {Booking.status: PAID, Booking.stripe_payment_id: payment_ref,
                  Booking.updated_at: datetime.utcnow()}
        if session_id:
            values[Booking.stripe_session_id] = session_id
        rows = (
            self.session.query(Booking)
            .filter(Booking.id == booking.id, Booking.status == PENDING)
            .update(values, synchronize_session=False)
        )
        self.session.commit()
        self.session.refresh(booking)

        if rows == 0:
            # lost a race with a concurrent delivery; re-evaluate against fresh state
            self._check_payable(booking, payment_ref)
            return booking, False

        log_event("BOOKING_PAID", actor="stripe", entity="booking", entity_id=booking.id,
                  metadata={"stripe_payment_id": payment_ref})
        return booking, True

    def _check_payable(self, booking, payment_ref):
        if booking.status == PAID:
            if booking.stripe_payment_id == payment_ref:
                return
            raise AlreadyPaid(booking_id=booking.id)
        if booking.status == CANCELLED:
            raise AlreadyCancelled(booking_id=booking.id)
        if booking.status == COMPLETED:
            raise AlreadyPaid(booking_id=booking.id)

    # ---------- cancel ----------
    def cancel(self, booking_id, actor, reason, customer_email=None):
        """Cancel a booking, refunding first when it was paid. Returns {"refunded": bool}."""
        if actor not in ACTORS:
            raise ValidationError(f"Unknown actor: {actor}")
        reason = _text(reason, "reason")
        min_len = int(self.settings.get("CANCEL_REASON_MIN_LENGTH", 3))
        if actor == "customer" and len(reason) < min_len:
            raise ValidationError("Please provide a reason for cancellation")
        if not reason:
            reason = "Cancelled by admin" if actor == "admin" else "Cancelled"

        if customer_email is not None:
            booking = self.get_for_customer(booking_id, customer_email)
        else:
            booking = self.get(booking_id)

        if booking.status == CANCELLED:
            raise AlreadyCancelled(booking_id=booking.id)
        if booking.status == COMPLETED:
            raise Conflict("Completed bookings cannot be cancelled", booking_id=booking.id)

        return self.refunds.refund_and_cancel(booking, reason, actor)

    def record_cancellation(self, booking, actor, reason):
        """Persist the cancelled state and its audit line. No refund logic here."""
        stamp = self.clock.now().strftime("%Y-%m-%d %H:%M")
        line = f"[CANCELLED BY {actor.upper()} {stamp}] {reason}"
        values = {Booking.status: CANCELLED, Booking.updated_at: datetime.utcnow()}
        if actor == "customer":
            values[Booking.notes] = _append_note(booking.notes, line)
        else:
            values[Booking.admin_notes] = _append_note(booking.admin_notes, line)

        rows = (
            self.session.query(Booking)
            .filter(Booking.id == booking.id, Booking.status.in_((PENDING, PAID)))
            .update(values, synchronize_session=False)
        )
        self.session.commit()
        self.session.refresh(booking)
        if rows == 0:
            raise AlreadyCancelled(booking_id=booking.id)

        log_event("BOOKING_CANCEL", actor=actor, entity="booking", entity_id=booking.id,
                  metadata={"reason": reason})
        return booking

    # ---------- reschedule ----------
    def reschedule(self, booking_id, new_date, new_time=None, customer_email=None) -> Booking:
        if not new_date:
            raise ValidationError("Please select a new date")
        try:
            day = parse_date(new_date)
            slot = parse_time(new_time) if new_time else None
        except ValueError:
            raise ValidationError("Invalid date or time. Use YYYY-MM-DD and HH:MM")

        if customer_email is not None:
            booking = self.get_for_customer(booking_id, customer_email)
        else:
            booking = self.get(booking_id)

        if booking.status == CANCELLED:
            raise BookingCancelled(booking_id=booking.id)
        if booking.status == COMPLETED:
            raise Conflict("Completed bookings cannot be rescheduled", booking_id=booking.id)

        if day <= self.clock.today():
            raise DateUnavailable("Please choose a date after today")
        if not self.resolver.is_available(day, exclude_booking_id=booking.id):
            raise DateUnavailable("This date is already booked. Please select another date.")

        original_date = booking.booking_date
        booking.booking_date = day
        if slot is not None:
            booking.booking_time = slot
        booking.notes = _append_note(
            booking.notes, f"[RESCHEDULED] From {original_date.isoformat()} to {day.isoformat()}"
        )
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            log_event("RESCHEDULE_FAIL_DATE_TAKEN", actor="customer", entity="booking",
                      entity_id=booking_id, metadata={"new_date": day.isoformat()})
            raise DateUnavailable("This date is already booked. Please select another date.")

        log_event("BOOKING_RESCHEDULE", actor="customer", entity="booking", entity_id=booking.id,
                  metadata={"from": original_date.isoformat(), "to": day.isoformat()})

        links = self.self_service_links(booking)
        self.notify_pair("reschedule_confirmation", "reschedule_alert", booking,
                         original_date=original_date.isoformat(),
                         cancel_url=links.get("cancel_url"),
                         reschedule_url=links.get("reschedule_url"))
        return booking

    # ---------- admin update ----------
    def update(self, booking_id, patch) -> Booking:
        """Apply an admin patch. Every field is validated before any is written."""
        patch = patch or {}
        unknown = sorted(set(patch) - set(ADMIN_EDITABLE_FIELDS))
        if unknown:
            raise ValidationError(f"Field(s) not editable: {', '.join(unknown)}")

        booking = self.get(booking_id)
        values = {}

        if "status" in patch and patch["status"] != booking.status:
            new_status = patch["status"]
            if new_status not in STATUSES:
                raise ValidationError(f"Unknown status: {new_status}")
            if new_status == CANCELLED:
                raise ValidationError("Use the cancel action so any payment is refunded")
            if new_status == PAID:
                raise ValidationError("Bookings are marked paid by the payment webhook only")
            if new_status not in TRANSITIONS[booking.status]:
                raise ValidationError(f"Cannot change status from {booking.status} to {new_status}")
            values["status"] = new_status

        if "booking_time" in patch:
            try:
                values["booking_time"] = parse_time(patch["booking_time"])
            except (TypeError, ValueError):
                raise ValidationError("Invalid time. Use HH:MM")

        if "google_meet_link" in patch:
            values["google_meet_link"] = _text(patch["google_meet_link"], "google_meet_link") or None

        if "admin_notes" in patch:
            values["admin_notes"] = _text(patch["admin_notes"], "admin_notes") or None

        changes = {}
        for field, value in values.items():
            old = getattr(booking, field)
            setattr(booking, field, value)
            if field == "status":
                changes[field] = (old, value)
            elif field == "booking_time":
                changes[field] = value.strftime("%H:%M")
            elif field == "admin_notes":
                changes[field] = True
            else:
                changes[field] = value

        self.session.commit()
        log_event("BOOKING_ADMIN_UPDATE", actor="admin", entity="booking", entity_id=booking.id,
                  metadata=changes)
        return booking
