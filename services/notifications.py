"""Transactional email. The booking core depends only on `send(payload) -> bool`."""
import logging
from datetime import date

from utils.emailer import send_email

logger = logging.getLogger(__name__)


def _fmt_date(value):
    if isinstance(value, str):
        value = date.fromisoformat(value)
    return value.strftime("%A, %d %B %Y")


def _fmt_price(value):
    return f"RM{value}"


def _links(ctx):
    lines = []
    if ctx.get("reschedule_url"):
        lines.append(f"Need to move it? Reschedule here: {ctx['reschedule_url']}")
    if ctx.get("cancel_url"):
        lines.append(f"Can't make it? Cancel here: {ctx['cancel_url']}")
    return "\n".join(lines)


def _details(ctx):
    return (
        f"Service: {ctx['service_name']}\n"
        f"Date: {_fmt_date(ctx['booking_date'])}\n"
        f"Time: {ctx['booking_time']}\n"
    )


def booking_confirmation(ctx):
    body = (
        f"Hi {ctx['customer_name']},\n\n"
        "Your booking is confirmed. Thank you for your payment.\n\n"
        f"{_details(ctx)}"
        f"Amount paid: {_fmt_price(ctx['price_paid'])}\n\n"
        "The meeting link will be sent before the session.\n\n"
        f"{_links(ctx)}\n"
    )
    return f"Booking Confirmed: {ctx['service_name']}", body


def admin_new_booking(ctx):
    body = (
        "New paid booking.\n\n"
        f"Customer: {ctx['customer_name']} <{ctx['customer_email']}>\n"
        f"Phone: {ctx.get('customer_phone') or '-'}\n"
        f"{_details(ctx)}"
        f"Amount paid: {_fmt_price(ctx['price_paid'])}\n"
        f"Notes: {ctx.get('notes') or 'None'}\n\n"
        "Remember to add the meeting link in the dashboard.\n"
    )
    return f"New Booking: {ctx['customer_name']}", body


def reminder_24h(ctx):
    meet = ctx.get("google_meet_link")
    body = (
        f"Hi {ctx['customer_name']},\n\n"
        "A quick reminder that your session is tomorrow.\n\n"
        f"{_details(ctx)}"
        + (f"Meeting link: {meet}\n" if meet else "")
        + "\nSee you there.\n"
    )
    return "Reminder: Your session is tomorrow", body


def reminder_1h(ctx):
    body = (
        f"Hi {ctx['customer_name']},\n\n"
        f"Your {ctx['service_name']} session starts in 1 hour, at {ctx['booking_time']}.\n\n"
        f"Join here: {ctx['google_meet_link']}\n"
    )
    return "Your session starts in 1 hour", body


def cancellation_confirmation(ctx):
    refund_line = (
        f"A full refund of {_fmt_price(ctx['price_paid'])} has been issued and should appear in 5-10 business days."
        if ctx.get("refunded") else "No payment was taken for this booking."
    )
    body = (
        f"Hi {ctx['customer_name']},\n\n"
        "Your booking has been cancelled.\n\n"
        f"{_details(ctx)}"
        f"Reason: {ctx.get('reason') or '-'}\n\n"
        f"{refund_line}\n"
    )
    return f"Booking Cancelled: {ctx['service_name']}", body


def cancellation_alert(ctx):
    body = (
        "A booking was cancelled.\n\n"
        f"Customer: {ctx['customer_name']} <{ctx['customer_email']}>\n"
        f"{_details(ctx)}"
        f"Reason: {ctx.get('reason') or '-'}\n"
        f"Refunded: {'yes' if ctx.get('refunded') else 'no'} ({_fmt_price(ctx['price_paid'])})\n"
    )
    return f"Booking Cancelled: {ctx['customer_name']}", body


def reschedule_confirmation(ctx):
    body = (
        f"Hi {ctx['customer_name']},\n\n"
        f"Your session has been moved from {_fmt_date(ctx['original_date'])}.\n\n"
        f"{_details(ctx)}\n"
        f"{_links(ctx)}\n"
    )
    return f"Booking Rescheduled: {ctx['service_name']}", body


def reschedule_alert(ctx):
    body = (
        "A booking was rescheduled.\n\n"
        f"Customer: {ctx['customer_name']} <{ctx['customer_email']}>\n"
        f"From: {_fmt_date(ctx['original_date'])}\n"
        f"{_details(ctx)}"
    )
    return f"Booking Rescheduled: {ctx['customer_name']}", body


TEMPLATES = {
    "booking_confirmation": booking_confirmation,
    "admin_new_booking": admin_new_booking,
    "reminder_24h": reminder_24h,
    "reminder_1h": reminder_1h,
    "cancellation_confirmation": cancellation_confirmation,
    "cancellation_alert": cancellation_alert,
    "reschedule_confirmation": reschedule_confirmation,
    "reschedule_alert": reschedule_alert,
}


def booking_context(booking, **extra):
    ctx = {
        "booking_id": booking.id,
        "customer_name": booking.customer_name,
        "customer_email": booking.customer_email,
        "customer_phone": booking.customer_phone,
        "service_name": booking.service.name if booking.service else "Session",
        "booking_date": booking.booking_date.isoformat(),
        "booking_time": booking.booking_time.strftime("%H:%M"),
        "price_paid": booking.price_paid or 0,
        "google_meet_link": booking.google_meet_link,
        "notes": booking.notes,
    }
    ctx.update(extra)
    return ctx


class Notifier:
    def send(self, payload: dict) -> bool:
        raise NotImplementedError


class EmailNotifier(Notifier):
    """Renders a template and sends it over SMTP using the app's SMTP_* settings."""

    def __init__(self, settings):
        self.settings = settings

    def send(self, payload):
        template = TEMPLATES.get(payload.get("template"))
        if template is None:
            logger.error("Unknown email template %r", payload.get("template"))
            return False

        subject, body = template(payload.get("context") or {})
        ok, error = send_email(self.settings, payload.get("to"), subject, body)
        if not ok:
            logger.warning("Email %s to %s not sent: %s", payload.get("template"), payload.get("to"), error)
        return ok


def notify(notifier, template, to, context) -> bool:
    """Best-effort send used after a state change has already been committed."""
    if notifier is None or not to:
        return False
    try:
        return bool(notifier.send({"template": template, "to": to, "context": context}))
    except Exception:
        logger.exception("Notifier raised while sending %s to %s", template, to)
        return False
