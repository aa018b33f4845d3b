"""Booking-core error taxonomy.

Each error carries the HTTP status the transport layer should answer with and
a human-readable message that is safe to show the caller.
"""


class BookingError(Exception):
    status_code = 500
    message = "Booking operation failed"

    def __init__(self, message=None, booking_id=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.booking_id = booking_id


# ---------- validation (user-correctable) ----------
class ValidationError(BookingError):
    status_code = 400
    message = "Invalid request"


# ---------- not found ----------
class NotFound(BookingError):
    status_code = 404
    message = "Booking not found"


class ServiceNotFound(NotFound):
    message = "Service not found"


# ---------- conflicts (non-retryable by the same request) ----------
class Conflict(BookingError):
    status_code = 409
    message = "Booking state conflict"


class DateUnavailable(Conflict):
    message = "This date is no longer available"


class AlreadyPaid(Conflict):
    message = "Booking already paid"


class AlreadyCancelled(Conflict):
    message = "This booking has already been cancelled"


class BookingCancelled(Conflict):
    message = "This booking has been cancelled"


# ---------- authenticity (opaque to the caller) ----------
class AuthenticityError(BookingError):
    status_code = 400
    message = "Invalid or expired link"


class InvalidToken(AuthenticityError):
    pass


class InvalidSignature(AuthenticityError):
    message = "Invalid signature"


# ---------- upstream payment provider ----------
class UpstreamError(BookingError):
    status_code = 502
    message = "Payment provider error"


class RefundFailed(UpstreamError):
    message = "Failed to process refund. Please contact support."


class CheckoutFailed(UpstreamError):
    message = "Could not start payment. Please try again."


class PaymentNotConfigured(BookingError):
    status_code = 500
    message = "Payments are not configured"


class CancellationNotPersisted(BookingError):
    """Refund went through but the cancelled state could not be saved."""
    status_code = 500
    message = "Refund issued but cancellation could not be saved. Support has been notified."
