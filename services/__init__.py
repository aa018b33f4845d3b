from flask import current_app

from services.availability import AvailabilityResolver
from services.gateway import StripeGateway
from services.lifecycle import BookingManager
from services.notifications import EmailNotifier
from services.reconciliation import PaymentReconciler
from services.reminders import ReminderScheduler
from services.tokens import TokenCodec
from utils.clock import Clock

EXTENSION_KEY = "booking"


class BookingServices:
    """Explicitly wired booking core. One instance per app; tests pass fakes in."""

    def __init__(self, session, gateway, notifier, codec, clock, settings):
        self.session = session
        self.gateway = gateway
        self.notifier = notifier
        self.codec = codec
        self.clock = clock
        self.settings = settings

        self.availability = AvailabilityResolver(session, clock)
        self.bookings = BookingManager(
            session, self.availability, clock,
            notifier=notifier, codec=codec, gateway=gateway, settings=settings,
        )
        self.reconciler = PaymentReconciler(self.bookings, gateway)
        self.reminders = ReminderScheduler(session, notifier, clock)


def build_services(app, session, gateway=None, notifier=None, clock=None, codec=None):
    cfg = app.config
    clock = clock or Clock(cfg.get("BOOKING_TIMEZONE", "Asia/Kuala_Lumpur"))
    gateway = gateway or StripeGateway(
        cfg.get("STRIPE_SECRET_KEY"),
        cfg.get("STRIPE_WEBHOOK_SECRET"),
        currency=cfg.get("STRIPE_CURRENCY", "myr"),
    )
    notifier = notifier or EmailNotifier(cfg)
    codec = codec or TokenCodec(
        cfg.get("SELF_SERVICE_TOKEN_SECRET") or cfg["SECRET_KEY"],
        default_ttl=cfg.get("SELF_SERVICE_TOKEN_TTL_SECONDS", 30 * 24 * 60 * 60),
        clock=clock.timestamp,
    )
    return BookingServices(session, gateway, notifier, codec, clock, cfg)


def get_services() -> BookingServices:
    return current_app.extensions[EXTENSION_KEY]
