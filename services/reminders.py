"""Hourly reminder sweeps.

The persisted `reminder_*_sent` flags carry the exactly-once guarantee, so
overlapping or repeated runs are safe without any job locking.
"""
import logging

from models.booking import Booking, PAID
from services.notifications import booking_context

logger = logging.getLogger(__name__)


class ReminderScheduler:
    def __init__(self, session, notifier, clock):
        self.session = session
        self.notifier = notifier
        self.clock = clock

    def run(self) -> dict:
        return {
            "reminder_24h": self.sweep_24h(),
            "reminder_1h": self.sweep_1h(),
        }

    def sweep_24h(self) -> dict:
        rows = (
            self.session.query(Booking)
            .filter(
                Booking.booking_date == self.clock.tomorrow(),
                Booking.status == PAID,
                Booking.reminder_24h_sent.is_(False),
            )
            .order_by(Booking.id.asc())
            .all()
        )
        return self._dispatch(rows, "reminder_24h", Booking.reminder_24h_sent)

    def sweep_1h(self) -> dict:
        now = self.clock.now()
        rows = (
            self.session.query(Booking)
            .filter(
                Booking.booking_date == now.date(),
                Booking.status == PAID,
                Booking.reminder_1h_sent.is_(False),
                Booking.google_meet_link.isnot(None),
                Booking.google_meet_link != "",
            )
            .order_by(Booking.id.asc())
            .all()
        )
        due = [b for b in rows if b.booking_time.hour == now.hour + 1]
        return self._dispatch(due, "reminder_1h", Booking.reminder_1h_sent)

    def _dispatch(self, bookings, template, flag) -> dict:
        result = {"sent": 0, "errors": 0}
        for booking in bookings:
            try:
                ok = self.notifier.send({
                    "template": template,
                    "to": booking.customer_email,
                    "context": booking_context(booking),
                })
            except Exception:
                logger.exception("%s send raised for booking %s", template, booking.id)
                ok = False

            if not ok:
                result["errors"] += 1
                logger.warning("%s not sent for booking %s", template, booking.id)
                continue

            # Conditional flip: a concurrent sweep that got here first wins
            self.session.query(Booking).filter(
                Booking.id == booking.id, flag.is_(False)
            ).update({flag: True}, synchronize_session=False)
            self.session.commit()
            result["sent"] += 1

        logger.info("%s sweep: %s", template, result)
        return result
