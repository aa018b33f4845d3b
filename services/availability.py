from datetime import timedelta

from models.booking import Booking, ACTIVE_STATUSES
from models.blocked_date import BlockedDate


class AvailabilityResolver:
    """Answers "can this calendar day still be booked?".

    A day is taken by any pending or paid booking, or by an admin block.
    Cancelled and completed bookings never hold a day.
    """

    def __init__(self, session, clock):
        self.session = session
        self.clock = clock

    def has_active_booking(self, day, exclude_booking_id=None):
        q = self.session.query(Booking.id).filter(
            Booking.booking_date == day,
            Booking.status.in_(ACTIVE_STATUSES),
        )
        if exclude_booking_id is not None:
            q = q.filter(Booking.id != exclude_booking_id)
        return q.first() is not None

    def is_blocked(self, day) -> bool:
        return (
            self.session.query(BlockedDate.id)
            .filter(BlockedDate.blocked_date == day)
            .first()
            is not None
        )

    def is_available(self, day, exclude_booking_id=None) -> bool:
        return not self.has_active_booking(day, exclude_booking_id) and not self.is_blocked(day)

    def is_bookable(self, day, exclude_booking_id=None) -> bool:
        # Same-day is not bookable: strictly after today
        if day <= self.clock.today():
            return False
        return self.is_available(day, exclude_booking_id)

    def list_unavailable(self, start, end, exclude_booking_id=None) -> set:
        booked = self.session.query(Booking.booking_date).filter(
            Booking.booking_date >= start,
            Booking.booking_date <= end,
            Booking.status.in_(ACTIVE_STATUSES),
        )
        if exclude_booking_id is not None:
            booked = booked.filter(Booking.id != exclude_booking_id)

        blocked = self.session.query(BlockedDate.blocked_date).filter(
            BlockedDate.blocked_date >= start,
            BlockedDate.blocked_date <= end,
        )
        return {row[0] for row in booked} | {row[0] for row in blocked}

    def available_dates(self, days: int = 30) -> dict:
        today = self.clock.today()
        end = today + timedelta(days=days)
        unavailable = self.list_unavailable(today, end)

        available = []
        current = today + timedelta(days=1)
        while current <= end:
            if current not in unavailable:
                available.append(current)
            current += timedelta(days=1)

        return {
            "available_dates": [d.isoformat() for d in available],
            "unavailable_dates": sorted(d.isoformat() for d in unavailable),
            "start_date": today.isoformat(),
            "end_date": end.isoformat(),
        }
