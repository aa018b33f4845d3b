from datetime import time

from models import db
from models.booking import CANCELLED, PAID, PENDING

from conftest import make_booking

TOMORROW = "2025-02-21"
TODAY = "2025-02-20"


class TestDayBefore:
    def test_reminds_paid_bookings_for_tomorrow_once(self, services, service, notifier):
        booking = make_booking(service, TOMORROW, status=PAID)

        first = services.reminders.sweep_24h()
        second = services.reminders.sweep_24h()

        assert first == {"sent": 1, "errors": 0}
        assert second == {"sent": 0, "errors": 0}
        assert notifier.templates() == ["reminder_24h"]
        assert notifier.sent[0]["to"] == "aina@example.com"
        db.session.refresh(booking)
        assert booking.reminder_24h_sent is True

    def test_skips_unpaid_cancelled_and_other_days(self, services, service, notifier):
        make_booking(service, "2025-02-22", status=PAID)
        make_booking(service, TOMORROW, status=CANCELLED)

        assert services.reminders.sweep_24h() == {"sent": 0, "errors": 0}
        assert notifier.sent == []

    def test_pending_booking_is_not_reminded(self, services, service, notifier):
        make_booking(service, TOMORROW, status=PENDING)

        services.reminders.sweep_24h()

        assert notifier.sent == []

    def test_failed_send_leaves_flag_for_next_run(self, services, service, notifier):
        failing = make_booking(service, TOMORROW, status=PAID, email="bounce@example.com")
        notifier.fail_to.add("bounce@example.com")

        assert services.reminders.sweep_24h() == {"sent": 0, "errors": 1}
        db.session.refresh(failing)
        assert failing.reminder_24h_sent is False

        notifier.fail_to.clear()
        assert services.reminders.sweep_24h() == {"sent": 1, "errors": 0}

    def test_failed_day_before_send_does_not_stop_hour_before_sweep(self, services, service, notifier, clock):
        make_booking(service, TOMORROW, status=PAID, email="bounce@example.com",
                     meet_link="https://meet.google.com/abc-defg-hij")
        make_booking(service, TODAY, status=PAID, booking_time=time(10, 0),
                     meet_link="https://meet.google.com/xyz-uvwx-rst")
        notifier.fail_to.add("bounce@example.com")

        results = services.reminders.run()

        assert results["reminder_24h"] == {"sent": 0, "errors": 1}
        assert results["reminder_1h"] == {"sent": 1, "errors": 0}
        assert notifier.templates() == ["reminder_1h"]


class TestHourBefore:
    def test_reminds_bookings_starting_next_hour(self, services, service, notifier):
        booking = make_booking(service, TODAY, status=PAID, booking_time=time(10, 30),
                               meet_link="https://meet.google.com/abc-defg-hij")

        assert services.reminders.sweep_1h() == {"sent": 1, "errors": 0}
        assert notifier.sent[0]["context"]["google_meet_link"] == "https://meet.google.com/abc-defg-hij"
        db.session.refresh(booking)
        assert booking.reminder_1h_sent is True

        assert services.reminders.sweep_1h() == {"sent": 0, "errors": 0}

    def test_needs_a_meeting_link(self, services, service, notifier):
        make_booking(service, TODAY, status=PAID, booking_time=time(10, 0))

        assert services.reminders.sweep_1h() == {"sent": 0, "errors": 0}
        assert notifier.sent == []

    def test_ignores_bookings_in_other_hours(self, services, service, notifier, clock):
        make_booking(service, TODAY, status=PAID, booking_time=time(14, 0),
                     meet_link="https://meet.google.com/abc-defg-hij")

        assert services.reminders.sweep_1h()["sent"] == 0

        clock.advance(hours=4)  # 13:30
        assert services.reminders.sweep_1h()["sent"] == 1

    def test_late_evening_sweep_finds_nothing(self, services, service, clock):
        make_booking(service, TOMORROW, status=PAID, booking_time=time(0, 0),
                     meet_link="https://meet.google.com/abc-defg-hij")
        clock.advance(hours=14)  # 23:30

        assert services.reminders.sweep_1h() == {"sent": 0, "errors": 0}
