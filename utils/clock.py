from datetime import datetime, timedelta
from zoneinfo import ZoneInfo


class Clock:
    """Wall clock pinned to the booking timezone.

    Every "today", "tomorrow" and "current hour" in the booking core is read
    from here so the server clock and the customer-facing time agree.
    """

    def __init__(self, tz_name: str):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self):
        return self.now().date()

    def tomorrow(self):
        return self.today() + timedelta(days=1)

    def timestamp(self) -> float:
        return self.now().timestamp()
