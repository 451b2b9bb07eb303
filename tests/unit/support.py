"""Test helpers shared across unit test modules."""

from datetime import datetime
from zoneinfo import ZoneInfo

from slotbook.core.scheduling.clock import Clock
from slotbook.core.scheduling.ledger import Reservation

TZ_NAME = "America/Fortaleza"
TZ = ZoneInfo(TZ_NAME)

# Tuesday; the following Sunday (the closed day) is 2026-10-25
FIXED_NOW = datetime(2026, 10, 20, 10, 30, tzinfo=TZ)
TODAY = "2026-10-20"
TOMORROW = "2026-10-21"


class FixedClock(Clock):
    """Clock frozen at a settable instant."""

    def __init__(self, current: datetime):
        super().__init__(TZ_NAME)
        self.current = current

    def now(self) -> datetime:
        return self.current.astimezone(self.tz)


def make_reservation(user_id: str = "user-1", client_name: str = "John Smith") -> Reservation:
    return Reservation(
        client_name=client_name,
        services="Classic Cut",
        price=30,
        user_id=user_id,
    )
