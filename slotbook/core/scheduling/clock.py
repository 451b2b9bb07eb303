"""Civil-time helpers for the configured business time zone."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from slotbook.config import get_settings


def to_storage(moment: datetime) -> datetime:
    """Convert an aware datetime to the naive-UTC storage convention."""
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class Clock:
    """Reads "now" in the business time zone.

    Tests subclass this and override now().
    """

    def __init__(self, tz_name: Optional[str] = None):
        self.tz = ZoneInfo(tz_name or get_settings().timezone)

    def now(self) -> datetime:
        """Current aware time in the business time zone."""
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def today_str(self) -> str:
        """Today as YYYY-MM-DD."""
        return self.today().isoformat()

    def now_hhmm(self) -> str:
        """Current local time of day as HH:MM."""
        return self.now().strftime("%H:%M")

    def slot_start(self, day: str, slot: str) -> datetime:
        """Aware start instant of a slot on a YYYY-MM-DD day."""
        return datetime.combine(
            date.fromisoformat(day), time.fromisoformat(slot), tzinfo=self.tz
        )

    def day_bounds(self, day: str) -> tuple[datetime, datetime]:
        """Aware [start, end) instants of a whole local day."""
        start = datetime.combine(date.fromisoformat(day), time.min, tzinfo=self.tz)
        return start, start + timedelta(days=1)

    def storage_now(self) -> datetime:
        """Now in the naive-UTC storage convention."""
        return to_storage(self.now())


# Singleton
_clock: Optional[Clock] = None


def get_clock() -> Clock:
    """Get singleton Clock."""
    global _clock
    if _clock is None:
        _clock = Clock()
    return _clock
