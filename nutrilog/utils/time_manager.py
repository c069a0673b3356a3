"""
Civil day/week boundaries in the configured reference timezone.

Every translation between absolute instants and civil dates goes through
TimeManager. Boundaries are returned as aware UTC datetimes; instants are
carried at millisecond precision, so a day's ``end`` is the last millisecond
before the next civil midnight.
"""
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Callable, NamedTuple, Optional
from zoneinfo import ZoneInfo

from nutrilog.config import get_settings
from nutrilog.errors import ValidationError

ONE_MS = timedelta(milliseconds=1)

WEEKDAY_SHORT = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
WEEKDAY_LONG = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
MONTH_SHORT = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
               "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
MONTH_LONG = ("January", "February", "March", "April", "May", "June", "July",
              "August", "September", "October", "November", "December")


class DateBounds(NamedTuple):
    start: datetime
    end: datetime


def _system_now() -> datetime:
    return datetime.now(timezone.utc)


def truncate_ms(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


class TimeManager:
    """Day and ISO-week boundaries for one civil timezone."""

    def __init__(self, tz_name: str = "Asia/Taipei", now_fn: Optional[Callable[[], datetime]] = None):
        self.tz_name = tz_name
        self.tz = ZoneInfo(tz_name)
        self._now_fn = now_fn or _system_now

    # -- clock -------------------------------------------------------------

    def set_time_function(self, now_fn: Callable[[], datetime]) -> None:
        """Replace the clock (tests)."""
        self._now_fn = now_fn

    def reset_time_function(self) -> None:
        self._now_fn = _system_now

    def now(self) -> datetime:
        return self.to_utc(self._now_fn())

    def to_utc(self, value: datetime) -> datetime:
        """Normalize to aware UTC at millisecond precision. Naive values are taken as UTC."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return truncate_ms(value.astimezone(timezone.utc))

    def to_local(self, instant: datetime) -> datetime:
        return self.to_utc(instant).astimezone(self.tz)

    def local_date(self, instant: datetime) -> date:
        return self.to_local(instant).date()

    def start_of_date(self, day: date) -> datetime:
        """First instant of a civil date, as UTC."""
        local_midnight = datetime.combine(day, time.min, tzinfo=self.tz)
        return local_midnight.astimezone(timezone.utc)

    # -- boundaries --------------------------------------------------------

    def get_date_bounds(self, day: date) -> DateBounds:
        start = self.start_of_date(day)
        end = self.start_of_date(day + timedelta(days=1)) - ONE_MS
        return DateBounds(start, end)

    def get_day_bounds(self, instant: Optional[datetime] = None) -> DateBounds:
        if instant is None:
            instant = self.now()
        return self.get_date_bounds(self.local_date(instant))

    def _monday_of(self, instant: datetime) -> date:
        day = self.local_date(instant)
        return day - timedelta(days=day.weekday())

    def get_week_start_date(self, instant: Optional[datetime] = None) -> datetime:
        """Monday 00:00 (reference zone) of the week containing ``instant``."""
        if instant is None:
            instant = self.now()
        return self.start_of_date(self._monday_of(instant))

    def get_week_end_date(self, week_start: datetime) -> datetime:
        """Last millisecond of the Sunday in the week of ``week_start``."""
        monday = self._monday_of(week_start)
        return self.start_of_date(monday + timedelta(days=7)) - ONE_MS

    def get_week_bounds(self, instant: Optional[datetime] = None) -> DateBounds:
        start = self.get_week_start_date(instant)
        return DateBounds(start, self.get_week_end_date(start))

    def week_dates(self, instant: Optional[datetime] = None) -> list[date]:
        """The seven civil dates Monday..Sunday of the week containing ``instant``."""
        if instant is None:
            instant = self.now()
        monday = self._monday_of(instant)
        return [monday + timedelta(days=i) for i in range(7)]

    def seconds_until_next_midnight(self, instant: Optional[datetime] = None) -> float:
        if instant is None:
            instant = self.now()
        tomorrow = self.local_date(instant) + timedelta(days=1)
        return (self.start_of_date(tomorrow) - self.to_utc(instant)).total_seconds()

    # -- civil date strings ------------------------------------------------

    def get_date_string(self, instant: Optional[datetime] = None) -> str:
        if instant is None:
            instant = self.now()
        return self.local_date(instant).isoformat()

    def parse_date_string(self, value: str) -> date:
        try:
            return date.fromisoformat(value.strip())
        except (AttributeError, ValueError):
            raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD")

    # -- display only; never compare these ----------------------------------

    def format_display(self, instant: datetime) -> str:
        local = self.to_local(instant)
        return f"{WEEKDAY_LONG[local.weekday()]}, {MONTH_LONG[local.month - 1]} {local.day}, {local.year}"

    def format_date(self, instant: datetime) -> str:
        local = self.to_local(instant)
        return f"{MONTH_LONG[local.month - 1]} {local.day}, {local.year}"

    def format_time(self, instant: datetime) -> str:
        return self.to_local(instant).strftime("%H:%M")

    def format_date_time(self, instant: datetime) -> str:
        return self.to_local(instant).strftime("%Y-%m-%d %H:%M:%S")

    def format_chart_date(self, instant: datetime) -> str:
        local = self.to_local(instant)
        return f"{local.month}/{local.day}"

    def format_weekday(self, instant: datetime) -> str:
        return WEEKDAY_SHORT[self.to_local(instant).weekday()]

    def format_weekly_range(self, week_start: datetime) -> str:
        start = self.to_local(self.get_week_start_date(week_start))
        end = self.to_local(self.get_week_end_date(week_start))
        return (
            f"{MONTH_SHORT[start.month - 1]} {start.day} - "
            f"{MONTH_SHORT[end.month - 1]} {end.day}"
        )


@lru_cache()
def get_time_manager() -> TimeManager:
    """Process-wide manager for the configured reference zone."""
    return TimeManager(get_settings().REFERENCE_TIMEZONE)
