"""
Working-day calendar in a fixed timezone.

Everything the bot knows about "today", weekends and public holidays goes
through a WorkingCalendar. The holiday table is plain configuration (year to
list of days) so new years can be added in settings without code changes;
a year missing from the table simply has no known holidays.
"""
import calendar
import logging
import re
from datetime import date, datetime, time, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.conf import settings
from django.utils import timezone as dj_timezone

from .exceptions import DateFormatError

logger = logging.getLogger(__name__)

DATE_FORMAT = '%d/%m/%Y'
TIME_FORMAT = '%H:%M'
DATETIME_FORMAT = '%d/%m/%Y %H:%M'
ISO_DATE_FORMAT = '%Y-%m-%d'

TIME_RE = re.compile(r'^([01]?\d|2[0-3]):([0-5]\d)$')

DEFAULT_SCAN_LIMIT = 10


def ordinal(day):
    if 11 <= day % 100 <= 13:
        suffix = 'th'
    else:
        suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(day % 10, 'th')
    return f"{day}{suffix}"


def parse_time(value):
    """Parse an HH:MM string into minutes since midnight"""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    match = TIME_RE.match(str(value or '').strip())
    if not match:
        raise DateFormatError(f"Invalid time '{value}'. Please use HH:MM.", field='time')
    return int(match.group(1)) * 60 + int(match.group(2))


def _normalize_holidays(holidays):
    table = {}
    for year, days in (holidays or {}).items():
        normalized = set()
        for day in days:
            if isinstance(day, date):
                normalized.add(day.strftime(ISO_DATE_FORMAT))
            else:
                normalized.add(str(day).strip())
        table[int(year)] = frozenset(normalized)
    return table


class WorkingCalendar:
    def __init__(self, timezone_name='Australia/Sydney', holidays=None):
        try:
            self.tz = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise DateFormatError(f"Unknown timezone '{timezone_name}'", field='timezone') from e
        self.timezone_name = timezone_name
        self.holidays = _normalize_holidays(holidays)

    # "Now" handling

    def current_date(self, now=None):
        """Current wall-clock datetime in the configured timezone"""
        if now is None:
            now = dj_timezone.now()
        if not isinstance(now, datetime):
            raise DateFormatError(f"Invalid datetime '{now}'", field='now')
        if dj_timezone.is_naive(now):
            return now.replace(tzinfo=self.tz)
        return now.astimezone(self.tz)

    def today(self, now=None):
        return self.current_date(now).date()

    def tomorrow(self, now=None):
        return self.today(now) + timedelta(days=1)

    def to_date(self, value):
        """Coerce a date, datetime or YYYY-MM-DD string to a calendar date"""
        if isinstance(value, datetime):
            return self.current_date(value).date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return datetime.strptime(value.strip(), ISO_DATE_FORMAT).date()
            except ValueError as e:
                raise DateFormatError(f"Invalid date '{value}'. Please use YYYY-MM-DD.") from e
        raise DateFormatError(f"Invalid date '{value}'")

    def start_of_day(self, value):
        return datetime.combine(self.to_date(value), time.min, tzinfo=self.tz)

    def end_of_day(self, value):
        return datetime.combine(self.to_date(value), time.max, tzinfo=self.tz)

    # Working days

    def is_weekend(self, value):
        return self.to_date(value).weekday() >= 5

    def is_public_holiday(self, value):
        day = self.to_date(value)
        return day.strftime(ISO_DATE_FORMAT) in self.holidays.get(day.year, ())

    def is_working_day(self, value):
        return not self.is_weekend(value) and not self.is_public_holiday(value)

    def working_days_between(self, start, end):
        """Working days in the inclusive range [start, end]"""
        day = self.to_date(start)
        end = self.to_date(end)
        count = 0
        while day <= end:
            if self.is_working_day(day):
                count += 1
            day += timedelta(days=1)
        return count

    def iter_working_days(self, start, scan_limit=DEFAULT_SCAN_LIMIT):
        day = self.to_date(start)
        for offset in range(scan_limit):
            candidate = day + timedelta(days=offset)
            if self.is_working_day(candidate):
                yield candidate

    def next_working_days(self, n=3, start=None, now=None, scan_limit=DEFAULT_SCAN_LIMIT):
        """
        The next n working days from start (tomorrow by default).

        At most scan_limit calendar days are looked at, so a long run of
        holidays returns fewer than n days instead of scanning forever.
        """
        if start is None:
            start = self.tomorrow(now)
        days = []
        for day in self.iter_working_days(start, scan_limit=scan_limit):
            days.append(day)
            if len(days) >= n:
                break
        if len(days) < n:
            logger.warning(f"Only found {len(days)} working days in the {scan_limit} days from {start}")
        return days

    def add_months(self, value, months):
        day = self.to_date(value)
        month_index = day.month - 1 + months
        year = day.year + month_index // 12
        month = month_index % 12 + 1
        return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))

    # Display

    def format_date(self, value):
        return self.to_date(value).strftime(DATE_FORMAT)

    def format_time(self, value):
        if isinstance(value, datetime):
            return self.current_date(value).strftime(TIME_FORMAT)
        minutes = parse_time(value)
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    def format_datetime(self, value):
        if not isinstance(value, datetime):
            raise DateFormatError(f"Invalid datetime '{value}'", field='datetime')
        return self.current_date(value).strftime(DATETIME_FORMAT)

    def format_day_heading(self, value):
        day = self.to_date(value)
        return f"{day.strftime('%A')}, {ordinal(day.day)} {day.strftime('%b')}"

    def timezone_label(self, now=None):
        return self.current_date(now).strftime('%Z') or self.timezone_name


@lru_cache
def get_calendar():
    return WorkingCalendar(
        timezone_name=getattr(settings, 'LEAVE_TIMEZONE', 'Australia/Sydney'),
        holidays=getattr(settings, 'LEAVE_PUBLIC_HOLIDAYS', {}),
    )
