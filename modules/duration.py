import datetime
import logging
from models.booking_model import RentalDuration

logger = logging.getLogger(__name__)

MIN_RENTAL_HOURS = 24
MAX_RENTAL_DAYS = 30


def _combine(day, time_of_day):
    """Combine 'YYYY-MM-DD' and 'HH:MM' into a naive datetime (facility local time)."""
    return datetime.datetime.strptime(f"{day}T{time_of_day}", "%Y-%m-%dT%H:%M")


def format_duration(days, remaining_hours):
    if remaining_hours > 0:
        return f"{days}d {remaining_hours}h"
    return f"{days} day" if days == 1 else f"{days} days"


def calculate_rental_duration(pickup_date, dropoff_date, pickup_time, dropoff_time):
    """Billable duration between pickup and drop-off.

    Returns None when any of the four inputs is missing or cannot be parsed.
    A rental is valid from exactly 24 hours up to and including 30 x 24 hours.
    """
    if not pickup_date or not dropoff_date or not pickup_time or not dropoff_time:
        return None

    try:
        pickup = _combine(pickup_date, pickup_time)
        dropoff = _combine(dropoff_date, dropoff_time)
    except ValueError:
        logger.warning(f"Unparseable rental period: {pickup_date} {pickup_time} -> {dropoff_date} {dropoff_time}")
        return None

    hours = int((dropoff - pickup).total_seconds() // 3600)
    days = hours // 24
    remaining_hours = hours % 24

    return RentalDuration(
        hours=hours,
        days=days,
        remaining_hours=remaining_hours,
        is_valid=MIN_RENTAL_HOURS <= hours <= MAX_RENTAL_DAYS * 24,
        formatted=format_duration(days, remaining_hours),
    )


def _parse_day(value):
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(str(value)[:10])


def expand_blocked_dates(blocked_ranges):
    """Expand inclusive blocked ranges into the set of 'YYYY-MM-DD' days they cover."""
    days = set()
    for blocked in blocked_ranges:
        start = _parse_day(blocked.start_date)
        end = _parse_day(blocked.end_date)
        current = start
        while current <= end:
            days.add(current.isoformat())
            current += datetime.timedelta(days=1)
    return days


def is_date_blocked(day, blocked_ranges):
    """True if the given day falls inside any blocked range (bounds inclusive)."""
    if not day:
        return False
    try:
        target = _parse_day(day)
    except ValueError:
        return False
    for blocked in blocked_ranges:
        if _parse_day(blocked.start_date) <= target <= _parse_day(blocked.end_date):
            return True
    return False
