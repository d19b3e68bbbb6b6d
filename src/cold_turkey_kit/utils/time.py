import math
import re
from datetime import date, datetime, time, timedelta

from cold_turkey_kit.errors import TemporalErrorReason, TemporalParseError

MONTHS = [
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
]

_TIME_12H = re.compile(
    r"(?P<hour>\d{1,2}):(?P<minute>\d{2})\s*(?P<meridiem>[ap]m)", re.IGNORECASE
)
_TIME_24H = re.compile(r"(?P<hour>\d{1,2}):(?P<minute>\d{2})")

_MONTH = r"(?P<month>[A-Za-z]+\.?)"
_YEAR = r"(?P<year>\d{4})"

# Tried in order. Day-first shapes come before month-first ones and the
# numeric shapes are fixed-width, so at most one shape matches any input.
DATE_FORMATS = [
    ("DD Month YYYY", re.compile(rf"(?P<day>\d{{2}}) {_MONTH} {_YEAR}")),
    ("D Month YYYY", re.compile(rf"(?P<day>\d) {_MONTH} {_YEAR}")),
    ("Month DD YYYY", re.compile(rf"{_MONTH} (?P<day>\d{{2}}),? {_YEAR}")),
    ("Month D YYYY", re.compile(rf"{_MONTH} (?P<day>\d),? {_YEAR}")),
    ("YYYY-MM-DD", re.compile(r"(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})")),
    ("DD/MM/YYYY", re.compile(r"(?P<day>\d{2})/(?P<month>\d{2})/(?P<year>\d{4})")),
]

_DURATION = re.compile(r"(?:(\d+)d)?(?:(\d+)h)?(?:(\d+)m)?")


def parse_clock_time(time_str: str) -> time:
    """Parses clock times like '6:30pm', '06:30 PM', '18:30' or '6:30'."""
    cleaned = time_str.strip()

    match = _TIME_12H.fullmatch(cleaned)
    if match:
        hour, minute = int(match["hour"]), int(match["minute"])
        if not 1 <= hour <= 12 or minute > 59:
            raise TemporalParseError(
                time_str,
                TemporalErrorReason.OUT_OF_RANGE,
                "12-hour times run from 1:00 to 12:59",
            )
        # 12am is midnight, 12pm is noon
        hour = hour % 12 + (12 if match["meridiem"].lower() == "pm" else 0)
        return time(hour, minute)

    match = _TIME_24H.fullmatch(cleaned)
    if match:
        hour, minute = int(match["hour"]), int(match["minute"])
        if hour > 23 or minute > 59:
            raise TemporalParseError(
                time_str,
                TemporalErrorReason.OUT_OF_RANGE,
                "24-hour times run from 0:00 to 23:59",
            )
        return time(hour, minute)

    raise TemporalParseError(
        time_str, TemporalErrorReason.UNPARSEABLE, "expected e.g. 18:30, 6:30pm"
    )


def _month_number(token: str, date_str: str) -> int:
    name = token.lower().rstrip(".")
    for number, month in enumerate(MONTHS, start=1):
        if name in (month, month[:3]) or (name == "sept" and month == "september"):
            return number

    candidates = [month.capitalize() for month in MONTHS if month.startswith(name)]
    if len(candidates) > 1:
        raise TemporalParseError(
            date_str,
            TemporalErrorReason.AMBIGUOUS_FORMAT,
            f"'{token}' could be {' or '.join(candidates)}",
        )
    raise TemporalParseError(
        date_str, TemporalErrorReason.UNPARSEABLE, f"unknown month '{token}'"
    )


def parse_date(date_str: str) -> date:
    """
    Parses dates like '7 June 1997', 'June 07 1997', '1997-06-07' or '07/06/1997'.
    Numeric slash dates are always day first.
    """
    cleaned = " ".join(date_str.split())
    for _, pattern in DATE_FORMATS:
        match = pattern.fullmatch(cleaned)
        if not match:
            continue

        month_token = match["month"]
        if month_token.isdigit():
            month = int(month_token)
        else:
            month = _month_number(month_token, date_str)

        try:
            return date(int(match["year"]), month, int(match["day"]))
        except ValueError as e:
            raise TemporalParseError(
                date_str, TemporalErrorReason.OUT_OF_RANGE, str(e)
            ) from None

    raise TemporalParseError(
        date_str,
        TemporalErrorReason.UNPARSEABLE,
        "expected e.g. 7 June 1997, June 7 1997, 1997-06-07 or 07/06/1997",
    )


def resolve(time_str: str, date_str: str | None, now: datetime) -> datetime:
    """
    Resolves a clock time and an optional date into an instant.

    Without a date the instant falls on `now`'s date, rolled over to the next
    day when that is not strictly after `now`. An explicit date is taken as is,
    even when it lies in the past.
    """
    clock = parse_clock_time(time_str)
    if date_str is not None and date_str.strip():
        return datetime.combine(parse_date(date_str), clock, tzinfo=now.tzinfo)

    instant = datetime.combine(now.date(), clock, tzinfo=now.tzinfo)
    if instant <= now:
        instant += timedelta(days=1)
    return instant


def lock_minutes_until(instant: datetime, now: datetime) -> int:
    """Whole minutes from now until instant, rounded up so the lock never ends early."""
    seconds = (instant - now).total_seconds()
    if seconds <= 0:
        raise ValueError(f"{instant:%Y-%m-%d %H:%M} is not in the future")
    return math.ceil(seconds / 60)


def parse_duration(duration_str: str) -> int:
    """Parses durations like '90', '45m', '1h30m' or '2d' into minutes."""
    cleaned = duration_str.strip().lower()
    if cleaned.isdigit():
        minutes = int(cleaned)
    else:
        match = _DURATION.fullmatch(cleaned)
        if not match or not any(match.groups()):
            raise ValueError(f"Could not parse duration: {duration_str}")
        days, hours, mins = (int(group or 0) for group in match.groups())
        minutes = days * 24 * 60 + hours * 60 + mins

    if minutes <= 0:
        raise ValueError(f"Duration must be at least one minute: {duration_str}")
    return minutes


def format_duration_minutes(minutes: int) -> str:
    """
    Formats a duration in minutes into a human-readable string (e.g., '2h 30m' or '45m').
    """
    if minutes < 60:
        return f"{minutes}m"
    hours, remaining_minutes = divmod(minutes, 60)
    if hours < 24:
        return f"{hours}h {remaining_minutes}m"
    days, hours = divmod(hours, 24)
    return f"{days}d {hours}h {remaining_minutes}m"
