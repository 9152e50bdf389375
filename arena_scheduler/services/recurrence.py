"""
Recurrence expansion service.

Turns a program's recurrence parameters into the ordered list of concrete
occurrences (date + time of day) that the session materializer persists.

Supported patterns:
- Non-repeating: a single occurrence on the start date
- Daily: every day, optionally thinned by a weekday filter
- Weekly: the start date's weekday, or every listed weekday of each week
- Termination: never (program end date), on a date, or after N occurrences

Uses python-dateutil's rrule for the calendar walk. Expansion is a pure
function of its inputs.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from itertools import islice
from typing import Any, Iterable, Optional

from dateutil.rrule import rrule, DAILY, WEEKLY, MO, TU, WE, TH, FR, SA, SU

from arena_scheduler.errors import InvalidRecurrenceInput


WEEKDAY_MAP = {
    "mon": MO,
    "tue": TU,
    "wed": WE,
    "thu": TH,
    "fri": FR,
    "sat": SA,
    "sun": SU,
}

FREQUENCY_MAP = {
    "daily": DAILY,
    "weekly": WEEKLY,
}

RECURRENCE_END_MODES = ("never", "onDate", "afterN")


@dataclass(frozen=True)
class Occurrence:
    """A single concrete occurrence produced by expansion."""

    date: date
    start_time: time
    end_time: time


@dataclass(frozen=True)
class RecurrenceParams:
    """
    Recurrence parameters of a program.

    Date fields accept datetimes (only the date is used); time fields accept
    datetimes (only the clock time is used).
    """

    start_date: Optional[date]
    end_date: Optional[date]
    start_time: Optional[time]
    end_time: Optional[time]
    repeats: bool = True
    frequency: str = "daily"
    days_of_week: tuple[str, ...] = field(default_factory=tuple)
    recurrence_ends: str = "never"
    recurrence_end_date: Optional[date] = None
    recurrence_count: Optional[int] = None

    @classmethod
    def from_program(cls, program: Any) -> "RecurrenceParams":
        """Build parameters from a Program (or any object with the same fields)."""
        return cls(
            start_date=program.start_date,
            end_date=program.end_date,
            start_time=program.start_time,
            end_time=program.end_time,
            repeats=bool(program.repeats),
            frequency=program.frequency or "daily",
            days_of_week=tuple(program.days_of_week or ()),
            recurrence_ends=program.recurrence_ends or "never",
            recurrence_end_date=program.recurrence_end_date,
            recurrence_count=program.recurrence_count,
        )


def _as_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise InvalidRecurrenceInput(f"Expected a date, got {value!r}")


def _as_time(value: Any) -> Optional[time]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    raise InvalidRecurrenceInput(f"Expected a time of day, got {value!r}")


def _weekday_filter(days: Iterable[str]) -> list:
    weekdays = []
    for day in days:
        key = str(day).lower()
        if key not in WEEKDAY_MAP:
            raise InvalidRecurrenceInput(f"Unknown day of week: {day!r}")
        weekday = WEEKDAY_MAP[key]
        if weekday not in weekdays:
            weekdays.append(weekday)
    return weekdays


def effective_end_date(params: RecurrenceParams) -> date:
    """
    Last date the expansion may reach.

    An 'onDate' termination clamps the program end date; a missing
    recurrence end date falls back to the program end date.
    """
    end = _as_date(params.end_date)
    if params.repeats and params.recurrence_ends == "onDate":
        until = _as_date(params.recurrence_end_date)
        if until is not None and until < end:
            return until
    return end


def validate_recurrence(params: RecurrenceParams) -> None:
    """
    Validate recurrence parameters.

    Args:
        params: Recurrence parameters to check

    Raises:
        InvalidRecurrenceInput: If a field is missing or malformed
    """
    start_date = _as_date(params.start_date)
    end_date = _as_date(params.end_date)
    start_time = _as_time(params.start_time)
    end_time = _as_time(params.end_time)

    missing = [
        name
        for name, value in (
            ("start_date", start_date),
            ("end_date", end_date),
            ("start_time", start_time),
            ("end_time", end_time),
        )
        if value is None
    ]
    if missing:
        raise InvalidRecurrenceInput(f"Missing recurrence fields: {', '.join(missing)}")

    if start_date > end_date:
        raise InvalidRecurrenceInput("start_date must be on or before end_date")

    if end_time <= start_time:
        raise InvalidRecurrenceInput("end_time must be later than start_time")

    if not params.repeats:
        return

    if params.frequency not in FREQUENCY_MAP:
        raise InvalidRecurrenceInput(f"Unknown frequency: {params.frequency!r}")

    if params.recurrence_ends not in RECURRENCE_END_MODES:
        raise InvalidRecurrenceInput(
            f"Unknown recurrence termination: {params.recurrence_ends!r}"
        )

    if params.recurrence_count is not None and params.recurrence_count < 0:
        raise InvalidRecurrenceInput("recurrence_count cannot be negative")

    _weekday_filter(params.days_of_week)


def expand_recurrence(params: RecurrenceParams) -> list[Occurrence]:
    """
    Expand recurrence parameters into concrete occurrences.

    Args:
        params: Program recurrence parameters

    Returns:
        Occurrences in ascending date order, each carrying the program's
        time of day

    Raises:
        InvalidRecurrenceInput: If the parameters are missing or malformed

    Example:
        >>> params = RecurrenceParams(
        ...     start_date=date(2024, 1, 1), end_date=date(2024, 1, 5),
        ...     start_time=time(9), end_time=time(10),
        ... )
        >>> [o.date.day for o in expand_recurrence(params)]
        [1, 2, 3, 4, 5]
    """
    validate_recurrence(params)

    start_date = _as_date(params.start_date)
    start_time = _as_time(params.start_time)
    end_time = _as_time(params.end_time)

    if not params.repeats:
        return [Occurrence(date=start_date, start_time=start_time, end_time=end_time)]

    weekdays = _weekday_filter(params.days_of_week)
    rule = rrule(
        FREQUENCY_MAP[params.frequency],
        dtstart=datetime.combine(start_date, time.min),
        until=datetime.combine(effective_end_date(params), time.min),
        byweekday=weekdays or None,
    )

    dates: Iterable[datetime] = rule
    # A count of 0 (or none) places no limit, matching an unset field
    if params.recurrence_ends == "afterN" and params.recurrence_count:
        dates = islice(rule, params.recurrence_count)

    return [
        Occurrence(date=dt.date(), start_time=start_time, end_time=end_time)
        for dt in dates
    ]

