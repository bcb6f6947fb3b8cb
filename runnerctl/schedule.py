"""Matching of one-off and recurring time periods."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from dateutil import rrule

_EPSILON = timedelta(microseconds=1)

# frequency -> (rrule frequency, years, months, days)
_FREQUENCIES = {
    "Daily": (rrule.DAILY, 0, 0, 1),
    "Weekly": (rrule.WEEKLY, 0, 0, 7),
    "Monthly": (rrule.MONTHLY, 0, 1, 0),
    "Yearly": (rrule.YEARLY, 1, 0, 0),
}


def _format_rfc3339(dt: datetime) -> str:
    text = dt.strftime("%Y-%m-%dT%H:%M:%S")
    offset = dt.utcoffset()
    if offset is None or offset == timedelta(0):
        return text + "Z"
    minutes = int(offset.total_seconds()) // 60
    sign = "+" if minutes >= 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"{text}{sign}{hours:02d}:{mins:02d}"


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: str = ""
    until_time: datetime | None = None


@dataclass(frozen=True)
class Period:
    start_time: datetime
    end_time: datetime

    def __str__(self) -> str:
        return _format_rfc3339(self.start_time) + "-" + _format_rfc3339(self.end_time)


def format_period(period: Period | None) -> str:
    """Render a period, or an empty string for no period."""
    return "" if period is None else str(period)


def _add_calendar(moment: datetime, years: int, months: int, days: int) -> datetime:
    """Add calendar units, normalising overflowing days into following months."""
    month_index = moment.month - 1 + months
    year = moment.year + years + month_index // 12
    month = month_index % 12 + 1
    first = moment.replace(year=year, month=month, day=1)
    return first + timedelta(days=moment.day - 1 + days)


def match_schedule(
    now: datetime,
    start_time: datetime,
    end_time: datetime,
    recurrence_rule: RecurrenceRule,
) -> tuple[Period | None, Period | None]:
    """Return the active and the upcoming period at ``now``."""
    frequency = recurrence_rule.frequency

    if frequency == "":
        if now < start_time:
            return None, Period(start_time, end_time)
        if now < end_time:
            return Period(start_time, end_time), None
        return None, None

    try:
        freq_value, years, months, days = _FREQUENCIES[frequency]
    except KeyError:
        raise ValueError(
            f'invalid freq "{frequency}": It must be one of '
            '"Daily", "Weekly", "Monthly", and "Yearly"'
        ) from None

    freq_later = _add_calendar(now, years, months, days)
    freq_duration = freq_later - now

    override_duration = end_time - start_time
    if override_duration > freq_duration:
        raise ValueError(
            f"override's duration {override_duration} must be equal to sor shorter than "
            f'the duration implied by freq "{frequency}" ({freq_duration})'
        )

    rule = rrule.rrule(freq_value, dtstart=start_time, until=recurrence_rule.until_time)

    active_starts = rule.between(now - override_duration + _EPSILON, now, inc=True)
    if len(active_starts) > 1:
        raise RuntimeError(f"[bug] unexpted number of active overrides found: {active_starts}")

    active = None
    if active_starts:
        active = Period(active_starts[0], active_starts[0] + override_duration)

    upcoming_starts = rule.between(now + _EPSILON, freq_later, inc=True)
    upcoming = None
    if upcoming_starts:
        upcoming = Period(upcoming_starts[0], upcoming_starts[0] + override_duration)

    return active, upcoming