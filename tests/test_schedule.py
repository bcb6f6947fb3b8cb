from datetime import datetime, timezone

import pytest

from runnerctl.schedule import Period, RecurrenceRule, format_period, match_schedule

S = "2021-05-01T00:00:00+09:00"
E = "2021-05-03T00:00:00+09:00"
U22 = "2022-05-01T00:00:00+09:00"
U23 = "2023-05-01T00:00:00+09:00"

P0501 = "2021-05-01T00:00:00+09:00-2021-05-03T00:00:00+09:00"
P0508 = "2021-05-08T00:00:00+09:00-2021-05-10T00:00:00+09:00"
P0515 = "2021-05-15T00:00:00+09:00-2021-05-17T00:00:00+09:00"
P2204 = "2022-04-30T00:00:00+09:00-2022-05-02T00:00:00+09:00"
P2205 = "2022-05-01T00:00:00+09:00-2022-05-03T00:00:00+09:00"
P2305 = "2023-05-01T00:00:00+09:00-2023-05-03T00:00:00+09:00"

CASES = [
    ("onetime override about to start", "", "", "2021-04-30T23:59:59+09:00", "", P0501),
    ("onetime override started", "", "", "2021-05-01T00:00:00+09:00", P0501, ""),
    ("onetime override about to end", "", "", "2021-05-02T23:59:59+09:00", P0501, ""),
    ("onetime override ended", "", "", "2021-05-03T00:00:00+09:00", "", ""),
    ("weekly override about to start", "Weekly", U22, "2021-04-30T23:59:59+09:00", "", P0501),
    ("weekly override started", "Weekly", U22, "2021-05-01T00:00:00+09:00", P0501, P0508),
    ("weekly override about to end", "Weekly", U22, "2021-05-02T23:59:59+09:00", P0501, P0508),
    ("weekly override ended", "Weekly", U22, "2021-05-03T00:00:00+09:00", "", P0508),
    ("weekly recurrence about to start", "Weekly", U22, "2021-05-07T23:59:59+09:00", "", P0508),
    ("weekly recurrence started", "Weekly", U22, "2021-05-08T00:00:00+09:00", P0508, P0515),
    ("weekly recurrence about to end", "Weekly", U22, "2021-05-09T23:59:59+09:00", P0508, P0515),
    ("weekly recurrence ended", "Weekly", U22, "2021-05-10T00:00:00+09:00", "", P0515),
    ("weekly last recurrence about to start", "Weekly", U22, "2022-04-29T23:59:59+09:00", "", P2204),
    ("weekly last recurrence started", "Weekly", U22, "2022-04-30T00:00:00+09:00", P2204, ""),
    ("weekly last recurrence about to end", "Weekly", U22, "2022-05-01T23:59:59+09:00", P2204, ""),
    ("weekly last recurrence ended", "Weekly", U22, "2022-05-02T00:00:00+09:00", "", ""),
    ("weekly forever started", "Weekly", "", "2021-05-08T00:00:00+09:00", P0508, P0515),
    (
        "monthly override started",
        "Monthly",
        U22,
        "2021-05-01T00:00:00+09:00",
        P0501,
        "2021-06-01T00:00:00+09:00-2021-06-03T00:00:00+09:00",
    ),
    (
        "monthly recurrence started",
        "Monthly",
        U22,
        "2021-06-01T00:00:00+09:00",
        "2021-06-01T00:00:00+09:00-2021-06-03T00:00:00+09:00",
        "2021-07-01T00:00:00+09:00-2021-07-03T00:00:00+09:00",
    ),
    ("monthly last about to start", "Monthly", U22, "2022-04-30T23:59:59+09:00", "", P2205),
    ("monthly last started", "Monthly", U22, "2022-05-01T00:00:00+09:00", P2205, ""),
    ("monthly last started later", "Monthly", U22, "2022-05-01T00:00:01+09:00", P2205, ""),
    ("monthly last ending", "Monthly", U22, "2022-05-02T23:59:59+09:00", P2205, ""),
    ("monthly last ended", "Monthly", U22, "2022-05-03T00:00:00+09:00", "", ""),
    ("yearly override started", "Yearly", U22, "2021-05-01T00:00:00+09:00", P0501, P2205),
    ("yearly recurrence started", "Yearly", U23, "2022-05-01T00:00:00+09:00", P2205, P2305),
    ("yearly last about to start", "Yearly", U23, "2023-04-30T23:59:59+09:00", "", P2305),
    ("yearly last started", "Yearly", U23, "2023-05-01T00:00:00+09:00", P2305, ""),
    ("yearly last ending", "Yearly", U23, "2023-05-02T23:23:59+09:00", P2305, ""),
    ("yearly last ended", "Yearly", U23, "2023-05-03T00:00:00+09:00", "", ""),
]


def _parse(text):
    return datetime.fromisoformat(text) if text else None


@pytest.mark.parametrize(
    "freq,until,now,want_active,want_upcoming",
    [case[1:] for case in CASES],
    ids=[case[0] for case in CASES],
)
def test_active_and_upcoming_periods(freq, until, now, want_active, want_upcoming):
    active, upcoming = match_schedule(
        _parse(now),
        _parse(S),
        _parse(E),
        RecurrenceRule(frequency=freq, until_time=_parse(until)),
    )
    assert format_period(active) == want_active
    assert format_period(upcoming) == want_upcoming


def test_period_str_and_format():
    period = Period(_parse(S), _parse(E))
    assert str(period) == P0501
    assert format_period(None) == ""


def test_period_str_utc_uses_z():
    start = datetime(2021, 5, 1, tzinfo=timezone.utc)
    end = datetime(2021, 5, 3, tzinfo=timezone.utc)
    assert str(Period(start, end)) == "2021-05-01T00:00:00Z-2021-05-03T00:00:00Z"


@pytest.mark.parametrize("freq", ["daily", "Hourly", "x", "\x00"])
def test_invalid_frequency(freq):
    now = _parse(S)
    with pytest.raises(ValueError, match="invalid freq"):
        match_schedule(now, now, now, RecurrenceRule(frequency=freq))


def test_override_longer_than_frequency():
    with pytest.raises(ValueError, match="must be equal to"):
        match_schedule(
            _parse(S),
            _parse(S),
            _parse("2021-05-09T00:00:00+09:00"),
            RecurrenceRule(frequency="Daily"),
        )


def test_zero_length_one_time_override_is_neither_active_nor_upcoming():
    now = _parse(S)
    assert match_schedule(now, now, now, RecurrenceRule()) == (None, None)