import datetime
import zoneinfo

import pytest

from event_series.exceptions import (
    InvalidDateError,
    InvalidRecurrenceRuleError,
    InvalidTimezoneError,
    RecurrenceEngineError,
)
from event_series.recurrence_rule import RecurrenceRule
from event_series.services.recurrence_engine import RecurrenceEngine


NEW_YORK = zoneinfo.ZoneInfo("America/New_York")


# Helpers
def _dt(year, month, day, hour=9, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


@pytest.fixture
def engine():
    return RecurrenceEngine()


@pytest.mark.parametrize("count", [1, 5, 30])
def test_daily_rule_returns_count_consecutive_days(engine, count):
    occurrences = engine.generate_occurrences(
        _dt(2025, 1, 1), {"frequency": "DAILY", "interval": 1, "count": count}
    )

    assert len(occurrences) == count
    assert occurrences == sorted(set(occurrences))
    for previous, current in zip(occurrences, occurrences[1:], strict=False):
        assert current - previous == datetime.timedelta(days=1)


def test_weekly_by_weekday_starting_on_monday(engine):
    # 2025-01-06 is a Monday
    occurrences = engine.generate_occurrences(
        _dt(2025, 1, 6), {"frequency": "WEEKLY", "by_weekday": ["MO", "WE", "FR"], "count": 3}
    )

    assert occurrences == [_dt(2025, 1, 6), _dt(2025, 1, 8), _dt(2025, 1, 10)]
    assert [o.weekday() for o in occurrences] == [0, 2, 4]


def test_unbounded_rule_uses_default_count(engine):
    occurrences = engine.generate_occurrences(_dt(2025, 1, 1), {"frequency": "DAILY"})

    assert len(occurrences) == 10


def test_count_option_overrides_rule_and_is_capped():
    engine = RecurrenceEngine(max_occurrence_count=20)

    assert len(engine.generate_occurrences(_dt(2025, 1, 1), {"frequency": "DAILY"}, count=15)) == 15
    assert len(engine.generate_occurrences(_dt(2025, 1, 1), {"frequency": "DAILY"}, count=50)) == 20


def test_until_option_bounds_result_inclusively(engine):
    occurrences = engine.generate_occurrences(
        _dt(2025, 1, 1), {"frequency": "DAILY"}, until=_dt(2025, 1, 20)
    )

    assert len(occurrences) == 20
    assert occurrences[-1] == _dt(2025, 1, 20)


def test_earliest_of_option_and_rule_until_wins(engine):
    rule = {"frequency": "DAILY", "until": "2025-01-05T09:00:00Z"}

    occurrences = engine.generate_occurrences(_dt(2025, 1, 1), rule, until=_dt(2025, 1, 20))

    assert occurrences[-1] == _dt(2025, 1, 5)
    assert len(occurrences) == 5


def test_dst_transition_keeps_local_hour(engine):
    # DST starts in New York on 2025-03-09
    start = datetime.datetime(2025, 3, 6, 10, 0, tzinfo=NEW_YORK)

    occurrences = engine.generate_occurrences(
        start, {"frequency": "DAILY", "count": 7}, time_zone="America/New_York"
    )

    local = [o.astimezone(NEW_YORK) for o in occurrences]
    assert all(o.hour == 10 and o.minute == 0 for o in local)
    assert occurrences[0].hour == 15
    assert occurrences[-1].hour == 14
    assert all(o.tzinfo == datetime.UTC for o in occurrences)


def test_weekday_is_computed_on_local_day(engine):
    # 22:00 on a Monday in New York is already Tuesday in UTC
    start = datetime.datetime(2025, 1, 6, 22, 0, tzinfo=NEW_YORK)

    occurrences = engine.generate_occurrences(
        start,
        {"frequency": "WEEKLY", "by_weekday": ["MO"], "count": 2},
        time_zone="America/New_York",
    )

    assert [o.astimezone(NEW_YORK).weekday() for o in occurrences] == [0, 0]


def test_exception_dates_drop_same_local_day(engine):
    occurrences = engine.generate_occurrences(
        _dt(2025, 1, 1),
        {"frequency": "DAILY", "count": 5},
        exception_dates=["2025-01-03T00:00:00Z"],
    )

    assert _dt(2025, 1, 3) not in occurrences
    assert len(occurrences) == 4


def test_include_exceptions_keeps_excluded_dates(engine):
    occurrences = engine.generate_occurrences(
        _dt(2025, 1, 1),
        {"frequency": "DAILY", "count": 5},
        exception_dates=[_dt(2025, 1, 3)],
        include_exceptions=True,
    )

    assert len(occurrences) == 5


def test_start_accepts_iso_strings_and_naive_datetimes(engine):
    rule = {"frequency": "DAILY", "count": 2}

    from_string = engine.generate_occurrences("2025-01-01T09:00:00Z", rule)
    from_naive = engine.generate_occurrences(datetime.datetime(2025, 1, 1, 9, 0), rule)

    assert from_string == from_naive == [_dt(2025, 1, 1), _dt(2025, 1, 2)]


def test_rrule_string_rules_are_accepted(engine):
    occurrences = engine.generate_occurrences(_dt(2025, 1, 1), "RRULE:FREQ=MONTHLY;COUNT=3")

    assert occurrences == [_dt(2025, 1, 1), _dt(2025, 2, 1), _dt(2025, 3, 1)]


def test_monthly_ordinal_weekday(engine):
    occurrences = engine.generate_occurrences(
        _dt(2025, 1, 1), {"frequency": "MONTHLY", "by_weekday": ["1MO"], "count": 3}
    )

    assert occurrences == [_dt(2025, 1, 6), _dt(2025, 2, 3), _dt(2025, 3, 3)]


@pytest.mark.parametrize(
    "kwargs,error",
    [
        ({"rule": {"frequency": "NEVER"}}, InvalidRecurrenceRuleError),
        ({"rule": {"frequency": "DAILY", "interval": 0}}, InvalidRecurrenceRuleError),
        ({"start": "not a date"}, InvalidDateError),
        ({"time_zone": "Mars/Olympus_Mons"}, InvalidTimezoneError),
    ],
)
def test_invalid_input_raises_instead_of_returning_empty(engine, kwargs, error):
    start = kwargs.get("start", _dt(2025, 1, 1))
    rule = kwargs.get("rule", {"frequency": "DAILY"})
    time_zone = kwargs.get("time_zone")

    with pytest.raises(error) as exc_info:
        engine.generate_occurrences(start, rule, time_zone=time_zone)

    assert isinstance(exc_info.value, RecurrenceEngineError)


def test_is_in_pattern(engine):
    rule = {"frequency": "WEEKLY", "count": 4}
    start = _dt(2025, 1, 1)

    assert engine.is_in_pattern(_dt(2025, 1, 15), start, rule)
    # Within the one minute tolerance
    assert engine.is_in_pattern(_dt(2025, 1, 15) + datetime.timedelta(seconds=30), start, rule)
    assert not engine.is_in_pattern(_dt(2025, 1, 16), start, rule)
    assert not engine.is_in_pattern(_dt(2025, 1, 15, 10), start, rule)
    # Past the last of the four occurrences
    assert not engine.is_in_pattern(_dt(2025, 1, 29), start, rule)


def test_is_in_pattern_is_false_for_excluded_dates(engine):
    assert not engine.is_in_pattern(
        _dt(2025, 1, 8),
        _dt(2025, 1, 1),
        {"frequency": "WEEKLY"},
        exception_dates=["2025-01-08T09:00:00Z"],
    )


def test_is_in_pattern_matches_last_element_of_bounded_generation(engine):
    rule = {"frequency": "WEEKLY", "by_weekday": ["TU", "TH"]}
    start = _dt(2025, 1, 7)

    for candidate in [_dt(2025, 1, 7) + datetime.timedelta(days=n) for n in range(21)]:
        generated = engine.generate_occurrences(start, rule, until=candidate)
        assert engine.is_in_pattern(candidate, start, rule) == (generated[-1] == candidate)


def test_match_occurrence_snaps_to_the_slot(engine):
    rule = {"frequency": "DAILY", "count": 10}
    start = _dt(2025, 1, 1)

    late = _dt(2025, 1, 4) + datetime.timedelta(seconds=45)
    early = _dt(2025, 1, 4) - datetime.timedelta(seconds=59)

    assert engine.match_occurrence(late, start, rule) == _dt(2025, 1, 4)
    assert engine.match_occurrence(early, start, rule) == _dt(2025, 1, 4)
    assert engine.match_occurrence(_dt(2025, 1, 4, 9, 2), start, rule) is None
    assert (
        engine.match_occurrence(_dt(2025, 1, 4), start, rule, exception_dates=[_dt(2025, 1, 4)])
        is None
    )


def test_match_occurrence_in_local_time(engine):
    start = datetime.datetime(2025, 3, 6, 10, 0, tzinfo=NEW_YORK)

    matched = engine.match_occurrence(
        "2025-03-10T14:00:30Z", start, {"frequency": "DAILY"}, time_zone="America/New_York"
    )

    assert matched == datetime.datetime(2025, 3, 10, 14, 0, tzinfo=datetime.UTC)


@pytest.mark.parametrize("count", [0, -1])
def test_non_positive_count_is_rejected(engine, count):
    with pytest.raises(ValueError):
        engine.generate_occurrences(_dt(2025, 1, 1), {"frequency": "DAILY"}, count=count)

    with pytest.raises(ValueError):
        engine.occurrences_after(
            _dt(2025, 1, 1), {"frequency": "DAILY"}, _dt(2025, 1, 5), count=count
        )


def test_next_and_previous_occurrence(engine):
    rule = {"frequency": "DAILY", "count": 10}
    start = _dt(2025, 1, 1)

    assert engine.next_occurrence(start, rule, _dt(2025, 1, 3)) == _dt(2025, 1, 4)
    assert engine.next_occurrence(start, rule, _dt(2025, 1, 3), inclusive=True) == _dt(2025, 1, 3)
    assert engine.next_occurrence(start, rule, _dt(2025, 1, 10)) is None
    assert engine.previous_occurrence(start, rule, _dt(2025, 1, 3)) == _dt(2025, 1, 2)
    assert engine.previous_occurrence(start, rule, _dt(2025, 1, 1)) is None


def test_next_occurrence_skips_exceptions(engine):
    next_occurrence = engine.next_occurrence(
        _dt(2025, 1, 1),
        {"frequency": "DAILY"},
        _dt(2025, 1, 3),
        exception_dates=[_dt(2025, 1, 4)],
    )

    assert next_occurrence == _dt(2025, 1, 5)


def test_occurrences_after_slides_past_exceptions(engine):
    occurrences = engine.occurrences_after(
        _dt(2025, 1, 1),
        {"frequency": "DAILY"},
        _dt(2025, 1, 10),
        count=3,
        exception_dates=[_dt(2025, 1, 11)],
    )

    assert occurrences == [_dt(2025, 1, 10), _dt(2025, 1, 12), _dt(2025, 1, 13)]


def test_count_occurrences_before(engine):
    rule = RecurrenceRule(frequency="WEEKLY", count=10)

    assert engine.count_occurrences_before(_dt(2025, 1, 1), rule, _dt(2025, 1, 22)) == 3
    assert engine.count_occurrences_before(_dt(2025, 1, 1), rule, _dt(2030, 1, 1)) == 10


@pytest.mark.parametrize(
    "rule,expected",
    [
        (None, "No recurrence"),
        ({"frequency": "DAILY"}, "Daily"),
        ({"frequency": "DAILY", "interval": 2, "count": 5}, "Every 2 days, 5 times"),
        (
            {
                "frequency": "WEEKLY",
                "by_weekday": ["MO", "WE", "FR"],
                "until": "2025-01-31T15:00:00Z",
            },
            "Weekly on Monday, Wednesday, Friday, until January 31, 2025",
        ),
        ({"frequency": "MONTHLY", "by_month_day": [1]}, "Monthly on the 1st day"),
        ({"frequency": "MONTHLY", "by_month_day": [-1]}, "Monthly on the last day"),
        ({"frequency": "MONTHLY", "by_weekday": ["1MO"]}, "Monthly on the first Monday"),
        ({"frequency": "YEARLY", "interval": 2, "by_month": [1, 7]}, "Every 2 years in January, July"),
    ],
)
def test_describe(engine, rule, expected):
    assert engine.describe(rule, "America/New_York") == expected


def test_describe_formats_until_in_series_time_zone(engine):
    rule = {"frequency": "DAILY", "until": "2025-02-01T02:00:00Z"}

    assert engine.describe(rule, "UTC") == "Daily, until February 1, 2025"
    assert engine.describe(rule, "America/New_York") == "Daily, until January 31, 2025"
