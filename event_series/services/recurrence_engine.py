"""Pure recurrence expansion on top of ``dateutil.rrule``.

Rules are expanded on naive local wall-clock datetimes in the series time
zone and every produced slot is converted back to UTC, so an event at 10:00
in ``America/New_York`` stays at 10:00 local on both sides of a DST change.
Nothing here touches the database.
"""

import datetime
import logging
from collections.abc import Iterable, Iterator
from itertools import islice

from dateutil import rrule as dateutil_rrule

from event_series.constants import (
    DEFAULT_OCCURRENCE_COUNT,
    DEFAULT_TIMEZONE,
    MAX_OCCURRENCE_COUNT,
    PATTERN_MATCH_TOLERANCE_SECONDS,
    RecurrenceFrequency,
    RecurrenceWeekday,
)
from event_series.date_utils import (
    from_local_naive,
    get_zone,
    local_date,
    parse_instant,
    to_local_naive,
)
from event_series.exceptions import InvalidRecurrenceRuleError
from event_series.recurrence_rule import RecurrenceRule, parse_weekday_token


logger = logging.getLogger(__name__)

InstantInput = datetime.datetime | datetime.date | str
RuleInput = RecurrenceRule | dict | str

FREQUENCY_MAP = {
    RecurrenceFrequency.YEARLY: dateutil_rrule.YEARLY,
    RecurrenceFrequency.MONTHLY: dateutil_rrule.MONTHLY,
    RecurrenceFrequency.WEEKLY: dateutil_rrule.WEEKLY,
    RecurrenceFrequency.DAILY: dateutil_rrule.DAILY,
}

WEEKDAY_ORDER = list(RecurrenceWeekday.values)

ORDINAL_WORDS = {
    1: "first",
    2: "second",
    3: "third",
    4: "fourth",
    5: "fifth",
    -1: "last",
    -2: "second to last",
}

MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]


def validate_count(count: int | None) -> None:
    if count is not None and count < 1:
        raise ValueError(f"count must be a positive integer, got {count}")


def ordinal_suffix(n: int) -> str:
    if n % 100 in (11, 12, 13):
        return "th"
    return {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")


class RecurrenceEngine:
    """
    Expands recurrence rules into occurrence instants.

    Every public method accepts the rule as a ``RecurrenceRule``, its persisted
    dict form or an RRULE string. Malformed input raises a
    ``RecurrenceEngineError`` subclass; an empty result always means the rule
    legitimately produces nothing in the requested range.
    """

    def __init__(
        self,
        default_occurrence_count: int = DEFAULT_OCCURRENCE_COUNT,
        max_occurrence_count: int = MAX_OCCURRENCE_COUNT,
        default_time_zone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self.default_occurrence_count = default_occurrence_count
        self.max_occurrence_count = max_occurrence_count
        self.default_time_zone = default_time_zone

    def _build_rrule(
        self, rule: RecurrenceRule, local_start: datetime.datetime, zone
    ) -> dateutil_rrule.rrule:
        byweekday = []
        for token in rule.by_weekday:
            ordinal, weekday = parse_weekday_token(token)
            day = dateutil_rrule.weekdays[WEEKDAY_ORDER.index(weekday)]
            byweekday.append(day(ordinal) if ordinal else day)

        kwargs = {
            "dtstart": local_start,
            "interval": rule.interval,
            "count": rule.count,
            "until": to_local_naive(rule.until, zone) if rule.until else None,
            "byweekday": byweekday or None,
            "bymonth": rule.by_month or None,
            "bymonthday": rule.by_month_day or None,
            "byhour": rule.by_hour or None,
            "byminute": rule.by_minute or None,
            "bysecond": rule.by_second or None,
            "bysetpos": rule.by_set_position or None,
            "wkst": WEEKDAY_ORDER.index(rule.week_start) if rule.week_start else None,
        }
        try:
            return dateutil_rrule.rrule(FREQUENCY_MAP[rule.frequency], **kwargs)
        except (ValueError, TypeError) as e:
            raise InvalidRecurrenceRuleError(f"Invalid recurrence rule: {e}") from e

    def _prepare(self, start: InstantInput, rule: RuleInput, time_zone: str | None):
        zone = get_zone(time_zone or self.default_time_zone)
        rule = RecurrenceRule.coerce(rule)
        start_instant = parse_instant(start)
        rule_set = self._build_rrule(rule, to_local_naive(start_instant, zone), zone)
        return rule, rule_set, zone

    @staticmethod
    def _to_instants(local_slots: Iterable[datetime.datetime], zone) -> Iterator[datetime.datetime]:
        previous = None
        for local in local_slots:
            instant = from_local_naive(local, zone)
            if instant == previous:
                continue
            previous = instant
            yield instant

    @staticmethod
    def _excluded_days(exception_dates: Iterable[InstantInput] | None, zone) -> set[datetime.date]:
        return {local_date(parse_instant(value), zone) for value in exception_dates or ()}

    def generate_occurrences(
        self,
        start: InstantInput,
        rule: RuleInput,
        *,
        time_zone: str | None = None,
        count: int | None = None,
        until: InstantInput | None = None,
        exception_dates: Iterable[InstantInput] | None = None,
        include_exceptions: bool = False,
    ) -> list[datetime.datetime]:
        """
        Generate occurrence instants (aware, UTC) for ``rule`` starting at ``start``.

        When ``until`` or the rule's own UNTIL is set, every occurrence up to and
        including the earliest of the two is returned. Otherwise the result holds
        ``min(count or rule.count or default_occurrence_count, max_occurrence_count)``
        slots. Unless ``include_exceptions`` is set, slots falling on the same local
        calendar day as an exception date are dropped.
        """
        validate_count(count)
        rule, rule_set, zone = self._prepare(start, rule, time_zone)

        bounds = [parse_instant(value) for value in (until, rule.until) if value is not None]
        if bounds:
            bound = min(bounds)
            occurrences = []
            for instant in self._to_instants(rule_set, zone):
                if instant > bound:
                    break
                occurrences.append(instant)
        else:
            if count is None:
                count = rule.count or self.default_occurrence_count
            limit = min(count, self.max_occurrence_count)
            occurrences = list(self._to_instants(islice(rule_set, limit), zone))

        if not include_exceptions and exception_dates:
            excluded = self._excluded_days(exception_dates, zone)
            occurrences = [
                instant for instant in occurrences if local_date(instant, zone) not in excluded
            ]

        logger.debug(
            "Generated %s occurrences for rule %s starting at %s (%s)",
            len(occurrences),
            rule.to_rrule_string(),
            start,
            zone.key,
        )
        return occurrences

    def is_in_pattern(
        self,
        date: InstantInput,
        start: InstantInput,
        rule: RuleInput,
        time_zone: str | None = None,
        exception_dates: Iterable[InstantInput] | None = None,
    ) -> bool:
        """
        Check whether ``date`` is one of the occurrences of ``rule``.

        Dates on an excluded local day never match. Otherwise a slot within a
        one minute window around ``date`` counts as a match.
        """
        return self.match_occurrence(date, start, rule, time_zone, exception_dates) is not None

    def match_occurrence(
        self,
        date: InstantInput,
        start: InstantInput,
        rule: RuleInput,
        time_zone: str | None = None,
        exception_dates: Iterable[InstantInput] | None = None,
    ) -> datetime.datetime | None:
        """
        The occurrence ``date`` refers to, snapped to the exact slot (aware, UTC).

        Returns None when no slot lies within a one minute window around ``date``
        or when ``date`` falls on an excluded local day.
        """
        rule, rule_set, zone = self._prepare(start, rule, time_zone)
        instant = parse_instant(date)

        if local_date(instant, zone) in self._excluded_days(exception_dates, zone):
            return None

        tolerance = datetime.timedelta(seconds=PATTERN_MATCH_TOLERANCE_SECONDS)
        local_check = to_local_naive(instant, zone)
        hits = rule_set.between(local_check - tolerance, local_check + tolerance, inc=True)
        if not hits:
            return None
        closest = min(hits, key=lambda local: abs(local - local_check))
        return from_local_naive(closest, zone)

    def next_occurrence(
        self,
        start: InstantInput,
        rule: RuleInput,
        after: InstantInput,
        *,
        time_zone: str | None = None,
        exception_dates: Iterable[InstantInput] | None = None,
        inclusive: bool = False,
    ) -> datetime.datetime | None:
        """First non-excluded occurrence strictly after ``after`` (or at it when ``inclusive``)."""
        occurrences = self.occurrences_after(
            start,
            rule,
            after,
            time_zone=time_zone,
            count=1,
            exception_dates=exception_dates,
            inclusive=inclusive,
        )
        return occurrences[0] if occurrences else None

    def occurrences_after(
        self,
        start: InstantInput,
        rule: RuleInput,
        after: InstantInput,
        *,
        time_zone: str | None = None,
        count: int | None = None,
        exception_dates: Iterable[InstantInput] | None = None,
        inclusive: bool = True,
    ) -> list[datetime.datetime]:
        """
        Up to ``count`` non-excluded occurrences from ``after`` onwards.

        Unlike ``generate_occurrences`` the window slides past excluded slots, so
        the result is only shorter than ``count`` when the rule runs out.
        """
        validate_count(count)
        rule, rule_set, zone = self._prepare(start, rule, time_zone)
        after_instant = parse_instant(after)
        excluded = self._excluded_days(exception_dates, zone)
        limit = min(
            count if count is not None else self.default_occurrence_count,
            self.max_occurrence_count,
        )

        occurrences: list[datetime.datetime] = []
        local_after = to_local_naive(after_instant, zone) - datetime.timedelta(days=1)
        for instant in self._to_instants(rule_set.xafter(local_after, inc=True), zone):
            if len(occurrences) >= limit:
                break
            if instant < after_instant or (instant == after_instant and not inclusive):
                continue
            if local_date(instant, zone) in excluded:
                continue
            occurrences.append(instant)
        return occurrences

    def previous_occurrence(
        self,
        start: InstantInput,
        rule: RuleInput,
        before: InstantInput,
        *,
        time_zone: str | None = None,
        exception_dates: Iterable[InstantInput] | None = None,
    ) -> datetime.datetime | None:
        """Last non-excluded occurrence strictly before ``before``."""
        rule, rule_set, zone = self._prepare(start, rule, time_zone)
        before_instant = parse_instant(before)
        excluded = self._excluded_days(exception_dates, zone)

        previous = None
        for instant in self._to_instants(rule_set, zone):
            if instant >= before_instant:
                break
            if local_date(instant, zone) not in excluded:
                previous = instant
        return previous

    def count_occurrences_before(
        self,
        start: InstantInput,
        rule: RuleInput,
        before: InstantInput,
        *,
        time_zone: str | None = None,
    ) -> int:
        """Number of slots (exceptions included) produced strictly before ``before``."""
        rule, rule_set, zone = self._prepare(start, rule, time_zone)
        before_instant = parse_instant(before)

        used = 0
        for instant in self._to_instants(rule_set, zone):
            if instant >= before_instant:
                break
            used += 1
        return used

    def describe(self, rule: RuleInput | None, time_zone: str | None = None) -> str:
        """
        Human readable description of ``rule``, e.g.
        ``"Weekly on Monday, Wednesday, Friday, until January 31, 2025"``.
        """
        if not rule:
            return "No recurrence"

        rule = RecurrenceRule.coerce(rule)
        zone = get_zone(time_zone or self.default_time_zone)
        interval = rule.interval

        if rule.frequency == RecurrenceFrequency.DAILY:
            description = f"Every {interval} days" if interval > 1 else "Daily"
        elif rule.frequency == RecurrenceFrequency.WEEKLY:
            description = f"Every {interval} weeks" if interval > 1 else "Weekly"
            if rule.by_weekday:
                description += f" on {self._describe_weekdays(rule.by_weekday)}"
        elif rule.frequency == RecurrenceFrequency.MONTHLY:
            description = f"Every {interval} months" if interval > 1 else "Monthly"
            if rule.by_month_day:
                description += f" on the {self._describe_month_days(rule.by_month_day)}"
            elif rule.by_weekday:
                description += f" on {self._describe_weekdays(rule.by_weekday)}"
        else:
            description = f"Every {interval} years" if interval > 1 else "Yearly"
            if rule.by_month:
                description += " in " + ", ".join(MONTH_NAMES[month - 1] for month in rule.by_month)

        if rule.count:
            description += f", {rule.count} time" + ("s" if rule.count > 1 else "")
        elif rule.until:
            local_until = rule.until.astimezone(zone)
            description += (
                f", until {MONTH_NAMES[local_until.month - 1]} {local_until.day}, {local_until.year}"
            )

        return description

    @staticmethod
    def _describe_weekdays(tokens: Iterable[str]) -> str:
        names = []
        for token in tokens:
            ordinal, weekday = parse_weekday_token(token)
            if ordinal is None:
                names.append(str(weekday.label))
            else:
                word = ORDINAL_WORDS.get(ordinal)
                if word is None:
                    word = f"{abs(ordinal)}{ordinal_suffix(abs(ordinal))}"
                    word += " to last" if ordinal < 0 else ""
                names.append(f"the {word} {weekday.label}")
        return ", ".join(names)

    @staticmethod
    def _describe_month_days(days: Iterable[int]) -> str:
        parts = []
        for day in days:
            if day == -1:
                parts.append("last")
            elif day < 0:
                parts.append(f"{abs(day)}{ordinal_suffix(abs(day))} to last")
            else:
                parts.append(f"{day}{ordinal_suffix(day)}")
        return ", ".join(parts) + " day"
