import dataclasses
import datetime
import re
from collections.abc import Iterable, Mapping
from typing import Any, Self

from event_series.constants import NUMERIC_FREQUENCIES, RecurrenceFrequency, RecurrenceWeekday
from event_series.date_utils import format_instant, parse_instant
from event_series.exceptions import InvalidDateError, InvalidRecurrenceRuleError


WEEKDAY_TOKEN_RE = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")

# Accepted spellings for each field, first one is the persisted key
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "frequency": ("frequency", "freq"),
    "interval": ("interval",),
    "count": ("count",),
    "until": ("until",),
    "by_weekday": ("by_weekday", "byweekday", "byday", "byWeekday", "byDay"),
    "by_month": ("by_month", "bymonth", "byMonth"),
    "by_month_day": ("by_month_day", "bymonthday", "byMonthDay"),
    "by_hour": ("by_hour", "byhour", "byHour"),
    "by_minute": ("by_minute", "byminute", "byMinute"),
    "by_second": ("by_second", "bysecond", "bySecond"),
    "by_set_position": ("by_set_position", "bysetpos", "bySetPos", "bySetPosition"),
    "week_start": ("week_start", "wkst", "weekStart"),
}

RRULE_KEYS = {
    "FREQ": "frequency",
    "INTERVAL": "interval",
    "COUNT": "count",
    "UNTIL": "until",
    "BYDAY": "by_weekday",
    "BYMONTH": "by_month",
    "BYMONTHDAY": "by_month_day",
    "BYHOUR": "by_hour",
    "BYMINUTE": "by_minute",
    "BYSECOND": "by_second",
    "BYSETPOS": "by_set_position",
    "WKST": "week_start",
}

# (min, max, zero_allowed) per integer list field
INTEGER_FIELD_DOMAINS: dict[str, tuple[int, int, bool]] = {
    "by_month": (1, 12, False),
    "by_month_day": (-31, 31, False),
    "by_hour": (0, 23, True),
    "by_minute": (0, 59, True),
    "by_second": (0, 59, True),
    "by_set_position": (-366, 366, False),
}


def parse_weekday_token(token: str) -> tuple[int | None, RecurrenceWeekday]:
    """Split a weekday token such as ``"MO"``, ``"1MO"`` or ``"-1FR"`` into (ordinal, weekday)."""
    match = WEEKDAY_TOKEN_RE.match(token.strip().upper())
    if not match:
        raise InvalidRecurrenceRuleError(
            f"Invalid weekday: {token}. Valid options are: MO, TU, WE, TH, FR, SA, SU "
            "optionally prefixed by an ordinal (e.g. 1MO, -1FR)"
        )
    ordinal, weekday = match.groups()
    if ordinal is None:
        return None, RecurrenceWeekday(weekday)
    position = int(ordinal)
    if position == 0 or not -53 <= position <= 53:
        raise InvalidRecurrenceRuleError(f"Invalid weekday ordinal in {token}")
    return position, RecurrenceWeekday(weekday)


def _split_list(value: Any) -> list:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, Iterable):
        return list(value)
    return [value]


def _coerce_int(field_name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidRecurrenceRuleError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise InvalidRecurrenceRuleError(f"{field_name} must be an integer") from e


@dataclasses.dataclass(frozen=True)
class RecurrenceRule:
    """
    Normalized recurrence rule following RFC 5545 (RRULE) semantics.

    This is the single in-memory representation of a rule: persisted dicts,
    RRULE strings and numeric frequencies are converted once, on the way in,
    through ``coerce``/``from_dict``/``from_rrule_string``.
    """

    frequency: RecurrenceFrequency
    interval: int = 1
    count: int | None = None
    until: datetime.datetime | None = None
    by_weekday: tuple[str, ...] = ()
    by_month: tuple[int, ...] = ()
    by_month_day: tuple[int, ...] = ()
    by_hour: tuple[int, ...] = ()
    by_minute: tuple[int, ...] = ()
    by_second: tuple[int, ...] = ()
    by_set_position: tuple[int, ...] = ()
    week_start: RecurrenceWeekday | None = None

    def __post_init__(self):
        set_field = object.__setattr__
        set_field(self, "frequency", self._normalize_frequency(self.frequency))
        set_field(self, "interval", _coerce_int("interval", self.interval))
        if self.count is not None:
            set_field(self, "count", _coerce_int("count", self.count))
        if self.until is not None:
            try:
                set_field(self, "until", parse_instant(self.until).replace(microsecond=0))
            except InvalidDateError as e:
                raise InvalidRecurrenceRuleError(f"Invalid until date: {self.until!r}") from e
        set_field(
            self,
            "by_weekday",
            tuple(str(token).strip().upper() for token in _split_list(self.by_weekday)),
        )
        for field_name in INTEGER_FIELD_DOMAINS:
            values = tuple(
                _coerce_int(field_name, value) for value in _split_list(getattr(self, field_name))
            )
            set_field(self, field_name, values)
        if self.week_start:
            try:
                set_field(
                    self, "week_start", RecurrenceWeekday(str(self.week_start).strip().upper())
                )
            except ValueError as e:
                raise InvalidRecurrenceRuleError(f"Invalid week start: {self.week_start}") from e
        else:
            set_field(self, "week_start", None)
        self.validate()

    @staticmethod
    def _normalize_frequency(value: Any) -> RecurrenceFrequency:
        if isinstance(value, RecurrenceFrequency):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            if value in NUMERIC_FREQUENCIES:
                return NUMERIC_FREQUENCIES[value]
        elif isinstance(value, str) and value.strip():
            normalized = value.strip().upper()
            if normalized.isdigit() and int(normalized) in NUMERIC_FREQUENCIES:
                return NUMERIC_FREQUENCIES[int(normalized)]
            if normalized in RecurrenceFrequency.values:
                return RecurrenceFrequency(normalized)
        raise InvalidRecurrenceRuleError(
            f"Invalid frequency: {value!r}. Valid options are: DAILY, WEEKLY, MONTHLY, YEARLY"
        )

    def validate(self) -> None:
        """
        Validate the recurrence rule for common issues.
        """
        if self.interval < 1:
            raise InvalidRecurrenceRuleError("Interval must be at least 1.")

        if self.count is not None and self.count < 1:
            raise InvalidRecurrenceRuleError("Count must be at least 1.")

        if self.count is not None and self.until is not None:
            raise InvalidRecurrenceRuleError(
                "Cannot specify both 'count' and 'until' in a recurrence rule."
            )

        for token in self.by_weekday:
            parse_weekday_token(token)

        for field_name, (minimum, maximum, zero_allowed) in INTEGER_FIELD_DOMAINS.items():
            values = getattr(self, field_name)
            invalid = [
                value
                for value in values
                if value < minimum or value > maximum or (value == 0 and not zero_allowed)
            ]
            if invalid:
                raise InvalidRecurrenceRuleError(
                    f"Invalid {field_name.replace('_', ' ')}: {', '.join(map(str, invalid))}. "
                    f"Must be between {minimum} and {maximum}"
                    + ("" if zero_allowed else ", excluding 0")
                    + "."
                )

    @classmethod
    def coerce(cls, value: "RecurrenceRule | Mapping[str, Any] | str") -> Self:
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls.from_dict(value)
        if isinstance(value, str):
            return cls.from_rrule_string(value)
        raise InvalidRecurrenceRuleError(f"Unsupported recurrence rule: {value!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        kwargs: dict[str, Any] = {}
        for field_name, aliases in FIELD_ALIASES.items():
            for alias in aliases:
                if alias in data and data[alias] is not None:
                    kwargs[field_name] = data[alias]
                    break
        if "frequency" not in kwargs:
            raise InvalidRecurrenceRuleError("Recurrence rule frequency is required.")
        return cls(**kwargs)

    @classmethod
    def from_rrule_string(cls, rrule_string: str) -> Self:
        """
        Create a RecurrenceRule instance from an RRULE string.
        """
        rrule_string = rrule_string.strip()
        if rrule_string.upper().startswith("RRULE:"):
            rrule_string = rrule_string[6:]

        data: dict[str, Any] = {}
        for part in rrule_string.split(";"):
            if "=" not in part:
                continue
            key, value = part.split("=", 1)
            field_name = RRULE_KEYS.get(key.strip().upper())
            if field_name is None:
                raise InvalidRecurrenceRuleError(f"Unsupported RRULE component: {key}")
            if field_name == "until":
                value = cls._parse_rrule_until(value.strip())
            data[field_name] = value
        return cls.from_dict(data)

    @staticmethod
    def _parse_rrule_until(value: str) -> datetime.datetime:
        for fmt in ("%Y%m%dT%H%M%SZ", "%Y%m%dT%H%M%S", "%Y%m%d"):
            try:
                return datetime.datetime.strptime(value, fmt).replace(tzinfo=datetime.UTC)
            except ValueError:
                continue
        raise InvalidRecurrenceRuleError(f"Invalid UNTIL value: {value}")

    def to_dict(self) -> dict[str, Any]:
        """Persisted (JSON) form of the rule. Empty fields are omitted."""
        data: dict[str, Any] = {"frequency": str(self.frequency), "interval": self.interval}
        if self.count is not None:
            data["count"] = self.count
        if self.until is not None:
            data["until"] = format_instant(self.until)
        for field_name in ("by_weekday", *INTEGER_FIELD_DOMAINS):
            values = getattr(self, field_name)
            if values:
                data[field_name] = list(values)
        if self.week_start:
            data["week_start"] = str(self.week_start)
        return data

    def to_rrule_string(self) -> str:
        """
        Convert the recurrence rule to an RRULE string following RFC 5545.
        """
        parts = [f"FREQ={self.frequency}"]

        if self.interval != 1:
            parts.append(f"INTERVAL={self.interval}")

        if self.count:
            parts.append(f"COUNT={self.count}")

        if self.until:
            parts.append(f"UNTIL={self.until.strftime('%Y%m%dT%H%M%SZ')}")

        if self.by_weekday:
            parts.append(f"BYDAY={','.join(self.by_weekday)}")

        for rrule_key, field_name in RRULE_KEYS.items():
            if field_name in INTEGER_FIELD_DOMAINS and getattr(self, field_name):
                parts.append(f"{rrule_key}={','.join(map(str, getattr(self, field_name)))}")

        if self.week_start:
            parts.append(f"WKST={self.week_start}")

        return ";".join(parts)

    def truncated_until(self, until: datetime.datetime) -> Self:
        """Return a copy ending at ``until`` (inclusive). COUNT is cleared."""
        return dataclasses.replace(self, count=None, until=until)

    def with_count(self, count: int | None) -> Self:
        """Return a copy terminated by ``count`` (or open-ended when ``None``). UNTIL is cleared."""
        return dataclasses.replace(self, count=count, until=None)

    @property
    def is_bounded(self) -> bool:
        return self.count is not None or self.until is not None

    def __str__(self):
        return f"Recurrence: {self.frequency} every {self.interval}"
