"""Instant/timezone helpers shared by the recurrence engine and the services.

Instants crossing module boundaries are always timezone-aware. Pattern
expansion happens on naive *local* wall-clock datetimes, so these helpers do
the conversions in both directions.
"""

import datetime
import zoneinfo
from functools import lru_cache

from dateutil import parser as date_parser

from event_series.constants import DEFAULT_TIMEZONE
from event_series.exceptions import InvalidDateError, InvalidTimezoneError


@lru_cache(maxsize=128)
def get_zone(iana_tz: str | None) -> zoneinfo.ZoneInfo:
    try:
        return zoneinfo.ZoneInfo(iana_tz or DEFAULT_TIMEZONE)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezoneError(str(iana_tz)) from e


def parse_instant(value: datetime.datetime | datetime.date | str) -> datetime.datetime:
    """
    Coerce ``value`` to an aware UTC datetime.

    Naive datetimes and bare dates are taken as UTC. Strings must be ISO-8601.
    """
    if isinstance(value, str):
        try:
            value = date_parser.isoparse(value.strip())
        except (ValueError, OverflowError) as e:
            raise InvalidDateError(value) from e
    elif isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
        value = datetime.datetime.combine(value, datetime.time.min)
    elif not isinstance(value, datetime.datetime):
        raise InvalidDateError(value)

    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.UTC)
    return value.astimezone(datetime.UTC)


def to_local_naive(instant: datetime.datetime, zone: zoneinfo.ZoneInfo) -> datetime.datetime:
    return instant.astimezone(zone).replace(tzinfo=None)


def from_local_naive(local: datetime.datetime, zone: zoneinfo.ZoneInfo) -> datetime.datetime:
    # fold=0 picks the first of two ambiguous wall-clock times on DST fall-back
    return local.replace(tzinfo=zone, fold=0).astimezone(datetime.UTC)


def local_date(instant: datetime.datetime, zone: zoneinfo.ZoneInfo) -> datetime.date:
    return instant.astimezone(zone).date()


def format_instant(value: datetime.datetime) -> str:
    """Persisted form of an instant: UTC, second precision, ``Z`` suffix."""
    return parse_instant(value).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")
