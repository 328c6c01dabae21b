import datetime
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any

from event_series.constants import DEFAULT_TIMEZONE, EventType
from event_series.models import Event, EventSeries
from event_series.recurrence_rule import RecurrenceRule


# Non temporal properties copied from a template to its projections and split points
TEMPLATE_EVENT_FIELDS = (
    "name",
    "description",
    "type",
    "location",
    "location_online",
    "max_attendees",
    "require_approval",
    "approval_question",
    "allow_waitlist",
    "categories",
    "time_zone",
)


@dataclass(frozen=True)
class ServiceContext:
    """Tenant and actor a service call runs for."""

    organization_id: int
    actor_id: int | None = None


@dataclass
class SeriesData:
    """Recurrence state of one series, read from its template event."""

    template_event: Event
    series: EventSeries | None
    start: datetime.datetime
    time_zone: str
    rule: RecurrenceRule
    exception_dates: list[datetime.datetime]


@dataclass
class Occurrence:
    date: datetime.datetime
    materialized: bool
    # Materialized event, or an unsaved projection of the template
    event: Event


@dataclass
class EventInputData:
    name: str
    start_date: datetime.datetime
    end_date: datetime.datetime | None = None
    description: str = ""
    type: str = EventType.IN_PERSON  # noqa: A003
    location: str = ""
    location_online: str = ""
    max_attendees: int | None = None
    require_approval: bool = False
    approval_question: str = ""
    allow_waitlist: bool = False
    categories: list[str] = dataclass_field(default_factory=list)
    time_zone: str = DEFAULT_TIMEZONE


@dataclass
class EventSeriesInputData:
    name: str
    recurrence_rule: RecurrenceRule | dict[str, Any] | str
    template: EventInputData
    description: str = ""
    time_zone: str | None = None
    exception_dates: list[datetime.datetime] = dataclass_field(default_factory=list)
