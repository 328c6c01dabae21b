import datetime

from django.db import models
from django.db.models import Q

from common.models import VersionedModel
from event_series.constants import DEFAULT_TIMEZONE, EventType
from event_series.date_utils import parse_instant
from event_series.managers import EventManager, EventSeriesManager
from event_series.recurrence_rule import RecurrenceRule
from organizations.models import OrganizationModel


class EventSeries(OrganizationModel):
    """
    A recurring series. The recurrence itself (rule and exception dates) lives
    on the template event, the series only names and groups its events.
    """

    slug = models.SlugField(max_length=255)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    time_zone = models.CharField(max_length=64, default=DEFAULT_TIMEZONE)
    template_event = models.ForeignKey(
        "Event",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="The event holding the shape and recurrence shared by every occurrence",
    )

    objects: EventSeriesManager = EventSeriesManager()

    class Meta:
        verbose_name_plural = "event series"
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "slug"], name="unique_event_series_slug_per_organization"
            ),
        ]

    def __str__(self):
        return self.name


class Event(VersionedModel, OrganizationModel):
    """
    Represents an event. Depending on its recurrence fields it is either a
    standalone event, a series template, a materialized occurrence of a series
    (``original_occurrence_date`` set) or a split point (``is_recurrence_split_point``).
    """

    slug = models.SlugField(max_length=255)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=EventType, default=EventType.IN_PERSON)
    location = models.CharField(max_length=255, blank=True)
    location_online = models.URLField(max_length=500, blank=True)
    max_attendees = models.PositiveIntegerField(null=True, blank=True)
    require_approval = models.BooleanField(default=False)
    approval_question = models.TextField(blank=True)
    allow_waitlist = models.BooleanField(default=False)
    categories = models.JSONField(default=list, blank=True)

    start_date = models.DateTimeField()
    end_date = models.DateTimeField(null=True, blank=True)
    time_zone = models.CharField(max_length=64, default=DEFAULT_TIMEZONE)

    # Recurrence fields
    is_recurring = models.BooleanField(default=False)
    recurrence_rule = models.JSONField(
        null=True,
        blank=True,
        help_text="Persisted recurrence rule (frequency, interval, count, until, by_* fields)",
    )
    recurrence_exceptions = models.JSONField(
        default=list,
        blank=True,
        help_text="ISO-8601 instants excluded from the recurrence pattern",
    )
    series = models.ForeignKey(
        EventSeries,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="events",
    )
    parent_event = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="child_events",
        help_text="For split points, the root template of the series chain",
    )
    original_occurrence_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="For materialized occurrences, the occurrence slot this event fills",
    )
    original_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="For split points, the boundary date from which this event governs the series",
    )
    is_recurrence_split_point = models.BooleanField(default=False)

    objects: EventManager = EventManager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "slug"], name="unique_event_slug_per_organization"
            ),
            models.UniqueConstraint(
                fields=["series", "original_occurrence_date"],
                condition=Q(original_occurrence_date__isnull=False),
                name="unique_materialized_occurrence_per_series",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.start_date})"

    @property
    def rule(self) -> RecurrenceRule | None:
        """The normalized recurrence rule, or None for non recurring events."""
        if not self.recurrence_rule:
            return None
        return RecurrenceRule.coerce(self.recurrence_rule)

    @property
    def exception_dates(self) -> list[datetime.datetime]:
        return [parse_instant(value) for value in self.recurrence_exceptions or []]

    @property
    def duration(self) -> datetime.timedelta:
        """Returns the duration of the event as a timedelta."""
        if self.end_date is None:
            return datetime.timedelta(0)
        return self.end_date - self.start_date

    @property
    def is_materialized_occurrence(self) -> bool:
        return self.series_id is not None and self.original_occurrence_date is not None
