import datetime

from model_bakery import baker

from .models import Event, EventSeries
from .recurrence_rule import RecurrenceRule


class EventSeriesFactory:
    @staticmethod
    def create_recurring_event(
        organization,
        start_date: datetime.datetime,
        frequency: str,
        interval: int = 1,
        count: int | None = None,
        until: datetime.datetime | None = None,
        by_weekday: list[str] | None = None,
        duration: datetime.timedelta = datetime.timedelta(hours=1),
        time_zone: str = "UTC",
        exceptions: list[str] | None = None,
        **kwargs,
    ) -> Event:
        """
        Create a series template event together with its EventSeries row.

        Args:
            organization: Organization owning the series
            start_date: Start of the first occurrence
            frequency: Recurrence frequency (DAILY, WEEKLY, MONTHLY, YEARLY)
            interval: Interval between occurrences (default: 1)
            count: Number of occurrences (optional)
            until: End date for recurrence (optional)
            by_weekday: Weekday tokens, e.g. ["MO", "WE", "FR"] (optional)
            duration: Duration of each occurrence
            time_zone: IANA time zone the rule is expanded in
            exceptions: ISO-8601 excluded dates (optional)
            **kwargs: Additional Event fields

        Returns:
            Event instance acting as the series template
        """
        rule = RecurrenceRule(
            frequency=frequency,
            interval=interval,
            count=count,
            until=until,
            by_weekday=by_weekday or (),
        )
        name = kwargs.pop("name", "Weekly meetup")
        series = baker.make(
            EventSeries,
            organization=organization,
            name=name,
            time_zone=time_zone,
        )
        event = baker.make(
            Event,
            organization=organization,
            name=name,
            start_date=start_date,
            end_date=start_date + duration,
            time_zone=time_zone,
            is_recurring=True,
            recurrence_rule=rule.to_dict(),
            recurrence_exceptions=exceptions or [],
            series=series,
            **kwargs,
        )
        series.template_event = event
        series.save(update_fields=["template_event", "modified"])
        return event
