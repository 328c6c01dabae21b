import copy
import datetime
import logging
from typing import Annotated, Any

from django.utils import timezone

from dependency_injector.wiring import Provide, inject

from event_series.date_utils import format_instant, get_zone, local_date, parse_instant
from event_series.exceptions import (
    DateAlreadyExcludedError,
    DateNotExcludedError,
    DateNotInPatternError,
    EventNotRecurringError,
    OccurrenceAlreadyMaterializedError,
)
from event_series.models import Event
from event_series.services.dataclasses import (
    TEMPLATE_EVENT_FIELDS,
    Occurrence,
    SeriesData,
    ServiceContext,
)
from event_series.services.decorators import retry_on_conflict
from event_series.services.protocols.event_repository import EventRepository
from event_series.services.recurrence_engine import (
    InstantInput,
    RecurrenceEngine,
    validate_count,
)
from event_series.utils import generate_slug


logger = logging.getLogger(__name__)


class OccurrenceService:
    """
    Occurrence listing, virtual expansion, exception management and on-demand
    materialization for a single series, identified by its template event slug.
    """

    @inject
    def __init__(
        self,
        recurrence_engine: Annotated[
            "RecurrenceEngine | None", Provide["recurrence_engine"]
        ] = None,
        event_repository: Annotated["EventRepository | None", Provide["event_repository"]] = None,
        materialization_count: Annotated[
            int | None, Provide["config.EVENT_SERIES_MATERIALIZATION_COUNT"]
        ] = None,
    ) -> None:
        self.recurrence_engine = recurrence_engine
        self.event_repository = event_repository
        self.materialization_count = materialization_count or 2

    def load_series(self, context: ServiceContext, slug: str) -> SeriesData:
        """
        Load the recurrence state of the series whose template event is ``slug``.
        :raises EventNotFoundError: if the event does not exist.
        :raises EventNotRecurringError: if the event is not a series template.
        """
        event = self.event_repository.find_event_by_slug(context.organization_id, slug)
        if not event.is_recurring or not event.recurrence_rule:
            raise EventNotRecurringError()

        return SeriesData(
            template_event=event,
            series=event.series,
            start=event.start_date,
            time_zone=event.time_zone or (event.series.time_zone if event.series else None),
            rule=event.rule,
            exception_dates=event.exception_dates,
        )

    def list_occurrences(
        self,
        context: ServiceContext,
        slug: str,
        start: InstantInput | None = None,
        end: InstantInput | None = None,
        count: int | None = None,
        include_excluded: bool = False,
    ) -> list[datetime.datetime]:
        """
        Occurrence instants of a series, optionally bounded by ``start``/``end``/``count``.
        """
        series = self.load_series(context, slug)
        return self._list_dates(series, start, end, count, include_excluded)

    def _list_dates(
        self,
        series: SeriesData,
        start: InstantInput | None,
        end: InstantInput | None,
        count: int | None,
        include_excluded: bool = False,
    ) -> list[datetime.datetime]:
        engine = self.recurrence_engine
        exception_dates = [] if include_excluded else series.exception_dates
        validate_count(count)

        # Without an explicit count a bounded rule lists every slot up to its end
        if end is not None or (start is not None and count is None and series.rule.is_bounded):
            dates = engine.generate_occurrences(
                series.start,
                series.rule,
                time_zone=series.time_zone,
                until=end,
                exception_dates=exception_dates,
            )
            if start is not None:
                start_instant = parse_instant(start)
                dates = [date for date in dates if date >= start_instant]
            return dates[:count] if count is not None else dates

        if start is not None:
            return engine.occurrences_after(
                series.start,
                series.rule,
                start,
                time_zone=series.time_zone,
                count=count,
                exception_dates=exception_dates,
            )

        return engine.generate_occurrences(
            series.start,
            series.rule,
            time_zone=series.time_zone,
            count=count,
            exception_dates=exception_dates,
        )

    def expand_occurrences(
        self,
        context: ServiceContext,
        slug: str,
        start: InstantInput | None = None,
        end: InstantInput | None = None,
        count: int | None = None,
    ) -> list[Occurrence]:
        """
        Occurrences of a series paired with their event. Slots with a materialized
        event use it, every other slot gets an unsaved projection of the template.
        """
        series = self.load_series(context, slug)
        dates = self._list_dates(series, start, end, count)
        return self._to_occurrences(context, series, dates)

    def _to_occurrences(
        self, context: ServiceContext, series: SeriesData, dates: list[datetime.datetime]
    ) -> list[Occurrence]:
        if not dates:
            return []

        materialized_by_date: dict[datetime.datetime, Event] = {}
        if series.series is not None:
            materialized_by_date = {
                parse_instant(event.original_occurrence_date): event
                for event in self.event_repository.find_materialized_occurrences(
                    context.organization_id, series.series.pk, dates[0], dates[-1]
                )
            }

        occurrences = []
        for date in dates:
            event = materialized_by_date.get(date)
            if event is not None:
                occurrences.append(Occurrence(date=date, materialized=True, event=event))
            else:
                occurrences.append(
                    Occurrence(
                        date=date,
                        materialized=False,
                        event=self._project(series.template_event, date),
                    )
                )
        return occurrences

    @staticmethod
    def _project(template: Event, date: datetime.datetime) -> Event:
        """Unsaved copy of ``template`` moved to ``date``, keeping its duration."""
        projection = copy.copy(template)
        projection.pk = None
        projection._state.adding = True
        projection.start_date = date
        projection.end_date = date + template.duration if template.end_date else None
        projection.original_occurrence_date = date
        projection.is_recurring = False
        projection.recurrence_rule = None
        projection.recurrence_exceptions = []
        return projection

    def add_exception_date(
        self, context: ServiceContext, slug: str, date: InstantInput
    ) -> Event:
        """
        Exclude one occurrence from the series.
        :raises DateAlreadyExcludedError: if the date's day is already excluded.
        :raises DateNotInPatternError: if the date is not an occurrence of the series.
        """
        series = self.load_series(context, slug)
        instant = parse_instant(date)

        slot = self.recurrence_engine.match_occurrence(
            instant, series.start, series.rule, series.time_zone, series.exception_dates
        )
        if slot is None:
            if self._matching_exceptions(series, instant):
                raise DateAlreadyExcludedError(format_instant(instant))
            raise DateNotInPatternError("Date", format_instant(instant))
        instant = slot

        exceptions = sorted([*series.exception_dates, instant])
        event = self.event_repository.update_event(
            context.organization_id,
            slug,
            {"recurrence_exceptions": [format_instant(value) for value in exceptions]},
            actor_id=context.actor_id,
            expected_version=series.template_event.version,
        )
        logger.info("Excluded %s from series %s", format_instant(instant), slug)
        return event

    def remove_exception_date(
        self, context: ServiceContext, slug: str, date: InstantInput
    ) -> Event:
        """
        Restore a previously excluded occurrence.
        :raises DateNotExcludedError: if no exception falls on the date's local day.
        """
        series = self.load_series(context, slug)
        instant = parse_instant(date)

        matching = self._matching_exceptions(series, instant)
        if not matching:
            raise DateNotExcludedError()

        exceptions = [value for value in series.exception_dates if value not in matching]
        event = self.event_repository.update_event(
            context.organization_id,
            slug,
            {"recurrence_exceptions": [format_instant(value) for value in exceptions]},
            actor_id=context.actor_id,
            expected_version=series.template_event.version,
        )
        logger.info("Restored %s in series %s", format_instant(instant), slug)
        return event

    @staticmethod
    def _matching_exceptions(
        series: SeriesData, instant: datetime.datetime
    ) -> list[datetime.datetime]:
        zone = get_zone(series.time_zone)
        day = local_date(instant, zone)
        return [value for value in series.exception_dates if local_date(value, zone) == day]

    def find_occurrence(
        self, context: ServiceContext, slug: str, date: InstantInput
    ) -> Event | None:
        """The materialized event for the slot at ``date``, if there is one."""
        series = self.load_series(context, slug)
        instant = parse_instant(date)
        slot = self.recurrence_engine.match_occurrence(
            instant, series.start, series.rule, series.time_zone
        )
        return self._find_materialized(context, series, slot or instant)

    def _find_materialized(
        self, context: ServiceContext, series: SeriesData, instant: datetime.datetime
    ) -> Event | None:
        if series.series is None:
            return None
        events = self.event_repository.find_materialized_occurrences(
            context.organization_id, series.series.pk, instant, instant
        )
        return events[0] if events else None

    def get_or_create_occurrence(
        self, context: ServiceContext, slug: str, date: InstantInput
    ) -> Event:
        """
        Materialize the slot at ``date``, or return the event already filling it.
        :raises DateNotInPatternError: if the date is not an occurrence of the series.
        """
        series = self.load_series(context, slug)
        instant = parse_instant(date)

        slot = self.recurrence_engine.match_occurrence(
            instant, series.start, series.rule, series.time_zone, series.exception_dates
        )
        if slot is None:
            raise DateNotInPatternError("Occurrence date", format_instant(instant))

        existing = self._find_materialized(context, series, slot)
        if existing is not None:
            return existing

        return self._materialize(context, series, slot)

    def _materialize(
        self, context: ServiceContext, series: SeriesData, instant: datetime.datetime
    ) -> Event:
        if series.series is None:
            raise EventNotRecurringError("Series template has no series to attach occurrences to")

        template = series.template_event
        data = {field: copy.copy(getattr(template, field)) for field in TEMPLATE_EVENT_FIELDS}
        data.update(
            slug=generate_slug(template.name),
            start_date=instant,
            end_date=instant + template.duration if template.end_date else None,
            series=series.series,
            original_occurrence_date=instant,
        )
        try:
            event = self.event_repository.create_event(context.organization_id, data)
        except OccurrenceAlreadyMaterializedError:
            logger.info(
                "Occurrence %s of %s materialized concurrently, returning existing event",
                format_instant(instant),
                template.slug,
            )
            existing = self._find_materialized(context, series, instant)
            if existing is None:
                raise
            return existing

        logger.info(
            "Materialized occurrence %s of series %s as %s",
            format_instant(instant),
            template.slug,
            event.slug,
        )
        return event

    def get_upcoming_occurrences(
        self,
        context: ServiceContext,
        slug: str,
        count: int = 10,
        include_past: bool = False,
        now: datetime.datetime | None = None,
    ) -> list[Occurrence]:
        """
        The next ``count`` occurrences from ``now`` (or from the series start when
        ``include_past``), each paired with its materialized event or a projection.
        """
        series = self.load_series(context, slug)
        now = now or timezone.now()

        if include_past:
            dates = self._list_dates(series, None, None, count)
        else:
            dates = self._list_dates(series, now, None, count)
        return self._to_occurrences(context, series, dates)

    def materialize_next_occurrence(
        self,
        context: ServiceContext,
        slug: str,
        now: datetime.datetime | None = None,
    ) -> Event | None:
        """
        Materialize the first upcoming slot that has no event yet.
        Returns None when the series has no unmaterialized upcoming slot.
        """
        events = self.materialize_next_occurrences(context, slug, count=1, now=now)
        return events[0] if events else None

    def materialize_next_occurrences(
        self,
        context: ServiceContext,
        slug: str,
        count: int | None = None,
        now: datetime.datetime | None = None,
    ) -> list[Event]:
        """
        Materialize up to ``count`` upcoming slots that have no event yet.
        """
        if count is None:
            count = self.materialization_count
        series = self.load_series(context, slug)
        now = now or timezone.now()

        pending = self._pending_dates(context, series, now, count)
        events = [self._materialize(context, series, date) for date in pending]
        logger.debug("Materialized %s occurrences of series %s", len(events), slug)
        return events

    def _pending_dates(
        self,
        context: ServiceContext,
        series: SeriesData,
        now: datetime.datetime,
        count: int,
    ) -> list[datetime.datetime]:
        # Look ahead further than needed since some slots may already be materialized
        window = count * 2
        after = now
        pending: list[datetime.datetime] = []
        while len(pending) < count:
            dates = self._list_dates(series, after, None, window)
            if not dates:
                break
            occurrences = self._to_occurrences(context, series, dates)
            pending.extend(o.date for o in occurrences if not o.materialized)
            if len(dates) < window:
                break
            after = dates[-1] + datetime.timedelta(seconds=1)
        return pending[:count]

    @retry_on_conflict()
    def update_future_occurrences(
        self,
        context: ServiceContext,
        slug: str,
        from_date: InstantInput,
        updates: dict[str, Any],
    ) -> int:
        """
        Apply ``updates`` to the series template and to every materialized
        occurrence on or after ``from_date``. Earlier materialized occurrences keep
        their values.

        :return: how many materialized occurrences were updated.
        :raises ValueError: if ``updates`` touches a field templates do not share.
        """
        unknown_fields = set(updates) - set(TEMPLATE_EVENT_FIELDS)
        if unknown_fields:
            raise ValueError(f"Unsupported occurrence updates: {', '.join(sorted(unknown_fields))}")

        series = self.load_series(context, slug)
        from_instant = parse_instant(from_date)
        future_events = []
        if series.series is not None:
            future_events = self.event_repository.find_materialized_occurrences(
                context.organization_id, series.series.pk, start=from_instant
            )

        with self.event_repository.atomic():
            self.event_repository.update_event(
                context.organization_id,
                slug,
                updates,
                actor_id=context.actor_id,
                expected_version=series.template_event.version,
            )
            for event in future_events:
                self.event_repository.update_event(
                    context.organization_id,
                    event.slug,
                    updates,
                    actor_id=context.actor_id,
                    expected_version=event.version,
                )

        logger.info(
            "Updated %s and %s future occurrences from %s: %s",
            slug,
            len(future_events),
            format_instant(from_instant),
            sorted(updates),
        )
        return len(future_events)
