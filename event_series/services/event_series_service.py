import dataclasses
import logging
from collections.abc import Iterable
from typing import Annotated, Any

from dependency_injector.wiring import Provide, inject

from event_series.date_utils import format_instant, get_zone, parse_instant
from event_series.exceptions import EventAlreadyRecurringError, SeriesHasSplitPointsError
from event_series.models import Event
from event_series.recurrence_rule import RecurrenceRule
from event_series.services.dataclasses import EventSeriesInputData, ServiceContext
from event_series.services.decorators import retry_on_conflict
from event_series.services.occurrence_service import OccurrenceService
from event_series.services.protocols.event_repository import EventRepository
from event_series.services.recurrence_engine import InstantInput, RecurrenceEngine
from event_series.utils import generate_slug


logger = logging.getLogger(__name__)


class EventSeriesService:
    """
    Series lifecycle: creation, promotion of a single event, rule edits and deletion.
    """

    @inject
    def __init__(
        self,
        recurrence_engine: Annotated[
            "RecurrenceEngine | None", Provide["recurrence_engine"]
        ] = None,
        event_repository: Annotated["EventRepository | None", Provide["event_repository"]] = None,
        occurrence_service: Annotated[
            "OccurrenceService | None", Provide["occurrence_service"]
        ] = None,
    ) -> None:
        self.recurrence_engine = recurrence_engine
        self.event_repository = event_repository
        self.occurrence_service = occurrence_service

    def create_series(self, context: ServiceContext, data: EventSeriesInputData) -> Event:
        """
        Create a series together with its template event.
        :return: the template event.
        """
        rule = RecurrenceRule.coerce(data.recurrence_rule)
        time_zone = data.time_zone or data.template.time_zone
        # Fail fast on unknown time zones before writing anything
        get_zone(time_zone)

        with self.event_repository.atomic():
            series = self.event_repository.create_series(
                context.organization_id,
                {
                    "slug": generate_slug(data.name),
                    "name": data.name,
                    "description": data.description,
                    "time_zone": time_zone,
                },
            )
            template = self.event_repository.create_event(
                context.organization_id,
                {
                    **dataclasses.asdict(data.template),
                    "slug": generate_slug(data.template.name),
                    "time_zone": time_zone,
                    "is_recurring": True,
                    "recurrence_rule": rule.to_dict(),
                    "recurrence_exceptions": self._format_exceptions(data.exception_dates),
                    "series": series,
                },
            )
            self.event_repository.update_series(
                context.organization_id, series.slug, {"template_event": template}
            )

        logger.info("Created series %s with template %s", series.slug, template.slug)
        return template

    @retry_on_conflict()
    def promote_to_series(
        self,
        context: ServiceContext,
        slug: str,
        recurrence_rule: RecurrenceRule | dict[str, Any] | str,
        exception_dates: Iterable[InstantInput] | None = None,
        time_zone: str | None = None,
    ) -> Event:
        """
        Turn an existing single event into the template of a new series.
        :raises EventAlreadyRecurringError: if the event already belongs to a series.
        """
        event = self.event_repository.find_event_by_slug(context.organization_id, slug)
        if event.is_recurring or event.series_id is not None:
            raise EventAlreadyRecurringError()

        rule = RecurrenceRule.coerce(recurrence_rule)
        time_zone = time_zone or event.time_zone
        get_zone(time_zone)

        with self.event_repository.atomic():
            series = self.event_repository.create_series(
                context.organization_id,
                {
                    "slug": generate_slug(event.name),
                    "name": event.name,
                    "description": event.description,
                    "time_zone": time_zone,
                    "template_event": event,
                },
            )
            event = self.event_repository.update_event(
                context.organization_id,
                slug,
                {
                    "is_recurring": True,
                    "recurrence_rule": rule.to_dict(),
                    "recurrence_exceptions": self._format_exceptions(exception_dates or []),
                    "time_zone": time_zone,
                    "series": series,
                },
                actor_id=context.actor_id,
                expected_version=event.version,
            )

        logger.info("Promoted event %s to series %s", slug, series.slug)
        return event

    @retry_on_conflict()
    def update_recurrence_rule(
        self,
        context: ServiceContext,
        slug: str,
        recurrence_rule: RecurrenceRule | dict[str, Any] | str,
    ) -> Event:
        """Replace the rule of a series template. Exception dates are kept."""
        series = self.occurrence_service.load_series(context, slug)
        rule = RecurrenceRule.coerce(recurrence_rule)
        event = self.event_repository.update_event(
            context.organization_id,
            slug,
            {"recurrence_rule": rule.to_dict()},
            actor_id=context.actor_id,
            expected_version=series.template_event.version,
        )
        logger.info("Updated recurrence rule of series %s to %s", slug, rule.to_rrule_string())
        return event

    def describe_series(self, context: ServiceContext, slug: str) -> str:
        series = self.occurrence_service.load_series(context, slug)
        return self.recurrence_engine.describe(series.rule, series.time_zone)

    def delete_series(self, context: ServiceContext, slug: str, cascade: bool = False) -> None:
        """
        Delete a series and its template event.

        With ``cascade`` its materialized occurrences are deleted too, otherwise they
        are kept as standalone events.
        :raises SeriesHasSplitPointsError: if ``slug`` is the root of a split chain.
        """
        series = self.occurrence_service.load_series(context, slug)
        if self.event_repository.find_child_events_by_parent_id(
            context.organization_id, series.template_event.pk
        ):
            raise SeriesHasSplitPointsError()

        with self.event_repository.atomic():
            if series.series is not None:
                if cascade:
                    for event in self.event_repository.find_materialized_occurrences(
                        context.organization_id, series.series.pk
                    ):
                        self.event_repository.remove_event(context.organization_id, event.pk)
                self.event_repository.remove_series(context.organization_id, series.series.pk)
            self.event_repository.remove_event(context.organization_id, series.template_event.pk)

        logger.info("Deleted series %s (cascade=%s)", slug, cascade)

    @staticmethod
    def _format_exceptions(values: Iterable[InstantInput]) -> list[str]:
        return [format_instant(value) for value in sorted(parse_instant(v) for v in values)]
