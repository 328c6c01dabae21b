import copy
import datetime
import logging
from typing import Annotated, Any

from dependency_injector.wiring import Provide, inject

from event_series.date_utils import format_instant, get_zone, local_date, parse_instant
from event_series.exceptions import (
    DateNotInPatternError,
    DuplicateSplitPointError,
    SplitAtSeriesStartError,
)
from event_series.models import Event
from event_series.recurrence_rule import RecurrenceRule
from event_series.services.dataclasses import TEMPLATE_EVENT_FIELDS, SeriesData, ServiceContext
from event_series.services.decorators import retry_on_conflict
from event_series.services.occurrence_service import OccurrenceService
from event_series.services.protocols.event_repository import EventRepository
from event_series.services.recurrence_engine import InstantInput, RecurrenceEngine
from event_series.utils import generate_slug


logger = logging.getLogger(__name__)


class SeriesModificationService:
    """
    Splits recurring series and resolves which event governs a given date.

    A split truncates the series being split and starts a successor series whose
    template is a split point. All split points of a chain reference the chain's
    root template through ``parent_event``, ordered by ``original_date``.
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

    @retry_on_conflict()
    def split_series_at(
        self,
        context: ServiceContext,
        slug: str,
        split_date: InstantInput,
        modifications: dict[str, Any] | None = None,
    ) -> Event:
        """
        Split the series whose template is ``slug`` at ``split_date``.

        The original series keeps every occurrence strictly before the split, the
        returned successor template governs the split date and everything after it.

        :raises EventNotRecurringError: if ``slug`` is not a series template.
        :raises DateNotInPatternError: if ``split_date`` is not an occurrence.
        :raises SplitAtSeriesStartError: if ``split_date`` is the first occurrence.
        :raises DuplicateSplitPointError: if the chain already splits at ``split_date``.
        :raises ConcurrentModificationError: if the series changed while splitting.
        """
        modifications = modifications or {}
        unknown_fields = set(modifications) - set(TEMPLATE_EVENT_FIELDS)
        if unknown_fields:
            raise ValueError(f"Unsupported split modifications: {', '.join(sorted(unknown_fields))}")

        engine = self.recurrence_engine
        series = self.occurrence_service.load_series(context, slug)
        template = series.template_event
        requested = parse_instant(split_date)

        # Boundaries are always exact slots
        slot = engine.match_occurrence(
            requested, series.start, series.rule, series.time_zone, series.exception_dates
        )
        if slot is None:
            raise DateNotInPatternError("Split date", format_instant(requested))
        instant = slot.replace(microsecond=0)

        previous = engine.previous_occurrence(
            series.start, series.rule, instant, time_zone=series.time_zone
        )
        if previous is None:
            raise SplitAtSeriesStartError()

        root = self._get_root(context, template)
        split_points = self.event_repository.find_child_events_by_parent_id(
            context.organization_id, root.pk
        )
        if any(parse_instant(point.original_date) == instant for point in split_points):
            raise DuplicateSplitPointError(format_instant(instant))
        later_boundaries = [
            parse_instant(point.original_date)
            for point in split_points
            if parse_instant(point.original_date) > instant
        ]
        next_boundary = min(later_boundaries) if later_boundaries else None

        successor_rule = self._build_successor_rule(series, instant, next_boundary)
        truncated_rule = series.rule.truncated_until(previous.replace(microsecond=0))

        zone = get_zone(series.time_zone)
        split_day = local_date(instant, zone)
        kept_exceptions = [
            value for value in series.exception_dates if local_date(value, zone) < split_day
        ]
        moved_exceptions = [
            value for value in series.exception_dates if local_date(value, zone) >= split_day
        ]

        with self.event_repository.atomic():
            self.event_repository.update_event(
                context.organization_id,
                template.slug,
                {
                    "recurrence_rule": truncated_rule.to_dict(),
                    "recurrence_exceptions": [format_instant(value) for value in kept_exceptions],
                },
                actor_id=context.actor_id,
                expected_version=template.version,
            )
            successor = self._create_successor(
                context,
                template,
                root,
                instant,
                successor_rule,
                moved_exceptions,
                modifications,
            )

        logger.info(
            "Split series %s at %s: original now ends %s, successor %s",
            template.slug,
            format_instant(instant),
            format_instant(previous),
            successor.slug,
        )
        return successor

    def _get_root(self, context: ServiceContext, event: Event) -> Event:
        if event.is_recurrence_split_point and event.parent_event_id:
            return self.event_repository.find_event_by_slug(
                context.organization_id, event.parent_event.slug
            )
        return event

    def _build_successor_rule(
        self,
        series: SeriesData,
        split_instant: datetime.datetime,
        next_boundary: datetime.datetime | None,
    ) -> RecurrenceRule:
        rule = series.rule
        if rule.count:
            used = self.recurrence_engine.count_occurrences_before(
                series.start, rule, split_instant, time_zone=series.time_zone
            )
            remaining = rule.count - used
            successor_rule = rule.with_count(remaining if remaining > 0 else None)
        else:
            successor_rule = rule.with_count(None)

        if next_boundary is not None:
            # A later split point already governs from next_boundary on
            last = self.recurrence_engine.previous_occurrence(
                split_instant,
                successor_rule,
                next_boundary,
                time_zone=series.time_zone,
            )
            if last is not None:
                successor_rule = successor_rule.truncated_until(last.replace(microsecond=0))
        return successor_rule

    def _create_successor(
        self,
        context: ServiceContext,
        template: Event,
        root: Event,
        split_instant: datetime.datetime,
        rule: RecurrenceRule,
        exception_dates: list[datetime.datetime],
        modifications: dict[str, Any],
    ) -> Event:
        properties = {field: copy.copy(getattr(template, field)) for field in TEMPLATE_EVENT_FIELDS}
        properties.update(modifications)

        series = self.event_repository.create_series(
            context.organization_id,
            {
                "slug": generate_slug(properties["name"]),
                "name": properties["name"],
                "description": properties["description"],
                "time_zone": properties["time_zone"],
            },
        )
        successor = self.event_repository.create_event(
            context.organization_id,
            {
                **properties,
                "slug": generate_slug(properties["name"]),
                "start_date": split_instant,
                "end_date": split_instant + template.duration if template.end_date else None,
                "is_recurring": True,
                "recurrence_rule": rule.to_dict(),
                "recurrence_exceptions": [format_instant(value) for value in exception_dates],
                "series": series,
                "parent_event": root,
                "original_date": split_instant,
                "is_recurrence_split_point": True,
            },
        )
        self.event_repository.update_series(
            context.organization_id, series.slug, {"template_event": successor}
        )
        return successor

    def get_effective_event_for_date(
        self, context: ServiceContext, root_slug: str, date: InstantInput
    ) -> Event:
        """
        The template event governing ``date`` in the chain rooted at ``root_slug``:
        the latest split point whose boundary is on or before ``date``, else the root.
        """
        instant = parse_instant(date)
        root = self._get_root(
            context, self.event_repository.find_event_by_slug(context.organization_id, root_slug)
        )
        split_points = sorted(
            self.event_repository.find_child_events_by_parent_id(context.organization_id, root.pk),
            key=lambda point: parse_instant(point.original_date),
        )
        for point in reversed(split_points):
            if parse_instant(point.original_date) <= instant:
                return point
        return root

    def get_series_chain(self, context: ServiceContext, root_slug: str) -> list[Event]:
        """The root template followed by its split points, in boundary order."""
        root = self._get_root(
            context, self.event_repository.find_event_by_slug(context.organization_id, root_slug)
        )
        return [
            root,
            *self.event_repository.find_child_events_by_parent_id(context.organization_id, root.pk),
        ]
