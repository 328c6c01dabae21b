import datetime
import logging
from typing import Any

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from event_series.exceptions import (
    ConcurrentModificationError,
    EventNotFoundError,
    OccurrenceAlreadyMaterializedError,
    SeriesNotFoundError,
)
from event_series.models import Event, EventSeries


logger = logging.getLogger(__name__)


class DjangoEventRepository:
    """
    ORM backed implementation of the ``EventRepository`` port.
    """

    def find_series_by_slug(self, organization_id: int, slug: str) -> EventSeries:
        try:
            return EventSeries.objects.filter_by_organization(organization_id).get(slug=slug)
        except EventSeries.DoesNotExist as e:
            raise SeriesNotFoundError(slug) from e

    def find_event_by_slug(self, organization_id: int, slug: str) -> Event:
        try:
            return (
                Event.objects.filter_by_organization(organization_id)
                .select_related("series")
                .get(slug=slug)
            )
        except Event.DoesNotExist as e:
            raise EventNotFoundError(slug) from e

    def find_child_events_by_parent_id(self, organization_id: int, parent_id: int) -> list[Event]:
        return list(
            Event.objects.filter_by_organization(organization_id).filter_split_points_of(parent_id)
        )

    def find_materialized_occurrences(
        self,
        organization_id: int,
        series_id: int,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ) -> list[Event]:
        return list(
            Event.objects.materialized_occurrences_of(organization_id, series_id, start, end)
        )

    def create_event(self, organization_id: int, data: dict[str, Any]) -> Event:
        try:
            # Savepoint so a duplicate slot does not poison an enclosing transaction
            with transaction.atomic():
                event = Event.objects.create(organization_id=organization_id, **data)
        except IntegrityError:
            series = data.get("series")
            series_id = data.get("series_id") or (series.pk if series else None)
            occurrence_date = data.get("original_occurrence_date")
            if (
                series_id is not None
                and occurrence_date is not None
                and self.find_materialized_occurrences(
                    organization_id, series_id, occurrence_date, occurrence_date
                )
            ):
                raise OccurrenceAlreadyMaterializedError(
                    series.slug if series else str(series_id), occurrence_date
                ) from None
            raise

        logger.debug("Created event %s for organization %s", event.slug, organization_id)
        return event

    def create_series(self, organization_id: int, data: dict[str, Any]) -> EventSeries:
        series = EventSeries.objects.create(organization_id=organization_id, **data)
        logger.debug("Created series %s for organization %s", series.slug, organization_id)
        return series

    def update_event(
        self,
        organization_id: int,
        slug: str,
        patch: dict[str, Any],
        actor_id: int | None = None,
        expected_version: int | None = None,
    ) -> Event:
        qs = Event.objects.filter_by_organization(organization_id).filter(slug=slug)
        if expected_version is not None:
            qs = qs.filter(version=expected_version)

        updated = qs.update(**patch, version=F("version") + 1, modified=timezone.now())
        if not updated:
            if not Event.objects.filter_by_organization(organization_id).filter(slug=slug).exists():
                raise EventNotFoundError(slug)
            logger.warning(
                "Version conflict updating event %s (expected version %s)", slug, expected_version
            )
            raise ConcurrentModificationError(slug)

        logger.debug("Event %s updated by actor %s: %s", slug, actor_id, sorted(patch))
        return self.find_event_by_slug(organization_id, slug)

    def update_series(self, organization_id: int, slug: str, patch: dict[str, Any]) -> EventSeries:
        updated = (
            EventSeries.objects.filter_by_organization(organization_id)
            .filter(slug=slug)
            .update(**patch, modified=timezone.now())
        )
        if not updated:
            raise SeriesNotFoundError(slug)
        return self.find_series_by_slug(organization_id, slug)

    def remove_event(self, organization_id: int, event_id: int) -> None:
        Event.objects.filter_by_organization(organization_id).filter(pk=event_id).delete()

    def remove_series(self, organization_id: int, series_id: int) -> None:
        EventSeries.objects.filter_by_organization(organization_id).filter(pk=series_id).delete()

    def atomic(self):
        return transaction.atomic()
