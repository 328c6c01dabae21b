import datetime
from typing import TYPE_CHECKING

from event_series.querysets import EventQuerySet, EventSeriesQuerySet
from organizations.managers import BaseOrganizationModelManager


if TYPE_CHECKING:
    from event_series.models import Event


class EventSeriesManager(BaseOrganizationModelManager):
    def get_queryset(self) -> EventSeriesQuerySet:
        return EventSeriesQuerySet(self.model, using=self._db)


class EventManager(BaseOrganizationModelManager):
    """
    Custom manager for Event model to handle recurrence related queries.
    """

    def get_queryset(self) -> EventQuerySet:
        return EventQuerySet(self.model, using=self._db)

    def filter_recurring(self):
        return self.get_queryset().filter_recurring()

    def filter_standalone(self):
        return self.get_queryset().filter_standalone()

    def split_points_of(self, root: "Event") -> EventQuerySet:
        """Ordered split-point chain owned by ``root``, scoped to the root's organization."""
        return (
            self.get_queryset()
            .filter_by_organization(root.organization_id)
            .filter_split_points_of(root.pk)
        )

    def materialized_occurrences_of(
        self,
        organization_id: int,
        series_id: int,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ) -> EventQuerySet:
        return (
            self.get_queryset()
            .filter_by_organization(organization_id)
            .filter_materialized_occurrences(series_id, start=start, end=end)
        )
