import datetime
from contextlib import AbstractContextManager
from typing import Any, Protocol

from event_series.models import Event, EventSeries


class EventRepository(Protocol):
    """
    Read/write access to events and series for the recurrence services.
    Every call is scoped to a single organization.
    """

    def find_series_by_slug(self, organization_id: int, slug: str) -> EventSeries:
        """
        Retrieve a series by its slug.
        :raises SeriesNotFoundError: if no series matches.
        """
        ...

    def find_event_by_slug(self, organization_id: int, slug: str) -> Event:
        """
        Retrieve an event by its slug.
        :raises EventNotFoundError: if no event matches.
        """
        ...

    def find_child_events_by_parent_id(self, organization_id: int, parent_id: int) -> list[Event]:
        """
        Retrieve the split points whose root is ``parent_id``, ordered by boundary date.
        """
        ...

    def find_materialized_occurrences(
        self,
        organization_id: int,
        series_id: int,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ) -> list[Event]:
        """
        Retrieve materialized occurrences of a series, ordered by occurrence date.
        """
        ...

    def create_event(self, organization_id: int, data: dict[str, Any]) -> Event:
        """
        Persist a new event.
        :raises OccurrenceAlreadyMaterializedError: if the slot
            ``(series, original_occurrence_date)`` is already taken.
        """
        ...

    def create_series(self, organization_id: int, data: dict[str, Any]) -> EventSeries:
        ...

    def update_event(
        self,
        organization_id: int,
        slug: str,
        patch: dict[str, Any],
        actor_id: int | None = None,
        expected_version: int | None = None,
    ) -> Event:
        """
        Apply ``patch`` to an event and bump its version.
        :raises ConcurrentModificationError: if ``expected_version`` no longer matches.
        """
        ...

    def update_series(self, organization_id: int, slug: str, patch: dict[str, Any]) -> EventSeries:
        ...

    def remove_event(self, organization_id: int, event_id: int) -> None:
        ...

    def remove_series(self, organization_id: int, series_id: int) -> None:
        ...

    def atomic(self) -> AbstractContextManager:
        """
        Unit of work: every write issued inside the block commits or rolls back together.
        """
        ...
