import datetime

from organizations.querysets import BaseOrganizationModelQuerySet


class EventSeriesQuerySet(BaseOrganizationModelQuerySet):
    def filter_by_template_event(self, event_id: int):
        return self.filter(template_event_id=event_id)


class EventQuerySet(BaseOrganizationModelQuerySet):
    """
    Custom QuerySet for Event model to handle recurrence related queries.
    """

    def filter_recurring(self):
        """Filter to get events that carry a recurrence rule (series templates)."""
        return self.filter(is_recurring=True, recurrence_rule__isnull=False)

    def filter_standalone(self):
        """Filter to get events that belong to no series."""
        return self.filter(series__isnull=True, is_recurring=False)

    def filter_split_points_of(self, root_event_id: int):
        """
        Split points of a root template, ordered by their boundary date.
        The chain is always owned by the root, never by intermediate split points.
        """
        return self.filter(
            parent_event_id=root_event_id, is_recurrence_split_point=True
        ).order_by("original_date", "pk")

    def filter_materialized_occurrences(
        self,
        series_id: int,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ):
        """Filter to get materialized occurrences of a series, optionally within [start, end]."""
        qs = self.filter(series_id=series_id, original_occurrence_date__isnull=False)
        if start is not None:
            qs = qs.filter(original_occurrence_date__gte=start)
        if end is not None:
            qs = qs.filter(original_occurrence_date__lte=end)
        return qs.order_by("original_occurrence_date")
