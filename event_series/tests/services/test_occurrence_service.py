import datetime
from unittest.mock import patch

import pytest
from model_bakery import baker

from event_series.exceptions import (
    DateAlreadyExcludedError,
    DateNotExcludedError,
    DateNotInPatternError,
    EventNotFoundError,
    EventNotRecurringError,
)
from event_series.models import Event
from event_series.services.occurrence_service import OccurrenceService
from event_series.services.recurrence_engine import RecurrenceEngine
from event_series.services.repositories.django_event_repository import DjangoEventRepository


# Helpers
def _dt(year, month, day, hour=9, minute=0):
    return datetime.datetime(year, month, day, hour, minute, tzinfo=datetime.UTC)


@pytest.fixture
def occurrence_service():
    return OccurrenceService(
        recurrence_engine=RecurrenceEngine(),
        event_repository=DjangoEventRepository(),
        materialization_count=2,
    )


@pytest.fixture
def daily_event(recurring_event_factory):
    return recurring_event_factory(
        _dt(2025, 1, 1),
        frequency="DAILY",
        count=5,
        duration=datetime.timedelta(hours=2),
        location="Main hall",
    )


@pytest.mark.django_db
class TestOccurrenceListing:
    def test_list_occurrences(self, occurrence_service, service_context, daily_event):
        occurrences = occurrence_service.list_occurrences(service_context, daily_event.slug)

        assert occurrences == [_dt(2025, 1, day) for day in range(1, 6)]

    def test_list_occurrences_within_window(
        self, occurrence_service, service_context, daily_event
    ):
        occurrences = occurrence_service.list_occurrences(
            service_context, daily_event.slug, start=_dt(2025, 1, 2), end=_dt(2025, 1, 4)
        )

        assert occurrences == [_dt(2025, 1, 2), _dt(2025, 1, 3), _dt(2025, 1, 4)]

    def test_list_occurrences_from_start_with_count(
        self, occurrence_service, service_context, recurring_event_factory
    ):
        event = recurring_event_factory(_dt(2025, 1, 1), frequency="DAILY")

        occurrences = occurrence_service.list_occurrences(
            service_context, event.slug, start=_dt(2025, 3, 1), count=2
        )

        assert occurrences == [_dt(2025, 3, 1), _dt(2025, 3, 2)]

    def test_list_occurrences_from_start_returns_every_slot_of_bounded_rule(
        self, occurrence_service, service_context, recurring_event_factory
    ):
        event = recurring_event_factory(
            _dt(2025, 1, 1), frequency="DAILY", until=_dt(2025, 2, 10)
        )

        occurrences = occurrence_service.list_occurrences(
            service_context, event.slug, start=_dt(2025, 1, 12)
        )

        assert len(occurrences) == 30
        assert occurrences[0] == _dt(2025, 1, 12)
        assert occurrences[-1] == _dt(2025, 2, 10)

    def test_list_occurrences_rejects_non_positive_count(
        self, occurrence_service, service_context, daily_event
    ):
        with pytest.raises(ValueError):
            occurrence_service.list_occurrences(service_context, daily_event.slug, count=0)

        with pytest.raises(ValueError):
            occurrence_service.list_occurrences(
                service_context, daily_event.slug, start=_dt(2025, 1, 2), count=0
            )

    def test_unknown_slug_raises_not_found(self, occurrence_service, service_context):
        with pytest.raises(EventNotFoundError):
            occurrence_service.list_occurrences(service_context, "missing")

    def test_other_organization_cannot_see_series(
        self, occurrence_service, daily_event, other_organization
    ):
        from event_series.services.dataclasses import ServiceContext

        with pytest.raises(EventNotFoundError):
            occurrence_service.list_occurrences(
                ServiceContext(organization_id=other_organization.id), daily_event.slug
            )

    def test_standalone_event_is_not_recurring(
        self, occurrence_service, service_context, organization
    ):
        event = baker.make(Event, organization=organization, start_date=_dt(2025, 1, 1))

        with pytest.raises(EventNotRecurringError):
            occurrence_service.list_occurrences(service_context, event.slug)

    def test_expand_occurrences_projects_template(
        self, occurrence_service, service_context, daily_event
    ):
        occurrences = occurrence_service.expand_occurrences(service_context, daily_event.slug)

        assert len(occurrences) == 5
        for occurrence in occurrences:
            assert occurrence.materialized is False
            assert occurrence.event.pk is None
            assert occurrence.event.start_date == occurrence.date
            assert occurrence.event.end_date - occurrence.event.start_date == datetime.timedelta(
                hours=2
            )
            assert occurrence.event.location == "Main hall"
            assert occurrence.event.original_occurrence_date == occurrence.date

        # The template itself is untouched
        daily_event.refresh_from_db()
        assert daily_event.pk is not None
        assert daily_event.start_date == _dt(2025, 1, 1)

    def test_expand_occurrences_preserves_duration_across_dst(
        self, occurrence_service, service_context, recurring_event_factory
    ):
        event = recurring_event_factory(
            datetime.datetime(2025, 3, 8, 15, 0, tzinfo=datetime.UTC),
            frequency="DAILY",
            count=3,
            time_zone="America/New_York",
            duration=datetime.timedelta(minutes=90),
        )

        occurrences = occurrence_service.expand_occurrences(service_context, event.slug)

        assert [o.date.hour for o in occurrences] == [15, 14, 14]
        assert all(
            o.event.end_date - o.event.start_date == datetime.timedelta(minutes=90)
            for o in occurrences
        )


@pytest.mark.django_db
class TestExceptionDates:
    def test_exclude_and_include_round_trip(
        self, occurrence_service, service_context, daily_event
    ):
        before = occurrence_service.expand_occurrences(service_context, daily_event.slug)

        event = occurrence_service.add_exception_date(
            service_context, daily_event.slug, _dt(2025, 1, 3)
        )

        assert event.recurrence_exceptions == ["2025-01-03T09:00:00Z"]
        assert event.version == daily_event.version + 1
        excluded = occurrence_service.expand_occurrences(service_context, daily_event.slug)
        assert len(excluded) == len(before) - 1
        assert _dt(2025, 1, 3) not in [o.date for o in excluded]

        event = occurrence_service.remove_exception_date(
            service_context, daily_event.slug, _dt(2025, 1, 3)
        )

        assert event.recurrence_exceptions == []
        restored = occurrence_service.expand_occurrences(service_context, daily_event.slug)
        assert [o.date for o in restored] == [o.date for o in before]

    def test_list_occurrences_can_include_excluded(
        self, occurrence_service, service_context, daily_event
    ):
        occurrence_service.add_exception_date(service_context, daily_event.slug, _dt(2025, 1, 2))

        assert len(occurrence_service.list_occurrences(service_context, daily_event.slug)) == 4
        assert (
            len(
                occurrence_service.list_occurrences(
                    service_context, daily_event.slug, include_excluded=True
                )
            )
            == 5
        )

    def test_exclude_stores_the_matching_slot(
        self, occurrence_service, service_context, daily_event
    ):
        event = occurrence_service.add_exception_date(
            service_context, daily_event.slug, "2025-01-03T09:00:40Z"
        )

        assert event.recurrence_exceptions == ["2025-01-03T09:00:00Z"]

    def test_cannot_exclude_twice(self, occurrence_service, service_context, daily_event):
        occurrence_service.add_exception_date(service_context, daily_event.slug, _dt(2025, 1, 3))

        with pytest.raises(DateAlreadyExcludedError):
            occurrence_service.add_exception_date(
                service_context, daily_event.slug, _dt(2025, 1, 3)
            )

    def test_cannot_exclude_date_outside_pattern(
        self, occurrence_service, service_context, daily_event
    ):
        with pytest.raises(DateNotInPatternError):
            occurrence_service.add_exception_date(
                service_context, daily_event.slug, _dt(2025, 1, 3, 12)
            )

        with pytest.raises(DateNotInPatternError):
            occurrence_service.add_exception_date(
                service_context, daily_event.slug, _dt(2025, 1, 6)
            )

    def test_cannot_include_date_that_is_not_excluded(
        self, occurrence_service, service_context, daily_event
    ):
        with pytest.raises(DateNotExcludedError):
            occurrence_service.remove_exception_date(
                service_context, daily_event.slug, _dt(2025, 1, 3)
            )

    def test_remove_matches_excluded_date_by_local_day(
        self, occurrence_service, service_context, recurring_event_factory
    ):
        event = recurring_event_factory(
            _dt(2025, 1, 1),
            frequency="DAILY",
            count=5,
            exceptions=["2025-01-03T09:00:00Z"],
        )

        updated = occurrence_service.remove_exception_date(
            service_context, event.slug, "2025-01-03T18:30:00Z"
        )

        assert updated.recurrence_exceptions == []


@pytest.mark.django_db
class TestMaterialization:
    def test_get_or_create_occurrence(self, occurrence_service, service_context, daily_event):
        event = occurrence_service.get_or_create_occurrence(
            service_context, daily_event.slug, _dt(2025, 1, 2)
        )

        assert event.pk is not None
        assert event.series_id == daily_event.series_id
        assert event.original_occurrence_date == _dt(2025, 1, 2)
        assert event.start_date == _dt(2025, 1, 2)
        assert event.end_date == _dt(2025, 1, 2, 11)
        assert event.location == "Main hall"
        assert event.is_recurring is False

        again = occurrence_service.get_or_create_occurrence(
            service_context, daily_event.slug, _dt(2025, 1, 2)
        )
        assert again.pk == event.pk
        assert (
            occurrence_service.find_occurrence(service_context, daily_event.slug, _dt(2025, 1, 2))
            == event
        )

    def test_get_or_create_snaps_to_the_matching_slot(
        self, occurrence_service, service_context, daily_event
    ):
        near = occurrence_service.get_or_create_occurrence(
            service_context, daily_event.slug, _dt(2025, 1, 2) + datetime.timedelta(seconds=30)
        )
        exact = occurrence_service.get_or_create_occurrence(
            service_context, daily_event.slug, _dt(2025, 1, 2)
        )

        assert near.pk == exact.pk
        assert near.original_occurrence_date == _dt(2025, 1, 2)
        assert near.start_date == _dt(2025, 1, 2)
        assert (
            Event.objects.filter(
                organization_id=service_context.organization_id,
                series_id=daily_event.series_id,
                original_occurrence_date__isnull=False,
            ).count()
            == 1
        )
        assert (
            occurrence_service.find_occurrence(
                service_context, daily_event.slug, _dt(2025, 1, 2) - datetime.timedelta(seconds=20)
            )
            == near
        )
        occurrences = occurrence_service.expand_occurrences(service_context, daily_event.slug)
        assert occurrences[1].materialized is True

    def test_expand_joins_materialized_events(
        self, occurrence_service, service_context, daily_event
    ):
        event = occurrence_service.get_or_create_occurrence(
            service_context, daily_event.slug, _dt(2025, 1, 2)
        )

        occurrences = occurrence_service.expand_occurrences(service_context, daily_event.slug)

        assert [o.materialized for o in occurrences] == [False, True, False, False, False]
        assert occurrences[1].event == event

    def test_get_or_create_rejects_dates_outside_pattern(
        self, occurrence_service, service_context, daily_event
    ):
        with pytest.raises(DateNotInPatternError):
            occurrence_service.get_or_create_occurrence(
                service_context, daily_event.slug, _dt(2025, 1, 2, 10)
            )

    def test_concurrent_materialization_returns_existing_event(
        self, occurrence_service, service_context, daily_event
    ):
        existing = occurrence_service.get_or_create_occurrence(
            service_context, daily_event.slug, _dt(2025, 1, 4)
        )

        # Both lookups miss as if another request materialized in between
        with patch.object(
            occurrence_service, "_find_materialized", side_effect=[None, existing]
        ):
            event = occurrence_service.get_or_create_occurrence(
                service_context, daily_event.slug, _dt(2025, 1, 4)
            )

        assert event.pk == existing.pk
        assert (
            Event.objects.filter(
                organization_id=service_context.organization_id,
                series_id=daily_event.series_id,
                original_occurrence_date=_dt(2025, 1, 4),
            ).count()
            == 1
        )

    def test_get_upcoming_occurrences(self, occurrence_service, service_context, daily_event):
        upcoming = occurrence_service.get_upcoming_occurrences(
            service_context, daily_event.slug, count=10, now=_dt(2025, 1, 3, 12)
        )

        assert [o.date for o in upcoming] == [_dt(2025, 1, 4), _dt(2025, 1, 5)]

        with_past = occurrence_service.get_upcoming_occurrences(
            service_context,
            daily_event.slug,
            count=3,
            include_past=True,
            now=_dt(2025, 1, 3, 12),
        )
        assert [o.date for o in with_past] == [_dt(2025, 1, 1), _dt(2025, 1, 2), _dt(2025, 1, 3)]

    def test_materialize_next_occurrences(
        self, occurrence_service, service_context, recurring_event_factory
    ):
        template = recurring_event_factory(_dt(2025, 1, 1), frequency="WEEKLY")
        now = _dt(2025, 1, 10)

        first_batch = occurrence_service.materialize_next_occurrences(
            service_context, template.slug, now=now
        )
        second_batch = occurrence_service.materialize_next_occurrences(
            service_context, template.slug, now=now
        )

        assert [e.original_occurrence_date for e in first_batch] == [
            _dt(2025, 1, 15),
            _dt(2025, 1, 22),
        ]
        assert [e.original_occurrence_date for e in second_batch] == [
            _dt(2025, 1, 29),
            _dt(2025, 2, 5),
        ]

    def test_materialize_next_occurrence(self, occurrence_service, service_context, daily_event):
        now = _dt(2025, 1, 2, 12)

        first = occurrence_service.materialize_next_occurrence(
            service_context, daily_event.slug, now=now
        )
        second = occurrence_service.materialize_next_occurrence(
            service_context, daily_event.slug, now=now
        )
        third = occurrence_service.materialize_next_occurrence(
            service_context, daily_event.slug, now=now
        )
        exhausted = occurrence_service.materialize_next_occurrence(
            service_context, daily_event.slug, now=now
        )

        assert first.original_occurrence_date == _dt(2025, 1, 3)
        assert second.original_occurrence_date == _dt(2025, 1, 4)
        assert third.original_occurrence_date == _dt(2025, 1, 5)
        assert exhausted is None


@pytest.mark.django_db
class TestUpdateFutureOccurrences:
    def test_updates_template_and_later_materialized_occurrences(
        self, occurrence_service, service_context, daily_event
    ):
        earlier = occurrence_service.get_or_create_occurrence(
            service_context, daily_event.slug, _dt(2025, 1, 2)
        )
        later = [
            occurrence_service.get_or_create_occurrence(service_context, daily_event.slug, date)
            for date in (_dt(2025, 1, 3), _dt(2025, 1, 5))
        ]

        updated = occurrence_service.update_future_occurrences(
            service_context,
            daily_event.slug,
            _dt(2025, 1, 3),
            {"location": "Rooftop", "max_attendees": 12},
        )

        assert updated == 2
        template = Event.objects.filter(organization_id=service_context.organization_id).get(
            pk=daily_event.pk
        )
        assert template.location == "Rooftop"
        assert template.version == daily_event.version + 1
        for event in later:
            event.refresh_from_db()
            assert event.location == "Rooftop"
            assert event.max_attendees == 12
        earlier.refresh_from_db()
        assert earlier.location == "Main hall"

        projections = occurrence_service.expand_occurrences(service_context, daily_event.slug)
        assert projections[3].materialized is False
        assert projections[3].event.location == "Rooftop"

    def test_rejects_fields_templates_do_not_share(
        self, occurrence_service, service_context, daily_event
    ):
        with pytest.raises(ValueError):
            occurrence_service.update_future_occurrences(
                service_context,
                daily_event.slug,
                _dt(2025, 1, 3),
                {"start_date": _dt(2025, 2, 1)},
            )

        daily_event.refresh_from_db()
        assert daily_event.version == 1


@pytest.mark.django_db
def test_container_provides_occurrence_service(di_container, service_context, daily_event):
    service = di_container.occurrence_service()

    assert isinstance(service, OccurrenceService)
    assert len(service.list_occurrences(service_context, daily_event.slug)) == 5
