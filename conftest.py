import datetime

import pytest
from model_bakery import baker


@pytest.fixture
def organization():
    return baker.make("organizations.Organization", name="Test Organization")


@pytest.fixture
def other_organization():
    return baker.make("organizations.Organization", name="Other Organization")


@pytest.fixture
def service_context(organization):
    from event_series.services.dataclasses import ServiceContext

    return ServiceContext(organization_id=organization.id, actor_id=1)


@pytest.fixture
def recurring_event_factory(organization):
    """Create series templates for the test organization."""
    from event_series.factories import EventSeriesFactory

    def _create(start_date: datetime.datetime, frequency: str = "WEEKLY", **kwargs):
        return EventSeriesFactory.create_recurring_event(
            organization, start_date=start_date, frequency=frequency, **kwargs
        )

    return _create


@pytest.fixture
def di_container():
    """Fixture to create a DI container."""
    from di_core.containers import container

    return container
