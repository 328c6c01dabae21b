from dependency_injector import containers, providers

from event_series.services.event_series_service import EventSeriesService
from event_series.services.occurrence_service import OccurrenceService
from event_series.services.recurrence_engine import RecurrenceEngine
from event_series.services.repositories.django_event_repository import DjangoEventRepository
from event_series.services.series_modification_service import SeriesModificationService


class AppContainer(containers.DeclarativeContainer):
    config = providers.Configuration()

    recurrence_engine = providers.Singleton(
        RecurrenceEngine,
        default_occurrence_count=config.EVENT_SERIES_DEFAULT_OCCURRENCE_COUNT,
        max_occurrence_count=config.EVENT_SERIES_MAX_OCCURRENCE_COUNT,
        default_time_zone=config.EVENT_SERIES_DEFAULT_TIMEZONE,
    )

    event_repository = providers.Factory(
        DjangoEventRepository,
    )

    occurrence_service = providers.Factory(
        OccurrenceService,
        recurrence_engine=recurrence_engine,
        event_repository=event_repository,
        materialization_count=config.EVENT_SERIES_MATERIALIZATION_COUNT,
    )

    series_modification_service = providers.Factory(
        SeriesModificationService,
        recurrence_engine=recurrence_engine,
        event_repository=event_repository,
        occurrence_service=occurrence_service,
    )

    event_series_service = providers.Factory(
        EventSeriesService,
        recurrence_engine=recurrence_engine,
        event_repository=event_repository,
        occurrence_service=occurrence_service,
    )


container: AppContainer | None = None  # set during app startup
