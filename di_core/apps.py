from importlib.util import find_spec

from django.apps import AppConfig
from django.conf import settings


class DICoreConfig(AppConfig):
    name = "di_core"
    verbose_name = "Dependency Injection"

    def ready(self) -> None:
        from di_core import containers

        container = containers.AppContainer()
        container.config.from_dict(
            {key: getattr(settings, key) for key in dir(settings) if key.startswith("EVENT_SERIES_")}
        )

        # Only service modules use @inject, so only those need wiring
        container.wire(
            packages=[
                f"{app}.services"
                for app in getattr(settings, "INTERNAL_INSTALLED_APPS", [])
                if app != "di_core" and _has_services_package(app)
            ],
        )

        containers.container = container


def _has_services_package(app: str) -> bool:
    return find_spec(f"{app}.services") is not None
