import os

from decouple import config  # type: ignore
from dj_database_url import parse as db_url


BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def base_dir_join(*args):
    return os.path.join(BASE_DIR, *args)


DEBUG = config("DEBUG", default=False, cast=bool)

SECRET_KEY = config("SECRET_KEY", default="")

ALLOWED_HOSTS: list[str] = []

DATABASES = {
    "default": config(
        "DATABASE_URL",
        default=f"sqlite:///{base_dir_join('db.sqlite3')}",
        cast=db_url,
    ),
}

INTERNAL_INSTALLED_APPS = [
    "di_core",
    "common",
    "organizations",
    "event_series",
]
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    *INTERNAL_INSTALLED_APPS,
]

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True

USE_TZ = True

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {"format": "%(levelname)-8s [%(asctime)s] %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {
            "level": "DEBUG",
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "": {"handlers": ["console"], "level": config("LOG_LEVEL", default="INFO")},
        "event_series": {
            "handlers": ["console"],
            "level": config("EVENT_SERIES_LOG_LEVEL", default="INFO"),
            "propagate": False,
        },
    },
}

# Recurring event series
EVENT_SERIES_DEFAULT_TIMEZONE = config("EVENT_SERIES_DEFAULT_TIMEZONE", default="UTC")
EVENT_SERIES_DEFAULT_OCCURRENCE_COUNT = config(
    "EVENT_SERIES_DEFAULT_OCCURRENCE_COUNT", default=10, cast=int
)
EVENT_SERIES_MAX_OCCURRENCE_COUNT = config(
    "EVENT_SERIES_MAX_OCCURRENCE_COUNT", default=500, cast=int
)
# How many future slots "materialize next occurrences" creates in one call
EVENT_SERIES_MATERIALIZATION_COUNT = config(
    "EVENT_SERIES_MATERIALIZATION_COUNT", default=2, cast=int
)
