"""Decorators for event series service methods."""

import logging
from collections.abc import Callable
from functools import wraps
from typing import Any

from event_series.exceptions import ConflictError


logger = logging.getLogger(__name__)


def retry_on_conflict(retries: int = 1) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator that re-runs the whole operation when a concurrent mutation is detected.

    The wrapped call reloads its state on every attempt, so a retry observes the
    winning writer's changes. After ``retries`` extra attempts the last
    ``ConflictError`` propagates.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except ConflictError as e:
                    if attempt >= retries:
                        raise
                    attempt += 1
                    logger.warning(
                        "Conflict in %s, retrying (%s/%s): %s", func.__name__, attempt, retries, e
                    )

        return wrapper

    return decorator
