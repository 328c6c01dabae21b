class EventSeriesError(Exception):
    """Base exception for recurring event series errors"""

    default_message = ""

    def __init__(self, message: str | None = None):
        if message is None:
            message = self.default_message
        super().__init__(message)


# Lookup errors: surfaced to the caller, never retried
class NotFoundError(EventSeriesError):
    """Raised when a series or event reference does not resolve"""

    pass


class EventNotFoundError(NotFoundError):
    def __init__(self, slug: str):
        super().__init__(f"Event with slug {slug} not found")


class SeriesNotFoundError(NotFoundError):
    def __init__(self, slug: str):
        super().__init__(f"Series with slug {slug} not found")


# Rejected preconditions: the operation is invalid given the current data
class InvalidStateError(EventSeriesError):
    """Raised when an operation is not valid for the current state of the data"""

    pass


class EventNotRecurringError(InvalidStateError):
    default_message = "Event is not recurring"


class EventAlreadyRecurringError(InvalidStateError):
    default_message = "Event is already part of a recurring series"


class DateNotInPatternError(InvalidStateError):
    def __init__(self, date_label: str, value: object):
        super().__init__(f"{date_label} {value} is not in the recurrence pattern")


class DateAlreadyExcludedError(InvalidStateError):
    def __init__(self, value: object):
        super().__init__(f"Date {value} is already excluded from the series")


class DateNotExcludedError(InvalidStateError):
    default_message = "Date is not in the exclusions list"


class DuplicateSplitPointError(InvalidStateError):
    def __init__(self, value: object):
        super().__init__(f"Series already has a split point at {value}")


class SplitAtSeriesStartError(InvalidStateError):
    default_message = "Cannot split a series at its first occurrence"


class SeriesHasSplitPointsError(InvalidStateError):
    default_message = "Cannot delete a series that still has split points, delete them first"


# Concurrent mutations: the caller may retry the whole operation once
class ConflictError(EventSeriesError):
    """Raised when a concurrent mutation is detected"""

    pass


class ConcurrentModificationError(ConflictError):
    def __init__(self, slug: str):
        super().__init__(f"Event {slug} was modified concurrently, retry the operation")


class OccurrenceAlreadyMaterializedError(ConflictError):
    def __init__(self, series_slug: str, occurrence_date: object):
        super().__init__(
            f"Occurrence {occurrence_date} of series {series_slug} is already materialized"
        )


# Recurrence engine errors: the rule or a date fed to the engine is malformed
class RecurrenceEngineError(EventSeriesError):
    """Errors related to recurrence processing"""

    pass


class InvalidRecurrenceRuleError(RecurrenceEngineError):
    default_message = "Invalid recurrence rule"


class InvalidDateError(RecurrenceEngineError):
    def __init__(self, value: object):
        super().__init__(f"Unable to parse date: {value!r}")


class InvalidTimezoneError(RecurrenceEngineError):
    def __init__(self, iana_tz: str):
        super().__init__(f"Invalid IANA timezone: {iana_tz}")
