from django.db.models import TextChoices


class RecurrenceFrequency(TextChoices):
    DAILY = "DAILY", "Daily"
    WEEKLY = "WEEKLY", "Weekly"
    MONTHLY = "MONTHLY", "Monthly"
    YEARLY = "YEARLY", "Yearly"


class RecurrenceWeekday(TextChoices):
    MONDAY = "MO", "Monday"
    TUESDAY = "TU", "Tuesday"
    WEDNESDAY = "WE", "Wednesday"
    THURSDAY = "TH", "Thursday"
    FRIDAY = "FR", "Friday"
    SATURDAY = "SA", "Saturday"
    SUNDAY = "SU", "Sunday"


class EventType(TextChoices):
    IN_PERSON = "in-person", "In Person"
    ONLINE = "online", "Online"
    HYBRID = "hybrid", "Hybrid"


# Numeric frequencies as emitted by RFC 5545 libraries (rrule.js, dateutil)
NUMERIC_FREQUENCIES = {
    0: RecurrenceFrequency.YEARLY,
    1: RecurrenceFrequency.MONTHLY,
    2: RecurrenceFrequency.WEEKLY,
    3: RecurrenceFrequency.DAILY,
}

DEFAULT_TIMEZONE = "UTC"
DEFAULT_OCCURRENCE_COUNT = 10
MAX_OCCURRENCE_COUNT = 500

# Occurrences closer than this to a checked date are considered a match
PATTERN_MATCH_TOLERANCE_SECONDS = 60
