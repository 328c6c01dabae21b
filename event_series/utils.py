import uuid

from django.utils.text import slugify


def generate_slug(name: str) -> str:
    """Slug for a new event or series: the slugified name plus a short random suffix."""
    base = slugify(name)[:240] or "event"
    return f"{base}-{uuid.uuid4().hex[:8]}"
