from django.db import models
from django.utils.translation import gettext_lazy as _

from model_utils.fields import AutoCreatedField, AutoLastModifiedField


class IndexedTimeStampedModel(models.Model):
    created = AutoCreatedField(_("created"), db_index=True)
    modified = AutoLastModifiedField(_("modified"), db_index=True)

    class Meta:
        abstract = True


class VersionedModel(models.Model):
    """
    Adds a monotonically increasing ``version`` column used for optimistic
    concurrency. Writers compare-and-swap on it instead of locking rows.
    """

    version = models.PositiveIntegerField(
        _("version"),
        default=1,
        help_text="Incremented on every versioned write; stale writers are rejected.",
    )

    class Meta:
        abstract = True


class BaseModel(IndexedTimeStampedModel):
    class Meta(IndexedTimeStampedModel.Meta):
        abstract = True
