from django.db import models

from common.models import BaseModel
from organizations.managers import BaseOrganizationModelManager


class Organization(BaseModel):
    """
    Represents a tenant of the platform. Every event and series belongs to one.
    """

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)

    def __str__(self):
        return self.name


class OrganizationModel(BaseModel):
    """
    Represents a model that is scoped to an organization (tenant).
    Queries through ``objects`` must always filter by organization.
    """

    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="The organization this model is associated with. Queries should use the `organization` field.",
    )

    objects: BaseOrganizationModelManager = BaseOrganizationModelManager()
    original_manager = models.Manager()

    class Meta:
        abstract = True
