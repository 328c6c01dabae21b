from django.db.models import Manager

from organizations.querysets import BaseOrganizationModelQuerySet


class BaseOrganizationModelManager(Manager):
    """
    Base manager for organization models. Hands out tenant-checked querysets
    and refuses to create rows without an organization.
    """

    def get_queryset(self):
        return BaseOrganizationModelQuerySet(self.model, using=self._db)

    def filter_by_organization(self, organization_id: int):
        """
        Filters the queryset by the specified organization ID.
        :param organization_id: ID of the organization to filter by.
        :return: Filtered queryset.
        """
        return self.get_queryset().filter_by_organization(organization_id)

    def create(self, **kwargs):
        """
        Override the create method to ensure an organization is always set.
        """
        if "organization_id" not in kwargs and "organization" not in kwargs:
            raise ValueError("`organization` is required to create an instance.")
        return super().create(**kwargs)
