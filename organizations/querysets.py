from django.core.exceptions import ImproperlyConfigured
from django.db.models.query import QuerySet


class BaseOrganizationModelQuerySet(QuerySet):
    """
    Base QuerySet for organization models that need to filter by organization.

    This ensures that all queries are scoped to the organization
    """

    def filter_by_organization(self, organization_id: int):
        """
        Filters the queryset by the specified organization ID.
        :param organization_id: ID of the organization to filter by.
        :return: Filtered QuerySet.
        """
        return super().filter(organization_id=organization_id)

    def _check_required_tenant_filter(self):
        required_field = "organization"
        where_str = str(self.query.where)
        if required_field not in where_str and f"{required_field}_id" not in where_str:
            raise ImproperlyConfigured(
                f"QuerySet must be filtered by `{required_field}` on model {self.model}"
            )

    def __iter__(self):
        self._check_required_tenant_filter()
        return super().__iter__()

    def count(self):
        self._check_required_tenant_filter()
        return super().count()

    def get(self, *args, **kwargs):
        if (
            "organization_id" not in kwargs
            and "organization_id" not in str(self.query.where)
            and "organization" not in kwargs
            and "organization" not in str(self.query.where)
        ):
            raise ImproperlyConfigured(
                f"`organization_id` filter is required when querying model {self.model}."
            )
        return super().get(*args, **kwargs)

    def update(self, **kwargs):
        if "organization_id" in kwargs or "organization" in kwargs:
            raise ValueError("`organization` cannot be updated.")
        self._check_required_tenant_filter()
        return super().update(**kwargs)
