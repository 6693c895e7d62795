"""
Tenant data isolation for tenant-scoped querysets.

Two predicates restrict every tenant-scoped read or write:

- team security: rows belong to the caller's current team
- soft delete: rows are not soft deleted

Each predicate is a plain function so it can be tested on its own, and
``TeamQueryFilter`` composes them into a builder. Global admins skip the
team predicate; seeing deleted rows additionally requires the explicit
``as_global_admin()`` path.
"""
import logging
from apps.core.exceptions import PermissionDeniedError

logger = logging.getLogger(__name__)


def apply_team_security(queryset, context):
    """
    Restrict a queryset to the caller's current team.

    Global admins see every team. A caller without a team sees nothing.
    """
    if context.is_global_admin:
        return queryset
    if context.team_id is None:
        return queryset.none()
    return queryset.filter(**{queryset.model.TEAM_FIELD: context.team_id})


def exclude_deleted(queryset):
    """Drop soft-deleted rows."""
    return queryset.filter(is_deleted=False)


def only_deleted(queryset):
    """Keep only soft-deleted rows."""
    return queryset.filter(is_deleted=True)


class TeamQueryFilter:
    """
    Composable builder applying tenant isolation to a queryset.

    Usage:
        TeamQueryFilter(Membership.objects.all(), context).queryset
        TeamQueryFilter.for_model(Team, context).as_global_admin().only_deleted().queryset
    """

    DELETED_EXCLUDE = 'exclude'
    DELETED_ONLY = 'only'
    DELETED_INCLUDE = 'include'

    def __init__(self, queryset, context):
        self._base = queryset
        self._context = context
        self._deleted = self.DELETED_EXCLUDE
        self._admin_bypass = False

    @classmethod
    def for_model(cls, model, context):
        return cls(model.objects.all(), context)

    def _clone(self, **changes):
        clone = TeamQueryFilter(self._base, self._context)
        clone._deleted = changes.get('deleted', self._deleted)
        clone._admin_bypass = changes.get('admin_bypass', self._admin_bypass)
        return clone

    def as_global_admin(self):
        """Switch to the global-admin path; raises for anyone else."""
        if not self._context.is_global_admin:
            logger.warning(
                "Global admin query path requested by non-admin caller",
                extra=self._context.log_extra()
            )
            raise PermissionDeniedError('Global admin access required')
        return self._clone(admin_bypass=True)

    def only_deleted(self):
        self._require_admin_bypass()
        return self._clone(deleted=self.DELETED_ONLY)

    def include_deleted(self):
        self._require_admin_bypass()
        return self._clone(deleted=self.DELETED_INCLUDE)

    def _require_admin_bypass(self):
        if not self._admin_bypass:
            raise PermissionDeniedError('Deleted records are only visible to global admins')

    @property
    def queryset(self):
        """Build the restricted queryset."""
        queryset = apply_team_security(self._base, self._context)
        if self._deleted == self.DELETED_EXCLUDE:
            queryset = exclude_deleted(queryset)
        elif self._deleted == self.DELETED_ONLY:
            queryset = only_deleted(queryset)
        return queryset

    def get(self, **lookups):
        """Fetch one row inside the restricted set, or None."""
        return self.queryset.filter(**lookups).first()

    def __iter__(self):
        return iter(self.queryset)
