"""
Core models for TeamStride.
Provides AuditedModel with UUID primary keys, soft delete, and audit stamping.
"""
import uuid
from django.db import models
from django.utils import timezone


AUDIT_FIELDS = ('created_on', 'created_by', 'modified_on', 'modified_by')
SOFT_DELETE_FIELDS = ('is_deleted', 'deleted_on', 'deleted_by')


def _actor_id(context):
    """Return the user id of the caller context, if any."""
    if context is None:
        return None
    return context.user_id


class AuditStamper:
    """
    Single interception point for audit fields.

    Every write of an AuditedModel goes through ``stamp`` right before the
    row is saved, so the audit columns are written in the same statement
    as the change they describe.
    """

    @staticmethod
    def stamp(instance, context, now=None):
        """
        Stamp created/modified fields on an instance about to be saved.

        Args:
            instance: AuditedModel instance
            context: RequestContext of the caller (None for system writes)
            now: Optional timestamp override

        Returns:
            List of field names that were stamped
        """
        now = now or timezone.now()
        actor = _actor_id(context)

        if instance._state.adding:
            instance.created_on = now
            instance.created_by = actor
            return ['created_on', 'created_by']

        instance.modified_on = now
        instance.modified_by = actor
        return ['modified_on', 'modified_by']

    @staticmethod
    def update_kwargs(context, now=None):
        """Audit columns for a queryset ``update()`` call."""
        return {
            'modified_on': now or timezone.now(),
            'modified_by': _actor_id(context),
        }


class AuditedQuerySet(models.QuerySet):
    """
    QuerySet exposing the soft-delete and team predicates independently.

    Nothing is filtered automatically; tenant-scoped reads compose these
    through ``apps.core.query_filters.TeamQueryFilter``.
    """

    def not_deleted(self):
        """Exclude soft-deleted rows."""
        return self.filter(is_deleted=False)

    def only_deleted(self):
        """Return only soft-deleted rows."""
        return self.filter(is_deleted=True)

    def for_team(self, team_id):
        """Restrict rows to a single team."""
        return self.filter(**{self.model.TEAM_FIELD: team_id})

    def delete(self, context=None):
        """Soft delete all rows in the queryset."""
        now = timezone.now()
        return self.update(
            is_deleted=True,
            deleted_on=now,
            deleted_by=_actor_id(context),
            **AuditStamper.update_kwargs(context, now),
        )

    def hard_delete(self):
        """Permanently delete all rows in the queryset."""
        return super().delete()

    def restore(self, context=None):
        """Clear the soft-delete fields on all rows in the queryset."""
        return self.update(
            is_deleted=False,
            deleted_on=None,
            deleted_by=None,
            **AuditStamper.update_kwargs(context),
        )


AuditedManager = models.Manager.from_queryset(AuditedQuerySet)


class AuditedModel(models.Model):
    """
    Abstract base model with UUID primary key, soft delete, and audit fields.

    Tenant-scoped subclasses set ``TEAM_FIELD`` to the lookup that holds
    their team id. Deleting an instance is always a soft delete; physical
    removal goes through ``hard_delete``.
    """
    TEAM_FIELD = 'team_id'

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier"
    )

    created_on = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="Timestamp when the record was created"
    )
    created_by = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who created the record"
    )
    modified_on = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Timestamp when the record was last modified"
    )
    modified_by = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who last modified the record"
    )

    is_deleted = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether the record is soft deleted"
    )
    deleted_on = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Timestamp when the record was soft deleted"
    )
    deleted_by = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who soft deleted the record"
    )

    objects = AuditedManager()

    class Meta:
        abstract = True
        ordering = ['-created_on']

    def save(self, *args, context=None, **kwargs):
        """Save the instance, stamping audit fields from the caller context."""
        stamped = AuditStamper.stamp(self, context)
        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = list(set(update_fields) | set(stamped))
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False, context=None):
        """Soft delete the instance."""
        self.is_deleted = True
        self.deleted_on = timezone.now()
        self.deleted_by = _actor_id(context)
        self.save(using=using, context=context, update_fields=list(SOFT_DELETE_FIELDS))

    def hard_delete(self, using=None, keep_parents=False):
        """Permanently delete the instance."""
        return super().delete(using=using, keep_parents=keep_parents)

    def restore(self, context=None):
        """Restore a soft-deleted instance."""
        self.is_deleted = False
        self.deleted_on = None
        self.deleted_by = None
        self.save(context=context, update_fields=list(SOFT_DELETE_FIELDS))
