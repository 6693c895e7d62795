"""
Tests for audit stamping and soft delete on AuditedModel.
"""
import pytest
from apps.core.context import RequestContext
from apps.rbac.models import User
from apps.teams.models import Team


@pytest.mark.django_db
class TestAuditStamping:
    """Audit fields are written with the change they describe."""

    def test_create_stamps_created_fields(self, owner):
        context = RequestContext.for_user(owner)

        user = User.objects.create_user('coach@example.com', 'Passw0rd!x', context=context)

        assert user.created_by == owner.id
        assert user.created_on is not None
        assert user.modified_on is None
        assert user.modified_by is None

    def test_update_stamps_modified_fields(self, owner, team):
        context = RequestContext.for_user(owner)
        team.name = 'Golden Eagles'
        team.save(context=context)

        team.refresh_from_db()
        assert team.modified_by == owner.id
        assert team.modified_on is not None

    def test_update_fields_include_audit_columns(self, owner, team):
        context = RequestContext.for_user(owner)
        team.name = 'Renamed'
        team.save(context=context, update_fields=['name'])

        team.refresh_from_db()
        assert team.name == 'Renamed'
        assert team.modified_by == owner.id

    def test_system_writes_have_no_actor(self, team):
        assert team.created_by is None


@pytest.mark.django_db
class TestSoftDelete:
    """Delete is a soft delete unless hard_delete is used."""

    def test_instance_delete_is_soft(self, owner, team):
        team.delete(context=RequestContext.for_user(owner))

        stored = Team.objects.get(id=team.id)
        assert stored.is_deleted is True
        assert stored.deleted_on is not None
        assert stored.deleted_by == owner.id

    def test_restore_clears_deletion(self, owner, team):
        context = RequestContext.for_user(owner)
        team.delete(context=context)
        team.restore(context=context)

        stored = Team.objects.get(id=team.id)
        assert stored.is_deleted is False
        assert stored.deleted_on is None
        assert stored.deleted_by is None

    def test_queryset_delete_is_soft(self, owner, team, other_team):
        updated = Team.objects.filter(id__in=[team.id, other_team.id]).delete(
            context=RequestContext.for_user(owner)
        )

        assert updated == 2
        assert Team.objects.only_deleted().count() == 2
        assert Team.objects.not_deleted().count() == 0

    def test_queryset_restore(self, team):
        Team.objects.filter(id=team.id).delete()
        Team.objects.only_deleted().restore()

        assert Team.objects.not_deleted().filter(id=team.id).exists()

    def test_hard_delete_removes_row(self, make_user):
        user = make_user('temporary@example.com')

        user.hard_delete()

        assert not User.objects.filter(id=user.id).exists()
