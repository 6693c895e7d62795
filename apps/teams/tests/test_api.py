"""
Tests for team, member, ownership transfer and global admin endpoints.
"""
from datetime import timedelta
import pytest
from django.utils import timezone
from rest_framework import status
from apps.rbac.models import User
from apps.rbac.roles import TeamRole
from apps.teams.models import Membership, OwnershipTransfer, Team, TransferStatus
from apps.teams.services import OwnershipTransferService, TeamService


@pytest.fixture
def owner_client(auth_client, owner, owner_membership):
    return auth_client(owner, owner_membership)


@pytest.fixture
def admin_client(auth_client, admin_user, admin_membership):
    return auth_client(admin_user, admin_membership)


@pytest.fixture
def member_client(auth_client, member_user, member_membership):
    return auth_client(member_user, member_membership)


@pytest.fixture
def global_admin_client(auth_client, global_admin):
    return auth_client(global_admin)


@pytest.mark.django_db
class TestTeamEndpoints:
    """Test /v1/teams endpoints."""

    def test_list_teams(self, owner_client, team, other_team):
        response = owner_client.get('/v1/teams')

        assert response.status_code == status.HTTP_200_OK
        assert [t['subdomain'] for t in response.data] == ['eagles']

    def test_create_team(self, owner_client, owner):
        response = owner_client.post('/v1/teams', {'name': 'Falcons', 'subdomain': 'Falcons'}, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['subdomain'] == 'falcons'
        assert response.data['owner_id'] == str(owner.id)
        assert response.data['tier'] == 'free'

    def test_create_team_taken_subdomain(self, owner_client, other_team):
        response = owner_client.post('/v1/teams', {'name': 'Hawks 2', 'subdomain': 'hawks'}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error']['code'] == 'SUBDOMAIN_UNAVAILABLE'

    def test_create_team_requires_token(self, api_client):
        response = api_client.post('/v1/teams', {'name': 'Falcons', 'subdomain': 'falcons'}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_get_team(self, member_client, team):
        response = member_client.get(f'/v1/teams/{team.id}')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['name'] == 'Eagles'

    def test_member_cannot_update(self, member_client, team):
        response = member_client.patch(f'/v1/teams/{team.id}', {'name': 'Hijacked'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_admin_updates_team(self, admin_client, team):
        response = admin_client.patch(f'/v1/teams/{team.id}', {'name': 'Golden Eagles'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['name'] == 'Golden Eagles'

    def test_invalid_color(self, admin_client, team):
        response = admin_client.patch(f'/v1/teams/{team.id}', {'primary_color': 'red'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error']['code'] == 'VALIDATION_ERROR'
        assert 'primary_color' in response.data['error']['details']

    def test_branding_on_free_tier(self, admin_client, team):
        response = admin_client.patch(f'/v1/teams/{team.id}', {'primary_color': '#112233'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error']['code'] == 'VALIDATION_ERROR'

    def test_admin_cannot_delete(self, admin_client, team):
        assert admin_client.delete(f'/v1/teams/{team.id}').status_code == status.HTTP_403_FORBIDDEN

    def test_owner_deletes(self, owner_client, team):
        response = owner_client.delete(f'/v1/teams/{team.id}')

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert Team.objects.get(id=team.id).is_deleted is True

    def test_summary(self, member_client, team):
        response = member_client.get(f'/v1/teams/{team.id}/summary')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['member_count'] == 2
        assert response.data['has_pending_ownership_transfer'] is False

    def test_change_subdomain(self, owner_client, team):
        response = owner_client.put(f'/v1/teams/{team.id}/subdomain', {'subdomain': 'golden-eagles'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['subdomain'] == 'golden-eagles'


@pytest.mark.django_db
class TestSubdomainAvailability:

    def test_available(self, api_client):
        response = api_client.get('/v1/teams/subdomains/Falcons/availability')

        assert response.data == {'subdomain': 'falcons', 'available': True}

    def test_taken(self, api_client, team):
        assert api_client.get('/v1/teams/subdomains/eagles/availability').data['available'] is False

    def test_reserved(self, api_client):
        response = api_client.get('/v1/teams/subdomains/www/availability')

        assert response.data['available'] is False
        assert response.data['reason'] == 'Subdomain is reserved'


@pytest.mark.django_db
class TestMemberEndpoints:
    """Test /v1/teams/{team_id}/members endpoints."""

    def test_list_members_paginated(self, member_client, team, admin_membership):
        response = member_client.get(f'/v1/teams/{team.id}/members', {'page_size': 2})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 3
        assert len(response.data['results']) == 2
        assert response.data['next'] is not None

    def test_list_members_filtered(self, member_client, team, admin_membership):
        response = member_client.get(f'/v1/teams/{team.id}/members', {'role': 'admin'})

        assert [m['email'] for m in response.data['results']] == ['admin@eagles.test']

    def test_add_member(self, admin_client, team):
        response = admin_client.post(
            f'/v1/teams/{team.id}/members',
            {'email': 'Rookie@Eagles.test', 'member_type': 'athlete'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['email'] == 'rookie@eagles.test'
        assert response.data['role'] == 'member'

    def test_member_cannot_add(self, member_client, team):
        response = member_client.post(f'/v1/teams/{team.id}/members', {'email': 'x@eagles.test'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_tier_limit(self, admin_client, owner_context, team):
        for i in range(7):
            TeamService.add_member(owner_context, team.id, f'athlete{i}@eagles.test')

        response = admin_client.post(f'/v1/teams/{team.id}/members', {'email': 'eighth@eagles.test'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error']['code'] == 'TIER_LIMIT_EXCEEDED'

    def test_duplicate_member(self, admin_client, team, member_user, member_membership):
        response = admin_client.post(f'/v1/teams/{team.id}/members', {'email': member_user.email}, format='json')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error']['code'] == 'CONFLICT'

    def test_update_member(self, admin_client, team, member_user, member_membership):
        response = admin_client.patch(
            f'/v1/teams/{team.id}/members/{member_user.id}', {'member_type': 'parent'}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['member_type'] == 'parent'

    def test_remove_member(self, admin_client, team, member_user, member_membership):
        response = admin_client.delete(f'/v1/teams/{team.id}/members/{member_user.id}')

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert Membership.objects.get(id=member_membership.id).is_deleted is True

    def test_remove_owner(self, admin_client, team, owner):
        response = admin_client.delete(f'/v1/teams/{team.id}/members/{owner.id}')

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestOwnershipTransferEndpoints:

    def initiate(self, client, team, email='admin@eagles.test'):
        return client.post(
            f'/v1/teams/{team.id}/ownership-transfers', {'new_owner_email': email}, format='json'
        )

    def test_initiate(self, owner_client, team, admin_membership):
        response = self.initiate(owner_client, team)

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['status'] == 'pending'
        assert 'token' not in response.data

    def test_token_exposed_in_debug(self, owner_client, team, settings):
        settings.DEBUG = True

        response = self.initiate(owner_client, team, 'next@eagles.test')

        assert response.data['token'] == OwnershipTransfer.objects.get().token

    def test_second_initiate_conflicts(self, owner_client, team):
        self.initiate(owner_client, team, 'next@eagles.test')

        response = self.initiate(owner_client, team, 'other@eagles.test')

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error']['code'] == 'TRANSFER_PENDING'

    def test_admin_cannot_initiate(self, admin_client, team):
        assert self.initiate(admin_client, team, 'next@eagles.test').status_code == status.HTTP_403_FORBIDDEN

    def test_pending(self, owner_client, admin_client, team):
        missing = admin_client.get(f'/v1/teams/{team.id}/ownership-transfers/pending')
        assert missing.status_code == status.HTTP_404_NOT_FOUND

        self.initiate(owner_client, team)
        response = admin_client.get(f'/v1/teams/{team.id}/ownership-transfers/pending')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['new_owner_email'] == 'admin@eagles.test'

    def test_complete(self, owner_client, admin_client, team, admin_user):
        self.initiate(owner_client, team)
        token = OwnershipTransfer.objects.get().token

        response = admin_client.post('/v1/ownership-transfers/complete', {'token': token}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['owner_id'] == str(admin_user.id)
        assert Membership.objects.owner_of(team.id).user == admin_user

    def test_complete_by_wrong_user(self, owner_client, member_client, team, admin_membership):
        self.initiate(owner_client, team)
        token = OwnershipTransfer.objects.get().token

        response = member_client.post('/v1/ownership-transfers/complete', {'token': token}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_complete_expired(self, owner_client, admin_client, team):
        self.initiate(owner_client, team)
        OwnershipTransfer.objects.update(expires_on=timezone.now() - timedelta(seconds=1))
        token = OwnershipTransfer.objects.get().token

        response = admin_client.post('/v1/ownership-transfers/complete', {'token': token}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error']['code'] == 'TRANSFER_EXPIRED'
        assert OwnershipTransfer.objects.get().status == TransferStatus.EXPIRED

    def test_complete_unknown_token(self, admin_client):
        response = admin_client.post('/v1/ownership-transfers/complete', {'token': 'nope'}, format='json')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data['error']['code'] == 'TRANSFER_NOT_FOUND'

    def test_complete_on_new_team_subdomain(self, auth_client, owner_context, team, other_owner,
                                            other_owner_membership):
        """The new owner is not yet a member, so the team subdomain must not block them."""
        transfer = OwnershipTransferService.initiate(owner_context, team.id, other_owner.email)
        client = auth_client(other_owner, other_owner_membership)

        response = client.post(
            '/v1/ownership-transfers/complete', {'token': transfer.token},
            format='json', HTTP_HOST='eagles.teamstride.local'
        )

        assert response.status_code == status.HTTP_200_OK

    def test_cancel(self, owner_client, team):
        self.initiate(owner_client, team, 'next@eagles.test')
        transfer = OwnershipTransfer.objects.get()

        response = owner_client.post(f'/v1/ownership-transfers/{transfer.id}/cancel')

        assert response.status_code == status.HTTP_204_NO_CONTENT
        transfer.refresh_from_db()
        assert transfer.status == TransferStatus.CANCELLED

    def test_cancel_twice(self, owner_client, team):
        self.initiate(owner_client, team, 'next@eagles.test')
        transfer = OwnershipTransfer.objects.get()
        owner_client.post(f'/v1/ownership-transfers/{transfer.id}/cancel')

        response = owner_client.post(f'/v1/ownership-transfers/{transfer.id}/cancel')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error']['code'] == 'TRANSFER_NOT_PENDING'


@pytest.mark.django_db
class TestAdminEndpoints:
    """Test /v1/admin/teams endpoints."""

    def test_requires_global_admin(self, owner_client):
        response = owner_client.get('/v1/admin/teams')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_list(self, global_admin_client, team, other_team):
        response = global_admin_client.get('/v1/admin/teams', {'search': 'eagles'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['is_deleted'] is False

    def test_create(self, global_admin_client):
        response = global_admin_client.post(
            '/v1/admin/teams',
            {'owner_email': 'boss@falcons.test', 'name': 'Falcons', 'subdomain': 'falcons', 'tier': 'premium'},
            format='json'
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['owner_email'] == 'boss@falcons.test'
        assert response.data['tier'] == 'premium'

    def test_deleted_recover_and_purge(self, global_admin_client, owner_context, team):
        TeamService.delete_team(owner_context, team.id)

        deleted = global_admin_client.get('/v1/admin/teams/deleted')
        assert [t['id'] for t in deleted.data['results']] == [str(team.id)]

        recovered = global_admin_client.post(f'/v1/admin/teams/{team.id}/recover')
        assert recovered.status_code == status.HTTP_200_OK
        assert recovered.data['is_deleted'] is False

        purged = global_admin_client.delete(f'/v1/admin/teams/{team.id}/permanent')
        assert purged.status_code == status.HTTP_204_NO_CONTENT
        assert not Team.objects.filter(id=team.id).exists()

    def test_transfer_ownership(self, global_admin_client, team, owner, admin_user, admin_membership):
        response = global_admin_client.post(
            f'/v1/admin/teams/{team.id}/transfer-ownership', {'new_owner_id': str(admin_user.id)}, format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['owner_id'] == str(admin_user.id)
        assert Membership.objects.get(team=team, user=owner).role == TeamRole.ADMIN

    def test_get_and_update_team(self, global_admin_client, team):
        response = global_admin_client.patch(
            f'/v1/admin/teams/{team.id}',
            {'subdomain': 'golden-eagles', 'tier': 'standard', 'expires_on': None},
            format='json'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data['subdomain'] == 'golden-eagles'
        assert response.data['tier'] == 'standard'
        assert global_admin_client.get(f'/v1/admin/teams/{team.id}').data['subdomain'] == 'golden-eagles'

    def test_update_team_without_changes(self, global_admin_client, team):
        response = global_admin_client.patch(f'/v1/admin/teams/{team.id}', {}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_dashboard(self, global_admin_client, owner_client, team, other_team):
        response = global_admin_client.get('/v1/admin/dashboard')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_teams'] == 2
        assert response.data['global_admins'] == 1
        assert owner_client.get('/v1/admin/dashboard').status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestAdminUserEndpoints:
    """Test /v1/admin/users endpoints."""

    def test_requires_global_admin(self, owner_client):
        assert owner_client.get('/v1/admin/users').status_code == status.HTTP_403_FORBIDDEN

    def test_list_with_filters(self, global_admin_client, member_user, member_membership):
        response = global_admin_client.get('/v1/admin/users', {'search': 'athlete', 'is_active': 'true'})

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        user = response.data['results'][0]
        assert user['email'] == member_user.email
        assert user['is_locked_out'] is False
        assert [m['subdomain'] for m in user['memberships']] == ['eagles']

    def test_get_user(self, global_admin_client, owner, team):
        response = global_admin_client.get(f'/v1/admin/users/{owner.id}')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['full_name'] == 'Olivia Owner'
        assert global_admin_client.get(f'/v1/admin/users/{team.id}').status_code == status.HTTP_404_NOT_FOUND

    def test_delete_recover_and_purge(self, global_admin_client, member_user, member_membership):
        deleted = global_admin_client.delete(f'/v1/admin/users/{member_user.id}')
        assert deleted.status_code == status.HTTP_204_NO_CONTENT

        listed = global_admin_client.get('/v1/admin/users/deleted')
        assert [u['id'] for u in listed.data['results']] == [str(member_user.id)]
        assert global_admin_client.get('/v1/admin/users', {'is_deleted': 'true'}).data['count'] == 1

        recovered = global_admin_client.post(f'/v1/admin/users/{member_user.id}/recover')
        assert recovered.status_code == status.HTTP_200_OK
        assert recovered.data['is_deleted'] is False
        assert recovered.data['is_active'] is True

        purged = global_admin_client.delete(f'/v1/admin/users/{member_user.id}/permanent')
        assert purged.status_code == status.HTTP_204_NO_CONTENT
        assert not User.objects.filter(id=member_user.id).exists()

    def test_delete_owner(self, global_admin_client, owner, team):
        response = global_admin_client.delete(f'/v1/admin/users/{owner.id}')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error']['details'] == {'teams': ['eagles']}

    def test_reset_lockout(self, global_admin_client, member_user):
        member_user.record_failed_login(threshold=1, lock_for=timedelta(minutes=15))

        response = global_admin_client.post(f'/v1/admin/users/{member_user.id}/reset-lockout')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['is_locked_out'] is False
        assert response.data['locked_until'] is None
