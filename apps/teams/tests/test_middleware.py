"""
Tests for subdomain resolution and the subdomain team check.
"""
import pytest
from rest_framework import status


@pytest.mark.django_db
class TestTeamSubdomainMiddleware:

    def test_main_site_host_has_no_team(self, api_client):
        response = api_client.get('/v1/teams/subdomains/falcons/availability', HTTP_HOST='teamstride.local')

        assert response.status_code == status.HTTP_200_OK
        assert response.wsgi_request.subdomain_team is None

    def test_team_resolved_from_host(self, api_client, team):
        response = api_client.get(
            '/v1/teams/subdomains/falcons/availability', HTTP_HOST='Eagles.teamstride.local'
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.wsgi_request.subdomain_team == team

    def test_team_resolved_from_header(self, api_client, team):
        response = api_client.get('/v1/teams/subdomains/falcons/availability', HTTP_X_SUBDOMAIN=' EAGLES ')

        assert response.wsgi_request.subdomain_team == team

    def test_unknown_host_subdomain(self, api_client, team):
        response = api_client.get('/v1/teams', HTTP_HOST='ghosts.teamstride.local', HTTP_X_REQUEST_ID='req-7')

        assert response.status_code == status.HTTP_404_NOT_FOUND
        body = response.json()
        assert body['error']['code'] == 'TEAM_NOT_FOUND'
        assert body['error']['message'] == 'Team Not Found'
        assert body['request_id'] == 'req-7'

    def test_unknown_header_subdomain(self, api_client):
        response = api_client.get('/v1/teams', HTTP_X_SUBDOMAIN='ghosts')

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_deleted_team_subdomain_is_unknown(self, api_client, team, owner_context):
        from apps.teams.services import TeamService
        TeamService.delete_team(owner_context, team.id)

        response = api_client.get('/v1/teams', HTTP_HOST='eagles.teamstride.local')

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestSubdomainTeamCheck:
    """Authenticated callers must belong to the team of the subdomain they call."""

    def test_member_on_own_subdomain(self, auth_client, owner, owner_membership):
        response = auth_client(owner, owner_membership).get('/v1/teams', HTTP_HOST='eagles.teamstride.local')

        assert response.status_code == status.HTTP_200_OK

    def test_member_of_other_team_is_forbidden(self, auth_client, other_owner, other_owner_membership, team):
        response = auth_client(other_owner, other_owner_membership).get(
            '/v1/teams', HTTP_HOST='eagles.teamstride.local'
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data['error']['code'] == 'FORBIDDEN'

    def test_header_subdomain_is_checked_too(self, auth_client, other_owner, other_owner_membership, team):
        response = auth_client(other_owner, other_owner_membership).get('/v1/teams', HTTP_X_SUBDOMAIN='eagles')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_global_admin_may_use_any_subdomain(self, auth_client, global_admin, team):
        response = auth_client(global_admin).get('/v1/teams', HTTP_HOST='eagles.teamstride.local')

        assert response.status_code == status.HTTP_200_OK

    def test_me_allowed_on_other_team_subdomain(self, auth_client, other_owner, other_owner_membership, team):
        response = auth_client(other_owner, other_owner_membership).get(
            '/v1/auth/me', HTTP_HOST='eagles.teamstride.local'
        )

        assert response.status_code == status.HTTP_200_OK
