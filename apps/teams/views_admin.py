"""
Global admin endpoints for teams, users and the dashboard.

Every view requires a global admin token.
"""
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiResponse

from apps.core.authentication import get_request_context
from apps.core.permissions import IsGlobalAdmin
from apps.teams.serializers import (
    AdminTeamSerializer, AdminTeamCreateSerializer, AdminTeamUpdateSerializer,
    AdminTransferOwnershipSerializer, AdminUserSerializer,
)
from apps.teams.services.global_admin import (
    GlobalAdminDashboardService, GlobalAdminTeamService, GlobalAdminUserService,
)
from apps.teams.views import StandardResultsSetPagination


def query_flag(params, name):
    """Tri-state boolean query parameter: None when absent."""
    value = params.get(name)
    if value is None or value == '':
        return None
    return value.lower() in ['true', '1', 'yes']


class AdminTeamListView(APIView):
    """
    GET /v1/admin/teams - All teams with filters
    POST /v1/admin/teams - Create a team for an existing or new owner
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Teams'],
        summary='List all teams',
        parameters=[
            OpenApiParameter('search', str, description='Match on name, subdomain or owner email'),
            OpenApiParameter('status', str, description='Filter by status'),
            OpenApiParameter('tier', str, description='Filter by tier'),
            OpenApiParameter('include_deleted', bool, description='Include soft-deleted teams'),
            OpenApiParameter('page', int, description='Page number'),
            OpenApiParameter('page_size', int, description='Number of items per page (max 100)'),
        ],
        responses={200: AdminTeamSerializer(many=True)}
    )
    def get(self, request):
        params = request.query_params
        include_deleted = bool(query_flag(params, 'include_deleted'))
        teams = GlobalAdminTeamService.list_teams(
            get_request_context(request),
            search=params.get('search'),
            status=params.get('status'),
            tier=params.get('tier'),
            include_deleted=include_deleted,
        )
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(teams, request, view=self)
        return paginator.get_paginated_response(AdminTeamSerializer(page, many=True).data)

    @extend_schema(
        tags=['Admin - Teams'],
        summary='Create team',
        description='Creates the owner account (without password) when no user has the email.',
        request=AdminTeamCreateSerializer,
        responses={201: AdminTeamSerializer, 409: OpenApiResponse(description='Subdomain already in use')}
    )
    def post(self, request):
        serializer = AdminTeamCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        team = GlobalAdminTeamService.create_team_with_owner(
            get_request_context(request),
            data['owner_email'],
            data['name'],
            data['subdomain'],
            tier=data['tier'],
            first_name=data['owner_first_name'],
            last_name=data['owner_last_name'],
        )
        return Response(AdminTeamSerializer(team).data, status=status.HTTP_201_CREATED)


class AdminDeletedTeamListView(APIView):
    """
    GET /v1/admin/teams/deleted
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Teams'],
        summary='List deleted teams',
        responses={200: AdminTeamSerializer(many=True)}
    )
    def get(self, request):
        teams = GlobalAdminTeamService.list_deleted_teams(get_request_context(request))
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(teams, request, view=self)
        return paginator.get_paginated_response(AdminTeamSerializer(page, many=True).data)


class AdminTeamPermanentDeleteView(APIView):
    """
    DELETE /v1/admin/teams/{team_id}/permanent
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Teams'],
        summary='Permanently delete team',
        description='Physically removes the team, its memberships and ownership transfers. Irreversible.',
        responses={204: None}
    )
    def delete(self, request, team_id):
        GlobalAdminTeamService.permanently_delete_team(get_request_context(request), team_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class AdminTeamRecoverView(APIView):
    """
    POST /v1/admin/teams/{team_id}/recover
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Teams'],
        summary='Recover deleted team',
        request=None,
        responses={
            200: AdminTeamSerializer,
            409: OpenApiResponse(description='Subdomain was claimed by another team'),
        }
    )
    def post(self, request, team_id):
        team = GlobalAdminTeamService.recover_team(get_request_context(request), team_id)
        return Response(AdminTeamSerializer(team).data)


class AdminTeamTransferOwnershipView(APIView):
    """
    POST /v1/admin/teams/{team_id}/transfer-ownership
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Teams'],
        summary='Transfer ownership directly',
        description='Moves ownership without the token workflow and cancels any pending transfer.',
        request=AdminTransferOwnershipSerializer,
        responses={200: AdminTeamSerializer}
    )
    def post(self, request, team_id):
        serializer = AdminTransferOwnershipSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        team = GlobalAdminTeamService.transfer_ownership(
            get_request_context(request),
            team_id,
            serializer.validated_data['new_owner_id'],
        )
        return Response(AdminTeamSerializer(team).data)


class AdminTeamDetailView(APIView):
    """
    GET /v1/admin/teams/{team_id} - Any team, deleted or not
    PATCH /v1/admin/teams/{team_id} - Settings, subdomain and expiry
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Teams'],
        summary='Get team',
        responses={200: AdminTeamSerializer, 404: OpenApiResponse(description='Team not found')}
    )
    def get(self, request, team_id):
        team = GlobalAdminTeamService.get_team(get_request_context(request), team_id)
        return Response(AdminTeamSerializer(team).data)

    @extend_schema(
        tags=['Admin - Teams'],
        summary='Update team',
        request=AdminTeamUpdateSerializer,
        responses={200: AdminTeamSerializer, 409: OpenApiResponse(description='Subdomain already in use')}
    )
    def patch(self, request, team_id):
        serializer = AdminTeamUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        changes = dict(serializer.validated_data)
        team = GlobalAdminTeamService.update_team(get_request_context(request), team_id, **changes)
        return Response(AdminTeamSerializer(team).data)


class AdminDashboardView(APIView):
    """
    GET /v1/admin/dashboard
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Dashboard'],
        summary='Platform statistics',
        responses={200: OpenApiTypes.OBJECT}
    )
    def get(self, request):
        return Response(GlobalAdminDashboardService.get_stats(get_request_context(request)))


class AdminUserListView(APIView):
    """
    GET /v1/admin/users
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Users'],
        summary='List users',
        parameters=[
            OpenApiParameter('search', str, description='Match on email, name or exact user id'),
            OpenApiParameter('is_active', bool, description='Filter by active flag'),
            OpenApiParameter('is_global_admin', bool, description='Filter global admins'),
            OpenApiParameter('is_deleted', bool, description='List soft-deleted users instead'),
            OpenApiParameter('page', int, description='Page number'),
            OpenApiParameter('page_size', int, description='Number of items per page (max 100)'),
        ],
        responses={200: AdminUserSerializer(many=True)}
    )
    def get(self, request):
        params = request.query_params
        users = GlobalAdminUserService.list_users(
            get_request_context(request),
            search=params.get('search'),
            is_active=query_flag(params, 'is_active'),
            is_global_admin=query_flag(params, 'is_global_admin'),
            is_deleted=bool(query_flag(params, 'is_deleted')),
        )
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(users, request, view=self)
        return paginator.get_paginated_response(AdminUserSerializer(page, many=True).data)


class AdminDeletedUserListView(APIView):
    """
    GET /v1/admin/users/deleted
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Users'],
        summary='List deleted users',
        parameters=[OpenApiParameter('search', str, description='Match on email, name or exact user id')],
        responses={200: AdminUserSerializer(many=True)}
    )
    def get(self, request):
        users = GlobalAdminUserService.list_deleted_users(
            get_request_context(request), search=request.query_params.get('search')
        )
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(users, request, view=self)
        return paginator.get_paginated_response(AdminUserSerializer(page, many=True).data)


class AdminUserDetailView(APIView):
    """
    GET /v1/admin/users/{user_id}
    DELETE /v1/admin/users/{user_id} - Soft delete
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Users'],
        summary='Get user',
        responses={200: AdminUserSerializer, 404: OpenApiResponse(description='User not found')}
    )
    def get(self, request, user_id):
        user = GlobalAdminUserService.get_user(get_request_context(request), user_id)
        return Response(AdminUserSerializer(user).data)

    @extend_schema(
        tags=['Admin - Users'],
        summary='Delete user',
        description='Soft delete; memberships are deactivated. Team owners must transfer their teams first.',
        responses={204: None}
    )
    def delete(self, request, user_id):
        GlobalAdminUserService.delete_user(get_request_context(request), user_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class AdminUserRecoverView(APIView):
    """
    POST /v1/admin/users/{user_id}/recover
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Users'],
        summary='Recover deleted user',
        request=None,
        responses={200: AdminUserSerializer}
    )
    def post(self, request, user_id):
        user = GlobalAdminUserService.recover_user(get_request_context(request), user_id)
        return Response(AdminUserSerializer(user).data)


class AdminUserPermanentDeleteView(APIView):
    """
    DELETE /v1/admin/users/{user_id}/permanent
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Users'],
        summary='Permanently delete user',
        description='Physically removes the account, its memberships and the transfers it initiated. Irreversible.',
        responses={204: None}
    )
    def delete(self, request, user_id):
        GlobalAdminUserService.permanently_delete_user(get_request_context(request), user_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class AdminUserResetLockoutView(APIView):
    """
    POST /v1/admin/users/{user_id}/reset-lockout
    """
    permission_classes = [IsGlobalAdmin]

    @extend_schema(
        tags=['Admin - Users'],
        summary='Reset lockout',
        request=None,
        responses={200: AdminUserSerializer}
    )
    def post(self, request, user_id):
        user = GlobalAdminUserService.reset_lockout(get_request_context(request), user_id)
        return Response(AdminUserSerializer(user).data)
