"""
Team REST API views.

Team settings, members and the ownership transfer workflow. Access is
checked twice: the HasTeamRole permission class gates the route and the
service re-checks through the AuthorizationEngine.
"""
import logging
from django.conf import settings
from rest_framework import status
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiResponse

from apps.core.authentication import get_request_context
from apps.core.exceptions import AuthenticationError, OwnershipTransferNotFound, ValidationError
from apps.core.permissions import HasTeamRole, IsAuthenticatedContext
from apps.rbac.models import User
from apps.rbac.roles import TeamRole
from apps.teams.serializers import (
    TeamSerializer, TeamCreateSerializer, TeamUpdateSerializer, SubdomainSerializer,
    MembershipSerializer, MemberCreateSerializer, MemberUpdateSerializer,
    OwnershipTransferSerializer, InitiateTransferSerializer, CompleteTransferSerializer,
)
from apps.teams.services.ownership_transfer import OwnershipTransferService
from apps.teams.services.team_service import TeamService

logger = logging.getLogger(__name__)


class StandardResultsSetPagination(PageNumberPagination):
    """Standard pagination for list endpoints."""
    page_size = 50
    page_size_query_param = 'page_size'
    max_page_size = 100


class TeamListView(APIView):
    """
    GET /v1/teams - Teams visible to the caller
    POST /v1/teams - Create a team owned by the caller
    """
    permission_classes = [IsAuthenticatedContext]

    @extend_schema(
        tags=['Teams'],
        summary='List teams',
        description='Global admins see every team; other callers see the team of their current token.',
        responses={200: TeamSerializer(many=True)}
    )
    def get(self, request):
        teams = TeamService.list_teams(get_request_context(request))
        return Response(TeamSerializer(teams, many=True).data)

    @extend_schema(
        tags=['Teams'],
        summary='Create team',
        description='''
Create a new team with the caller as Owner.

The caller's current token is unchanged; use `/v1/auth/switch-team`
to act in the new team.
        ''',
        request=TeamCreateSerializer,
        responses={
            201: TeamSerializer,
            400: OpenApiResponse(description='Invalid subdomain or caller is a global admin'),
            409: OpenApiResponse(description='Subdomain already in use'),
        }
    )
    def post(self, request):
        context = get_request_context(request)
        serializer = TeamCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        owner = User.objects.active().filter(id=context.user_id).first()
        if owner is None:
            raise AuthenticationError('User account is not active')

        team = TeamService.create_team(
            context,
            owner,
            data['name'],
            data['subdomain'],
            tier=data['tier'],
            owner_member_type=data['member_type'],
        )
        return Response(TeamSerializer(team).data, status=status.HTTP_201_CREATED)


class TeamDetailView(APIView):
    """
    GET/PATCH/DELETE /v1/teams/{team_id}
    """
    permission_classes = [HasTeamRole]
    required_team_roles = {
        'GET': TeamRole.MEMBER,
        'PATCH': TeamRole.ADMIN,
        'DELETE': TeamRole.OWNER,
    }

    @extend_schema(tags=['Teams'], summary='Get team', responses={200: TeamSerializer})
    def get(self, request, team_id):
        team = TeamService.get_team(get_request_context(request), team_id)
        return Response(TeamSerializer(team).data)

    @extend_schema(
        tags=['Teams'],
        summary='Update team',
        description='Admin or above. Branding fields require the Premium tier; a downgrade is refused when the team has more athletes than the new tier allows.',
        request=TeamUpdateSerializer,
        responses={200: TeamSerializer}
    )
    def patch(self, request, team_id):
        serializer = TeamUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        team = TeamService.update_team(
            get_request_context(request), team_id, **serializer.validated_data
        )
        return Response(TeamSerializer(team).data)

    @extend_schema(
        tags=['Teams'],
        summary='Delete team',
        description='Owner only. Soft delete; a global admin can recover the team later.',
        responses={204: None}
    )
    def delete(self, request, team_id):
        TeamService.delete_team(get_request_context(request), team_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TeamSummaryView(APIView):
    """
    GET /v1/teams/{team_id}/summary
    """
    permission_classes = [HasTeamRole]
    required_team_role = TeamRole.MEMBER

    @extend_schema(
        tags=['Teams'],
        summary='Team summary',
        description='Owner, member counts by bucket and whether an ownership transfer is pending.',
    )
    def get(self, request, team_id):
        return Response(TeamService.get_team_summary(get_request_context(request), team_id))


class TeamSubdomainView(APIView):
    """
    PUT /v1/teams/{team_id}/subdomain
    """
    permission_classes = [HasTeamRole]
    required_team_role = TeamRole.OWNER

    @extend_schema(
        tags=['Teams'],
        summary='Change subdomain',
        request=SubdomainSerializer,
        responses={200: TeamSerializer, 409: OpenApiResponse(description='Subdomain already in use')}
    )
    def put(self, request, team_id):
        serializer = SubdomainSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        team = TeamService.update_subdomain(
            get_request_context(request), team_id, serializer.validated_data['subdomain']
        )
        return Response(TeamSerializer(team).data)


class SubdomainAvailabilityView(APIView):
    """
    GET /v1/teams/subdomains/{subdomain}/availability

    Public lookup; says only whether the name can be taken.
    """
    authentication_classes = []
    permission_classes = []

    @extend_schema(tags=['Teams'], summary='Check subdomain availability')
    def get(self, request, subdomain):
        try:
            normalized = TeamService.validate_subdomain(subdomain)
        except ValidationError as e:
            return Response({
                'subdomain': subdomain,
                'available': False,
                'reason': e.message,
            })
        return Response({
            'subdomain': normalized,
            'available': TeamService.is_subdomain_available(normalized),
        })


class TeamMembersView(APIView):
    """
    GET /v1/teams/{team_id}/members - List members (any member)
    POST /v1/teams/{team_id}/members - Add a member (Admin or above)
    """
    permission_classes = [HasTeamRole]
    required_team_roles = {
        'GET': TeamRole.MEMBER,
        'POST': TeamRole.ADMIN,
    }

    @extend_schema(
        tags=['Team Members'],
        summary='List members',
        parameters=[
            OpenApiParameter('role', str, description='Filter by role'),
            OpenApiParameter('member_type', str, description='Filter by member type'),
            OpenApiParameter('page', int, description='Page number'),
            OpenApiParameter('page_size', int, description='Number of items per page (max 100)'),
        ],
        responses={200: MembershipSerializer(many=True)}
    )
    def get(self, request, team_id):
        members = TeamService.list_members(
            get_request_context(request),
            team_id,
            role=request.query_params.get('role'),
            member_type=request.query_params.get('member_type'),
        )
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(members, request, view=self)
        return paginator.get_paginated_response(MembershipSerializer(page, many=True).data)

    @extend_schema(
        tags=['Team Members'],
        summary='Add member',
        description='Creates the user account when none exists for the email. Tier limits apply.',
        request=MemberCreateSerializer,
        responses={201: MembershipSerializer}
    )
    def post(self, request, team_id):
        serializer = MemberCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        membership = TeamService.add_member(
            get_request_context(request),
            team_id,
            data['email'],
            role=data['role'],
            member_type=data['member_type'],
            first_name=data['first_name'],
            last_name=data['last_name'],
        )
        return Response(MembershipSerializer(membership).data, status=status.HTTP_201_CREATED)


class TeamMemberDetailView(APIView):
    """
    PATCH/DELETE /v1/teams/{team_id}/members/{user_id}
    """
    permission_classes = [HasTeamRole]
    required_team_role = TeamRole.ADMIN

    @extend_schema(
        tags=['Team Members'],
        summary='Update member',
        description='Change role and/or member type. The Owner role moves only through an ownership transfer.',
        request=MemberUpdateSerializer,
        responses={200: MembershipSerializer}
    )
    def patch(self, request, team_id, user_id):
        serializer = MemberUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        membership = TeamService.update_member_role(
            get_request_context(request),
            team_id,
            user_id,
            role=serializer.validated_data.get('role'),
            member_type=serializer.validated_data.get('member_type'),
        )
        return Response(MembershipSerializer(membership).data)

    @extend_schema(tags=['Team Members'], summary='Remove member', responses={204: None})
    def delete(self, request, team_id, user_id):
        TeamService.remove_member(get_request_context(request), team_id, user_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


def transfer_response(transfer):
    """Serialized transfer; the token is only exposed in DEBUG."""
    data = OwnershipTransferSerializer(transfer).data
    if settings.DEBUG:
        data['token'] = transfer.token
    return data


class OwnershipTransferInitiateView(APIView):
    """
    POST /v1/teams/{team_id}/ownership-transfers
    """
    permission_classes = [HasTeamRole]
    required_team_role = TeamRole.OWNER

    @extend_schema(
        tags=['Ownership Transfers'],
        summary='Initiate ownership transfer',
        description='''
Owner or global admin. The transfer token is emailed to the new owner
and expires after OWNERSHIP_TRANSFER_TTL_DAYS.

Only one transfer can be pending per team; cancel it before starting
another.
        ''',
        request=InitiateTransferSerializer,
        responses={
            201: OwnershipTransferSerializer,
            409: OpenApiResponse(description='A transfer is already pending'),
        }
    )
    def post(self, request, team_id):
        serializer = InitiateTransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        transfer = OwnershipTransferService.initiate(
            get_request_context(request),
            team_id,
            data['new_owner_email'],
            first_name=data['new_owner_first_name'],
            last_name=data['new_owner_last_name'],
            message=data['message'],
        )
        return Response(transfer_response(transfer), status=status.HTTP_201_CREATED)


class PendingOwnershipTransferView(APIView):
    """
    GET /v1/teams/{team_id}/ownership-transfers/pending
    """
    permission_classes = [HasTeamRole]
    required_team_role = TeamRole.ADMIN

    @extend_schema(
        tags=['Ownership Transfers'],
        summary='Pending ownership transfer',
        responses={200: OwnershipTransferSerializer, 404: OpenApiResponse(description='No pending transfer')}
    )
    def get(self, request, team_id):
        transfer = OwnershipTransferService.get_pending(get_request_context(request), team_id)
        if transfer is None:
            raise OwnershipTransferNotFound('No pending ownership transfer')
        return Response(OwnershipTransferSerializer(transfer).data)


class CompleteOwnershipTransferView(APIView):
    """
    POST /v1/ownership-transfers/complete
    """
    permission_classes = [IsAuthenticatedContext]
    allow_cross_team_subdomain = True

    @extend_schema(
        tags=['Ownership Transfers'],
        summary='Complete ownership transfer',
        description='Called by the new owner with the emailed token. Expired or used tokens are rejected.',
        request=CompleteTransferSerializer,
        responses={200: TeamSerializer}
    )
    def post(self, request):
        serializer = CompleteTransferSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        team = OwnershipTransferService.complete(
            get_request_context(request), serializer.validated_data['token']
        )
        return Response(TeamSerializer(team).data)


class CancelOwnershipTransferView(APIView):
    """
    POST /v1/ownership-transfers/{transfer_id}/cancel
    """
    permission_classes = [IsAuthenticatedContext]

    @extend_schema(
        tags=['Ownership Transfers'],
        summary='Cancel ownership transfer',
        description='Initiator, current Owner or global admin.',
        request=None,
        responses={204: None}
    )
    def post(self, request, transfer_id):
        OwnershipTransferService.cancel(get_request_context(request), transfer_id)
        return Response(status=status.HTTP_204_NO_CONTENT)
