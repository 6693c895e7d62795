"""
Authentication REST API views.

Implements endpoints for:
- User registration (with first team)
- Login
- Team switching
- Current user profile and memberships
"""
import json
import logging
from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from django.conf import settings
from django_ratelimit.decorators import ratelimit
from django.utils.decorators import method_decorator
from drf_spectacular.utils import extend_schema, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from apps.core.authentication import get_request_context
from apps.core.exceptions import AuthenticationError, RateLimitExceeded
from apps.core.logging import SecurityLogger
from apps.core.permissions import IsAuthenticatedContext
from apps.rbac.serializers import (
    RegistrationSerializer, LoginSerializer, SwitchTeamSerializer, UserSerializer,
)
from apps.rbac.services import AuthService
from apps.teams.serializers import TeamMembershipSummarySerializer
from apps.teams.services.tenant_switcher import TenantSwitcher

logger = logging.getLogger(__name__)


def login_email_key(group, request):
    """django-ratelimit key: the lowercased email of a login attempt."""
    email = None
    if request.content_type == 'application/json':
        try:
            payload = json.loads(request.body or b'{}')
        except (ValueError, UnicodeDecodeError):
            payload = {}
        if isinstance(payload, dict):
            email = payload.get('email')
    else:
        email = request.POST.get('email')
    if not isinstance(email, str):
        return ''
    return email.strip().lower()


def token_payload(result):
    """Body shared by every endpoint that issues a token."""
    membership = result.get('membership')
    return {
        'token': result['token'],
        'expires_at': result['expires_at'],
        'user': UserSerializer(result['user']).data,
        'team': TeamMembershipSummarySerializer(membership).data if membership else None,
    }


TOKEN_RESPONSE_EXAMPLE = OpenApiExample(
    'Token Response',
    value={
        'token': 'eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...',
        'expires_at': '2025-01-01T12:00:00+00:00',
        'user': {
            'id': '123e4567-e89b-12d3-a456-426614174000',
            'email': 'coach@example.com',
            'first_name': 'Jane',
            'last_name': 'Doe',
            'full_name': 'Jane Doe',
            'is_global_admin': False,
        },
        'team': {
            'team_id': '123e4567-e89b-12d3-a456-426614174001',
            'team_name': 'Eagles',
            'subdomain': 'eagles',
            'role': 'owner',
            'member_type': 'coach',
            'is_default': True,
        },
    },
    response_only=True
)


@extend_schema(
    tags=['Authentication'],
    summary='Register new user',
    description='''
Register a new user account with their first team.

Creates:
- User account with hashed password
- Team on the requested subdomain
- Owner membership (default team)

Returns a token scoped to the new team.

**No authentication required** - this is a public endpoint.

**Rate limit**: per IP, device and registration email (RATE_LIMIT_* settings)
    ''',
    request=RegistrationSerializer,
    responses={
        201: OpenApiTypes.OBJECT,
        400: OpenApiTypes.OBJECT,
        409: OpenApiTypes.OBJECT,
        429: OpenApiTypes.OBJECT,
    },
    examples=[
        OpenApiExample(
            'Registration Request',
            value={
                'email': 'coach@example.com',
                'password': 'SecurePass123!',
                'first_name': 'Jane',
                'last_name': 'Doe',
                'team_name': 'Eagles',
                'subdomain': 'eagles',
            },
            request_only=True
        ),
        TOKEN_RESPONSE_EXAMPLE,
    ]
)
class RegistrationView(APIView):
    """
    POST /v1/auth/register

    No authentication required.
    """
    authentication_classes = []
    permission_classes = []

    def post(self, request):
        serializer = RegistrationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = AuthService.register_user(
            email=data['email'],
            password=data['password'],
            team_name=data['team_name'],
            subdomain=data['subdomain'],
            first_name=data['first_name'],
            last_name=data['last_name'],
            member_type=data['member_type'],
            request_id=getattr(request, 'request_id', None),
        )
        return Response(token_payload(result), status=status.HTTP_201_CREATED)


@extend_schema(
    tags=['Authentication'],
    summary='Login user',
    description='''
Authenticate with email and password.

The returned token is scoped to `subdomain` or `team_id` when given,
otherwise to the default membership, otherwise to the first active
membership. Global admins never receive a team.

**No authentication required** - this is a public endpoint.

**Rate limits**: LOGIN_RATE_LIMIT per email address, plus the IP and
device limits applied to every request
    ''',
    request=LoginSerializer,
    responses={
        200: OpenApiTypes.OBJECT,
        401: OpenApiTypes.OBJECT,
        404: OpenApiTypes.OBJECT,
        429: OpenApiTypes.OBJECT,
    },
    examples=[
        OpenApiExample(
            'Login Request',
            value={
                'email': 'coach@example.com',
                'password': 'SecurePass123!',
                'subdomain': 'eagles'
            },
            request_only=True
        ),
        TOKEN_RESPONSE_EXAMPLE,
        OpenApiExample(
            'Invalid Credentials',
            value={
                'error': {'code': 'UNAUTHENTICATED', 'message': 'Invalid email or password'}
            },
            response_only=True,
            status_codes=['401']
        ),
    ]
)
@method_decorator(
    ratelimit(key=login_email_key, rate=settings.LOGIN_RATE_LIMIT, method='POST', block=False),
    name='dispatch'
)
class LoginView(APIView):
    """
    POST /v1/auth/login

    No authentication required.
    """
    authentication_classes = []
    permission_classes = []
    allow_cross_team_subdomain = True

    def post(self, request):
        ip_address = request.META.get('REMOTE_ADDR', 'unknown')

        if getattr(request, 'limited', False):
            email = request.data.get('email', 'unknown') if hasattr(request.data, 'get') else 'unknown'
            SecurityLogger.log_rate_limit_exceeded(
                endpoint='/v1/auth/login',
                ip_address=ip_address,
                user_email=email,
                limit=f'{settings.LOGIN_RATE_LIMIT} per email'
            )
            raise RateLimitExceeded(
                'Too many login attempts. Please try again later.',
                retry_after=settings.LOGIN_RATE_LIMIT_RETRY_AFTER,
            )

        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        subdomain = data.get('subdomain')
        if not subdomain and not data.get('team_id'):
            subdomain_team = getattr(request, 'subdomain_team', None)
            subdomain = subdomain_team.subdomain if subdomain_team else None

        result = AuthService.login(
            email=data['email'],
            password=data['password'],
            subdomain=subdomain,
            team_id=data.get('team_id'),
            ip_address=ip_address,
        )
        if result is None:
            raise AuthenticationError('Invalid email or password')

        return Response(token_payload(result), status=status.HTTP_200_OK)


@extend_schema(
    tags=['Authentication'],
    summary='Switch team',
    description='''
Issue a new token scoped to the caller's membership in another team.

The current token stays valid until it expires; clients replace it with
the returned one.
    ''',
    request=SwitchTeamSerializer,
    responses={
        200: OpenApiTypes.OBJECT,
        403: OpenApiTypes.OBJECT,
        404: OpenApiTypes.OBJECT,
    },
    examples=[TOKEN_RESPONSE_EXAMPLE]
)
class SwitchTeamView(APIView):
    """
    POST /v1/auth/switch-team
    """
    permission_classes = [IsAuthenticatedContext]
    allow_cross_team_subdomain = True

    def post(self, request):
        serializer = SwitchTeamSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = TenantSwitcher.switch_to(
            get_request_context(request),
            serializer.validated_data['subdomain'],
        )
        return Response(token_payload(result), status=status.HTTP_200_OK)


@extend_schema(
    tags=['Authentication'],
    summary='Current user',
    description='Claims of the current token plus the teams the caller can switch to.',
    responses={200: OpenApiTypes.OBJECT, 401: OpenApiTypes.OBJECT},
)
class MeView(APIView):
    """
    GET /v1/auth/me
    """
    permission_classes = [IsAuthenticatedContext]
    allow_cross_team_subdomain = True

    def get(self, request):
        context = get_request_context(request)
        memberships = TenantSwitcher.get_available_memberships(context)
        return Response({
            'user': {
                'id': str(context.user_id),
                'email': context.email,
                'first_name': context.first_name,
                'last_name': context.last_name,
                'is_global_admin': context.is_global_admin,
            },
            'current_team': {
                'team_id': str(context.team_id),
                'subdomain': context.team_subdomain,
                'role': context.team_role,
                'member_type': context.member_type,
            } if context.is_team_set else None,
            'teams': TeamMembershipSummarySerializer(memberships, many=True).data,
        })
