"""
Authentication services: registration, login and team switching.

Passwords are hashed with Django's configured hashers; everything else
about identity lives in the bearer token issued here.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional
from django.conf import settings

from apps.core.context import RequestContext
from apps.core.exceptions import ConflictError
from apps.core.logging import SecurityLogger
from apps.core.retry import run_in_transaction
from apps.rbac.models import User
from apps.rbac.roles import MemberType
from apps.rbac.tokens import TokenIssuer

logger = logging.getLogger(__name__)


class AuthService:
    """
    Service for authentication operations.
    """

    @classmethod
    def register_user(cls, email: str, password: str, team_name: str, subdomain: str,
                      first_name: str = '', last_name: str = '',
                      member_type=MemberType.COACH, request_id=None) -> Dict[str, Any]:
        """
        Register a new user together with their first team.

        Creates, in one transaction:
        - User
        - Team
        - Owner membership (default)

        Args:
            email: User email
            password: User password (will be hashed)
            team_name: Team display name
            subdomain: Requested team subdomain
            first_name: User first name (optional)
            last_name: User last name (optional)
            member_type: Member type of the owner in the new team

        Returns:
            Dict with user, team, membership, token and expires_at

        Raises:
            ConflictError: If the email is already registered
            SubdomainUnavailable: If the subdomain is taken
        """
        from apps.teams.models import Membership
        from apps.teams.services.team_service import TeamService

        normalized_email = User.objects.normalize_email(email)
        context = RequestContext.anonymous(request_id=request_id)

        def _register():
            if User.objects.filter(email=normalized_email).exists():
                raise ConflictError('A user with this email already exists')

            user = User.objects.create_user(
                normalized_email,
                password,
                first_name=first_name,
                last_name=last_name,
                context=context,
            )
            team = TeamService.create_team(
                context, user, team_name, subdomain, owner_member_type=member_type
            )
            return user, team

        user, team = run_in_transaction(_register, label='register_user')
        membership = Membership.objects.select_related('team').get(team=team, user=user)
        issued = TokenIssuer.issue(user, membership)

        logger.info(
            "User registered",
            extra={'request_id': request_id, 'user_id': str(user.id), 'team_id': str(team.id)}
        )
        return {
            'user': user,
            'team': team,
            'membership': membership,
            **issued,
        }

    @classmethod
    def authenticate(cls, email: str, password: str, ip_address: str = None) -> Optional[User]:
        """
        Check credentials.

        Repeated wrong passwords lock the account for
        LOGIN_LOCKOUT_MINUTES; a locked account fails like a wrong password.

        Returns:
            Active user, or None if authentication failed (logged)
        """
        user = User.objects.by_email(email)
        if user is None:
            SecurityLogger.log_failed_login(email, ip_address, reason='unknown_user')
            return None
        if user.is_locked_out():
            SecurityLogger.log_failed_login(email, ip_address, reason='locked_out')
            return None
        if not user.check_password(password):
            SecurityLogger.log_failed_login(email, ip_address, reason='invalid_password')
            locked = user.record_failed_login(
                settings.LOGIN_LOCKOUT_THRESHOLD,
                timedelta(minutes=settings.LOGIN_LOCKOUT_MINUTES),
            )
            if locked:
                SecurityLogger.log_account_lockout(user.email, ip_address)
            return None
        if user.failed_login_attempts or user.locked_until:
            user.reset_lockout()
        return user

    @classmethod
    def login(cls, email: str, password: str, subdomain: str = None, team_id=None,
              ip_address: str = None) -> Optional[Dict[str, Any]]:
        """
        Authenticate a user and issue a token.

        The token is scoped to the requested team (subdomain or team id),
        else the default membership, else the first active membership,
        else no team at all.

        Returns:
            Dict with user, membership, token and expires_at, or None if
            authentication failed

        Raises:
            TeamNotFound: If a team was requested and the user is not a member
        """
        from apps.teams.services.context_resolver import TeamContextResolver

        user = cls.authenticate(email, password, ip_address)
        if user is None:
            return None

        membership = TeamContextResolver.select_membership(user, subdomain=subdomain, team_id=team_id)
        user.update_last_login()
        issued = TokenIssuer.issue(user, membership)

        logger.info(
            "User logged in",
            extra={
                'user_id': str(user.id),
                'team_id': str(membership.team_id) if membership else None,
            }
        )
        return {
            'user': user,
            'membership': membership,
            **issued,
        }
