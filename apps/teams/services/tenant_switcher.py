"""
Team switching for users with several memberships.

Switching never changes the current request: it issues a new token scoped
to the selected team, so claims stay the only source of team context.
"""
import logging
from typing import List

from apps.core.exceptions import AuthenticationError, PermissionDeniedError
from apps.core.logging import SecurityLogger
from apps.rbac.authorization import AuthorizationEngine
from apps.rbac.models import User
from apps.rbac.tokens import TokenIssuer
from apps.teams.models import Membership, TeamStatus
from apps.teams.services.context_resolver import TeamContextResolver

logger = logging.getLogger(__name__)


class TenantSwitcher:

    @staticmethod
    def get_available_memberships(context) -> List[Membership]:
        """Active memberships of the caller in active, non-deleted teams."""
        AuthorizationEngine(context).require_authenticated()
        if context.is_global_admin:
            return []
        return list(
            Membership.objects.for_user(context.user_id).filter(team__status=TeamStatus.ACTIVE)
        )

    @staticmethod
    def switch_to(context, subdomain: str) -> dict:
        """
        Issue a token scoped to the caller's membership in ``subdomain``.

        Returns:
            Dict with ``token``, ``expires_at`` and ``membership``

        Raises:
            TeamNotFound: Unknown subdomain
            PermissionDeniedError: Caller has no active membership there
        """
        AuthorizationEngine(context).require_authenticated()
        if context.is_global_admin:
            raise PermissionDeniedError('Global admins do not switch team context')

        team = TeamContextResolver.resolve_subdomain(subdomain)
        membership = Membership.objects.for_user(context.user_id).filter(
            team=team, team__status=TeamStatus.ACTIVE
        ).first()
        if membership is None:
            SecurityLogger.log_permission_denied(context, 'switch to team without membership', team.id)
            raise PermissionDeniedError('User is not associated with this team')

        user = User.objects.active().filter(id=context.user_id).first()
        if user is None:
            raise AuthenticationError('User account is not active')
        issued = TokenIssuer.issue(user, membership)
        logger.info(
            "Switched team context",
            extra={**context.log_extra(), 'new_team_id': str(team.id)}
        )
        return {**issued, 'user': user, 'membership': membership}
