"""
Authorization decisions.

AuthorizationEngine is the single place where access to a team or a
team-owned resource is decided. Every ``require_*`` method raises on
denial and has a ``can_*`` counterpart returning a bool; both are thin
wrappers over the same decision function so they cannot disagree.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from apps.core.context import RequestContext, TeamOwned
from apps.core.exceptions import AuthenticationError, PermissionDeniedError
from apps.core.logging import SecurityLogger
from apps.rbac.roles import TeamRole, has_minimum_role, parse_role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Denial:
    """Why a check failed."""
    reason: str
    unauthenticated: bool = False
    cross_team: bool = False


class AuthorizationEngine:
    """
    Access-control decisions for one caller.

    Built from the request's RequestContext; holds no other state.
    """

    def __init__(self, context: RequestContext):
        self.context = context

    # Decision functions

    def _authenticated_denial(self) -> Optional[Denial]:
        if not self.context.is_authenticated:
            return Denial('Authentication required', unauthenticated=True)
        return None

    def _global_admin_denial(self) -> Optional[Denial]:
        denial = self._authenticated_denial()
        if denial:
            return denial
        if not self.context.is_global_admin:
            return Denial('Global admin access required')
        return None

    def _team_denial(self, team_id, minimum_role=TeamRole.MEMBER) -> Optional[Denial]:
        """
        Decide access to ``team_id`` with at least ``minimum_role``.

        Order: global admin bypass, authentication, team match, role rank.
        """
        context = self.context
        if context.is_global_admin:
            return None

        denial = self._authenticated_denial()
        if denial:
            return denial

        if context.team_id is None:
            return Denial('User is not associated with any team')

        if team_id is None or str(context.team_id) != str(team_id):
            return Denial('Access denied to team', cross_team=True)

        actual = parse_role(context.team_role)
        if actual is None:
            return Denial('User team role is not specified or invalid')

        required = TeamRole(minimum_role)
        if not has_minimum_role(actual, required):
            return Denial(f'Minimum role {required.label} required, caller has {actual.label}')

        return None

    def _raise(self, denial: Denial, team_id=None):
        if denial.unauthenticated:
            raise AuthenticationError(denial.reason)
        if denial.cross_team:
            SecurityLogger.log_cross_team_access(self.context, team_id)
        else:
            SecurityLogger.log_permission_denied(self.context, denial.reason, team_id)
        raise PermissionDeniedError(denial.reason)

    # Role hierarchy

    def has_minimum_role(self, required) -> bool:
        """True when the caller's claimed role meets ``required``."""
        actual = parse_role(self.context.team_role)
        if actual is None:
            return False
        return has_minimum_role(actual, required)

    # Authentication

    def require_authenticated(self):
        denial = self._authenticated_denial()
        if denial:
            self._raise(denial)

    def can_authenticate(self) -> bool:
        return self._authenticated_denial() is None

    # Global admin

    def require_global_admin(self):
        denial = self._global_admin_denial()
        if denial:
            self._raise(denial)

    def can_act_as_global_admin(self) -> bool:
        return self._global_admin_denial() is None

    # Team access

    def require_team_access(self, team_id, minimum_role=TeamRole.MEMBER):
        denial = self._team_denial(team_id, minimum_role)
        if denial:
            self._raise(denial, team_id)

    def can_access_team(self, team_id, minimum_role=TeamRole.MEMBER) -> bool:
        return self._team_denial(team_id, minimum_role) is None

    def require_team_admin(self, team_id):
        self.require_team_access(team_id, TeamRole.ADMIN)

    def can_administer_team(self, team_id) -> bool:
        return self.can_access_team(team_id, TeamRole.ADMIN)

    def require_team_ownership(self, team_id):
        self.require_team_access(team_id, TeamRole.OWNER)

    def can_own_team(self, team_id) -> bool:
        return self.can_access_team(team_id, TeamRole.OWNER)

    # Resource access

    def require_resource_access(self, resource: TeamOwned, minimum_role=TeamRole.MEMBER):
        """Check access to any object exposing ``team_id``."""
        self.require_team_access(self._resource_team_id(resource), minimum_role)

    def can_access_resource(self, resource: TeamOwned, minimum_role=TeamRole.MEMBER) -> bool:
        return self.can_access_team(self._resource_team_id(resource), minimum_role)

    def require_resource_ownership(self, resource: TeamOwned):
        self.require_resource_access(resource, TeamRole.OWNER)

    def can_own_resource(self, resource: TeamOwned) -> bool:
        return self.can_access_resource(resource, TeamRole.OWNER)

    @staticmethod
    def _resource_team_id(resource):
        if not isinstance(resource, TeamOwned):
            raise TypeError(f'{type(resource).__name__} does not expose team_id')
        return resource.team_id
