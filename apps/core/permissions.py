"""
DRF permission classes backed by the AuthorizationEngine.

This module provides:
- SubdomainTeamAccess: default check that a caller on a team subdomain
  belongs to that team
- IsAuthenticatedContext: token required
- IsGlobalAdmin: platform administrators only
- HasTeamRole: minimum team role for the ``team_id`` in the URL

Every class also applies the subdomain check, so views overriding
``permission_classes`` keep it.
"""
from rest_framework.permissions import BasePermission

from apps.core.authentication import get_request_context


def _engine(request):
    from apps.rbac.authorization import AuthorizationEngine
    return AuthorizationEngine(get_request_context(request))


def check_subdomain_team(request, view):
    """
    Reject authenticated callers whose token team differs from the team
    of the subdomain the request arrived on.

    Anonymous requests pass (the view's own permissions decide), as do
    global admins and views setting ``allow_cross_team_subdomain = True``
    (login, team switching).
    """
    subdomain_team = getattr(request, 'subdomain_team', None)
    if subdomain_team is None or getattr(view, 'allow_cross_team_subdomain', False):
        return

    context = get_request_context(request)
    if not context.is_authenticated:
        return

    _engine(request).require_team_access(subdomain_team.id)


class SubdomainTeamAccess(BasePermission):

    def has_permission(self, request, view):
        check_subdomain_team(request, view)
        return True


class IsAuthenticatedContext(BasePermission):

    def has_permission(self, request, view):
        _engine(request).require_authenticated()
        check_subdomain_team(request, view)
        return True


class IsGlobalAdmin(BasePermission):

    def has_permission(self, request, view):
        _engine(request).require_global_admin()
        return True


class HasTeamRole(BasePermission):
    """
    Enforce a minimum team role on views routed with a ``team_id`` kwarg.

    Usage in views:
        class TeamMembersView(APIView):
            permission_classes = [HasTeamRole]
            required_team_role = TeamRole.MEMBER
            required_team_roles = {'POST': TeamRole.ADMIN}

    ``required_team_roles`` maps HTTP methods to roles and wins over
    ``required_team_role``. Without a ``team_id`` kwarg only
    authentication is required.
    """

    def _required_role(self, request, view):
        from apps.rbac.roles import TeamRole

        per_method = getattr(view, 'required_team_roles', None) or {}
        return per_method.get(request.method, getattr(view, 'required_team_role', TeamRole.MEMBER))

    def has_permission(self, request, view):
        engine = _engine(request)
        team_id = getattr(view, 'kwargs', {}).get('team_id')
        if team_id is None:
            engine.require_authenticated()
        else:
            engine.require_team_access(team_id, self._required_role(request, view))
        check_subdomain_team(request, view)
        return True
