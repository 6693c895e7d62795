"""
Bearer token authentication for DRF.

The token is verified once per request and its claims become the
request's RequestContext. No database lookup happens on this path.
"""
import logging
from rest_framework.authentication import BaseAuthentication, get_authorization_header

from apps.core.context import RequestContext
from apps.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class TokenUser:
    """
    ``request.user`` for token-authenticated requests.

    Backed only by claims; load ``rbac.User`` explicitly when the row is needed.
    """
    is_authenticated = True
    is_anonymous = False

    def __init__(self, context: RequestContext):
        self.context = context
        self.id = context.user_id
        self.pk = context.user_id
        self.email = context.email
        self.first_name = context.first_name
        self.last_name = context.last_name
        self.is_global_admin = context.is_global_admin

    @property
    def is_staff(self):
        return self.is_global_admin

    def __str__(self):
        return self.email or str(self.id)


def get_request_context(request) -> RequestContext:
    """
    The caller's RequestContext.

    Falls back to an anonymous context carrying the request id and the
    subdomain team resolved before authentication.
    """
    context = getattr(request, 'auth', None)
    if isinstance(context, RequestContext):
        return context

    subdomain_team = getattr(request, 'subdomain_team', None)
    return RequestContext.anonymous(
        request_id=getattr(request, 'request_id', None),
        subdomain_team_id=subdomain_team.id if subdomain_team is not None else None,
    )


class BearerTokenAuthentication(BaseAuthentication):
    """
    Authenticate ``Authorization: Bearer <token>`` requests.

    Returns ``(TokenUser, RequestContext)`` so views read the context from
    ``request.auth``. The context is also attached to the underlying
    request as ``team_context``.
    """
    keyword = 'Bearer'

    def authenticate(self, request):
        auth = get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None

        if len(auth) != 2:
            raise AuthenticationError('Invalid Authorization header. Expected "Bearer <token>"')

        try:
            token = auth[1].decode()
        except UnicodeError:
            raise AuthenticationError('Invalid token')

        from apps.rbac.tokens import TokenIssuer
        from apps.teams.services.context_resolver import TeamContextResolver

        claims = TokenIssuer.decode(token)

        django_request = request._request
        subdomain_team = getattr(django_request, 'subdomain_team', None)
        context = TeamContextResolver.resolve_from_claims(
            claims,
            request_id=getattr(django_request, 'request_id', None),
            subdomain_team_id=subdomain_team.id if subdomain_team is not None else None,
        )
        if context.user_id is None:
            raise AuthenticationError('Invalid token')

        django_request.team_context = context
        return (TokenUser(context), context)

    def authenticate_header(self, request):
        return self.keyword
