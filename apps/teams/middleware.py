"""
Team subdomain resolution middleware.

Resolves the team a request arrived on before authentication, from the
Host header or an explicit ``X-Subdomain`` header (used by API clients
served from the main domain).
"""
import logging
from django.utils.deprecation import MiddlewareMixin

from apps.core.exceptions import TeamNotFound, error_response
from apps.teams.services.context_resolver import TeamContextResolver

logger = logging.getLogger(__name__)


class TeamSubdomainMiddleware(MiddlewareMixin):
    """
    Set ``request.subdomain_team`` from the request host.

    Main-site hosts leave it as None. An unknown subdomain is answered
    with 404 "Team Not Found" before any view runs.
    """

    EXEMPT_PATHS = [
        '/v1/health',
        '/schema',
    ]

    def process_request(self, request):
        request.subdomain_team = None

        if self._is_exempt(request.path):
            return None

        subdomain = self._requested_subdomain(request)
        if not subdomain:
            return None

        try:
            request.subdomain_team = TeamContextResolver.resolve_subdomain(
                subdomain,
                ip_address=request.META.get('REMOTE_ADDR'),
            )
        except TeamNotFound as exc:
            logger.info(
                f"Unknown team subdomain: {subdomain}",
                extra={'request_id': getattr(request, 'request_id', None), 'path': request.path}
            )
            return error_response(exc, getattr(request, 'request_id', None))

        return None

    def _requested_subdomain(self, request):
        header = request.headers.get('X-Subdomain')
        if header and header.strip():
            return TeamContextResolver.normalize_subdomain(header)
        return TeamContextResolver.extract_subdomain_from_host(request.get_host())

    def _is_exempt(self, path):
        return any(path.startswith(exempt) for exempt in self.EXEMPT_PATHS)
