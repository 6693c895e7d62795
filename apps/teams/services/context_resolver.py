"""
Team context resolution.

Two paths:
- pre-authentication: subdomain (from host or header) to Team, one lookup
- post-authentication: validated claims to RequestContext, no database
"""
import logging
import uuid
from typing import Optional
from django.conf import settings

from apps.core.context import RequestContext
from apps.core.exceptions import TeamNotFound
from apps.core.logging import SecurityLogger
from apps.rbac.roles import parse_member_type, parse_role
from apps.rbac import tokens
from apps.teams.models import Membership, Team, TeamStatus, normalize_subdomain

logger = logging.getLogger(__name__)


MAIN_SITE_PREFIXES = ('api.', 'www.')


def _parse_uuid(value) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class TeamContextResolver:
    """
    Resolves the active team, role and member type for a request.
    """

    normalize_subdomain = staticmethod(normalize_subdomain)

    # Pre-authentication

    @staticmethod
    def extract_subdomain_from_host(host: str) -> Optional[str]:
        """
        Extract the team subdomain from a Host header value.

        Hosts with two labels or fewer, IPv4 hosts, and hosts starting with a
        main-site prefix (``api.``, ``www.``) belong to the main site. Labels
        shorter than MIN_SUBDOMAIN_LENGTH are ignored.

        Returns:
            Normalized subdomain or None
        """
        host = normalize_subdomain(host).split(':', 1)[0]
        if not host or host.startswith(MAIN_SITE_PREFIXES):
            return None

        labels = host.split('.')
        if len(labels) <= 2 or all(label.isdigit() for label in labels):
            return None

        candidate = labels[0]
        if len(candidate) < getattr(settings, 'MIN_SUBDOMAIN_LENGTH', 3):
            return None
        return candidate

    @staticmethod
    def find_by_subdomain(subdomain: str) -> Optional[Team]:
        """Non-deleted team for a subdomain, or None."""
        return Team.objects.by_subdomain(subdomain)

    @classmethod
    def resolve_subdomain(cls, subdomain: str, ip_address: Optional[str] = None) -> Team:
        """
        Resolve a subdomain to its team.

        Raises:
            TeamNotFound: If no non-deleted team uses the subdomain
        """
        team = cls.find_by_subdomain(subdomain)
        if team is None:
            SecurityLogger.log_team_not_found(normalize_subdomain(subdomain), ip_address)
            raise TeamNotFound(
                'Team Not Found',
                details={'subdomain': normalize_subdomain(subdomain)},
            )
        return team

    # Post-authentication

    @staticmethod
    def resolve_from_claims(claims: dict, request_id=None, subdomain_team_id=None) -> RequestContext:
        """
        Build a RequestContext from validated token claims.

        A missing or malformed team id means "no team". A role or member
        type that does not parse is kept as None so authorization can
        report it with a specific reason.
        """
        is_global_admin = str(claims.get(tokens.CLAIM_IS_GLOBAL_ADMIN, 'false')).lower() == 'true'

        team_id = None
        team_role = None
        member_type = None
        team_subdomain = None
        if not is_global_admin:
            team_id = _parse_uuid(claims.get(tokens.CLAIM_TEAM_ID))
            if team_id is not None:
                role = parse_role(claims.get(tokens.CLAIM_TEAM_ROLE))
                kind = parse_member_type(claims.get(tokens.CLAIM_MEMBER_TYPE))
                team_role = role.value if role else None
                member_type = kind.value if kind else None
                team_subdomain = claims.get(tokens.CLAIM_TEAM_SUBDOMAIN)

        return RequestContext(
            user_id=_parse_uuid(claims.get(tokens.CLAIM_SUBJECT)),
            email=claims.get(tokens.CLAIM_EMAIL),
            first_name=claims.get(tokens.CLAIM_FIRST_NAME) or '',
            last_name=claims.get(tokens.CLAIM_LAST_NAME) or '',
            is_global_admin=is_global_admin,
            team_id=team_id,
            team_role=team_role,
            member_type=member_type,
            team_subdomain=team_subdomain,
            subdomain_team_id=subdomain_team_id,
            request_id=request_id,
        )

    # Login-time selection

    @staticmethod
    def select_membership(user, subdomain=None, team_id=None) -> Optional[Membership]:
        """
        Pick the membership a new token should be scoped to.

        Order: explicit subdomain or team id, then the default membership,
        then the first active membership. Global admins never get one.

        Raises:
            TeamNotFound: If an explicit team was requested and the user has
                no active membership in it
        """
        if user.is_global_admin:
            return None

        memberships = Membership.objects.for_user(user).filter(team__status=TeamStatus.ACTIVE)

        if subdomain or team_id:
            if subdomain:
                membership = memberships.filter(team__subdomain=normalize_subdomain(subdomain)).first()
            else:
                membership = memberships.filter(team_id=_parse_uuid(team_id)).first()
            if membership is None:
                raise TeamNotFound('No active membership in the requested team')
            return membership

        default = memberships.filter(is_default=True).first()
        if default is not None:
            return default
        return memberships.order_by('joined_on').first()
