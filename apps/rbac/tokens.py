"""
Bearer token issuing and validation.

Tokens are HS256 JWTs signed with JWT_SECRET_KEY. Besides identity they
carry the caller's current team membership, which is the authoritative
source for team/role/member type until the next login or team switch.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from django.conf import settings
import jwt

from apps.core.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


CLAIM_SUBJECT = 'sub'
CLAIM_EMAIL = 'email'
CLAIM_FIRST_NAME = 'first_name'
CLAIM_LAST_NAME = 'last_name'
CLAIM_IS_GLOBAL_ADMIN = 'is_global_admin'
CLAIM_TEAM_ID = 'team_id'
CLAIM_TEAM_ROLE = 'team_role'
CLAIM_MEMBER_TYPE = 'member_type'
CLAIM_TEAM_SUBDOMAIN = 'team_subdomain'

TEAM_CLAIMS = (CLAIM_TEAM_ID, CLAIM_TEAM_ROLE, CLAIM_MEMBER_TYPE, CLAIM_TEAM_SUBDOMAIN)


class TokenIssuer:
    """
    Builds and verifies signed bearer tokens.
    """

    @classmethod
    def _algorithm(cls) -> str:
        return getattr(settings, 'JWT_ALGORITHM', 'HS256')

    @classmethod
    def _lifetime(cls) -> timedelta:
        return timedelta(minutes=getattr(settings, 'JWT_EXPIRATION_MINUTES', 60))

    @classmethod
    def build_claims(cls, user, membership=None, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Build the claim set for a user and (optionally) one of its memberships.

        Global admins never receive team claims, even if a membership is given.

        Args:
            user: User instance
            membership: Active teams.Membership of the user, or None
            now: Issue time override

        Returns:
            Claim dict ready for signing
        """
        now = now or datetime.now(timezone.utc)
        claims = {
            CLAIM_SUBJECT: str(user.id),
            CLAIM_EMAIL: user.email,
            CLAIM_FIRST_NAME: user.first_name,
            CLAIM_LAST_NAME: user.last_name,
            CLAIM_IS_GLOBAL_ADMIN: 'true' if user.is_global_admin else 'false',
            'jti': uuid.uuid4().hex,
            'iat': now,
            'exp': now + cls._lifetime(),
            'iss': getattr(settings, 'JWT_ISSUER', 'teamstride'),
            'aud': getattr(settings, 'JWT_AUDIENCE', 'teamstride-api'),
        }

        if membership is not None and not user.is_global_admin:
            if membership.user_id != user.id:
                raise ValueError('Membership does not belong to user')
            claims[CLAIM_TEAM_ID] = str(membership.team_id)
            claims[CLAIM_TEAM_ROLE] = membership.role
            claims[CLAIM_MEMBER_TYPE] = membership.member_type
            claims[CLAIM_TEAM_SUBDOMAIN] = membership.team.subdomain

        return claims

    @classmethod
    def issue(cls, user, membership=None) -> Dict[str, Any]:
        """
        Issue a signed token.

        Returns:
            Dict with ``token`` and ``expires_at`` (ISO 8601)
        """
        claims = cls.build_claims(user, membership)
        token = jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=cls._algorithm())

        logger.debug(
            "Issued token",
            extra={'user_id': str(user.id), 'team_id': claims.get(CLAIM_TEAM_ID)}
        )
        return {
            'token': token,
            'expires_at': claims['exp'].isoformat(),
        }

    @classmethod
    def decode(cls, token: str) -> Dict[str, Any]:
        """
        Verify signature, expiry, issuer and audience.

        Raises:
            AuthenticationError: If the token is expired or invalid
        """
        try:
            return jwt.decode(
                token,
                settings.JWT_SECRET_KEY,
                algorithms=[cls._algorithm()],
                audience=getattr(settings, 'JWT_AUDIENCE', 'teamstride-api'),
                issuer=getattr(settings, 'JWT_ISSUER', 'teamstride'),
                options={'require': ['exp', 'iat', 'sub']},
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError('Token has expired')
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected invalid token: {e.__class__.__name__}")
            raise AuthenticationError('Invalid token')

    @classmethod
    def validate(cls, token: str) -> Optional[Dict[str, Any]]:
        """Non-raising variant of ``decode``."""
        try:
            return cls.decode(token)
        except AuthenticationError:
            return None
