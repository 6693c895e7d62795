"""
Request-scoped caller context.

A RequestContext is built once per request from validated token claims
and passed explicitly to services. It is immutable and never stored in
module or thread-local state.
"""
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class TeamOwned(Protocol):
    """Anything that exposes the id of the team it belongs to."""

    team_id: Optional[uuid.UUID]


@dataclass(frozen=True)
class RequestContext:
    """Identity, team and role of the caller for a single request."""

    user_id: Optional[uuid.UUID] = None
    email: Optional[str] = None
    first_name: str = ''
    last_name: str = ''
    is_global_admin: bool = False
    team_id: Optional[uuid.UUID] = None
    team_role: Optional[str] = None
    member_type: Optional[str] = None
    team_subdomain: Optional[str] = None
    subdomain_team_id: Optional[uuid.UUID] = None
    request_id: Optional[str] = None

    @classmethod
    def anonymous(cls, request_id=None, subdomain_team_id=None):
        """Context for an unauthenticated caller."""
        return cls(request_id=request_id, subdomain_team_id=subdomain_team_id)

    @classmethod
    def system(cls):
        """Context for management code; acts with global admin rights and no actor id."""
        return cls(is_global_admin=True)

    @classmethod
    def for_user(cls, user, membership=None, request_id=None):
        """
        Build a context directly from a user and membership.

        Used where no token exists yet (management commands, tests). Mirrors
        the claims TokenIssuer would embed for the same pair.
        """
        if user.is_global_admin or membership is None:
            return cls(
                user_id=user.id,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
                is_global_admin=user.is_global_admin,
                request_id=request_id,
            )
        return cls(
            user_id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            team_id=membership.team_id,
            team_role=membership.role,
            member_type=membership.member_type,
            team_subdomain=membership.team.subdomain,
            request_id=request_id,
        )

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_team_set(self) -> bool:
        return self.team_id is not None

    def log_extra(self) -> dict:
        """Fields for ``logger.*(..., extra=...)``."""
        return {
            'request_id': self.request_id,
            'user_id': str(self.user_id) if self.user_id else None,
            'team_id': str(self.team_id) if self.team_id else None,
        }
