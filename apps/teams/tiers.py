"""
Tier feature limits.

``None`` means unlimited.
"""
from dataclasses import dataclass
from typing import Optional

from apps.rbac.roles import MemberType, TeamRole
from apps.teams.models import TeamTier


@dataclass(frozen=True)
class TeamTierLimits:
    max_athletes: Optional[int]
    max_admins: Optional[int]
    max_coaches: Optional[int]
    allows_custom_branding: bool = False
    allows_advanced_reporting: bool = False

    def allows(self, limit_name, current_count):
        """Check whether one more item fits under ``limit_name``."""
        limit = getattr(self, limit_name)
        return limit is None or current_count < limit


TIER_LIMITS = {
    TeamTier.FREE: TeamTierLimits(max_athletes=7, max_admins=2, max_coaches=2),
    TeamTier.STANDARD: TeamTierLimits(max_athletes=30, max_admins=5, max_coaches=5),
    TeamTier.PREMIUM: TeamTierLimits(
        max_athletes=None,
        max_admins=None,
        max_coaches=None,
        allows_custom_branding=True,
        allows_advanced_reporting=True,
    ),
}


def limits_for(tier) -> TeamTierLimits:
    return TIER_LIMITS[TeamTier(tier)]


def limit_name_for(role=None, member_type=None):
    """
    Which limit a new membership counts against.

    Admin role counts against the admin limit; otherwise coaches and
    athletes count against their own limits and parents are unlimited.
    """
    if role == TeamRole.ADMIN:
        return 'max_admins'
    if member_type == MemberType.COACH:
        return 'max_coaches'
    if member_type == MemberType.ATHLETE:
        return 'max_athletes'
    return None
