"""
Team roles and member types.

Roles form a total order by privilege rank: Owner (1) outranks Admin (2)
outranks Member (3). A caller meets a role requirement when its rank is
less than or equal to the required rank.
"""
from typing import Optional
from django.db import models


class TeamRole(models.TextChoices):
    OWNER = 'owner', 'Owner'
    ADMIN = 'admin', 'Admin'
    MEMBER = 'member', 'Member'


class MemberType(models.TextChoices):
    COACH = 'coach', 'Coach'
    ATHLETE = 'athlete', 'Athlete'
    PARENT = 'parent', 'Parent'


ROLE_RANK = {
    TeamRole.OWNER: 1,
    TeamRole.ADMIN: 2,
    TeamRole.MEMBER: 3,
}


def _normalize(value):
    return str(value).strip().lower() if value is not None else None


def parse_role(value) -> Optional[TeamRole]:
    """Return the TeamRole for a claim or input value, or None if it is not a role.

    Matching ignores case and surrounding whitespace.
    """
    try:
        return TeamRole(_normalize(value))
    except ValueError:
        return None


def parse_member_type(value) -> Optional[MemberType]:
    try:
        return MemberType(_normalize(value))
    except ValueError:
        return None


def has_minimum_role(actual, required) -> bool:
    """True when ``actual`` is at least as privileged as ``required``."""
    return ROLE_RANK[TeamRole(actual)] <= ROLE_RANK[TeamRole(required)]
