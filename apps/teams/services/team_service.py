"""
Team management service.

Handles team lifecycle operations including:
- Team creation with Owner membership
- Team settings, subdomain and tier changes
- Member management under tier limits
- Soft deletion with membership deactivation
"""
import logging
import re
from django.conf import settings
from django.db import IntegrityError
from django.db.models import Count, Q

from apps.core.exceptions import (
    ConflictError, NotFoundError, SubdomainUnavailable, TeamNotFound, TierLimitExceeded,
    ValidationError,
)
from apps.core.models import AuditStamper
from apps.core.query_filters import TeamQueryFilter
from apps.core.retry import run_in_transaction
from apps.rbac.authorization import AuthorizationEngine
from apps.rbac.models import User
from apps.rbac.roles import MemberType, TeamRole, parse_member_type, parse_role
from apps.teams.models import (
    Membership, OwnershipTransfer, Team, TeamStatus, TeamTier, TransferStatus, normalize_subdomain,
)
from apps.teams.tiers import limit_name_for, limits_for

logger = logging.getLogger(__name__)


SUBDOMAIN_PATTERN = re.compile(r'^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$')
MAX_SUBDOMAIN_LENGTH = 63
RESERVED_SUBDOMAINS = frozenset({
    'admin', 'api', 'app', 'auth', 'mail', 'static', 'support', 'www',
})

UPDATABLE_FIELDS = ('name', 'status', 'tier', 'primary_color', 'secondary_color', 'logo_url')
BRANDING_FIELDS = ('primary_color', 'secondary_color', 'logo_url')


class TeamService:
    """
    Service for team lifecycle and membership management.

    Every public method takes the caller's RequestContext explicitly and
    checks access through the AuthorizationEngine before touching data.
    """

    # Subdomains

    @staticmethod
    def validate_subdomain(subdomain: str) -> str:
        """
        Normalize and validate a subdomain.

        Returns:
            Normalized subdomain

        Raises:
            ValidationError: If the subdomain is malformed or reserved
        """
        normalized = normalize_subdomain(subdomain)
        min_length = getattr(settings, 'MIN_SUBDOMAIN_LENGTH', 3)

        if len(normalized) < min_length or len(normalized) > MAX_SUBDOMAIN_LENGTH:
            raise ValidationError(
                f'Subdomain must be between {min_length} and {MAX_SUBDOMAIN_LENGTH} characters',
                details={'subdomain': normalized},
            )
        if not SUBDOMAIN_PATTERN.match(normalized):
            raise ValidationError(
                'Subdomain may only contain lowercase letters, digits and inner hyphens',
                details={'subdomain': normalized},
            )
        if normalized in RESERVED_SUBDOMAINS:
            raise ValidationError('Subdomain is reserved', details={'subdomain': normalized})
        return normalized

    @staticmethod
    def is_subdomain_available(subdomain: str, exclude_team_id=None) -> bool:
        """True when no non-deleted team (other than ``exclude_team_id``) uses the subdomain."""
        queryset = Team.objects.not_deleted().filter(subdomain=normalize_subdomain(subdomain))
        if exclude_team_id:
            queryset = queryset.exclude(id=exclude_team_id)
        return not queryset.exists()

    # Teams

    @classmethod
    def create_team(cls, context, owner: User, name: str, subdomain: str,
                    tier=TeamTier.FREE, owner_member_type=MemberType.COACH,
                    status=TeamStatus.ACTIVE) -> Team:
        """
        Create a team together with its Owner membership.

        Both rows are written in one transaction, retried on transient
        database errors. The owner's membership becomes their default when
        they have none yet.

        Args:
            context: Caller context (used for audit stamping)
            owner: User who will own the team
            name: Team display name
            subdomain: Requested subdomain
            tier: Initial tier
            owner_member_type: Member type recorded for the owner

        Returns:
            Team instance

        Raises:
            ValidationError: If input is invalid or the owner is a global admin
            SubdomainUnavailable: If the subdomain is taken
        """
        if owner.is_global_admin:
            raise ValidationError('Global admins cannot own teams')
        if not (name or '').strip():
            raise ValidationError('Team name is required')

        normalized = cls.validate_subdomain(subdomain)

        def _create():
            if not cls.is_subdomain_available(normalized):
                raise SubdomainUnavailable(
                    'Subdomain is already in use',
                    details={'subdomain': normalized},
                )

            team = Team(
                name=name.strip(),
                subdomain=normalized,
                tier=TeamTier(tier),
                status=status,
                owner=owner,
            )
            team.save(context=context)

            has_default = Membership.objects.filter(
                user=owner, is_default=True, is_deleted=False
            ).exists()
            membership = Membership(
                user=owner,
                team=team,
                role=TeamRole.OWNER,
                member_type=MemberType(owner_member_type),
                is_default=not has_default,
            )
            membership.save(context=context)
            return team

        try:
            team = run_in_transaction(_create, label='create_team')
        except IntegrityError as e:
            logger.info(f"Subdomain conflict creating team: {e}")
            raise SubdomainUnavailable(
                'Subdomain is already in use',
                details={'subdomain': normalized},
            ) from e

        logger.info(
            "Team created",
            extra={**context.log_extra(), 'team_id': str(team.id), 'subdomain': team.subdomain}
        )
        return team

    @staticmethod
    def _load_team(context, team_id) -> Team:
        team = TeamQueryFilter.for_model(Team, context).get(id=team_id)
        if team is None:
            raise TeamNotFound('Team not found')
        return team

    @classmethod
    def get_team(cls, context, team_id) -> Team:
        AuthorizationEngine(context).require_team_access(team_id)
        return cls._load_team(context, team_id)

    @classmethod
    def list_teams(cls, context):
        """
        Teams visible to the caller.

        Global admins see every non-deleted team; everyone else sees only
        the team in their current context.
        """
        AuthorizationEngine(context).require_authenticated()
        return TeamQueryFilter.for_model(Team, context).queryset.select_related('owner')

    @classmethod
    def update_team(cls, context, team_id, **changes) -> Team:
        """
        Update team settings.

        Args:
            context: Caller context (Admin or above)
            team_id: Team to update
            **changes: Any of name, status, tier, primary_color,
                secondary_color, logo_url

        Raises:
            ValidationError: On unknown fields or branding without Premium
            TierLimitExceeded: If a downgrade would exceed the athlete limit
        """
        AuthorizationEngine(context).require_team_admin(team_id)
        team = cls._load_team(context, team_id)

        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        if 'name' in changes and not (changes['name'] or '').strip():
            raise ValidationError('Team name cannot be empty')
        if 'status' in changes and changes['status'] not in TeamStatus.values:
            raise ValidationError('Invalid team status', details={'status': changes['status']})

        new_tier = team.tier
        if 'tier' in changes:
            if changes['tier'] not in TeamTier.values:
                raise ValidationError('Invalid tier', details={'tier': changes['tier']})
            new_tier = changes['tier']
            cls._check_tier_change(team, new_tier)

        branding = [field for field in BRANDING_FIELDS if changes.get(field)]
        if branding and not limits_for(new_tier).allows_custom_branding:
            raise ValidationError(
                'Custom branding requires the Premium tier',
                details={'fields': branding},
            )

        for field, value in changes.items():
            setattr(team, field, value.strip() if field == 'name' else value)
        team.save(context=context, update_fields=list(changes))

        logger.info(
            "Team updated",
            extra={**context.log_extra(), 'team_id': str(team.id), 'fields': sorted(changes)}
        )
        return team

    @classmethod
    def _check_tier_change(cls, team: Team, new_tier):
        limits = limits_for(new_tier)
        counts = cls.member_counts(team)
        if limits.max_athletes is not None and counts['athletes'] > limits.max_athletes:
            raise TierLimitExceeded(
                f"Team has {counts['athletes']} athletes; the {TeamTier(new_tier).label} tier "
                f"allows {limits.max_athletes}",
                details={'tier': new_tier, 'athletes': counts['athletes']},
            )

    @classmethod
    def update_subdomain(cls, context, team_id, subdomain: str) -> Team:
        """
        Change a team's subdomain (Owner only).

        Raises:
            SubdomainUnavailable: If another non-deleted team uses it
        """
        AuthorizationEngine(context).require_team_ownership(team_id)
        team = cls._load_team(context, team_id)
        normalized = cls.validate_subdomain(subdomain)

        if normalized == team.subdomain:
            return team
        if not cls.is_subdomain_available(normalized, exclude_team_id=team.id):
            raise SubdomainUnavailable('Subdomain is already in use', details={'subdomain': normalized})

        old_subdomain = team.subdomain
        team.subdomain = normalized
        try:
            run_in_transaction(team.save, context=context, update_fields=['subdomain'], label='update_subdomain')
        except IntegrityError as e:
            raise SubdomainUnavailable('Subdomain is already in use', details={'subdomain': normalized}) from e

        logger.info(
            f"Team subdomain changed from {old_subdomain} to {normalized}",
            extra={**context.log_extra(), 'team_id': str(team.id)}
        )
        return team

    @classmethod
    def delete_team(cls, context, team_id) -> Team:
        """
        Soft delete a team (Owner or global admin).

        Memberships are deactivated, pending ownership transfers cancelled,
        and the team is suspended. The subdomain becomes available again.
        """
        AuthorizationEngine(context).require_team_ownership(team_id)
        team = cls._load_team(context, team_id)

        def _delete():
            audit = AuditStamper.update_kwargs(context)
            Membership.objects.filter(team=team, is_active=True).update(is_active=False, **audit)
            OwnershipTransfer.objects.pending_for_team(team.id).update(
                status=TransferStatus.CANCELLED, **audit
            )
            team.status = TeamStatus.SUSPENDED
            team.save(context=context, update_fields=['status'])
            team.delete(context=context)

        run_in_transaction(_delete, label='delete_team')

        logger.warning(
            "Team soft deleted",
            extra={**context.log_extra(), 'team_id': str(team.id), 'subdomain': team.subdomain}
        )
        return team

    # Members

    @staticmethod
    def member_counts(team: Team) -> dict:
        """Active member counts by limit bucket."""
        active = Q(memberships__is_active=True, memberships__is_deleted=False)
        plain_member = active & Q(memberships__role=TeamRole.MEMBER)
        counts = Team.objects.filter(id=team.id).aggregate(
            members=Count('memberships', filter=active),
            admins=Count('memberships', filter=active & Q(memberships__role=TeamRole.ADMIN)),
            coaches=Count('memberships', filter=plain_member & Q(memberships__member_type=MemberType.COACH)),
            athletes=Count('memberships', filter=plain_member & Q(memberships__member_type=MemberType.ATHLETE)),
        )
        return counts

    @classmethod
    def _check_member_limit(cls, team: Team, role, member_type):
        limit_name = limit_name_for(role, member_type)
        if limit_name is None:
            return
        counts = cls.member_counts(team)
        current = counts[limit_name.replace('max_', '')]
        limits = limits_for(team.tier)
        if not limits.allows(limit_name, current):
            raise TierLimitExceeded(
                f"The {TeamTier(team.tier).label} tier allows at most {getattr(limits, limit_name)} "
                f"{limit_name.replace('max_', '')}",
                details={'tier': team.tier, 'limit': limit_name},
            )

    @classmethod
    def can_add_athlete(cls, team: Team) -> bool:
        counts = cls.member_counts(team)
        return limits_for(team.tier).allows('max_athletes', counts['athletes'])

    @classmethod
    def list_members(cls, context, team_id, role=None, member_type=None):
        """Active members of a team, optionally filtered by role or member type."""
        AuthorizationEngine(context).require_team_access(team_id)
        queryset = TeamQueryFilter(
            Membership.objects.select_related('user', 'team'), context
        ).queryset.filter(team_id=team_id, is_active=True)
        if role:
            queryset = queryset.filter(role=role)
        if member_type:
            queryset = queryset.filter(member_type=member_type)
        return queryset

    @classmethod
    def _load_membership(cls, context, team_id, user_id) -> Membership:
        membership = TeamQueryFilter(
            Membership.objects.select_related('user', 'team'), context
        ).get(team_id=team_id, user_id=user_id, is_active=True)
        if membership is None:
            raise NotFoundError('Member not found')
        return membership

    @classmethod
    def add_member(cls, context, team_id, email: str, role=TeamRole.MEMBER,
                   member_type=MemberType.ATHLETE, first_name: str = '',
                   last_name: str = '') -> Membership:
        """
        Add a user to a team (Admin or above).

        Creates the user when no account exists for the email. A previously
        removed membership is restored with the new role.

        Raises:
            ValidationError: If the Owner role is requested or the user is a global admin
            ConflictError: If the user is already an active member
            TierLimitExceeded: If the team's tier limit is reached
        """
        AuthorizationEngine(context).require_team_admin(team_id)
        team = cls._load_team(context, team_id)

        role = parse_role(role)
        member_type = parse_member_type(member_type)
        if role is None or member_type is None:
            raise ValidationError('Invalid role or member type')
        if role == TeamRole.OWNER:
            raise ValidationError('Ownership can only be assigned through an ownership transfer')

        def _add():
            user = User.objects.filter(email=User.objects.normalize_email(email)).first()
            if user is None:
                user = User.objects.create_user(
                    email, first_name=first_name, last_name=last_name, context=context
                )
            elif user.is_global_admin:
                raise ValidationError('Global admins cannot be team members')

            membership = Membership.objects.filter(team=team, user=user).first()
            if membership is not None and membership.is_active and not membership.is_deleted:
                raise ConflictError('User is already a member of this team')

            cls._check_member_limit(team, role, member_type)

            has_default = Membership.objects.filter(
                user=user, is_default=True, is_deleted=False
            ).exists()

            if membership is None:
                membership = Membership(team=team, user=user)
            membership.role = role
            membership.member_type = member_type
            membership.is_active = True
            membership.is_deleted = False
            membership.deleted_on = None
            membership.deleted_by = None
            membership.is_default = membership.is_default or not has_default
            membership.save(context=context)
            return membership

        membership = run_in_transaction(_add, label='add_member')
        logger.info(
            "Member added",
            extra={**context.log_extra(), 'team_id': str(team.id), 'member_id': str(membership.user_id),
                   'role': role.value}
        )
        return membership

    @classmethod
    def update_member_role(cls, context, team_id, user_id, role=None, member_type=None) -> Membership:
        """
        Change a member's role and/or member type (Admin or above).

        The Owner role can be neither granted nor taken away here; ownership
        moves only through the ownership transfer workflow.
        """
        AuthorizationEngine(context).require_team_admin(team_id)
        membership = cls._load_membership(context, team_id, user_id)

        update_fields = []
        if role is not None:
            new_role = parse_role(role)
            if new_role is None:
                raise ValidationError('Invalid role', details={'role': role})
            if new_role == TeamRole.OWNER:
                raise ValidationError('Ownership can only be assigned through an ownership transfer')
            if membership.is_owner:
                raise ValidationError('The team owner role cannot be changed; transfer ownership instead')
            if new_role != membership.role:
                if new_role == TeamRole.ADMIN:
                    cls._check_member_limit(membership.team, new_role, membership.member_type)
                membership.role = new_role
                update_fields.append('role')

        if member_type is not None:
            new_type = parse_member_type(member_type)
            if new_type is None:
                raise ValidationError('Invalid member type', details={'member_type': member_type})
            if new_type != membership.member_type:
                if membership.role == TeamRole.MEMBER:
                    cls._check_member_limit(membership.team, membership.role, new_type)
                membership.member_type = new_type
                update_fields.append('member_type')

        if update_fields:
            membership.save(context=context, update_fields=update_fields)
            logger.info(
                "Member updated",
                extra={**context.log_extra(), 'team_id': str(team_id), 'member_id': str(user_id),
                       'fields': update_fields}
            )
        return membership

    @classmethod
    def remove_member(cls, context, team_id, user_id) -> Membership:
        """
        Remove a member (Admin or above). The owner cannot be removed.
        """
        AuthorizationEngine(context).require_team_admin(team_id)
        membership = cls._load_membership(context, team_id, user_id)
        if membership.is_owner:
            raise ValidationError('The team owner cannot be removed')

        def _remove():
            membership.is_active = False
            membership.is_default = False
            membership.save(context=context, update_fields=['is_active', 'is_default'])
            membership.delete(context=context)

        run_in_transaction(_remove, label='remove_member')
        logger.info(
            "Member removed",
            extra={**context.log_extra(), 'team_id': str(team_id), 'member_id': str(user_id)}
        )
        return membership

    # Summary

    @classmethod
    def get_team_summary(cls, context, team_id) -> dict:
        """Owner, member counts and whether an ownership transfer is pending."""
        team = cls.get_team(context, team_id)
        counts = cls.member_counts(team)
        return {
            'team_id': str(team.id),
            'name': team.name,
            'subdomain': team.subdomain,
            'status': team.status,
            'tier': team.tier,
            'owner': {
                'id': str(team.owner_id),
                'email': team.owner.email,
                'name': team.owner.get_full_name(),
            },
            'member_count': counts['members'],
            'admin_count': counts['admins'],
            'coach_count': counts['coaches'],
            'athlete_count': counts['athletes'],
            'can_add_athlete': limits_for(team.tier).allows('max_athletes', counts['athletes']),
            'has_pending_ownership_transfer': OwnershipTransfer.objects.pending_for_team(team.id).exists(),
        }
