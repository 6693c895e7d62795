"""
Global admin operations on teams and user accounts.

These are the only code paths that read deleted teams or users, or remove
rows physically. Every method requires a global admin caller; team reads
go through ``TeamQueryFilter.as_global_admin()``.
"""
import logging
import uuid
from django.db import IntegrityError
from django.db.models import Count, Prefetch, Q

from apps.core.exceptions import (
    NotFoundError, SubdomainUnavailable, TeamNotFound, ValidationError,
)
from apps.core.logging import SecurityLogger
from apps.core.models import AuditStamper
from apps.core.query_filters import TeamQueryFilter
from apps.core.retry import run_in_transaction
from apps.rbac.authorization import AuthorizationEngine
from apps.rbac.models import User
from apps.teams.models import Membership, OwnershipTransfer, Team, TeamStatus, TransferStatus
from apps.teams.services.ownership_transfer import OwnershipTransferService
from apps.teams.services.team_service import TeamService

logger = logging.getLogger(__name__)

NOT_PROVIDED = object()


class GlobalAdminTeamService:
    """
    Platform-wide team administration.
    """

    @staticmethod
    def _teams(context):
        AuthorizationEngine(context).require_global_admin()
        return TeamQueryFilter.for_model(Team, context).as_global_admin()

    @classmethod
    def _get_any_team(cls, context, team_id) -> Team:
        team = cls._teams(context).include_deleted().get(id=team_id)
        if team is None:
            raise TeamNotFound(f'Team with ID {team_id} not found')
        return team

    @classmethod
    def list_teams(cls, context, search=None, status=None, tier=None, include_deleted=False):
        """
        All teams, optionally filtered.

        Args:
            search: Case-insensitive match on name, subdomain or owner email
            status: TeamStatus value
            tier: TeamTier value
            include_deleted: Include soft-deleted teams
        """
        teams = cls._teams(context)
        if include_deleted:
            teams = teams.include_deleted()
        queryset = teams.queryset.select_related('owner')
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search)
                | Q(subdomain__icontains=search)
                | Q(owner__email__icontains=search)
            )
        if status:
            queryset = queryset.filter(status=status)
        if tier:
            queryset = queryset.filter(tier=tier)
        return queryset

    @classmethod
    def list_deleted_teams(cls, context):
        return cls._teams(context).only_deleted().queryset.select_related('owner').order_by('-deleted_on')

    @classmethod
    def get_team(cls, context, team_id) -> Team:
        """Any team by id, deleted or not."""
        return cls._get_any_team(context, team_id)

    @classmethod
    def update_team(cls, context, team_id, subdomain=None, expires_on=NOT_PROVIDED, **changes) -> Team:
        """
        Update any live team, including its subdomain and subscription expiry.

        Settings changes go through the same validation as team admins get
        (tier limits, Premium-only branding).

        Args:
            subdomain: New subdomain, if it changes
            expires_on: New subscription expiry (None clears it)
            **changes: Any of name, status, tier, primary_color,
                secondary_color, logo_url

        Raises:
            ValidationError: If the team is deleted or nothing is changed
        """
        team = cls._get_any_team(context, team_id)
        if team.is_deleted:
            raise ValidationError('Cannot update a deleted team; recover it first')
        if subdomain is None and expires_on is NOT_PROVIDED and not changes:
            raise ValidationError('No changes supplied')

        def _update():
            if subdomain is not None:
                TeamService.update_subdomain(context, team.id, subdomain)
            if changes:
                TeamService.update_team(context, team.id, **changes)
            if expires_on is not NOT_PROVIDED:
                Team.objects.filter(pk=team.pk).update(
                    expires_on=expires_on, **AuditStamper.update_kwargs(context)
                )
            return Team.objects.select_related('owner').get(pk=team.pk)

        updated = run_in_transaction(_update, label='admin_update_team')

        fields = set(changes)
        if subdomain is not None:
            fields.add('subdomain')
        if expires_on is not NOT_PROVIDED:
            fields.add('expires_on')
        SecurityLogger.log_event(
            'global_admin_team_updated',
            level='info',
            user_id=str(context.user_id) if context.user_id else None,
            requested_team_id=str(team.id),
            fields=sorted(fields),
        )
        return updated

    @classmethod
    def create_team_with_owner(cls, context, owner_email: str, name: str, subdomain: str,
                               tier=None, first_name: str = '', last_name: str = '') -> Team:
        """
        Create a team for an existing or new owner account.

        A new account is created without a password when no user has the
        email yet.
        """
        AuthorizationEngine(context).require_global_admin()

        def _create():
            owner = User.objects.filter(email=User.objects.normalize_email(owner_email)).first()
            if owner is None:
                owner = User.objects.create_user(
                    owner_email, first_name=first_name, last_name=last_name, context=context
                )
            kwargs = {'tier': tier} if tier else {}
            return TeamService.create_team(context, owner, name, subdomain, **kwargs)

        team = run_in_transaction(_create, label='admin_create_team')
        SecurityLogger.log_event(
            'global_admin_team_created',
            level='info',
            user_id=str(context.user_id) if context.user_id else None,
            requested_team_id=str(team.id),
        )
        return team

    @classmethod
    def permanently_delete_team(cls, context, team_id):
        """
        Physically remove a team with its memberships and transfers.

        Irreversible; soft-deleted and live teams alike.
        """
        team = cls._get_any_team(context, team_id)

        def _purge():
            OwnershipTransfer.objects.filter(team=team).hard_delete()
            Membership.objects.filter(team=team).hard_delete()
            team.hard_delete()

        run_in_transaction(_purge, label='permanently_delete_team')
        SecurityLogger.log_event(
            'team_permanently_deleted',
            level='warning',
            user_id=str(context.user_id) if context.user_id else None,
            requested_team_id=str(team_id),
            subdomain=team.subdomain,
        )

    @classmethod
    def recover_team(cls, context, team_id) -> Team:
        """
        Restore a soft-deleted team and reactivate its memberships.

        Raises:
            ValidationError: If the team is not deleted
            SubdomainUnavailable: If another team claimed the subdomain meanwhile
        """
        team = cls._get_any_team(context, team_id)
        if not team.is_deleted:
            raise ValidationError(f'Team with ID {team_id} is not deleted')

        if not TeamService.is_subdomain_available(team.subdomain, exclude_team_id=team.id):
            raise SubdomainUnavailable(
                f"Cannot recover team: subdomain '{team.subdomain}' is now taken",
                details={'subdomain': team.subdomain},
            )

        def _recover():
            team.restore(context=context)
            team.status = TeamStatus.ACTIVE
            team.save(context=context, update_fields=['status'])
            Membership.objects.filter(team=team, is_deleted=False).update(
                is_active=True, **AuditStamper.update_kwargs(context)
            )

        try:
            run_in_transaction(_recover, label='recover_team')
        except IntegrityError as e:
            raise SubdomainUnavailable(
                f"Cannot recover team: subdomain '{team.subdomain}' is now taken",
                details={'subdomain': team.subdomain},
            ) from e
        logger.info(
            "Team recovered",
            extra={**context.log_extra(), 'team_id': str(team.id), 'subdomain': team.subdomain}
        )
        return team

    @classmethod
    def transfer_ownership(cls, context, team_id, new_owner_id) -> Team:
        """
        Move ownership directly, without the token workflow.

        Any Pending transfer for the team is cancelled.
        """
        team = cls._get_any_team(context, team_id)
        if team.is_deleted:
            raise ValidationError('Cannot transfer ownership of a deleted team')

        new_owner = User.objects.active().filter(id=new_owner_id).first()
        if new_owner is None:
            raise ValidationError(f'User with ID {new_owner_id} not found')
        if new_owner.is_global_admin:
            raise ValidationError('Global admins cannot own teams')
        if new_owner.id == team.owner_id:
            raise ValidationError('The new owner is already the team owner')

        def _transfer():
            OwnershipTransfer.objects.pending_for_team(team.id).update(
                status=TransferStatus.CANCELLED, **AuditStamper.update_kwargs(context)
            )
            locked = Team.objects.select_for_update().get(pk=team.pk)
            return OwnershipTransferService.reassign_owner(context, locked, new_owner)

        team = run_in_transaction(_transfer, label='admin_transfer_ownership')
        SecurityLogger.log_event(
            'ownership_transfer_forced',
            level='warning',
            user_id=str(context.user_id) if context.user_id else None,
            requested_team_id=str(team.id),
            new_owner_id=str(new_owner.id),
        )
        return team


def _user_search(queryset, search):
    """Case-insensitive match on email or name; a full uuid matches the id."""
    query = Q(email__icontains=search) | Q(first_name__icontains=search) | Q(last_name__icontains=search)
    try:
        query |= Q(id=uuid.UUID(search.strip()))
    except ValueError:
        pass
    return queryset.filter(query)


class GlobalAdminUserService:
    """
    Platform-wide user account administration.

    Deleting a user is a soft delete that deactivates their memberships;
    recovery reactivates the memberships in teams that still exist. Team
    owners must hand over their teams before their account can go.
    """

    @staticmethod
    def _users(context):
        AuthorizationEngine(context).require_global_admin()
        return User.objects.prefetch_related(
            Prefetch(
                'memberships',
                queryset=Membership.objects.filter(is_deleted=False, team__is_deleted=False)
                .select_related('team'),
                to_attr='visible_memberships',
            )
        )

    @classmethod
    def get_user(cls, context, user_id) -> User:
        """Any user by id, deleted or not."""
        user = cls._users(context).filter(id=user_id).first()
        if user is None:
            raise NotFoundError(f'User with ID {user_id} not found')
        return user

    @classmethod
    def list_users(cls, context, search=None, is_active=None, is_global_admin=None, is_deleted=False):
        """
        Users, newest first.

        Args:
            search: Match on email, first or last name, or exact id
            is_active: Filter by the active flag
            is_global_admin: Filter global admins in or out
            is_deleted: List soft-deleted users instead of live ones
        """
        queryset = cls._users(context).filter(is_deleted=is_deleted)
        if search:
            queryset = _user_search(queryset, search)
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active)
        if is_global_admin is not None:
            queryset = queryset.filter(is_global_admin=is_global_admin)
        return queryset.order_by('-created_on')

    @classmethod
    def list_deleted_users(cls, context, search=None):
        queryset = cls._users(context).filter(is_deleted=True)
        if search:
            queryset = _user_search(queryset, search)
        return queryset.order_by('-deleted_on')

    @staticmethod
    def _reject_self(context, user, action):
        if user.id == context.user_id:
            raise ValidationError(f'Global admins cannot {action} their own account')

    @classmethod
    def delete_user(cls, context, user_id) -> User:
        """
        Soft delete a user and deactivate their memberships.

        Raises:
            ValidationError: If the user is already deleted, is the caller,
                or still owns a team
        """
        user = cls.get_user(context, user_id)
        if user.is_deleted:
            raise ValidationError('User is already deleted')
        cls._reject_self(context, user, 'delete')

        owned = Team.objects.not_deleted().filter(owner=user).values_list('subdomain', flat=True)
        if owned:
            raise ValidationError(
                'User still owns teams; transfer their ownership first',
                details={'teams': sorted(owned)},
            )

        def _delete():
            audit = AuditStamper.update_kwargs(context)
            Membership.objects.filter(user=user, is_active=True).update(is_active=False, **audit)
            user.is_active = False
            user.save(context=context, update_fields=['is_active'])
            user.delete(context=context)

        run_in_transaction(_delete, label='delete_user')
        SecurityLogger.log_event(
            'user_deleted',
            level='warning',
            user_id=str(context.user_id) if context.user_id else None,
            target_user_id=str(user.id),
        )
        return user

    @classmethod
    def recover_user(cls, context, user_id) -> User:
        """
        Restore a soft-deleted user, unlock it and reactivate its memberships.

        Memberships in deleted teams and removed memberships stay inactive.
        """
        user = cls.get_user(context, user_id)
        if not user.is_deleted:
            raise ValidationError('User is not deleted')

        def _recover():
            user.restore(context=context)
            user.is_active = True
            user.failed_login_attempts = 0
            user.locked_until = None
            user.save(context=context, update_fields=['is_active', 'failed_login_attempts', 'locked_until'])
            Membership.objects.filter(user=user, is_deleted=False, team__is_deleted=False).update(
                is_active=True, **AuditStamper.update_kwargs(context)
            )

        run_in_transaction(_recover, label='recover_user')
        logger.info(
            "User recovered",
            extra={**context.log_extra(), 'target_user_id': str(user.id)}
        )
        return cls.get_user(context, user.id)

    @classmethod
    def permanently_delete_user(cls, context, user_id):
        """
        Physically remove a user with their memberships and the ownership
        transfers they initiated. Irreversible.

        Raises:
            ValidationError: If the user is the caller or owns any team,
                deleted teams included
        """
        user = cls.get_user(context, user_id)
        cls._reject_self(context, user, 'delete')
        if Team.objects.filter(owner=user).exists():
            raise ValidationError(
                'User owns teams; transfer or permanently delete them first'
            )

        def _purge():
            OwnershipTransfer.objects.filter(initiated_by=user).hard_delete()
            Membership.objects.filter(user=user).hard_delete()
            user.hard_delete()

        run_in_transaction(_purge, label='permanently_delete_user')
        SecurityLogger.log_event(
            'user_permanently_deleted',
            level='warning',
            user_id=str(context.user_id) if context.user_id else None,
            target_user_id=str(user_id),
        )

    @classmethod
    def reset_lockout(cls, context, user_id) -> User:
        """Unlock an account locked by failed logins."""
        user = cls.get_user(context, user_id)
        user.reset_lockout(context=context)
        logger.info(
            "User lockout reset",
            extra={**context.log_extra(), 'target_user_id': str(user.id)}
        )
        return user


class GlobalAdminDashboardService:

    @staticmethod
    def get_stats(context) -> dict:
        """Platform-wide counts for the admin dashboard."""
        AuthorizationEngine(context).require_global_admin()
        teams = Team.objects.aggregate(
            active_teams=Count('id', filter=Q(is_deleted=False, status=TeamStatus.ACTIVE)),
            total_teams=Count('id', filter=Q(is_deleted=False)),
            deleted_teams=Count('id', filter=Q(is_deleted=True)),
        )
        users = User.objects.aggregate(
            total_users=Count('id', filter=Q(is_deleted=False)),
            global_admins=Count('id', filter=Q(is_deleted=False, is_global_admin=True)),
            deleted_users=Count('id', filter=Q(is_deleted=True)),
        )
        return {
            **teams,
            **users,
            'pending_ownership_transfers': OwnershipTransfer.objects.filter(
                status=TransferStatus.PENDING, is_deleted=False
            ).count(),
        }
