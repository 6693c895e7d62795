"""
Ownership transfer workflow.

A transfer is created Pending and ends in exactly one terminal state:

    Pending -> Completed | Cancelled | Expired

Expiry is detected lazily when a transfer is used; there is no sweeper.
Completion claims the row with a status-guarded conditional update, so
two concurrent completions of the same token produce one success.
"""
import logging
from datetime import timedelta
from typing import Optional
from django.conf import settings
from django.core.mail import send_mail
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.core.exceptions import (
    InvalidOwnershipTransferState, OwnershipTransferExpired, OwnershipTransferNotFound,
    OwnershipTransferPending, PermissionDeniedError, ValidationError,
)
from apps.core.logging import SecurityLogger
from apps.core.models import AuditStamper
from apps.core.query_filters import TeamQueryFilter, exclude_deleted
from apps.core.retry import run_in_transaction
from apps.rbac.authorization import AuthorizationEngine
from apps.rbac.models import User
from apps.rbac.roles import MemberType, TeamRole
from apps.teams.models import Membership, OwnershipTransfer, Team, TransferStatus
from apps.teams.services.team_service import TeamService

logger = logging.getLogger(__name__)


class OwnershipTransferService:
    """
    Moves the Owner role of a team from one user to another.
    """

    @staticmethod
    def _ttl() -> timedelta:
        return timedelta(days=getattr(settings, 'OWNERSHIP_TRANSFER_TTL_DAYS', 7))

    @staticmethod
    def expire_stale(team_id, context=None, now=None) -> int:
        """Mark Pending transfers of a team whose expiry has passed as Expired."""
        now = now or timezone.now()
        return OwnershipTransfer.objects.pending_for_team(team_id).filter(
            expires_on__lt=now
        ).update(status=TransferStatus.EXPIRED, **AuditStamper.update_kwargs(context, now))

    # Initiate

    @classmethod
    def initiate(cls, context, team_id, new_owner_email: str, first_name: str = '',
                 last_name: str = '', message: str = '') -> OwnershipTransfer:
        """
        Start an ownership transfer (current Owner or global admin).

        A team can have one Pending transfer at a time; a second request is
        rejected until the first is completed, cancelled or expired.

        Args:
            context: Caller context
            team_id: Team being transferred
            new_owner_email: Email of the prospective owner
            first_name: Optional first name of the prospective owner
            last_name: Optional last name of the prospective owner
            message: Optional note included in the email

        Returns:
            The Pending OwnershipTransfer

        Raises:
            ValidationError: If the target is the current owner or a global admin
            OwnershipTransferPending: If a transfer is already pending
        """
        AuthorizationEngine(context).require_team_ownership(team_id)
        team = TeamService._load_team(context, team_id)

        email = User.objects.normalize_email(new_owner_email)
        if not email:
            raise ValidationError('New owner email is required')
        if email == team.owner.email:
            raise ValidationError('The new owner is already the team owner')

        target = User.objects.filter(email=email).first()
        if target is not None and target.is_global_admin:
            raise ValidationError('Global admins cannot own teams')

        existing_member = None
        if target is not None:
            existing_member = Membership.objects.active().filter(team=team, user=target).first()

        def _create():
            now = timezone.now()
            cls.expire_stale(team.id, context, now)
            if OwnershipTransfer.objects.pending_for_team(team.id).exists():
                raise OwnershipTransferPending(
                    'An ownership transfer is already pending for this team; cancel it first'
                )

            transfer = OwnershipTransfer(
                team=team,
                initiated_by_id=context.user_id,
                new_owner_email=email,
                new_owner_first_name=first_name or '',
                new_owner_last_name=last_name or '',
                message=message or '',
                existing_member=existing_member,
                expires_on=now + cls._ttl(),
            )
            transfer.save(context=context)
            transaction.on_commit(lambda: cls._send_transfer_email(transfer))
            return transfer

        try:
            transfer = run_in_transaction(_create, label='initiate_ownership_transfer')
        except IntegrityError as e:
            raise OwnershipTransferPending(
                'An ownership transfer is already pending for this team; cancel it first'
            ) from e

        SecurityLogger.log_ownership_transfer('initiated', transfer, context)
        return transfer

    @staticmethod
    def _send_transfer_email(transfer: OwnershipTransfer):
        """Deliver the transfer token to the prospective owner."""
        frontend_url = getattr(settings, 'FRONTEND_URL', '').rstrip('/')
        link = f"{frontend_url}/ownership-transfers/complete?token={transfer.token}"
        body = (
            f"You have been invited to become the owner of {transfer.team.name}.\n\n"
            f"{transfer.message}\n\n"
            f"Accept the transfer here: {link}\n"
            f"This link expires on {transfer.expires_on:%Y-%m-%d %H:%M} UTC."
        )
        try:
            send_mail(
                subject=f"Ownership transfer for {transfer.team.name}",
                message=body,
                from_email=getattr(settings, 'DEFAULT_FROM_EMAIL', None),
                recipient_list=[transfer.new_owner_email],
                fail_silently=False,
            )
        except Exception as e:
            logger.error(
                f"Failed to send ownership transfer email: {e}",
                extra={'transfer_id': str(transfer.id), 'team_id': str(transfer.team_id)},
                exc_info=True
            )

    # Complete

    @classmethod
    def complete(cls, context, token: str) -> Team:
        """
        Complete a transfer with its token.

        Only the intended new owner (or a global admin) can complete it.

        Returns:
            The team with its new owner

        Raises:
            OwnershipTransferNotFound: Unknown token
            InvalidOwnershipTransferState: Transfer is not Pending
            OwnershipTransferExpired: Token expiry has passed
        """
        AuthorizationEngine(context).require_authenticated()
        transfer, new_owner = cls._load_for_completion(token, context)
        return cls._finalize(context, transfer, new_owner)

    @classmethod
    def _load_for_completion(cls, token, context):
        """Look up a transfer by token and check it can still be completed."""
        if not token:
            raise ValidationError('Transfer token is required')

        transfer = OwnershipTransfer.objects.select_related('team').filter(
            token=token, is_deleted=False
        ).first()
        if transfer is None:
            raise OwnershipTransferNotFound('Invalid transfer token')

        if transfer.status != TransferStatus.PENDING:
            raise InvalidOwnershipTransferState(
                f"Transfer is {transfer.status} and cannot be completed"
            )

        if transfer.is_expired():
            cls._mark_expired(context, transfer)
            raise OwnershipTransferExpired('Transfer token has expired')

        new_owner = User.objects.by_email(transfer.new_owner_email)
        if new_owner is None:
            raise ValidationError('New owner user account not found. Please register first.')

        if not context.is_global_admin and context.user_id != new_owner.id:
            SecurityLogger.log_permission_denied(
                context, 'ownership transfer completed by another user', transfer.team_id
            )
            raise PermissionDeniedError('Only the intended new owner can complete this transfer')

        return transfer, new_owner

    @classmethod
    def _finalize(cls, context, transfer: OwnershipTransfer, new_owner: User) -> Team:
        """
        Claim the transfer and move ownership in one transaction.

        The claim is ``UPDATE ... WHERE status = pending AND expires_on >= now``;
        a caller that updates zero rows lost the race and nothing is applied.
        A transfer that expired after it was loaded is reported and stored as
        Expired.
        """
        def _apply():
            now = timezone.now()
            claimed = OwnershipTransfer.objects.filter(
                pk=transfer.pk,
                status=TransferStatus.PENDING,
                expires_on__gte=now,
            ).update(
                status=TransferStatus.COMPLETED,
                completed_on=now,
                completed_by=context.user_id,
                **AuditStamper.update_kwargs(context, now),
            )
            if claimed != 1:
                current = OwnershipTransfer.objects.filter(pk=transfer.pk).first()
                if current is not None and current.is_pending and current.is_expired(now):
                    raise OwnershipTransferExpired('Transfer token has expired')
                raise InvalidOwnershipTransferState('Transfer is no longer pending')

            team = Team.objects.select_for_update().get(pk=transfer.team_id)
            return cls.reassign_owner(context, team, new_owner)

        try:
            team = run_in_transaction(_apply, label='complete_ownership_transfer')
        except OwnershipTransferExpired:
            cls._mark_expired(context, transfer)
            raise
        transfer.refresh_from_db()
        SecurityLogger.log_ownership_transfer(
            'completed', transfer, context, new_owner_id=str(new_owner.id)
        )
        return team

    @staticmethod
    def _mark_expired(context, transfer: OwnershipTransfer):
        OwnershipTransfer.objects.filter(
            pk=transfer.pk, status=TransferStatus.PENDING
        ).update(status=TransferStatus.EXPIRED, **AuditStamper.update_kwargs(context))
        SecurityLogger.log_ownership_transfer('expired', transfer, context)

    @staticmethod
    def reassign_owner(context, team: Team, new_owner: User) -> Team:
        """
        Make ``new_owner`` the Owner of ``team``; the previous Owner becomes Admin.

        Must run inside a transaction. The demotion is written before the
        promotion so the one-owner-per-team constraint holds at every step.
        """
        now = timezone.now()
        audit = AuditStamper.update_kwargs(context, now)

        Membership.objects.filter(team=team, role=TeamRole.OWNER).exclude(
            user=new_owner
        ).update(role=TeamRole.ADMIN, **audit)

        membership = Membership.objects.filter(team=team, user=new_owner).first()
        if membership is None:
            has_default = Membership.objects.filter(
                user=new_owner, is_default=True, is_deleted=False
            ).exists()
            membership = Membership(
                team=team,
                user=new_owner,
                member_type=MemberType.COACH,
                is_default=not has_default,
            )
        membership.role = TeamRole.OWNER
        membership.is_active = True
        membership.is_deleted = False
        membership.deleted_on = None
        membership.deleted_by = None
        membership.save(context=context)

        team.owner = new_owner
        team.save(context=context, update_fields=['owner'])
        return team

    # Cancel

    @classmethod
    def cancel(cls, context, transfer_id) -> OwnershipTransfer:
        """
        Cancel a Pending transfer (initiator, current Owner or global admin).

        Transfers of other teams are reported as not found unless the caller
        initiated them.

        Raises:
            OwnershipTransferNotFound: Unknown transfer, or one outside the caller's team
            PermissionDeniedError: Caller may not cancel it
            InvalidOwnershipTransferState: Transfer already terminal
        """
        engine = AuthorizationEngine(context)
        engine.require_authenticated()

        visible = (
            TeamQueryFilter.for_model(OwnershipTransfer, context).queryset
            | exclude_deleted(OwnershipTransfer.objects.filter(initiated_by_id=context.user_id))
        )
        transfer = visible.select_related('team').filter(pk=transfer_id).first()
        if transfer is None:
            raise OwnershipTransferNotFound('Ownership transfer not found')

        is_initiator = transfer.initiated_by_id == context.user_id
        if not (is_initiator or engine.can_own_team(transfer.team_id)):
            SecurityLogger.log_permission_denied(
                context, 'ownership transfer cancel', transfer.team_id
            )
            raise PermissionDeniedError(
                'Only the initiator, the team owner or a global admin can cancel this transfer'
            )

        if transfer.status != TransferStatus.PENDING:
            raise InvalidOwnershipTransferState(
                f"Transfer is {transfer.status} and cannot be cancelled"
            )

        updated = OwnershipTransfer.objects.filter(
            pk=transfer.pk, status=TransferStatus.PENDING
        ).update(status=TransferStatus.CANCELLED, **AuditStamper.update_kwargs(context))
        if updated != 1:
            raise InvalidOwnershipTransferState('Transfer is no longer pending')

        transfer.refresh_from_db()
        SecurityLogger.log_ownership_transfer('cancelled', transfer, context)
        return transfer

    @classmethod
    def get_pending(cls, context, team_id) -> Optional[OwnershipTransfer]:
        """The team's Pending, unexpired transfer, or None (Admin or above)."""
        AuthorizationEngine(context).require_team_admin(team_id)
        cls.expire_stale(team_id, context)
        return OwnershipTransfer.objects.pending_for_team(team_id).select_related(
            'team', 'initiated_by'
        ).first()
