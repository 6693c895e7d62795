"""
Team models for multi-tenant isolation.

A Team is the tenant boundary. Membership links a global User to a Team
with exactly one role and a business member type. OwnershipTransfer
records move the Owner role between users through an expiring token.
"""
import secrets
from django.db import models
from django.db.models import Q
from django.utils import timezone
from apps.core.models import AuditedModel, AuditedManager
from apps.rbac.roles import TeamRole, MemberType


def normalize_subdomain(value):
    """Trim and lowercase a subdomain."""
    return (value or '').strip().lower()


def generate_transfer_token():
    """Opaque, URL-safe ownership transfer token."""
    return secrets.token_urlsafe(32)


class TeamStatus(models.TextChoices):
    ACTIVE = 'active', 'Active'
    SUSPENDED = 'suspended', 'Suspended'
    EXPIRED = 'expired', 'Expired'
    PENDING_SETUP = 'pending_setup', 'Pending Setup'


class TeamTier(models.TextChoices):
    FREE = 'free', 'Free'
    STANDARD = 'standard', 'Standard'
    PREMIUM = 'premium', 'Premium'


class TransferStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    COMPLETED = 'completed', 'Completed'
    CANCELLED = 'cancelled', 'Cancelled'
    EXPIRED = 'expired', 'Expired'


class TeamManager(AuditedManager):
    """Manager for team lookups."""

    def active(self):
        """Return non-deleted teams with Active status."""
        return self.filter(status=TeamStatus.ACTIVE, is_deleted=False)

    def by_subdomain(self, subdomain):
        """Find a non-deleted team by subdomain (case/whitespace-insensitive)."""
        normalized = normalize_subdomain(subdomain)
        if not normalized:
            return None
        return self.filter(subdomain=normalized, is_deleted=False).first()


class Team(AuditedModel):
    """
    Team model representing an isolated customer organization.

    The team is its own tenant: ``TEAM_FIELD`` points at the primary key so
    tenant filters and authorization treat a Team like any other
    team-owned row.
    """
    TEAM_FIELD = 'id'

    name = models.CharField(
        max_length=255,
        help_text="Team display name"
    )
    subdomain = models.CharField(
        max_length=63,
        db_index=True,
        help_text="Normalized subdomain (unique among non-deleted teams)"
    )
    status = models.CharField(
        max_length=20,
        choices=TeamStatus.choices,
        default=TeamStatus.ACTIVE,
        db_index=True,
        help_text="Current team status"
    )
    tier = models.CharField(
        max_length=20,
        choices=TeamTier.choices,
        default=TeamTier.FREE,
        help_text="Subscription tier controlling member limits and features"
    )
    owner = models.ForeignKey(
        'rbac.User',
        on_delete=models.PROTECT,
        related_name='owned_teams',
        help_text="Current team owner"
    )

    # Branding (Premium only)
    primary_color = models.CharField(
        max_length=7,
        blank=True,
        help_text="Primary brand color (hex)"
    )
    secondary_color = models.CharField(
        max_length=7,
        blank=True,
        help_text="Secondary brand color (hex)"
    )
    logo_url = models.URLField(
        blank=True,
        help_text="Team logo URL"
    )

    expires_on = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Subscription expiry"
    )

    objects = TeamManager()

    class Meta:
        db_table = 'teams'
        ordering = ['name']
        indexes = [
            models.Index(fields=['status', 'is_deleted'], name='teams_status_deleted_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['subdomain'],
                condition=Q(is_deleted=False),
                name='unique_active_team_subdomain',
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.subdomain})"

    @property
    def team_id(self):
        return self.id

    def save(self, *args, **kwargs):
        self.subdomain = normalize_subdomain(self.subdomain)
        super().save(*args, **kwargs)

    def is_active(self):
        return self.status == TeamStatus.ACTIVE and not self.is_deleted


class MembershipManager(AuditedManager):
    """Manager for membership queries."""

    def active(self):
        """Active, non-deleted memberships."""
        return self.filter(is_active=True, is_deleted=False)

    def for_user(self, user):
        """Active memberships of a user in non-deleted teams."""
        return self.active().filter(
            user=user,
            team__is_deleted=False,
        ).select_related('team')

    def owner_of(self, team_id):
        """The active Owner membership of a team, or None."""
        return self.active().filter(team_id=team_id, role=TeamRole.OWNER).first()


class Membership(AuditedModel):
    """
    User membership in a team.

    Role drives authorization; member type is a business classification
    only. A user has at most one default membership, used to pick the
    team context at login.
    """

    user = models.ForeignKey(
        'rbac.User',
        on_delete=models.CASCADE,
        related_name='memberships',
        help_text="Member user"
    )
    team = models.ForeignKey(
        Team,
        on_delete=models.CASCADE,
        related_name='memberships',
        help_text="Team this membership belongs to"
    )
    role = models.CharField(
        max_length=10,
        choices=TeamRole.choices,
        default=TeamRole.MEMBER,
        help_text="Team role (owner, admin or member)"
    )
    member_type = models.CharField(
        max_length=10,
        choices=MemberType.choices,
        default=MemberType.ATHLETE,
        help_text="Business classification of the member"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether membership is active"
    )
    is_default = models.BooleanField(
        default=False,
        help_text="Team selected at login when none is requested"
    )
    joined_on = models.DateTimeField(
        default=timezone.now,
        help_text="When the user joined the team"
    )

    objects = MembershipManager()

    class Meta:
        db_table = 'team_memberships'
        ordering = ['team__name', 'joined_on']
        unique_together = [('team', 'user')]
        indexes = [
            models.Index(fields=['team', 'is_active'], name='memberships_team_active_idx'),
            models.Index(fields=['user', 'is_active'], name='memberships_user_active_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['team'],
                condition=Q(role='owner', is_active=True, is_deleted=False),
                name='unique_active_owner_per_team',
            ),
            models.UniqueConstraint(
                fields=['user'],
                condition=Q(is_default=True, is_deleted=False),
                name='unique_default_membership_per_user',
            ),
        ]

    def __str__(self):
        return f"{self.user.email} @ {self.team.subdomain} ({self.role})"

    @property
    def is_owner(self):
        return self.role == TeamRole.OWNER


class OwnershipTransferManager(AuditedManager):

    def pending_for_team(self, team_id):
        return self.filter(
            team_id=team_id,
            status=TransferStatus.PENDING,
            is_deleted=False,
        )


class OwnershipTransfer(AuditedModel):
    """
    A request to move team ownership to another user.

    Created Pending; ends in exactly one of Completed, Cancelled or
    Expired. Expiry is detected lazily when the token is used, so a row
    can still read Pending after ``expires_on`` has passed.
    """

    team = models.ForeignKey(
        Team,
        on_delete=models.CASCADE,
        related_name='ownership_transfers',
        help_text="Team whose ownership is being transferred"
    )
    initiated_by = models.ForeignKey(
        'rbac.User',
        on_delete=models.CASCADE,
        related_name='initiated_ownership_transfers',
        help_text="User who initiated the transfer"
    )
    new_owner_email = models.EmailField(
        help_text="Email of the prospective owner"
    )
    new_owner_first_name = models.CharField(
        max_length=100,
        blank=True,
        help_text="First name for a new owner without an account"
    )
    new_owner_last_name = models.CharField(
        max_length=100,
        blank=True,
        help_text="Last name for a new owner without an account"
    )
    message = models.TextField(
        blank=True,
        help_text="Optional note to the new owner"
    )
    existing_member = models.ForeignKey(
        Membership,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        help_text="Existing membership of the new owner, if any"
    )
    token = models.CharField(
        max_length=64,
        unique=True,
        default=generate_transfer_token,
        help_text="Opaque token delivered to the new owner"
    )
    expires_on = models.DateTimeField(
        help_text="Token expiry"
    )
    status = models.CharField(
        max_length=10,
        choices=TransferStatus.choices,
        default=TransferStatus.PENDING,
        db_index=True,
        help_text="Transfer state"
    )
    completed_on = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the transfer was completed"
    )
    completed_by = models.UUIDField(
        null=True,
        blank=True,
        help_text="User who completed the transfer"
    )

    objects = OwnershipTransferManager()

    class Meta:
        db_table = 'ownership_transfers'
        ordering = ['-created_on']
        indexes = [
            models.Index(fields=['team', 'status'], name='transfers_team_status_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['team'],
                condition=Q(status='pending', is_deleted=False),
                name='unique_pending_transfer_per_team',
            ),
        ]

    def __str__(self):
        return f"{self.team.subdomain} -> {self.new_owner_email} ({self.status})"

    def is_expired(self, now=None):
        """True once ``expires_on`` has passed, whatever the stored status."""
        return (now or timezone.now()) > self.expires_on

    @property
    def is_pending(self):
        return self.status == TransferStatus.PENDING
