"""
Identity models.

A User is a global identity. Team access lives on teams.Membership; a
global admin is a platform-wide role that never holds a membership.
"""
from django.db import models
from django.db.models import F
from django.contrib.auth.hashers import make_password, check_password
from django.utils import timezone
from apps.core.models import AuditedModel, AuditedManager


class UserManager(AuditedManager):
    """
    Manager for User queries.

    Compatible with Django's authentication system.
    """

    def active(self):
        """Return only active, non-deleted users."""
        return self.filter(is_active=True, is_deleted=False)

    def by_email(self, email):
        """Find an active user by email (case-insensitive)."""
        return self.active().filter(email__iexact=self.normalize_email(email)).first()

    def create_user(self, email, password=None, context=None, **extra_fields):
        """
        Create a new user with hashed password.
        """
        if not email:
            raise ValueError('Email address is required')

        email = self.normalize_email(email)
        extra_fields.setdefault('is_active', True)
        extra_fields.setdefault('is_global_admin', False)

        user = self.model(email=email, **extra_fields)
        if password:
            user.set_password(password)
        user.save(using=self._db, context=context)
        return user

    def create_global_admin(self, email, password=None, **extra_fields):
        """Create a platform-wide administrator."""
        extra_fields['is_global_admin'] = True
        return self.create_user(email, password, **extra_fields)

    def normalize_email(self, email):
        """
        Normalize the email address: trim and lowercase.
        """
        return (email or '').strip().lower()

    def get_by_natural_key(self, email):
        return self.get(**{self.model.USERNAME_FIELD: self.normalize_email(email)})


class User(AuditedModel):
    """
    Global user identity - can belong to multiple teams.

    Authentication happens at the User level, authorization at the
    Membership level (carried in token claims between logins).

    This is the AUTH_USER_MODEL for the entire application.
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        help_text="User email address (unique globally, stored lowercase)"
    )
    password_hash = models.CharField(
        max_length=255,
        blank=True,
        help_text="Hashed password"
    )
    first_name = models.CharField(
        max_length=100,
        blank=True,
        help_text="User first name"
    )
    last_name = models.CharField(
        max_length=100,
        blank=True,
        help_text="User last name"
    )

    # Status
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether user account is active"
    )
    is_global_admin = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Platform administrator; bypasses all team boundaries and holds no membership"
    )
    last_login_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last login timestamp"
    )

    # Lockout
    failed_login_attempts = models.PositiveIntegerField(
        default=0,
        help_text="Consecutive failed logins since the last success or lockout"
    )
    locked_until = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Logins are refused until this time"
    )

    USERNAME_FIELD = 'email'
    EMAIL_FIELD = 'email'
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        db_table = 'users'
        ordering = ['-created_on']
        indexes = [
            models.Index(fields=['is_active', 'is_global_admin'], name='users_active_admin_idx'),
        ]

    def __str__(self):
        return self.email

    def set_password(self, raw_password):
        """Set user password (hashed with Django's configured hasher)."""
        self.password_hash = make_password(raw_password)

    def check_password(self, raw_password):
        if not self.password_hash:
            return False
        return check_password(raw_password, self.password_hash)

    def get_full_name(self):
        """Return full name or email if name not set."""
        if self.first_name or self.last_name:
            return f"{self.first_name} {self.last_name}".strip()
        return self.email

    def update_last_login(self):
        self.last_login_at = timezone.now()
        self.save(update_fields=['last_login_at'])

    def is_locked_out(self, now=None):
        return self.locked_until is not None and self.locked_until > (now or timezone.now())

    def record_failed_login(self, threshold, lock_for):
        """
        Count a failed login and lock the account once ``threshold`` is reached.

        The counter is incremented in the database so concurrent attempts
        are all counted. Returns True when this attempt locked the account.
        """
        User.objects.filter(pk=self.pk).update(failed_login_attempts=F('failed_login_attempts') + 1)
        self.refresh_from_db(fields=['failed_login_attempts'])
        if self.failed_login_attempts < threshold:
            return False
        self.locked_until = timezone.now() + lock_for
        self.failed_login_attempts = 0
        self.save(update_fields=['locked_until', 'failed_login_attempts'])
        return True

    def reset_lockout(self, context=None):
        self.failed_login_attempts = 0
        self.locked_until = None
        self.save(context=context, update_fields=['failed_login_attempts', 'locked_until'])

    @property
    def is_authenticated(self):
        """Always True for User instances (Django auth compatibility)."""
        return True

    @property
    def is_anonymous(self):
        return False

    @property
    def is_staff(self):
        return self.is_global_admin
