# Generated migration for teams, memberships and ownership transfers

import apps.teams.models
import django.db.models.deletion
import django.utils.timezone
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Team',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_on', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('created_by', models.UUIDField(blank=True, help_text='User who created the record', null=True)),
                ('modified_on', models.DateTimeField(blank=True, help_text='Timestamp when the record was last modified', null=True)),
                ('modified_by', models.UUIDField(blank=True, help_text='User who last modified the record', null=True)),
                ('is_deleted', models.BooleanField(db_index=True, default=False, help_text='Whether the record is soft deleted')),
                ('deleted_on', models.DateTimeField(blank=True, help_text='Timestamp when the record was soft deleted', null=True)),
                ('deleted_by', models.UUIDField(blank=True, help_text='User who soft deleted the record', null=True)),
                ('name', models.CharField(help_text='Team display name', max_length=255)),
                ('subdomain', models.CharField(db_index=True, help_text='Normalized subdomain (unique among non-deleted teams)', max_length=63)),
                ('status', models.CharField(choices=[('active', 'Active'), ('suspended', 'Suspended'), ('expired', 'Expired'), ('pending_setup', 'Pending Setup')], db_index=True, default='active', help_text='Current team status', max_length=20)),
                ('tier', models.CharField(choices=[('free', 'Free'), ('standard', 'Standard'), ('premium', 'Premium')], default='free', help_text='Subscription tier controlling member limits and features', max_length=20)),
                ('primary_color', models.CharField(blank=True, help_text='Primary brand color (hex)', max_length=7)),
                ('secondary_color', models.CharField(blank=True, help_text='Secondary brand color (hex)', max_length=7)),
                ('logo_url', models.URLField(blank=True, help_text='Team logo URL')),
                ('expires_on', models.DateTimeField(blank=True, help_text='Subscription expiry', null=True)),
                ('owner', models.ForeignKey(help_text='Current team owner', on_delete=django.db.models.deletion.PROTECT, related_name='owned_teams', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'teams',
                'ordering': ['name'],
                'indexes': [models.Index(fields=['status', 'is_deleted'], name='teams_status_deleted_idx')],
                'constraints': [models.UniqueConstraint(condition=models.Q(('is_deleted', False)), fields=('subdomain',), name='unique_active_team_subdomain')],
            },
        ),
        migrations.CreateModel(
            name='Membership',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_on', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('created_by', models.UUIDField(blank=True, help_text='User who created the record', null=True)),
                ('modified_on', models.DateTimeField(blank=True, help_text='Timestamp when the record was last modified', null=True)),
                ('modified_by', models.UUIDField(blank=True, help_text='User who last modified the record', null=True)),
                ('is_deleted', models.BooleanField(db_index=True, default=False, help_text='Whether the record is soft deleted')),
                ('deleted_on', models.DateTimeField(blank=True, help_text='Timestamp when the record was soft deleted', null=True)),
                ('deleted_by', models.UUIDField(blank=True, help_text='User who soft deleted the record', null=True)),
                ('role', models.CharField(choices=[('owner', 'Owner'), ('admin', 'Admin'), ('member', 'Member')], default='member', help_text='Team role (owner, admin or member)', max_length=10)),
                ('member_type', models.CharField(choices=[('coach', 'Coach'), ('athlete', 'Athlete'), ('parent', 'Parent')], default='athlete', help_text='Business classification of the member', max_length=10)),
                ('is_active', models.BooleanField(db_index=True, default=True, help_text='Whether membership is active')),
                ('is_default', models.BooleanField(default=False, help_text='Team selected at login when none is requested')),
                ('joined_on', models.DateTimeField(default=django.utils.timezone.now, help_text='When the user joined the team')),
                ('team', models.ForeignKey(help_text='Team this membership belongs to', on_delete=django.db.models.deletion.CASCADE, related_name='memberships', to='teams.team')),
                ('user', models.ForeignKey(help_text='Member user', on_delete=django.db.models.deletion.CASCADE, related_name='memberships', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'team_memberships',
                'ordering': ['team__name', 'joined_on'],
                'indexes': [
                    models.Index(fields=['team', 'is_active'], name='memberships_team_active_idx'),
                    models.Index(fields=['user', 'is_active'], name='memberships_user_active_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(condition=models.Q(('is_active', True), ('is_deleted', False), ('role', 'owner')), fields=('team',), name='unique_active_owner_per_team'),
                    models.UniqueConstraint(condition=models.Q(('is_default', True), ('is_deleted', False)), fields=('user',), name='unique_default_membership_per_user'),
                ],
                'unique_together': {('team', 'user')},
            },
        ),
        migrations.CreateModel(
            name='OwnershipTransfer',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_on', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('created_by', models.UUIDField(blank=True, help_text='User who created the record', null=True)),
                ('modified_on', models.DateTimeField(blank=True, help_text='Timestamp when the record was last modified', null=True)),
                ('modified_by', models.UUIDField(blank=True, help_text='User who last modified the record', null=True)),
                ('is_deleted', models.BooleanField(db_index=True, default=False, help_text='Whether the record is soft deleted')),
                ('deleted_on', models.DateTimeField(blank=True, help_text='Timestamp when the record was soft deleted', null=True)),
                ('deleted_by', models.UUIDField(blank=True, help_text='User who soft deleted the record', null=True)),
                ('new_owner_email', models.EmailField(help_text='Email of the prospective owner', max_length=254)),
                ('new_owner_first_name', models.CharField(blank=True, help_text='First name for a new owner without an account', max_length=100)),
                ('new_owner_last_name', models.CharField(blank=True, help_text='Last name for a new owner without an account', max_length=100)),
                ('message', models.TextField(blank=True, help_text='Optional note to the new owner')),
                ('token', models.CharField(default=apps.teams.models.generate_transfer_token, help_text='Opaque token delivered to the new owner', max_length=64, unique=True)),
                ('expires_on', models.DateTimeField(help_text='Token expiry')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('expired', 'Expired')], db_index=True, default='pending', help_text='Transfer state', max_length=10)),
                ('completed_on', models.DateTimeField(blank=True, help_text='When the transfer was completed', null=True)),
                ('completed_by', models.UUIDField(blank=True, help_text='User who completed the transfer', null=True)),
                ('existing_member', models.ForeignKey(blank=True, help_text='Existing membership of the new owner, if any', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='teams.membership')),
                ('initiated_by', models.ForeignKey(help_text='User who initiated the transfer', on_delete=django.db.models.deletion.CASCADE, related_name='initiated_ownership_transfers', to=settings.AUTH_USER_MODEL)),
                ('team', models.ForeignKey(help_text='Team whose ownership is being transferred', on_delete=django.db.models.deletion.CASCADE, related_name='ownership_transfers', to='teams.team')),
            ],
            options={
                'db_table': 'ownership_transfers',
                'ordering': ['-created_on'],
                'indexes': [models.Index(fields=['team', 'status'], name='transfers_team_status_idx')],
                'constraints': [models.UniqueConstraint(condition=models.Q(('is_deleted', False), ('status', 'pending')), fields=('team',), name='unique_pending_transfer_per_team')],
            },
        ),
    ]
