# Generated migration for the global user identity

import django.utils.timezone
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='User',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_on', models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text='Timestamp when the record was created')),
                ('created_by', models.UUIDField(blank=True, help_text='User who created the record', null=True)),
                ('modified_on', models.DateTimeField(blank=True, help_text='Timestamp when the record was last modified', null=True)),
                ('modified_by', models.UUIDField(blank=True, help_text='User who last modified the record', null=True)),
                ('is_deleted', models.BooleanField(db_index=True, default=False, help_text='Whether the record is soft deleted')),
                ('deleted_on', models.DateTimeField(blank=True, help_text='Timestamp when the record was soft deleted', null=True)),
                ('deleted_by', models.UUIDField(blank=True, help_text='User who soft deleted the record', null=True)),
                ('email', models.EmailField(db_index=True, help_text='User email address (unique globally, stored lowercase)', max_length=254, unique=True)),
                ('password_hash', models.CharField(blank=True, help_text='Hashed password', max_length=255)),
                ('first_name', models.CharField(blank=True, help_text='User first name', max_length=100)),
                ('last_name', models.CharField(blank=True, help_text='User last name', max_length=100)),
                ('is_active', models.BooleanField(db_index=True, default=True, help_text='Whether user account is active')),
                ('is_global_admin', models.BooleanField(db_index=True, default=False, help_text='Platform administrator; bypasses all team boundaries and holds no membership')),
                ('last_login_at', models.DateTimeField(blank=True, help_text='Last login timestamp', null=True)),
                ('failed_login_attempts', models.PositiveIntegerField(default=0, help_text='Consecutive failed logins since the last success or lockout')),
                ('locked_until', models.DateTimeField(blank=True, help_text='Logins are refused until this time', null=True)),
            ],
            options={
                'db_table': 'users',
                'ordering': ['-created_on'],
                'indexes': [models.Index(fields=['is_active', 'is_global_admin'], name='users_active_admin_idx')],
            },
        ),
    ]
