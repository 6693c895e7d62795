"""
Management command to create a platform global admin.

Global admins hold no team membership and cannot be created through the
API.
"""
import getpass
from django.core.management.base import BaseCommand, CommandError
from apps.core.context import RequestContext
from apps.rbac.models import User


class Command(BaseCommand):
    help = 'Create a global admin user'

    def add_arguments(self, parser):
        parser.add_argument(
            '--email',
            type=str,
            required=True,
            help='Admin email address',
        )
        parser.add_argument(
            '--password',
            type=str,
            help='Password (prompted when omitted)',
        )
        parser.add_argument(
            '--first-name',
            type=str,
            default='',
            help='First name',
        )
        parser.add_argument(
            '--last-name',
            type=str,
            default='',
            help='Last name',
        )

    def handle(self, *args, **options):
        email = User.objects.normalize_email(options['email'])
        if User.objects.filter(email=email).exists():
            raise CommandError(f'User with email {email} already exists')

        password = options.get('password') or getpass.getpass('Password: ')
        if not password:
            raise CommandError('A password is required')

        user = User.objects.create_global_admin(
            email,
            password,
            first_name=options['first_name'],
            last_name=options['last_name'],
            context=RequestContext.system(),
        )
        self.stdout.write(self.style.SUCCESS(f'Created global admin {user.email} ({user.id})'))
