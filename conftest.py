"""
Pytest configuration and fixtures.
"""
import pytest
from django.conf import settings
import django


PASSWORD = 'Tr4ck-and-Field!'


def pytest_configure(config):
    """Configure Django settings for tests."""
    settings.DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
        'ATOMIC_REQUESTS': False,
    }
    settings.EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']
    django.setup()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Every test starts with empty rate limit counters."""
    from django.core.cache import cache
    from apps.core.rate_limiting import reset_rate_limiter

    reset_rate_limiter()
    cache.clear()
    yield
    reset_rate_limiter()


@pytest.fixture
def api_client():
    """Return DRF API client."""
    from rest_framework.test import APIClient
    return APIClient()


@pytest.fixture
def make_user(db):
    """Factory creating users with a known password."""
    from apps.rbac.models import User

    def _make(email, password=PASSWORD, **extra):
        return User.objects.create_user(email, password, **extra)
    return _make


@pytest.fixture
def context_for():
    """Build a RequestContext for a user and optional membership."""
    from apps.core.context import RequestContext
    return RequestContext.for_user


@pytest.fixture
def system_context():
    from apps.core.context import RequestContext
    return RequestContext.system()


@pytest.fixture
def global_admin(db):
    from apps.rbac.models import User
    return User.objects.create_global_admin('root@teamstride.local', PASSWORD, first_name='Root')


@pytest.fixture
def owner(make_user):
    return make_user('owner@eagles.test', first_name='Olivia', last_name='Owner')


@pytest.fixture
def team(owner, system_context):
    """Free tier team 'Eagles' on subdomain 'eagles' owned by ``owner``."""
    from apps.teams.services import TeamService
    return TeamService.create_team(system_context, owner, 'Eagles', 'eagles')


@pytest.fixture
def owner_membership(team, owner):
    from apps.teams.models import Membership
    return Membership.objects.get(team=team, user=owner)


@pytest.fixture
def owner_context(context_for, owner, owner_membership):
    return context_for(owner, owner_membership)


@pytest.fixture
def admin_user(make_user):
    return make_user('admin@eagles.test', first_name='Adam', last_name='Admin')


@pytest.fixture
def admin_membership(team, admin_user, owner_context):
    from apps.rbac.roles import MemberType, TeamRole
    from apps.teams.services import TeamService
    return TeamService.add_member(
        owner_context, team.id, admin_user.email, role=TeamRole.ADMIN, member_type=MemberType.COACH
    )


@pytest.fixture
def admin_context(context_for, admin_user, admin_membership):
    return context_for(admin_user, admin_membership)


@pytest.fixture
def member_user(make_user):
    return make_user('athlete@eagles.test', first_name='Abby', last_name='Athlete')


@pytest.fixture
def member_membership(team, member_user, owner_context):
    from apps.rbac.roles import MemberType, TeamRole
    from apps.teams.services import TeamService
    return TeamService.add_member(
        owner_context, team.id, member_user.email, role=TeamRole.MEMBER, member_type=MemberType.ATHLETE
    )


@pytest.fixture
def member_context(context_for, member_user, member_membership):
    return context_for(member_user, member_membership)


@pytest.fixture
def other_owner(make_user):
    return make_user('owner@hawks.test', first_name='Hank', last_name='Hawk')


@pytest.fixture
def other_team(other_owner, system_context):
    """Second team 'Hawks' for isolation tests."""
    from apps.teams.services import TeamService
    return TeamService.create_team(system_context, other_owner, 'Hawks', 'hawks')


@pytest.fixture
def other_owner_membership(other_team, other_owner):
    from apps.teams.models import Membership
    return Membership.objects.get(team=other_team, user=other_owner)


@pytest.fixture
def other_owner_context(context_for, other_owner, other_owner_membership):
    return context_for(other_owner, other_owner_membership)


@pytest.fixture
def token_for():
    """Issue a bearer token for a user and optional membership."""
    from apps.rbac.tokens import TokenIssuer

    def _token(user, membership=None):
        return TokenIssuer.issue(user, membership)['token']
    return _token


@pytest.fixture
def auth_client(token_for):
    """Factory returning an APIClient authenticated as ``user``."""
    from rest_framework.test import APIClient

    def _client(user, membership=None):
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {token_for(user, membership)}')
        return client
    return _client
