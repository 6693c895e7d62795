"""
Tests for AuthorizationEngine decisions.
"""
import uuid
import pytest
from apps.core.context import RequestContext
from apps.core.exceptions import AuthenticationError, PermissionDeniedError
from apps.rbac.authorization import AuthorizationEngine
from apps.rbac.roles import MemberType, TeamRole, has_minimum_role, parse_member_type, parse_role


TEAM_A = uuid.uuid4()
TEAM_B = uuid.uuid4()


class Resource:
    """Minimal team-owned object."""

    def __init__(self, team_id):
        self.team_id = team_id


def member_of(team_id, role):
    return RequestContext(user_id=uuid.uuid4(), email='someone@example.com', team_id=team_id, team_role=role)


ANONYMOUS = RequestContext()
GLOBAL_ADMIN = RequestContext(user_id=uuid.uuid4(), is_global_admin=True)
NO_TEAM = RequestContext(user_id=uuid.uuid4())
BAD_ROLE = RequestContext(user_id=uuid.uuid4(), team_id=TEAM_A, team_role=None)

CONTEXTS = [
    ANONYMOUS,
    GLOBAL_ADMIN,
    NO_TEAM,
    BAD_ROLE,
    member_of(TEAM_A, TeamRole.OWNER),
    member_of(TEAM_A, TeamRole.ADMIN),
    member_of(TEAM_A, TeamRole.MEMBER),
    member_of(TEAM_B, TeamRole.OWNER),
]


class TestRoleHierarchy:

    @pytest.mark.parametrize('actual,required,expected', [
        (TeamRole.OWNER, TeamRole.OWNER, True),
        (TeamRole.OWNER, TeamRole.ADMIN, True),
        (TeamRole.OWNER, TeamRole.MEMBER, True),
        (TeamRole.ADMIN, TeamRole.OWNER, False),
        (TeamRole.ADMIN, TeamRole.ADMIN, True),
        (TeamRole.ADMIN, TeamRole.MEMBER, True),
        (TeamRole.MEMBER, TeamRole.OWNER, False),
        (TeamRole.MEMBER, TeamRole.ADMIN, False),
        (TeamRole.MEMBER, TeamRole.MEMBER, True),
    ])
    def test_has_minimum_role(self, actual, required, expected):
        assert has_minimum_role(actual, required) is expected
        assert AuthorizationEngine(member_of(TEAM_A, actual)).has_minimum_role(required) is expected

    def test_missing_role_never_meets_requirement(self):
        assert AuthorizationEngine(BAD_ROLE).has_minimum_role(TeamRole.MEMBER) is False


class TestRoleParsing:

    @pytest.mark.parametrize('value', ['admin', 'Admin', ' ADMIN ', TeamRole.ADMIN])
    def test_role_ignores_case_and_whitespace(self, value):
        assert parse_role(value) == TeamRole.ADMIN

    @pytest.mark.parametrize('value', [None, '', 'coach', 'superuser'])
    def test_unknown_role(self, value):
        assert parse_role(value) is None

    def test_member_type(self):
        assert parse_member_type('Athlete') == MemberType.ATHLETE
        assert parse_member_type('captain') is None


class TestTeamAccess:
    """Test team membership and role checks."""

    def test_anonymous_is_unauthenticated(self):
        with pytest.raises(AuthenticationError):
            AuthorizationEngine(ANONYMOUS).require_team_access(TEAM_A)

    def test_global_admin_bypasses_every_team_check(self):
        engine = AuthorizationEngine(GLOBAL_ADMIN)

        engine.require_team_ownership(TEAM_A)
        engine.require_team_ownership(TEAM_B)
        engine.require_resource_ownership(Resource(TEAM_B))
        assert engine.can_access_team(None)

    def test_caller_without_team_is_denied(self):
        with pytest.raises(PermissionDeniedError, match='not associated with any team'):
            AuthorizationEngine(NO_TEAM).require_team_access(TEAM_A)

    def test_other_team_is_denied(self):
        with pytest.raises(PermissionDeniedError, match='Access denied to team'):
            AuthorizationEngine(member_of(TEAM_B, TeamRole.OWNER)).require_team_access(TEAM_A)

    def test_team_id_compared_as_string(self):
        assert AuthorizationEngine(member_of(TEAM_A, TeamRole.MEMBER)).can_access_team(str(TEAM_A))

    def test_invalid_role_is_denied(self):
        with pytest.raises(PermissionDeniedError, match='role is not specified'):
            AuthorizationEngine(BAD_ROLE).require_team_access(TEAM_A)

    def test_insufficient_role_is_denied(self):
        engine = AuthorizationEngine(member_of(TEAM_A, TeamRole.ADMIN))

        engine.require_team_admin(TEAM_A)
        with pytest.raises(PermissionDeniedError, match='Minimum role Owner required'):
            engine.require_team_ownership(TEAM_A)

    def test_global_admin_check(self):
        AuthorizationEngine(GLOBAL_ADMIN).require_global_admin()

        with pytest.raises(PermissionDeniedError):
            AuthorizationEngine(member_of(TEAM_A, TeamRole.OWNER)).require_global_admin()
        with pytest.raises(AuthenticationError):
            AuthorizationEngine(ANONYMOUS).require_global_admin()


class TestResourceAccess:

    def test_resource_in_own_team(self):
        engine = AuthorizationEngine(member_of(TEAM_A, TeamRole.MEMBER))

        assert engine.can_access_resource(Resource(TEAM_A))
        assert not engine.can_access_resource(Resource(TEAM_B))
        assert not engine.can_own_resource(Resource(TEAM_A))

    def test_object_without_team_id_is_a_type_error(self):
        with pytest.raises(TypeError):
            AuthorizationEngine(GLOBAL_ADMIN).can_access_resource(object())


def _raises(check, *args):
    try:
        check(*args)
    except (AuthenticationError, PermissionDeniedError):
        return True
    return False


class TestRequireCanEquivalence:
    """Every require_* raises exactly when its can_* counterpart is False."""

    @pytest.mark.parametrize('context', CONTEXTS)
    @pytest.mark.parametrize('team_id', [TEAM_A, TEAM_B])
    @pytest.mark.parametrize('role', list(TeamRole))
    def test_team_checks_agree(self, context, team_id, role):
        engine = AuthorizationEngine(context)

        assert _raises(engine.require_team_access, team_id, role) is not engine.can_access_team(team_id, role)
        resource = Resource(team_id)
        assert _raises(engine.require_resource_access, resource, role) is not engine.can_access_resource(resource, role)

    @pytest.mark.parametrize('context', CONTEXTS)
    def test_shortcut_checks_agree(self, context):
        engine = AuthorizationEngine(context)
        pairs = [
            (engine.require_authenticated, engine.can_authenticate, ()),
            (engine.require_global_admin, engine.can_act_as_global_admin, ()),
            (engine.require_team_admin, engine.can_administer_team, (TEAM_A,)),
            (engine.require_team_ownership, engine.can_own_team, (TEAM_A,)),
            (engine.require_resource_ownership, engine.can_own_resource, (Resource(TEAM_A),)),
        ]

        for require, can, args in pairs:
            assert _raises(require, *args) is not can(*args)
