"""
Team serializers for REST API endpoints.
"""
from rest_framework import serializers

from apps.rbac.models import User
from apps.rbac.roles import MemberType, TeamRole
from apps.teams.models import Membership, OwnershipTransfer, Team, TeamStatus, TeamTier


class TeamSerializer(serializers.ModelSerializer):
    owner_id = serializers.UUIDField(read_only=True)
    owner_email = serializers.EmailField(source='owner.email', read_only=True)

    class Meta:
        model = Team
        fields = [
            'id', 'name', 'subdomain', 'status', 'tier',
            'owner_id', 'owner_email',
            'primary_color', 'secondary_color', 'logo_url',
            'expires_on', 'created_on', 'modified_on',
        ]
        read_only_fields = fields


class AdminTeamSerializer(TeamSerializer):
    """Team as seen by global admins, including soft-delete state."""

    class Meta(TeamSerializer.Meta):
        fields = TeamSerializer.Meta.fields + ['is_deleted', 'deleted_on', 'deleted_by']
        read_only_fields = fields


class TeamCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    subdomain = serializers.CharField(max_length=63)
    tier = serializers.ChoiceField(choices=TeamTier.choices, default=TeamTier.FREE)
    member_type = serializers.ChoiceField(choices=MemberType.choices, default=MemberType.COACH)


class TeamUpdateSerializer(serializers.Serializer):
    """All fields optional; only supplied fields are changed."""
    name = serializers.CharField(max_length=255, required=False)
    status = serializers.ChoiceField(choices=TeamStatus.choices, required=False)
    tier = serializers.ChoiceField(choices=TeamTier.choices, required=False)
    primary_color = serializers.RegexField(r'^#[0-9a-fA-F]{6}$', required=False, allow_blank=True)
    secondary_color = serializers.RegexField(r'^#[0-9a-fA-F]{6}$', required=False, allow_blank=True)
    logo_url = serializers.URLField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("At least one field must be provided.")
        return attrs


class SubdomainSerializer(serializers.Serializer):
    subdomain = serializers.CharField(max_length=63)


class MembershipSerializer(serializers.ModelSerializer):
    user_id = serializers.UUIDField(read_only=True)
    email = serializers.EmailField(source='user.email', read_only=True)
    first_name = serializers.CharField(source='user.first_name', read_only=True)
    last_name = serializers.CharField(source='user.last_name', read_only=True)
    team_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Membership
        fields = [
            'id', 'user_id', 'email', 'first_name', 'last_name',
            'team_id', 'role', 'member_type', 'is_default', 'joined_on',
        ]
        read_only_fields = fields


class TeamMembershipSummarySerializer(serializers.ModelSerializer):
    """A membership from the user's side: which team, which role."""
    team_id = serializers.UUIDField(read_only=True)
    team_name = serializers.CharField(source='team.name', read_only=True)
    subdomain = serializers.CharField(source='team.subdomain', read_only=True)

    class Meta:
        model = Membership
        fields = ['team_id', 'team_name', 'subdomain', 'role', 'member_type', 'is_default']
        read_only_fields = fields


class MemberCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    role = serializers.ChoiceField(
        choices=[(TeamRole.ADMIN, 'Admin'), (TeamRole.MEMBER, 'Member')],
        default=TeamRole.MEMBER,
    )
    member_type = serializers.ChoiceField(choices=MemberType.choices, default=MemberType.ATHLETE)
    first_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    last_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')


class MemberUpdateSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=TeamRole.choices, required=False)
    member_type = serializers.ChoiceField(choices=MemberType.choices, required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide role and/or member_type.")
        return attrs


class OwnershipTransferSerializer(serializers.ModelSerializer):
    team_id = serializers.UUIDField(read_only=True)
    initiated_by_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = OwnershipTransfer
        fields = [
            'id', 'team_id', 'initiated_by_id', 'new_owner_email',
            'new_owner_first_name', 'new_owner_last_name', 'message',
            'status', 'expires_on', 'completed_on', 'created_on',
        ]
        read_only_fields = fields


class InitiateTransferSerializer(serializers.Serializer):
    new_owner_email = serializers.EmailField()
    new_owner_first_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    new_owner_last_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    message = serializers.CharField(required=False, allow_blank=True, default='')


class CompleteTransferSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=64)


class AdminTeamCreateSerializer(serializers.Serializer):
    owner_email = serializers.EmailField()
    owner_first_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    owner_last_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    name = serializers.CharField(max_length=255)
    subdomain = serializers.CharField(max_length=63)
    tier = serializers.ChoiceField(choices=TeamTier.choices, default=TeamTier.FREE)


class AdminTransferOwnershipSerializer(serializers.Serializer):
    new_owner_id = serializers.UUIDField()


class AdminTeamUpdateSerializer(TeamUpdateSerializer):
    subdomain = serializers.CharField(max_length=63, required=False)
    expires_on = serializers.DateTimeField(required=False, allow_null=True)


class AdminUserSerializer(serializers.ModelSerializer):
    """User as seen by global admins: status, lockout and team memberships."""
    full_name = serializers.CharField(source='get_full_name', read_only=True)
    is_locked_out = serializers.SerializerMethodField()
    memberships = TeamMembershipSummarySerializer(source='visible_memberships', many=True, read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name',
            'is_active', 'is_global_admin', 'last_login_at',
            'failed_login_attempts', 'locked_until', 'is_locked_out',
            'is_deleted', 'deleted_on', 'deleted_by', 'created_on',
            'memberships',
        ]
        read_only_fields = fields

    def get_is_locked_out(self, obj) -> bool:
        return obj.is_locked_out()
