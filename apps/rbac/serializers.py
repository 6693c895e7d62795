"""
RBAC serializers for the authentication endpoints.
"""
from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password

from apps.rbac.models import User
from apps.rbac.roles import MemberType


class RegistrationSerializer(serializers.Serializer):
    """Serializer for user registration."""

    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )
    first_name = serializers.CharField(required=False, allow_blank=True, max_length=100, default='')
    last_name = serializers.CharField(required=False, allow_blank=True, max_length=100, default='')
    team_name = serializers.CharField(required=True, max_length=255)
    subdomain = serializers.CharField(required=True, max_length=63)
    member_type = serializers.ChoiceField(choices=MemberType.choices, default=MemberType.COACH)

    def validate_email(self, value):
        """Check uniqueness."""
        email = User.objects.normalize_email(value)
        if User.objects.filter(email=email).exists():
            raise serializers.ValidationError(
                "A user with this email already exists."
            )
        return email

    def validate_password(self, value):
        validate_password(value)
        return value

    def validate_team_name(self, value):
        if not value.strip():
            raise serializers.ValidationError(
                "Team name cannot be empty."
            )
        return value.strip()


class LoginSerializer(serializers.Serializer):
    """
    Serializer for user login.

    ``subdomain`` or ``team_id`` selects the team the token is scoped to.
    """

    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )
    subdomain = serializers.CharField(required=False, allow_blank=True, max_length=63)
    team_id = serializers.UUIDField(required=False, allow_null=True)


class SwitchTeamSerializer(serializers.Serializer):
    subdomain = serializers.CharField(required=True, max_length=63)


class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(source='get_full_name', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'full_name', 'is_global_admin']
        read_only_fields = fields
