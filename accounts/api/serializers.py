"""
Accounts API Serializers
"""

from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class UserListSerializer(serializers.ModelSerializer):
    """Admin console user row"""
    organization_count = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'uuid', 'email', 'full_name', 'role', 'is_platform_admin',
            'is_active', 'organization_count', 'last_seen_at', 'created_at',
        ]
        read_only_fields = fields

    def get_organization_count(self, obj):
        return obj.organization_memberships.filter(is_active=True).count()


class UserAdminUpdateSerializer(serializers.Serializer):
    """Fields a platform admin may change on another user"""
    full_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=User.Role.choices, required=False)
    is_active = serializers.BooleanField(required=False)
    is_platform_admin = serializers.BooleanField(required=False)


class ProfileSerializer(serializers.ModelSerializer):
    """Current user profile"""
    memberships = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id', 'uuid', 'email', 'full_name', 'role', 'is_platform_admin',
            'default_organization', 'memberships', 'created_at',
        ]
        read_only_fields = ['id', 'uuid', 'email', 'role', 'is_platform_admin', 'created_at']

    def get_memberships(self, obj):
        return [
            {
                'organization': str(member.organization.uuid),
                'name': member.organization.name,
                'slug': member.organization.slug,
                'role': member.role,
            }
            for member in obj.organization_memberships.filter(is_active=True).select_related('organization')
        ]

    def validate_default_organization(self, value):
        if value is None:
            return value
        user = self.instance
        if not user.organization_memberships.filter(organization=value, is_active=True).exists():
            raise serializers.ValidationError('You are not a member of this organization.')
        return value
