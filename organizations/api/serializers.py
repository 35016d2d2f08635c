"""
Organizations API Serializers
"""

from rest_framework import serializers

from billing.models import Plan

from ..models import Organization, OrganizationInvitation, OrganizationMember


# ============= Organization Serializers =============

class OrganizationSerializer(serializers.ModelSerializer):
    """Organization with the requesting user's role and plan"""
    owner_email = serializers.EmailField(source='owner.email', read_only=True, default=None)
    member_count = serializers.SerializerMethodField()
    current_user_role = serializers.SerializerMethodField()
    plan = serializers.SerializerMethodField()
    subscription_status = serializers.SerializerMethodField()

    class Meta:
        model = Organization
        fields = [
            'id', 'uuid', 'name', 'slug', 'status', 'owner_email',
            'member_count', 'current_user_role', 'plan', 'subscription_status',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_member_count(self, obj):
        return obj.members.filter(is_active=True).count()

    def get_current_user_role(self, obj):
        request = self.context.get('request')
        if request is None:
            return None
        membership = obj.members.filter(user=request.user, is_active=True).first()
        return membership.role if membership else None

    def _subscription(self, obj):
        return getattr(obj, 'subscription', None)

    def get_plan(self, obj):
        subscription = self._subscription(obj)
        return subscription.plan.slug if subscription else None

    def get_subscription_status(self, obj):
        subscription = self._subscription(obj)
        return subscription.status if subscription else None


class OrganizationCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    slug = serializers.SlugField(max_length=100, required=False)
    plan = serializers.SlugRelatedField(
        slug_field='slug',
        queryset=Plan.objects.filter(is_active=True),
        required=False,
    )


class OrganizationUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = Organization
        fields = ['name', 'status']

    def validate_status(self, value):
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        if value != self.instance.status and not getattr(user, 'is_platform_admin', False):
            raise serializers.ValidationError('Only platform administrators can change organization status.')
        return value


# ============= Member Serializers =============

class MemberSerializer(serializers.ModelSerializer):
    email = serializers.EmailField(source='user.email', read_only=True)
    full_name = serializers.CharField(source='user.full_name', read_only=True)
    user_uuid = serializers.UUIDField(source='user.uuid', read_only=True)

    class Meta:
        model = OrganizationMember
        fields = ['id', 'uuid', 'user_uuid', 'email', 'full_name', 'role', 'is_active', 'joined_at']
        read_only_fields = fields


class MemberRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=OrganizationMember.Role.choices)


# ============= Invitation Serializers =============

class InvitationSerializer(serializers.ModelSerializer):
    invited_by_email = serializers.EmailField(source='invited_by.email', read_only=True, default=None)

    class Meta:
        model = OrganizationInvitation
        fields = [
            'id', 'uuid', 'email', 'role', 'status', 'invited_by_email',
            'expires_at', 'accepted_at', 'created_at',
        ]
        read_only_fields = fields


class InvitationCreatedSerializer(InvitationSerializer):
    """Returned once on creation; the token is delivered to the invitee out of band."""

    class Meta(InvitationSerializer.Meta):
        fields = InvitationSerializer.Meta.fields + ['token']
        read_only_fields = fields


class InvitationCreateSerializer(serializers.Serializer):
    email = serializers.EmailField()
    role = serializers.ChoiceField(
        choices=OrganizationInvitation.Role.choices,
        default=OrganizationInvitation.Role.MEMBER,
    )


class AcceptInvitationSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=64)
