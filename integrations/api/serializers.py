"""
Integrations API Serializers

Credentials are write-only; responses only say which credentials are present.
"""

from rest_framework import serializers

from ..models import Integration, IntegrationEvent, IntegrationMetric
from ..providers import PROVIDERS


# =============================================================================
# INTEGRATION SERIALIZERS
# =============================================================================

class IntegrationSerializer(serializers.ModelSerializer):
    """Integration with polling state and current Fusion Score."""
    provider_display = serializers.CharField(source='get_provider_display', read_only=True)
    display_name = serializers.CharField(read_only=True)
    connected_by_email = serializers.EmailField(source='connected_by.email', read_only=True, default=None)
    has_credentials = serializers.SerializerMethodField()
    fusion_score = serializers.SerializerMethodField()

    class Meta:
        model = Integration
        fields = [
            'id', 'uuid', 'provider', 'provider_display', 'name', 'display_name',
            'status', 'config', 'poll_interval_minutes', 'last_polled_at',
            'next_poll_at', 'consecutive_failures', 'last_error',
            'connected_by_email', 'connected_at', 'has_credentials',
            'fusion_score', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_has_credentials(self, obj):
        credentials = getattr(obj, 'credentials', None)
        return bool(credentials and (credentials.access_token or credentials.api_key))

    def get_fusion_score(self, obj):
        score = getattr(obj, 'fusion_score', None)
        if score is None:
            return None
        return {'score': round(score.score, 2), 'trend': score.trend, 'calculated_at': score.calculated_at}


class IntegrationConnectSerializer(serializers.Serializer):
    """Connect a provider with caller-supplied credentials."""
    provider = serializers.ChoiceField(choices=[(name, cls.display_name) for name, cls in PROVIDERS.items()])
    name = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    config = serializers.JSONField(required=False, default=dict)
    poll_interval_minutes = serializers.IntegerField(min_value=5, max_value=1440, required=False)
    access_token = serializers.CharField(required=False, allow_blank=True, write_only=True)
    refresh_token = serializers.CharField(required=False, allow_blank=True, write_only=True)
    api_key = serializers.CharField(required=False, allow_blank=True, write_only=True)
    expires_at = serializers.DateTimeField(required=False, allow_null=True, write_only=True)

    def validate_config(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError('Config must be an object.')
        return value

    def validate(self, attrs):
        if not attrs.get('access_token') and not attrs.get('api_key'):
            raise serializers.ValidationError('Provide an access_token or an api_key.')
        return attrs


class IntegrationUpdateSerializer(serializers.ModelSerializer):
    poll_interval_minutes = serializers.IntegerField(min_value=5, max_value=1440, required=False)

    class Meta:
        model = Integration
        fields = ['name', 'config', 'poll_interval_minutes']


# =============================================================================
# METRIC & EVENT SERIALIZERS
# =============================================================================

class IntegrationMetricSerializer(serializers.ModelSerializer):
    class Meta:
        model = IntegrationMetric
        fields = ['id', 'metric_name', 'value', 'calculated_at']
        read_only_fields = fields


class IntegrationEventSerializer(serializers.ModelSerializer):
    event_type_display = serializers.CharField(source='get_event_type_display', read_only=True)

    class Meta:
        model = IntegrationEvent
        fields = ['id', 'event_type', 'event_type_display', 'message', 'details', 'created_at']
        read_only_fields = fields
