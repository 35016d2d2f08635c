"""
Integrations Admin Configuration

Django admin interface for managing integrations.
"""

from django.contrib import admin
from django.utils.html import format_html

from .models import Integration, IntegrationCredential, IntegrationEvent, IntegrationMetric


class IntegrationCredentialInline(admin.StackedInline):
    """Inline for integration credentials; secrets are never displayed."""
    model = IntegrationCredential
    extra = 0
    fields = ['expires_at', 'updated_at']
    readonly_fields = ['updated_at']


class IntegrationEventInline(admin.TabularInline):
    model = IntegrationEvent
    extra = 0
    fields = ['event_type', 'message', 'created_at']
    readonly_fields = fields
    ordering = ['-created_at']
    max_num = 0


@admin.register(Integration)
class IntegrationAdmin(admin.ModelAdmin):
    """Admin for Integration model."""
    list_display = [
        'display_name', 'organization', 'provider', 'status_badge',
        'poll_interval_minutes', 'consecutive_failures', 'last_polled_at', 'created_at',
    ]
    list_filter = ['provider', 'status']
    search_fields = ['name', 'organization__name', 'organization__slug']
    readonly_fields = [
        'uuid', 'last_polled_at', 'next_poll_at', 'consecutive_failures',
        'last_error', 'connected_at', 'created_at', 'updated_at',
    ]
    raw_id_fields = ['organization', 'connected_by']
    inlines = [IntegrationCredentialInline, IntegrationEventInline]

    fieldsets = (
        (None, {
            'fields': ('uuid', 'organization', 'provider', 'name', 'status'),
        }),
        ('Configuration', {
            'fields': ('config', 'poll_interval_minutes'),
        }),
        ('Polling', {
            'fields': ('last_polled_at', 'next_poll_at', 'consecutive_failures', 'last_error'),
        }),
        ('Connection', {
            'fields': ('connected_by', 'connected_at', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    def status_badge(self, obj):
        colors = {
            'active': 'green',
            'pending': 'orange',
            'error': 'red',
            'expired': 'darkred',
            'disconnected': 'gray',
        }
        return format_html(
            '<span style="color: {}; font-weight: bold;">{}</span>',
            colors.get(obj.status, 'black'),
            obj.get_status_display(),
        )
    status_badge.short_description = 'Status'


@admin.register(IntegrationMetric)
class IntegrationMetricAdmin(admin.ModelAdmin):
    list_display = ['integration', 'metric_name', 'value', 'calculated_at']
    list_filter = ['metric_name', 'integration__provider']
    search_fields = ['metric_name', 'integration__organization__name']
    raw_id_fields = ['integration']
    date_hierarchy = 'calculated_at'


@admin.register(IntegrationEvent)
class IntegrationEventAdmin(admin.ModelAdmin):
    list_display = ['integration', 'event_type', 'message', 'created_at']
    list_filter = ['event_type']
    search_fields = ['message', 'integration__organization__name']
    raw_id_fields = ['integration']
    readonly_fields = ['created_at']
