"""
Organizations Admin
"""

from django.contrib import admin

from .models import Organization, OrganizationInvitation, OrganizationMember


class OrganizationMemberInline(admin.TabularInline):
    model = OrganizationMember
    fk_name = 'organization'
    extra = 0
    raw_id_fields = ['user', 'invited_by']
    readonly_fields = ['uuid', 'joined_at']


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'status', 'owner', 'created_at']
    list_filter = ['status']
    search_fields = ['name', 'slug', 'owner__email']
    prepopulated_fields = {'slug': ('name',)}
    readonly_fields = ['uuid', 'created_at', 'updated_at']
    raw_id_fields = ['owner']
    inlines = [OrganizationMemberInline]


@admin.register(OrganizationMember)
class OrganizationMemberAdmin(admin.ModelAdmin):
    list_display = ['user', 'organization', 'role', 'is_active', 'joined_at']
    list_filter = ['role', 'is_active']
    search_fields = ['user__email', 'organization__name']
    raw_id_fields = ['user', 'organization', 'invited_by']


@admin.register(OrganizationInvitation)
class OrganizationInvitationAdmin(admin.ModelAdmin):
    list_display = ['email', 'organization', 'role', 'status', 'expires_at', 'created_at']
    list_filter = ['status', 'role']
    search_fields = ['email', 'organization__name']
    readonly_fields = ['uuid', 'token', 'created_at', 'accepted_at']
    raw_id_fields = ['organization', 'invited_by', 'accepted_by']
