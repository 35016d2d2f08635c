"""
Accounts Admin - Django admin for platform users.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['email', 'full_name', 'role', 'is_platform_admin', 'is_active', 'created_at']
    list_filter = ['role', 'is_platform_admin', 'is_active', 'is_staff']
    search_fields = ['email', 'full_name', 'username']
    ordering = ['-created_at']
    readonly_fields = ['uuid', 'created_at', 'updated_at', 'last_login', 'last_seen_at']
    raw_id_fields = ['default_organization']

    fieldsets = (
        (None, {'fields': ('email', 'username', 'password')}),
        ('Profile', {'fields': ('full_name', 'default_organization')}),
        ('Roles', {'fields': ('role', 'is_platform_admin', 'is_active', 'is_staff', 'is_superuser')}),
        ('Timestamps', {'fields': ('uuid', 'last_login', 'last_seen_at', 'created_at', 'updated_at')}),
    )
    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'username', 'password1', 'password2', 'role'),
        }),
    )
