"""
Billing Admin - Plans and Subscriptions
"""

from django.contrib import admin
from django.utils.html import format_html

from .models import Plan, Subscription


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    list_display = [
        "name",
        "tier",
        "price_monthly_display",
        "price_yearly_display",
        "discount_display",
        "max_users",
        "max_integrations",
        "is_active",
        "sort_order",
    ]
    list_filter = ["tier", "is_active"]
    search_fields = ["name", "description"]
    prepopulated_fields = {"slug": ("name",)}
    ordering = ["sort_order", "price_monthly"]
    readonly_fields = ["created_at", "updated_at", "discount_display"]

    fieldsets = (
        ("Basic Information", {"fields": ("name", "slug", "tier", "description")}),
        (
            "Pricing",
            {"fields": ("price_monthly", "price_yearly", "currency", "discount_display")},
        ),
        ("Limits", {"fields": ("max_users", "max_integrations")}),
        ("Display Settings", {"fields": ("is_active", "sort_order")}),
        (
            "Timestamps",
            {"fields": ("created_at", "updated_at"), "classes": ("collapse",)},
        ),
    )

    def price_monthly_display(self, obj):
        return f"${obj.price_monthly}/{obj.currency}"

    price_monthly_display.short_description = "Monthly Price"

    def price_yearly_display(self, obj):
        return f"${obj.price_yearly}/{obj.currency}"

    price_yearly_display.short_description = "Yearly Price"

    def discount_display(self, obj):
        discount = obj.get_yearly_discount_percentage()
        if discount > 0:
            return format_html(
                '<span style="color: green; font-weight: bold;">{}% off</span>',
                discount,
            )
        return "-"

    discount_display.short_description = "Yearly Discount"


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    list_display = [
        "organization",
        "plan",
        "status_display",
        "billing_cycle",
        "current_period_display",
        "trial_status",
        "cancel_at_period_end",
    ]
    list_filter = ["status", "billing_cycle", "plan__tier", "cancel_at_period_end"]
    search_fields = ["organization__name", "organization__slug"]
    readonly_fields = ["created_at", "updated_at", "monthly_amount", "days_until_renewal"]
    raw_id_fields = ["organization"]
    date_hierarchy = "created_at"

    fieldsets = (
        ("Subscription Details", {"fields": ("organization", "plan", "status", "billing_cycle")}),
        (
            "Billing Periods",
            {
                "fields": (
                    "trial_ends_at",
                    "current_period_start",
                    "current_period_end",
                    "past_due_since",
                    "canceled_at",
                )
            },
        ),
        (
            "Cancellation",
            {
                "fields": ("cancel_at_period_end", "cancellation_reason"),
                "classes": ("collapse",),
            },
        ),
        (
            "Computed Fields",
            {"fields": ("monthly_amount", "days_until_renewal"), "classes": ("collapse",)},
        ),
        (
            "Timestamps",
            {"fields": ("created_at", "updated_at"), "classes": ("collapse",)},
        ),
    )

    def status_display(self, obj):
        colors = {
            "active": "green",
            "trialing": "blue",
            "past_due": "orange",
            "canceled": "red",
        }
        color = colors.get(obj.status, "black")
        return format_html(
            '<span style="color: {}; font-weight: bold;">{}</span>',
            color,
            obj.get_status_display(),
        )

    status_display.short_description = "Status"

    def current_period_display(self, obj):
        if obj.current_period_start and obj.current_period_end:
            return f"{obj.current_period_start.date()} → {obj.current_period_end.date()}"
        return "-"

    current_period_display.short_description = "Current Period"

    def trial_status(self, obj):
        if obj.is_trialing and obj.trial_ends_at:
            return format_html(
                '<span style="color: blue;">Trial until {}</span>',
                obj.trial_ends_at.date(),
            )
        return "-"

    trial_status.short_description = "Trial"
