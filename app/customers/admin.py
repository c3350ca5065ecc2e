"""
Customer admin configuration.
"""

from django.contrib import admin

from customers.models import Customer


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    """
    Admin configuration for Customer.

    Status and expiry are owned by the payment flow and the expiry
    sweeper, so they are read-only here.
    """

    list_display = [
        "email",
        "name",
        "phone",
        "plan",
        "status",
        "expires_at",
        "created_at",
    ]
    list_filter = ["status", "plan"]
    search_fields = ["email", "name", "phone"]
    readonly_fields = [
        "id",
        "status",
        "expires_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
