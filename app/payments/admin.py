"""
Payment admin configuration.

Registers payments, subscriptions and gateway callbacks with the Django
admin. Payment state changes go through the ledger's guarded
transitions, exposed here as admin actions.
"""

from django.contrib import admin

from payments.ledger import PaymentLedger
from payments.models import GatewayCallback, Payment, Subscription
from payments.state_machines import PaymentStatus

__all__ = [
    "GatewayCallbackAdmin",
    "PaymentAdmin",
    "SubscriptionAdmin",
]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Provides visibility into payments and their states.
    State changes should be made through the actions, not by editing.
    """

    list_display = [
        "local_reference",
        "external_reference",
        "customer",
        "plan",
        "amount_display",
        "method",
        "status",
        "activated_at",
        "created_at",
    ]
    list_filter = ["status", "method", "plan", "created_at"]
    search_fields = [
        "local_reference",
        "external_reference",
        "receipt_number",
        "customer__email",
    ]
    readonly_fields = [
        "id",
        "local_reference",
        "external_reference",
        "receipt_number",
        "customer",
        "plan",
        "amount",
        "method",
        "status",
        "payer_phone",
        "confirmed_amount",
        "result_code",
        "failure_reason",
        "completed_at",
        "activated_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
    actions = ["cancel_pending", "redrive_activation"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "customer", "plan", "amount", "method", "status"),
            },
        ),
        (
            "References",
            {
                "fields": ("local_reference", "external_reference", "receipt_number"),
            },
        ),
        (
            "Confirmation",
            {
                "fields": (
                    "payer_phone",
                    "confirmed_amount",
                    "result_code",
                    "failure_reason",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("completed_at", "activated_at", "created_at", "updated_at"),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: Payment) -> str:
        return f"KES {obj.amount}"

    @admin.action(description="Cancel selected pending payments")
    def cancel_pending(self, request, queryset):
        count = 0
        for payment in queryset.filter(status=PaymentStatus.PENDING):
            if PaymentLedger.cancel(payment, reason=f"Cancelled by {request.user}"):
                count += 1
        self.message_user(request, f"Cancelled {count} payments.")

    @admin.action(description="Re-drive activation for selected completed payments")
    def redrive_activation(self, request, queryset):
        from payments.tasks import activate_completed_payment

        payment_ids = queryset.filter(
            status=PaymentStatus.COMPLETED,
            activated_at__isnull=True,
        ).values_list("id", flat=True)
        count = 0
        for payment_id in payment_ids:
            activate_completed_payment.delay(str(payment_id))
            count += 1
        self.message_user(request, f"Queued activation for {count} payments.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin configuration for Subscription."""

    list_display = [
        "customer",
        "plan",
        "status",
        "start_date",
        "end_date",
        "auto_renew",
    ]
    list_filter = ["status", "plan", "auto_renew"]
    search_fields = ["customer__email"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-end_date"]


@admin.register(GatewayCallback)
class GatewayCallbackAdmin(admin.ModelAdmin):
    """
    Admin configuration for GatewayCallback.

    Read-only audit trail of callback deliveries.
    """

    list_display = [
        "checkout_request_id",
        "result_code",
        "status",
        "payment",
        "attempts",
        "created_at",
    ]
    list_filter = ["status", "created_at"]
    search_fields = ["checkout_request_id", "merchant_request_id"]
    readonly_fields = [
        "id",
        "checkout_request_id",
        "merchant_request_id",
        "result_code",
        "result_description",
        "payload",
        "status",
        "payment",
        "processed_at",
        "error_message",
        "attempts",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False
