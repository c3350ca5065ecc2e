import uuid

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("customers", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Record identifier",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "local_reference",
                    models.CharField(
                        help_text="Reference generated at initiation (ADC...)",
                        max_length=40,
                        unique=True,
                    ),
                ),
                (
                    "external_reference",
                    models.CharField(
                        blank=True,
                        help_text="Gateway CheckoutRequestID or direct provider payment id",
                        max_length=100,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "receipt_number",
                    models.CharField(
                        blank=True,
                        help_text="M-Pesa receipt number from the success callback",
                        max_length=40,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "plan",
                    models.CharField(
                        choices=[
                            ("trial", "Free Trial"),
                            ("basic", "Basic Plan"),
                            ("gamer", "Gamer Plan"),
                            ("venue", "Business Plan"),
                        ],
                        help_text="Plan being paid for",
                        max_length=20,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Requested amount in KES",
                        max_digits=10,
                    ),
                ),
                (
                    "method",
                    models.CharField(
                        choices=[("mpesa", "M-Pesa"), ("paypal", "PayPal")],
                        help_text="Payment method",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "payer_phone",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Phone number reported by the gateway",
                        max_length=20,
                    ),
                ),
                (
                    "confirmed_amount",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Amount reported by the gateway",
                        max_digits=10,
                        null=True,
                    ),
                ),
                (
                    "result_code",
                    models.IntegerField(
                        blank=True,
                        help_text="Gateway result code (0 = success)",
                        null=True,
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Why the payment failed or was cancelled",
                    ),
                ),
                (
                    "completed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the payment was completed",
                        null=True,
                    ),
                ),
                (
                    "activated_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the subscription was activated for this payment",
                        null=True,
                    ),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        help_text="Customer making the payment",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payments",
                        to="customers.customer",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["customer", "status"],
                        name="payments_pa_custome_25a299_idx",
                    ),
                    models.Index(
                        fields=["status", "created_at"],
                        name="payments_pa_status_343680_idx",
                    ),
                    models.Index(
                        fields=["status", "activated_at"],
                        name="payments_pa_status_e8017e_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="payment_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Record identifier",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "plan",
                    models.CharField(
                        choices=[
                            ("trial", "Free Trial"),
                            ("basic", "Basic Plan"),
                            ("gamer", "Gamer Plan"),
                            ("venue", "Business Plan"),
                        ],
                        help_text="Subscribed plan",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("inactive", "Inactive"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="active",
                        help_text="Subscription status",
                        max_length=20,
                    ),
                ),
                (
                    "start_date",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="Start of the current period",
                    ),
                ),
                (
                    "end_date",
                    models.DateTimeField(
                        blank=True,
                        help_text="End of the current period",
                        null=True,
                    ),
                ),
                (
                    "auto_renew",
                    models.BooleanField(
                        default=True,
                        help_text="Whether the subscription should be renewed",
                    ),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        help_text="Subscribed customer",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="subscriptions",
                        to="customers.customer",
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-end_date"],
                "indexes": [
                    models.Index(
                        fields=["customer", "end_date"],
                        name="payments_su_custome_1efec4_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="GatewayCallback",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Record identifier",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "checkout_request_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="CheckoutRequestID cited by the callback",
                        max_length=100,
                    ),
                ),
                (
                    "merchant_request_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="MerchantRequestID cited by the callback",
                        max_length=100,
                    ),
                ),
                (
                    "result_code",
                    models.IntegerField(
                        blank=True,
                        help_text="Gateway result code (0 = success)",
                        null=True,
                    ),
                ),
                (
                    "result_description",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Gateway result description",
                    ),
                ),
                (
                    "payload",
                    models.JSONField(help_text="Full callback payload (JSON)"),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("received", "Received"),
                            ("processed", "Processed"),
                            ("duplicate", "Duplicate"),
                            ("unmatched", "Unmatched"),
                            ("rejected", "Rejected"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="received",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When processing last finished",
                        null=True,
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Error message if rejected or failed",
                    ),
                ),
                (
                    "attempts",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Number of processing attempts",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        blank=True,
                        help_text="Payment this callback resolved to",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="callbacks",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Gateway Callback",
                "verbose_name_plural": "Gateway Callbacks",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="payments_ga_status_92cffd_idx",
                    ),
                    models.Index(
                        fields=["checkout_request_id", "status"],
                        name="payments_ga_checkou_62e820_idx",
                    ),
                ],
            },
        ),
    ]
