"""
DRF serializers for payments app.

This module provides serializers for:
- Payment initiation and direct payment requests
- Payment status responses
- Trial start and confirmation resend requests

Related files:
    - models/: Payment, Subscription
    - views.py: Payment API views

Usage:
    serializer = InitiatePaymentSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from customers.models import Plan
from payments.state_machines import PaymentMethod, PaymentStatus
from toolkit.validators import normalize_msisdn


def _msisdn(value: str) -> str:
    try:
        return normalize_msisdn(value)
    except DjangoValidationError as e:
        raise serializers.ValidationError(e.messages) from e


PAID_PLAN_CHOICES = [(plan.value, plan.label) for plan in Plan if plan in Plan.paid()]


# =============================================================================
# Requests
# =============================================================================


class InitiatePaymentSerializer(serializers.Serializer):
    """
    STK push initiation request.

    Fields:
        name: Customer name
        email: Customer email
        phone: Kenyan mobile number in any common format
        plan: Paid plan
        amount: Whole shillings
    """

    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=20)
    plan = serializers.ChoiceField(choices=PAID_PLAN_CHOICES)
    amount = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal("1"),
    )

    def validate_phone(self, value: str) -> str:
        return _msisdn(value)

    def validate_amount(self, value: Decimal) -> Decimal:
        if value != value.to_integral_value():
            raise serializers.ValidationError(
                "M-Pesa amounts must be whole shillings."
            )
        return value


class DirectPaymentSerializer(serializers.Serializer):
    """
    Directly confirmed payment (e.g. PayPal capture done by the client).

    Fields:
        payment_id: Provider payment id; recording the same id twice is rejected
        method: Direct payment method
    """

    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")
    plan = serializers.ChoiceField(choices=PAID_PLAN_CHOICES)
    payment_id = serializers.CharField(max_length=100)
    amount = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal("0.01"),
    )
    method = serializers.ChoiceField(
        choices=PaymentMethod.direct_methods(),
        default=PaymentMethod.PAYPAL,
    )

    def validate_phone(self, value: str) -> str:
        return _msisdn(value) if value else ""


class TrialStartSerializer(serializers.Serializer):
    """Free trial request. plan records the plan the customer is interested in."""

    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    plan = serializers.ChoiceField(choices=Plan.choices, default=Plan.TRIAL)


class ResendConfirmationSerializer(serializers.Serializer):
    email = serializers.EmailField()


# =============================================================================
# Responses
# =============================================================================


class InitiatePaymentResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    reference = serializers.CharField()
    message = serializers.CharField()
    status = serializers.CharField(required=False)


class DirectPaymentCustomerSerializer(serializers.Serializer):
    email = serializers.EmailField()
    plan = serializers.CharField()


class DirectPaymentResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    reference = serializers.CharField()
    customer = DirectPaymentCustomerSerializer()


class PaymentStatusSerializer(serializers.Serializer):
    """Read-only projection of a payment's state."""

    success = serializers.BooleanField(default=True)
    reference = serializers.CharField()
    status = serializers.ChoiceField(choices=PaymentStatus.choices)


class TrialStartResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    message = serializers.CharField()
    expires = serializers.DateTimeField()


class MessageResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    message = serializers.CharField()
