"""
Serializers for customer endpoints.
"""

from rest_framework import serializers

from customers.models import Customer


class CustomerSerializer(serializers.ModelSerializer):
    """Read-only customer representation for the dashboard."""

    class Meta:
        model = Customer
        fields = [
            "id",
            "name",
            "email",
            "phone",
            "plan",
            "status",
            "expires_at",
            "created_at",
        ]
        read_only_fields = fields


class CustomerDashboardSerializer(serializers.Serializer):
    """Dashboard response: customer plus effective subscription."""

    success = serializers.BooleanField(default=True)
    customer = CustomerSerializer()
    subscription_status = serializers.CharField(allow_null=True)
    subscription_end = serializers.DateTimeField(allow_null=True)
