"""
Customer views.

Endpoints:
    GET /api/v1/customers/{email}/ - Customer dashboard
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import NotFoundError
from customers.serializers import CustomerDashboardSerializer
from customers.services import CustomerService


class CustomerDashboardView(APIView):
    """
    API view for the customer dashboard.

    GET: Customer details with the status and end date of their most
    recent subscription.

    URL: /api/v1/customers/{email}/
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(
        operation_id="get_customer_dashboard",
        summary="Get customer dashboard",
        description=(
            "Return the customer with the status and end date of the "
            "subscription that ends last."
        ),
        responses={
            200: CustomerDashboardSerializer,
            404: OpenApiResponse(description="Customer not found"),
        },
        tags=["Customers"],
    )
    def get(self, request, email: str):
        try:
            dashboard = CustomerService.get_dashboard(email)
        except NotFoundError as e:
            return Response(
                {"success": False, **e.to_dict()},
                status=status.HTTP_404_NOT_FOUND,
            )

        serializer = CustomerDashboardSerializer(
            {
                "success": True,
                "customer": dashboard.customer,
                "subscription_status": dashboard.subscription_status,
                "subscription_end": dashboard.subscription_end,
            }
        )
        return Response(serializer.data)
