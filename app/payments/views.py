"""
DRF views for payments app.

This module provides API views for:
- STK push payment initiation
- Direct payment confirmation
- Payment status lookup
- Free trial start
- Confirmation email resend

Related files:
    - services/: PaymentInitiationService, ReconciliationEngine, SubscriptionActivator
    - serializers.py: Request/response serializers
    - webhooks/views.py: M-Pesa callback endpoint
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/initiate/ - Start an STK push
    POST /api/v1/payments/direct/ - Record a directly confirmed payment
    GET /api/v1/payments/status/{reference}/ - Payment status
    POST /api/v1/payments/trial/ - Start a free trial
    POST /api/v1/payments/confirmation/resend/ - Resend confirmation email

Security:
    - Endpoints are public (customers have no accounts)
    - Server error details are only returned when DEBUG is on
"""

from __future__ import annotations

import logging

from django.conf import settings
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    StorageError,
    ValidationError,
)
from payments import notifications
from payments.exceptions import (
    GatewayRejectedError,
    GatewayUnavailableError,
    PaymentNotFoundError,
)
from payments.ledger import PaymentLedger
from payments.serializers import (
    DirectPaymentResponseSerializer,
    DirectPaymentSerializer,
    InitiatePaymentResponseSerializer,
    InitiatePaymentSerializer,
    MessageResponseSerializer,
    PaymentStatusSerializer,
    ResendConfirmationSerializer,
    TrialStartResponseSerializer,
    TrialStartSerializer,
)
from payments.services import (
    PaymentInitiationService,
    ReconciliationEngine,
    SubscriptionActivator,
)

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR = "Payment service is temporarily unavailable. Please try again."


def error_response(exc: BaseApplicationError, status_code: int) -> Response:
    """
    Build an error response from a domain exception.

    5xx responses carry a generic message; the underlying details are
    only exposed when DEBUG is on.
    """
    if status_code >= 500:
        body = {
            "success": False,
            "error": GENERIC_SERVER_ERROR,
            "error_code": exc.error_code,
        }
        if settings.DEBUG:
            body["details"] = exc.to_dict()
        return Response(body, status=status_code)

    return Response({"success": False, **exc.to_dict()}, status=status_code)


class PublicAPIView(APIView):
    """Base for the public payment endpoints."""

    authentication_classes = []
    permission_classes = [AllowAny]


class InitiatePaymentView(PublicAPIView):
    """
    Start an M-Pesa STK push payment.

    POST /api/v1/payments/initiate/

    Request body:
        {
            "name": "Jane Wanjiku",
            "email": "jane@example.com",
            "phone": "0712345678",
            "plan": "basic",
            "amount": 500
        }

    Returns:
        {"success": true, "reference": "ws_CO_...", "message": "M-Pesa prompt sent to your phone"}
    """

    @extend_schema(
        operation_id="initiate_payment",
        summary="Initiate STK push payment",
        description=(
            "Create a pending payment and send an M-Pesa prompt to the phone. "
            "Success only means the prompt was sent; the result arrives by callback. "
            "202 means the gateway did not answer in time and the outcome is undetermined."
        ),
        request=InitiatePaymentSerializer,
        responses={
            200: InitiatePaymentResponseSerializer,
            202: InitiatePaymentResponseSerializer,
            400: OpenApiResponse(description="Validation error or push declined"),
            500: OpenApiResponse(description="Gateway or storage failure"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = InitiatePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = PaymentInitiationService.initiate_push(**serializer.validated_data)
        except ValidationError as e:
            return error_response(e, status.HTTP_400_BAD_REQUEST)
        except GatewayRejectedError as e:
            return error_response(e, status.HTTP_400_BAD_REQUEST)
        except (GatewayUnavailableError, StorageError, ConflictError) as e:
            logger.error(f"Payment initiation failed: {e}")
            return error_response(e, status.HTTP_500_INTERNAL_SERVER_ERROR)

        if result.undetermined:
            return Response(
                {
                    "success": False,
                    "status": "undetermined",
                    "reference": result.reference,
                    "message": result.message,
                },
                status=status.HTTP_202_ACCEPTED,
            )

        return Response(
            {
                "success": True,
                "reference": result.reference,
                "message": result.message,
            }
        )


class DirectPaymentView(PublicAPIView):
    """
    Record a payment confirmed directly by the client.

    POST /api/v1/payments/direct/

    Request body:
        {
            "name": "Jane Wanjiku",
            "email": "jane@example.com",
            "phone": "0712345678",
            "plan": "gamer",
            "payment_id": "8AB12345CD678901E",
            "amount": "9.99",
            "method": "paypal"
        }

    Returns:
        {"success": true, "reference": "8AB12345CD678901E",
         "customer": {"email": "jane@example.com", "plan": "gamer"}}
    """

    @extend_schema(
        operation_id="record_direct_payment",
        summary="Record direct payment",
        description=(
            "Record a payment whose capture the client already confirmed and "
            "activate the plan. A payment_id can only be recorded once."
        ),
        request=DirectPaymentSerializer,
        responses={
            200: DirectPaymentResponseSerializer,
            400: OpenApiResponse(description="Validation error"),
            409: OpenApiResponse(description="Payment already recorded"),
            500: OpenApiResponse(description="Storage failure"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = DirectPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            payment = ReconciliationEngine.record_direct_payment(**serializer.validated_data)
        except ValidationError as e:
            return error_response(e, status.HTTP_400_BAD_REQUEST)
        except ConflictError as e:
            return error_response(e, status.HTTP_409_CONFLICT)
        except StorageError as e:
            return error_response(e, status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response(
            {
                "success": True,
                "reference": payment.reference,
                "customer": {
                    "email": payment.customer.email,
                    "plan": payment.plan,
                },
            }
        )


class PaymentStatusView(PublicAPIView):
    """
    Read a payment's status by any of its references.

    GET /api/v1/payments/status/{reference}/
    """

    @extend_schema(
        operation_id="get_payment_status",
        summary="Get payment status",
        description=(
            "Look a payment up by CheckoutRequestID, local reference or "
            "M-Pesa receipt and return its status."
        ),
        responses={
            200: PaymentStatusSerializer,
            404: OpenApiResponse(description="Transaction not found"),
        },
        tags=["Payments"],
    )
    def get(self, request, reference: str):
        payment = PaymentLedger.find_by_reference(reference)
        if payment is None:
            return error_response(
                PaymentNotFoundError("Transaction not found"),
                status.HTTP_404_NOT_FOUND,
            )

        serializer = PaymentStatusSerializer(
            {"success": True, "reference": payment.reference, "status": payment.status}
        )
        return Response(serializer.data)


class TrialStartView(PublicAPIView):
    """
    Start a 7-day free trial.

    POST /api/v1/payments/trial/

    Request body:
        {"name": "Jane Wanjiku", "email": "jane@example.com", "plan": "basic"}

    Returns:
        {"success": true, "message": "Trial started successfully", "expires": "..."}
    """

    @extend_schema(
        operation_id="start_trial",
        summary="Start free trial",
        request=TrialStartSerializer,
        responses={
            200: TrialStartResponseSerializer,
            400: OpenApiResponse(description="Validation error"),
            409: OpenApiResponse(description="Customer already active"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = TrialStartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            customer = SubscriptionActivator.start_trial(**serializer.validated_data)
        except ValidationError as e:
            return error_response(e, status.HTTP_400_BAD_REQUEST)
        except ConflictError as e:
            return error_response(e, status.HTTP_409_CONFLICT)
        except StorageError as e:
            return error_response(e, status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response(
            {
                "success": True,
                "message": "Trial started successfully",
                "expires": customer.expires_at,
            }
        )


class ResendConfirmationView(PublicAPIView):
    """
    Queue the payment confirmation email again.

    POST /api/v1/payments/confirmation/resend/
    """

    @extend_schema(
        operation_id="resend_payment_confirmation",
        summary="Resend payment confirmation email",
        request=ResendConfirmationSerializer,
        responses={
            200: MessageResponseSerializer,
            404: OpenApiResponse(description="No completed payment for this email"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        serializer = ResendConfirmationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            notifications.resend_payment_confirmation(serializer.validated_data["email"])
        except PaymentNotFoundError as e:
            return error_response(e, status.HTTP_404_NOT_FOUND)

        return Response({"success": True, "message": "Confirmation email sent"})
