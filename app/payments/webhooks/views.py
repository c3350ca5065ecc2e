"""
Webhook endpoint view for M-Pesa STK push callbacks.

The view:
1. Checks the shared callback token (if configured)
2. Stores the delivery as a GatewayCallback audit record
3. Reconciles it synchronously
4. Acknowledges with 200

Every parsed delivery is acknowledged with 200, including duplicates,
callbacks for unknown payments and malformed payloads, so the gateway
does not keep redelivering events that need no further work. Only an
unexpected internal failure returns 500, which makes the gateway retry.

Usage:
    # In urls.py
    from payments.webhooks.views import mpesa_callback

    urlpatterns = [
        path("callbacks/mpesa/", mpesa_callback, name="mpesa_callback"),
    ]
"""

from __future__ import annotations

import json
import logging

from django.conf import settings
from django.http import HttpRequest, JsonResponse
from django.utils.crypto import constant_time_compare
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.models import GatewayCallback
from payments.services.reconciliation import ReconciliationEngine


logger = logging.getLogger(__name__)


def _ack(result_code: int, description: str, status: int = 200) -> JsonResponse:
    return JsonResponse(
        {"ResultCode": result_code, "ResultDesc": description},
        status=status,
    )


@csrf_exempt
@require_POST
def mpesa_callback(request: HttpRequest) -> JsonResponse:
    """
    Receive and reconcile an STK push callback.

    Security:
    - Optional shared token in the callback URL (?token=...), compared
      in constant time
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Idempotency:
    - Duplicate deliveries lose the guarded PENDING transition and are
      acknowledged without side effects

    Returns:
        JsonResponse with status:
        - 200: Delivery accepted (processed, duplicate, unmatched or rejected)
        - 403: Callback token missing or wrong
        - 500: Unexpected failure; the gateway will retry
    """
    expected_token = settings.MPESA_CALLBACK_TOKEN
    if expected_token and not constant_time_compare(
        request.GET.get("token", ""), expected_token
    ):
        logger.warning(
            "Callback rejected: invalid token",
            extra={"remote_addr": request.META.get("REMOTE_ADDR")},
        )
        return _ack(1, "Rejected", status=403)

    try:
        payload = json.loads(request.body)
    except (ValueError, UnicodeDecodeError):
        payload = {"raw": request.body.decode("utf-8", errors="replace")}

    callback = GatewayCallback.objects.create(payload=payload)

    try:
        result = ReconciliationEngine.process_callback(callback)
    except Exception as e:
        logger.error(
            f"Callback processing failed: {type(e).__name__}",
            extra={
                "callback_id": str(callback.id),
                "checkout_request_id": callback.checkout_request_id,
            },
            exc_info=True,
        )
        callback.mark_failed(str(e))
        callback.save(update_fields=["status", "error_message", "attempts", "updated_at"])
        return _ack(1, "Internal error", status=500)

    logger.info(
        f"Callback {result.outcome.value}",
        extra={
            "callback_id": str(callback.id),
            "checkout_request_id": callback.checkout_request_id,
            "outcome": result.outcome.value,
        },
    )
    return _ack(0, "Accepted")
