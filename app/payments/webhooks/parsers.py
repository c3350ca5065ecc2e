"""
Parsing of M-Pesa STK push callbacks.

Daraja posts the outcome of a push as:

    {
      "Body": {
        "stkCallback": {
          "MerchantRequestID": "29115-34620561-1",
          "CheckoutRequestID": "ws_CO_191220191020363925",
          "ResultCode": 0,
          "ResultDesc": "The service request is processed successfully.",
          "CallbackMetadata": {
            "Item": [
              {"Name": "Amount", "Value": 500.00},
              {"Name": "MpesaReceiptNumber", "Value": "NLJ7RT61SV"},
              {"Name": "TransactionDate", "Value": 20191219102115},
              {"Name": "PhoneNumber", "Value": 254708374149}
            ]
          }
        }
      }
    }

Failed and cancelled pushes carry a non-zero ResultCode and no
CallbackMetadata.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from zoneinfo import ZoneInfo

from django.conf import settings

from payments.exceptions import MalformedConfirmationError


@dataclass(frozen=True)
class PushConfirmation:
    """
    A parsed STK push callback.

    Success-only fields (amount, receipt_number, phone_number,
    transaction_date) are None on failure callbacks.
    """

    checkout_request_id: str
    merchant_request_id: str
    result_code: int
    result_description: str
    amount: Decimal | None = None
    receipt_number: str | None = None
    phone_number: str | None = None
    transaction_date: datetime | None = None
    payload: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_success(self) -> bool:
        return self.result_code == 0


def parse_stk_callback(payload: Any) -> PushConfirmation:
    """
    Parse a callback payload into a PushConfirmation.

    Raises:
        MalformedConfirmationError: Missing structure, missing
            CheckoutRequestID, non-integer ResultCode, or a success
            callback without a receipt number
    """
    if not isinstance(payload, dict):
        raise MalformedConfirmationError("Callback payload is not a JSON object")

    body = payload.get("Body")
    callback = body.get("stkCallback") if isinstance(body, dict) else None
    if not isinstance(callback, dict):
        raise MalformedConfirmationError("Callback payload has no Body.stkCallback")

    checkout_request_id = str(callback.get("CheckoutRequestID") or "").strip()
    if not checkout_request_id:
        raise MalformedConfirmationError("Callback has no CheckoutRequestID")

    result_code = _parse_result_code(callback.get("ResultCode"))

    confirmation = {
        "checkout_request_id": checkout_request_id,
        "merchant_request_id": str(callback.get("MerchantRequestID") or ""),
        "result_code": result_code,
        "result_description": str(callback.get("ResultDesc") or ""),
        "payload": payload,
    }

    if result_code != 0:
        return PushConfirmation(**confirmation)

    items = _metadata_items(callback)

    receipt_number = str(items.get("MpesaReceiptNumber") or "").strip()
    if not receipt_number:
        raise MalformedConfirmationError(
            "Success callback has no MpesaReceiptNumber",
            details={"checkout_request_id": checkout_request_id},
        )

    phone = items.get("PhoneNumber")
    return PushConfirmation(
        **confirmation,
        amount=_parse_amount(items.get("Amount"), checkout_request_id),
        receipt_number=receipt_number,
        phone_number=str(phone) if phone not in (None, "") else None,
        transaction_date=_parse_transaction_date(items.get("TransactionDate")),
    )


def _parse_result_code(value: Any) -> int:
    if isinstance(value, bool) or value is None:
        raise MalformedConfirmationError("Callback has no usable ResultCode")
    try:
        return int(str(value).strip())
    except ValueError as e:
        raise MalformedConfirmationError(
            "Callback ResultCode is not an integer",
            details={"result_code": str(value)},
        ) from e


def _metadata_items(callback: dict[str, Any]) -> dict[str, Any]:
    metadata = callback.get("CallbackMetadata")
    items = metadata.get("Item") if isinstance(metadata, dict) else None
    if not isinstance(items, list):
        return {}
    return {
        item["Name"]: item.get("Value")
        for item in items
        if isinstance(item, dict) and isinstance(item.get("Name"), str)
    }


def _parse_amount(value: Any, checkout_request_id: str) -> Decimal | None:
    if value in (None, ""):
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation as e:
        raise MalformedConfirmationError(
            "Callback Amount is not numeric",
            details={"checkout_request_id": checkout_request_id},
        ) from e
    if not amount.is_finite():
        raise MalformedConfirmationError(
            "Callback Amount is not finite",
            details={"checkout_request_id": checkout_request_id},
        )
    return amount


def _parse_transaction_date(value: Any) -> datetime | None:
    """TransactionDate is YYYYMMDDHHMMSS in Nairobi time; unreadable dates are dropped."""
    if value in (None, ""):
        return None
    try:
        parsed = datetime.strptime(str(value), "%Y%m%d%H%M%S")
    except ValueError:
        return None
    return parsed.replace(tzinfo=ZoneInfo(settings.MPESA_TIMEZONE))
