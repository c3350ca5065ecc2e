"""
M-Pesa (Daraja) API adapter for STK push payments.

This module provides the MpesaAdapter class which encapsulates all
Daraja API interactions. All M-Pesa calls should go through this
adapter to ensure consistent error handling, timeouts, token handling
and observability.

Features:
- Configurable timeouts on all API calls
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Process-wide OAuth token cache with lazy refresh
- Thread-safe for use from web workers and Celery workers

Configuration (via settings):
- MPESA_ENVIRONMENT: "sandbox" or "production"
- MPESA_CONSUMER_KEY / MPESA_CONSUMER_SECRET: OAuth client credentials
- MPESA_SHORTCODE / MPESA_PASSKEY: Lipa na M-Pesa online credentials
- MPESA_AUTH_TIMEOUT_SECONDS: token request timeout (default: 10)
- MPESA_API_TIMEOUT_SECONDS: push/query timeout (default: 15)
- MPESA_TOKEN_EXPIRY_MARGIN_SECONDS: refresh margin (default: 60)

Usage:
    from payments.adapters import MpesaAdapter, StkPushParams

    result = MpesaAdapter.initiate_push(
        StkPushParams(
            phone_number="254712345678",
            amount=Decimal("500"),
            account_reference="ADCLEANBASIC",
            description="AdClean KE basic Plan",
            callback_url="https://example.com/api/v1/payments/callbacks/mpesa/",
        )
    )
    result.checkout_request_id  # "ws_CO_..."
"""

from __future__ import annotations

import base64
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

import requests
from django.conf import settings
from django.utils import timezone

from payments.exceptions import (
    GatewayError,
    GatewayRejectedError,
    GatewayTimeoutError,
    GatewayUnavailableError,
)

if TYPE_CHECKING:
    from collections.abc import Callable


MPESA_BASE_URLS = {
    "sandbox": "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}

TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
STK_QUERY_PATH = "/mpesa/stkpushquery/v1/query"

TRANSACTION_TYPE = "CustomerPayBillOnline"

# Daraja answers a status query with this error while the customer has
# not yet responded to the prompt
STILL_PROCESSING_ERROR_CODE = "500.001.1001"

DEFAULT_TOKEN_LIFETIME_SECONDS = 3599

ACCOUNT_REFERENCE_MAX_LENGTH = 12


# =============================================================================
# Data Types
# =============================================================================


@dataclass(frozen=True)
class AccessToken:
    """
    OAuth bearer token issued by Daraja.

    Attributes:
        value: Bearer token
        expires_at: When the gateway stops accepting it
    """

    value: str
    expires_at: datetime

    def is_expired(self, margin_seconds: int = 0, now: datetime | None = None) -> bool:
        """Check whether the token expires within margin_seconds."""
        now = now or timezone.now()
        return now >= self.expires_at - timedelta(seconds=margin_seconds)


@dataclass
class StkPushParams:
    """
    Parameters for an STK push request.

    Attributes:
        phone_number: Payer MSISDN (2547XXXXXXXX)
        amount: Amount in KES, whole shillings
        account_reference: Reference shown on the customer's prompt (max 12 chars)
        description: Transaction description
        callback_url: Where the gateway posts the result
    """

    phone_number: str
    amount: Decimal
    account_reference: str
    description: str
    callback_url: str

    def __post_init__(self) -> None:
        """Validate parameters after initialization."""
        self.amount = Decimal(self.amount)
        if self.amount <= 0:
            raise ValueError("amount must be positive")
        if self.amount != self.amount.to_integral_value():
            raise ValueError("amount must be a whole number of shillings")
        if not self.phone_number:
            raise ValueError("phone_number is required")
        if not self.account_reference:
            raise ValueError("account_reference is required")
        if len(self.account_reference) > ACCOUNT_REFERENCE_MAX_LENGTH:
            raise ValueError(
                f"account_reference must be at most {ACCOUNT_REFERENCE_MAX_LENGTH} characters"
            )
        if not self.callback_url:
            raise ValueError("callback_url is required")


@dataclass
class StkPushResult:
    """
    Result of an accepted STK push request.

    Acceptance only means the prompt was dispatched to the phone, never
    that the customer paid.

    Attributes:
        checkout_request_id: Gateway reference cited by the callback
        merchant_request_id: Gateway merchant request id
        response_description: Gateway description
        customer_message: Message suitable for the customer
        raw_response: Full response body (for debugging)
    """

    checkout_request_id: str
    merchant_request_id: str = ""
    response_description: str = ""
    customer_message: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class StkQueryResult:
    """
    Result of an STK push status query.

    Attributes:
        checkout_request_id: Queried reference
        result_code: Final result code, None while still processing
        result_description: Gateway description
        raw_response: Full response body
    """

    checkout_request_id: str
    result_code: int | None
    result_description: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_pending(self) -> bool:
        return self.result_code is None

    @property
    def is_success(self) -> bool:
        return self.result_code == 0


# =============================================================================
# Access Token Cache
# =============================================================================


class AccessTokenCache:
    """
    Process-wide holder of the current Daraja access token.

    The token and its expiry are owned by this object and only reachable
    through get() and invalidate(). The lock guards the stored value only;
    it is never held while a new token is fetched over the network, so a
    slow token endpoint cannot block other threads reading a valid token.
    Two threads that both find the token expired may both fetch; the last
    one to finish wins, which is harmless.

    Usage:
        cache = AccessTokenCache()
        token = cache.get(MpesaAdapter.acquire_access_token, margin_seconds=60)
        ...
        cache.invalidate(token)  # gateway answered 401
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._token: AccessToken | None = None

    def get(
        self,
        fetch: Callable[[], AccessToken],
        margin_seconds: int = 0,
    ) -> str:
        """
        Return a valid token value, fetching a new token if needed.

        Args:
            fetch: Callable returning a fresh AccessToken
            margin_seconds: Treat tokens expiring this soon as expired

        Raises:
            GatewayUnavailableError: Propagated from fetch
        """
        with self._lock:
            token = self._token

        if token is not None and not token.is_expired(margin_seconds):
            return token.value

        fresh = fetch()
        with self._lock:
            self._token = fresh
        return fresh.value

    def invalidate(self, value: str | None = None) -> None:
        """
        Drop the cached token.

        Args:
            value: Only drop the token if it still has this value, so a
                   stale 401 does not discard a token another thread just
                   refreshed. None drops unconditionally.
        """
        with self._lock:
            if value is None or (self._token is not None and self._token.value == value):
                self._token = None

    @property
    def expires_at(self) -> datetime | None:
        with self._lock:
            return self._token.expires_at if self._token else None


# =============================================================================
# Request Helpers
# =============================================================================


def build_timestamp(now: datetime | None = None) -> str:
    """
    Build the Daraja request timestamp (YYYYMMDDHHMMSS, Nairobi time).
    """
    now = now or timezone.now()
    local = timezone.localtime(now, ZoneInfo(settings.MPESA_TIMEZONE))
    return local.strftime("%Y%m%d%H%M%S")


def build_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """
    Build the Lipa na M-Pesa online password.

    Returns:
        base64(shortcode + passkey + timestamp)
    """
    raw = f"{shortcode}{passkey}{timestamp}".encode()
    return base64.b64encode(raw).decode()


def _json_body(response: requests.Response) -> dict[str, Any]:
    """Decode a JSON object body, returning {} for anything else."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


# =============================================================================
# M-Pesa Adapter
# =============================================================================


class MpesaAdapter:
    """
    Adapter for Daraja STK push operations.

    All methods are class/static methods; the only state is the
    process-wide token cache.

    Usage:
        result = MpesaAdapter.initiate_push(params)
        status = MpesaAdapter.query_push_status(result.checkout_request_id)
    """

    token_cache = AccessTokenCache()

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _base_url() -> str:
        return MPESA_BASE_URLS.get(settings.MPESA_ENVIRONMENT, MPESA_BASE_URLS["sandbox"])

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Authentication
    # =========================================================================

    @classmethod
    def acquire_access_token(cls) -> AccessToken:
        """
        Exchange the consumer credentials for a bearer token.

        Returns:
            AccessToken with its expiry

        Raises:
            GatewayUnavailableError: Timeout, network failure, rejected
                credentials, or unusable response
        """
        logger = cls.get_logger()

        if not settings.MPESA_CONSUMER_KEY or not settings.MPESA_CONSUMER_SECRET:
            raise GatewayUnavailableError(
                "M-Pesa credentials are not configured",
                error_code="GATEWAY_NOT_CONFIGURED",
            )

        timeout = settings.MPESA_AUTH_TIMEOUT_SECONDS
        started = time.monotonic()
        try:
            response = requests.get(
                f"{cls._base_url()}{TOKEN_PATH}",
                params={"grant_type": "client_credentials"},
                auth=(settings.MPESA_CONSUMER_KEY, settings.MPESA_CONSUMER_SECRET),
                timeout=timeout,
            )
        except requests.Timeout as e:
            # Nothing was pushed yet, so this is not an undetermined outcome.
            logger.warning("M-Pesa token request timed out", extra={"timeout": timeout})
            raise GatewayUnavailableError(
                "M-Pesa authentication timed out",
                details={"timeout_seconds": timeout},
            ) from e
        except requests.RequestException as e:
            logger.warning(
                f"M-Pesa token request failed: {type(e).__name__}",
                exc_info=True,
            )
            raise GatewayUnavailableError("M-Pesa service unavailable") from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        data = _json_body(response)

        if not response.ok:
            logger.error(
                "M-Pesa token request rejected",
                extra={"status_code": response.status_code, "elapsed_ms": elapsed_ms},
            )
            raise GatewayUnavailableError(
                "M-Pesa authentication failed",
                gateway_code=data.get("errorCode"),
                details={"status_code": response.status_code},
            )

        value = data.get("access_token")
        if not value:
            raise GatewayUnavailableError(
                "M-Pesa authentication returned no access token",
                details={"status_code": response.status_code},
            )

        try:
            lifetime = int(data.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS)
        except (TypeError, ValueError):
            lifetime = DEFAULT_TOKEN_LIFETIME_SECONDS

        logger.info(
            "Acquired M-Pesa access token",
            extra={"expires_in": lifetime, "elapsed_ms": elapsed_ms},
        )
        return AccessToken(
            value=value,
            expires_at=timezone.now() + timedelta(seconds=lifetime),
        )

    @classmethod
    def get_access_token(cls) -> str:
        """
        Return a valid bearer token from the cache, refreshing lazily.
        """
        return cls.token_cache.get(
            cls.acquire_access_token,
            margin_seconds=settings.MPESA_TOKEN_EXPIRY_MARGIN_SECONDS,
        )

    # =========================================================================
    # STK Push
    # =========================================================================

    @classmethod
    def initiate_push(cls, params: StkPushParams) -> StkPushResult:
        """
        Send a payment prompt to the customer's phone.

        Args:
            params: STK push parameters

        Returns:
            StkPushResult carrying the CheckoutRequestID

        Raises:
            GatewayTimeoutError: No answer in time; the push may still
                have been dispatched
            GatewayUnavailableError: Network, auth or server failure
            GatewayRejectedError: The gateway declined the request
        """
        logger = cls.get_logger()
        timestamp = build_timestamp()
        payload = {
            "BusinessShortCode": settings.MPESA_SHORTCODE,
            "Password": build_password(
                settings.MPESA_SHORTCODE, settings.MPESA_PASSKEY, timestamp
            ),
            "Timestamp": timestamp,
            "TransactionType": TRANSACTION_TYPE,
            "Amount": int(params.amount),
            "PartyA": params.phone_number,
            "PartyB": settings.MPESA_SHORTCODE,
            "PhoneNumber": params.phone_number,
            "CallBackURL": params.callback_url,
            "AccountReference": params.account_reference,
            "TransactionDesc": params.description,
        }

        response = cls._post(STK_PUSH_PATH, payload, operation="stk_push")
        data = _json_body(response)

        if not response.ok:
            raise cls._error_from_response(response, data, operation="stk_push")

        response_code = str(data.get("ResponseCode", ""))
        if response_code != "0":
            logger.warning(
                "M-Pesa declined STK push",
                extra={
                    "response_code": response_code,
                    "description": data.get("ResponseDescription"),
                },
            )
            raise GatewayRejectedError(
                data.get("ResponseDescription") or "STK push failed",
                gateway_code=response_code or None,
            )

        checkout_request_id = data.get("CheckoutRequestID")
        if not checkout_request_id:
            raise GatewayUnavailableError(
                "M-Pesa accepted the push without a CheckoutRequestID",
            )

        logger.info(
            "STK push dispatched",
            extra={
                "checkout_request_id": checkout_request_id,
                "account_reference": params.account_reference,
            },
        )
        return StkPushResult(
            checkout_request_id=checkout_request_id,
            merchant_request_id=data.get("MerchantRequestID", ""),
            response_description=data.get("ResponseDescription", ""),
            customer_message=data.get("CustomerMessage", ""),
            raw_response=data,
        )

    @classmethod
    def query_push_status(cls, checkout_request_id: str) -> StkQueryResult:
        """
        Ask the gateway for the outcome of an earlier push.

        Args:
            checkout_request_id: Reference returned by initiate_push

        Returns:
            StkQueryResult; result_code is None while the customer has not
            answered the prompt yet

        Raises:
            GatewayUnavailableError / GatewayTimeoutError / GatewayRejectedError
        """
        timestamp = build_timestamp()
        payload = {
            "BusinessShortCode": settings.MPESA_SHORTCODE,
            "Password": build_password(
                settings.MPESA_SHORTCODE, settings.MPESA_PASSKEY, timestamp
            ),
            "Timestamp": timestamp,
            "CheckoutRequestID": checkout_request_id,
        }

        response = cls._post(STK_QUERY_PATH, payload, operation="stk_query")
        data = _json_body(response)

        if not response.ok:
            if data.get("errorCode") == STILL_PROCESSING_ERROR_CODE:
                return StkQueryResult(
                    checkout_request_id=checkout_request_id,
                    result_code=None,
                    result_description=data.get("errorMessage", ""),
                    raw_response=data,
                )
            raise cls._error_from_response(response, data, operation="stk_query")

        raw_code = data.get("ResultCode")
        if raw_code is None or raw_code == "":
            return StkQueryResult(
                checkout_request_id=checkout_request_id,
                result_code=None,
                result_description=data.get("ResponseDescription", ""),
                raw_response=data,
            )

        try:
            result_code = int(raw_code)
        except (TypeError, ValueError) as e:
            raise GatewayUnavailableError(
                "M-Pesa returned an unreadable result code",
                details={"result_code": str(raw_code)},
            ) from e

        return StkQueryResult(
            checkout_request_id=checkout_request_id,
            result_code=result_code,
            result_description=data.get("ResultDesc", ""),
            raw_response=data,
        )

    # =========================================================================
    # Transport
    # =========================================================================

    @classmethod
    def _post(cls, path: str, payload: dict[str, Any], operation: str) -> requests.Response:
        """
        POST an authenticated JSON request.

        A 401 invalidates the cached token and the request is retried
        once with a fresh one.

        Raises:
            GatewayTimeoutError / GatewayUnavailableError on transport failure
        """
        logger = cls.get_logger()
        url = f"{cls._base_url()}{path}"
        timeout = settings.MPESA_API_TIMEOUT_SECONDS

        for attempt in (1, 2):
            token = cls.get_access_token()
            started = time.monotonic()
            try:
                response = requests.post(
                    url,
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                    timeout=timeout,
                )
            except requests.Timeout as e:
                logger.warning(
                    f"M-Pesa {operation} timed out",
                    extra={"operation": operation, "timeout": timeout},
                )
                raise GatewayTimeoutError(
                    f"M-Pesa {operation} timed out",
                    details={"timeout_seconds": timeout},
                ) from e
            except requests.RequestException as e:
                logger.warning(
                    f"M-Pesa {operation} failed: {type(e).__name__}",
                    extra={"operation": operation},
                    exc_info=True,
                )
                raise GatewayUnavailableError("M-Pesa service unavailable") from e

            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.debug(
                f"M-Pesa {operation} answered {response.status_code}",
                extra={
                    "operation": operation,
                    "status_code": response.status_code,
                    "elapsed_ms": elapsed_ms,
                    "attempt": attempt,
                },
            )

            if response.status_code == 401 and attempt == 1:
                logger.info(
                    "M-Pesa rejected access token, refreshing",
                    extra={"operation": operation},
                )
                cls.token_cache.invalidate(token)
                continue

            return response

        return response

    @staticmethod
    def _error_from_response(
        response: requests.Response,
        data: dict[str, Any],
        operation: str,
    ) -> GatewayError:
        """
        Translate a non-2xx Daraja response into a domain exception.

        5xx and auth failures are transient; other 4xx answers mean the
        gateway declined the request.
        """
        gateway_code = data.get("errorCode")
        message = data.get("errorMessage") or response.reason or "Unknown error"

        if response.status_code >= 500 or response.status_code in (401, 403):
            return GatewayUnavailableError(
                f"M-Pesa {operation} failed",
                gateway_code=gateway_code,
                details={"status_code": response.status_code},
            )

        return GatewayRejectedError(
            message,
            gateway_code=gateway_code,
            details={"status_code": response.status_code},
        )
