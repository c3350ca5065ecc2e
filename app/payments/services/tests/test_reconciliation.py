"""
Tests for the reconciliation engine.

Tests cover:
- Success, failure and unmatched confirmations
- Duplicate confirmations producing no second activation or email
- Out-of-order event sequences
- Exactly-once activation and the retry path when activation fails
- Status query results
- Replay of callbacks that arrived before rebind
- Direct payment confirmation
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.core import mail
from django.utils import timezone

from core.exceptions import ConflictError, ValidationError
from customers.models import Customer, CustomerStatus, Plan
from payments.adapters import StkQueryResult
from payments.ledger import PaymentLedger
from payments.models import GatewayCallback, Payment, Subscription
from payments.services.reconciliation import (
    ReconciliationEngine,
    ReconciliationOutcome,
)
from payments.state_machines import CallbackStatus, PaymentMethod, PaymentStatus
from payments.tests.factories import (
    GatewayCallbackFactory,
    PaymentFactory,
    build_stk_callback,
)
from payments.webhooks.parsers import parse_stk_callback


# =============================================================================
# Setup
# =============================================================================


def success(reference, **kwargs):
    return parse_stk_callback(build_stk_callback(reference, **kwargs))


def failure(reference, result_code=1032, description="Request cancelled by user"):
    return parse_stk_callback(
        build_stk_callback(
            reference,
            result_code=result_code,
            result_description=description,
        )
    )


def fetch(payment):
    return Payment.objects.select_related("customer").get(pk=payment.pk)


# =============================================================================
# Confirmation Tests
# =============================================================================


@pytest.mark.django_db
class TestHandleConfirmation:
    """Tests for ReconciliationEngine.handle_confirmation()."""

    def test_success_completes_and_activates(
        self, pending_payment, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            result = ReconciliationEngine.handle_confirmation(
                success(pending_payment.external_reference, phone_number=254700000001)
            )

        assert result.outcome == ReconciliationOutcome.COMPLETED
        assert result.payment.pk == pending_payment.pk

        payment = fetch(pending_payment)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.receipt_number == "NLJ7RT61SV"
        assert payment.confirmed_amount == Decimal("500")
        assert payment.payer_phone == "254700000001"
        assert payment.result_code == 0
        assert payment.completed_at is not None
        assert payment.activated_at is not None

        customer = payment.customer
        assert customer.status == CustomerStatus.ACTIVE
        assert customer.plan == Plan.BASIC
        assert customer.expires_at > timezone.now() + timedelta(days=27)
        assert Subscription.objects.filter(customer=customer).count() == 1

        assert len(mail.outbox) == 1
        assert "Basic Plan Activated" in mail.outbox[0].subject

    def test_failure_marks_failed_without_activation(self, pending_payment):
        result = ReconciliationEngine.handle_confirmation(
            failure(pending_payment.external_reference)
        )

        assert result.outcome == ReconciliationOutcome.FAILED
        payment = fetch(pending_payment)
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == "Request cancelled by user"
        assert payment.activated_at is None
        assert payment.customer.status == CustomerStatus.INACTIVE
        assert not Subscription.objects.exists()

    def test_unknown_reference_mutates_nothing(self, pending_payment):
        result = ReconciliationEngine.handle_confirmation(success("ws_CO_unknown"))

        assert result.outcome == ReconciliationOutcome.UNMATCHED
        assert result.payment is None
        assert fetch(pending_payment).status == PaymentStatus.PENDING

    def test_unbound_payment_is_not_matched_by_local_reference(self, unbound_payment):
        result = ReconciliationEngine.handle_confirmation(
            success(unbound_payment.local_reference)
        )

        assert result.outcome == ReconciliationOutcome.UNMATCHED
        assert fetch(unbound_payment).status == PaymentStatus.PENDING

    def test_amount_mismatch_still_completes(self, pending_payment, caplog):
        result = ReconciliationEngine.handle_confirmation(
            success(pending_payment.external_reference, amount=1)
        )

        assert result.outcome == ReconciliationOutcome.COMPLETED
        assert fetch(pending_payment).confirmed_amount == Decimal("1")
        assert "Confirmed amount differs" in caplog.text


# =============================================================================
# Duplicate and Ordering Tests
# =============================================================================


@pytest.mark.django_db
class TestDuplicateConfirmations:
    """Tests for repeated and out-of-order confirmations."""

    def test_duplicate_success_activates_once(
        self, pending_payment, django_capture_on_commit_callbacks
    ):
        confirmation = success(pending_payment.external_reference)

        with django_capture_on_commit_callbacks(execute=True):
            first = ReconciliationEngine.handle_confirmation(confirmation)
            second = ReconciliationEngine.handle_confirmation(confirmation)

        assert first.outcome == ReconciliationOutcome.COMPLETED
        assert second.outcome == ReconciliationOutcome.DUPLICATE
        assert Subscription.objects.count() == 1
        assert len(mail.outbox) == 1

    def test_failure_after_success_is_ignored(self, pending_payment):
        ReconciliationEngine.handle_confirmation(success(pending_payment.external_reference))

        result = ReconciliationEngine.handle_confirmation(
            failure(pending_payment.external_reference)
        )

        assert result.outcome == ReconciliationOutcome.DUPLICATE
        payment = fetch(pending_payment)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.failure_reason == ""

    def test_success_after_failure_does_not_resurrect(self, pending_payment):
        ReconciliationEngine.handle_confirmation(failure(pending_payment.external_reference))

        result = ReconciliationEngine.handle_confirmation(
            success(pending_payment.external_reference)
        )

        assert result.outcome == ReconciliationOutcome.DUPLICATE
        payment = fetch(pending_payment)
        assert payment.status == PaymentStatus.FAILED
        assert payment.receipt_number is None
        assert payment.customer.status == CustomerStatus.INACTIVE

    @pytest.mark.parametrize(
        "events, final_status",
        [
            (["success", "success", "failure"], PaymentStatus.COMPLETED),
            (["failure", "failure", "success"], PaymentStatus.FAILED),
            (["failure", "success", "success"], PaymentStatus.FAILED),
            (["success", "failure", "success"], PaymentStatus.COMPLETED),
        ],
    )
    def test_first_event_wins(self, pending_payment, events, final_status):
        builders = {"success": success, "failure": failure}

        outcomes = [
            ReconciliationEngine.handle_confirmation(
                builders[event](pending_payment.external_reference)
            ).outcome
            for event in events
        ]

        assert outcomes[1:] == [ReconciliationOutcome.DUPLICATE] * (len(events) - 1)
        assert fetch(pending_payment).status == final_status

    def test_late_callback_attaches_missing_receipt(self, pending_payment):
        """A payment completed by status query gets its receipt from the late callback."""
        ReconciliationEngine.apply_status_query(
            pending_payment,
            StkQueryResult(pending_payment.external_reference, result_code=0),
        )
        assert fetch(pending_payment).receipt_number is None

        result = ReconciliationEngine.handle_confirmation(
            success(pending_payment.external_reference, receipt_number="NLJ7RT99ZZ")
        )

        assert result.outcome == ReconciliationOutcome.DUPLICATE
        assert fetch(pending_payment).receipt_number == "NLJ7RT99ZZ"

    def test_late_receipt_already_used_is_duplicate(self, pending_payment, completed_payment):
        ReconciliationEngine.apply_status_query(
            pending_payment,
            StkQueryResult(pending_payment.external_reference, result_code=0),
        )

        result = ReconciliationEngine.handle_confirmation(
            success(pending_payment.external_reference, receipt_number="NLJ7RT61SV")
        )

        assert result.outcome == ReconciliationOutcome.DUPLICATE
        assert fetch(pending_payment).receipt_number is None


# =============================================================================
# Activation Tests
# =============================================================================


@pytest.mark.django_db
class TestActivatePayment:
    """Tests for ReconciliationEngine.activate_payment()."""

    def test_activates_once(self, completed_payment):
        assert ReconciliationEngine.activate_payment(completed_payment) is True
        assert ReconciliationEngine.activate_payment(fetch(completed_payment)) is False

        assert Subscription.objects.count() == 1

    def test_failure_rolls_back_claim_and_queues_retry(self, completed_payment):
        with (
            patch(
                "payments.services.reconciliation.SubscriptionActivator.activate",
                side_effect=RuntimeError("boom"),
            ),
            patch("payments.tasks.activate_completed_payment.delay") as mock_delay,
        ):
            activated = ReconciliationEngine.activate_payment(completed_payment)

        assert activated is False
        mock_delay.assert_called_once_with(str(completed_payment.id))

        payment = fetch(completed_payment)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.activated_at is None
        assert payment.customer.status == CustomerStatus.INACTIVE

    def test_raise_errors_propagates(self, completed_payment):
        with patch(
            "payments.services.reconciliation.SubscriptionActivator.activate",
            side_effect=RuntimeError("boom"),
        ):
            with pytest.raises(RuntimeError):
                ReconciliationEngine.activate_payment(completed_payment, raise_errors=True)

        assert fetch(completed_payment).activated_at is None

    def test_completed_payment_survives_activation_failure(self, pending_payment):
        """The payment stays completed; activation is retried separately."""
        with (
            patch(
                "payments.services.reconciliation.SubscriptionActivator.activate",
                side_effect=RuntimeError("boom"),
            ),
            patch("payments.tasks.activate_completed_payment.delay"),
        ):
            result = ReconciliationEngine.handle_confirmation(
                success(pending_payment.external_reference)
            )

        assert result.outcome == ReconciliationOutcome.COMPLETED
        payment = fetch(pending_payment)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.activated_at is None
        assert list(ReconciliationEngine.unactivated_payments()) == [payment]


# =============================================================================
# Status Query Tests
# =============================================================================


@pytest.mark.django_db
class TestApplyStatusQuery:
    """Tests for ReconciliationEngine.apply_status_query()."""

    def test_still_processing(self, pending_payment):
        outcome = ReconciliationEngine.apply_status_query(
            pending_payment,
            StkQueryResult(pending_payment.external_reference, result_code=None),
        )

        assert outcome is None
        assert fetch(pending_payment).status == PaymentStatus.PENDING

    def test_success_completes_and_activates(self, pending_payment):
        outcome = ReconciliationEngine.apply_status_query(
            pending_payment,
            StkQueryResult(pending_payment.external_reference, result_code=0),
        )

        assert outcome == ReconciliationOutcome.COMPLETED
        payment = fetch(pending_payment)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.activated_at is not None

    def test_failure(self, pending_payment):
        outcome = ReconciliationEngine.apply_status_query(
            pending_payment,
            StkQueryResult(
                pending_payment.external_reference,
                result_code=1037,
                result_description="DS timeout user cannot be reached",
            ),
        )

        assert outcome == ReconciliationOutcome.FAILED
        payment = fetch(pending_payment)
        assert payment.status == PaymentStatus.FAILED
        assert payment.result_code == 1037

    def test_already_resolved(self, completed_payment):
        outcome = ReconciliationEngine.apply_status_query(
            completed_payment,
            StkQueryResult(completed_payment.external_reference, result_code=1032),
        )

        assert outcome == ReconciliationOutcome.DUPLICATE
        assert fetch(completed_payment).status == PaymentStatus.COMPLETED


# =============================================================================
# Callback Processing and Replay Tests
# =============================================================================


@pytest.mark.django_db
class TestProcessCallback:
    """Tests for process_callback() and the replay helpers."""

    def test_records_outcome_on_callback(self, pending_payment):
        callback = GatewayCallback.objects.create(
            payload=build_stk_callback(pending_payment.external_reference)
        )

        result = ReconciliationEngine.process_callback(callback)

        callback = GatewayCallback.objects.get(pk=callback.pk)
        assert result.outcome == ReconciliationOutcome.COMPLETED
        assert callback.status == CallbackStatus.PROCESSED
        assert callback.payment_id == pending_payment.pk
        assert callback.result_code == 0
        assert callback.merchant_request_id == "29115-34620561-1"
        assert callback.processed_at is not None

    def test_malformed_payload_is_rejected(self, db):
        callback = GatewayCallback.objects.create(payload={"Body": {}})

        result = ReconciliationEngine.process_callback(callback)

        assert result.outcome == ReconciliationOutcome.REJECTED
        assert GatewayCallback.objects.get(pk=callback.pk).status == CallbackStatus.REJECTED

    def test_callback_before_rebind_is_replayed(self, unbound_payment):
        """Scenario: the confirmation arrives before the push response is bound."""
        early = GatewayCallback.objects.create(payload=build_stk_callback("ws_CO_early"))
        assert ReconciliationEngine.process_callback(early).outcome == (
            ReconciliationOutcome.UNMATCHED
        )

        PaymentLedger.rebind(unbound_payment.local_reference, "ws_CO_early")
        resolved = ReconciliationEngine.replay_unmatched("ws_CO_early")

        assert resolved == 1
        early = GatewayCallback.objects.get(pk=early.pk)
        assert early.status == CallbackStatus.PROCESSED
        assert early.attempts == 2
        payment = fetch(unbound_payment)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.activated_at is not None

    def test_replay_recent_skips_old_and_exhausted_callbacks(self, pending_payment):
        reference = pending_payment.external_reference
        old = GatewayCallbackFactory(
            checkout_request_id=reference,
            status=CallbackStatus.UNMATCHED,
        )
        GatewayCallback.objects.filter(pk=old.pk).update(
            created_at=timezone.now() - timedelta(days=2)
        )
        GatewayCallbackFactory(
            checkout_request_id=reference,
            status=CallbackStatus.UNMATCHED,
            attempts=5,
        )

        assert ReconciliationEngine.replay_recent_unmatched() == 0
        assert fetch(pending_payment).status == PaymentStatus.PENDING

    def test_replay_recent_resolves_unmatched(self, pending_payment):
        GatewayCallbackFactory(
            checkout_request_id=pending_payment.external_reference,
            status=CallbackStatus.UNMATCHED,
        )

        assert ReconciliationEngine.replay_recent_unmatched() == 1
        assert fetch(pending_payment).status == PaymentStatus.COMPLETED

    def test_replay_error_marks_callback_failed(self, pending_payment):
        callback = GatewayCallbackFactory(
            checkout_request_id=pending_payment.external_reference,
            status=CallbackStatus.UNMATCHED,
        )

        with patch.object(
            ReconciliationEngine,
            "handle_confirmation",
            side_effect=RuntimeError("boom"),
        ):
            resolved = ReconciliationEngine.replay_unmatched(
                pending_payment.external_reference
            )

        assert resolved == 0
        callback = GatewayCallback.objects.get(pk=callback.pk)
        assert callback.status == CallbackStatus.FAILED
        assert callback.error_message == "boom"


# =============================================================================
# Direct Payment Tests
# =============================================================================


@pytest.mark.django_db
class TestRecordDirectPayment:
    """Tests for ReconciliationEngine.record_direct_payment()."""

    def test_records_and_activates(self, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            payment = ReconciliationEngine.record_direct_payment(
                name="Amina",
                email="amina@example.com",
                phone="",
                plan=Plan.VENUE,
                payment_id="PAYID-M123",
                amount=Decimal("2500"),
                method=PaymentMethod.PAYPAL,
            )

        payment = fetch(payment)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.external_reference == "PAYID-M123"
        assert payment.activated_at is not None
        assert payment.customer.status == CustomerStatus.ACTIVE
        assert payment.customer.plan == Plan.VENUE
        assert len(mail.outbox) == 1

    def test_replayed_payment_id_is_rejected(self):
        kwargs = dict(
            name="Amina",
            email="amina@example.com",
            phone="",
            plan=Plan.BASIC,
            payment_id="PAYID-M123",
            amount=Decimal("500"),
            method=PaymentMethod.PAYPAL,
        )
        ReconciliationEngine.record_direct_payment(**kwargs)

        with pytest.raises(ConflictError) as exc_info:
            ReconciliationEngine.record_direct_payment(**kwargs)

        assert exc_info.value.error_code == "DUPLICATE_PAYMENT"
        assert Payment.objects.count() == 1
        assert Subscription.objects.count() == 1

    def test_missing_fields(self, db):
        with pytest.raises(ValidationError) as exc_info:
            ReconciliationEngine.record_direct_payment(
                name="",
                email="amina@example.com",
                phone="",
                plan=Plan.BASIC,
                payment_id="",
                amount=Decimal("500"),
                method=PaymentMethod.PAYPAL,
            )

        assert set(exc_info.value.details) == {"name", "payment_id"}
        assert not Customer.objects.exists()


@pytest.mark.django_db
def test_unactivated_payments_excludes_pending_and_activated(customer):
    pending = PaymentFactory(customer=customer)
    activated = PaymentFactory(
        customer=customer,
        status=PaymentStatus.COMPLETED,
        activated_at=timezone.now(),
    )
    waiting = PaymentFactory(customer=customer, status=PaymentStatus.COMPLETED)

    result = list(ReconciliationEngine.unactivated_payments())

    assert result == [waiting]
    assert pending not in result
    assert activated not in result
