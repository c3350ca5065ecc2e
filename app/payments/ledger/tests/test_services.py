"""
Tests for PaymentLedger.

This module tests the ledger operations: reference generation, pending
and direct payment recording, rebind, lookups and the guarded
transitions that make a payment resolve exactly once.
"""

import re
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import DatabaseError

from core.exceptions import ConflictError, StorageError, ValidationError
from customers.models import Plan
from payments.ledger import PaymentLedger
from payments.ledger.services import to_base36
from payments.models import Payment
from payments.state_machines import PaymentMethod, PaymentStatus
from payments.tests.factories import PaymentFactory


class TestReferences:
    """Tests for local reference generation."""

    def test_to_base36(self):
        assert to_base36(0) == "0"
        assert to_base36(35) == "Z"
        assert to_base36(36) == "10"

    def test_to_base36_rejects_negative(self):
        with pytest.raises(ValueError):
            to_base36(-1)

    def test_local_reference_format(self):
        now = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)

        reference = PaymentLedger.generate_local_reference(now)

        millis = to_base36(int(now.timestamp() * 1000))
        assert reference.startswith(f"ADC{millis}")
        assert re.fullmatch(r"ADC[0-9A-Z]+", reference)
        assert len(reference) == 3 + len(millis) + 6

    def test_local_references_differ_within_same_millisecond(self):
        now = datetime(2024, 1, 1, tzinfo=dt_timezone.utc)

        references = {PaymentLedger.generate_local_reference(now) for _ in range(50)}

        assert len(references) == 50


class TestCreatePending:
    """Tests for PaymentLedger.create_pending()."""

    def test_creates_pending_payment(self, db, customer):
        payment = PaymentLedger.create_pending(
            customer, Decimal("500"), PaymentMethod.MPESA, Plan.BASIC
        )

        payment = Payment.objects.get(pk=payment.pk)
        assert payment.status == PaymentStatus.PENDING
        assert payment.local_reference.startswith("ADC")
        assert payment.external_reference is None
        assert payment.activated_at is None

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), None])
    def test_rejects_non_positive_amount(self, db, customer, amount):
        with pytest.raises(ValidationError):
            PaymentLedger.create_pending(customer, amount, PaymentMethod.MPESA, Plan.BASIC)

        assert not Payment.objects.exists()

    def test_regenerates_colliding_reference(self, db, customer):
        """A reference collision is retried with a fresh reference."""
        PaymentFactory(local_reference="ADCTAKEN")

        with patch.object(
            PaymentLedger,
            "generate_local_reference",
            side_effect=["ADCTAKEN", "ADCFRESH"],
        ):
            payment = PaymentLedger.create_pending(
                customer, Decimal("500"), PaymentMethod.MPESA, Plan.BASIC
            )

        assert payment.local_reference == "ADCFRESH"

    def test_gives_up_after_repeated_collisions(self, db, customer):
        PaymentFactory(local_reference="ADCTAKEN")

        with patch.object(
            PaymentLedger, "generate_local_reference", return_value="ADCTAKEN"
        ):
            with pytest.raises(StorageError):
                PaymentLedger.create_pending(
                    customer, Decimal("500"), PaymentMethod.MPESA, Plan.BASIC
                )

    def test_database_failure_becomes_storage_error(self, db, customer):
        with patch.object(
            Payment.objects, "create", side_effect=DatabaseError("disk full")
        ):
            with pytest.raises(StorageError):
                PaymentLedger.create_pending(
                    customer, Decimal("500"), PaymentMethod.MPESA, Plan.BASIC
                )


class TestRecordDirect:
    """Tests for PaymentLedger.record_direct()."""

    def test_records_completed_payment(self, db, customer):
        payment = PaymentLedger.record_direct(
            customer,
            Decimal("9.99"),
            PaymentMethod.PAYPAL,
            Plan.GAMER,
            external_reference="8AB12345CD678901E",
        )

        payment = Payment.objects.get(pk=payment.pk)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.external_reference == "8AB12345CD678901E"
        assert payment.confirmed_amount == Decimal("9.99")
        assert payment.completed_at is not None

    def test_replayed_payment_id_is_rejected(self, db, customer):
        """The same provider payment id can only be recorded once."""
        PaymentLedger.record_direct(
            customer, Decimal("9.99"), PaymentMethod.PAYPAL, Plan.GAMER, "PAY-1"
        )

        with pytest.raises(ConflictError) as exc_info:
            PaymentLedger.record_direct(
                customer, Decimal("9.99"), PaymentMethod.PAYPAL, Plan.GAMER, "PAY-1"
            )

        assert exc_info.value.error_code == "DUPLICATE_PAYMENT"
        assert Payment.objects.filter(external_reference="PAY-1").count() == 1

    def test_requires_payment_id(self, db, customer):
        with pytest.raises(ValidationError):
            PaymentLedger.record_direct(
                customer, Decimal("9.99"), PaymentMethod.PAYPAL, Plan.GAMER, ""
            )


class TestRebind:
    """Tests for PaymentLedger.rebind()."""

    def test_binds_external_reference(self, db, unbound_payment):
        bound = PaymentLedger.rebind(unbound_payment.local_reference, "ws_CO_123")

        assert bound is True
        payment = Payment.objects.get(pk=unbound_payment.pk)
        assert payment.external_reference == "ws_CO_123"

    def test_second_rebind_does_not_overwrite(self, db, unbound_payment):
        """Only the first rebind wins; the reference never changes afterwards."""
        assert PaymentLedger.rebind(unbound_payment.local_reference, "ws_CO_first")
        assert not PaymentLedger.rebind(unbound_payment.local_reference, "ws_CO_second")

        payment = Payment.objects.get(pk=unbound_payment.pk)
        assert payment.external_reference == "ws_CO_first"

    def test_unknown_local_reference(self, db):
        assert PaymentLedger.rebind("ADCUNKNOWN", "ws_CO_123") is False

    def test_reference_bound_elsewhere_conflicts(self, db, pending_payment, unbound_payment):
        with pytest.raises(ConflictError) as exc_info:
            PaymentLedger.rebind(
                unbound_payment.local_reference,
                pending_payment.external_reference,
            )

        assert exc_info.value.error_code == "REFERENCE_CONFLICT"
        assert Payment.objects.get(pk=unbound_payment.pk).external_reference is None


class TestLookups:
    """Tests for find_by_reference() and find_for_confirmation()."""

    def test_find_by_external_reference(self, db, pending_payment):
        assert PaymentLedger.find_by_reference(pending_payment.external_reference) == pending_payment

    def test_find_by_local_reference(self, db, pending_payment):
        assert PaymentLedger.find_by_reference(pending_payment.local_reference) == pending_payment

    def test_find_by_receipt_number(self, db, completed_payment):
        assert PaymentLedger.find_by_reference("NLJ7RT61SV") == completed_payment

    def test_find_by_reference_unknown(self, db):
        assert PaymentLedger.find_by_reference("nope") is None
        assert PaymentLedger.find_by_reference("") is None

    def test_confirmation_lookup_uses_external_reference_only(self, db, pending_payment):
        assert (
            PaymentLedger.find_for_confirmation(pending_payment.external_reference)
            == pending_payment
        )
        assert PaymentLedger.find_for_confirmation(pending_payment.local_reference) is None


class TestGuardedTransitions:
    """Tests for complete(), fail() and cancel()."""

    def test_complete_wins_once(self, db, pending_payment):
        assert PaymentLedger.complete(pending_payment, receipt_number="NLJ7RT61SV")
        assert not PaymentLedger.complete(pending_payment, receipt_number="NLJ7RT61SV")

        payment = Payment.objects.get(pk=pending_payment.pk)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.receipt_number == "NLJ7RT61SV"

    def test_fail_records_reason(self, db, pending_payment):
        assert PaymentLedger.fail(
            pending_payment, reason="Request cancelled by user", result_code=1032
        )

        payment = Payment.objects.get(pk=pending_payment.pk)
        assert payment.status == PaymentStatus.FAILED
        assert payment.result_code == 1032

    def test_cancel(self, db, pending_payment):
        assert PaymentLedger.cancel(pending_payment, reason="Cancelled by admin")

        assert Payment.objects.get(pk=pending_payment.pk).status == PaymentStatus.CANCELLED

    @pytest.mark.parametrize(
        "status",
        [PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED],
    )
    def test_terminal_payment_is_left_alone(self, db, status):
        payment = PaymentFactory(status=status)

        assert not PaymentLedger.complete(payment, receipt_number="NLJ7RT61SV")
        assert not PaymentLedger.fail(payment, reason="late failure")
        assert not PaymentLedger.cancel(payment)

        assert Payment.objects.get(pk=payment.pk).status == status

    def test_losing_writer_with_stale_copy_returns_false(self, db, pending_payment):
        """Two writers race on their own copies; exactly one wins."""
        winner_copy = Payment.objects.get(pk=pending_payment.pk)
        loser_copy = Payment.objects.get(pk=pending_payment.pk)

        assert PaymentLedger.fail(winner_copy, reason="Request cancelled by user")
        assert not PaymentLedger.complete(loser_copy, receipt_number="NLJ7RT61SV")

        payment = Payment.objects.get(pk=pending_payment.pk)
        assert payment.status == PaymentStatus.FAILED
        assert payment.receipt_number is None


class TestAttachReceipt:
    """Tests for PaymentLedger.attach_receipt()."""

    def test_attaches_missing_receipt(self, db):
        payment = PaymentFactory(status=PaymentStatus.COMPLETED, receipt_number=None)

        assert PaymentLedger.attach_receipt(payment, "NLJ7RT61SV")
        assert Payment.objects.get(pk=payment.pk).receipt_number == "NLJ7RT61SV"

    def test_never_overwrites_receipt(self, db, completed_payment):
        assert not PaymentLedger.attach_receipt(completed_payment, "OTHER123")
        assert Payment.objects.get(pk=completed_payment.pk).receipt_number == "NLJ7RT61SV"

    def test_ignores_failed_payment(self, db):
        payment = PaymentFactory(status=PaymentStatus.FAILED)

        assert not PaymentLedger.attach_receipt(payment, "NLJ7RT61SV")

    def test_receipt_held_by_another_payment(self, db, completed_payment, caplog):
        payment = PaymentFactory(status=PaymentStatus.COMPLETED, receipt_number=None)

        assert not PaymentLedger.attach_receipt(payment, completed_payment.receipt_number)

        assert Payment.objects.get(pk=payment.pk).receipt_number is None
        assert "already recorded on another payment" in caplog.text


class TestClaimActivation:
    """Tests for PaymentLedger.claim_activation()."""

    def test_first_claim_wins(self, db, completed_payment):
        assert PaymentLedger.claim_activation(completed_payment)
        assert completed_payment.activated_at is not None

        other_copy = Payment.objects.get(pk=completed_payment.pk)
        assert not PaymentLedger.claim_activation(other_copy)

    def test_pending_payment_cannot_be_claimed(self, db, pending_payment):
        assert not PaymentLedger.claim_activation(pending_payment)
        assert Payment.objects.get(pk=pending_payment.pk).activated_at is None
