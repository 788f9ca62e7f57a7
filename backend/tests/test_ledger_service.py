"""
Ledger engine tests.

Pure functions over Decimal; no app or database needed.
"""

from decimal import Decimal

import pytest

from tailorshop.services import ledger_service
from tailorshop.services.ledger_service import OrderSnapshot
from tailorshop.validation import (
    ExcessPayment,
    InvalidAmount,
    NonPositiveAmount,
    ValidationError,
)


D = Decimal


def snapshot(total="500.00", deposit="100.00", remaining=None, status="pending"):
    total, deposit = D(total), D(deposit)
    return OrderSnapshot(
        id=1,
        serial_number="1001",
        status=status,
        total_amount=total,
        deposit_amount=deposit,
        remaining_amount=D(remaining) if remaining is not None else total - deposit,
        customer_name="Khalid",
        customer_phone="0501234567",
    )


class TestOrderCreation:

    def test_remaining_is_total_minus_deposit(self):
        assert ledger_service.validate_order_creation(D("500"), D("100")) == D("400")

    def test_missing_deposit_counts_as_zero(self):
        assert ledger_service.validate_order_creation(D("250.50"), None) == D("250.50")

    def test_deposit_equal_to_total_is_allowed(self):
        assert ledger_service.validate_order_creation(D("300"), D("300")) == D("0")

    def test_every_violated_field_is_reported(self):
        with pytest.raises(ValidationError) as exc:
            ledger_service.validate_order_creation(D("0"), D("-5"))
        assert set(exc.value.errors) == {"totalAmount", "depositAmount"}

    def test_deposit_over_invalid_total_is_still_reported(self):
        with pytest.raises(ValidationError) as exc:
            ledger_service.validate_order_creation(D("0"), D("50"))
        assert set(exc.value.errors) == {"totalAmount", "depositAmount"}

    def test_deposit_over_total(self):
        with pytest.raises(ValidationError) as exc:
            ledger_service.validate_order_creation(D("100"), D("150"))
        assert list(exc.value.errors) == ["depositAmount"]

    def test_missing_total(self):
        with pytest.raises(ValidationError) as exc:
            ledger_service.validate_order_creation(None, D("10"))
        assert "totalAmount" in exc.value.errors


class TestComputeRemaining:

    def test_subtracts_deposit_and_payments(self):
        assert ledger_service.compute_remaining(D("500"), D("100"), D("300")) == D("100")

    def test_negative_result_is_never_clamped(self):
        with pytest.raises(InvalidAmount):
            ledger_service.compute_remaining(D("500"), D("100"), D("400.01"))

    def test_many_small_payments_do_not_drift(self):
        total = ledger_service.payments_total([D("0.10")] * 1000)
        assert total == D("100.00")
        assert ledger_service.compute_remaining(D("100.00"), D("0"), total) == D("0")


class TestPayments:

    def test_zero_and_negative_amounts_rejected(self):
        with pytest.raises(NonPositiveAmount):
            ledger_service.validate_payment(D("0"), D("100"))
        with pytest.raises(NonPositiveAmount):
            ledger_service.validate_payment(D("-1"), D("100"))

    def test_overshoot_rejected(self):
        with pytest.raises(ExcessPayment):
            ledger_service.validate_payment(D("100.01"), D("100"))

    def test_exact_settlement_allowed(self):
        ledger_service.validate_payment(D("100"), D("100"))

    def test_apply_payment_returns_new_snapshot(self):
        before = snapshot()
        after = ledger_service.apply_payment(before, D("300"))
        assert after.remaining_amount == D("100.00")
        assert before.remaining_amount == D("400.00")
        assert after is not before

    def test_payment_scenario(self):
        order = snapshot(total="500", deposit="100")
        assert order.remaining_amount == D("400")

        order = ledger_service.apply_payment(order, D("300"))
        assert order.remaining_amount == D("100")

        with pytest.raises(ExcessPayment):
            ledger_service.apply_payment(order, D("150"))

        order = ledger_service.apply_payment(order, D("100"))
        assert order.remaining_amount == D("0")
        assert not ledger_service.has_outstanding_balance(order)


class TestLedgerSummary:

    def test_summary_formats_amounts(self):
        summary = ledger_service.ledger_summary(snapshot(remaining="150.00"), D("250.00"))
        assert summary == {
            "total_amount": "500.00",
            "deposit_amount": "100.00",
            "paid_amount": "250.00",
            "remaining_amount": "150.00",
            "has_outstanding_balance": True,
        }

    def test_mismatch_with_payment_rows_raises(self):
        with pytest.raises(InvalidAmount):
            ledger_service.ledger_summary(snapshot(remaining="150.00"), D("100.00"))
