"""
Payment service tests.

Verifies:
- Payments take money off the remaining balance and never overshoot it
- The conditional decrement rejects a payment computed from a stale balance
- A lost race is retried against the fresh balance
"""

from datetime import datetime
from decimal import Decimal

import pytest

from tailorshop.models import Payment
from tailorshop.services import order_service, payment_service
from tailorshop.services.order_service import OrderNotFoundError
from tailorshop.services.payment_service import PaymentNotAllowed
from tailorshop.services.permission_service import Forbidden
from tailorshop.validation import ConflictError, ExcessPayment, NonPositiveAmount, ValidationError


def remaining(order_id) -> Decimal:
    return order_service.get_order(order_id).remaining_amount


class TestAddPayment:

    def test_payment_sequence(self, db_session, make_order, manager):
        order = make_order(total_amount="500", deposit_amount="100")

        payment_service.add_payment(order.id, "300", manager)
        assert remaining(order.id) == Decimal("100.00")

        with pytest.raises(ExcessPayment):
            payment_service.add_payment(order.id, "150", manager)
        assert remaining(order.id) == Decimal("100.00")

        payment_service.add_payment(order.id, 100, manager, notes="settled at pickup")
        assert remaining(order.id) == Decimal("0.00")
        assert db_session.query(Payment).filter_by(order_id=order.id).count() == 2

    def test_fully_paid_order_rejects_more(self, db_session, make_order, manager):
        order = make_order(total_amount="100", deposit_amount="100")
        with pytest.raises(ExcessPayment):
            payment_service.add_payment(order.id, "0.01", manager)

    @pytest.mark.parametrize("amount", ["0", "-20", 0])
    def test_non_positive(self, db_session, make_order, manager, amount):
        order = make_order()
        with pytest.raises(NonPositiveAmount):
            payment_service.add_payment(order.id, amount, manager)

    @pytest.mark.parametrize("amount", ["abc", "1.234", True, None, "NaN"])
    def test_malformed_amount(self, db_session, make_order, manager, amount):
        order = make_order()
        with pytest.raises(ValidationError):
            payment_service.add_payment(order.id, amount, manager)

    def test_payment_date_and_notes(self, db_session, make_order, manager):
        order = make_order()
        payment = payment_service.add_payment(
            order.id, "50.25", manager, notes=" transfer ", payment_date="2026-02-01T09:00:00+03:00"
        )
        assert payment.payment_date == datetime(2026, 2, 1, 6, 0)
        assert payment.notes == "transfer"
        assert payment.to_dict()["amount"] == "50.25"
        assert payment.created_by_user_id == manager.id

    def test_bad_payment_date(self, db_session, make_order, manager):
        order = make_order()
        with pytest.raises(ValidationError) as exc:
            payment_service.add_payment(order.id, "10", manager, payment_date="yesterday")
        assert "paymentDate" in exc.value.errors

    def test_delivered_order_is_closed(self, db_session, make_order, manager):
        order = make_order(total_amount="500", deposit_amount="100")
        order_service.change_status(order.id, "stitched", manager)
        order_service.change_status(order.id, "delivered", manager, confirm_outstanding=True)

        with pytest.raises(PaymentNotAllowed):
            payment_service.add_payment(order.id, "50", manager)
        assert remaining(order.id) == Decimal("400.00")

    def test_tailor_cannot_add_payment(self, db_session, make_order, tailor):
        order = make_order()
        with pytest.raises(Forbidden):
            payment_service.add_payment(order.id, "10", tailor)

    def test_unknown_order(self, db_session, manager):
        with pytest.raises(OrderNotFoundError):
            payment_service.add_payment(12345, "10", manager)


class TestConcurrentPayments:

    def test_conditional_decrement_rejects_stale_balance(self, db_session, make_order):
        order = make_order(total_amount="300", deposit_amount="0")

        # Both devices saw remaining=300 and validated 250 against it
        payment_service.insert_payment(order.id, Decimal("250"))
        with pytest.raises(ConflictError):
            payment_service.insert_payment(order.id, Decimal("250"))

        assert remaining(order.id) == Decimal("50.00")
        assert db_session.query(Payment).filter_by(order_id=order.id).count() == 1

    def test_lost_race_is_retried_against_fresh_balance(self, db_session, make_order, manager, monkeypatch):
        order = make_order(total_amount="300", deposit_amount="0")
        real_insert = payment_service.insert_payment
        calls = []

        def racing_insert(order_id, amount, **kwargs):
            calls.append(amount)
            if len(calls) == 1:
                # Another device lands its payment between our read and our write
                real_insert(order_id, Decimal("250"))
            return real_insert(order_id, amount, **kwargs)

        monkeypatch.setattr(payment_service, "insert_payment", racing_insert)

        with pytest.raises(ExcessPayment):
            payment_service.add_payment(order.id, "250", manager)

        assert len(calls) == 1
        assert remaining(order.id) == Decimal("50.00")

    def test_retry_succeeds_when_balance_still_covers(self, db_session, make_order, manager, monkeypatch):
        order = make_order(total_amount="300", deposit_amount="0")
        real_insert = payment_service.insert_payment
        calls = []

        def racing_insert(order_id, amount, **kwargs):
            calls.append(amount)
            if len(calls) == 1:
                # The other device's 100 commits first and our write loses
                real_insert(order_id, Decimal("100"))
                raise ConflictError("Order balance changed before the payment could be applied")
            return real_insert(order_id, amount, **kwargs)

        monkeypatch.setattr(payment_service, "insert_payment", racing_insert)

        payment_service.add_payment(order.id, "150", manager)
        assert calls == [Decimal("150.00"), Decimal("150.00")]
        assert remaining(order.id) == Decimal("50.00")
        assert db_session.query(Payment).filter_by(order_id=order.id).count() == 2

    def test_gives_up_after_configured_attempts(self, app, db_session, make_order, manager, monkeypatch):
        order = make_order()
        calls = []

        def always_conflicts(order_id, amount, **kwargs):
            calls.append(amount)
            raise ConflictError("balance changed")

        monkeypatch.setattr(payment_service, "insert_payment", always_conflicts)
        monkeypatch.setitem(app.config, "PAYMENT_CONFLICT_ATTEMPTS", 3)

        with pytest.raises(ConflictError):
            payment_service.add_payment(order.id, "10", manager)
        assert len(calls) == 3


class TestPaymentSummary:

    def test_summary_matches_rows(self, db_session, make_order, manager):
        order = make_order(total_amount="500", deposit_amount="100")
        payment_service.add_payment(order.id, "120.50", manager)
        payment_service.add_payment(order.id, "79.50", manager)

        summary = payment_service.get_payment_summary(order.id)
        assert summary["paid_amount"] == "200.00"
        assert summary["remaining_amount"] == "200.00"
        assert summary["payment_count"] == 2
        assert summary["has_outstanding_balance"] is True

    def test_list_newest_first(self, db_session, make_order, manager):
        order = make_order()
        older = payment_service.add_payment(order.id, "10", manager, payment_date="2026-01-01T00:00:00Z")
        newer = payment_service.add_payment(order.id, "20", manager, payment_date="2026-01-02T00:00:00Z")
        assert [p.id for p in payment_service.list_payments_for_order(order.id)] == [newer.id, older.id]
