"""Unit tests for the Payment aggregate: installment transitions, totals and refunds."""

import pytest
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

from enrollpay.core.exceptions import InvalidTransitionError, NotFoundError
from enrollpay.models.enums import InstallmentStatus, PaymentStatus, SettlementStatus
from enrollpay.services.installment_template_service import REGISTRATION_FEE_NAME


def _paid_sum(payment):
    return sum(
        (i.amount for i in payment.installments if i.status == InstallmentStatus.PAID),
        Decimal("0"),
    )


def test_new_payment_totals(make_payment):
    payment = make_payment()
    assert payment.total_due == Decimal("120000")
    assert payment.total_paid == Decimal("0.00")
    assert payment.initial_fee_installment.name == REGISTRATION_FEE_NAME
    assert payment.settlement_status == SettlementStatus.UNPAID
    assert not payment.has_financial_transactions


def test_pay_registration_fee(make_payment, now):
    payment = make_payment()
    installment, old = payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID, now)

    assert old == InstallmentStatus.UNPAID
    assert installment.status == InstallmentStatus.PAID
    assert installment.payment_date == now
    assert payment.total_paid == Decimal("20000.00")
    assert payment.payment_status == PaymentStatus.PENDING
    assert payment.settlement_status == SettlementStatus.PARTIAL


def test_paying_fee_twice_fails(make_payment):
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)

    with pytest.raises(InvalidTransitionError, match="already paid"):
        payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)
    assert payment.total_paid == Decimal("20000.00")


def test_paid_installment_cannot_be_unpaid(make_payment):
    payment = make_payment()
    payment.apply_installment_status("First Installment", InstallmentStatus.PAID)

    with pytest.raises(InvalidTransitionError, match="cannot be modified"):
        payment.apply_installment_status("First Installment", InstallmentStatus.UNPAID)
    assert payment.get_installment("First Installment").status == InstallmentStatus.PAID


def test_unpaid_to_unpaid_rejected(make_payment):
    payment = make_payment()
    with pytest.raises(InvalidTransitionError, match="already unpaid"):
        payment.apply_installment_status("Second Installment", InstallmentStatus.UNPAID)


def test_installment_cannot_be_refunded_directly(make_payment):
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)
    with pytest.raises(InvalidTransitionError):
        payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.REFUNDED)


def test_unknown_installment(make_payment):
    payment = make_payment()
    with pytest.raises(NotFoundError):
        payment.apply_installment_status("Tenth Installment", InstallmentStatus.PAID)


def test_total_paid_tracks_paid_installments(make_payment):
    payment = make_payment()
    for inst in list(payment.installments):
        payment.apply_installment_status(inst.name, InstallmentStatus.PAID)
        assert payment.total_paid == _paid_sum(payment)


def test_all_paid_completes_payment(make_payment):
    payment = make_payment()
    for inst in list(payment.installments):
        payment.apply_installment_status(inst.name, InstallmentStatus.PAID)

    assert payment.payment_status == PaymentStatus.COMPLETED
    assert payment.total_paid == payment.total_due
    assert payment.settlement_status == SettlementStatus.PAID


def test_refund_without_money_cancels(make_payment, admin):
    payment = make_payment()
    amount = payment.refund("Changed mind", admin.id)

    assert amount == Decimal("0.00")
    assert payment.payment_status == PaymentStatus.CANCELLED
    assert payment.refund_date is None


def test_refund_returns_everything_received(make_payment, admin, now):
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)
    payment.apply_installment_status("First Installment", InstallmentStatus.PAID)

    amount = payment.refund("Request rejected", admin.id, now=now)

    assert amount == Decimal("45000.00")
    assert payment.payment_status == PaymentStatus.REFUNDED
    assert payment.refund_reason == "Request rejected"
    assert payment.refund_date == now
    assert payment.refunded_by == admin.id
    # total_paid keeps what was historically received
    assert payment.total_paid == Decimal("45000.00")
    statuses = [i.status for i in payment.installments]
    assert statuses.count(InstallmentStatus.REFUNDED) == 2
    assert statuses.count(InstallmentStatus.UNPAID) == 3
    assert all(i.refund_date == now for i in payment.installments if i.status == InstallmentStatus.REFUNDED)


def test_double_refund_rejected(make_payment, admin):
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)
    payment.refund("first", admin.id)

    with pytest.raises(InvalidTransitionError, match="already been refunded"):
        payment.refund("second", admin.id)


def test_refunded_installment_cannot_be_paid_again(make_payment, admin):
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)
    payment.refund("closing", admin.id)

    with pytest.raises(InvalidTransitionError, match="refunded"):
        payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)


def test_cancelled_payment_refuses_installment_changes(make_payment):
    payment = make_payment()
    payment.cancel("Expired")

    with pytest.raises(InvalidTransitionError, match="cancelled"):
        payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)
    assert payment.payment_status == PaymentStatus.CANCELLED
    assert payment.total_paid == Decimal("0.00")


def test_refunded_payment_refuses_new_installments(make_payment, admin):
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)
    payment.refund("closing", admin.id)

    with pytest.raises(InvalidTransitionError, match="refunded"):
        payment.apply_installment_status("First Installment", InstallmentStatus.PAID)
    assert payment.total_paid == Decimal("20000.00")
    assert payment.get_installment("First Installment").status == InstallmentStatus.UNPAID
    assert payment.unrefunded_installments == []


def test_refund_settles_installment_left_paid_after_refund(make_payment, admin, now):
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)
    payment.refund("closing", admin.id)
    # row written before refunded payments were locked against new installments
    stray = payment.get_installment("First Installment")
    stray.status = InstallmentStatus.PAID
    payment.recompute_totals()

    amount = payment.refund("settle remainder", admin.id, now=now)

    assert amount == Decimal("25000.00")
    assert stray.status == InstallmentStatus.REFUNDED
    assert stray.refund_date == now
    assert payment.unrefunded_installments == []
    assert payment.total_paid == Decimal("45000.00")
    with pytest.raises(InvalidTransitionError, match="already been refunded"):
        payment.refund("again", admin.id)


def test_refunded_payment_cannot_be_cancelled(make_payment, admin):
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)
    payment.refund("closing", admin.id)
    with pytest.raises(InvalidTransitionError):
        payment.cancel("too late")


def test_overdue_installments(make_payment, now):
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)

    later = now + timedelta(days=45)
    overdue = payment.overdue_installments(later)
    assert [i.name for i in overdue] == ["First Installment"]
    assert payment.overdue_installments(now) == []


def test_each_payment_has_one_initial_fee(make_payment):
    for price in (Decimal("1000"), Decimal("100000"), Decimal("12345.67")):
        payment = make_payment(price=price, id=uuid4())
        assert sum(1 for i in payment.installments if i.is_initial_fee) == 1
