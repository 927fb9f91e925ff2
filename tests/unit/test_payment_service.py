"""Unit tests for PaymentService (database mocked)."""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from enrollpay.core.exceptions import ConflictError, ForbiddenError, InvalidTransitionError, NotFoundError
from enrollpay.models.academic import Course
from enrollpay.models.center_settings import CenterSettings
from enrollpay.models.enums import EnrollmentStatus, InstallmentStatus, PaymentStatus
from enrollpay.services.installment_template_service import REGISTRATION_FEE_NAME
from enrollpay.services.payment_service import PaymentService

SVC = "enrollpay.services.payment_service"
GET_PAYMENT = f"{SVC}.PaymentService.get_payment"
GET_BY_ENROLLMENT = f"{SVC}.PaymentService.get_payment_by_enrollment"
LOAD_ENROLLMENT = "enrollpay.services.consistency_service.ConsistencyService.load_enrollment"


# ---------------------------------------------------------------------------
# create_initial_payment
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_initial_payment_builds_schedule(now):
    db = AsyncMock(spec=AsyncSession)
    enrollment_id, student_id, course_id = uuid4(), uuid4(), uuid4()
    course = Course(id=course_id, title="English B1", price=Decimal("100000"))
    center = CenterSettings(center_name="Center", registration_fee=Decimal("20000"), enrollment_validity_hours=48)

    with patch(f"{SVC}.PaymentService.get_payment_for_student_course", new_callable=AsyncMock) as mock_existing, \
            patch(f"{SVC}.CatalogService.get_course", new_callable=AsyncMock) as mock_course, \
            patch(f"{SVC}.CenterSettingsService.get_settings", new_callable=AsyncMock) as mock_settings, \
            patch(f"{SVC}.InstallmentTemplateService.get_by_course", new_callable=AsyncMock) as mock_template:
        mock_existing.return_value = None
        mock_course.return_value = course
        mock_settings.return_value = center
        mock_template.return_value = None

        payment = await PaymentService.create_initial_payment(
            db, enrollment_id, student_id, course_id, auto_commit=False, now=now
        )

    assert payment.enrollment_id == enrollment_id
    assert payment.total_due == Decimal("120000.00")
    assert payment.total_paid == Decimal("0.00")
    assert payment.payment_status == PaymentStatus.PENDING
    assert [i.amount for i in payment.installments] == [Decimal("20000.00")] + [Decimal("25000.00")] * 4
    assert all(i.status == InstallmentStatus.UNPAID for i in payment.installments)
    assert [i.position for i in payment.installments] == [0, 1, 2, 3, 4]
    db.add.assert_called_once_with(payment)
    assert db.flush.called
    assert not db.commit.called


@pytest.mark.asyncio
async def test_create_initial_payment_conflict(make_payment):
    db = AsyncMock(spec=AsyncSession)
    existing = make_payment()

    with patch(f"{SVC}.PaymentService.get_payment_for_student_course", new_callable=AsyncMock) as mock_existing:
        mock_existing.return_value = existing
        with pytest.raises(ConflictError):
            await PaymentService.create_initial_payment(db, uuid4(), existing.student_id, existing.course_id)

    assert not db.add.called


@pytest.mark.asyncio
async def test_create_initial_payment_unknown_course():
    db = AsyncMock(spec=AsyncSession)
    with patch(f"{SVC}.PaymentService.get_payment_for_student_course", new_callable=AsyncMock) as mock_existing, \
            patch(f"{SVC}.CatalogService.get_course", new_callable=AsyncMock) as mock_course:
        mock_existing.return_value = None
        mock_course.return_value = None
        with pytest.raises(NotFoundError):
            await PaymentService.create_initial_payment(db, uuid4(), uuid4(), uuid4())


# ---------------------------------------------------------------------------
# update_installment / pay_installment
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_paying_fee_marks_enrollment(make_enrollment, make_payment, admin, audit_log):
    db = AsyncMock(spec=AsyncSession)
    enrollment = make_enrollment()
    payment = make_payment(enrollment=enrollment)

    with patch(GET_PAYMENT, new_callable=AsyncMock) as mock_get, \
            patch(LOAD_ENROLLMENT, new_callable=AsyncMock) as mock_load:
        mock_get.return_value = payment
        mock_load.return_value = enrollment

        result = await PaymentService.pay_installment(db, payment.id, REGISTRATION_FEE_NAME, admin)

    assert result.total_paid == Decimal("20000.00")
    assert enrollment.registration_fee_paid is True
    assert enrollment.payment_date is not None
    assert db.commit.called
    actions = [c.args[0] for c in audit_log.await_args_list]
    assert actions == ["update_installment", "record_registration_payment"]
    details = audit_log.await_args_list[0].args[4]
    assert details["old_status"] == "unpaid"
    assert details["new_status"] == "paid"
    assert details["amount"] == Decimal("20000.00")


@pytest.mark.asyncio
async def test_paying_other_installment_leaves_enrollment(make_enrollment, make_payment, admin, audit_log):
    db = AsyncMock(spec=AsyncSession)
    enrollment = make_enrollment()
    payment = make_payment(enrollment=enrollment)

    with patch(GET_PAYMENT, new_callable=AsyncMock) as mock_get, \
            patch(LOAD_ENROLLMENT, new_callable=AsyncMock) as mock_load:
        mock_get.return_value = payment
        mock_load.return_value = enrollment
        await PaymentService.pay_installment(db, payment.id, "First Installment", admin)

    assert enrollment.registration_fee_paid is False
    assert [c.args[0] for c in audit_log.await_args_list] == ["update_installment"]


@pytest.mark.asyncio
async def test_double_pay_fails_without_commit(make_enrollment, make_payment, admin):
    db = AsyncMock(spec=AsyncSession)
    enrollment = make_enrollment(registration_fee_paid=True)
    payment = make_payment(enrollment=enrollment)
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)

    with patch(GET_PAYMENT, new_callable=AsyncMock) as mock_get, \
            patch(LOAD_ENROLLMENT, new_callable=AsyncMock) as mock_load:
        mock_get.return_value = payment
        mock_load.return_value = enrollment
        with pytest.raises(InvalidTransitionError, match="already paid"):
            await PaymentService.pay_installment(db, payment.id, REGISTRATION_FEE_NAME, admin)

    assert payment.total_paid == Decimal("20000.00")
    assert not db.commit.called


@pytest.mark.asyncio
async def test_pay_on_refunded_payment_fails_without_commit(make_enrollment, make_payment, admin, audit_log):
    db = AsyncMock(spec=AsyncSession)
    enrollment = make_enrollment(registration_fee_paid=True)
    payment = make_payment(enrollment=enrollment)
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)
    payment.refund("Refunded on request", admin.id)

    with patch(GET_PAYMENT, new_callable=AsyncMock) as mock_get, \
            patch(LOAD_ENROLLMENT, new_callable=AsyncMock) as mock_load:
        mock_get.return_value = payment
        mock_load.return_value = enrollment
        with pytest.raises(InvalidTransitionError, match="refunded"):
            await PaymentService.pay_installment(db, payment.id, "First Installment", admin)

    assert payment.total_paid == Decimal("20000.00")
    assert payment.payment_status == PaymentStatus.REFUNDED
    assert payment.get_installment("First Installment").status == InstallmentStatus.UNPAID
    assert not db.commit.called
    assert not audit_log.called


@pytest.mark.asyncio
async def test_update_blocked_for_rejected_enrollment(make_enrollment, make_payment, admin):
    db = AsyncMock(spec=AsyncSession)
    enrollment = make_enrollment(status=EnrollmentStatus.REJECTED)
    payment = make_payment(enrollment=enrollment)

    with patch(GET_PAYMENT, new_callable=AsyncMock) as mock_get, \
            patch(LOAD_ENROLLMENT, new_callable=AsyncMock) as mock_load:
        mock_get.return_value = payment
        mock_load.return_value = enrollment
        with pytest.raises(ForbiddenError, match="rejected"):
            await PaymentService.pay_installment(db, payment.id, REGISTRATION_FEE_NAME, admin)

    assert payment.total_paid == Decimal("0.00")
    assert not db.commit.called


@pytest.mark.asyncio
async def test_update_blocked_for_unlinked_payment(make_payment, admin):
    db = AsyncMock(spec=AsyncSession)
    payment = make_payment(enrollment_id=None)

    with patch(GET_PAYMENT, new_callable=AsyncMock) as mock_get:
        mock_get.return_value = payment
        with pytest.raises(ForbiddenError, match="deleted"):
            await PaymentService.pay_installment(db, payment.id, REGISTRATION_FEE_NAME, admin)


@pytest.mark.asyncio
async def test_update_requires_admin(student):
    db = AsyncMock(spec=AsyncSession)
    with pytest.raises(ForbiddenError):
        await PaymentService.pay_installment(db, uuid4(), REGISTRATION_FEE_NAME, student)
    assert not db.execute.called


@pytest.mark.asyncio
async def test_update_missing_payment(admin):
    db = AsyncMock(spec=AsyncSession)
    with patch(GET_PAYMENT, new_callable=AsyncMock) as mock_get:
        mock_get.return_value = None
        with pytest.raises(NotFoundError):
            await PaymentService.pay_installment(db, uuid4(), REGISTRATION_FEE_NAME, admin)


@pytest.mark.asyncio
async def test_concurrent_update_reported_as_conflict(make_enrollment, make_payment, admin, audit_log):
    db = AsyncMock(spec=AsyncSession)
    db.commit.side_effect = StaleDataError("version mismatch")
    enrollment = make_enrollment()
    payment = make_payment(enrollment=enrollment)

    with patch(GET_PAYMENT, new_callable=AsyncMock) as mock_get, \
            patch(LOAD_ENROLLMENT, new_callable=AsyncMock) as mock_load:
        mock_get.return_value = payment
        mock_load.return_value = enrollment
        with pytest.raises(ConflictError):
            await PaymentService.pay_installment(db, payment.id, REGISTRATION_FEE_NAME, admin)

    assert db.rollback.called
    assert not audit_log.called


# ---------------------------------------------------------------------------
# refund / cancel / delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_refund_payment(make_payment, admin, audit_log):
    db = AsyncMock(spec=AsyncSession)
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)

    locks = []

    async def lock_enrollment(session, enrollment_id, for_update=False):
        locks.append(("enrollment", for_update))

    async def lock_payment(session, enrollment_id, for_update=False):
        locks.append(("payment", for_update))
        return payment

    with patch(LOAD_ENROLLMENT, side_effect=lock_enrollment), \
            patch(GET_BY_ENROLLMENT, side_effect=lock_payment):
        result = await PaymentService.refund_payment(db, payment.enrollment_id, "Rejected", admin)

    assert locks == [("enrollment", True), ("payment", True)]
    assert result.refund_amount == Decimal("20000.00")
    assert result.payment_status == PaymentStatus.REFUNDED
    assert payment.refunded_by == admin.id
    assert db.commit.called
    assert audit_log.await_args.args[0] == "refund_payment"


@pytest.mark.asyncio
async def test_refund_without_money_cancels(make_payment, admin, audit_log):
    db = AsyncMock(spec=AsyncSession)
    payment = make_payment()

    with patch(LOAD_ENROLLMENT, new_callable=AsyncMock), \
            patch(GET_BY_ENROLLMENT, new_callable=AsyncMock) as mock_get:
        mock_get.return_value = payment
        result = await PaymentService.refund_payment(db, payment.enrollment_id, "No show", admin)

    assert result.refund_amount == Decimal("0.00")
    assert result.payment_status == PaymentStatus.CANCELLED
    assert audit_log.await_args.args[0] == "cancel_payment"


@pytest.mark.asyncio
async def test_refund_twice_rejected(make_payment, admin):
    db = AsyncMock(spec=AsyncSession)
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)
    payment.refund("first", admin.id)

    with patch(LOAD_ENROLLMENT, new_callable=AsyncMock), \
            patch(GET_BY_ENROLLMENT, new_callable=AsyncMock) as mock_get:
        mock_get.return_value = payment
        with pytest.raises(InvalidTransitionError):
            await PaymentService.refund_payment(db, payment.enrollment_id, "second", admin)
    assert not db.commit.called


@pytest.mark.asyncio
async def test_refund_requires_admin(student):
    db = AsyncMock(spec=AsyncSession)
    with pytest.raises(ForbiddenError):
        await PaymentService.refund_payment(db, uuid4(), "please", student)


@pytest.mark.asyncio
async def test_cancel_payment(make_payment):
    db = AsyncMock(spec=AsyncSession)
    payment = make_payment()
    with patch(GET_BY_ENROLLMENT, new_callable=AsyncMock) as mock_get:
        mock_get.return_value = payment
        result = await PaymentService.cancel_payment(db, payment.enrollment_id, "Expired")

    assert result.payment_status == PaymentStatus.CANCELLED
    assert result.refund_reason == "Expired"
    assert result.total_paid == Decimal("0.00")


@pytest.mark.asyncio
async def test_delete_payment_with_transactions_forbidden(make_payment):
    db = AsyncMock(spec=AsyncSession)
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)

    with patch(GET_BY_ENROLLMENT, new_callable=AsyncMock) as mock_get:
        mock_get.return_value = payment
        with pytest.raises(ForbiddenError, match="financial transactions"):
            await PaymentService.delete_payment(db, payment.enrollment_id)
    assert not db.delete.called


@pytest.mark.asyncio
async def test_delete_payment_of_approved_enrollment_forbidden(make_enrollment, make_payment):
    db = AsyncMock(spec=AsyncSession)
    enrollment = make_enrollment(status=EnrollmentStatus.APPROVED, registration_fee_paid=True)
    payment = make_payment(enrollment=enrollment)

    with patch(GET_BY_ENROLLMENT, new_callable=AsyncMock) as mock_get:
        mock_get.return_value = payment
        with pytest.raises(ForbiddenError, match="approved"):
            await PaymentService.delete_payment(db, enrollment.id, enrollment=enrollment)


@pytest.mark.asyncio
async def test_delete_payment_without_money(make_enrollment, make_payment):
    db = AsyncMock(spec=AsyncSession)
    enrollment = make_enrollment()
    payment = make_payment(enrollment=enrollment)

    with patch(GET_BY_ENROLLMENT, new_callable=AsyncMock) as mock_get:
        mock_get.return_value = payment
        message = await PaymentService.delete_payment(db, enrollment.id, enrollment=enrollment)

    assert message == "Payment record deleted"
    db.delete.assert_awaited_once_with(payment)
    assert db.commit.called


@pytest.mark.asyncio
async def test_delete_missing_payment_is_ok():
    db = AsyncMock(spec=AsyncSession)
    with patch(GET_BY_ENROLLMENT, new_callable=AsyncMock) as mock_get:
        mock_get.return_value = None
        message = await PaymentService.delete_payment(db, uuid4())
    assert "not found" in message
    assert not db.delete.called


@pytest.mark.asyncio
async def test_can_refund_payment(make_payment):
    db = AsyncMock(spec=AsyncSession)
    unpaid = make_payment()
    paid = make_payment()
    paid.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)

    with patch(GET_BY_ENROLLMENT, new_callable=AsyncMock) as mock_get:
        mock_get.return_value = unpaid
        assert await PaymentService.can_refund_payment(db, unpaid.enrollment_id) is False
        mock_get.return_value = paid
        assert await PaymentService.can_refund_payment(db, paid.enrollment_id) is True
        paid.refund("done", None)
        assert await PaymentService.can_refund_payment(db, paid.enrollment_id) is False
        mock_get.return_value = None
        assert await PaymentService.can_refund_payment(db, uuid4()) is False


# ---------------------------------------------------------------------------
# statistics
# ---------------------------------------------------------------------------

def test_summarize_payments():
    rows = [
        (Decimal("120000"), Decimal("120000"), PaymentStatus.COMPLETED),
        (Decimal("20000"), Decimal("120000"), PaymentStatus.PENDING),
        (Decimal("0"), Decimal("120000"), PaymentStatus.PENDING),
        (Decimal("0"), Decimal("120000"), PaymentStatus.CANCELLED),
        (Decimal("45000"), Decimal("120000"), PaymentStatus.REFUNDED),
    ]
    stats = PaymentService.summarize_payments(rows)

    assert stats.total_payments == 5
    assert stats.paid_count == 1
    assert stats.partial_count == 1
    assert stats.unpaid_count == 2
    assert stats.refunded_count == 1
    assert stats.total_revenue == Decimal("140000.00")
    assert stats.average_payment == Decimal("28000.00")


def test_summarize_no_payments():
    stats = PaymentService.summarize_payments([])
    assert stats.total_payments == 0
    assert stats.total_revenue == Decimal("0.00")
    assert stats.average_payment == Decimal("0")
