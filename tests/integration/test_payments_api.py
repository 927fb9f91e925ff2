"""Integration tests for /payments (services patched, session mocked)."""

import uuid
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from httpx import AsyncClient

from enrollpay.core.exceptions import ForbiddenError, InvalidTransitionError, NotFoundError
from enrollpay.models.enums import InstallmentStatus
from enrollpay.schemas.payment import PaymentStatistics
from enrollpay.services.installment_template_service import REGISTRATION_FEE_NAME

SERVICE = "enrollpay.api.v1.endpoints.payments.PaymentService"


@pytest.mark.asyncio
async def test_pay_installment(async_client: AsyncClient, api_base: str, admin, admin_headers, make_payment, mock_db):
    payment = make_payment()
    payment.apply_installment_status(REGISTRATION_FEE_NAME, InstallmentStatus.PAID)

    with patch(f"{SERVICE}.pay_installment", new_callable=AsyncMock) as mock_pay:
        mock_pay.return_value = payment
        resp = await async_client.post(
            f"{api_base}/payments/{payment.id}/installments/{REGISTRATION_FEE_NAME}/pay",
            headers=admin_headers,
        )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert Decimal(data["total_paid"]) == Decimal("20000")
    assert data["installments"][0]["status"] == "paid"
    args = mock_pay.await_args.args
    assert args[2] == REGISTRATION_FEE_NAME
    assert args[3].id == admin.id


@pytest.mark.asyncio
async def test_pay_installment_twice(async_client: AsyncClient, api_base: str, admin_headers, mock_db):
    with patch(f"{SERVICE}.pay_installment", new_callable=AsyncMock) as mock_pay:
        mock_pay.side_effect = InvalidTransitionError(f"Installment '{REGISTRATION_FEE_NAME}' is already paid")
        resp = await async_client.post(
            f"{api_base}/payments/{uuid.uuid4()}/installments/{REGISTRATION_FEE_NAME}/pay",
            headers=admin_headers,
        )

    assert resp.status_code == 409
    error = resp.json()["error"]
    assert error["code"] == "INVALID_TRANSITION"
    assert "already paid" in error["message"]


@pytest.mark.asyncio
async def test_update_installment_on_rejected_enrollment(async_client: AsyncClient, api_base: str, admin_headers, mock_db):
    with patch(f"{SERVICE}.update_installment", new_callable=AsyncMock) as mock_update:
        mock_update.side_effect = ForbiddenError("Cannot update the payment: the enrollment request is rejected")
        resp = await async_client.patch(
            f"{api_base}/payments/{uuid.uuid4()}/installments/First Installment",
            json={"status": "paid"},
            headers=admin_headers,
        )

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_update_installment_invalid_status(async_client: AsyncClient, api_base: str, admin_headers, mock_db):
    resp = await async_client.patch(
        f"{api_base}/payments/{uuid.uuid4()}/installments/First Installment",
        json={"status": "half-paid"},
        headers=admin_headers,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_student_cannot_pay(async_client: AsyncClient, api_base: str, student_headers, mock_db):
    resp = await async_client.post(
        f"{api_base}/payments/{uuid.uuid4()}/installments/{REGISTRATION_FEE_NAME}/pay",
        headers=student_headers,
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_lookup_missing_payment(async_client: AsyncClient, api_base: str, student_headers, mock_db):
    with patch(f"{SERVICE}.get_payment_details", new_callable=AsyncMock) as mock_details:
        mock_details.side_effect = NotFoundError("Payment record not found")
        resp = await async_client.get(
            f"{api_base}/payments/lookup",
            params={"course_id": str(uuid.uuid4())},
            headers=student_headers,
        )

    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


@pytest.mark.asyncio
async def test_student_sees_own_payment(async_client: AsyncClient, api_base: str, student, student_headers, make_payment, mock_db):
    payment = make_payment(student_id=student.id)
    with patch(f"{SERVICE}.get_payment", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = payment
        resp = await async_client.get(f"{api_base}/payments/{payment.id}", headers=student_headers)

    assert resp.status_code == 200
    assert len(resp.json()["data"]["installments"]) == 5


@pytest.mark.asyncio
async def test_payment_statistics(async_client: AsyncClient, api_base: str, admin_headers, mock_db):
    stats = PaymentStatistics(total_payments=2, paid_count=1, unpaid_count=1, total_revenue=Decimal("120000.00"),
                              average_payment=Decimal("60000.00"))
    with patch(f"{SERVICE}.get_statistics", new_callable=AsyncMock) as mock_stats:
        mock_stats.return_value = stats
        resp = await async_client.get(f"{api_base}/payments/statistics", headers=admin_headers)

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["total_payments"] == 2
    assert Decimal(data["average_payment"]) == Decimal("60000")
