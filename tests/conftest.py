"""Shared pytest fixtures for unit and integration tests."""

import os
import uuid
from decimal import Decimal
from datetime import datetime
from unittest.mock import AsyncMock, patch

# Settings are read at import time
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient

load_dotenv()

from enrollpay.main import app
from enrollpay.database import get_db
from enrollpay.config import settings
from enrollpay.models import (
    EnrollmentRequest, EnrollmentStatus, InstallmentStatus, Payment, PaymentInstallment, PaymentStatus,
)
from enrollpay.schemas.actor import Actor
from enrollpay.models.enums import UserRole
from enrollpay.services.installment_template_service import InstallmentTemplateService

NOW = datetime(2026, 3, 1, 9, 0, 0)


@pytest.fixture
def api_base() -> str:
    """Base URL for API requests."""
    return f"http://test{settings.API_V1_PREFIX}"


@pytest.fixture
async def async_client(api_base: str):
    transport = ASGITransport(app=app)
    client = AsyncClient(transport=transport, base_url=api_base, timeout=30.0)
    yield client
    await client.aclose()


@pytest.fixture
def mock_db():
    """Swap the request session for a mock; services are patched per test."""
    session = AsyncMock()

    async def _override():
        yield session

    app.dependency_overrides[get_db] = _override
    yield session
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def audit_log():
    """Audit records go to their own session; keep them off the database in tests."""
    with patch(
        "enrollpay.services.audit_service.AuditService.log_action",
        new_callable=AsyncMock,
    ) as mock_log:
        mock_log.return_value = True
        yield mock_log


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def admin() -> Actor:
    return Actor(id=uuid.uuid4(), role=UserRole.ADMIN)


@pytest.fixture
def student() -> Actor:
    return Actor(id=uuid.uuid4(), role=UserRole.STUDENT)


@pytest.fixture
def admin_headers(admin: Actor) -> dict:
    return {"X-Actor-Id": str(admin.id), "X-Actor-Role": admin.role.value}


@pytest.fixture
def student_headers(student: Actor) -> dict:
    return {"X-Actor-Id": str(student.id), "X-Actor-Role": student.role.value}


@pytest.fixture
def make_enrollment(now):
    """Build a detached EnrollmentRequest with every column set."""
    def _make(status=EnrollmentStatus.PENDING, registration_fee_paid=False, **overrides):
        fields = dict(
            id=uuid.uuid4(),
            student_id=uuid.uuid4(),
            course_id=uuid.uuid4(),
            preferred_level=None,
            status=status,
            request_date=now,
            approval_date=None,
            assigned_class_id=None,
            admin_notes=None,
            registration_fee_paid=registration_fee_paid,
            payment_date=None,
            expires_at=now.replace(day=3),
            created_at=now,
            updated_at=now,
        )
        fields.update(overrides)
        return EnrollmentRequest(**fields)
    return _make


@pytest.fixture
def make_payment(now):
    """
    Build a detached Payment with the default schedule
    (price 100000, registration fee 20000 unless overridden).
    """
    def _make(
        price=Decimal("100000"),
        registration_fee=Decimal("20000"),
        enrollment=None,
        entries=None,
        **overrides,
    ):
        schedule = InstallmentTemplateService.resolve_schedule(price, registration_fee, entries, now=now)
        fields = dict(
            id=uuid.uuid4(),
            enrollment_id=enrollment.id if enrollment else uuid.uuid4(),
            student_id=enrollment.student_id if enrollment else uuid.uuid4(),
            course_id=enrollment.course_id if enrollment else uuid.uuid4(),
            registration_fee=Decimal(registration_fee),
            total_due=Decimal(price) + Decimal(registration_fee),
            total_paid=Decimal("0.00"),
            payment_status=PaymentStatus.PENDING,
            created_at=now,
            updated_at=now,
            installments=[
                PaymentInstallment(
                    id=uuid.uuid4(),
                    position=position,
                    name=line.name,
                    amount_type=line.amount_type,
                    amount=line.amount,
                    status=InstallmentStatus.UNPAID,
                    due_date=line.due_date,
                    is_initial_fee=line.is_initial_fee,
                )
                for position, line in enumerate(schedule)
            ],
        )
        fields.update(overrides)
        return Payment(**fields)
    return _make
