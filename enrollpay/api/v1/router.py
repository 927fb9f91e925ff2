"""API V1 Router"""

from fastapi import APIRouter

# Import endpoint routers
from enrollpay.api.v1.endpoints import (
    enrollments, payments, installment_templates, settings
)

# Create API v1 router
api_router = APIRouter()

# Include endpoint routers with prefixes and tags
api_router.include_router(enrollments.router, prefix="/enrollments", tags=["Enrollment Requests"])
api_router.include_router(payments.router, prefix="/payments", tags=["Payments"])
api_router.include_router(
    installment_templates.router, prefix="/installment-templates", tags=["Installment Templates"]
)
api_router.include_router(settings.router, prefix="/settings", tags=["Center Settings"])
