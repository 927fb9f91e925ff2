#!/usr/bin/env python3
"""
Reject pending enrollment requests whose registration fee was not paid within
the center's validity window, cancel their payments and email the students.

Usage:
  python scripts/expire_enrollments.py
  # Run from cron, e.g. every 15 minutes. Requires DATABASE_URL in .env (or export).

Exits with status 1 when any request could not be expired.
"""
import asyncio
import os
import sys

from dotenv import load_dotenv

_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(_root, ".env"))

# Add project root to path
sys.path.insert(0, _root)

from enrollpay.core.logging import get_logger, setup_logging
from enrollpay.database import AsyncSessionLocal, close_db
from enrollpay.services.catalog_service import CatalogService
from enrollpay.services.email_service import send_enrollment_expiration
from enrollpay.services.enrollment_service import EnrollmentService

logger = get_logger("expire_enrollments")


async def run() -> int:
    async with AsyncSessionLocal() as db:
        sweep = await EnrollmentService.expire_stale_requests(db)

        for request_id in sweep.expired:
            enrollment = await EnrollmentService.get_request_by_id(db, request_id)
            if not enrollment:
                continue
            student = await CatalogService.get_user(db, enrollment.student_id)
            course = await CatalogService.get_course(db, enrollment.course_id)
            if student and course:
                send_enrollment_expiration(student.email, student.name, course.title, sweep.validity_hours)

    await close_db()
    print(f"Expired {len(sweep.expired)} request(s), {len(sweep.failed)} failed")
    for request_id in sweep.failed:
        print(f"  FAILED: {request_id}")
    return 1 if sweep.failed else 0


def main():
    setup_logging()
    logger.info("Starting enrollment expiration sweep")
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
