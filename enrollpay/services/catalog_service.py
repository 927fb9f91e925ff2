"""Catalog Service - course, class and user lookups used by the enrollment core"""

from datetime import datetime
from typing import Optional
from uuid import UUID
from sqlalchemy import select, and_, insert, func
from sqlalchemy.ext.asyncio import AsyncSession

from enrollpay.models.academic import Course, CourseClass, class_students
from enrollpay.models.enums import EnrollmentStatus
from enrollpay.models.user import User, EnrolledCourse
from enrollpay.utils.time import get_utc_now


class CatalogService:
    @staticmethod
    async def get_course(db: AsyncSession, course_id: UUID) -> Optional[Course]:
        result = await db.execute(select(Course).where(Course.id == course_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user(db: AsyncSession, user_id: UUID) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_class(db: AsyncSession, class_id: UUID) -> Optional[CourseClass]:
        result = await db.execute(select(CourseClass).where(CourseClass.id == class_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def count_class_students(db: AsyncSession, class_id: UUID) -> int:
        count = await db.scalar(
            select(func.count()).select_from(class_students).where(
                class_students.c.class_id == class_id
            )
        )
        return count or 0

    @staticmethod
    async def is_class_available(
        db: AsyncSession,
        class_id: UUID,
        course_id: UUID,
        level: Optional[str] = None,
    ) -> bool:
        """Class exists, is active, belongs to the course, matches the level and has a free seat."""
        course_class = await CatalogService.get_class(db, class_id)
        if not course_class or not course_class.is_active:
            return False
        if course_class.course_id != course_id:
            return False
        if level and course_class.level and course_class.level.lower() != level.lower():
            return False
        if course_class.capacity is not None:
            enrolled = await CatalogService.count_class_students(db, class_id)
            if enrolled >= course_class.capacity:
                return False
        return True

    @staticmethod
    async def add_student_to_class(
        db: AsyncSession,
        class_id: UUID,
        student_id: UUID,
        assigned_by: Optional[UUID] = None,
        auto_commit: bool = False,
    ) -> bool:
        """Add student to class roster. Returns False when already on it."""
        existing = await db.execute(
            select(class_students).where(
                and_(
                    class_students.c.class_id == class_id,
                    class_students.c.student_id == student_id,
                )
            )
        )
        if existing.first():
            return False
        await db.execute(
            insert(class_students).values(
                class_id=class_id,
                student_id=student_id,
                assigned_by=assigned_by,
                joined_at=get_utc_now(),
            )
        )
        if auto_commit:
            await db.commit()
        return True

    @staticmethod
    async def append_enrolled_course(
        db: AsyncSession,
        user_id: UUID,
        course_id: UUID,
        class_id: UUID,
        enrollment_date: datetime,
        approval_date: datetime,
        status: EnrollmentStatus = EnrollmentStatus.APPROVED,
    ) -> EnrolledCourse:
        entry = EnrolledCourse(
            user_id=user_id,
            course_id=course_id,
            class_id=class_id,
            status=status,
            enrollment_date=enrollment_date,
            approval_date=approval_date,
            registration_fee_paid=True,
        )
        db.add(entry)
        return entry
