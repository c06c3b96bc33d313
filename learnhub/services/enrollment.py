"""
Enrollment Gate and enrollment management.

``enroll`` is a strict ordered chain; each step short-circuits:
role, course exists, course published, prerequisites (all evaluated), not
already enrolled, create. The (user_id, course_id) unique constraint is the
authoritative duplicate guard; the pre-check only saves a round trip.
"""
from typing import List
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learnhub.core.auth import Identity
from learnhub.core.errors import ErrorKind, Ok, Result, fail
from learnhub.models.orm import Course, CourseStatus, Enrollment, EnrollmentStatus, Role
from learnhub.services.prerequisites import unmet_prerequisites

logger = logging.getLogger(__name__)

ENROLLING_ROLES = (Role.STUDENT, Role.ADMIN)


class EnrollmentService:

    def __init__(self, db: Session):
        self.db = db

    def _exists(self, user_id: str, course_id: str) -> bool:
        return self.db.scalar(
            select(Enrollment.id).where(Enrollment.user_id == user_id, Enrollment.course_id == course_id)
        ) is not None

    def enroll(self, identity: Identity, course_id: str) -> Result[Enrollment]:
        if identity.role not in ENROLLING_ROLES:
            return fail(ErrorKind.FORBIDDEN, "Only students and admins can enroll")

        course = self.db.get(Course, course_id)
        if course is None:
            return fail(ErrorKind.NOT_FOUND, "Course not found")
        if course.status != CourseStatus.PUBLISHED:
            return fail(ErrorKind.INVALID_STATE, "Course is not available for enrollment")

        unmet = unmet_prerequisites(self.db, course_id, identity.user_id)
        if unmet:
            titles = ", ".join(u.title for u in unmet)
            return fail(ErrorKind.PREREQUISITE_UNMET, f"You must pass the prerequisite courses first: {titles}")

        if self._exists(identity.user_id, course_id):
            return fail(ErrorKind.ALREADY_EXISTS, "Already enrolled in this course")

        enrollment = Enrollment(user_id=identity.user_id, course_id=course_id, status=EnrollmentStatus.ACTIVE)
        self.db.add(enrollment)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"concurrent enrollment rejected: user={identity.user_id} course={course_id}")
            return fail(ErrorKind.ALREADY_EXISTS, "Already enrolled in this course")
        self.db.refresh(enrollment)
        logger.info(f"enrollment created: user={identity.user_id} course={course_id}")
        return Ok(enrollment)

    def my_enrollments(self, identity: Identity) -> Result[List[Enrollment]]:
        if identity.role not in ENROLLING_ROLES:
            return fail(ErrorKind.FORBIDDEN, "Access denied")
        rows = self.db.scalars(
            select(Enrollment).where(Enrollment.user_id == identity.user_id, Enrollment.status == EnrollmentStatus.ACTIVE)
            .order_by(Enrollment.enrolled_at.desc())
        ).all()
        return Ok(list(rows))

    def course_enrollments(self, identity: Identity, course_id: str) -> Result[List[Enrollment]]:
        course = self.db.get(Course, course_id)
        if course is None:
            return fail(ErrorKind.NOT_FOUND, "Course not found")
        if not (identity.is_admin or course.teacher_id == identity.user_id):
            return fail(ErrorKind.FORBIDDEN, "Access denied")
        rows = self.db.scalars(select(Enrollment).where(Enrollment.course_id == course_id)).all()
        return Ok(list(rows))

    def update_status(self, identity: Identity, enrollment_id: str, status: EnrollmentStatus) -> Result[Enrollment]:
        if not identity.is_admin:
            return fail(ErrorKind.FORBIDDEN, "Only admins can change enrollment status")
        enrollment = self.db.get(Enrollment, enrollment_id)
        if enrollment is None:
            return fail(ErrorKind.NOT_FOUND, "Enrollment not found")
        enrollment.status = EnrollmentStatus(status)
        self.db.commit()
        logger.info(f"enrollment {enrollment_id} status -> {enrollment.status.value}")
        return Ok(enrollment)

    def cancel(self, identity: Identity, enrollment_id: str) -> Result[None]:
        enrollment = self.db.get(Enrollment, enrollment_id)
        if enrollment is None:
            return fail(ErrorKind.NOT_FOUND, "Enrollment not found")
        if not (identity.is_admin or enrollment.user_id == identity.user_id):
            return fail(ErrorKind.FORBIDDEN, "Access denied")
        self.db.delete(enrollment)
        self.db.commit()
        logger.info(f"enrollment {enrollment_id} removed by {identity.user_id}")
        return Ok(None)
