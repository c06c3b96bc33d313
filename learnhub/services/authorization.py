"""
Access Authorizer.

Single point of truth for "can this identity touch this course's material".
Every content-scoped operation (lessons, modules, exams, questions, grades)
asks ``check_read`` or ``check_write`` instead of branching on roles itself.

Read:  ADMIN, the course's teacher, or a learner with an ACTIVE enrollment.
Write: ADMIN or the course's teacher. Students never write.
A parent whose course cannot be resolved is always denied.
"""
from dataclasses import dataclass
from typing import Literal, Optional
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from learnhub.core.auth import Identity
from learnhub.models.orm import Course, Enrollment, EnrollmentStatus, Lesson, Module

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Parent:
    kind: Literal["course", "lesson"]
    id: str

    @classmethod
    def course(cls, course_id: str) -> "Parent":
        return cls("course", course_id)

    @classmethod
    def lesson(cls, lesson_id: str) -> "Parent":
        return cls("lesson", lesson_id)


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    course_id: Optional[str] = None


class AccessAuthorizer:

    def __init__(self, db: Session):
        self.db = db

    def resolve_course(self, parent: Parent) -> Optional[Course]:
        if parent.kind == "course":
            return self.db.get(Course, parent.id)
        return self.db.scalar(
            select(Course).join(Module, Module.course_id == Course.id)
            .join(Lesson, Lesson.module_id == Module.id)
            .where(Lesson.id == parent.id)
        )

    def has_active_enrollment(self, user_id: str, course_id: str) -> bool:
        enrollment_id = self.db.scalar(
            select(Enrollment.id).where(
                Enrollment.user_id == user_id,
                Enrollment.course_id == course_id,
                Enrollment.status == EnrollmentStatus.ACTIVE,
            )
        )
        return enrollment_id is not None

    def check_read(self, identity: Identity, parent: Parent) -> AccessDecision:
        course = self.resolve_course(parent)
        if course is None:
            return AccessDecision(False)
        if identity.is_admin or course.teacher_id == identity.user_id:
            return AccessDecision(True, course.id)
        allowed = self.has_active_enrollment(identity.user_id, course.id)
        if not allowed:
            logger.debug(f"read denied: user={identity.user_id} course={course.id}")
        return AccessDecision(allowed, course.id)

    def check_write(self, identity: Identity, parent: Parent) -> AccessDecision:
        course = self.resolve_course(parent)
        if course is None:
            return AccessDecision(False)
        allowed = identity.is_admin or course.teacher_id == identity.user_id
        return AccessDecision(allowed, course.id)
