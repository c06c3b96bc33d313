from dataclasses import dataclass
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learnhub.core.auth import Identity
from learnhub.core.errors import ErrorKind, Ok, Result, fail
from learnhub.models.orm import Lesson, LessonProgress, Module
from learnhub.services.authorization import AccessAuthorizer, Parent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CourseCompletion:
    all_lessons_completed: bool
    completed_lessons: int
    total_lessons: int


def course_completion(db: Session, course_id: str, user_id: str) -> CourseCompletion:
    lesson_ids = select(Lesson.id).join(Module, Module.id == Lesson.module_id).where(Module.course_id == course_id)
    total = db.scalar(select(func.count()).select_from(lesson_ids.subquery())) or 0
    done = db.scalar(
        select(func.count(LessonProgress.id)).where(
            LessonProgress.user_id == user_id, LessonProgress.lesson_id.in_(lesson_ids)
        )
    ) or 0
    return CourseCompletion(done >= total, done, total)


class ProgressService:

    def __init__(self, db: Session):
        self.db = db
        self.access = AccessAuthorizer(db)

    def complete_lesson(self, identity: Identity, lesson_id: str) -> Result[LessonProgress]:
        course = self.access.resolve_course(Parent.lesson(lesson_id))
        if course is None:
            return fail(ErrorKind.NOT_FOUND, "Lesson not found")
        if not identity.is_admin and not self.access.has_active_enrollment(identity.user_id, course.id):
            return fail(ErrorKind.FORBIDDEN, "You must be enrolled in this course")

        existing = self.db.scalar(
            select(LessonProgress).where(LessonProgress.user_id == identity.user_id, LessonProgress.lesson_id == lesson_id)
        )
        if existing:
            return Ok(existing)
        progress = LessonProgress(user_id=identity.user_id, lesson_id=lesson_id)
        self.db.add(progress)
        try:
            self.db.commit()
        except IntegrityError:
            # completed concurrently; the stored row wins
            self.db.rollback()
            progress = self.db.scalar(
                select(LessonProgress).where(LessonProgress.user_id == identity.user_id, LessonProgress.lesson_id == lesson_id)
            )
        logger.info(f"lesson {lesson_id} completed by {identity.user_id}")
        return Ok(progress)

    def course_progress(self, identity: Identity, course_id: str) -> Result[CourseCompletion]:
        decision = self.access.check_read(identity, Parent.course(course_id))
        if not decision.allowed:
            if self.access.resolve_course(Parent.course(course_id)) is None:
                return fail(ErrorKind.NOT_FOUND, "Course not found")
            return fail(ErrorKind.FORBIDDEN, "Access denied")
        return Ok(course_completion(self.db, course_id, identity.user_id))
