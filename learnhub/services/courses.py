from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from learnhub.core.auth import Identity
from learnhub.core.errors import ErrorKind, Ok, Result, fail
from learnhub.models.orm import Course, CoursePrerequisite, CourseStatus, Lesson, Module, Role
from learnhub.services.authorization import AccessAuthorizer, Parent
from learnhub.services.prerequisites import find_cycle

logger = logging.getLogger(__name__)


@dataclass
class CourseDraft:
    title: str
    description: str = ""
    status: CourseStatus = CourseStatus.DRAFT
    teacher_id: Optional[str] = None  # honoured only for admins
    prerequisite_ids: List[str] = field(default_factory=list)


@dataclass
class CourseChanges:
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[CourseStatus] = None
    prerequisite_ids: Optional[List[str]] = None


class CourseService:

    def __init__(self, db: Session):
        self.db = db
        self.access = AccessAuthorizer(db)

    def create_course(self, identity: Identity, draft: CourseDraft) -> Result[Course]:
        if identity.role not in (Role.TEACHER, Role.ADMIN):
            return fail(ErrorKind.FORBIDDEN, "Only teachers and admins can create courses")
        teacher_id = draft.teacher_id if identity.is_admin and draft.teacher_id else identity.user_id
        course = Course(teacher_id=teacher_id, title=draft.title, description=draft.description,
                        status=CourseStatus(draft.status))
        self.db.add(course)
        self.db.flush()
        linked = self._link_prerequisites(course, draft.prerequisite_ids)
        if not linked.success:
            self.db.rollback()
            return linked
        self.db.commit()
        logger.info(f"course {course.id} created by {identity.user_id}")
        return Ok(course)

    def update_course(self, identity: Identity, course_id: str, changes: CourseChanges) -> Result[Course]:
        course = self.db.get(Course, course_id)
        if course is None:
            return fail(ErrorKind.NOT_FOUND, "Course not found")
        if not self.access.check_write(identity, Parent.course(course_id)).allowed:
            return fail(ErrorKind.FORBIDDEN, "Not allowed to edit this course")
        if changes.title is not None:
            course.title = changes.title
        if changes.description is not None:
            course.description = changes.description
        if changes.status is not None:
            course.status = CourseStatus(changes.status)
        if changes.prerequisite_ids is not None:
            linked = self._link_prerequisites(course, changes.prerequisite_ids)
            if not linked.success:
                self.db.rollback()
                return linked
        self.db.commit()
        logger.info(f"course {course_id} updated by {identity.user_id}")
        return Ok(course)

    def get_course(self, identity: Identity, course_id: str) -> Result[Dict[str, Any]]:
        course = self.db.get(Course, course_id)
        if course is None:
            return fail(ErrorKind.NOT_FOUND, "Course not found")
        if course.status != CourseStatus.PUBLISHED and not (
            identity.is_admin or course.teacher_id == identity.user_id
        ):
            return fail(ErrorKind.FORBIDDEN, "Course not accessible")
        return Ok({
            "id": course.id,
            "teacher_id": course.teacher_id,
            "title": course.title,
            "description": course.description,
            "status": course.status.value,
            "prerequisites": [{"id": link.prerequisite.id, "title": link.prerequisite.title}
                              for link in course.prerequisite_links],
            "modules": [
                {"id": m.id, "title": m.title, "order": m.order,
                 "lessons": [{"id": l.id, "title": l.title, "order": l.order} for l in m.lessons]}
                for m in course.modules
            ],
        })

    def add_module(self, identity: Identity, course_id: str, title: str, order: Optional[int] = None) -> Result[Module]:
        if not self.access.check_write(identity, Parent.course(course_id)).allowed:
            if self.db.get(Course, course_id) is None:
                return fail(ErrorKind.NOT_FOUND, "Course not found")
            return fail(ErrorKind.FORBIDDEN, "Not allowed to edit this course")
        if order is None:
            order = (self.db.scalar(select(func.max(Module.order)).where(Module.course_id == course_id)) or 0) + 1
        module = Module(course_id=course_id, title=title, order=order)
        self.db.add(module)
        self.db.commit()
        return Ok(module)

    def add_lesson(self, identity: Identity, module_id: str, title: str, content: str = "",
                   order: Optional[int] = None) -> Result[Lesson]:
        module = self.db.get(Module, module_id)
        if module is None:
            return fail(ErrorKind.NOT_FOUND, "Module not found")
        if not self.access.check_write(identity, Parent.course(module.course_id)).allowed:
            return fail(ErrorKind.FORBIDDEN, "Not allowed to edit this course")
        if order is None:
            order = (self.db.scalar(select(func.max(Lesson.order)).where(Lesson.module_id == module_id)) or 0) + 1
        lesson = Lesson(module_id=module_id, title=title, content=content, order=order)
        self.db.add(lesson)
        self.db.commit()
        return Ok(lesson)

    def get_lesson(self, identity: Identity, lesson_id: str) -> Result[Lesson]:
        lesson = self.db.get(Lesson, lesson_id)
        if lesson is None:
            return fail(ErrorKind.NOT_FOUND, "Lesson not found")
        if not self.access.check_read(identity, Parent.lesson(lesson_id)).allowed:
            return fail(ErrorKind.FORBIDDEN, "Not enrolled in this course")
        return Ok(lesson)

    def _link_prerequisites(self, course: Course, prerequisite_ids: List[str]) -> Result[None]:
        wanted = list(dict.fromkeys(prerequisite_ids))  # collapse duplicates, keep order
        if course.id in wanted:
            return fail(ErrorKind.INVALID_STATE, "A course cannot be its own prerequisite")
        for pid in wanted:
            if self.db.get(Course, pid) is None:
                return fail(ErrorKind.NOT_FOUND, f"Prerequisite course {pid} not found")
        closing = find_cycle(self.db, course.id, wanted)
        if closing is not None:
            title = self.db.get(Course, closing).title
            return fail(ErrorKind.INVALID_STATE, f"Prerequisite '{title}' would create a prerequisite cycle")
        course.prerequisite_links.clear()
        self.db.flush()
        for pid in wanted:
            course.prerequisite_links.append(CoursePrerequisite(course_id=course.id, prerequisite_id=pid))
        return Ok(None)
