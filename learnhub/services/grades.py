from dataclasses import dataclass
from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from learnhub.core.auth import Identity
from learnhub.core.errors import ErrorKind, Ok, Result, fail
from learnhub.models.orm import Grade, GradeType
from learnhub.services.authorization import AccessAuthorizer, Parent
from learnhub.services.grading import LetterGrade, gpa

logger = logging.getLogger(__name__)


@dataclass
class StudentGrades:
    grades: List[Grade]
    gpa: float


def upsert_grade(db: Session, *, user_id: str, course_id: str, item_id: str, score: float,
                 max_score: float, percentage: Optional[float], letter_grade: Optional[LetterGrade],
                 grade_type: GradeType = GradeType.EXAM) -> Grade:
    """Insert or update the grade keyed by (user, course, type, item). Caller commits."""
    grade = db.scalar(select(Grade).where(
        Grade.user_id == user_id, Grade.course_id == course_id,
        Grade.type == grade_type, Grade.item_id == item_id,
    ))
    if grade is None:
        grade = Grade(user_id=user_id, course_id=course_id, type=grade_type, item_id=item_id)
        db.add(grade)
    grade.score = score
    grade.max_score = max_score
    grade.percentage = percentage
    grade.letter_grade = letter_grade.value if letter_grade else None
    logger.info(f"grade upserted: user={user_id} {grade_type.value}:{item_id} score={score}")
    return grade


class GradeService:

    def __init__(self, db: Session):
        self.db = db

    def student_grades(self, identity: Identity, user_id: str) -> Result[StudentGrades]:
        if user_id != identity.user_id and not identity.is_admin:
            return fail(ErrorKind.FORBIDDEN, "Access denied")
        grades = list(self.db.scalars(
            select(Grade).where(Grade.user_id == user_id).order_by(Grade.updated_at.desc())
        ).all())
        return Ok(StudentGrades(grades, round(gpa(g.letter_grade for g in grades), 2)))

    def course_grades(self, identity: Identity, course_id: str) -> Result[List[Grade]]:
        access = AccessAuthorizer(self.db)
        if access.resolve_course(Parent.course(course_id)) is None:
            return fail(ErrorKind.NOT_FOUND, "Course not found")
        if not access.check_write(identity, Parent.course(course_id)).allowed:
            return fail(ErrorKind.FORBIDDEN, "Access denied")
        grades = self.db.scalars(select(Grade).where(Grade.course_id == course_id)).all()
        return Ok(list(grades))
