"""
Homework assignments and submissions.

One submission per (homework, learner). Grading a submission records the score
and upserts the learner's HOMEWORK grade; regrading overwrites both.
"""
from dataclasses import dataclass, fields
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learnhub.core.auth import Identity
from learnhub.core.clock import as_utc, utcnow
from learnhub.core.errors import ErrorKind, Ok, Result, fail
from learnhub.models.orm import GradeType, Homework, HomeworkSubmission
from learnhub.services.authorization import AccessAuthorizer, Parent
from learnhub.services.grades import upsert_grade
from learnhub.services.grading import letter_grade, percentage

logger = logging.getLogger(__name__)


@dataclass
class HomeworkDraft:
    title: str
    due_date: datetime
    description: str = ""
    max_score: float = 100


@dataclass
class HomeworkChanges:
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    max_score: Optional[float] = None


class HomeworkService:

    def __init__(self, db: Session):
        self.db = db
        self.access = AccessAuthorizer(db)

    def _deny(self, course_id: str, message: str):
        if self.access.resolve_course(Parent.course(course_id)) is None:
            return fail(ErrorKind.NOT_FOUND, "Course not found")
        return fail(ErrorKind.FORBIDDEN, message)

    def _load(self, course_id: str, homework_id: str) -> Optional[Homework]:
        homework = self.db.get(Homework, homework_id)
        return homework if homework is not None and homework.course_id == course_id else None

    # ---- assignments -----------------------------------------------------

    def list_homework(self, identity: Identity, course_id: str) -> Result[List[Homework]]:
        if not self.access.check_read(identity, Parent.course(course_id)).allowed:
            return self._deny(course_id, "Not enrolled in this course")
        rows = self.db.scalars(
            select(Homework).where(Homework.course_id == course_id).order_by(Homework.due_date)
        ).all()
        return Ok(list(rows))

    def get_homework(self, identity: Identity, course_id: str, homework_id: str) -> Result[Homework]:
        homework = self._load(course_id, homework_id)
        if homework is None:
            return fail(ErrorKind.NOT_FOUND, "Homework not found")
        if not self.access.check_read(identity, Parent.course(course_id)).allowed:
            return fail(ErrorKind.FORBIDDEN, "Access denied")
        return Ok(homework)

    def create_homework(self, identity: Identity, course_id: str, draft: HomeworkDraft) -> Result[Homework]:
        if not self.access.check_write(identity, Parent.course(course_id)).allowed:
            return self._deny(course_id, "Not allowed to add homework to this course")
        homework = Homework(course_id=course_id, title=draft.title, description=draft.description,
                            due_date=as_utc(draft.due_date), max_score=draft.max_score)
        self.db.add(homework)
        self.db.commit()
        logger.info(f"homework {homework.id} created in course {course_id} by {identity.user_id}")
        return Ok(homework)

    def update_homework(self, identity: Identity, course_id: str, homework_id: str,
                        changes: HomeworkChanges) -> Result[Homework]:
        if not self.access.check_write(identity, Parent.course(course_id)).allowed:
            return self._deny(course_id, "Not allowed to edit this homework")
        homework = self._load(course_id, homework_id)
        if homework is None:
            return fail(ErrorKind.NOT_FOUND, "Homework not found")
        for f in fields(changes):
            value = getattr(changes, f.name)
            if value is not None:
                setattr(homework, f.name, as_utc(value) if f.name == "due_date" else value)
        self.db.commit()
        return Ok(homework)

    def delete_homework(self, identity: Identity, course_id: str, homework_id: str) -> Result[None]:
        if not self.access.check_write(identity, Parent.course(course_id)).allowed:
            return self._deny(course_id, "Not allowed to delete this homework")
        homework = self._load(course_id, homework_id)
        if homework is None:
            return fail(ErrorKind.NOT_FOUND, "Homework not found")
        self.db.delete(homework)
        self.db.commit()
        logger.info(f"homework {homework_id} deleted by {identity.user_id}")
        return Ok(None)

    # ---- submissions -----------------------------------------------------

    def submit(self, identity: Identity, homework_id: str, content: str,
               file_url: Optional[str] = None) -> Result[HomeworkSubmission]:
        homework = self.db.get(Homework, homework_id)
        if homework is None:
            return fail(ErrorKind.NOT_FOUND, "Homework not found")
        if not identity.is_admin and not self.access.has_active_enrollment(identity.user_id, homework.course_id):
            return fail(ErrorKind.FORBIDDEN, "Not enrolled in this course")
        if self._find_submission(homework_id, identity.user_id) is not None:
            return fail(ErrorKind.ALREADY_EXISTS, "Homework already submitted")

        submission = HomeworkSubmission(homework_id=homework_id, user_id=identity.user_id,
                                        content=content, file_url=file_url)
        self.db.add(submission)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"duplicate homework submission rejected: homework={homework_id} user={identity.user_id}")
            return fail(ErrorKind.ALREADY_EXISTS, "Homework already submitted")
        logger.info(f"homework {homework_id} submitted by {identity.user_id}")
        return Ok(submission)

    def list_submissions(self, identity: Identity, course_id: str, homework_id: str) -> Result[List[HomeworkSubmission]]:
        if not self.access.check_write(identity, Parent.course(course_id)).allowed:
            return self._deny(course_id, "Access denied")
        if self._load(course_id, homework_id) is None:
            return fail(ErrorKind.NOT_FOUND, "Homework not found")
        rows = self.db.scalars(
            select(HomeworkSubmission).where(HomeworkSubmission.homework_id == homework_id)
            .order_by(HomeworkSubmission.submitted_at.desc())
        ).all()
        return Ok(list(rows))

    def grade_submission(self, identity: Identity, course_id: str, homework_id: str, submission_id: str,
                         score: float, feedback: Optional[str] = None) -> Result[HomeworkSubmission]:
        if not self.access.check_write(identity, Parent.course(course_id)).allowed:
            return self._deny(course_id, "Access denied")
        homework = self._load(course_id, homework_id)
        if homework is None:
            return fail(ErrorKind.NOT_FOUND, "Homework not found")
        submission = self.db.get(HomeworkSubmission, submission_id)
        if submission is None or submission.homework_id != homework_id:
            return fail(ErrorKind.NOT_FOUND, "Submission not found")
        if not 0 <= score <= homework.max_score:
            return fail(ErrorKind.INVALID_STATE, f"Score must be between 0 and {homework.max_score:g}")

        pct = percentage(score, homework.max_score)
        submission.score = score
        submission.feedback = feedback
        submission.graded_at = utcnow()
        upsert_grade(self.db, user_id=submission.user_id, course_id=course_id, item_id=homework_id,
                     score=score, max_score=homework.max_score, percentage=pct,
                     letter_grade=letter_grade(pct), grade_type=GradeType.HOMEWORK)
        self.db.commit()
        logger.info(f"homework submission {submission_id} graded by {identity.user_id}: score={score}")
        return Ok(submission)

    def _find_submission(self, homework_id: str, user_id: str) -> Optional[HomeworkSubmission]:
        return self.db.scalar(
            select(HomeworkSubmission).where(HomeworkSubmission.homework_id == homework_id,
                                             HomeworkSubmission.user_id == user_id)
        )
