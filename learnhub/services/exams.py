from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from learnhub.core.auth import Identity
from learnhub.core.clock import as_utc
from learnhub.core.errors import ErrorKind, Ok, Result, fail
from learnhub.models.orm import Exam, ExamAttempt, ExamQuestion, QuestionType, Role
from learnhub.services.authorization import AccessAuthorizer, Parent
from learnhub.services.progress import course_completion
from learnhub.services.reveal import serialize_questions, should_reveal

logger = logging.getLogger(__name__)


@dataclass
class ExamDraft:
    title: str
    start_date: datetime
    end_date: datetime
    duration_minutes: int = 60
    max_score: float = 100
    passing_score: float = 60
    description: Optional[str] = None


@dataclass
class QuestionDraft:
    prompt: str
    type: QuestionType = QuestionType.MULTIPLE_CHOICE
    choices: Optional[List[str]] = None
    correct_index: Optional[int] = None
    explanation: Optional[str] = None
    points: float = 1
    order: Optional[int] = None


@dataclass
class ExamChanges:
    title: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    max_score: Optional[float] = None
    passing_score: Optional[float] = None


@dataclass
class QuestionChanges:
    prompt: Optional[str] = None
    type: Optional[QuestionType] = None
    choices: Optional[List[str]] = None
    correct_index: Optional[int] = None
    explanation: Optional[str] = None
    points: Optional[float] = None
    order: Optional[int] = None


def validate_window(start: datetime, end: datetime, max_score: float, passing_score: float) -> Optional[str]:
    if as_utc(end) <= as_utc(start):
        return "Exam end date must be after its start date"
    if passing_score > max_score:
        return "Passing score cannot exceed the maximum score"
    return None


def validate_question(draft: QuestionDraft) -> Optional[str]:
    if QuestionType(draft.type) is QuestionType.MULTIPLE_CHOICE:
        choices = draft.choices or []
        if len(choices) < 2:
            return "Multiple choice questions need at least two choices"
        if draft.correct_index is None or not 0 <= draft.correct_index < len(choices):
            return "Multiple choice questions need a valid correct answer index"
    if draft.points < 0:
        return "Question points cannot be negative"
    return None


class ExamService:

    def __init__(self, db: Session):
        self.db = db
        self.access = AccessAuthorizer(db)

    def _deny(self, course_id: str, message: str):
        if self.access.resolve_course(Parent.course(course_id)) is None:
            return fail(ErrorKind.NOT_FOUND, "Course not found")
        return fail(ErrorKind.FORBIDDEN, message)

    # ---- authoring -------------------------------------------------------

    def create_exam(self, identity: Identity, course_id: str, draft: ExamDraft) -> Result[Exam]:
        if not self.access.check_write(identity, Parent.course(course_id)).allowed:
            return self._deny(course_id, "Not allowed to add exams to this course")
        start, end = as_utc(draft.start_date), as_utc(draft.end_date)
        problem = validate_window(start, end, draft.max_score, draft.passing_score)
        if problem:
            return fail(ErrorKind.INVALID_STATE, problem)
        exam = Exam(course_id=course_id, title=draft.title, description=draft.description,
                    duration_minutes=draft.duration_minutes, start_date=start,
                    end_date=end, max_score=draft.max_score, passing_score=draft.passing_score)
        self.db.add(exam)
        self.db.commit()
        logger.info(f"exam {exam.id} created in course {course_id} by {identity.user_id}")
        return Ok(exam)

    def update_exam(self, identity: Identity, exam_id: str, changes: ExamChanges) -> Result[Exam]:
        loaded = self._load_for_write(identity, exam_id, "Not allowed to edit this exam")
        if not loaded.success:
            return loaded
        exam = loaded.data
        updates = {f.name: getattr(changes, f.name) for f in fields(changes) if getattr(changes, f.name) is not None}
        start = as_utc(updates.get("start_date", exam.start_date))
        end = as_utc(updates.get("end_date", exam.end_date))
        problem = validate_window(start, end, updates.get("max_score", exam.max_score),
                                  updates.get("passing_score", exam.passing_score))
        if problem:
            return fail(ErrorKind.INVALID_STATE, problem)
        for name, value in updates.items():
            setattr(exam, name, value)
        exam.start_date, exam.end_date = start, end
        self.db.commit()
        logger.info(f"exam {exam_id} updated by {identity.user_id}")
        return Ok(exam)

    def delete_exam(self, identity: Identity, exam_id: str) -> Result[None]:
        loaded = self._load_for_write(identity, exam_id, "Not allowed to delete this exam")
        if not loaded.success:
            return loaded
        # attempts have no ORM cascade; remove them with the exam
        self.db.execute(delete(ExamAttempt).where(ExamAttempt.exam_id == exam_id))
        self.db.delete(loaded.data)
        self.db.commit()
        logger.info(f"exam {exam_id} deleted by {identity.user_id}")
        return Ok(None)

    def add_question(self, identity: Identity, exam_id: str, draft: QuestionDraft,
                     allow_bonus: bool = False) -> Result[ExamQuestion]:
        loaded = self._load_for_write(identity, exam_id, "Not allowed to add questions to this exam")
        if not loaded.success:
            return loaded
        exam = loaded.data
        problem = validate_question(draft) or self._total_problem(exam, draft.points, allow_bonus)
        if problem:
            return fail(ErrorKind.INVALID_STATE, problem)

        order = draft.order
        if order is None:
            order = (self.db.scalar(
                select(func.max(ExamQuestion.order)).where(ExamQuestion.exam_id == exam_id)
            ) or 0) + 1
        qtype = QuestionType(draft.type)
        question = ExamQuestion(
            exam_id=exam_id, prompt=draft.prompt, type=qtype,
            choices=list(draft.choices or []),
            correct_index=draft.correct_index if qtype.is_objective else None,
            explanation=draft.explanation, points=draft.points, order=order,
        )
        self.db.add(question)
        self.db.commit()
        return Ok(question)

    def update_question(self, identity: Identity, exam_id: str, question_id: str,
                        changes: QuestionChanges, allow_bonus: bool = False) -> Result[ExamQuestion]:
        loaded = self._load_for_write(identity, exam_id, "Not allowed to edit this exam")
        if not loaded.success:
            return loaded
        exam = loaded.data
        question = next((q for q in exam.questions if q.id == question_id), None)
        if question is None:
            return fail(ErrorKind.NOT_FOUND, "Question not found")

        merged = QuestionDraft(
            prompt=question.prompt, type=question.type, choices=list(question.choices or []),
            correct_index=question.correct_index, explanation=question.explanation,
            points=question.points, order=question.order,
        )
        for f in fields(changes):
            value = getattr(changes, f.name)
            if value is not None:
                setattr(merged, f.name, value)
        problem = validate_question(merged)
        if problem is None and changes.points is not None:
            problem = self._total_problem(exam, merged.points, allow_bonus, excluding=question_id)
        if problem:
            return fail(ErrorKind.INVALID_STATE, problem)

        qtype = QuestionType(merged.type)
        question.prompt = merged.prompt
        question.type = qtype
        question.choices = list(merged.choices or [])
        question.correct_index = merged.correct_index if qtype.is_objective else None
        question.explanation = merged.explanation
        question.points = merged.points
        question.order = merged.order
        self.db.commit()
        return Ok(question)

    def delete_question(self, identity: Identity, exam_id: str, question_id: str) -> Result[None]:
        loaded = self._load_for_write(identity, exam_id, "Not allowed to edit this exam")
        if not loaded.success:
            return loaded
        question = self.db.get(ExamQuestion, question_id)
        if question is None or question.exam_id != exam_id:
            return fail(ErrorKind.NOT_FOUND, "Question not found")
        self.db.delete(question)
        self.db.commit()
        return Ok(None)

    def _load_for_write(self, identity: Identity, exam_id: str, message: str) -> Result[Exam]:
        exam = self.db.get(Exam, exam_id)
        if exam is None:
            return fail(ErrorKind.NOT_FOUND, "Exam not found")
        if not self.access.check_write(identity, Parent.course(exam.course_id)).allowed:
            return fail(ErrorKind.FORBIDDEN, message)
        return Ok(exam)

    @staticmethod
    def _total_problem(exam: Exam, points: float, allow_bonus: bool, excluding: Optional[str] = None) -> Optional[str]:
        new_total = sum(q.points for q in exam.questions if q.id != excluding) + points
        if new_total > exam.max_score and not allow_bonus:
            return (f"Total points ({new_total:g}) exceeds max score ({exam.max_score:g}). "
                    f"Set allow_bonus to true to allow bonus questions.")
        return None

    # ---- reading ---------------------------------------------------------

    def list_exams(self, identity: Identity, course_id: str) -> Result[List[Dict[str, Any]]]:
        if not self.access.check_read(identity, Parent.course(course_id)).allowed:
            return self._deny(course_id, "Access denied")
        exams = self.db.scalars(select(Exam).where(Exam.course_id == course_id).order_by(Exam.start_date)).all()
        return Ok([self._render(identity, exam) for exam in exams])

    def get_exam(self, identity: Identity, exam_id: str) -> Result[Dict[str, Any]]:
        exam = self.db.get(Exam, exam_id)
        if exam is None:
            return fail(ErrorKind.NOT_FOUND, "Exam not found")
        if not self.access.check_read(identity, Parent.course(exam.course_id)).allowed:
            return fail(ErrorKind.FORBIDDEN, "Access denied")
        data = self._render(identity, exam)
        if identity.role == Role.STUDENT:
            completion = course_completion(self.db, exam.course_id, identity.user_id)
            data["course_completion"] = {
                "all_lessons_completed": completion.all_lessons_completed,
                "completed_lessons": completion.completed_lessons,
                "total_lessons": completion.total_lessons,
            }
        return Ok(data)

    def list_attempts(self, identity: Identity, exam_id: str) -> Result[List[ExamAttempt]]:
        exam = self.db.get(Exam, exam_id)
        if exam is None:
            return fail(ErrorKind.NOT_FOUND, "Exam not found")
        if not self.access.check_write(identity, Parent.course(exam.course_id)).allowed:
            return fail(ErrorKind.FORBIDDEN, "Access denied")
        attempts = self.db.scalars(
            select(ExamAttempt).where(ExamAttempt.exam_id == exam_id).order_by(ExamAttempt.submitted_at)
        ).all()
        return Ok(list(attempts))

    def _render(self, identity: Identity, exam: Exam) -> Dict[str, Any]:
        attempt = self.db.scalar(
            select(ExamAttempt).where(ExamAttempt.exam_id == exam.id, ExamAttempt.user_id == identity.user_id)
        )
        reveal = should_reveal(identity, exam, attempt)
        return {
            "id": exam.id,
            "course_id": exam.course_id,
            "title": exam.title,
            "description": exam.description,
            "duration_minutes": exam.duration_minutes,
            "start_date": exam.start_date,
            "end_date": exam.end_date,
            "max_score": exam.max_score,
            "passing_score": exam.passing_score,
            "answers_revealed": reveal,
            "questions": serialize_questions(exam.questions, reveal),
            "my_attempt": {"id": attempt.id, "score": attempt.score, "status": attempt.status.value} if attempt else None,
        }
