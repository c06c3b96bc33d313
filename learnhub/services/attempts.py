"""
Exam Attempt State Machine.

    (none) --submit--> AUTO_GRADED   every question is multiple choice
    (none) --submit--> PENDING       at least one TEXT/ESSAY question
    PENDING --grade--> GRADED
    GRADED | AUTO_GRADED --amend--> GRADED   (repeatable)

Exactly one attempt exists per (exam, learner); the unique constraint on
exam_attempts is the authoritative guard and a duplicate-key failure is
reported as DUPLICATE_ATTEMPT. Every transition commits once or not at all.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
import enum
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learnhub.core.auth import Identity
from learnhub.core.config import settings
from learnhub.core.errors import ErrorKind, Ok, Result, fail
from learnhub.models.orm import AttemptStatus, Exam, ExamAttempt, ExamQuestion, Role
from learnhub.services.authorization import AccessAuthorizer, Parent
from learnhub.services.grades import upsert_grade
from learnhub.services.grading import LetterGrade, letter_grade, percentage
from learnhub.services.progress import course_completion

logger = logging.getLogger(__name__)


class Transition(str, enum.Enum):
    GRADE = "grade"
    AMEND = "amend"


TRANSITIONS: Dict[Transition, Dict[AttemptStatus, AttemptStatus]] = {
    Transition.GRADE: {AttemptStatus.PENDING: AttemptStatus.GRADED},
    Transition.AMEND: {
        AttemptStatus.GRADED: AttemptStatus.GRADED,
        AttemptStatus.AUTO_GRADED: AttemptStatus.GRADED,
    },
}


def advance(current: AttemptStatus, transition: Transition) -> Optional[AttemptStatus]:
    """Target state of ``transition`` from ``current``, or None if not allowed."""
    return TRANSITIONS[transition].get(AttemptStatus(current))


@dataclass
class AttemptOutcome:
    attempt: ExamAttempt
    score: Optional[float]
    status: AttemptStatus
    percentage: Optional[float] = None
    letter_grade: Optional[LetterGrade] = None
    message: Optional[str] = None


def is_correct(question: ExamQuestion, answer: Any) -> bool:
    # bool is an int subclass; True must not match index 1
    if isinstance(answer, bool) or not isinstance(answer, int):
        return False
    return answer == question.correct_index


def objective_points(question: ExamQuestion, answers: Mapping[str, Any]) -> float:
    return question.points if is_correct(question, answers.get(question.id)) else 0.0


def score_submission(questions: Iterable[ExamQuestion], answers: Mapping[str, Any]) -> Tuple[float, bool]:
    """Raw objective score and whether any question needs manual grading."""
    raw, deferred = 0.0, False
    for question in questions:
        if question.type.is_objective:
            raw += objective_points(question, answers)
        else:
            deferred = True
    return raw, deferred


def bonus_ceiling(exam: Exam) -> float:
    return exam.max_score * settings.BONUS_CEILING_FACTOR


def clamp_score(exam: Exam, value: float) -> float:
    """Manual scores live in [0, bonus_ceiling]; a negative bonus never drives a score below zero."""
    return min(max(value, 0.0), bonus_ceiling(exam))


class AttemptService:

    def __init__(self, db: Session):
        self.db = db
        self.access = AccessAuthorizer(db)

    # ---- submission ------------------------------------------------------

    def submit(self, identity: Identity, exam_id: str, answers: Dict[str, Any]) -> Result[AttemptOutcome]:
        exam = self.db.get(Exam, exam_id)
        if exam is None:
            return fail(ErrorKind.NOT_FOUND, "Exam not found")
        if identity.role not in (Role.STUDENT, Role.ADMIN):
            return fail(ErrorKind.FORBIDDEN, "Only students can submit exam attempts")

        if not identity.is_admin:
            if not self.access.has_active_enrollment(identity.user_id, exam.course_id):
                return fail(ErrorKind.FORBIDDEN, "Not enrolled in this course")
            completion = course_completion(self.db, exam.course_id, identity.user_id)
            if not completion.all_lessons_completed:
                return fail(
                    ErrorKind.COURSE_INCOMPLETE,
                    f"Complete all course lessons before taking the exam "
                    f"({completion.completed_lessons}/{completion.total_lessons} done)",
                )

        if self._find(exam_id, identity.user_id) is not None:
            return fail(ErrorKind.DUPLICATE_ATTEMPT, "Exam already attempted")

        raw, deferred = score_submission(exam.questions, answers)
        if deferred:
            attempt = ExamAttempt(exam_id=exam_id, user_id=identity.user_id, answers=answers,
                                  score=None, status=AttemptStatus.PENDING)
        else:
            attempt = ExamAttempt(exam_id=exam_id, user_id=identity.user_id, answers=answers,
                                  score=min(raw, exam.max_score), status=AttemptStatus.AUTO_GRADED,
                                  graded_at=datetime.now(timezone.utc))
        self.db.add(attempt)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"duplicate attempt rejected: exam={exam_id} user={identity.user_id}")
            return fail(ErrorKind.DUPLICATE_ATTEMPT, "Exam already attempted")

        if deferred:
            self.db.commit()
            logger.info(f"attempt {attempt.id} submitted, awaiting manual grading")
            return Ok(AttemptOutcome(attempt, None, AttemptStatus.PENDING,
                                     message="Exam submitted. Awaiting manual grading."))

        outcome = self._finalize(exam, attempt, attempt.score, AttemptStatus.AUTO_GRADED)
        logger.info(f"attempt {attempt.id} auto-graded: score={attempt.score}")
        return Ok(outcome)

    # ---- manual grading --------------------------------------------------

    def grade(self, identity: Identity, exam_id: str, attempt_id: str, *,
              question_scores: Optional[Dict[str, float]] = None,
              final_score: Optional[float] = None,
              bonus: Optional[float] = None) -> Result[AttemptOutcome]:
        loaded = self._load_for_write(identity, exam_id, attempt_id)
        if not loaded.success:
            return loaded
        exam, attempt = loaded.data

        target = advance(attempt.status, Transition.GRADE)
        if target is None:
            return fail(ErrorKind.ALREADY_GRADED, "This attempt has already been graded")

        if question_scores is not None:
            base = 0.0
            for question in exam.questions:
                if question.type.is_objective:
                    base += objective_points(question, attempt.answers or {})
                else:
                    base += min(max(question_scores.get(question.id, 0), 0), question.points)
        elif final_score is not None:
            base = final_score
        else:
            return fail(ErrorKind.INVALID_STATE, "Either questionScores or finalScore must be provided")

        score = clamp_score(exam, base + (bonus or 0))
        outcome = self._finalize(exam, attempt, score, target)
        logger.info(f"attempt {attempt.id} graded by {identity.user_id}: score={score}")
        return Ok(outcome)

    # ---- amendment -------------------------------------------------------

    def amend(self, identity: Identity, exam_id: str, attempt_id: str, *,
              final_score: Optional[float] = None,
              bonus: Optional[float] = None) -> Result[AttemptOutcome]:
        loaded = self._load_for_write(identity, exam_id, attempt_id)
        if not loaded.success:
            return loaded
        exam, attempt = loaded.data

        target = advance(attempt.status, Transition.AMEND)
        if target is None:
            return fail(ErrorKind.INVALID_STATE, "Attempt must be graded before its score can be amended")
        if final_score is None and bonus is None:
            return fail(ErrorKind.INVALID_STATE, "Either bonus or finalScore must be provided")

        new_score = final_score if final_score is not None else (attempt.score or 0) + bonus
        score = clamp_score(exam, new_score)
        outcome = self._finalize(exam, attempt, score, target)
        logger.info(f"attempt {attempt.id} amended by {identity.user_id}: score={score}")
        return Ok(outcome)

    # ---- helpers ---------------------------------------------------------

    def _find(self, exam_id: str, user_id: str) -> Optional[ExamAttempt]:
        return self.db.scalar(
            select(ExamAttempt).where(ExamAttempt.exam_id == exam_id, ExamAttempt.user_id == user_id)
        )

    def _load_for_write(self, identity: Identity, exam_id: str, attempt_id: str) -> Result[Tuple[Exam, ExamAttempt]]:
        exam = self.db.get(Exam, exam_id)
        if exam is None:
            return fail(ErrorKind.NOT_FOUND, "Exam not found")
        if not self.access.check_write(identity, Parent.course(exam.course_id)).allowed:
            return fail(ErrorKind.FORBIDDEN, "Access denied")
        attempt = self.db.scalar(
            select(ExamAttempt).where(ExamAttempt.id == attempt_id, ExamAttempt.exam_id == exam_id)
            .with_for_update()
        )
        if attempt is None:
            return fail(ErrorKind.NOT_FOUND, "Attempt not found")
        return Ok((exam, attempt))

    def _finalize(self, exam: Exam, attempt: ExamAttempt, score: float, status: AttemptStatus) -> AttemptOutcome:
        pct = percentage(score, exam.max_score)
        letter = letter_grade(pct)
        attempt.score = score
        attempt.status = status
        attempt.graded_at = datetime.now(timezone.utc)
        upsert_grade(self.db, user_id=attempt.user_id, course_id=exam.course_id, item_id=exam.id,
                     score=score, max_score=exam.max_score, percentage=pct, letter_grade=letter)
        self.db.commit()
        return AttemptOutcome(attempt, score, status, pct, letter)
