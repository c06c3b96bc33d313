"""
Answer Reveal Policy and question serialization.

Teachers and admins always see answers. A student sees ``correct_index`` and
``explanation`` only once the exam has ended, they have an attempt, and that
attempt's score is at least the passing score. Evaluated per exam per call;
never cached, because both the clock and the attempt change the outcome.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from learnhub.core.auth import Identity
from learnhub.core.clock import as_utc, utcnow
from learnhub.models.orm import Exam, ExamAttempt, ExamQuestion, Role


def should_reveal(identity: Identity, exam: Exam, attempt: Optional[ExamAttempt],
                  now: Optional[datetime] = None) -> bool:
    if identity.role in (Role.TEACHER, Role.ADMIN):
        return True
    now = now or utcnow()
    if as_utc(now) <= as_utc(exam.end_date):
        return False
    if attempt is None or attempt.user_id != identity.user_id:
        return False
    return attempt.score is not None and attempt.score >= exam.passing_score


def student_view(question: ExamQuestion) -> Dict[str, Any]:
    return {
        "id": question.id,
        "prompt": question.prompt,
        "type": question.type.value,
        "choices": list(question.choices or []),
        "points": question.points,
        "order": question.order,
    }


def teacher_view(question: ExamQuestion) -> Dict[str, Any]:
    view = student_view(question)
    view["correct_index"] = question.correct_index
    view["explanation"] = question.explanation
    return view


def serialize_questions(questions: List[ExamQuestion], reveal: bool) -> List[Dict[str, Any]]:
    render = teacher_view if reveal else student_view
    return [render(q) for q in questions]
