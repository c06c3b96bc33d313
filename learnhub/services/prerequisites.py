"""
Prerequisite Evaluator.

A prerequisite course is passed when the average percentage of the learner's
scored exam attempts in that course reaches the pass mark. A course with no
scored attempts is never passed.
"""
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from learnhub.core.config import settings
from learnhub.models.orm import Course, CoursePrerequisite, Exam, ExamAttempt
from learnhub.services.grading import percentage


@dataclass(frozen=True)
class UnmetPrerequisite:
    course_id: str
    title: str
    average: Optional[float]  # None when the learner has no scored attempt


def prerequisites_of(db: Session, course_id: str) -> List[Course]:
    stmt = (
        select(Course)
        .join(CoursePrerequisite, CoursePrerequisite.prerequisite_id == Course.id)
        .where(CoursePrerequisite.course_id == course_id)
        .order_by(Course.title)
    )
    return list(db.scalars(stmt).all())


def course_averages(db: Session, user_id: str, course_ids: Iterable[str]) -> Dict[str, float]:
    """Average attempt percentage per course, over attempts with a non-null score."""
    ids = list(course_ids)
    if not ids:
        return {}
    rows = db.execute(
        select(Exam.course_id, ExamAttempt.score, Exam.max_score)
        .join(Exam, Exam.id == ExamAttempt.exam_id)
        .where(ExamAttempt.user_id == user_id, ExamAttempt.score.is_not(None), Exam.course_id.in_(ids))
    ).all()
    buckets: Dict[str, List[float]] = defaultdict(list)
    for course_id, score, max_score in rows:
        pct = percentage(score, max_score)
        if pct is not None:
            buckets[course_id].append(pct)
    return {cid: sum(p) / len(p) for cid, p in buckets.items()}


def unmet_prerequisites(db: Session, course_id: str, user_id: str) -> List[UnmetPrerequisite]:
    """Evaluates every prerequisite before reporting; never stops at the first miss."""
    required = prerequisites_of(db, course_id)
    averages = course_averages(db, user_id, (c.id for c in required))
    unmet = []
    for course in required:
        avg = averages.get(course.id)
        if avg is None or avg < settings.PASSING_PERCENTAGE:
            unmet.append(UnmetPrerequisite(course.id, course.title, avg))
    return unmet


def find_cycle(db: Session, course_id: str, prerequisite_ids: Iterable[str]) -> Optional[str]:
    """
    Return the id of a proposed prerequisite that would make ``course_id``
    (transitively) its own prerequisite, or None if the graph stays acyclic.
    """
    for start in prerequisite_ids:
        seen: Set[str] = set()
        stack = [start]
        while stack:
            current = stack.pop()
            if current == course_id:
                return start
            if current in seen:
                continue
            seen.add(current)
            stack.extend(db.scalars(
                select(CoursePrerequisite.prerequisite_id).where(CoursePrerequisite.course_id == current)
            ).all())
    return None
