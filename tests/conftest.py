import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("PROMETHEUS_ENABLED", "false")

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from learnhub.core.auth import Identity
from learnhub.core.database import Base, init_db
from learnhub.models.orm import (
    Course, CoursePrerequisite, CourseStatus, Enrollment, EnrollmentStatus, Exam,
    ExamAttempt, ExamQuestion, Homework, Lesson, LessonProgress, Module, QuestionType, Role,
)

NOW = datetime.now(timezone.utc)


@pytest.fixture()
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    init_db(bind=eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, future=True)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def student():
    return Identity(user_id="student-1", role=Role.STUDENT)


@pytest.fixture()
def teacher():
    return Identity(user_id="teacher-1", role=Role.TEACHER)


@pytest.fixture()
def other_teacher():
    return Identity(user_id="teacher-2", role=Role.TEACHER)


@pytest.fixture()
def admin():
    return Identity(user_id="admin-1", role=Role.ADMIN)


class Factory:
    """Writes fixtures straight to the store, bypassing the services."""

    def __init__(self, db):
        self.db = db

    def course(self, title="Course", teacher_id="teacher-1", status=CourseStatus.PUBLISHED, prerequisites=()):
        course = Course(title=title, teacher_id=teacher_id, status=status)
        self.db.add(course)
        self.db.flush()
        for prereq in prerequisites:
            self.db.add(CoursePrerequisite(course_id=course.id, prerequisite_id=prereq.id))
        self.db.commit()
        return course

    def lesson(self, course, title="Lesson"):
        module = Module(course_id=course.id, title="Module", order=1)
        self.db.add(module)
        self.db.flush()
        lesson = Lesson(module_id=module.id, title=title, order=1)
        self.db.add(lesson)
        self.db.commit()
        return lesson

    def enroll(self, user_id, course, status=EnrollmentStatus.ACTIVE):
        enrollment = Enrollment(user_id=user_id, course_id=course.id, status=status)
        self.db.add(enrollment)
        self.db.commit()
        return enrollment

    def complete(self, user_id, lesson):
        self.db.add(LessonProgress(user_id=user_id, lesson_id=lesson.id))
        self.db.commit()

    def exam(self, course, max_score=10, passing_score=6, questions=(), ended=False):
        start = NOW - timedelta(days=2)
        end = NOW - timedelta(hours=1) if ended else NOW + timedelta(days=2)
        exam = Exam(course_id=course.id, title="Exam", start_date=start, end_date=end,
                    max_score=max_score, passing_score=passing_score)
        self.db.add(exam)
        self.db.flush()
        for order, (qtype, points) in enumerate(questions, start=1):
            if qtype is QuestionType.MULTIPLE_CHOICE:
                q = ExamQuestion(exam_id=exam.id, prompt=f"Q{order}", type=qtype,
                                 choices=["a", "b", "c"], correct_index=1, explanation="b is right",
                                 points=points, order=order)
            else:
                q = ExamQuestion(exam_id=exam.id, prompt=f"Q{order}", type=qtype, choices=[],
                                 points=points, order=order)
            self.db.add(q)
        self.db.commit()
        self.db.refresh(exam)
        return exam

    def homework(self, course, max_score=10):
        homework = Homework(course_id=course.id, title="Homework", due_date=NOW + timedelta(days=7), max_score=max_score)
        self.db.add(homework)
        self.db.commit()
        return homework

    def attempt(self, exam, user_id, score, status):
        attempt = ExamAttempt(exam_id=exam.id, user_id=user_id, answers={}, score=score, status=status)
        self.db.add(attempt)
        self.db.commit()
        return attempt


@pytest.fixture()
def make(db):
    return Factory(db)
