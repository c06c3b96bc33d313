from sqlalchemy import (
    String, Text, Integer, Float, ForeignKey, JSON, DateTime,
    UniqueConstraint, Index, CheckConstraint, Enum as SQLEnum, func
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime
from typing import Optional, List, Dict, Any
import uuid
import enum
from learnhub.core.database import Base

def new_id() -> str:
    return str(uuid.uuid4())

def _enum(cls):
    return SQLEnum(cls, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e])

class Role(str, enum.Enum):
    STUDENT = "STUDENT"
    TEACHER = "TEACHER"
    ADMIN = "ADMIN"

class CourseStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"

class EnrollmentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

class QuestionType(str, enum.Enum):
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    TEXT = "TEXT"
    ESSAY = "ESSAY"

    @property
    def is_objective(self) -> bool:
        return self is QuestionType.MULTIPLE_CHOICE

class AttemptStatus(str, enum.Enum):
    PENDING = "PENDING"
    AUTO_GRADED = "AUTO_GRADED"
    GRADED = "GRADED"

class GradeType(str, enum.Enum):
    EXAM = "EXAM"
    HOMEWORK = "HOMEWORK"

# ========== Course Content ==========

class Course(Base):
    __tablename__ = "courses"
    __table_args__ = (Index("idx_courses_teacher", "teacher_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    teacher_id: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[CourseStatus] = mapped_column(_enum(CourseStatus), default=CourseStatus.DRAFT)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    modules: Mapped[List["Module"]] = relationship(
        back_populates="course", cascade="all, delete-orphan", order_by="Module.order"
    )
    prerequisite_links: Mapped[List["CoursePrerequisite"]] = relationship(
        foreign_keys="CoursePrerequisite.course_id", cascade="all, delete-orphan"
    )

class CoursePrerequisite(Base):
    __tablename__ = "course_prerequisites"
    __table_args__ = (
        UniqueConstraint("course_id", "prerequisite_id", name="uq_course_prerequisite"),
        CheckConstraint("course_id <> prerequisite_id", name="ck_prerequisite_not_self"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id", ondelete="CASCADE"))
    prerequisite_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id", ondelete="CASCADE"))

    prerequisite: Mapped["Course"] = relationship(foreign_keys=[prerequisite_id])

class Module(Base):
    __tablename__ = "modules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0)

    course: Mapped["Course"] = relationship(back_populates="modules")
    lessons: Mapped[List["Lesson"]] = relationship(
        back_populates="module", cascade="all, delete-orphan", order_by="Lesson.order"
    )

class Lesson(Base):
    __tablename__ = "lessons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    module_id: Mapped[str] = mapped_column(String(36), ForeignKey("modules.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="")
    order: Mapped[int] = mapped_column(Integer, default=0)

    module: Mapped["Module"] = relationship(back_populates="lessons")

class LessonProgress(Base):
    __tablename__ = "lesson_progress"
    __table_args__ = (UniqueConstraint("user_id", "lesson_id", name="uq_lesson_progress"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    lesson_id: Mapped[str] = mapped_column(String(36), ForeignKey("lessons.id", ondelete="CASCADE"))
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("user_id", "course_id", name="uq_enrollment_user_course"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id", ondelete="CASCADE"))
    status: Mapped[EnrollmentStatus] = mapped_column(_enum(EnrollmentStatus), default=EnrollmentStatus.ACTIVE)
    enrolled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    course: Mapped["Course"] = relationship()

# ========== Assessment ==========

class Exam(Base):
    __tablename__ = "exams"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=60)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    max_score: Mapped[float] = mapped_column(Float, default=100)
    passing_score: Mapped[float] = mapped_column(Float, default=60)

    course: Mapped["Course"] = relationship()
    questions: Mapped[List["ExamQuestion"]] = relationship(
        back_populates="exam", cascade="all, delete-orphan", order_by="ExamQuestion.order"
    )

class ExamQuestion(Base):
    __tablename__ = "exam_questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    exam_id: Mapped[str] = mapped_column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), index=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[QuestionType] = mapped_column(_enum(QuestionType), default=QuestionType.MULTIPLE_CHOICE)
    choices: Mapped[List[str]] = mapped_column(JSON, default=list)
    correct_index: Mapped[Optional[int]] = mapped_column(Integer)
    explanation: Mapped[Optional[str]] = mapped_column(Text)
    points: Mapped[float] = mapped_column(Float, default=1)
    order: Mapped[int] = mapped_column(Integer, default=0)

    exam: Mapped["Exam"] = relationship(back_populates="questions")

class ExamAttempt(Base):
    __tablename__ = "exam_attempts"
    __table_args__ = (UniqueConstraint("exam_id", "user_id", name="uq_attempt_exam_user"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    exam_id: Mapped[str] = mapped_column(String(36), ForeignKey("exams.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    answers: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    score: Mapped[Optional[float]] = mapped_column(Float)
    status: Mapped[AttemptStatus] = mapped_column(_enum(AttemptStatus), default=AttemptStatus.PENDING)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    graded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    exam: Mapped["Exam"] = relationship()

# ========== Homework ==========

class Homework(Base):
    __tablename__ = "homework"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    max_score: Mapped[float] = mapped_column(Float, default=100)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    submissions: Mapped[List["HomeworkSubmission"]] = relationship(
        back_populates="homework", cascade="all, delete-orphan", order_by="HomeworkSubmission.submitted_at"
    )

class HomeworkSubmission(Base):
    __tablename__ = "homework_submissions"
    __table_args__ = (UniqueConstraint("homework_id", "user_id", name="uq_submission_homework_user"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    homework_id: Mapped[str] = mapped_column(String(36), ForeignKey("homework.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, default="")
    file_url: Mapped[Optional[str]] = mapped_column(String(500))
    score: Mapped[Optional[float]] = mapped_column(Float)
    feedback: Mapped[Optional[str]] = mapped_column(Text)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    graded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    homework: Mapped["Homework"] = relationship(back_populates="submissions")

class Grade(Base):
    """System-derived; written only by the grading transitions."""
    __tablename__ = "grades"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", "type", "item_id", name="uq_grade_item"),
        Index("idx_grades_user", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id", ondelete="CASCADE"))
    type: Mapped[GradeType] = mapped_column(_enum(GradeType), default=GradeType.EXAM)
    item_id: Mapped[str] = mapped_column(String(36), nullable=False)
    score: Mapped[float] = mapped_column(Float)
    max_score: Mapped[float] = mapped_column(Float)
    percentage: Mapped[Optional[float]] = mapped_column(Float)
    letter_grade: Mapped[Optional[str]] = mapped_column(String(2))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), onupdate=func.now())
