"""Response models shared by the routers. Percentages are rounded here, and only here."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, field_serializer
from learnhub.models.orm import AttemptStatus, EnrollmentStatus, GradeType

class EnrollmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    user_id: str
    course_id: str
    status: EnrollmentStatus
    enrolled_at: Optional[datetime] = None

class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    exam_id: str
    user_id: str
    answers: dict
    score: Optional[float] = None
    status: AttemptStatus
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None

class AttemptResult(BaseModel):
    attempt: AttemptOut
    score: Optional[float] = None
    percentage: Optional[float] = None
    letter_grade: Optional[str] = None
    status: AttemptStatus
    message: Optional[str] = None

    @field_serializer("percentage")
    def _round_percentage(self, v: Optional[float]):
        return None if v is None else round(v, 2)

    @classmethod
    def from_outcome(cls, outcome) -> "AttemptResult":
        return cls(
            attempt=AttemptOut.model_validate(outcome.attempt),
            score=outcome.score,
            percentage=outcome.percentage,
            letter_grade=outcome.letter_grade.value if outcome.letter_grade else None,
            status=outcome.status,
            message=outcome.message,
        )

class GradeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    user_id: str
    course_id: str
    type: GradeType
    item_id: str
    score: float
    max_score: float
    percentage: Optional[float] = None
    letter_grade: Optional[str] = None

    @field_serializer("percentage")
    def _round_percentage(self, v: Optional[float]):
        return None if v is None else round(v, 2)

class HomeworkOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    course_id: str
    title: str
    description: str = ""
    due_date: datetime
    max_score: float

class SubmissionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    homework_id: str
    user_id: str
    content: str
    file_url: Optional[str] = None
    score: Optional[float] = None
    feedback: Optional[str] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None
