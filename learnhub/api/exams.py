from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import Annotated, Dict, List, Optional, Union
from datetime import datetime
from sqlalchemy.orm import Session
from learnhub.core.database import get_db
from learnhub.core.auth import Identity, get_current_user, require_roles
from learnhub.core.errors import unwrap
from learnhub.models.orm import QuestionType, Role
from learnhub.services.attempts import AttemptService
from learnhub.services.exams import ExamChanges, ExamDraft, ExamService, QuestionChanges, QuestionDraft
from learnhub.api.schemas import AttemptOut, AttemptResult

router = APIRouter()

class ExamCreate(BaseModel):
  course_id: str
  title: str = Field(min_length=1, max_length=200)
  description: Optional[str] = None
  duration_minutes: int = Field(ge=1, default=60)
  start_date: datetime
  end_date: datetime
  max_score: float = Field(gt=0, default=100)
  passing_score: float = Field(ge=0, default=60)

class QuestionCreate(BaseModel):
  prompt: str = Field(min_length=1)
  type: QuestionType = QuestionType.MULTIPLE_CHOICE
  choices: Optional[List[str]] = None
  correct_index: Optional[int] = Field(default=None, ge=0)
  explanation: Optional[str] = None
  points: float = Field(ge=0, default=1)
  order: Optional[int] = None
  allow_bonus: bool = False

class ExamUpdate(BaseModel):
  title: Optional[str] = Field(default=None, min_length=1, max_length=200)
  description: Optional[str] = None
  duration_minutes: Optional[int] = Field(default=None, ge=1)
  start_date: Optional[datetime] = None
  end_date: Optional[datetime] = None
  max_score: Optional[float] = Field(default=None, gt=0)
  passing_score: Optional[float] = Field(default=None, ge=0)

class QuestionUpdate(BaseModel):
  prompt: Optional[str] = Field(default=None, min_length=1)
  type: Optional[QuestionType] = None
  choices: Optional[List[str]] = None
  correct_index: Optional[int] = Field(default=None, ge=0)
  explanation: Optional[str] = None
  points: Optional[float] = Field(default=None, ge=0)
  order: Optional[int] = None
  allow_bonus: bool = False

class AttemptSubmit(BaseModel):
  # unanswered questions may be sent as null
  answers: Dict[str, Optional[Union[int, str]]]

class AttemptGrade(BaseModel):
  question_scores: Optional[Dict[str, Annotated[float, Field(ge=0)]]] = None
  final_score: Optional[float] = Field(default=None, ge=0)
  bonus: Optional[float] = None

class ScoreAmend(BaseModel):
  bonus: Optional[float] = None
  final_score: Optional[float] = Field(default=None, ge=0)

@router.post("", status_code=201)
def create_exam(payload: ExamCreate, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
  draft = ExamDraft(**payload.model_dump(exclude={"course_id"}))
  exam = unwrap(ExamService(db).create_exam(user, payload.course_id, draft))
  return unwrap(ExamService(db).get_exam(user, exam.id))

@router.post("/{exam_id}/questions", status_code=201)
def add_question(exam_id: str, payload: QuestionCreate, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
  draft = QuestionDraft(**payload.model_dump(exclude={"allow_bonus"}))
  q = unwrap(ExamService(db).add_question(user, exam_id, draft, allow_bonus=payload.allow_bonus))
  return {"id": q.id, "exam_id": q.exam_id, "type": q.type.value, "points": q.points, "order": q.order}

@router.patch("/{exam_id}")
def update_exam(exam_id: str, payload: ExamUpdate, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
  svc = ExamService(db)
  unwrap(svc.update_exam(user, exam_id, ExamChanges(**payload.model_dump())))
  return unwrap(svc.get_exam(user, exam_id))

@router.delete("/{exam_id}", status_code=204)
def delete_exam(exam_id: str, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
  unwrap(ExamService(db).delete_exam(user, exam_id))

@router.patch("/{exam_id}/questions/{question_id}")
def update_question(exam_id: str, question_id: str, payload: QuestionUpdate, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
  changes = QuestionChanges(**payload.model_dump(exclude={"allow_bonus"}))
  q = unwrap(ExamService(db).update_question(user, exam_id, question_id, changes, allow_bonus=payload.allow_bonus))
  return {"id": q.id, "exam_id": q.exam_id, "type": q.type.value, "points": q.points, "order": q.order}

@router.delete("/{exam_id}/questions/{question_id}", status_code=204)
def delete_question(exam_id: str, question_id: str, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
  unwrap(ExamService(db).delete_question(user, exam_id, question_id))

@router.get("/course/{course_id}")
def list_exams(course_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
  return unwrap(ExamService(db).list_exams(user, course_id))

@router.get("/{exam_id}")
def get_exam(exam_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
  return unwrap(ExamService(db).get_exam(user, exam_id))

@router.get("/{exam_id}/attempts", response_model=List[AttemptOut])
def list_attempts(exam_id: str, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
  return unwrap(ExamService(db).list_attempts(user, exam_id))

@router.post("/{exam_id}/attempts", response_model=AttemptResult)
def submit_attempt(exam_id: str, payload: AttemptSubmit, user: Identity = Depends(require_roles(Role.STUDENT, Role.ADMIN)), db: Session = Depends(get_db)):
  outcome = unwrap(AttemptService(db).submit(user, exam_id, payload.answers))
  return AttemptResult.from_outcome(outcome)

@router.post("/{exam_id}/attempts/{attempt_id}/grade", response_model=AttemptResult)
def grade_attempt(exam_id: str, attempt_id: str, payload: AttemptGrade, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
  outcome = unwrap(AttemptService(db).grade(user, exam_id, attempt_id, question_scores=payload.question_scores,
                                            final_score=payload.final_score, bonus=payload.bonus))
  return AttemptResult.from_outcome(outcome)

@router.patch("/{exam_id}/attempts/{attempt_id}/score", response_model=AttemptResult)
def amend_score(exam_id: str, attempt_id: str, payload: ScoreAmend, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
  outcome = unwrap(AttemptService(db).amend(user, exam_id, attempt_id, final_score=payload.final_score, bonus=payload.bonus))
  return AttemptResult.from_outcome(outcome)
