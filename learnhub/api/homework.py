from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from sqlalchemy.orm import Session
from learnhub.core.database import get_db
from learnhub.core.auth import Identity, get_current_user, require_roles
from learnhub.core.errors import unwrap
from learnhub.models.orm import Role
from learnhub.services.homework import HomeworkChanges, HomeworkDraft, HomeworkService
from learnhub.api.schemas import HomeworkOut, SubmissionOut

router = APIRouter()

class HomeworkCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    due_date: datetime
    max_score: float = Field(gt=0, default=100)

class HomeworkUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    max_score: Optional[float] = Field(default=None, gt=0)

class HomeworkSubmit(BaseModel):
    content: str = Field(min_length=1)
    file_url: Optional[str] = None

class SubmissionGrade(BaseModel):
    score: float = Field(ge=0)
    feedback: Optional[str] = None

@router.get("/course/{course_id}", response_model=List[HomeworkOut])
def list_homework(course_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return unwrap(HomeworkService(db).list_homework(user, course_id))

@router.post("/course/{course_id}", response_model=HomeworkOut, status_code=201)
def create_homework(course_id: str, payload: HomeworkCreate, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
    return unwrap(HomeworkService(db).create_homework(user, course_id, HomeworkDraft(**payload.model_dump())))

@router.get("/course/{course_id}/{homework_id}", response_model=HomeworkOut)
def get_homework(course_id: str, homework_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return unwrap(HomeworkService(db).get_homework(user, course_id, homework_id))

@router.patch("/course/{course_id}/{homework_id}", response_model=HomeworkOut)
def update_homework(course_id: str, homework_id: str, payload: HomeworkUpdate, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
    return unwrap(HomeworkService(db).update_homework(user, course_id, homework_id, HomeworkChanges(**payload.model_dump())))

@router.delete("/course/{course_id}/{homework_id}", status_code=204)
def delete_homework(course_id: str, homework_id: str, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
    unwrap(HomeworkService(db).delete_homework(user, course_id, homework_id))

@router.post("/{homework_id}/submit", response_model=SubmissionOut, status_code=201)
def submit_homework(homework_id: str, payload: HomeworkSubmit, user: Identity = Depends(require_roles(Role.STUDENT, Role.ADMIN)), db: Session = Depends(get_db)):
    return unwrap(HomeworkService(db).submit(user, homework_id, payload.content, payload.file_url))

@router.get("/course/{course_id}/{homework_id}/submissions", response_model=List[SubmissionOut])
def list_submissions(course_id: str, homework_id: str, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
    return unwrap(HomeworkService(db).list_submissions(user, course_id, homework_id))

@router.post("/course/{course_id}/{homework_id}/submissions/{submission_id}/grade", response_model=SubmissionOut)
def grade_submission(course_id: str, homework_id: str, submission_id: str, payload: SubmissionGrade, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
    return unwrap(HomeworkService(db).grade_submission(user, course_id, homework_id, submission_id, payload.score, payload.feedback))
