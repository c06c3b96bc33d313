from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import List
from sqlalchemy.orm import Session
from learnhub.core.database import get_db
from learnhub.core.auth import Identity, get_current_user
from learnhub.core.errors import unwrap
from learnhub.services.grades import GradeService
from learnhub.api.schemas import GradeOut

router = APIRouter()

class StudentGradesOut(BaseModel):
    grades: List[GradeOut]
    gpa: float

@router.get("/students/{user_id}", response_model=StudentGradesOut)
def student_grades(user_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    summary = unwrap(GradeService(db).student_grades(user, user_id))
    return StudentGradesOut(grades=[GradeOut.model_validate(g) for g in summary.grades], gpa=summary.gpa)

@router.get("/courses/{course_id}", response_model=List[GradeOut])
def course_grades(course_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return unwrap(GradeService(db).course_grades(user, course_id))
