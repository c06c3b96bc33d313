from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import List
from sqlalchemy.orm import Session
from learnhub.core.database import get_db
from learnhub.core.auth import Identity, get_current_user, require_roles
from learnhub.core.errors import unwrap
from learnhub.models.orm import EnrollmentStatus, Role
from learnhub.services.enrollment import EnrollmentService
from learnhub.api.schemas import EnrollmentOut

router = APIRouter()

class EnrollRequest(BaseModel):
    course_id: str

class StatusUpdate(BaseModel):
    status: EnrollmentStatus

@router.post("", response_model=EnrollmentOut, status_code=201)
def enroll(payload: EnrollRequest, user: Identity = Depends(require_roles(Role.STUDENT, Role.ADMIN)), db: Session = Depends(get_db)):
    return unwrap(EnrollmentService(db).enroll(user, payload.course_id))

@router.get("/me", response_model=List[EnrollmentOut])
def my_enrollments(user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return unwrap(EnrollmentService(db).my_enrollments(user))

@router.get("/course/{course_id}", response_model=List[EnrollmentOut])
def course_enrollments(course_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return unwrap(EnrollmentService(db).course_enrollments(user, course_id))

@router.patch("/{enrollment_id}", response_model=EnrollmentOut)
def update_enrollment(enrollment_id: str, payload: StatusUpdate, user: Identity = Depends(require_roles(Role.ADMIN)), db: Session = Depends(get_db)):
    return unwrap(EnrollmentService(db).update_status(user, enrollment_id, payload.status))

@router.delete("/{enrollment_id}", status_code=204)
def cancel_enrollment(enrollment_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    unwrap(EnrollmentService(db).cancel(user, enrollment_id))
