from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import List, Optional
from sqlalchemy.orm import Session
from learnhub.core.database import get_db
from learnhub.core.auth import Identity, get_current_user, require_roles
from learnhub.core.errors import unwrap
from learnhub.models.orm import CourseStatus, Role
from learnhub.services.courses import CourseChanges, CourseDraft, CourseService

router = APIRouter()

class CourseCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    status: CourseStatus = CourseStatus.DRAFT
    teacher_id: Optional[str] = None
    prerequisite_course_ids: List[str] = []

class CourseUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    status: Optional[CourseStatus] = None
    prerequisite_course_ids: Optional[List[str]] = None

class ModuleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    order: Optional[int] = None

class LessonCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str = ""
    order: Optional[int] = None

@router.post("", status_code=201)
def create_course(payload: CourseCreate, user: Identity = Depends(require_roles(Role.TEACHER, Role.ADMIN)), db: Session = Depends(get_db)):
    svc = CourseService(db)
    course = unwrap(svc.create_course(user, CourseDraft(
        title=payload.title, description=payload.description, status=payload.status,
        teacher_id=payload.teacher_id, prerequisite_ids=payload.prerequisite_course_ids)))
    return unwrap(svc.get_course(user, course.id))

@router.get("/{course_id}")
def get_course(course_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    return unwrap(CourseService(db).get_course(user, course_id))

@router.patch("/{course_id}")
def update_course(course_id: str, payload: CourseUpdate, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    svc = CourseService(db)
    unwrap(svc.update_course(user, course_id, CourseChanges(
        title=payload.title, description=payload.description, status=payload.status,
        prerequisite_ids=payload.prerequisite_course_ids)))
    return unwrap(svc.get_course(user, course_id))

@router.post("/{course_id}/modules", status_code=201)
def add_module(course_id: str, payload: ModuleCreate, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    m = unwrap(CourseService(db).add_module(user, course_id, payload.title, payload.order))
    return {"id": m.id, "course_id": m.course_id, "title": m.title, "order": m.order}

@router.post("/modules/{module_id}/lessons", status_code=201)
def add_lesson(module_id: str, payload: LessonCreate, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    l = unwrap(CourseService(db).add_lesson(user, module_id, payload.title, payload.content, payload.order))
    return {"id": l.id, "module_id": l.module_id, "title": l.title, "order": l.order}

@router.get("/lessons/{lesson_id}")
def get_lesson(lesson_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    l = unwrap(CourseService(db).get_lesson(user, lesson_id))
    return {"id": l.id, "module_id": l.module_id, "title": l.title, "content": l.content, "order": l.order}
