from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from learnhub.core.database import get_db
from learnhub.core.auth import Identity, get_current_user
from learnhub.core.errors import unwrap
from learnhub.services.progress import ProgressService

router = APIRouter()

@router.post("/lessons/{lesson_id}/complete")
def complete_lesson(lesson_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    p = unwrap(ProgressService(db).complete_lesson(user, lesson_id))
    return {"lesson_id": p.lesson_id, "user_id": p.user_id, "completed_at": p.completed_at}

@router.get("/courses/{course_id}")
def course_progress(course_id: str, user: Identity = Depends(get_current_user), db: Session = Depends(get_db)):
    c = unwrap(ProgressService(db).course_progress(user, course_id))
    return {"all_lessons_completed": c.all_lessons_completed, "completed_lessons": c.completed_lessons, "total_lessons": c.total_lessons}
