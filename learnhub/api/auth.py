from fastapi import APIRouter
from pydantic import BaseModel
from learnhub.core.auth import create_token
from learnhub.models.orm import Role

router = APIRouter()

class MockLogin(BaseModel):
    user_id: str
    role: Role

@router.post("/mock-login")
def mock_login(payload: MockLogin):
    token = create_token(payload.user_id, payload.role)
    return {"access_token": token, "token_type": "bearer", "role": payload.role}
